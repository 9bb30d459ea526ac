"""
Swap adapter boundary.

The executor only knows `SwapAdapter.swap`: pull `amount_in` of the
input token from the caller, trade it, send the output to `recipient`
and return `amount_out`. Routing and pricing live behind this seam.

The reference DexAdapter routes through a MockRouter quoting a fixed
price in basis points (10000 = 1:1, 20000 = 2:1).
"""

from typing import Protocol, runtime_checkable

from fhedca.core.chain import Contract, InsufficientOutput, InvalidAmount, Unauthorized, atomic
from fhedca.core.events import SwapAggregateExecuted
from fhedca.core.token import MockToken
from fhedca.crypto import short_hex
from fhedca.utils.logger import get_logger
from fhedca.utils.validation import BPS_DENOMINATOR, validate_integer

logger = get_logger("swap")


@runtime_checkable
class SwapAdapter(Protocol):
    """Anything the executor can hand an aggregate amount to."""

    address: bytes

    def swap(self, caller: bytes, amount_in: int, min_amount_out: int, recipient: bytes) -> int:
        ...


class MockRouter(Contract):
    """
    Fixed-price router holding an inventory of the output token.
    """

    _state_fields = ("price_bps",)

    def __init__(self, chain, deployer: bytes, token_out: MockToken, price_bps: int = BPS_DENOMINATOR):
        valid, err = validate_integer(price_bps, "price_bps", min_val=0)
        if not valid:
            raise ValueError(err)

        super().__init__(chain, deployer)
        self.token_out = token_out
        self.price_bps = price_bps

    def quote(self, amount_in: int) -> int:
        return amount_in * self.price_bps // BPS_DENOMINATOR

    @atomic
    def set_price(self, sender: bytes, price_bps: int) -> None:
        if sender != self.deployer:
            raise Unauthorized()
        self.price_bps = price_bps

    @atomic
    def swap_exact_in(self, amount_in: int, min_amount_out: int, recipient: bytes) -> int:
        """
        Pay out `quote(amount_in)` of the output token.

        Raises:
            InsufficientOutput: Quote below min_amount_out
        """
        amount_out = self.quote(amount_in)
        if amount_out < min_amount_out:
            raise InsufficientOutput()
        self.token_out.transfer(self.address, recipient, amount_out)
        return amount_out


class DexAdapter(Contract):
    """
    Adapter for one (token_in, token_out) pair in front of a router.
    """

    def __init__(
        self,
        chain,
        deployer: bytes,
        router: MockRouter,
        token_in: MockToken,
        token_out: MockToken,
    ):
        super().__init__(chain, deployer)
        self.router = router
        self.token_in = token_in
        self.token_out = token_out

    @atomic
    def swap(self, caller: bytes, amount_in: int, min_amount_out: int, recipient: bytes) -> int:
        """
        Swap `amount_in` pulled from `caller` and deliver to `recipient`.

        Returns:
            amount_out

        Raises:
            InvalidAmount: amount_in is not positive
            InsufficientAllowance / InsufficientBalance: From the input token
            InsufficientOutput: Router quote below min_amount_out
        """
        if amount_in <= 0:
            raise InvalidAmount()

        self.token_in.transfer_from(self.address, caller, self.router.address, amount_in)
        amount_out = self.router.swap_exact_in(amount_in, min_amount_out, recipient)

        self.emit(SwapAggregateExecuted(amount_in=amount_in, amount_out=amount_out))
        logger.info(
            f"Swapped {amount_in} {self.token_in.symbol} -> {amount_out} "
            f"{self.token_out.symbol} for {short_hex(recipient)}"
        )
        return amount_out
