"""
MockToken - ERC20-style fungible token used by the swap path.

Balances and allowances are plain integer maps. Transfers that exceed a
balance or an allowance revert the enclosing call.
"""

from typing import Dict, Tuple

from fhedca.core.chain import (
    Contract,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAmount,
    atomic,
)
from fhedca.core.events import Approval, Transfer
from fhedca.crypto import ZERO_ADDRESS
from fhedca.utils.validation import validate_amount


def _check_amount(amount: int) -> None:
    valid, err = validate_amount(amount)
    if not valid:
        raise InvalidAmount(err)


class MockToken(Contract):
    """
    Minimal ERC20 with open minting (test/demo deployments only).
    """

    _state_fields = ("balances", "allowances", "total_supply")

    def __init__(self, chain, deployer: bytes, name: str, symbol: str, decimals: int = 18):
        super().__init__(chain, deployer)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals

        self.balances: Dict[bytes, int] = {}
        self.allowances: Dict[Tuple[bytes, bytes], int] = {}
        self.total_supply = 0

    # =========================================================================
    # Reads
    # =========================================================================

    def balance_of(self, account: bytes) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: bytes, spender: bytes) -> int:
        return self.allowances.get((owner, spender), 0)

    # =========================================================================
    # Writes
    # =========================================================================

    @atomic
    def mint(self, to: bytes, amount: int) -> None:
        _check_amount(amount)
        self.balances[to] = self.balance_of(to) + amount
        self.total_supply += amount
        self.emit(Transfer(sender=ZERO_ADDRESS, recipient=to, value=amount))

    @atomic
    def approve(self, owner: bytes, spender: bytes, amount: int) -> bool:
        _check_amount(amount)
        self.allowances[(owner, spender)] = amount
        self.emit(Approval(owner=owner, spender=spender, value=amount))
        return True

    @atomic
    def transfer(self, sender: bytes, to: bytes, amount: int) -> bool:
        self._move(sender, to, amount)
        return True

    @atomic
    def transfer_from(self, spender: bytes, owner: bytes, to: bytes, amount: int) -> bool:
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"insufficient allowance: have {allowed}, need {amount}"
            )
        self.allowances[(owner, spender)] = allowed - amount
        self._move(owner, to, amount)
        return True

    def _move(self, sender: bytes, to: bytes, amount: int) -> None:
        _check_amount(amount)
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalance(
                f"insufficient balance: have {balance}, need {amount}"
            )
        self.balances[sender] = balance - amount
        self.balances[to] = self.balance_of(to) + amount
        self.emit(Transfer(sender=sender, recipient=to, value=amount))

    def __repr__(self) -> str:
        return f"MockToken(symbol={self.symbol}, supply={self.total_supply})"
