"""
DCA Executor - settles a ready batch through one aggregate swap.

Settlement:
----------
    1. Gate on readiness (either trigger)
    2. Consume the batch (snapshot + reset)
    3. Approve the adapter and swap the aggregate amount
    4. fee = floor(amount_out * keeper_fee_bps / 10000) -> keeper
    5. amount_out - fee stays credited to the pool
    6. Emit one BatchExecuted(count, amount_in, amount_out, fee)

Steps 2-6 are a single atomic call: if the swap fails the batch is not
consumed and no tokens move.

Trust Boundary:
--------------
The aggregate input amount is supplied by the caller (the keeper), who
obtains it from the public decryption of the batch sum. The executor
performs no decryption and does not check that the amount matches the
encrypted sum.
Once released, the batch is frozen until consumed, so the released sum
covers exactly the contributors the execution settles.
"""

from dataclasses import dataclass
from typing import Optional, Set, Tuple

from fhedca.core.batch.aggregator import BatchAggregator
from fhedca.core.chain import Contract, InvalidAmount, NotReady, Unauthorized, atomic
from fhedca.core.config import ExecutorConfig
from fhedca.core.events import BatchExecuted
from fhedca.core.swap.adapter import SwapAdapter
from fhedca.core.token import MockToken
from fhedca.crypto import short_hex
from fhedca.utils.logger import get_logger
from fhedca.utils.validation import BPS_DENOMINATOR

logger = get_logger("executor")


def compute_keeper_fee(amount_out: int, keeper_fee_bps: int) -> int:
    """Keeper fee in output-token units, rounded down."""
    return amount_out * keeper_fee_bps // BPS_DENOMINATOR


@dataclass(frozen=True)
class ExecutionResult:
    """Aggregate outcome of one executed batch."""
    amount_in: int
    amount_out: int
    fee: int
    count: int

    @property
    def pool_amount(self) -> int:
        return self.amount_out - self.fee


class DcaExecutor(Contract):
    """
    Executes ready batches for one fixed (token_in, token_out) pair.
    """

    _state_fields = ("pool_credit", "executions", "last_result", "keepers")

    def __init__(
        self,
        chain,
        deployer: bytes,
        aggregator: BatchAggregator,
        adapter: SwapAdapter,
        token_in: MockToken,
        token_out: MockToken,
        config: Optional[ExecutorConfig] = None,
    ):
        """
        Args:
            chain: Host chain
            deployer: Deployer address
            aggregator: Batch source; must authorize this executor as consumer
            adapter: Swap adapter for the pair
            token_in: Token the pool spends
            token_out: Token the pool accumulates
            config: Keeper fee (validated by ExecutorConfig)
        """
        super().__init__(chain, deployer)
        self.aggregator = aggregator
        self.adapter = adapter
        self.token_in = token_in
        self.token_out = token_out
        self.config = config or ExecutorConfig()

        # Output retained for the pool (amount_out - fee, cumulative)
        self.pool_credit = 0
        self.executions = 0
        self.last_result: Optional[ExecutionResult] = None

        # Keepers allowed to request decryption besides the owner
        self.keepers: Set[bytes] = set()

        logger.info(
            f"DcaExecutor deployed at {short_hex(self.address)} "
            f"({token_in.symbol}->{token_out.symbol}, fee={self.config.keeper_fee_bps}bps)"
        )

    @property
    def keeper_fee_bps(self) -> int:
        return self.config.keeper_fee_bps

    # =========================================================================
    # Access Control
    # =========================================================================

    @atomic
    def authorize_keeper(self, sender: bytes, keeper: bytes) -> None:
        """Allow `keeper` to request decryption of ready batches. Owner only."""
        if sender != self.deployer:
            raise Unauthorized()
        self.keepers.add(keeper)
        logger.info(f"Authorized keeper {short_hex(keeper)}")

    # =========================================================================
    # Readiness
    # =========================================================================

    def is_ready(self) -> Tuple[bool, bool]:
        """(ready_by_count, ready_by_time) for this executor's pair."""
        return self.aggregator.ready_to_execute(self.token_in.address, self.token_out.address)

    @atomic
    def request_decryption(self, sender: bytes) -> bytes:
        """
        Release the pair's aggregate sum for public decryption.

        Owner or authorized keepers only. The aggregator releases ready
        batches once and freezes them until this executor consumes them.

        Raises:
            Unauthorized: Sender is neither the owner nor an authorized keeper
            NotReady: Neither readiness trigger holds
        """
        if sender != self.deployer and sender not in self.keepers:
            raise Unauthorized()
        handle = self.aggregator.request_decryption(
            self.address, self.token_in.address, self.token_out.address
        )
        logger.debug(f"Decryption requested by {short_hex(sender)}")
        return handle

    # =========================================================================
    # Execution
    # =========================================================================

    @atomic
    def execute_if_ready(
        self,
        keeper: bytes,
        decrypted_amount_in: int,
        min_amount_out: int,
    ) -> Tuple[int, int]:
        """
        Consume the ready batch, swap the aggregate and pay the keeper.

        Args:
            keeper: Calling keeper, receives the fee
            decrypted_amount_in: Aggregate input amount (caller-supplied)
            min_amount_out: Slippage bound passed to the adapter

        Returns:
            (amount_in, amount_out)

        Raises:
            NotReady: Neither readiness trigger holds
            InvalidAmount: decrypted_amount_in is not positive
            InsufficientOutput / InsufficientAllowance / InsufficientBalance:
                From the swap; the whole call reverts
        """
        by_count, by_time = self.is_ready()
        if not (by_count or by_time):
            raise NotReady()
        if decrypted_amount_in <= 0:
            raise InvalidAmount()

        _, count = self.aggregator.consume_open_batch(
            self.address, self.token_in.address, self.token_out.address
        )

        self.token_in.approve(self.address, self.adapter.address, decrypted_amount_in)
        amount_out = self.adapter.swap(
            self.address, decrypted_amount_in, min_amount_out, self.address
        )

        fee = compute_keeper_fee(amount_out, self.config.keeper_fee_bps)
        if fee > 0:
            self.token_out.transfer(self.address, keeper, fee)

        result = ExecutionResult(
            amount_in=decrypted_amount_in,
            amount_out=amount_out,
            fee=fee,
            count=count,
        )
        self.pool_credit += result.pool_amount
        self.executions += 1
        self.last_result = result

        self.emit(BatchExecuted(
            count=count,
            amount_in=decrypted_amount_in,
            amount_out=amount_out,
            fee=fee,
        ))
        trigger = "count" if by_count else "time"
        logger.info(
            f"Batch executed ({trigger}): count={count}, in={decrypted_amount_in}, "
            f"out={amount_out}, fee={fee}"
        )
        return decrypted_amount_in, amount_out

    # =========================================================================
    # Reads
    # =========================================================================

    def stats(self) -> dict:
        by_count, by_time = self.is_ready()
        return {
            "executions": self.executions,
            "pool_credit": self.pool_credit,
            "keeper_fee_bps": self.config.keeper_fee_bps,
            "ready_by_count": by_count,
            "ready_by_time": by_time,
        }
