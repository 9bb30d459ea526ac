"""
Keeper - off-chain driver that executes ready batches.

Loop (one worker per monitored pair):
------------------------------------
    1. Poll is_ready()
    2. Not ready          -> sleep poll_interval
    3. Ready              -> obtain the aggregate amount, execute_if_ready
    4. Executed           -> record, sleep poll_interval
    5. Contract rejection -> warn, sleep poll_interval
    6. Transport failure  -> error, sleep backoff_interval (no retry cap)

Races between keepers are expected: the loser of a consume race gets a
NotReady / NoOpenBatch rejection and simply polls again.

Shutdown:
--------
stop() sets an asyncio.Event checked at every iteration boundary and
wakes any sleep. An execute call already submitted is shielded from
cancellation and awaited to completion.
"""

import asyncio
import signal
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from fhedca.core.chain import Revert
from fhedca.keeper.amounts import AmountSource
from fhedca.keeper.client import ExecutorClient, TransportError
from fhedca.keeper.settings import KeeperSettings
from fhedca.utils.logger import get_pair_logger

TRANSPORT_ERRORS = (TransportError, OSError, asyncio.TimeoutError)


class KeeperOutcome(Enum):
    NOT_READY = "not_ready"
    EXECUTED = "executed"
    REJECTED = "rejected"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class KeeperStats:
    polls: int = 0
    executions: int = 0
    rejections: int = 0
    transport_errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class Keeper:
    """
    Polls one executor and executes its batch when ready.
    """

    def __init__(
        self,
        client: ExecutorClient,
        amount_source: AmountSource,
        settings: Optional[KeeperSettings] = None,
        name: str = "keeper",
    ):
        """
        Args:
            client: Executor client
            amount_source: Supplies the aggregate input amount
            settings: Intervals and slippage bound
            name: Label for log lines (e.g. the pair)
        """
        self.client = client
        self.amount_source = amount_source
        self.settings = settings or KeeperSettings()
        self.name = name
        self.log = get_pair_logger("keeper", name)

        self.stats = KeeperStats()
        self._stop = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Request shutdown at the next iteration boundary."""
        if not self._stop.is_set():
            self.log.info("Shutdown requested")
        self._stop.set()

    def install_signal_handlers(self) -> None:
        """Map SIGINT / SIGTERM to stop() on the running loop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop)

    # =========================================================================
    # Iteration
    # =========================================================================

    async def run_once(self) -> Tuple[KeeperOutcome, float]:
        """
        One poll / execute iteration.

        Returns:
            (outcome, seconds to wait before the next iteration)
        """
        self.stats.polls += 1
        try:
            by_count, by_time = await self.client.is_ready()
            if not (by_count or by_time):
                self.log.debug("Batch not ready")
                return KeeperOutcome.NOT_READY, self.settings.poll_interval

            trigger = "count" if by_count else "time"
            self.log.info(f"Batch ready (by {trigger}), executing")

            amount_in = await self.amount_source.get_amount()
            execution = asyncio.ensure_future(
                self.client.execute_if_ready(amount_in, self.settings.min_amount_out)
            )
            try:
                amount_in, amount_out = await asyncio.shield(execution)
            except asyncio.CancelledError:
                # Let the submitted call finish before propagating
                self.log.warning("Cancelled during execution, awaiting result")
                await asyncio.wait([execution])
                raise

        except Revert as e:
            self.stats.rejections += 1
            self.log.warning(f"Execution rejected: {e.reason}")
            return KeeperOutcome.REJECTED, self.settings.poll_interval

        except TRANSPORT_ERRORS as e:
            self.stats.transport_errors += 1
            self.log.error(
                f"Transport error: {e}; "
                f"backing off {self.settings.backoff_interval}s"
            )
            return KeeperOutcome.TRANSPORT_ERROR, self.settings.backoff_interval

        except Exception:
            self.stats.transport_errors += 1
            self.log.exception("Unexpected error; backing off")
            return KeeperOutcome.TRANSPORT_ERROR, self.settings.backoff_interval

        self.stats.executions += 1
        self.log.info(f"Executed batch: in={amount_in}, out={amount_out}")
        return KeeperOutcome.EXECUTED, self.settings.poll_interval

    async def _sleep(self, delay: float) -> None:
        """Sleep for `delay` seconds or until stop() is called."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def run(self, max_iterations: Optional[int] = None) -> KeeperStats:
        """
        Poll until stopped (or for max_iterations iterations).

        Returns:
            Final stats
        """
        self.log.info(
            f"Keeper started: poll={self.settings.poll_interval}s, "
            f"backoff={self.settings.backoff_interval}s"
        )
        iterations = 0
        while not self._stop.is_set():
            _, delay = await self.run_once()
            iterations += 1
            if max_iterations is not None and iterations >= max_iterations:
                break
            await self._sleep(delay)

        self.log.info(f"Keeper stopped: {self.stats.to_dict()}")
        return self.stats


async def run_keepers(keepers: Iterable[Keeper], max_iterations: Optional[int] = None) -> List[KeeperStats]:
    """Run independent keepers (one per pair) concurrently."""
    return await asyncio.gather(*(k.run(max_iterations) for k in keepers))
