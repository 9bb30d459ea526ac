"""
Chain - In-process host ledger for the batching contracts.

Conceptual Background:
---------------------
The contracts were designed for a ledger that serializes every call and
applies it atomically: either the whole call takes effect or nothing
does. The Chain reproduces those semantics in-process:

1. **Clock**: a block timestamp that only moves forward (advance_time)
2. **Event Log**: ordered log entries (emitter, event, timestamp)
3. **Atomic Calls**: `transaction()` snapshots every registered
   contract's state and the log length; any exception restores both
4. **Serialization**: a re-entrant lock, so concurrent callers (e.g.
   keeper threads for different pairs) never interleave inside a call

Nested transactions join the outermost one: a failure anywhere in an
execution (consume + swap + fee transfer) rolls back all of it.

Errors:
------
Contract-level rejections raise a `Revert` subclass carrying a stable
reason string. Callers (the keeper) use the class to tell contract
rejections apart from transport failures.
"""

import copy
import functools
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type

from fhedca.core.events import Event
from fhedca.crypto import bytes_to_hex, keccak256
from fhedca.utils.logger import get_logger

logger = get_logger("chain")


# =============================================================================
# Errors
# =============================================================================


class Revert(Exception):
    """A contract call was rejected. Nothing it did is kept."""

    reason = "reverted"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or type(self).reason
        super().__init__(self.reason)


# Validation errors
class InvalidProof(Revert):
    reason = "invalid proof"


class IntentInactive(Revert):
    reason = "intent inactive"


class AlreadyInBatch(Revert):
    reason = "already in batch"


class NoActiveIntent(Revert):
    reason = "No active intent to cancel"


class Unauthorized(Revert):
    reason = "not authorized"


class InvalidAddress(Revert):
    reason = "invalid address"


class InvalidAmount(Revert):
    reason = "amount must be positive"


# Readiness errors
class NotReady(Revert):
    reason = "not ready"


class NoOpenBatch(Revert):
    reason = "no open batch"


class BatchFrozen(Revert):
    reason = "batch sum released"


# Decryption errors
class NotDecryptable(Revert):
    reason = "handle is not publicly decryptable"


# Settlement errors
class InsufficientOutput(Revert):
    reason = "INSUFFICIENT_OUTPUT_AMOUNT"


class InsufficientAllowance(Revert):
    reason = "insufficient allowance"


class InsufficientBalance(Revert):
    reason = "insufficient balance"


# =============================================================================
# Log
# =============================================================================


@dataclass(frozen=True)
class LogEntry:
    """An emitted event with its emitter and block timestamp."""
    emitter: bytes
    event: Event
    timestamp: int

    @property
    def name(self) -> str:
        return self.event.name


# =============================================================================
# Contract Base
# =============================================================================


class Contract:
    """
    Base class for contracts living on a Chain.

    Subclasses list their mutable state attributes in `_state_fields`;
    those are what the chain snapshots and restores around a call.
    """

    _state_fields: Tuple[str, ...] = ()

    def __init__(self, chain: "Chain", deployer: bytes):
        self.chain = chain
        self.deployer = deployer
        self.address = chain.deploy(self, deployer)

    def emit(self, event: Event) -> None:
        self.chain.emit(self.address, event)

    @property
    def now(self) -> int:
        return self.chain.timestamp

    def snapshot_state(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._state_fields}

    def restore_state(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(address={bytes_to_hex(self.address)[:10]}...)"


def atomic(method: Callable) -> Callable:
    """Run a contract method as one atomic chain call."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.chain.transaction():
            return method(self, *args, **kwargs)

    return wrapper


# =============================================================================
# Chain
# =============================================================================


class Chain:
    """
    Serialized, atomic execution environment for contracts.

    Attributes:
        timestamp: Current block timestamp (seconds)
        logs: Ordered event log
        contracts: Deployed contracts by address
    """

    def __init__(self, start_time: Optional[int] = None):
        self.timestamp = int(start_time if start_time is not None else time.time())
        self.logs: List[LogEntry] = []
        self.contracts: Dict[bytes, Contract] = {}

        self._nonce = 0
        self._lock = threading.RLock()
        self._depth = 0

    # =========================================================================
    # Clock
    # =========================================================================

    def advance_time(self, seconds: int) -> int:
        """Move the clock forward. Returns the new timestamp."""
        if seconds < 0:
            raise ValueError("Time cannot move backwards")
        with self._lock:
            self.timestamp += seconds
            return self.timestamp

    # =========================================================================
    # Deployment
    # =========================================================================

    def deploy(self, contract: Contract, deployer: bytes) -> bytes:
        """Register a contract and assign its address."""
        with self._lock:
            address = keccak256(deployer + self._nonce.to_bytes(8, "big"))[-20:]
            self._nonce += 1
            self.contracts[address] = contract
        logger.debug(f"Deployed {type(contract).__name__} at {bytes_to_hex(address)[:10]}...")
        return address

    # =========================================================================
    # Events
    # =========================================================================

    def emit(self, emitter: bytes, event: Event) -> None:
        self.logs.append(LogEntry(emitter=emitter, event=event, timestamp=self.timestamp))

    def events(
        self,
        event_type: Optional[Type[Event]] = None,
        emitter: Optional[bytes] = None,
    ) -> List[LogEntry]:
        """Filter the event log by type and/or emitter."""
        return [
            entry for entry in self.logs
            if (event_type is None or isinstance(entry.event, event_type))
            and (emitter is None or entry.emitter == emitter)
        ]

    # =========================================================================
    # Atomic Calls
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Atomic call scope.

        The outermost scope snapshots all contract state; any exception
        escaping it restores the snapshot and truncates the event log.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = {
                address: contract.snapshot_state()
                for address, contract in self.contracts.items()
            }
            log_mark = len(self.logs)
            self._depth = 1
            try:
                yield
            except BaseException as e:
                for address, contract in self.contracts.items():
                    if address in snapshot:
                        contract.restore_state(snapshot[address])
                del self.logs[log_mark:]
                logger.debug(f"Call reverted: {e}")
                raise
            finally:
                self._depth = 0

    # =========================================================================
    # Utility
    # =========================================================================

    def __repr__(self) -> str:
        return f"Chain(timestamp={self.timestamp}, contracts={len(self.contracts)}, logs={len(self.logs)})"

    def stats(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "contracts": len(self.contracts),
            "events": len(self.logs),
        }
