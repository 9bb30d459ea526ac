"""
Events emitted by the contracts.

Aggregator and executor events carry counts, pair keys and aggregate
amounts only. None of them has a user or per-user amount field.
"""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Event:
    """Base class for all events."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Intent Registry
# =============================================================================


@dataclass(frozen=True)
class IntentCreated(Event):
    owner: bytes


@dataclass(frozen=True)
class IntentUpdated(Event):
    owner: bytes


@dataclass(frozen=True)
class IntentCancelled(Event):
    owner: bytes


# =============================================================================
# Batch Aggregator
# =============================================================================


@dataclass(frozen=True)
class BatchUpdated(Event):
    pair_key: bytes
    count: int


@dataclass(frozen=True)
class BatchConsumed(Event):
    pair_key: bytes
    count: int


@dataclass(frozen=True)
class DecryptionRequested(Event):
    pair_key: bytes
    count: int


# =============================================================================
# Executor / Adapter
# =============================================================================


@dataclass(frozen=True)
class BatchExecuted(Event):
    count: int
    amount_in: int
    amount_out: int
    fee: int


@dataclass(frozen=True)
class SwapAggregateExecuted(Event):
    amount_in: int
    amount_out: int


# =============================================================================
# Tokens
# =============================================================================


@dataclass(frozen=True)
class Transfer(Event):
    sender: bytes
    recipient: bytes
    value: int


@dataclass(frozen=True)
class Approval(Event):
    owner: bytes
    spender: bytes
    value: int
