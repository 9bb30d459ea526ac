"""
Batch Aggregator - per-pair batching state machine.

State Machine (per pair key):
----------------------------
    EMPTY --enqueue--> OPEN --enqueue...--> OPEN[ready] --consume--> EMPTY
                                                 |                 ^
                                          request_decryption       |
                                                 v                 |
                                              RELEASED ---consume--+

- enqueue: an active intent holder adds an encrypted per-buy amount.
  The first enqueue into an empty batch stamps `opened_at`.
- ready_to_execute: (count >= k_min, now - opened_at >= time_window).
  Either trigger alone makes the batch executable; an empty batch is
  never ready.
- consume_open_batch: the executor takes a snapshot (sum handle, count)
  and resets the batch in the same atomic call. Readiness is the
  caller's responsibility.
- request_decryption: releases the running sum of a ready batch for
  public decryption and freezes the batch. A released batch rejects
  enqueues until it is consumed, so exactly one sum is ever released
  per batch and the released sum is the one that gets settled.

Privacy:
-------
Contributions are summed homomorphically. Neither the running sum nor
any individual amount is ever returned by enqueue, emitted or logged;
events carry (pair_key, count) only.

Pair Keys:
---------
pair_key = keccak256(abi.encode(token_in, token_out)) in the order
supplied, so A->B and B->A are distinct batches.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Set, Tuple

from fhedca.core.chain import (
    AlreadyInBatch,
    BatchFrozen,
    Contract,
    IntentInactive,
    InvalidProof,
    NoOpenBatch,
    NotReady,
    Unauthorized,
    atomic,
)
from fhedca.core.config import AggregatorConfig
from fhedca.core.events import BatchConsumed, BatchUpdated, DecryptionRequested
from fhedca.core.intent.intent import CONTRIBUTION_TYPE
from fhedca.core.intent.registry import IntentRegistry
from fhedca.crypto import keccak256, short_hex
from fhedca.crypto.fhe import EncryptedField, FheBackend
from fhedca.utils.logger import get_logger
from fhedca.utils.validation import validate_handle, validate_proof

logger = get_logger("aggregator")


def pair_key(token_in: bytes, token_out: bytes) -> bytes:
    """
    Deterministic key of an ordered token pair.

    Each address is left-padded to a 32-byte word, as abi.encode does.
    """
    return keccak256(token_in.rjust(32, b"\x00") + token_out.rjust(32, b"\x00"))


@dataclass
class Batch:
    """
    Open batch for one pair key.

    Attributes:
        sum_handle: Handle of the encrypted running sum (None when empty)
        count: Number of contributors
        opened_at: Timestamp of the first enqueue (None when empty)
        included: Addresses enrolled in this batch
        released: Sum released for public decryption (batch frozen)
    """
    sum_handle: Optional[bytes] = None
    count: int = 0
    opened_at: Optional[int] = None
    included: Set[bytes] = field(default_factory=set)
    released: bool = False

    @property
    def is_open(self) -> bool:
        return self.count > 0

    def __repr__(self) -> str:
        return f"Batch(count={self.count}, opened_at={self.opened_at}, released={self.released})"


class BatchAggregator(Contract):
    """
    Aggregates encrypted per-buy contributions per trading pair.
    """

    _state_fields = ("batches", "consumers")

    def __init__(
        self,
        chain,
        deployer: bytes,
        registry: IntentRegistry,
        fhe: FheBackend,
        config: Optional[AggregatorConfig] = None,
    ):
        """
        Args:
            chain: Host chain
            deployer: Deployer (owner) address, always allowed to consume
            registry: Intent registry queried for activity only
            fhe: Encryption backend for proofs and homomorphic sums
            config: k_min / time window
        """
        super().__init__(chain, deployer)
        self.registry = registry
        self.fhe = fhe
        self.config = config or AggregatorConfig()

        # Pair key -> Batch
        self.batches: Dict[bytes, Batch] = {}

        # Addresses allowed to consume batches besides the owner
        self.consumers: Set[bytes] = set()

        logger.info(
            f"BatchAggregator deployed at {short_hex(self.address)} "
            f"(k_min={self.config.k_min}, window={self.config.time_window_secs}s)"
        )

    @property
    def k_min(self) -> int:
        return self.config.k_min

    @property
    def time_window_secs(self) -> int:
        return self.config.time_window_secs

    @staticmethod
    def pair_key(token_in: bytes, token_out: bytes) -> bytes:
        return pair_key(token_in, token_out)

    # =========================================================================
    # Access Control
    # =========================================================================

    @atomic
    def authorize_consumer(self, sender: bytes, consumer: bytes) -> None:
        """Allow `consumer` (an executor) to consume batches. Owner only."""
        if sender != self.deployer:
            raise Unauthorized()
        self.consumers.add(consumer)
        logger.info(f"Authorized consumer {short_hex(consumer)}")

    def _require_consumer(self, sender: bytes) -> None:
        if sender != self.deployer and sender not in self.consumers:
            raise Unauthorized()

    # =========================================================================
    # Enqueue
    # =========================================================================

    @atomic
    def enqueue(
        self,
        sender: bytes,
        token_in: bytes,
        token_out: bytes,
        contribution: EncryptedField,
    ) -> None:
        """
        Add the sender's encrypted per-buy amount to the pair's batch.

        Returns nothing: the contribution and the running sum stay opaque.

        Raises:
            IntentInactive: Sender has no active intent
            AlreadyInBatch: Sender already enrolled in the open batch
            BatchFrozen: The batch sum was already released
            InvalidProof: Contribution proof does not verify
        """
        if not self.registry.get_intent_active(sender):
            raise IntentInactive()

        key = pair_key(token_in, token_out)
        batch = self.batches.get(key)
        if batch is not None and sender in batch.included:
            raise AlreadyInBatch()
        if batch is not None and batch.released:
            raise BatchFrozen()

        valid, err = validate_handle(contribution.handle, "contribution.handle")
        if valid:
            valid, err = validate_proof(contribution.proof, "contribution.proof")
        if not valid:
            raise InvalidProof(f"invalid proof: {err}")
        if not self.fhe.verify_input(contribution, self.address, sender, CONTRIBUTION_TYPE):
            raise InvalidProof()

        if batch is None:
            batch = Batch()
            self.batches[key] = batch

        if not batch.is_open:
            batch.opened_at = self.now
            batch.sum_handle = contribution.handle
        else:
            batch.sum_handle = self.fhe.add(batch.sum_handle, contribution.handle)

        batch.count += 1
        batch.included.add(sender)

        self.emit(BatchUpdated(pair_key=key, count=batch.count))
        logger.info(f"Batch {short_hex(key)} updated: count={batch.count}")

    # =========================================================================
    # Readiness
    # =========================================================================

    def ready_to_execute(self, token_in: bytes, token_out: bytes) -> Tuple[bool, bool]:
        """
        Readiness triggers for the pair's open batch.

        Returns:
            (ready_by_count, ready_by_time)
        """
        batch = self.batches.get(pair_key(token_in, token_out))
        if batch is None or not batch.is_open:
            return False, False

        ready_by_count = batch.count >= self.config.k_min
        ready_by_time = (self.now - batch.opened_at) >= self.config.time_window_secs
        return ready_by_count, ready_by_time

    # =========================================================================
    # Consume
    # =========================================================================

    @atomic
    def consume_open_batch(
        self,
        sender: bytes,
        token_in: bytes,
        token_out: bytes,
    ) -> Tuple[bytes, int]:
        """
        Snapshot and reset the pair's open batch.

        Does not check readiness; the executor gates on it.

        Returns:
            (sum_handle, count) as of this call

        Raises:
            Unauthorized: Sender is neither the owner nor an authorized consumer
            NoOpenBatch: The batch is empty
        """
        self._require_consumer(sender)

        key = pair_key(token_in, token_out)
        batch = self.batches.get(key)
        if batch is None or not batch.is_open:
            raise NoOpenBatch()

        sum_handle, count = batch.sum_handle, batch.count
        self.batches[key] = Batch()

        self.emit(BatchConsumed(pair_key=key, count=count))
        logger.info(f"Batch {short_hex(key)} consumed: count={count}")
        return sum_handle, count

    # =========================================================================
    # Decryption Gate
    # =========================================================================

    @atomic
    def request_decryption(self, sender: bytes, token_in: bytes, token_out: bytes) -> bytes:
        """
        Release the aggregate sum of a ready batch for public decryption.

        Only an authorized consumer may ask, and only once the batch is
        ready. The first release freezes the batch; asking again before
        consume returns the same handle and releases nothing new.

        Returns:
            The sum handle now publicly decryptable

        Raises:
            Unauthorized: Sender not allowed to consume
            NotReady: Neither readiness trigger holds
        """
        self._require_consumer(sender)

        by_count, by_time = self.ready_to_execute(token_in, token_out)
        if not (by_count or by_time):
            raise NotReady()

        key = pair_key(token_in, token_out)
        batch = self.batches[key]
        if batch.released:
            return batch.sum_handle

        self.fhe.allow_public_decryption(batch.sum_handle)
        batch.released = True

        self.emit(DecryptionRequested(pair_key=key, count=batch.count))
        logger.info(f"Batch {short_hex(key)} sum released for decryption: count={batch.count}")
        return batch.sum_handle

    # =========================================================================
    # Reads
    # =========================================================================

    def batch_count(self, token_in: bytes, token_out: bytes) -> int:
        batch = self.batches.get(pair_key(token_in, token_out))
        return batch.count if batch else 0

    def opened_at(self, token_in: bytes, token_out: bytes) -> Optional[int]:
        batch = self.batches.get(pair_key(token_in, token_out))
        return batch.opened_at if batch else None

    def is_included(self, token_in: bytes, token_out: bytes, user: bytes) -> bool:
        batch = self.batches.get(pair_key(token_in, token_out))
        return batch is not None and user in batch.included

    def is_released(self, token_in: bytes, token_out: bytes) -> bool:
        batch = self.batches.get(pair_key(token_in, token_out))
        return batch is not None and batch.released

    def open_batch_handle(self, token_in: bytes, token_out: bytes) -> Optional[bytes]:
        """Opaque handle of the running sum (None when empty)."""
        batch = self.batches.get(pair_key(token_in, token_out))
        return batch.sum_handle if batch else None

    def stats(self) -> dict:
        open_batches = [b for b in self.batches.values() if b.is_open]
        return {
            "open_batches": len(open_batches),
            "pending_contributors": sum(b.count for b in open_batches),
            "released_batches": sum(1 for b in open_batches if b.released),
            "k_min": self.config.k_min,
            "time_window_secs": self.config.time_window_secs,
        }
