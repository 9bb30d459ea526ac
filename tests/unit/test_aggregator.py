"""
Tests for the per-pair batch aggregator.

Tests cover:
1. Enqueue preconditions (active intent, double enrollment, proofs)
2. Readiness by count and by time
3. Consume semantics and authorization
4. Pair key ordering
5. Decryption gate
6. Privacy of events and logs
"""

import logging

import pytest

from fhedca.core.batch import BatchAggregator, pair_key
from fhedca.core.chain import (
    AlreadyInBatch,
    BatchFrozen,
    Chain,
    IntentInactive,
    InvalidProof,
    NoOpenBatch,
    NotReady,
    Unauthorized,
)
from fhedca.core.config import AggregatorConfig
from fhedca.core.events import BatchConsumed, BatchUpdated, DecryptionRequested
from fhedca.core.intent import DcaParams, IntentRegistry, encrypt_contribution, encrypt_intent
from fhedca.crypto import keccak256, random_address
from fhedca.crypto.fhe import FheType, MockFheBackend

START = 1_700_000_000


@pytest.fixture
def chain():
    return Chain(start_time=START)


@pytest.fixture
def fhe():
    return MockFheBackend()


@pytest.fixture
def owner():
    return random_address()


@pytest.fixture
def registry(chain, fhe, owner):
    return IntentRegistry(chain, owner, fhe)


@pytest.fixture
def aggregator(chain, fhe, owner, registry):
    return BatchAggregator(chain, owner, registry, fhe, AggregatorConfig(k_min=3, time_window_secs=60))


@pytest.fixture
def pair():
    return random_address(), random_address()


def register(fhe, registry, user, per_buy=100):
    params = DcaParams(budget=per_buy * 10, per_buy=per_buy, frequency=3600, start=START, end=START + 86_400)
    registry.create_or_update_intent(user, encrypt_intent(fhe, params, registry.address, user))


def join(fhe, registry, aggregator, pair, per_buy=100, user=None):
    """Register an intent for a (new) user and enqueue its contribution."""
    user = user or random_address()
    if not registry.get_intent_active(user):
        register(fhe, registry, user, per_buy)
    contribution = encrypt_contribution(fhe, per_buy, aggregator.address, user)
    aggregator.enqueue(user, pair[0], pair[1], contribution)
    return user


class TestPairKey:
    def test_abi_encoding(self):
        a, b = b"\x11" * 20, b"\x22" * 20
        assert pair_key(a, b) == keccak256(b"\x00" * 12 + a + b"\x00" * 12 + b)

    def test_order_matters(self, pair):
        assert pair_key(*pair) != pair_key(pair[1], pair[0])

    def test_reverse_pair_is_separate_batch(self, fhe, registry, aggregator, pair):
        join(fhe, registry, aggregator, pair)
        assert aggregator.batch_count(*pair) == 1
        assert aggregator.batch_count(pair[1], pair[0]) == 0


class TestEnqueue:
    """Tests for enqueue preconditions and effects."""

    def test_first_enqueue_opens_batch(self, chain, fhe, registry, aggregator, pair):
        chain.advance_time(5)
        join(fhe, registry, aggregator, pair)

        assert aggregator.batch_count(*pair) == 1
        assert aggregator.opened_at(*pair) == START + 5
        assert aggregator.open_batch_handle(*pair) is not None

    def test_later_enqueue_keeps_opened_at(self, chain, fhe, registry, aggregator, pair):
        join(fhe, registry, aggregator, pair)
        chain.advance_time(30)
        join(fhe, registry, aggregator, pair)

        assert aggregator.opened_at(*pair) == START

    def test_count_equals_distinct_users(self, fhe, registry, aggregator, pair):
        users = {join(fhe, registry, aggregator, pair) for _ in range(4)}

        assert aggregator.batch_count(*pair) == len(users)
        assert all(aggregator.is_included(*pair, u) for u in users)

    def test_double_enrollment_rejected(self, chain, fhe, registry, aggregator, pair):
        user = join(fhe, registry, aggregator, pair)
        events_before = len(chain.logs)

        with pytest.raises(AlreadyInBatch) as exc:
            join(fhe, registry, aggregator, pair, user=user)

        assert exc.value.reason == "already in batch"
        assert aggregator.batch_count(*pair) == 1
        assert len(chain.logs) == events_before

    def test_inactive_intent_rejected(self, fhe, aggregator, pair):
        user = random_address()
        contribution = encrypt_contribution(fhe, 100, aggregator.address, user)

        with pytest.raises(IntentInactive) as exc:
            aggregator.enqueue(user, pair[0], pair[1], contribution)

        assert exc.value.reason == "intent inactive"
        assert aggregator.batch_count(*pair) == 0

    def test_cancelled_intent_rejected(self, fhe, registry, aggregator, pair):
        user = random_address()
        register(fhe, registry, user)
        registry.cancel_intent(user)
        contribution = encrypt_contribution(fhe, 100, aggregator.address, user)

        with pytest.raises(IntentInactive):
            aggregator.enqueue(user, pair[0], pair[1], contribution)

    def test_contribution_bound_to_registry_rejected(self, fhe, registry, aggregator, pair):
        user = random_address()
        register(fhe, registry, user)
        contribution = encrypt_contribution(fhe, 100, registry.address, user)

        with pytest.raises(InvalidProof):
            aggregator.enqueue(user, pair[0], pair[1], contribution)

    def test_contribution_wrong_type_rejected(self, fhe, registry, aggregator, pair):
        user = random_address()
        register(fhe, registry, user)
        contribution = fhe.encrypt(100, FheType.EUINT128, aggregator.address, user)

        with pytest.raises(InvalidProof):
            aggregator.enqueue(user, pair[0], pair[1], contribution)

    def test_enqueue_returns_nothing(self, fhe, registry, aggregator, pair):
        user = random_address()
        register(fhe, registry, user)
        contribution = encrypt_contribution(fhe, 100, aggregator.address, user)
        assert aggregator.enqueue(user, pair[0], pair[1], contribution) is None

    def test_emits_batch_updated(self, chain, fhe, registry, aggregator, pair):
        join(fhe, registry, aggregator, pair)
        join(fhe, registry, aggregator, pair)

        events = [e.event for e in chain.events(BatchUpdated)]
        assert [e.count for e in events] == [1, 2]
        assert all(e.pair_key == pair_key(*pair) for e in events)

    def test_sum_is_homomorphic(self, fhe, registry, aggregator, pair):
        for amount in (100, 250, 650):
            join(fhe, registry, aggregator, pair, per_buy=amount)

        handle = aggregator.open_batch_handle(*pair)
        fhe.allow_public_decryption(handle)
        assert fhe.public_decrypt(handle) == 1000


class TestReadiness:
    """Tests for ready_to_execute."""

    def test_empty_batch_not_ready(self, chain, aggregator, pair):
        chain.advance_time(10_000)
        assert aggregator.ready_to_execute(*pair) == (False, False)

    def test_k_min_flips_on_third(self, fhe, registry, aggregator, pair):
        join(fhe, registry, aggregator, pair)
        join(fhe, registry, aggregator, pair)
        assert aggregator.ready_to_execute(*pair) == (False, False)

        join(fhe, registry, aggregator, pair)
        assert aggregator.ready_to_execute(*pair) == (True, False)

    def test_time_window(self, chain, fhe, registry, aggregator, pair):
        join(fhe, registry, aggregator, pair)
        join(fhe, registry, aggregator, pair)

        chain.advance_time(59)
        assert aggregator.ready_to_execute(*pair) == (False, False)

        chain.advance_time(2)
        assert aggregator.ready_to_execute(*pair) == (False, True)

    def test_window_boundary_inclusive(self, chain, fhe, registry, aggregator, pair):
        join(fhe, registry, aggregator, pair)
        chain.advance_time(60)
        assert aggregator.ready_to_execute(*pair)[1] is True

    def test_both_triggers(self, chain, fhe, registry, aggregator, pair):
        for _ in range(3):
            join(fhe, registry, aggregator, pair)
        chain.advance_time(61)
        assert aggregator.ready_to_execute(*pair) == (True, True)


class TestConsume:
    """Tests for consume_open_batch."""

    def test_consume_returns_snapshot_and_resets(self, chain, fhe, registry, aggregator, owner, pair):
        users = [join(fhe, registry, aggregator, pair) for _ in range(3)]
        handle = aggregator.open_batch_handle(*pair)

        sum_handle, count = aggregator.consume_open_batch(owner, *pair)

        assert (sum_handle, count) == (handle, 3)
        assert aggregator.batch_count(*pair) == 0
        assert aggregator.ready_to_execute(*pair) == (False, False)
        assert not any(aggregator.is_included(*pair, u) for u in users)
        assert chain.events(BatchConsumed)[-1].event.count == 3

    def test_users_can_rejoin_after_consume(self, chain, fhe, registry, aggregator, owner, pair):
        user = join(fhe, registry, aggregator, pair)
        aggregator.consume_open_batch(owner, *pair)
        chain.advance_time(10)

        join(fhe, registry, aggregator, pair, user=user)

        assert aggregator.batch_count(*pair) == 1
        assert aggregator.opened_at(*pair) == START + 10

    def test_consume_empty_fails(self, aggregator, owner, pair):
        with pytest.raises(NoOpenBatch) as exc:
            aggregator.consume_open_batch(owner, *pair)
        assert exc.value.reason == "no open batch"

    def test_consume_twice_fails(self, fhe, registry, aggregator, owner, pair):
        join(fhe, registry, aggregator, pair)
        aggregator.consume_open_batch(owner, *pair)
        with pytest.raises(NoOpenBatch):
            aggregator.consume_open_batch(owner, *pair)

    def test_consume_does_not_check_readiness(self, fhe, registry, aggregator, owner, pair):
        join(fhe, registry, aggregator, pair)
        assert aggregator.ready_to_execute(*pair) == (False, False)
        _, count = aggregator.consume_open_batch(owner, *pair)
        assert count == 1

    def test_unauthorized_consume(self, fhe, registry, aggregator, pair):
        join(fhe, registry, aggregator, pair)
        with pytest.raises(Unauthorized):
            aggregator.consume_open_batch(random_address(), *pair)
        assert aggregator.batch_count(*pair) == 1

    def test_authorized_consumer(self, fhe, registry, aggregator, owner, pair):
        executor = random_address()
        aggregator.authorize_consumer(owner, executor)
        join(fhe, registry, aggregator, pair)
        _, count = aggregator.consume_open_batch(executor, *pair)
        assert count == 1

    def test_only_owner_authorizes(self, aggregator):
        with pytest.raises(Unauthorized):
            aggregator.authorize_consumer(random_address(), random_address())


class TestDecryptionGate:
    """Tests for request_decryption."""

    def test_not_ready_rejected(self, fhe, registry, aggregator, owner, pair):
        join(fhe, registry, aggregator, pair)
        with pytest.raises(NotReady):
            aggregator.request_decryption(owner, *pair)
        assert not fhe.is_publicly_decryptable(aggregator.open_batch_handle(*pair))

    def test_ready_releases_sum(self, chain, fhe, registry, aggregator, owner, pair):
        for amount in (10, 20, 30):
            join(fhe, registry, aggregator, pair, per_buy=amount)

        handle = aggregator.request_decryption(owner, *pair)

        assert fhe.public_decrypt(handle) == 60
        event = chain.events(DecryptionRequested)[-1].event
        assert event.count == 3

    def test_unauthorized_rejected(self, fhe, registry, aggregator, pair):
        for _ in range(3):
            join(fhe, registry, aggregator, pair)
        with pytest.raises(Unauthorized):
            aggregator.request_decryption(random_address(), *pair)

    def test_enqueue_after_release_rejected(self, chain, fhe, registry, aggregator, owner, pair):
        for _ in range(3):
            join(fhe, registry, aggregator, pair, per_buy=100)
        handle = aggregator.request_decryption(owner, *pair)
        assert aggregator.is_released(*pair)

        with pytest.raises(BatchFrozen):
            join(fhe, registry, aggregator, pair, per_buy=4242)

        assert aggregator.batch_count(*pair) == 3
        assert aggregator.open_batch_handle(*pair) == handle
        assert len(chain.events(BatchUpdated)) == 3

    def test_second_release_returns_same_sum(self, chain, fhe, registry, aggregator, owner, pair):
        for _ in range(3):
            join(fhe, registry, aggregator, pair, per_buy=100)
        first = aggregator.request_decryption(owner, *pair)

        # A late contributor cannot land between two releases
        with pytest.raises(BatchFrozen):
            join(fhe, registry, aggregator, pair, per_buy=4242)
        second = aggregator.request_decryption(owner, *pair)

        assert second == first
        assert fhe.public_decrypt(second) - fhe.public_decrypt(first) == 0
        assert len(chain.events(DecryptionRequested)) == 1

    def test_consume_reopens_for_enqueue(self, fhe, registry, aggregator, owner, pair):
        for _ in range(3):
            join(fhe, registry, aggregator, pair)
        aggregator.request_decryption(owner, *pair)
        aggregator.consume_open_batch(owner, *pair)

        assert not aggregator.is_released(*pair)
        join(fhe, registry, aggregator, pair)
        assert aggregator.batch_count(*pair) == 1
        assert not fhe.is_publicly_decryptable(aggregator.open_batch_handle(*pair))

    def test_frozen_enqueue_keeps_user_free_for_next_batch(self, fhe, registry, aggregator, owner, pair):
        for _ in range(3):
            join(fhe, registry, aggregator, pair)
        aggregator.request_decryption(owner, *pair)

        late = random_address()
        with pytest.raises(BatchFrozen):
            join(fhe, registry, aggregator, pair, user=late)
        assert not aggregator.is_included(*pair, late)

        aggregator.consume_open_batch(owner, *pair)
        join(fhe, registry, aggregator, pair, user=late)
        assert aggregator.is_included(*pair, late)


class TestPrivacy:
    """No aggregator event or log line carries a user address or amount."""

    def test_events_carry_no_user_data(self, chain, fhe, registry, aggregator, owner, pair):
        amounts = [123_456_789, 234_567_891, 345_678_912]
        users = [join(fhe, registry, aggregator, pair, per_buy=a) for a in amounts]
        aggregator.request_decryption(owner, *pair)
        aggregator.consume_open_batch(owner, *pair)

        for entry in chain.events(emitter=aggregator.address):
            for value in entry.event.to_dict().values():
                assert value not in users
                assert value not in amounts

    def test_logs_carry_no_user_data(self, caplog, fhe, registry, aggregator, owner, pair):
        caplog.set_level(logging.DEBUG, logger="fhedca")
        amounts = [123_456_789, 234_567_891, 345_678_912]
        users = [join(fhe, registry, aggregator, pair, per_buy=a) for a in amounts]
        aggregator.consume_open_batch(owner, *pair)

        messages = [r.getMessage() for r in caplog.records if r.name == "fhedca.aggregator"]
        assert messages
        for message in messages:
            for amount in amounts:
                assert str(amount) not in message
            for user in users:
                assert user.hex()[:8] not in message

    def test_stats(self, fhe, registry, aggregator, pair):
        join(fhe, registry, aggregator, pair)
        stats = aggregator.stats()
        assert stats["open_batches"] == 1
        assert stats["pending_contributors"] == 1
        assert stats["k_min"] == 3
