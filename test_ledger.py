# test_ledger.py - Trust ledger behaviour on the mock coprocessor
import pytest

from fhe_executor import ZERO_HANDLE
from stats_cache import TrustStatistics
from trust_errors import (
    BatchSizeInvalid, CapacityExceeded, EmptyProof, IndexOutOfBounds,
    InvalidAddress, InvalidProof, InvalidRange, RangeOutOfBounds,
)
from trust_ledger import MAX_EVENTS
from wallet import ZERO_ADDRESS


def test_counts_total_and_average(deployment, alice, record, open_handle):
    ledger = deployment.ledger
    scores = [7, 8, 3, 10]
    for k, score in enumerate(scores, 1):
        assert record(deployment, alice, score) == k - 1
        assert ledger.get_event_count(alice.address) == k
        assert ledger.get_history_length(alice.address) == k
        total = open_handle(deployment, ledger.get_total(alice.address))
        assert total == sum(scores[:k])
        assert open_handle(deployment, ledger.get_average(alice.address)) == total // k


def test_fresh_user_defaults(deployment, alice):
    ledger = deployment.ledger
    assert ledger.get_total(alice.address) == ZERO_HANDLE
    assert ledger.get_average(alice.address) == ZERO_HANDLE
    assert ledger.get_event_count(alice.address) == 0
    assert ledger.get_history_length(alice.address) == 0
    assert ledger.get_last_activity(alice.address) == 0


def test_last_activity_follows_block_time(deployment, alice, record, clock):
    record(deployment, alice, 5)
    assert deployment.ledger.get_last_activity(alice.address) == clock.now
    clock.advance(120)
    record(deployment, alice, 6)
    assert deployment.ledger.get_last_activity(alice.address) == clock.now


def test_total_wraps_at_32_bits(deployment, alice, record, open_handle):
    record(deployment, alice, 2 ** 32 - 1)
    record(deployment, alice, 2)
    ledger = deployment.ledger
    assert open_handle(deployment, ledger.get_total(alice.address)) == 1
    assert open_handle(deployment, ledger.get_average(alice.address)) == 0


def test_capacity_limit(deployment, alice, record):
    for _ in range(MAX_EVENTS - 1):
        record(deployment, alice, 5)
    assert record(deployment, alice, 5) == MAX_EVENTS - 1
    with pytest.raises(CapacityExceeded, match="Maximum trust events reached"):
        record(deployment, alice, 5)
    assert deployment.ledger.get_event_count(alice.address) == MAX_EVENTS


def test_get_by_index(deployment, alice, record, open_handle):
    scores = [4, 9, 1]
    for score in scores:
        record(deployment, alice, score)
    ledger = deployment.ledger
    for i, score in enumerate(scores):
        assert open_handle(deployment, ledger.get_by_index(alice.address, i)) == score
    with pytest.raises(IndexOutOfBounds):
        ledger.get_by_index(alice.address, len(scores))
    with pytest.raises(IndexOutOfBounds):
        ledger.get_by_index(alice.address, -1)


def test_get_range(deployment, alice, record):
    for score in [1, 2, 3, 4, 5]:
        record(deployment, alice, score)
    ledger = deployment.ledger
    history = [ledger.get_by_index(alice.address, i) for i in range(5)]

    assert ledger.get_range(alice.address, 1, 4) == history[1:4]
    assert ledger.get_range(alice.address, 0, 5) == history
    with pytest.raises(InvalidRange):
        ledger.get_range(alice.address, 3, 3)
    with pytest.raises(InvalidRange):
        ledger.get_range(alice.address, 4, 2)
    with pytest.raises(RangeOutOfBounds, match="End index out of bounds"):
        ledger.get_range(alice.address, 0, 6)


def test_users_are_independent(deployment, alice, bob, record, open_handle):
    for score in [6, 6, 6]:
        record(deployment, alice, score)
    record(deployment, bob, 6)

    ledger = deployment.ledger
    assert ledger.get_event_count(alice.address) == 3
    assert ledger.get_event_count(bob.address) == 1
    assert open_handle(deployment, ledger.get_total(alice.address)) == 18
    assert open_handle(deployment, ledger.get_total(bob.address)) == 6
    assert ledger.get_total(alice.address) != ledger.get_total(bob.address)
    assert set(ledger.get_range(alice.address, 0, 3)).isdisjoint(ledger.get_range(bob.address, 0, 1))


def test_statistics_live_then_cached(deployment, alice, record, clock):
    ledger = deployment.ledger
    record(deployment, alice, 8)
    # Cache only moves on a live read
    assert ledger.get_cached_statistics(alice.address) == TrustStatistics(0, 0, False)

    live = ledger.get_live_statistics(alice.address)
    assert live == TrustStatistics(1, clock.now, True)
    assert ledger.get_cached_statistics(alice.address) == live

    clock.advance(10)
    record(deployment, alice, 9)
    assert ledger.get_cached_statistics(alice.address) == live
    assert ledger.get_live_statistics(alice.address) == ledger.get_cached_statistics(alice.address)


def test_live_statistics_emit_notification(deployment, alice, record):
    record(deployment, alice, 2)
    deployment.ledger.get_live_statistics(alice.address)
    viewed = deployment.chain.events("StatisticsViewed")
    assert len(viewed) == 1
    assert viewed[0].args == {
        "user": alice.address, "event_count": 1,
        "last_activity": deployment.ledger.get_last_activity(alice.address),
    }


def test_record_notifications(deployment, alice, record):
    record(deployment, alice, 3)
    record(deployment, alice, 4)
    recorded = deployment.chain.events("TrustEventRecorded")
    assert [e.args["event_count"] for e in recorded] == [1, 2]
    queried = deployment.chain.events("ScoreQueried")
    assert [e.args["operation_kind"] for e in queried] == [0, 0]
    assert all(e.contract == deployment.ledger.address for e in recorded + queried)


def test_zero_address(deployment):
    ledger = deployment.ledger
    assert ledger.get_total(ZERO_ADDRESS) == ZERO_HANDLE
    assert ledger.get_event_count(ZERO_ADDRESS) == 0
    assert ledger.get_cached_statistics(ZERO_ADDRESS) == TrustStatistics(0, 0, False)
    with pytest.raises(InvalidAddress, match="Invalid user address"):
        ledger.get_by_index(ZERO_ADDRESS, 0)
    with pytest.raises(InvalidAddress):
        ledger.get_range(ZERO_ADDRESS, 0, 1)
    with pytest.raises(InvalidAddress):
        ledger.get_live_statistics(ZERO_ADDRESS)
    with pytest.raises(InvalidAddress):
        ledger.record_event(ZERO_ADDRESS, ZERO_HANDLE, b"\x01")


def test_malformed_address(deployment):
    with pytest.raises(InvalidAddress):
        deployment.ledger.get_total("not-an-address")


def test_produced_handles_granted(deployment, alice, bob, record):
    record(deployment, alice, 7)
    ledger, acl = deployment.ledger, deployment.acl
    handles = [
        ledger.get_by_index(alice.address, 0),
        ledger.get_total(alice.address),
        ledger.get_average(alice.address),
    ]
    for handle in handles:
        assert acl.may_decrypt(handle, alice.address)
        assert acl.may_decrypt(handle, ledger.address)
        assert not acl.may_decrypt(handle, bob.address)


def test_empty_proof(deployment, alice, encrypt_scores):
    encrypted = encrypt_scores(deployment, alice, 5)
    with pytest.raises(EmptyProof):
        deployment.ledger.record_event(alice.address, encrypted.handles[0], b"")


def test_failed_record_leaves_no_trace(deployment, alice, bob, encrypt_scores):
    encrypted = encrypt_scores(deployment, alice, 5)
    arena_size = len(deployment.executor)
    # Proof was issued for alice, bob submits it
    with pytest.raises(InvalidProof):
        deployment.ledger.record_event(bob.address, encrypted.handles[0], encrypted.input_proof)
    assert deployment.ledger.get_event_count(bob.address) == 0
    assert deployment.ledger.get_total(bob.address) == ZERO_HANDLE
    assert deployment.chain.events() == []
    assert len(deployment.executor) == arena_size
    assert len(deployment.acl) == 0


def test_input_is_single_use(deployment, alice, encrypt_scores):
    encrypted = encrypt_scores(deployment, alice, 5)
    ledger = deployment.ledger
    ledger.record_event(alice.address, encrypted.handles[0], encrypted.input_proof)
    with pytest.raises(InvalidProof, match="already used"):
        ledger.record_event(alice.address, encrypted.handles[0], encrypted.input_proof)
    assert ledger.get_event_count(alice.address) == 1


def _batch(deployment, wallet, encrypt_scores, scores):
    encrypted = [encrypt_scores(deployment, wallet, s) for s in scores]
    return [e.handles[0] for e in encrypted], [e.input_proof for e in encrypted]


def test_validate_batch(deployment, alice, encrypt_scores):
    handles, proofs = _batch(deployment, alice, encrypt_scores, [1, 5, 10])
    assert deployment.ledger.validate_batch(alice.address, handles, proofs) == [True, True, True]

    handles, proofs = _batch(deployment, alice, encrypt_scores, [3, 0, 9, 11])
    assert deployment.ledger.validate_batch(alice.address, handles, proofs) == [True, False, True, False]


def test_validate_batch_does_not_touch_history(deployment, alice, encrypt_scores):
    handles, proofs = _batch(deployment, alice, encrypt_scores, [4])
    deployment.ledger.validate_batch(alice.address, handles, proofs)
    assert deployment.ledger.get_event_count(alice.address) == 0


@pytest.mark.parametrize("size, message", [
    (0, "Batch size must be 1-10"),
    (11, "Batch size must be 1-10"),
    (50, "Batch size must be 1-10"),
    (51, "Maximum batch size exceeded for gas limits"),
])
def test_validate_batch_sizes(deployment, alice, size, message):
    handles = [bytes([i % 256]) * 32 for i in range(size)]
    proofs = [b"\x01"] * size
    with pytest.raises(BatchSizeInvalid, match=message):
        deployment.ledger.validate_batch(alice.address, handles, proofs)


def test_validate_batch_length_mismatch(deployment, alice, encrypt_scores):
    handles, proofs = _batch(deployment, alice, encrypt_scores, [2, 3])
    with pytest.raises(BatchSizeInvalid, match="Array length mismatch"):
        deployment.ledger.validate_batch(alice.address, handles, proofs[:1])


def test_validate_batch_checks_every_proof_first(deployment, alice, bob, encrypt_scores):
    good = encrypt_scores(deployment, alice, 4)
    stolen = encrypt_scores(deployment, bob, 4)
    arena_size = len(deployment.executor)
    with pytest.raises(InvalidProof):
        deployment.ledger.validate_batch(
            alice.address,
            [good.handles[0], stolen.handles[0]],
            [good.input_proof, stolen.input_proof],
        )
    assert len(deployment.executor) == arena_size
    assert deployment.executor.is_pending(good.handles[0])


def test_validate_batch_rejects_repeated_input(deployment, alice, encrypt_scores):
    encrypted = encrypt_scores(deployment, alice, 4)
    with pytest.raises(InvalidProof, match="twice"):
        deployment.ledger.validate_batch(
            alice.address, encrypted.handles * 2, [encrypted.input_proof] * 2
        )
    assert deployment.executor.is_pending(encrypted.handles[0])
