# tests/test_submission.py
import threading
from datetime import date, datetime, timedelta, timezone

import pytest

from habitrun.challenge_core import ChallengePolicy
from habitrun.errors import (
    InvalidInput,
    InvalidSubmissionState,
    NotFoundError,
    OracleFailure,
    PersistenceFailure,
    SubmissionInProgress,
    ValidationRejected,
)
from habitrun.submission import SubmissionRegistry, SubmissionSession, SubmissionState
from habitrun.verification import VerificationReason
from habitrun.vision import failed_extraction


@pytest.fixture
def user(memory_store):
    return memory_store.create_user("Alice")


@pytest.fixture
def session(memory_store, vision, memory_blobs, clock, user):
    return SubmissionSession(
        memory_store, vision, memory_blobs, ChallengePolicy(), clock, user_id=user.id
    )


def test_happy_path_persists_one_record(session, memory_store, memory_blobs, vision, jpeg_bytes):
    vision.answer(3.27, 25)

    session.select_image(jpeg_bytes, "run.jpg")
    assert session.state == SubmissionState.IMAGE_SELECTED

    v = session.analyze()
    assert v.accepted
    assert session.state == SubmissionState.ACCEPTED

    record = session.confirm()
    assert session.state == SubmissionState.PERSISTED
    assert memory_store.records == [record]
    assert record.distance_km == 3.2
    assert record.record_date == date(2026, 10, 15)
    assert record.image_url in {f"/uploads/{k}" for k in memory_blobs.blobs}
    assert record.pace_min_per_km == pytest.approx(7.81)


def test_record_date_is_the_local_challenge_day(session, memory_store, clock, vision, jpeg_bytes):
    # 23:30 UTC on the 15th is already the 16th in Seoul
    clock.set(datetime(2026, 10, 15, 23, 30, tzinfo=timezone.utc))
    session.select_image(jpeg_bytes)
    session.analyze()
    record = session.confirm()
    assert record.record_date == date(2026, 10, 16)


def test_rejected_attempt_cannot_be_confirmed(session, memory_store, vision, jpeg_bytes):
    vision.answer(0.8, 10)
    session.select_image(jpeg_bytes)

    v = session.analyze()
    assert not v.accepted
    assert v.reason == VerificationReason.BELOW_MIN_UPLOAD
    assert session.state == SubmissionState.REJECTED

    with pytest.raises(ValidationRejected) as exc:
        session.confirm()
    assert exc.value.payload["verification"]["reason"] == "below_min_upload"
    assert memory_store.records == []


def test_retry_after_rejection_with_fresh_image(session, memory_store, vision, jpeg_bytes):
    vision.answer(2.0, 41)
    session.select_image(jpeg_bytes)
    assert session.analyze().reason == VerificationReason.PACE_TOO_SLOW

    session.select_image(jpeg_bytes + b"\x00", "second.jpg")
    assert session.state == SubmissionState.IMAGE_SELECTED
    assert session.verification is None

    vision.answer(2.0, 40)
    assert session.analyze().accepted
    session.confirm()
    assert len(memory_store.records) == 1


def test_oracle_exception_keeps_selection(session, vision, jpeg_bytes, user):
    vision.error = RuntimeError("timeout")
    session.select_image(jpeg_bytes, "run.jpg")

    with pytest.raises(OracleFailure):
        session.analyze()

    assert session.state == SubmissionState.IMAGE_SELECTED
    assert session.user_id == user.id
    assert session.image_bytes == jpeg_bytes

    vision.error = None
    assert session.analyze().accepted
    assert vision.calls == 2


def test_zeroed_oracle_answer_is_an_analysis_failure(session, vision, jpeg_bytes):
    vision.result = failed_extraction()
    session.select_image(jpeg_bytes)

    with pytest.raises(OracleFailure) as exc:
        session.analyze()
    assert exc.value.payload["reasoning"]
    assert session.state == SubmissionState.IMAGE_SELECTED


def test_analyze_needs_user_and_image(memory_store, vision, memory_blobs, clock, jpeg_bytes):
    s = SubmissionSession(memory_store, vision, memory_blobs, ChallengePolicy(), clock)
    s.select_image(jpeg_bytes)
    with pytest.raises(InvalidInput):
        s.analyze()

    s2 = SubmissionSession(memory_store, vision, memory_blobs, ChallengePolicy(), clock, user_id="x")
    with pytest.raises(InvalidSubmissionState):
        s2.analyze()
    assert vision.calls == 0


def test_confirm_before_analysis_is_refused(session, jpeg_bytes):
    session.select_image(jpeg_bytes)
    with pytest.raises(InvalidSubmissionState):
        session.confirm()


def test_no_second_analysis_while_one_is_in_flight(session, vision, jpeg_bytes):
    vision.gate = threading.Event()
    session.select_image(jpeg_bytes)

    results = []
    worker = threading.Thread(target=lambda: results.append(session.analyze()))
    worker.start()
    assert vision.entered.wait(timeout=5)

    with pytest.raises(SubmissionInProgress):
        session.analyze()
    with pytest.raises(SubmissionInProgress):
        session.select_image(jpeg_bytes)
    with pytest.raises(SubmissionInProgress):
        session.confirm()

    vision.gate.set()
    worker.join(timeout=5)
    assert results and results[0].accepted
    assert vision.calls == 1


def test_persistence_failure_keeps_accepted_state(session, memory_store, memory_blobs, jpeg_bytes):
    session.select_image(jpeg_bytes)
    session.analyze()
    memory_store.fail_appends = True

    with pytest.raises(PersistenceFailure):
        session.confirm()
    assert session.state == SubmissionState.ACCEPTED
    assert memory_store.records == []
    # the stored image is removed again, so retries don't leave copies behind
    assert memory_blobs.blobs == {}

    memory_store.fail_appends = False
    session.confirm()
    assert len(memory_store.records) == 1
    assert len(memory_blobs.blobs) == 1
    assert memory_store.records[0].image_url == "/uploads/" + next(iter(memory_blobs.blobs))


def test_blob_store_error_becomes_persistence_failure(session, memory_blobs, memory_store, jpeg_bytes):
    memory_blobs.error = OSError("read-only file system")
    session.select_image(jpeg_bytes)
    session.analyze()

    with pytest.raises(PersistenceFailure):
        session.confirm()
    assert session.state == SubmissionState.ACCEPTED
    assert memory_store.records == []


def test_unknown_user_is_surfaced(memory_store, vision, memory_blobs, clock, jpeg_bytes):
    s = SubmissionSession(memory_store, vision, memory_blobs, ChallengePolicy(), clock, user_id="ghost")
    s.select_image(jpeg_bytes)
    s.analyze()

    with pytest.raises(NotFoundError):
        s.confirm()
    assert s.state == SubmissionState.ACCEPTED
    assert memory_store.records == []
    assert memory_blobs.blobs == {}


def test_persisted_session_is_final(session, jpeg_bytes):
    session.select_image(jpeg_bytes)
    session.analyze()
    session.confirm()

    with pytest.raises(InvalidSubmissionState):
        session.select_image(jpeg_bytes)
    with pytest.raises(InvalidSubmissionState):
        session.confirm()


def test_to_dict_reports_progress(session, jpeg_bytes):
    assert session.to_dict()["state"] == "idle"
    session.select_image(jpeg_bytes, "run.jpg")
    session.analyze()
    d = session.to_dict()
    assert d["state"] == "accepted"
    assert d["has_image"] and d["filename"] == "run.jpg"
    assert d["verification"]["accepted"] is True


@pytest.fixture
def registry(memory_store, vision, memory_blobs, clock):
    def factory(user_id):
        return SubmissionSession(
            memory_store, vision, memory_blobs, ChallengePolicy(), clock, user_id=user_id
        )

    return SubmissionRegistry(factory, clock, ttl_seconds=600, max_sessions=3)


def test_registry_open_get_close(registry):
    s = registry.open(user_id="alice")
    assert registry.get(s.id) is s
    assert s.user_id == "alice"
    assert len(registry) == 1

    registry.close(s.id)
    assert len(registry) == 0
    with pytest.raises(NotFoundError):
        registry.get(s.id)
    with pytest.raises(NotFoundError):
        registry.close(s.id)


def test_idle_sessions_expire(registry, clock, jpeg_bytes):
    abandoned = registry.open()
    abandoned.select_image(jpeg_bytes)
    active = registry.open()

    clock.advance(timedelta(minutes=8))
    registry.get(active.id)  # touching keeps it alive
    clock.advance(timedelta(minutes=3))

    assert registry.get(active.id) is active
    with pytest.raises(NotFoundError):
        registry.get(abandoned.id)
    assert len(registry) == 1


def test_session_count_is_capped(registry, clock):
    opened = []
    for _ in range(5):
        opened.append(registry.open())
        clock.advance(timedelta(seconds=1))

    assert len(registry) == 3
    # oldest untouched dialogs go first
    for s in opened[:2]:
        with pytest.raises(NotFoundError):
            registry.get(s.id)
    assert [registry.get(s.id) for s in opened[2:]] == opened[2:]


def test_busy_session_is_never_evicted(registry, vision, clock, jpeg_bytes):
    s = registry.open(user_id="alice")
    s.select_image(jpeg_bytes)
    vision.gate = threading.Event()

    worker = threading.Thread(target=s.analyze)
    worker.start()
    assert vision.entered.wait(timeout=5)

    clock.advance(timedelta(hours=2))
    for _ in range(4):
        registry.open()
    assert registry.get(s.id) is s

    vision.gate.set()
    worker.join(timeout=5)
    assert s.state == SubmissionState.ACCEPTED
