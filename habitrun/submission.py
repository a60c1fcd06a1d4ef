# habitrun/submission.py
"""
Submission flow for one upload dialog.

    IDLE -> IMAGE_SELECTED -> ANALYZING -> ACCEPTED | REJECTED
    ACCEPTED -> UPLOADING -> PERSISTED

A rejected (or accepted but not yet confirmed) attempt goes back to
IMAGE_SELECTED when a fresh image is chosen. Only one analyze/confirm runs
at a time per session; failures put the session back where it was so the
chosen user and image survive a retry.
"""
import logging
import threading
import uuid
from datetime import timedelta
from enum import Enum
from typing import Dict, Optional

from .errors import (
    InvalidInput,
    InvalidSubmissionState,
    NotFoundError,
    OracleFailure,
    PersistenceFailure,
    SubmissionInProgress,
    ValidationRejected,
)
from .store import NewRecord
from .verification import Verification, evaluate

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    IDLE = "idle"
    IMAGE_SELECTED = "image_selected"
    ANALYZING = "analyzing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UPLOADING = "uploading"
    PERSISTED = "persisted"


_SELECTABLE = {
    SubmissionState.IDLE,
    SubmissionState.IMAGE_SELECTED,
    SubmissionState.ACCEPTED,
    SubmissionState.REJECTED,
}


class SubmissionSession:
    def __init__(self, store, vision, blob_store, policy, clock, user_id=None):
        self.id = uuid.uuid4().hex
        self.store = store
        self.vision = vision
        self.blob_store = blob_store
        self.policy = policy
        self.clock = clock

        self.state = SubmissionState.IDLE
        self.user_id: Optional[str] = user_id
        self.image_bytes: Optional[bytes] = None
        self.filename: Optional[str] = None
        self.extraction = None
        self.verification: Optional[Verification] = None
        self.record = None
        self.last_touched = None

        self._lock = threading.Lock()
        self._busy = False

    # ------------------------------
    # Selection
    # ------------------------------
    def select_user(self, user_id: str) -> None:
        with self._lock:
            self._ensure_idle_for_edit()
            if not user_id:
                raise InvalidInput("user_id is required")
            self.user_id = user_id

    def select_image(self, image_bytes: bytes, filename: Optional[str] = None) -> None:
        with self._lock:
            self._ensure_idle_for_edit()
            if not image_bytes:
                raise InvalidInput("image is required")
            self.image_bytes = image_bytes
            self.filename = filename
            self.extraction = None
            self.verification = None
            self.state = SubmissionState.IMAGE_SELECTED

    # ------------------------------
    # Analyze
    # ------------------------------
    def analyze(self) -> Verification:
        if not self.user_id:
            raise InvalidInput("choose who is submitting first")
        self._begin(
            SubmissionState.ANALYZING,
            allowed={SubmissionState.IMAGE_SELECTED},
            what="analyze",
        )
        try:
            extraction = self.vision.extract(self.image_bytes)
        except Exception as e:
            logger.exception("Analysis failed for submission %s", self.id)
            self._finish(SubmissionState.IMAGE_SELECTED)
            raise OracleFailure("Image analysis failed. Please try again.") from e

        if extraction.failed:
            # zeroed answer from the oracle: retry analysis, nothing to judge
            self._finish(SubmissionState.IMAGE_SELECTED)
            raise OracleFailure(
                "Image analysis failed. Please try again.",
                payload={"reasoning": extraction.reasoning},
            )

        verification = evaluate(
            extraction.distance_km, extraction.duration_minutes, self.policy
        )
        self.extraction = extraction
        self.verification = verification
        self._finish(
            SubmissionState.ACCEPTED if verification.accepted else SubmissionState.REJECTED
        )
        logger.info(
            "submission %s analyzed: %s (%.1f km, pace %.1f)",
            self.id,
            verification.reason.value,
            verification.normalized_distance_km,
            verification.pace_min_per_km,
        )
        return verification

    # ------------------------------
    # Confirm
    # ------------------------------
    def confirm(self):
        with self._lock:
            if self._busy:
                raise SubmissionInProgress("A submission step is already running")
            if self.state == SubmissionState.REJECTED:
                raise ValidationRejected(
                    self.verification.message,
                    payload={"verification": self.verification.to_dict()},
                )
            if self.state != SubmissionState.ACCEPTED:
                raise InvalidSubmissionState(
                    f"cannot confirm while {self.state.value}",
                    payload={"state": self.state.value},
                )
            self._busy = True
            self.state = SubmissionState.UPLOADING

        image_url = None
        try:
            image_url = self.blob_store.store(self.image_bytes, self.filename)
            record = self.store.append_record(
                self.user_id,
                NewRecord(
                    record_date=self.clock.today(),
                    distance_km=self.verification.normalized_distance_km,
                    duration_minutes=self.verification.raw_duration_minutes,
                    pace_min_per_km=round(self.verification.pace_min_per_km, 2),
                    image_url=image_url,
                    is_valid=True,
                    created_at=self.clock.utcnow(),
                ),
            )
        except (PersistenceFailure, NotFoundError, InvalidInput):
            self._discard_image(image_url)
            self._finish(SubmissionState.ACCEPTED)
            raise
        except Exception as e:
            logger.exception("Upload failed for submission %s", self.id)
            self._discard_image(image_url)
            self._finish(SubmissionState.ACCEPTED)
            raise PersistenceFailure("Upload failed. Please try again.") from e

        self.record = record
        self._finish(SubmissionState.PERSISTED)
        return record

    # ------------------------------
    # Internals
    # ------------------------------
    @property
    def busy(self) -> bool:
        return self._busy

    def _discard_image(self, image_url):
        # the record never landed, so nothing references this file
        if image_url is None:
            return
        try:
            self.blob_store.delete(image_url)
        except Exception:
            logger.exception("Could not remove orphaned image %s", image_url)

    def _ensure_idle_for_edit(self):
        if self._busy:
            raise SubmissionInProgress("A submission step is already running")
        if self.state not in _SELECTABLE:
            raise InvalidSubmissionState(
                f"cannot change the submission while {self.state.value}",
                payload={"state": self.state.value},
            )

    def _begin(self, state, allowed, what):
        with self._lock:
            if self._busy:
                raise SubmissionInProgress("A submission step is already running")
            if self.state not in allowed:
                raise InvalidSubmissionState(
                    f"cannot {what} while {self.state.value}",
                    payload={"state": self.state.value},
                )
            self._busy = True
            self.state = state

    def _finish(self, state):
        with self._lock:
            self.state = state
            self._busy = False

    def to_dict(self):
        return {
            "id": self.id,
            "state": self.state.value,
            "user_id": self.user_id,
            "has_image": self.image_bytes is not None,
            "filename": self.filename,
            "extraction": self.extraction.to_dict() if self.extraction else None,
            "verification": self.verification.to_dict() if self.verification else None,
            "record": self.record.to_dict() if self.record else None,
        }


class SubmissionRegistry:
    """
    In-memory map of open upload dialogs: session id -> SubmissionSession.

    Dialogs nobody has touched for ``ttl_seconds`` are dropped on the next
    ``open``/``get``. Past ``max_sessions`` the least recently touched idle
    dialogs go first. A dialog with a step in flight is never evicted.
    """

    def __init__(self, factory, clock, ttl_seconds: int = 30 * 60, max_sessions: int = 100):
        self._factory = factory
        self.clock = clock
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_sessions = max_sessions
        self._sessions: Dict[str, SubmissionSession] = {}
        self._lock = threading.Lock()

    def open(self, user_id=None) -> SubmissionSession:
        session = self._factory(user_id)
        with self._lock:
            now = self.clock.now()
            self._evict_expired(now)
            self._evict_overflow()
            session.last_touched = now
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> SubmissionSession:
        with self._lock:
            now = self.clock.now()
            self._evict_expired(now)
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_touched = now
        if session is None:
            raise NotFoundError("submission not found", payload={"submission_id": session_id})
        return session

    def close(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise NotFoundError(
                    "submission not found", payload={"submission_id": session_id}
                )

    def _evict_expired(self, now):
        cutoff = now - self.ttl
        expired = [
            sid
            for sid, s in self._sessions.items()
            if not s.busy and s.last_touched is not None and s.last_touched < cutoff
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("expired %d idle submission(s)", len(expired))

    def _evict_overflow(self):
        # make room for one more
        idle = sorted(
            (s for s in self._sessions.values() if not s.busy),
            key=lambda s: s.last_touched,
        )
        evicted = 0
        while len(self._sessions) >= self.max_sessions and idle:
            del self._sessions[idle.pop(0).id]
            evicted += 1
        if evicted:
            logger.info("evicted %d submission(s) over the %d cap", evicted, self.max_sessions)

    def __len__(self):
        with self._lock:
            return len(self._sessions)
