# habitrun/store.py
"""
Persistence store for users and their workout records.

Routes, the submission flow and the dashboard only talk to a
``PersistenceStore``; ``SqlAlchemyStore`` is the real one. Records are an
append-only log: there is no update or delete for them.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import db
from .challenge_core import ChallengeRecord, ChallengeUser, clean_number
from .errors import InvalidInput, NotFoundError, PersistenceFailure
from .models.user import User
from .models.workout_record import WorkoutRecord

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100


@dataclass(frozen=True)
class NewRecord:
    """Fields the submission flow supplies; the store assigns the id."""

    record_date: object
    distance_km: float
    image_url: Optional[str] = None
    duration_minutes: Optional[float] = None
    pace_min_per_km: Optional[float] = None
    is_valid: bool = True
    created_at: Optional[object] = None


@dataclass(frozen=True)
class StoreSnapshot:
    users: List[ChallengeUser]
    records: List[ChallengeRecord]


def clean_name(name) -> str:
    name = (name or "").strip() if isinstance(name, str) else ""
    if not name:
        raise InvalidInput("name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidInput(f"name must be at most {MAX_NAME_LENGTH} characters")
    return name


def check_new_record(record: NewRecord) -> None:
    if not record.is_valid:
        raise InvalidInput("rejected records are never stored")
    if clean_number(record.distance_km) != record.distance_km:
        raise InvalidInput("distance_km must be a finite number >= 0")


class PersistenceStore:
    def list_users(self) -> List[ChallengeUser]:
        raise NotImplementedError

    def create_user(self, name: str, joined_at=None) -> ChallengeUser:
        raise NotImplementedError

    def rename_user(self, user_id: str, name: str) -> ChallengeUser:
        raise NotImplementedError

    def append_record(self, user_id: str, record: NewRecord) -> ChallengeRecord:
        raise NotImplementedError

    def list_records(self) -> List[ChallengeRecord]:
        raise NotImplementedError

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(users=self.list_users(), records=self.list_records())


class SqlAlchemyStore(PersistenceStore):
    """Store backed by the Flask-SQLAlchemy session. Needs an app context."""

    def list_users(self) -> List[ChallengeUser]:
        rows = User.query.order_by(User.created_at.desc()).all()
        return [u.to_core() for u in rows]

    def create_user(self, name: str, joined_at=None) -> ChallengeUser:
        user = User(name=clean_name(name), joined_at=joined_at)
        try:
            db.session.add(user)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("create_user failed")
            raise PersistenceFailure("Failed to create user") from e
        return user.to_core()

    def rename_user(self, user_id: str, name: str) -> ChallengeUser:
        name = clean_name(name)
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("user not found", payload={"user_id": user_id})
        try:
            user.name = name
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("rename_user failed for user_id=%s", user_id)
            raise PersistenceFailure("Failed to rename user") from e
        return user.to_core()

    def append_record(self, user_id: str, record: NewRecord) -> ChallengeRecord:
        check_new_record(record)
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("user not found", payload={"user_id": user_id})

        row = WorkoutRecord(
            user_id=user.id,
            record_date=record.record_date,
            distance_km=record.distance_km,
            duration_minutes=record.duration_minutes,
            pace_min_per_km=record.pace_min_per_km,
            image_url=record.image_url,
            is_valid=record.is_valid,
        )
        if record.created_at is not None:
            row.created_at = record.created_at

        try:
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("append_record failed for user_id=%s", user_id)
            raise PersistenceFailure("Failed to save workout record") from e
        return row.to_core()

    def list_records(self) -> List[ChallengeRecord]:
        rows = WorkoutRecord.query.order_by(WorkoutRecord.created_at.asc()).all()
        return [r.to_core() for r in rows]

    def snapshot(self) -> StoreSnapshot:
        try:
            users = self.list_users()
            records = self.list_records()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("snapshot read failed")
            raise PersistenceFailure("Failed to load challenge data") from e
        return StoreSnapshot(users=users, records=records)
