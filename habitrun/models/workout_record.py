# habitrun/models/workout_record.py
import uuid
from datetime import datetime
from .. import db
from ..challenge_core import ChallengeRecord


def _new_id() -> str:
    return uuid.uuid4().hex


class WorkoutRecord(db.Model):
    __tablename__ = "workout_records"

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=False, index=True)

    # challenge day in the challenge timezone, not the upload moment
    record_date = db.Column(db.Date, nullable=False, index=True)
    distance_km = db.Column(db.Float, nullable=False)
    duration_minutes = db.Column(db.Float)
    pace_min_per_km = db.Column(db.Float)
    image_url = db.Column(db.String(512))
    is_valid = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = db.relationship("User", back_populates="records")

    def to_core(self) -> ChallengeRecord:
        return ChallengeRecord(
            id=self.id,
            user_id=self.user_id,
            record_date=self.record_date,
            distance_km=float(self.distance_km or 0.0),
            is_valid=bool(self.is_valid),
            image_url=self.image_url,
            duration_minutes=self.duration_minutes,
            pace_min_per_km=self.pace_min_per_km,
            created_at=self.created_at,
        )
