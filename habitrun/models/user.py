# habitrun/models/user.py
import uuid
from datetime import datetime
from .. import db
from ..challenge_core import ChallengeUser


def _new_id() -> str:
    return uuid.uuid4().hex


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    name = db.Column(db.String(100), nullable=False)
    avatar_url = db.Column(db.String(255))

    # no join date -> treated as joined at the start of the month
    joined_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    records = db.relationship(
        "WorkoutRecord",
        back_populates="user",
        order_by="WorkoutRecord.created_at",
    )

    def to_core(self) -> ChallengeUser:
        return ChallengeUser(id=self.id, name=self.name, joined_at=self.joined_at)
