# habitrun/challenge_core.py
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

DAILY_GOAL_KM = 3.0            # summed distance per day to count as done
MIN_UPLOAD_KM = 1.0            # floor for a single upload
MAX_PACE_MIN_PER_KM = 20.0     # slower than this is not a run/walk
PENALTY_PER_MISSED_DAY = 20000


@dataclass(frozen=True)
class ChallengePolicy:
    daily_goal_km: float = DAILY_GOAL_KM
    min_upload_km: float = MIN_UPLOAD_KM
    max_pace_min_per_km: float = MAX_PACE_MIN_PER_KM
    penalty_per_missed_day: int = PENALTY_PER_MISSED_DAY

    @classmethod
    def from_config(cls, config) -> "ChallengePolicy":
        return cls(
            daily_goal_km=float(config.get("DAILY_GOAL_KM", DAILY_GOAL_KM)),
            min_upload_km=float(config.get("MIN_UPLOAD_KM", MIN_UPLOAD_KM)),
            max_pace_min_per_km=float(
                config.get("MAX_PACE_MIN_PER_KM", MAX_PACE_MIN_PER_KM)
            ),
            penalty_per_missed_day=int(
                config.get("PENALTY_PER_MISSED_DAY", PENALTY_PER_MISSED_DAY)
            ),
        )

    def to_dict(self):
        return {
            "daily_goal_km": self.daily_goal_km,
            "min_upload_km": self.min_upload_km,
            "max_pace_min_per_km": self.max_pace_min_per_km,
            "penalty_per_missed_day": self.penalty_per_missed_day,
        }


DEFAULT_POLICY = ChallengePolicy()


@dataclass(frozen=True)
class ChallengeUser:
    id: str
    name: str
    joined_at: Optional[datetime] = None


@dataclass(frozen=True)
class ChallengeRecord:
    """One accepted upload, bucketed to a challenge day (``record_date``)."""

    id: str
    user_id: str
    record_date: date
    distance_km: float
    is_valid: bool = True
    image_url: Optional[str] = None
    duration_minutes: Optional[float] = None
    pace_min_per_km: Optional[float] = None
    created_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": self.record_date.isoformat(),
            "distance_km": self.distance_km,
            "is_valid": self.is_valid,
            "image_url": self.image_url,
            "duration_minutes": self.duration_minutes,
            "pace_min_per_km": self.pace_min_per_km,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def clean_number(value) -> float:
    """Coerce an untrusted number to a finite float >= 0 (else 0.0)."""
    if isinstance(value, bool):
        return 0.0
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(v) or v < 0:
        return 0.0
    return v


def km_sum(distances: Iterable[float]) -> float:
    # fsum + rounding so 1.1 + 1.9 compares equal to 3.0
    return round(math.fsum(clean_number(d) for d in distances), 6)
