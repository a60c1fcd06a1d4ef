# habitrun/verification.py
"""
Upload verification policy.

Takes the raw numbers the image-understanding service read off a workout
screenshot and decides whether they count as a record. Rules run in order
and the first failure wins:

  1. distance is truncated (never rounded) to one decimal: 1.39 -> 1.3
  2. truncated distance must be >= the per-upload minimum
  3. duration must be readable (non-zero)
  4. pace = duration / truncated distance must not exceed the pace ceiling

Pace is computed from the truncated distance, so both the
counted distance and the computed pace lean against the uploader.
"""
import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from enum import Enum

from .challenge_core import DEFAULT_POLICY, ChallengePolicy, clean_number


class VerificationReason(str, Enum):
    ACCEPTED = "accepted"
    BELOW_MIN_UPLOAD = "below_min_upload"
    DURATION_UNREADABLE = "duration_unreadable"
    PACE_TOO_SLOW = "pace_too_slow"


@dataclass(frozen=True)
class Verification:
    accepted: bool
    normalized_distance_km: float
    pace_min_per_km: float
    reason: VerificationReason
    message: str
    raw_duration_minutes: float = 0.0

    def to_dict(self):
        return {
            "accepted": self.accepted,
            "distance_km": self.normalized_distance_km,
            "pace_min_per_km": round(self.pace_min_per_km, 2),
            "duration_minutes": self.raw_duration_minutes,
            "reason": self.reason.value,
            "message": self.message,
        }


def truncate_km(raw_km) -> float:
    """Floor a distance to one decimal place.

    Works on the shortest repr of the float so binary noise such as
    0.57 * 10 == 56.99999999999999 can't cost the uploader a tenth.
    """
    km = clean_number(raw_km)
    if km >= 1e12:
        return float(math.floor(km))
    floored = Decimal(repr(km)).quantize(Decimal("0.1"), rounding=ROUND_FLOOR)
    return float(floored)


def evaluate(
    raw_distance_km,
    raw_duration_minutes,
    policy: ChallengePolicy = DEFAULT_POLICY,
) -> Verification:
    distance = truncate_km(raw_distance_km)
    duration = clean_number(raw_duration_minutes)

    if distance < policy.min_upload_km:
        return Verification(
            accepted=False,
            normalized_distance_km=distance,
            pace_min_per_km=0.0,
            reason=VerificationReason.BELOW_MIN_UPLOAD,
            message=(
                f"Each upload must be at least {policy.min_upload_km:g} km "
                f"(measured: {distance:g} km)."
            ),
            raw_duration_minutes=duration,
        )

    if duration == 0:
        return Verification(
            accepted=False,
            normalized_distance_km=distance,
            pace_min_per_km=0.0,
            reason=VerificationReason.DURATION_UNREADABLE,
            message="Workout duration could not be read, so pace cannot be computed.",
            raw_duration_minutes=duration,
        )

    pace = duration / distance

    if pace > policy.max_pace_min_per_km:
        return Verification(
            accepted=False,
            normalized_distance_km=distance,
            pace_min_per_km=pace,
            reason=VerificationReason.PACE_TOO_SLOW,
            message=(
                f"Pace is too slow (limit: {policy.max_pace_min_per_km:g} min/km, "
                f"recorded: {pace:.1f} min/km)."
            ),
            raw_duration_minutes=duration,
        )

    return Verification(
        accepted=True,
        normalized_distance_km=distance,
        pace_min_per_km=pace,
        reason=VerificationReason.ACCEPTED,
        message="Meets the challenge criteria.",
        raw_duration_minutes=duration,
    )
