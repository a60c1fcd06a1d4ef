# tests/test_verification.py
import math

import pytest

from habitrun.challenge_core import ChallengePolicy
from habitrun.verification import VerificationReason, evaluate, truncate_km


@pytest.mark.parametrize(
    "raw, expected",
    [
        (1.39, 1.3),
        (1.3, 1.3),
        (0.57, 0.5),
        (2.3, 2.3),
        (3.05, 3.0),
        (10.99, 10.9),
        (5, 5.0),
        (0, 0.0),
    ],
)
def test_truncate_km_floors_to_one_decimal(raw, expected):
    assert truncate_km(raw) == expected


@pytest.mark.parametrize("raw", [float("nan"), float("inf"), -2.5, None, "abc", True])
def test_truncate_km_treats_garbage_as_zero(raw):
    assert truncate_km(raw) == 0.0


def test_distance_is_truncated_not_rounded():
    v = evaluate(1.39, 20)
    assert v.normalized_distance_km == 1.3
    assert v.accepted


def test_truncation_applies_even_when_rejected_for_pace():
    v = evaluate(1.39, 30)
    assert v.normalized_distance_km == 1.3
    assert v.reason == VerificationReason.PACE_TOO_SLOW


def test_below_minimum_upload_distance():
    v = evaluate(0.9, 10)
    assert not v.accepted
    assert v.reason == VerificationReason.BELOW_MIN_UPLOAD
    assert "1 km" in v.message
    assert "0.9" in v.message
    assert v.pace_min_per_km == 0.0


def test_truncation_can_push_below_minimum():
    v = evaluate(0.99, 5)
    assert v.normalized_distance_km == 0.9
    assert v.reason == VerificationReason.BELOW_MIN_UPLOAD


def test_exact_minimum_is_allowed():
    v = evaluate(1.0, 20)
    assert v.accepted
    assert v.pace_min_per_km == 20.0


def test_duration_unreadable_regardless_of_distance():
    v = evaluate(5.0, 0)
    assert not v.accepted
    assert v.reason == VerificationReason.DURATION_UNREADABLE


def test_minimum_distance_checked_before_duration():
    v = evaluate(0.5, 0)
    assert v.reason == VerificationReason.BELOW_MIN_UPLOAD


def test_pace_over_ceiling_rejected():
    v = evaluate(2.0, 41)
    assert not v.accepted
    assert v.reason == VerificationReason.PACE_TOO_SLOW
    assert v.pace_min_per_km == pytest.approx(20.5)
    assert "20.5" in v.message


def test_pace_at_ceiling_accepted():
    v = evaluate(2.0, 40)
    assert v.accepted
    assert v.reason == VerificationReason.ACCEPTED
    assert v.pace_min_per_km == 20.0


def test_pace_uses_truncated_distance():
    # 2.09 -> 2.0, so 41 min is 20.5 min/km, not 19.6
    v = evaluate(2.09, 41)
    assert v.reason == VerificationReason.PACE_TOO_SLOW


@pytest.mark.parametrize(
    "distance, duration, reason",
    [
        (float("nan"), 30, VerificationReason.BELOW_MIN_UPLOAD),
        (-5.0, 30, VerificationReason.BELOW_MIN_UPLOAD),
        (3.0, -10, VerificationReason.DURATION_UNREADABLE),
        (3.0, float("nan"), VerificationReason.DURATION_UNREADABLE),
        (3.0, float("inf"), VerificationReason.DURATION_UNREADABLE),
    ],
)
def test_malformed_numbers_are_rejected_not_raised(distance, duration, reason):
    v = evaluate(distance, duration)
    assert not v.accepted
    assert v.reason == reason
    assert math.isfinite(v.normalized_distance_km)


def test_policy_knobs_are_respected():
    strict = ChallengePolicy(min_upload_km=2.0, max_pace_min_per_km=10.0)
    assert evaluate(1.5, 10, strict).reason == VerificationReason.BELOW_MIN_UPLOAD
    assert evaluate(3.0, 33, strict).reason == VerificationReason.PACE_TOO_SLOW
    assert evaluate(3.0, 30, strict).accepted


def test_evaluate_is_deterministic():
    assert evaluate(4.27, 31) == evaluate(4.27, 31)


def test_to_dict_shape():
    d = evaluate(5.0, 30).to_dict()
    assert d == {
        "accepted": True,
        "distance_km": 5.0,
        "pace_min_per_km": 6.0,
        "duration_minutes": 30.0,
        "reason": "accepted",
        "message": "Meets the challenge criteria.",
    }
