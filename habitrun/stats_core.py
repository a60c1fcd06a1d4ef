# habitrun/stats_core.py
"""
Dashboard numbers for the distance challenge.

Everything here is a pure function of (users, records, reference date):
no DB, no clock, no globals. The dashboard re-runs these on every refresh.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .challenge_core import (
    DEFAULT_POLICY,
    ChallengePolicy,
    ChallengeRecord,
    ChallengeUser,
    km_sum,
)
from .clock import to_local_date

SECONDS_PER_DAY = 24 * 60 * 60


# -------------------------
# Result types
# -------------------------
@dataclass(frozen=True)
class UserStats:
    user_id: str
    name: str
    total_distance: float
    valid_days: int
    completion_rate: float
    today_distance: float
    is_done_today: bool
    current_streak_days: int = 0

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "name": self.name,
            "total_distance": self.total_distance,
            "valid_days": self.valid_days,
            "completion_rate": round(self.completion_rate, 1),
            "today_distance": self.today_distance,
            "is_done_today": self.is_done_today,
            "has_participated_today": self.today_distance > 0,
            "current_streak_days": self.current_streak_days,
        }


@dataclass(frozen=True)
class TeamDailyStats:
    count: int
    total: int
    rate: float

    def to_dict(self):
        return {"count": self.count, "total": self.total, "rate": round(self.rate, 1)}


@dataclass(frozen=True)
class StatsReport:
    users: List[UserStats]
    team: TeamDailyStats


@dataclass(frozen=True)
class PenaltyRecord:
    user_id: str
    name: str
    missed_days: int
    total_penalty: int

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "name": self.name,
            "missed_days": self.missed_days,
            "total_penalty": self.total_penalty,
        }


@dataclass(frozen=True)
class PenaltyReport:
    users: List[PenaltyRecord] = field(default_factory=list)
    team_total_penalty: int = 0


# -------------------------
# Helpers
# -------------------------
def _daily_totals(records: Sequence[ChallengeRecord]) -> Dict[date, float]:
    by_date = defaultdict(list)
    for r in records:
        by_date[r.record_date].append(r.distance_km)
    return {d: km_sum(dists) for d, dists in by_date.items()}


def _valid_records_by_user(records: Sequence[ChallengeRecord]):
    out = defaultdict(list)
    for r in records:
        if r.is_valid:
            out[r.user_id].append(r)
    return out


def _same_month(d: date, ref: date) -> bool:
    return d.year == ref.year and d.month == ref.month


def _current_streak(totals: Dict[date, float], ref: date, goal: float) -> int:
    # today still in progress: an unfinished today doesn't break the streak
    day = ref if totals.get(ref, 0.0) >= goal else ref - timedelta(days=1)
    streak = 0
    while _same_month(day, ref) and totals.get(day, 0.0) >= goal:
        streak += 1
        day -= timedelta(days=1)
    return streak


# -------------------------
# Stats aggregator
# -------------------------
def compute_stats(
    users: Sequence[ChallengeUser],
    records: Sequence[ChallengeRecord],
    reference_date: date,
    policy: ChallengePolicy = DEFAULT_POLICY,
) -> StatsReport:
    goal = policy.daily_goal_km
    by_user = _valid_records_by_user(records)
    day_of_month = reference_date.day

    stats = []
    for user in users:
        month_records = [
            r for r in by_user.get(user.id, []) if _same_month(r.record_date, reference_date)
        ]
        totals = _daily_totals(month_records)

        today_distance = totals.get(reference_date, 0.0)
        valid_days = sum(1 for dist in totals.values() if dist >= goal)
        total_distance = km_sum(r.distance_km for r in month_records)
        completion_rate = (valid_days / day_of_month) * 100 if day_of_month > 0 else 0.0

        stats.append(
            UserStats(
                user_id=user.id,
                name=user.name,
                total_distance=total_distance,
                valid_days=valid_days,
                completion_rate=completion_rate,
                today_distance=today_distance,
                is_done_today=today_distance >= goal,
                current_streak_days=_current_streak(totals, reference_date, goal),
            )
        )

    # sorted() is stable, ties keep input order
    stats = sorted(stats, key=lambda s: s.today_distance, reverse=True)

    completers = sum(1 for s in stats if s.is_done_today)
    total = len(users)
    rate = (completers / total) * 100 if total > 0 else 0.0

    return StatsReport(users=stats, team=TeamDailyStats(count=completers, total=total, rate=rate))


# -------------------------
# Penalty calculator
# -------------------------
def eligibility_start(user: ChallengeUser, reference_date: date, tz) -> date:
    """Later of the month start and the user's (local) join day."""
    month_start = reference_date.replace(day=1)
    if user.joined_at is None:
        return month_start
    return max(month_start, to_local_date(user.joined_at, tz))


def count_missed_days(
    totals: Dict[date, float], start: date, reference_date: date, goal: float
) -> int:
    """Days in [start, reference_date) whose total is under ``goal``."""
    missed = 0
    day = start
    while day < reference_date:
        if totals.get(day, 0.0) < goal:
            missed += 1
        day += timedelta(days=1)
    return missed


def compute_penalties(
    users: Sequence[ChallengeUser],
    records: Sequence[ChallengeRecord],
    reference_date: date,
    policy: ChallengePolicy = DEFAULT_POLICY,
    tz=None,
) -> PenaltyReport:
    if tz is None:
        tz = timezone.utc

    by_user = _valid_records_by_user(records)

    penalties = []
    for user in users:
        totals = _daily_totals(by_user.get(user.id, []))
        start = eligibility_start(user, reference_date, tz)
        missed = count_missed_days(totals, start, reference_date, policy.daily_goal_km)
        penalties.append(
            PenaltyRecord(
                user_id=user.id,
                name=user.name,
                missed_days=missed,
                total_penalty=missed * policy.penalty_per_missed_day,
            )
        )

    penalties = sorted(penalties, key=lambda p: p.total_penalty, reverse=True)
    return PenaltyReport(
        users=penalties,
        team_total_penalty=sum(p.total_penalty for p in penalties),
    )


# -------------------------
# End-of-day countdown
# -------------------------
class UrgencyTheme(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    URGENT = "urgent"
    CRITICAL = "critical"

    @property
    def label(self) -> str:
        return _THEME_LABELS[self]


_THEME_LABELS = {
    UrgencyTheme.NORMAL: "Plenty of time, go get it!",
    UrgencyTheme.WARNING: "Have you worked out today?",
    UrgencyTheme.URGENT: "Not much of today is left.",
    UrgencyTheme.CRITICAL: "Deadline is close! Hurry!",
}


def urgency_theme(seconds_remaining: float) -> UrgencyTheme:
    if seconds_remaining < 3600:
        return UrgencyTheme.CRITICAL
    if seconds_remaining < 3 * 3600:
        return UrgencyTheme.URGENT
    if seconds_remaining < 12 * 3600:
        return UrgencyTheme.WARNING
    return UrgencyTheme.NORMAL


@dataclass(frozen=True)
class Countdown:
    hours: int
    minutes: int
    seconds: int
    total_seconds: int
    percentage_left: float
    theme: UrgencyTheme

    def to_dict(self):
        return {
            "hours": self.hours,
            "minutes": self.minutes,
            "seconds": self.seconds,
            "total_seconds": self.total_seconds,
            "percentage_left": round(self.percentage_left, 2),
            "theme": self.theme.value,
            "label": self.theme.label,
        }


def day_countdown(now: datetime) -> Countdown:
    """Time left until 23:59:59 of ``now``'s own calendar day."""
    end_of_day = datetime.combine(now.date(), time(23, 59, 59), tzinfo=now.tzinfo)
    if now.tzinfo is not None:
        # same-zone aware datetimes subtract as wall clock; DST days aren't 24h
        end_of_day = end_of_day.astimezone(timezone.utc)
        now = now.astimezone(timezone.utc)
    total_seconds = max(0, int((end_of_day - now).total_seconds()))

    h = total_seconds // 3600
    m = (total_seconds % 3600) // 60
    s = total_seconds % 60

    return Countdown(
        hours=h,
        minutes=m,
        seconds=s,
        total_seconds=total_seconds,
        percentage_left=min(100.0, (total_seconds / SECONDS_PER_DAY) * 100),
        theme=urgency_theme(total_seconds),
    )


def ordered_recent(records: Sequence[ChallengeRecord], limit: Optional[int] = None):
    """Newest challenge day first, then newest upload within the day."""
    ordered = sorted(
        records,
        key=lambda r: (r.record_date, r.created_at or datetime.min),
        reverse=True,
    )
    return ordered[:limit] if limit is not None else ordered
