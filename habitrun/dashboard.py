# habitrun/dashboard.py
import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from .errors import PersistenceFailure
from .stats_core import (
    Countdown,
    PenaltyReport,
    StatsReport,
    compute_penalties,
    compute_stats,
    day_countdown,
    ordered_recent,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardSnapshot:
    generation: int
    reference_date: date
    stats: StatsReport
    penalties: PenaltyReport
    countdown: Countdown
    recent_records: List = field(default_factory=list)
    user_names: dict = field(default_factory=dict)

    def to_dict(self, policy=None):
        out = {
            "reference_date": self.reference_date.isoformat(),
            "users": [s.to_dict() for s in self.stats.users],
            "team_daily": self.stats.team.to_dict(),
            "penalties": [p.to_dict() for p in self.penalties.users],
            "team_total_penalty": self.penalties.team_total_penalty,
            "countdown": self.countdown.to_dict(),
            "recent_records": [
                dict(r.to_dict(), user_name=self.user_names.get(r.user_id, "Unknown"))
                for r in self.recent_records
            ],
        }
        if policy is not None:
            out["policy"] = policy.to_dict()
        return out


class DashboardComposer:
    """
    Recomputes the dashboard from one store snapshot per refresh.

    Each refresh takes a generation ticket. A result is published only if no
    newer refresh has started since; an overtaken refresh drops its result
    and hands its caller whatever the newest refresh publishes instead.
    """

    def __init__(self, store, policy, clock, recent_limit: int = 8, wait_timeout: float = 10.0):
        self.store = store
        self.policy = policy
        self.clock = clock
        self.recent_limit = recent_limit
        self.wait_timeout = wait_timeout

        self._cond = threading.Condition()
        self._issued = 0
        self._pending = set()
        self._latest: Optional[DashboardSnapshot] = None

    def begin_refresh(self) -> int:
        with self._cond:
            self._issued += 1
            self._pending.add(self._issued)
            return self._issued

    def compose(self, generation: int, snapshot) -> DashboardSnapshot:
        now = self.clock.now()
        today = now.date()
        users = snapshot.users
        records = snapshot.records

        return DashboardSnapshot(
            generation=generation,
            reference_date=today,
            stats=compute_stats(users, records, today, self.policy),
            penalties=compute_penalties(users, records, today, self.policy, self.clock.tz),
            countdown=day_countdown(now),
            recent_records=ordered_recent(records, self.recent_limit),
            user_names={u.id: u.name for u in users},
        )

    def publish(self, result: DashboardSnapshot) -> bool:
        """Keep ``result`` unless a newer refresh has been started."""
        with self._cond:
            self._pending.discard(result.generation)
            self._cond.notify_all()
            if result.generation < self._issued:
                logger.info(
                    "discarding stale dashboard refresh %s (newest is %s)",
                    result.generation,
                    self._issued,
                )
                return False
            self._latest = result
            return True

    def abandon(self, generation: int) -> None:
        """Mark a refresh that will never publish (its read failed)."""
        with self._cond:
            self._pending.discard(generation)
            self._cond.notify_all()

    def refresh(self) -> DashboardSnapshot:
        generation = self.begin_refresh()
        try:
            snapshot = self.store.snapshot()
            result = self.compose(generation, snapshot)
        except PersistenceFailure:
            self.abandon(generation)
            raise
        except Exception as e:
            self.abandon(generation)
            logger.exception("dashboard refresh %s failed to read the store", generation)
            raise PersistenceFailure("Failed to load challenge data") from e

        if self.publish(result):
            return result
        return self._wait_for_newer(generation) or result

    def _wait_for_newer(self, generation: int) -> Optional[DashboardSnapshot]:
        # newer refreshes either publish or abandon; wait until one has
        def settled():
            if self._latest is not None and self._latest.generation > generation:
                return True
            return not any(g > generation for g in self._pending)

        with self._cond:
            self._cond.wait_for(settled, timeout=self.wait_timeout)
            if self._latest is not None and self._latest.generation > generation:
                return self._latest
        logger.warning(
            "dashboard refresh %s was overtaken but no newer result arrived", generation
        )
        return None

    def latest(self) -> Optional[DashboardSnapshot]:
        with self._cond:
            return self._latest
