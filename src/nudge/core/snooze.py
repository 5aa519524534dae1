from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from nudge.config.settings import ReminderPolicy
from nudge.core.clock import day_key, local_now
from nudge.memory.store import ItemStore
from nudge.memory.types import MemoryItem

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


def _daemon_timer(delay: float, action: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, action)
    timer.daemon = True
    return timer


@dataclass
class SnoozeManager:
    """Same-day suppression backed by the sent marker.

    The release time is stored on the marker, so ``rearm`` can restore
    pending releases after a restart.
    """

    store: ItemStore
    policy: ReminderPolicy
    timer_factory: TimerFactory = _daemon_timer

    def snooze(self, item: MemoryItem, now: datetime | None = None) -> datetime:
        now = local_now(self.policy.tz, now)
        release_at = now + timedelta(hours=self.policy.snooze_hours)
        key = day_key(now)
        self.store.record_sent(item.id, key, release_at=release_at)
        self._arm(item.id, key, release_at, (release_at - now).total_seconds())
        logger.info("Snoozed %s until %s", item.id, release_at.isoformat(timespec="minutes"))
        return release_at

    def release(self, memory_id: str, key: str, deadline: datetime | None = None) -> None:
        """Clear the snooze marker unless a later snooze has pushed it past ``deadline``."""
        self.store.clear_sent_today(memory_id, key, release_at=deadline)
        logger.info("Re-enabled reminders for %s (%s)", memory_id, key)

    def release_overdue(self, now: datetime | None = None) -> int:
        """Release persisted snoozes whose window has passed; returns how many."""
        now = local_now(self.policy.tz, now)
        released = 0
        for marker in self.store.pending_snoozes():
            if marker.release_at is None or marker.release_at > now:
                continue
            self.release(marker.memory_id, marker.day_key, marker.release_at)
            released += 1
        return released

    def rearm(self, now: datetime | None = None) -> int:
        """Re-schedule snoozes persisted by a previous process; returns how many were handled."""
        now = local_now(self.policy.tz, now)
        handled = self.release_overdue(now)
        for marker in self.store.pending_snoozes():
            if marker.release_at is None:
                continue
            self._arm(marker.memory_id, marker.day_key, marker.release_at, (marker.release_at - now).total_seconds())
            handled += 1
        if handled:
            logger.info("Restored %d pending snooze(s)", handled)
        return handled

    def _arm(self, memory_id: str, key: str, deadline: datetime, delay: float) -> None:
        def _fire() -> None:
            try:
                self.release(memory_id, key, deadline)
            except Exception:
                logger.exception("Snooze release failed for %s", memory_id)

        self.timer_factory(max(0.0, delay), _fire).start()
