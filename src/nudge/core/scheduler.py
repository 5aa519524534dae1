from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, tzinfo
from typing import Callable

from nudge.core.clock import local_now

logger = logging.getLogger(__name__)


def next_hour(now: datetime) -> datetime:
    return (now + timedelta(hours=1)).replace(minute=0, second=0, microsecond=0)


def following_tick(previous: datetime, now: datetime) -> datetime:
    """Next top of the hour after a run; missed ticks are skipped, not replayed."""
    return next_hour(max(previous, now))


class HourlyScheduler:
    """Runs ``job`` at minute 0 of every hour on a daemon thread."""

    def __init__(self, job: Callable[[], object], tz: tzinfo) -> None:
        self.job = job
        self.tz = tz
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="hourly-reminders", daemon=True)
        self._thread.start()
        logger.info("Scheduler started, runs every hour.")

    def stop(self) -> None:
        self._stop.set()

    def run_once(self) -> None:
        try:
            self.job()
        except Exception:
            logger.exception("Scheduled reminder run failed")

    def _run(self) -> None:
        target = next_hour(local_now(self.tz))
        while not self._stop.is_set():
            delay = max(0.0, (target - local_now(self.tz)).total_seconds())
            if self._stop.wait(delay):
                return
            self.run_once()
            target = following_tick(target, local_now(self.tz))
