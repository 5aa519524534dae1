from __future__ import annotations

import json
import logging
import math
import queue
import threading
from dataclasses import dataclass
from datetime import date
from typing import Callable, Sequence

from nudge.adapters.llm import LLMClient, LLMRequest, OracleError, parse_json_reply
from nudge.config.settings import ReminderPolicy
from nudge.core.clock import local_now
from nudge.memory.store import ItemStore
from nudge.memory.types import MemoryItem, clamp_urgency

logger = logging.getLogger(__name__)

SCORING_PROMPT = """Today is {today}.
Score each memory's urgency from 0 to 10:
- 10 = due today or overdue
- 8-9 = due within 2 days
- 6-7 = due within a week
- 4-5 = due within 2 weeks, OR title has "urgent/pay/submit/call/deadline"
- 2-3 = vague notes, events far away
- 0-1 = person info, done items, non-actionable notes

Memories (JSON):
{items}

Respond ONLY with a JSON array: [{{"id":"...","urgency":8.5}}, ...]
No markdown, no explanation."""


def _as_urgency(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return clamp_urgency(value)


@dataclass
class UrgencyScorer:
    store: ItemStore
    oracle: LLMClient | None
    policy: ReminderPolicy
    max_tokens: int = 500

    def build_prompt(self, items: Sequence[MemoryItem], today: date) -> str:
        batch = [
            {
                "id": m.id,
                "type": m.type.value,
                "title": m.title,
                "detail": m.detail,
                "dueDate": m.due_date.isoformat() if m.due_date else None,
                "done": m.done,
            }
            for m in items
        ]
        return SCORING_PROMPT.format(today=today.isoformat(), items=json.dumps(batch, indent=2, ensure_ascii=False))

    def score(self, items: Sequence[MemoryItem], today: date | None = None) -> None:
        """Ask the oracle for fresh urgencies and persist the valid ones.

        Never raises on oracle trouble: stale urgency is acceptable.
        """
        if not items:
            return
        if self.oracle is None:
            logger.debug("No oracle configured, skipping urgency scoring")
            return
        if today is None:
            today = local_now(self.policy.tz).date()

        prompt = self.build_prompt(items, today)
        try:
            reply = self.oracle.generate(LLMRequest(user=prompt, max_tokens=self.max_tokens))
            scores = parse_json_reply(reply.text)
        except (OracleError, ValueError) as exc:
            logger.warning("Urgency scoring failed: %s", exc)
            return
        if not isinstance(scores, list):
            logger.warning("Urgency scoring reply is not a list, ignoring")
            return

        requested = {m.id for m in items}
        updated = 0
        for entry in scores:
            if not isinstance(entry, dict):
                continue
            item_id = entry.get("id")
            if not isinstance(item_id, str) or item_id not in requested:
                logger.debug("Ignoring urgency for unrequested id %r", item_id)
                continue
            urgency = _as_urgency(entry.get("urgency"))
            if urgency is None:
                logger.debug("Ignoring non-numeric urgency for %s", item_id)
                continue
            self.store.set_urgency(item_id, urgency)
            updated += 1
        logger.info("Scored %d of %d item(s)", updated, len(items))


class ScoringQueue:
    """Background worker running scoring jobs off the request path."""

    def __init__(
        self,
        scorer: UrgencyScorer,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.scorer = scorer
        self.on_error = on_error or self._log_error
        self._jobs: queue.Queue[list[MemoryItem] | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @staticmethod
    def _log_error(exc: Exception) -> None:
        logger.error("Background scoring failed: %s", exc, exc_info=exc)

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name="urgency-scorer", daemon=True)
            self._thread.start()

    def stop(self) -> None:
        self._jobs.put(None)

    def submit(self, items: Sequence[MemoryItem]) -> None:
        self.start()
        self._jobs.put(list(items))

    def join(self) -> None:
        """Block until every submitted job has run."""
        self._jobs.join()

    def _run(self) -> None:
        while True:
            job = self._jobs.get()
            try:
                if job is None:
                    return
                self.scorer.score(job)
            except Exception as exc:
                self.on_error(exc)
            finally:
                self._jobs.task_done()
