from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime

from nudge.adapters.llm import LLMClient, LLMRequest, OracleError, parse_json_reply
from nudge.config.settings import ReminderPolicy
from nudge.core.clock import day_key, local_now
from nudge.memory.store import ItemStore
from nudge.memory.types import MemoryItem

logger = logging.getLogger(__name__)

SELECTION_PROMPT = """Current time: {hour}:00, date: {today}.
You are a smart reminder system. Select which tasks to send WhatsApp reminders for RIGHT NOW.

Rules:
- Max {max_per_run} reminders per run
- Prefer tasks due today or tomorrow
- Do NOT send reminders before {quiet_start}:00 or after {quiet_end}:00 UNLESS urgency >= {critical:g}
- Silence is better than spam, only send if genuinely useful
- If no tasks are urgent enough, return empty array

Candidate tasks (JSON):
{candidates}

Respond ONLY with a JSON array of IDs to remind about: ["id1","id2"]
No markdown, no explanation."""


@dataclass
class ReminderSelector:
    store: ItemStore
    oracle: LLMClient | None
    policy: ReminderPolicy
    max_tokens: int = 200

    def candidates(self, today_key: str) -> list[MemoryItem]:
        return [
            m
            for m in self.store.get_undone()
            if m.urgency >= self.policy.min_urgency and not self.store.has_sent_today(m.id, today_key)
        ]

    def build_prompt(self, candidates: list[MemoryItem], now: datetime) -> str:
        rows = [
            {
                "id": m.id,
                "title": m.title,
                "detail": m.detail,
                "dueDate": m.due_date.isoformat() if m.due_date else None,
                "urgency": m.urgency,
            }
            for m in candidates
        ]
        return SELECTION_PROMPT.format(
            hour=now.hour,
            today=now.date().isoformat(),
            max_per_run=self.policy.max_per_run,
            quiet_start=self.policy.quiet_start_hour,
            quiet_end=self.policy.quiet_end_hour,
            critical=self.policy.critical_urgency,
            candidates=json.dumps(rows, indent=2, ensure_ascii=False),
        )

    def decide(self, now: datetime | None = None) -> list[str]:
        """Return at most ``max_per_run`` candidate ids to notify, in display order.

        Fails closed: any oracle trouble yields an empty list.
        """
        now = local_now(self.policy.tz, now)
        candidates = self.candidates(day_key(now))
        if not candidates:
            return []

        # quiet hours are a hard filter here, not only a rule in the prompt
        if self.policy.is_quiet_hour(now.hour):
            candidates = [m for m in candidates if m.urgency >= self.policy.critical_urgency]
            if not candidates:
                logger.debug("Quiet hour %d and nothing critical", now.hour)
                return []

        if self.oracle is None:
            logger.debug("No oracle configured, selecting nothing")
            return []

        prompt = self.build_prompt(candidates, now)
        try:
            reply = self.oracle.generate(LLMRequest(user=prompt, max_tokens=self.max_tokens))
            ids = parse_json_reply(reply.text)
        except (OracleError, ValueError) as exc:
            logger.warning("Reminder selection failed: %s", exc)
            return []
        if not isinstance(ids, list):
            logger.warning("Reminder selection reply is not a list, ignoring")
            return []

        valid = {m.id for m in candidates}
        selected: list[str] = []
        for item_id in ids:
            if not isinstance(item_id, str) or item_id not in valid:
                logger.debug("Dropping unknown id %r from selection", item_id)
                continue
            if item_id in selected:
                continue
            selected.append(item_id)
            if len(selected) >= self.policy.max_per_run:
                break
        return selected
