from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Sequence

from nudge.channels.base import Channel, ChannelError
from nudge.config.settings import ReminderPolicy
from nudge.core.clock import day_key, local_now
from nudge.memory.store import ItemStore
from nudge.memory.types import ItemType, MemoryItem

logger = logging.getLogger(__name__)

TYPE_GLYPHS = {
    ItemType.TASK: "✅",
    ItemType.NOTE: "📝",
    ItemType.EVENT: "📅",
    ItemType.PERSON: "👤",
}
DEFAULT_GLYPH = "📌"
REPLY_HINT = "Reply: *done [task]* · *snooze [task]* · *list* · *help*"


def format_urgency(urgency: float) -> str:
    return f"{urgency:g}/10"


def format_due(due: date, today: date) -> str:
    if due == today:
        return "Today"
    return f"{due:%b} {due.day}"


def build_message(items: Sequence[MemoryItem], today: date) -> str:
    lines = ["🧠 *Memory Reminder*", ""]
    for m in items:
        lines.append(f"{TYPE_GLYPHS.get(m.type, DEFAULT_GLYPH)} *{m.title}*")
        if m.due_date:
            lines.append(f"   Due: {format_due(m.due_date, today)} · Urgency: {format_urgency(m.urgency)}")
        else:
            lines.append(f"   Urgency: {format_urgency(m.urgency)}")
        if m.detail:
            lines.append(f"   {m.detail}")
        lines.append("")
    lines.append(REPLY_HINT)
    return "\n".join(lines)


@dataclass
class ReminderDelivery:
    store: ItemStore
    channel: Channel
    recipient: str | None
    policy: ReminderPolicy

    def resolve(self, ids: Sequence[str]) -> list[MemoryItem]:
        """Map ids to their current undone items, keeping the given order."""
        undone = {m.id: m for m in self.store.get_undone()}
        return [undone[i] for i in ids if i in undone]

    def send_reminders(self, ids: Sequence[str], now: datetime | None = None) -> list[MemoryItem]:
        now = local_now(self.policy.tz, now)
        items = self.resolve(ids)
        if not items:
            return []
        if not self.recipient:
            logger.warning("No reminder recipient configured, dropping %d reminder(s)", len(items))
            return []

        body = build_message(items, now.date())
        try:
            self.channel.send(self.recipient, body)
        except ChannelError as exc:
            logger.error("Reminder send failed, nothing recorded: %s", exc)
            return []

        today_key = day_key(now)
        for m in items:
            self.store.record_sent(m.id, today_key)
        logger.info("Sent %d reminder(s): %s", len(items), ", ".join(m.title for m in items))
        return items
