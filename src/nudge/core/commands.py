from __future__ import annotations

import logging
from dataclasses import dataclass

from nudge.config.settings import ReminderPolicy
from nudge.core.delivery import format_urgency
from nudge.core.matcher import fuzzy_match
from nudge.core.snooze import SnoozeManager
from nudge.memory.store import ItemStore

logger = logging.getLogger(__name__)

FALLBACK_REPLY = (
    "🤔 I didn't understand that. Try:\n"
    "• *done [task]*\n"
    "• *snooze [task]*\n"
    "• *list*\n"
    "• *help*"
)


def _hours(value: float) -> str:
    return f"{value:g}"


@dataclass
class CommandInterpreter:
    """Turns inbound free-text replies into item state changes."""

    store: ItemStore
    snoozer: SnoozeManager
    policy: ReminderPolicy

    def handle(self, text: str) -> str:
        body = (text or "").strip()
        cmd = body.lower()
        if cmd == "help":
            return self.help_text()
        if cmd == "list":
            return self.list_items()
        if cmd.startswith("done "):
            return self.done(body[5:].strip())
        if cmd.startswith("snooze "):
            return self.snooze(body[7:].strip())
        return FALLBACK_REPLY

    def help_text(self) -> str:
        return (
            "🧠 *Memory Bot Commands*\n\n"
            "• *done [task]* : mark a task as done\n"
            f"• *snooze [task]* : skip reminder for today, re-remind in {_hours(self.policy.snooze_hours)}h\n"
            f"• *list* : show top {self.policy.list_limit} tasks by urgency\n"
            "• *help* : show this menu"
        )

    def list_items(self) -> str:
        items = self.store.get_undone()[: self.policy.list_limit]
        if not items:
            return "✅ No pending tasks!"
        lines = []
        for i, m in enumerate(items, start=1):
            due = f" · Due {m.due_date.isoformat()}" if m.due_date else ""
            lines.append(f"{i}. {m.title}{due} ({format_urgency(m.urgency)})")
        return "📋 *Your Tasks*\n\n" + "\n".join(lines)

    def done(self, query: str) -> str:
        matched = fuzzy_match(query, self.store.get_undone(), self.policy.match_threshold)
        if matched is None:
            return _not_found(query)
        self.store.mark_done(matched.id)
        logger.info("Marked %s done via reply %r", matched.id, query)
        return f"✅ Marked as done: *{matched.title}*"

    def snooze(self, query: str) -> str:
        matched = fuzzy_match(query, self.store.get_undone(), self.policy.match_threshold)
        if matched is None:
            return _not_found(query)
        self.snoozer.snooze(matched)
        return f"⏰ Snoozed *{matched.title}* for {_hours(self.policy.snooze_hours)} hours."


def _not_found(query: str) -> str:
    return f'❓ Couldn\'t find a task matching "{query}". Try *list* to see tasks.'
