from __future__ import annotations

import unittest
from datetime import date, datetime
from zoneinfo import ZoneInfo

from fakes import FakeStore, StubChannel
from nudge.config.settings import ReminderPolicy
from nudge.core.delivery import ReminderDelivery, build_message, format_due
from nudge.memory.types import ItemType, MemoryItem

TZ = ZoneInfo("Asia/Kolkata")
NOW = datetime(2026, 10, 18, 14, 0, tzinfo=TZ)
TODAY = NOW.date()


def _store() -> FakeStore:
    return FakeStore(
        [
            MemoryItem(
                id="rent",
                title="Pay rent",
                type=ItemType.TASK,
                detail="Transfer to landlord",
                due_date=TODAY,
                urgency=10,
            ),
            MemoryItem(id="party", title="Ana's party", type=ItemType.EVENT, due_date=date(2026, 10, 21), urgency=6.5),
            MemoryItem(id="bob", title="Ask Bob about jazz", type=ItemType.PERSON, urgency=4),
        ]
    )


class FormatTests(unittest.TestCase):
    def test_format_due(self) -> None:
        self.assertEqual(format_due(TODAY, TODAY), "Today")
        self.assertEqual(format_due(date(2026, 10, 21), TODAY), "Oct 21")
        self.assertEqual(format_due(date(2026, 11, 3), TODAY), "Nov 3")

    def test_build_message(self) -> None:
        store = _store()
        message = build_message([store.get("rent"), store.get("party"), store.get("bob")], TODAY)
        expected = "\n".join(
            [
                "🧠 *Memory Reminder*",
                "",
                "✅ *Pay rent*",
                "   Due: Today · Urgency: 10/10",
                "   Transfer to landlord",
                "",
                "📅 *Ana's party*",
                "   Due: Oct 21 · Urgency: 6.5/10",
                "",
                "👤 *Ask Bob about jazz*",
                "   Urgency: 4/10",
                "",
                "Reply: *done [task]* · *snooze [task]* · *list* · *help*",
            ]
        )
        self.assertEqual(message, expected)


class ReminderDeliveryTests(unittest.TestCase):
    def _delivery(self, store: FakeStore, channel: StubChannel, recipient: str | None = "+911234") -> ReminderDelivery:
        return ReminderDelivery(store=store, channel=channel, recipient=recipient, policy=ReminderPolicy())

    def test_sends_one_message_and_records_markers(self) -> None:
        store = _store()
        channel = StubChannel()
        sent = self._delivery(store, channel).send_reminders(["party", "rent"], NOW)
        self.assertEqual([m.id for m in sent], ["party", "rent"])
        self.assertEqual(len(channel.sent), 1)
        recipient, body = channel.sent[0]
        self.assertEqual(recipient, "+911234")
        self.assertLess(body.index("Ana's party"), body.index("Pay rent"))
        self.assertTrue(store.has_sent_today("party", "2026-10-18"))
        self.assertTrue(store.has_sent_today("rent", "2026-10-18"))
        self.assertFalse(store.has_sent_today("bob", "2026-10-18"))

    def test_drops_items_completed_since_selection(self) -> None:
        store = _store()
        store.mark_done("rent")
        channel = StubChannel()
        sent = self._delivery(store, channel).send_reminders(["rent", "bob", "ghost"], NOW)
        self.assertEqual([m.id for m in sent], ["bob"])
        self.assertNotIn("Pay rent", channel.sent[0][1])
        self.assertFalse(store.has_sent_today("rent", "2026-10-18"))

    def test_nothing_resolves_sends_nothing(self) -> None:
        store = _store()
        store.delete("bob")
        channel = StubChannel()
        self.assertEqual(self._delivery(store, channel).send_reminders(["bob"], NOW), [])
        self.assertEqual(channel.sent, [])

    def test_failed_send_records_nothing(self) -> None:
        store = _store()
        channel = StubChannel(fail=True)
        self.assertEqual(self._delivery(store, channel).send_reminders(["rent", "party"], NOW), [])
        self.assertEqual(store.sent, {})

    def test_missing_recipient_records_nothing(self) -> None:
        store = _store()
        channel = StubChannel()
        self.assertEqual(self._delivery(store, channel, recipient=None).send_reminders(["rent"], NOW), [])
        self.assertEqual(channel.sent, [])
        self.assertEqual(store.sent, {})


if __name__ == "__main__":
    unittest.main()
