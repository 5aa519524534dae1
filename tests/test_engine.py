from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta
from unittest.mock import patch
from zoneinfo import ZoneInfo

from fakes import FakeStore, StubChannel, StubOracle, TimerRecorder
from nudge.config.settings import ReminderPolicy, Settings
from nudge.core.engine import ReminderEngine
from nudge.core.snooze import SnoozeManager
from nudge.memory.store import PostgresItemStore
from nudge.memory.types import MemoryItem

TZ = ZoneInfo("Asia/Kolkata")
NOW = datetime(2026, 10, 18, 11, 0, tzinfo=TZ)


class ReminderEngineTests(unittest.TestCase):
    def _engine(self, store: FakeStore, oracle: StubOracle, channel: StubChannel) -> ReminderEngine:
        return ReminderEngine.assemble(ReminderPolicy(), store, oracle, channel, "+911234")

    def test_hourly_run_selects_sends_and_dedups(self) -> None:
        store = FakeStore(
            [
                MemoryItem(id="rent", title="Pay rent", due_date=date(2026, 10, 18), urgency=10),
                MemoryItem(id="mom", title="Call mom", urgency=6),
            ]
        )
        oracle = StubOracle('["rent"]', '["rent", "mom"]')
        channel = StubChannel()
        engine = self._engine(store, oracle, channel)

        self.assertEqual(engine.run_reminders(NOW), ["rent"])
        self.assertEqual(engine.run_reminders(NOW), ["mom"])
        self.assertEqual(len(channel.sent), 2)
        self.assertIn("Call mom", channel.sent[1][1])
        self.assertNotIn("Pay rent", channel.sent[1][1])

    def test_run_releases_snooze_set_by_another_process(self) -> None:
        item = MemoryItem(id="mom", title="Call mom", urgency=6)
        store = FakeStore([item])
        oracle = StubOracle('["mom"]')
        engine = self._engine(store, oracle, StubChannel())
        cli_snoozer = SnoozeManager(store=store, policy=ReminderPolicy(), timer_factory=TimerRecorder())
        snoozed_at = NOW.replace(hour=14)
        cli_snoozer.snooze(item, snoozed_at)

        self.assertEqual(engine.run_reminders(snoozed_at + timedelta(hours=2)), [])
        self.assertEqual(oracle.requests, [])
        self.assertEqual(engine.run_reminders(snoozed_at + timedelta(hours=6)), ["mom"])

    def test_run_with_empty_selection_sends_nothing(self) -> None:
        store = FakeStore([MemoryItem(id="mom", title="Call mom", urgency=6)])
        channel = StubChannel()
        engine = self._engine(store, StubOracle("[]"), channel)
        self.assertEqual(engine.run_reminders(NOW), [])
        self.assertEqual(channel.sent, [])

    def test_failed_send_retries_next_run(self) -> None:
        store = FakeStore([MemoryItem(id="mom", title="Call mom", urgency=6)])
        channel = StubChannel(fail=True)
        engine = self._engine(store, StubOracle('["mom"]', '["mom"]'), channel)
        self.assertEqual(engine.run_reminders(NOW), [])
        channel.fail = False
        self.assertEqual(engine.run_reminders(NOW), ["mom"])

    def test_upsert_triggers_background_scoring(self) -> None:
        store = FakeStore()
        oracle = StubOracle('[{"id": "tax", "urgency": 12}]')
        engine = self._engine(store, oracle, StubChannel())
        engine.upsert_item(MemoryItem(id="tax", title="Submit taxes", urgency=0))
        engine.scoring.join()
        engine.scoring.stop()
        self.assertEqual(store.get("tax").urgency, 10)

    def test_scoring_failure_does_not_fail_upsert(self) -> None:
        store = FakeStore()
        engine = self._engine(store, StubOracle("garbage"), StubChannel())
        engine.upsert_item(MemoryItem(id="tax", title="Submit taxes", urgency=3))
        engine.scoring.join()
        engine.scoring.stop()
        self.assertEqual(store.get("tax").urgency, 3)

    def test_delete_clears_notification_history(self) -> None:
        store = FakeStore([MemoryItem(id="mom", title="Call mom", urgency=6)])
        engine = self._engine(store, StubOracle('["mom"]', '["mom"]'), StubChannel())
        self.assertEqual(engine.run_reminders(NOW), ["mom"])

        self.assertTrue(engine.delete_item("mom"))
        self.assertEqual(store.sent, {})
        store.upsert(MemoryItem(id="mom", title="Call mom", urgency=6))
        self.assertEqual(engine.run_reminders(NOW), ["mom"])

    def test_delete_unknown(self) -> None:
        engine = self._engine(FakeStore(), StubOracle(), StubChannel())
        self.assertFalse(engine.delete_item("nope"))

    def test_commands_route_through_engine(self) -> None:
        store = FakeStore([MemoryItem(id="mom", title="Call mom", urgency=6)])
        engine = self._engine(store, StubOracle(), StubChannel())
        self.assertIn("Marked as done", engine.handle_command("done mom"))
        self.assertTrue(store.get("mom").done)


class EngineBuildTests(unittest.TestCase):
    def test_build_wires_settings(self) -> None:
        settings = Settings(llm_api_key="k", reminder_recipient="+91", snooze_hours=2, db_password="pw")
        with patch("nudge.memory.store.psycopg2.connect") as connect:
            engine = ReminderEngine.build(settings, channel=StubChannel())
            connect.assert_not_called()
        self.assertIsInstance(engine.store, PostgresItemStore)
        self.assertEqual(engine.store.config.password, "pw")
        self.assertEqual(engine.snoozer.policy.snooze_hours, 2)
        self.assertEqual(engine.delivery.recipient, "+91")
        self.assertIsNotNone(engine.selector.oracle)
        self.assertIs(engine.selector.oracle, engine.scorer.oracle)

    def test_build_without_key_disables_oracle(self) -> None:
        engine = ReminderEngine.build(Settings(), channel=StubChannel(), store=FakeStore())
        self.assertIsNone(engine.selector.oracle)
        self.assertIsNone(engine.scorer.oracle)


if __name__ == "__main__":
    unittest.main()
