from __future__ import annotations

import io
import json
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

from fakes import FakeStore, StubChannel, StubOracle
from nudge import cli
from nudge.config.settings import ReminderPolicy, Settings
from nudge.core.engine import ReminderEngine
from nudge.memory.types import MemoryItem


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = FakeStore([MemoryItem(id="mom", title="Call mom", urgency=6)])
        self.oracle = StubOracle()
        self.engine = ReminderEngine.assemble(ReminderPolicy(), self.store, self.oracle, StubChannel(), "+91")
        patches = [
            patch("nudge.cli.Settings.load", return_value=Settings()),
            patch("nudge.cli.configure_logging"),
            patch("nudge.cli.ReminderEngine.build", return_value=self.engine),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def _run(self, *argv: str) -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = cli.main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def test_reply(self) -> None:
        code, out, _ = self._run("reply", "done", "call", "mom")
        self.assertEqual(code, 0)
        self.assertIn("Marked as done: *Call mom*", out)
        self.assertTrue(self.store.get("mom").done)

    def test_delete_unknown_exits_nonzero(self) -> None:
        code, _, err = self._run("delete", "ghost")
        self.assertEqual(code, 1)
        self.assertIn("not found: ghost", err)

    def test_delete(self) -> None:
        code, out, _ = self._run("delete", "mom")
        self.assertEqual(code, 0)
        self.assertIsNone(self.store.get("mom"))

    def test_upsert_scores_and_waits(self) -> None:
        self.oracle.replies.append('[{"id": "rent", "urgency": 9.5}]')
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "items.json"
            path.write_text(json.dumps({"id": "rent", "title": "Pay rent", "type": "task"}), encoding="utf-8")
            code, out, _ = self._run("upsert", str(path))
        self.assertEqual(code, 0)
        self.assertIn("upserted 1 item(s)", out)
        self.assertEqual(self.store.get("rent").urgency, 9.5)

    def test_upsert_bad_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "items.json"
            path.write_text('[{"title": "no id"}]', encoding="utf-8")
            code, _, err = self._run("upsert", str(path))
        self.assertEqual(code, 1)
        self.assertIn("cannot load", err)

    def test_list_json(self) -> None:
        code, out, _ = self._run("list", "--json")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual([p["id"] for p in payload], ["mom"])
        self.assertEqual(payload[0]["title"], "Call mom")
        self.assertEqual(payload[0]["urgency"], 6)
        self.assertFalse(payload[0]["done"])

    def test_list_plain(self) -> None:
        self.store.mark_done("mom")
        code, out, _ = self._run("list")
        self.assertEqual(code, 0)
        self.assertIn("[x] mom", out)
        self.assertIn("Call mom", out)

    def test_remind(self) -> None:
        self.oracle.replies.append('["mom"]')
        code, out, _ = self._run("remind")
        self.assertEqual(code, 0)
        self.assertIn("reminder(s)", out)


if __name__ == "__main__":
    unittest.main()
