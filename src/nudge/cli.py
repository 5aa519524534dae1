from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import psycopg2

from nudge.config.settings import Settings
from nudge.core.engine import ReminderEngine
from nudge.core.loop import build_gateway, configure_logging
from nudge.memory.types import MemoryItem


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _check_db(settings: Settings) -> tuple[bool, str]:
    if not settings.db_password:
        return False, "DB_PASSWORD is empty"
    try:
        conn = psycopg2.connect(
            host=settings.db_host,
            port=settings.db_port,
            dbname=settings.db_name,
            user=settings.db_user,
            password=settings.db_password,
            connect_timeout=5,
        )
    except psycopg2.Error as exc:
        return False, str(exc).strip()
    try:
        with conn.cursor() as cur:
            cur.execute("select to_regclass('public.memory_items')")
            has_items = cur.fetchone()[0] is not None
            cur.execute("select to_regclass('public.reminders_sent')")
            has_sent = cur.fetchone()[0] is not None
    finally:
        conn.close()
    if not has_items or not has_sent:
        return False, "schema incomplete (run the daemon once to create it)"
    return True, "schema ok"


def doctor(settings: Settings) -> int:
    results: list[CheckResult] = []

    py_ok = sys.version_info >= (3, 10)
    results.append(CheckResult("python >= 3.10", py_ok, sys.version.split()[0]))

    results.append(CheckResult("llm api key", bool(settings.llm_api_key), settings.llm_model))
    results.append(
        CheckResult("reminder recipient", bool(settings.reminder_recipient), settings.reminder_recipient or "missing")
    )

    if settings.whatsapp_gateway_url:
        gw_ok = build_gateway(settings).health()
        results.append(CheckResult("gateway health", gw_ok, settings.whatsapp_gateway_url))
    else:
        results.append(CheckResult("gateway health", False, "WHATSAPP_GATEWAY_URL not set"))

    db_ok, db_detail = _check_db(settings)
    results.append(CheckResult("db", db_ok, db_detail))

    ok_all = True
    for r in results:
        status = "OK" if r.ok else "FAIL"
        print(f"[{status}] {r.name}: {r.detail}")
        if not r.ok:
            ok_all = False

    return 0 if ok_all else 1


def _load_items(path: Path) -> list[MemoryItem]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = [data]
    return [MemoryItem.from_payload(entry) for entry in data]


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="nudge")
    sub = parser.add_subparsers(dest="cmd")
    sub.required = True

    sub.add_parser("doctor", help="check configuration, gateway and database")
    sub.add_parser("remind", help="run the reminder decision now")
    sub.add_parser("rescore", help="re-score urgency of every undone item")
    p_upsert = sub.add_parser("upsert", help="create or update items from a JSON file")
    p_upsert.add_argument("file", type=Path)
    p_list = sub.add_parser("list", help="show every stored item")
    p_list.add_argument("--json", action="store_true", help="print items as a JSON array")
    p_delete = sub.add_parser("delete", help="delete an item and its reminder history")
    p_delete.add_argument("id")
    p_reply = sub.add_parser("reply", help="handle a reply as if it came from WhatsApp")
    p_reply.add_argument("text", nargs="+")

    args = parser.parse_args(list(argv) if argv is not None else None)
    settings = Settings.load()
    configure_logging(settings.log_level)

    if args.cmd == "doctor":
        return doctor(settings)

    engine = ReminderEngine.build(settings, channel=build_gateway(settings))

    if args.cmd == "remind":
        sent = engine.run_reminders()
        print(f"sent {len(sent)} reminder(s)")
        return 0

    if args.cmd == "rescore":
        engine.rescore()
        engine.scoring.join()
        return 0

    if args.cmd == "upsert":
        try:
            items = _load_items(args.file)
        except (OSError, ValueError) as exc:
            print(f"cannot load {args.file}: {exc}", file=sys.stderr)
            return 1
        for item in items:
            engine.store.upsert(item)
        engine.rescore()
        engine.scoring.join()
        print(f"upserted {len(items)} item(s)")
        return 0

    if args.cmd == "list":
        items = engine.store.get_all()
        if args.json:
            print(json.dumps([m.to_payload() for m in items], ensure_ascii=False, indent=2))
            return 0
        for m in items:
            status = "x" if m.done else " "
            print(f"[{status}] {m.id}  {m.urgency:4.1f}  {m.title}")
        return 0

    if args.cmd == "delete":
        if not engine.delete_item(args.id):
            print(f"not found: {args.id}", file=sys.stderr)
            return 1
        print(f"deleted {args.id}")
        return 0

    if args.cmd == "reply":
        print(engine.handle_command(" ".join(args.text)))
        return 0

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
