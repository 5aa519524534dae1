from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

import psycopg2
from psycopg2.extras import RealDictCursor

from nudge.memory.types import ItemType, MemoryItem, SentMarker, clamp_urgency

logger = logging.getLogger(__name__)

SCHEMA = """
create table if not exists memory_items (
    id text primary key,
    type text not null default 'note',
    title text not null,
    detail text not null default '',
    tags text[] not null default '{}',
    done boolean not null default false,
    due_date date,
    urgency double precision not null default 0 check (urgency >= 0 and urgency <= 10),
    created_at timestamptz not null,
    updated_at timestamptz not null
);

create index if not exists memory_items_undone_urgency
    on memory_items (urgency desc) where not done;

create table if not exists reminders_sent (
    id bigserial primary key,
    memory_id text not null references memory_items (id) on delete cascade,
    day_key text not null,
    sent_at timestamptz not null,
    release_at timestamptz,
    unique (memory_id, day_key)
);
"""

_ITEM_COLUMNS = "id, type, title, detail, tags, done, due_date, urgency, created_at, updated_at"


class ItemStore(ABC):
    """Persistence contract for memory items and per-day sent markers."""

    @abstractmethod
    def upsert(self, item: MemoryItem) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, item_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def get(self, item_id: str) -> MemoryItem | None:
        raise NotImplementedError

    @abstractmethod
    def get_all(self) -> list[MemoryItem]:
        raise NotImplementedError

    @abstractmethod
    def get_undone(self) -> list[MemoryItem]:
        """Undone items ordered by urgency, highest first."""
        raise NotImplementedError

    @abstractmethod
    def mark_done(self, item_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def set_urgency(self, item_id: str, urgency: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def has_sent_today(self, item_id: str, day_key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def record_sent(self, item_id: str, day_key: str, release_at: datetime | None = None) -> None:
        """Insert the (item, day) marker; a duplicate insert is a no-op.

        ``release_at`` marks a snooze; it is written even when the marker
        already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def clear_sent_today(self, item_id: str, day_key: str, release_at: datetime | None = None) -> None:
        """Delete the (item, day) marker.

        With ``release_at``, only a snooze marker due at or before that time
        is deleted, so a stale timer cannot undo a later snooze.
        """
        raise NotImplementedError

    @abstractmethod
    def pending_snoozes(self) -> list[SentMarker]:
        raise NotImplementedError

    def ensure_schema(self) -> None:
        return None

    def close(self) -> None:
        return None


@dataclass
class StoreConfig:
    host: str
    port: int
    dbname: str
    user: str
    password: str | None


@dataclass
class PostgresItemStore(ItemStore):
    config: StoreConfig
    _conn: psycopg2.extensions.connection | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def _connection(self) -> psycopg2.extensions.connection:
        with self._lock:
            if self._conn is not None and not self._conn.closed:
                return self._conn
            self._conn = psycopg2.connect(
                host=self.config.host,
                port=self.config.port,
                dbname=self.config.dbname,
                user=self.config.user,
                password=self.config.password,
            )
            self._conn.autocommit = True
            return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def ensure_schema(self) -> None:
        with self._connection().cursor() as cur:
            cur.execute(SCHEMA)
        logger.info("Schema ready on %s/%s", self.config.host, self.config.dbname)

    def upsert(self, item: MemoryItem) -> None:
        now = datetime.now(timezone.utc)
        with self._connection().cursor() as cur:
            cur.execute(
                """
                insert into memory_items (id, type, title, detail, tags, done, due_date, urgency, created_at, updated_at)
                values (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                on conflict (id)
                do update set
                    type = excluded.type,
                    title = excluded.title,
                    detail = excluded.detail,
                    tags = excluded.tags,
                    done = excluded.done,
                    due_date = excluded.due_date,
                    urgency = excluded.urgency,
                    updated_at = excluded.updated_at
                """,
                (
                    item.id,
                    item.type.value,
                    item.title,
                    item.detail or "",
                    sorted(item.tags),
                    item.done,
                    item.due_date,
                    clamp_urgency(item.urgency),
                    item.created_at or now,
                    now,
                ),
            )

    def delete(self, item_id: str) -> bool:
        # reminders_sent rows go with the item (on delete cascade)
        with self._connection().cursor() as cur:
            cur.execute("delete from memory_items where id = %s", (item_id,))
            return cur.rowcount > 0

    def get(self, item_id: str) -> MemoryItem | None:
        with self._connection().cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(f"select {_ITEM_COLUMNS} from memory_items where id = %s", (item_id,))
            row = cur.fetchone()
        return _row_to_item(row) if row else None

    def get_all(self) -> list[MemoryItem]:
        with self._connection().cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(f"select {_ITEM_COLUMNS} from memory_items order by created_at desc")
            rows = cur.fetchall()
        return [_row_to_item(row) for row in rows]

    def get_undone(self) -> list[MemoryItem]:
        with self._connection().cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                select {_ITEM_COLUMNS}
                from memory_items
                where not done
                order by urgency desc, created_at asc
                """
            )
            rows = cur.fetchall()
        return [_row_to_item(row) for row in rows]

    def mark_done(self, item_id: str) -> bool:
        with self._connection().cursor() as cur:
            cur.execute(
                "update memory_items set done = true, updated_at = %s where id = %s",
                (datetime.now(timezone.utc), item_id),
            )
            return cur.rowcount > 0

    def set_urgency(self, item_id: str, urgency: float) -> None:
        with self._connection().cursor() as cur:
            cur.execute(
                "update memory_items set urgency = %s, updated_at = %s where id = %s",
                (clamp_urgency(urgency), datetime.now(timezone.utc), item_id),
            )

    def has_sent_today(self, item_id: str, day_key: str) -> bool:
        with self._connection().cursor() as cur:
            cur.execute(
                "select 1 from reminders_sent where memory_id = %s and day_key = %s",
                (item_id, day_key),
            )
            return cur.fetchone() is not None

    def record_sent(self, item_id: str, day_key: str, release_at: datetime | None = None) -> None:
        now = datetime.now(timezone.utc)
        if release_at is None:
            sql = """
                insert into reminders_sent (memory_id, day_key, sent_at, release_at)
                values (%s, %s, %s, %s)
                on conflict (memory_id, day_key) do nothing
            """
        else:
            sql = """
                insert into reminders_sent (memory_id, day_key, sent_at, release_at)
                values (%s, %s, %s, %s)
                on conflict (memory_id, day_key)
                do update set release_at = excluded.release_at
            """
        with self._connection().cursor() as cur:
            cur.execute(sql, (item_id, day_key, now, release_at))

    def clear_sent_today(self, item_id: str, day_key: str, release_at: datetime | None = None) -> None:
        sql = "delete from reminders_sent where memory_id = %s and day_key = %s"
        params: tuple = (item_id, day_key)
        if release_at is not None:
            sql += " and release_at <= %s"
            params = (item_id, day_key, release_at)
        with self._connection().cursor() as cur:
            cur.execute(sql, params)

    def pending_snoozes(self) -> list[SentMarker]:
        with self._connection().cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                select memory_id, day_key, sent_at, release_at
                from reminders_sent
                where release_at is not null
                order by release_at asc
                """
            )
            rows = cur.fetchall()
        return [
            SentMarker(
                memory_id=row["memory_id"],
                day_key=row["day_key"],
                sent_at=row.get("sent_at"),
                release_at=row.get("release_at"),
            )
            for row in rows
        ]


def _row_to_item(row: dict) -> MemoryItem:
    return MemoryItem(
        id=row["id"],
        type=ItemType.parse(row.get("type")),
        title=row["title"],
        detail=row.get("detail") or "",
        tags=frozenset(row.get("tags") or []),
        done=bool(row.get("done")),
        due_date=row.get("due_date"),
        urgency=float(row.get("urgency") or 0),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )
