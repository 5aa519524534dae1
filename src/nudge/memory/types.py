from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

URGENCY_MIN = 0.0
URGENCY_MAX = 10.0


class ItemType(str, Enum):
    TASK = "task"
    NOTE = "note"
    EVENT = "event"
    PERSON = "person"

    @classmethod
    def parse(cls, value: str | None) -> "ItemType":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.NOTE


def clamp_urgency(value: float) -> float:
    if math.isnan(value):
        return URGENCY_MIN
    return min(URGENCY_MAX, max(URGENCY_MIN, float(value)))


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    # JS toISOString() ends with "Z"
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class MemoryItem:
    id: str
    title: str
    type: ItemType = ItemType.NOTE
    detail: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)
    done: bool = False
    due_date: date | None = None
    urgency: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "MemoryItem":
        """Build an item from a frontend payload (camelCase or snake_case keys)."""
        item_id = str(payload.get("id") or "").strip()
        title = str(payload.get("title") or "").strip()
        if not item_id or not title:
            raise ValueError("id and title required")
        due = payload.get("dueDate", payload.get("due_date"))
        return cls(
            id=item_id,
            title=title,
            type=ItemType.parse(payload.get("type")),
            detail=str(payload.get("detail") or ""),
            tags=frozenset(str(t) for t in payload.get("tags") or []),
            done=bool(payload.get("done", False)),
            due_date=_parse_date(due),
            urgency=clamp_urgency(float(payload.get("urgency") or 0)),
            created_at=_parse_timestamp(payload.get("createdAt", payload.get("created_at"))),
            updated_at=_parse_timestamp(payload.get("updatedAt", payload.get("updated_at"))),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "detail": self.detail,
            "tags": sorted(self.tags),
            "done": self.done,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "urgency": self.urgency,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class SentMarker:
    memory_id: str
    day_key: str
    sent_at: datetime | None = None
    release_at: datetime | None = None
