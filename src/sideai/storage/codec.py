# src/sideai/storage/codec.py

from __future__ import annotations

"""
Canonical collection serialization.

A collection is a JSON array of objects in the layout the macOS app's JSONEncoder
writes (with its .iso8601 date strategy), so the two read each other's files:

- camelCase keys in a fixed order per record kind
- identifiers as upper-case UUID strings
- timestamps as whole-second UTC ISO-8601 with a trailing "Z"
  (sub-second precision is dropped; naive datetimes are taken as local time)
- optional fields that are None are omitted
- compact separators, UTF-8

Encoding is deterministic: the same records always produce the same bytes.
"""

import json
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from ..core.errors import SerializationFailed
from ..records.models import Priority, Reminder, RepeatInterval, ScheduleEvent, Task

R = TypeVar("R", Task, ScheduleEvent, Reminder)


def format_timestamp(value: datetime) -> str:
    """Whole-second UTC, e.g. 2026-01-02T03:04:05Z (the only form Swift's .iso8601 accepts)."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(raw: Any) -> datetime:
    if not isinstance(raw, str):
        raise TypeError(f"timestamp must be a string, got {type(raw).__name__}")
    return datetime.fromisoformat(raw)


def _uuid_text(value: uuid.UUID) -> str:
    return str(value).upper()


def _req_str(d: dict[str, Any], key: str) -> str:
    v = d[key]
    if not isinstance(v, str):
        raise TypeError(f"{key} must be a string")
    return v


def _req_bool(d: dict[str, Any], key: str) -> bool:
    v = d[key]
    if not isinstance(v, bool):
        raise TypeError(f"{key} must be a boolean")
    return v


def _opt_ts(d: dict[str, Any], key: str) -> datetime | None:
    raw = d.get(key)
    return None if raw is None else parse_timestamp(raw)


# ---- per-kind encoders / decoders ----


def _encode_task(t: Task) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": _uuid_text(t.id),
        "title": t.title,
        "description": t.description,
    }
    if t.due_date is not None:
        out["dueDate"] = format_timestamp(t.due_date)
    out["priority"] = t.priority.value
    out["isCompleted"] = t.is_completed
    out["createdAt"] = format_timestamp(t.created_at)
    out["updatedAt"] = format_timestamp(t.updated_at)
    out["tags"] = list(t.tags)
    if t.reminder_date is not None:
        out["reminderDate"] = format_timestamp(t.reminder_date)
    return out


def _decode_task(d: dict[str, Any]) -> Task:
    tags = d["tags"]
    if not isinstance(tags, list) or not all(isinstance(x, str) for x in tags):
        raise TypeError("tags must be a list of strings")
    return Task(
        id=uuid.UUID(_req_str(d, "id")),
        title=_req_str(d, "title"),
        description=_req_str(d, "description"),
        due_date=_opt_ts(d, "dueDate"),
        priority=Priority(_req_str(d, "priority")),
        is_completed=_req_bool(d, "isCompleted"),
        created_at=parse_timestamp(d["createdAt"]),
        updated_at=parse_timestamp(d["updatedAt"]),
        tags=tuple(tags),
        reminder_date=_opt_ts(d, "reminderDate"),
    )


def _encode_event(e: ScheduleEvent) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": _uuid_text(e.id),
        "title": e.title,
        "description": e.description,
        "startDate": format_timestamp(e.start_date),
        "endDate": format_timestamp(e.end_date),
    }
    if e.location is not None:
        out["location"] = e.location
    out["isAllDay"] = e.is_all_day
    out["createdAt"] = format_timestamp(e.created_at)
    return out


def _decode_event(d: dict[str, Any]) -> ScheduleEvent:
    location = d.get("location")
    if location is not None and not isinstance(location, str):
        raise TypeError("location must be a string")
    return ScheduleEvent(
        id=uuid.UUID(_req_str(d, "id")),
        title=_req_str(d, "title"),
        description=_req_str(d, "description"),
        start_date=parse_timestamp(d["startDate"]),
        end_date=parse_timestamp(d["endDate"]),
        location=location,
        is_all_day=_req_bool(d, "isAllDay"),
        created_at=parse_timestamp(d["createdAt"]),
    )


def _encode_reminder(r: Reminder) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": _uuid_text(r.id),
        "title": r.title,
        "notes": r.notes,
        "reminderDate": format_timestamp(r.reminder_date),
        "isCompleted": r.is_completed,
    }
    if r.repeat_interval is not None:
        out["repeatInterval"] = r.repeat_interval.value
    out["createdAt"] = format_timestamp(r.created_at)
    return out


def _decode_reminder(d: dict[str, Any]) -> Reminder:
    raw_interval = d.get("repeatInterval")
    return Reminder(
        id=uuid.UUID(_req_str(d, "id")),
        title=_req_str(d, "title"),
        notes=_req_str(d, "notes"),
        reminder_date=parse_timestamp(d["reminderDate"]),
        is_completed=_req_bool(d, "isCompleted"),
        repeat_interval=None if raw_interval is None else RepeatInterval(raw_interval),
        created_at=parse_timestamp(d["createdAt"]),
    )


_CODECS: dict[type, tuple[Callable[[Any], dict[str, Any]], Callable[[dict[str, Any]], Any]]] = {
    Task: (_encode_task, _decode_task),
    ScheduleEvent: (_encode_event, _decode_event),
    Reminder: (_encode_reminder, _decode_reminder),
}


# ---- public API ----


def encode_collection(records: Sequence[R]) -> bytes:
    """Serialize a homogeneous collection. Raises SerializationFailed on mixed or unknown kinds."""
    items: list[dict[str, Any]] = []
    kind: type | None = None
    for rec in records:
        rec_type = type(rec)
        if rec_type not in _CODECS:
            raise SerializationFailed(f"cannot serialize {rec_type.__name__}")
        if kind is None:
            kind = rec_type
        elif rec_type is not kind:
            raise SerializationFailed(
                f"mixed collection: {kind.__name__} and {rec_type.__name__}"
            )
        encode, _ = _CODECS[rec_type]
        try:
            items.append(encode(rec))
        except (AttributeError, TypeError, ValueError) as exc:
            raise SerializationFailed(f"cannot serialize {rec_type.__name__} {rec.id}") from exc

    try:
        text = json.dumps(items, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise SerializationFailed("collection is not JSON-serializable") from exc
    return text.encode("utf-8")


def parse_document(data: bytes) -> Any:
    """
    Decode plaintext bytes into JSON.

    Raises ValueError (UnicodeDecodeError / JSONDecodeError) when the bytes are not
    UTF-8 JSON at all, which after decryption means a wrong key or damaged ciphertext.
    """
    return json.loads(data.decode("utf-8"))


def records_from_document(document: Any, record_type: type[R]) -> list[R]:
    """Build typed records from a parsed document. Raises SerializationFailed on bad structure."""
    if record_type not in _CODECS:
        raise SerializationFailed(f"unknown record type {record_type!r}")
    if not isinstance(document, list):
        raise SerializationFailed("collection document must be a JSON array")

    _, decode = _CODECS[record_type]
    out: list[R] = []
    for idx, item in enumerate(document):
        if not isinstance(item, dict):
            raise SerializationFailed(f"item #{idx} is not an object")
        try:
            out.append(decode(item))
        except (KeyError, TypeError, ValueError) as exc:
            raise SerializationFailed(
                f"item #{idx} is not a valid {record_type.__name__}: {exc}"
            ) from exc
    return out
