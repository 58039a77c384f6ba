"""
Codec between typed DTOs and the JSON records kept in the backing store.

Message record, one per log row::

    {"id", "type", "content", "date", "sender_email", "sender_name",
     "is_read", "schema_version"}

Summary entry, one element of a user's ``conversations`` list::

    {"id", "other_user_email", "name",
     "latest_message": {"date", "message", "is_read"}}
"""
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ValidationError

from .dto import (
    MessageDTO, MessageContent, TextContent, PhotoContent, VideoContent,
    LocationContent, UnsupportedContent, UNSUPPORTED_KINDS,
    ConversationSummaryDTO, LatestMessageDTO
)
from .errors import MalformedRecordError

SCHEMA_VERSION = 1

_PREVIEWS = {
    "photo": "Photo",
    "video": "Video",
    "location": "Location",
}


class _MessageRecord(BaseModel):
    id: str
    type: str
    content: str
    date: str
    sender_email: str
    sender_name: str = ""
    is_read: bool = False
    schema_version: int = SCHEMA_VERSION


class _LatestMessageRecord(BaseModel):
    date: str
    message: str = ""
    is_read: bool = False


class _SummaryRecord(BaseModel):
    id: str
    other_user_email: str
    name: str = ""
    latest_message: _LatestMessageRecord


def format_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_date(value: str, record_id: str | None = None) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise MalformedRecordError(f"Unparseable date {value!r}", record_id) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def encode_content(content: MessageContent) -> tuple[str, str]:
    """
    Split typed content into the stored (type tag, payload string) pair.
    Location is stored as "longitude,latitude".
    """
    if isinstance(content, TextContent):
        return content.kind, content.text
    if isinstance(content, (PhotoContent, VideoContent)):
        return content.kind, content.url
    if isinstance(content, LocationContent):
        return content.kind, f"{content.longitude},{content.latitude}"
    return content.kind, ""


def decode_content(kind: str, payload: str, record_id: str | None = None) -> MessageContent:
    if kind == "text":
        return TextContent(text=payload)
    if kind == "photo":
        return PhotoContent(url=payload)
    if kind == "video":
        return VideoContent(url=payload)
    if kind == "location":
        parts = payload.split(",")
        if len(parts) != 2:
            raise MalformedRecordError(f"Unparseable location {payload!r}", record_id)
        try:
            longitude, latitude = float(parts[0]), float(parts[1])
        except ValueError as e:
            raise MalformedRecordError(f"Unparseable location {payload!r}", record_id) from e
        return LocationContent(longitude=longitude, latitude=latitude)
    if kind in UNSUPPORTED_KINDS:
        return UnsupportedContent(kind=kind)
    raise MalformedRecordError(f"Unknown message type {kind!r}", record_id)


def preview_text(content: MessageContent) -> str:
    if isinstance(content, TextContent):
        return content.text
    return _PREVIEWS.get(content.kind, "")


def encode_message(message: MessageDTO) -> dict[str, Any]:
    kind, payload = encode_content(message.content)
    return {
        "id": message.id,
        "type": kind,
        "content": payload,
        "date": format_date(message.sent_at),
        "sender_email": message.sender_key,
        "sender_name": message.sender_name,
        "is_read": message.is_read,
        "schema_version": SCHEMA_VERSION,
    }


def decode_message(record: Any, seq: int | None = None) -> MessageDTO:
    """
    Validate a stored message record and build the typed message.
    :raises MalformedRecordError: missing required field, unparseable date
        or location, unknown type tag, or a newer schema version
    """
    record_id = record.get("id") if isinstance(record, dict) else None
    try:
        parsed = _MessageRecord.model_validate(record)
    except ValidationError as e:
        raise MalformedRecordError(f"Invalid message record: {e.error_count()} error(s)", record_id) from e

    if parsed.schema_version > SCHEMA_VERSION:
        raise MalformedRecordError(f"Unsupported schema version {parsed.schema_version}", parsed.id)

    return MessageDTO(
        id=parsed.id,
        sender_key=parsed.sender_email,
        sender_name=parsed.sender_name,
        sent_at=parse_date(parsed.date, parsed.id),
        content=decode_content(parsed.type, parsed.content, parsed.id),
        is_read=parsed.is_read,
        seq=seq
    )


def encode_latest_message(latest: LatestMessageDTO) -> dict[str, Any]:
    return {
        "date": format_date(latest.date),
        "message": latest.text,
        "is_read": latest.is_read,
    }


def encode_summary(summary: ConversationSummaryDTO) -> dict[str, Any]:
    return {
        "id": summary.id,
        "other_user_email": summary.other_user_key,
        "name": summary.name,
        "latest_message": encode_latest_message(summary.latest_message),
    }


def decode_summary(entry: Any) -> ConversationSummaryDTO:
    record_id = entry.get("id") if isinstance(entry, dict) else None
    try:
        parsed = _SummaryRecord.model_validate(entry)
    except ValidationError as e:
        raise MalformedRecordError(f"Invalid summary entry: {e.error_count()} error(s)", record_id) from e

    return ConversationSummaryDTO(
        id=parsed.id,
        other_user_key=parsed.other_user_email,
        name=parsed.name,
        latest_message=LatestMessageDTO(
            date=parse_date(parsed.latest_message.date, parsed.id),
            text=parsed.latest_message.message,
            is_read=parsed.latest_message.is_read
        )
    )


def latest_message_for(message: MessageDTO) -> LatestMessageDTO:
    return LatestMessageDTO(
        date=message.sent_at,
        text=preview_text(message.content),
        is_read=False
    )
