"""
Boundary normalization for email records.

Local rows and remote provider payloads have different shapes. Both are
turned into `EmailRecord` here so the reconciler only ever sees one shape.
"""

from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

from hirebuddy.features.email_outreach.domain.errors import MalformedRecordError
from hirebuddy.features.email_outreach.domain.models import NO_SUBJECT, EmailRecord
from hirebuddy.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Remote payload field aliases, in lookup order
_ID_KEYS = ("id", "messageId", "message_id")
_THREAD_KEYS = ("threadId", "thread_id")
_SUBJECT_KEYS = ("subject", "Subject")
_SENDER_KEYS = ("from", "From", "sender", "sender_email")
_RECIPIENT_KEYS = ("to", "To", "recipient", "recipient_email")
_BODY_KEYS = ("body", "Body", "content", "snippet")
_DATE_KEYS = ("date", "Date", "sent_at", "timestamp", "internalDate")
_LIST_KEYS = ("messages", "emails", "conversation")


def _first(payload: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def normalize_address(value: Any) -> str:
    """Reduce `Name <addr>` or `addr` to a lowercase address."""
    if not value:
        return ""

    text = str(value).strip()
    if "<" in text and ">" in text:
        text = text.split("<", 1)[1].split(">", 1)[0]
    return text.strip().strip('"').lower()


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a provider or database timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings, RFC 2822 strings and epoch values
    (milliseconds when large enough, seconds otherwise).

    Raises:
        MalformedRecordError: If the value cannot be parsed
    """
    if value is None or value == "":
        raise MalformedRecordError("Missing timestamp")

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, int | float) or (isinstance(value, str) and value.strip().isdigit()):
        epoch = float(value)
        if epoch > 1e11:
            epoch /= 1000
        try:
            parsed = datetime.fromtimestamp(epoch, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise MalformedRecordError(f"Invalid epoch timestamp: {value!r}") from e
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = parsedate_to_datetime(text)
            except (TypeError, ValueError) as e:
                raise MalformedRecordError(f"Unparseable timestamp: {value!r}") from e
    else:
        raise MalformedRecordError(f"Unsupported timestamp type: {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _declares_follow_up(email_type: Any, metadata: Mapping[str, Any]) -> bool:
    return (
        email_type == "follow_up"
        or metadata.get("email_type") == "follow_up"
        or bool(metadata.get("is_follow_up"))
    )


def local_record_from_row(row: Mapping[str, Any]) -> EmailRecord:
    """Build an EmailRecord from an `email_records` table row."""
    metadata = dict(row.get("metadata") or {})
    sender = normalize_address(row.get("sender_email"))
    if not sender or not row.get("contact_id"):
        raise MalformedRecordError("Local record is missing sender or contact id")

    email_type = row.get("email_type")
    if _declares_follow_up(email_type, metadata):
        direction = "follow_up"
    elif email_type == "inbound":
        direction = "inbound"
    else:
        direction = "outbound"

    return EmailRecord(
        contact_id=str(row["contact_id"]),
        sender=sender,
        recipient=normalize_address(row.get("recipient_email")),
        subject=row.get("subject") or NO_SUBJECT,
        body=row.get("body") or "",
        direction=direction,
        sent_at=parse_timestamp(row.get("sent_at")),
        source="local",
        message_id=row.get("message_id") or None,
        thread_id=row.get("thread_id") or None,
        record_id=str(row["id"]) if row.get("id") is not None else None,
        metadata=metadata,
    )


def remote_record_from_payload(payload: Mapping[str, Any], contact_id: str) -> EmailRecord:
    """Build an EmailRecord from one message returned by the mail provider."""
    if not isinstance(payload, Mapping):
        raise MalformedRecordError(f"Remote message is not an object: {type(payload).__name__}")

    sender = normalize_address(_first(payload, _SENDER_KEYS))
    if not sender:
        raise MalformedRecordError("Remote message has no sender")

    metadata = {
        key: payload[key] for key in ("email_type", "is_follow_up", "labelIds") if key in payload
    }
    message_id = _first(payload, _ID_KEYS)
    thread_id = _first(payload, _THREAD_KEYS)

    return EmailRecord(
        contact_id=contact_id,
        sender=sender,
        recipient=normalize_address(_first(payload, _RECIPIENT_KEYS)),
        subject=_first(payload, _SUBJECT_KEYS) or NO_SUBJECT,
        body=_first(payload, _BODY_KEYS) or "",
        direction="follow_up" if _declares_follow_up(None, metadata) else "inbound",
        sent_at=parse_timestamp(_first(payload, _DATE_KEYS)),
        source="remote",
        message_id=str(message_id) if message_id else None,
        thread_id=str(thread_id) if thread_id else None,
        metadata=metadata,
    )


def extract_remote_messages(response: Any) -> list[Any]:
    """Pull the message list out of whatever envelope the provider returned."""
    if response is None:
        return []
    if isinstance(response, list):
        return response
    if isinstance(response, Mapping):
        for key in _LIST_KEYS:
            if isinstance(response.get(key), list):
                return response[key]
        return [response]

    logger.warning("Unexpected conversation response shape", response_type=type(response).__name__)
    return []


def normalize_many(
    items: Iterable[Any], build: Callable[[Any], EmailRecord], source: str
) -> tuple[list[EmailRecord], int]:
    """
    Normalize a batch, dropping malformed entries.

    Returns:
        Tuple of (records, dropped_count)
    """
    records: list[EmailRecord] = []
    dropped = 0
    for item in items:
        try:
            records.append(build(item))
        except MalformedRecordError as e:
            dropped += 1
            logger.warning("Dropping malformed email record", source=source, error=str(e))
    return records, dropped
