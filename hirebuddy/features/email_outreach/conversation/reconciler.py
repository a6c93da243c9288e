"""
Conversation reconciliation.

Merges locally stored and remotely fetched records for one contact into a
single deduplicated, time-ordered thread. The function is pure: it reads no
clock and no session, and the same inputs always give the same thread.
"""

import hashlib
import re
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime

from hirebuddy.features.email_outreach.domain.models import (
    NO_SUBJECT,
    OUTBOUND_FAMILY,
    ConversationStats,
    ConversationThread,
    EmailRecord,
)
from hirebuddy.features.email_outreach.formatting.content_formatter import visible_text
from hirebuddy.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")

CompositeKey = tuple[str, str, str, str, datetime]


def _normalize_text(value: str) -> str:
    return _WHITESPACE.sub(" ", value or "").strip().lower()


def body_hash(body: str) -> str:
    """Hash of the visible body text, so HTML and plain copies hash alike."""
    text = _WHITESPACE.sub(" ", visible_text(body)).strip()
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def composite_key(record: EmailRecord) -> CompositeKey:
    return (
        _normalize_text(record.sender),
        _normalize_text(record.recipient),
        _normalize_text(record.subject),
        body_hash(record.body),
        record.sent_at.replace(second=0, microsecond=0),
    )


def _ids_decide(a: EmailRecord, b: EmailRecord) -> bool | None:
    """
    Compare provider ids.

    Returns True or False when ids settle the question, None when the
    composite key has to decide. Thread ids are shared by every message of a
    provider thread, so they only count when neither side has a message id.
    """
    if a.message_id and b.message_id:
        return a.message_id == b.message_id
    if not a.message_id and not b.message_id and a.thread_id and b.thread_id:
        return a.thread_id == b.thread_id
    return None


def _merge(kept: EmailRecord, duplicate: EmailRecord) -> EmailRecord:
    """Keep the first copy (local before remote) and absorb missing provider ids."""
    updates = {}
    if not kept.message_id and duplicate.message_id:
        updates["message_id"] = duplicate.message_id
    if not kept.thread_id and duplicate.thread_id:
        updates["thread_id"] = duplicate.thread_id
    return replace(kept, **updates) if updates else kept


def _dedupe(records: Sequence[EmailRecord]) -> list[EmailRecord]:
    kept: list[EmailRecord] = []
    by_message_id: dict[str, int] = {}
    by_composite: dict[CompositeKey, list[int]] = {}

    for record in records:
        key = composite_key(record)
        match = by_message_id.get(record.message_id) if record.message_id else None

        if match is None:
            for index in by_composite.get(key, []):
                if _ids_decide(kept[index], record) is not False:
                    match = index
                    break

        if match is None:
            for index, existing in enumerate(kept):
                if _ids_decide(existing, record) is True:
                    match = index
                    break

        if match is None:
            kept.append(record)
            index = len(kept) - 1
            by_composite.setdefault(key, []).append(index)
            if record.message_id:
                by_message_id[record.message_id] = index
            continue

        merged = _merge(kept[match], record)
        kept[match] = merged
        if merged.message_id:
            by_message_id.setdefault(merged.message_id, match)

    return kept


def classify(record: EmailRecord, authenticated_address: str) -> EmailRecord:
    """Assign the direction from the sender and any explicit follow-up marker."""
    if record.sender == authenticated_address:
        is_follow_up = record.direction == "follow_up" or (
            record.metadata.get("email_type") == "follow_up"
            or bool(record.metadata.get("is_follow_up"))
        )
        direction = "follow_up" if is_follow_up else "outbound"
    else:
        direction = "inbound"

    return record if record.direction == direction else replace(record, direction=direction)


def compute_stats(records: Sequence[EmailRecord]) -> ConversationStats:
    outbound = sum(1 for record in records if record.direction in OUTBOUND_FAMILY)
    follow_ups = sum(1 for record in records if record.direction == "follow_up")
    return ConversationStats(
        total=len(records),
        outbound_count=outbound,
        inbound_count=len(records) - outbound,
        follow_up_count=follow_ups,
        first_at=records[0].sent_at if records else None,
        last_at=records[-1].sent_at if records else None,
    )


def anchor_subject(records: Sequence[EmailRecord]) -> str:
    for record in records:
        if record.direction == "outbound":
            return record.subject
    return records[0].subject if records else NO_SUBJECT


def reconcile(
    contact_id: str,
    local_records: Sequence[EmailRecord],
    remote_records: Sequence[EmailRecord],
    *,
    authenticated_address: str,
) -> ConversationThread:
    """
    Build the conversation thread for one contact.

    Args:
        contact_id: Contact the thread belongs to
        local_records: Records from the local store, already normalized
        remote_records: Records fetched from the provider, already normalized
        authenticated_address: Mailbox address of the signed-in user

    Returns:
        ConversationThread with full records, visible records, anchor subject
        and stats computed over every deduplicated record
    """
    account = authenticated_address.strip().lower()
    candidates: list[EmailRecord] = []
    dropped = 0

    for record in [*local_records, *remote_records]:
        if record.contact_id != contact_id or not record.sender:
            dropped += 1
            continue
        candidates.append(record)

    if dropped:
        logger.warning(
            "Dropped records that do not belong to the conversation",
            contact_id=contact_id,
            dropped=dropped,
        )

    deduped = _dedupe(candidates)
    classified = [classify(record, account) for record in deduped]
    # Stable sort keeps local-before-remote insertion order on equal timestamps.
    ordered = sorted(classified, key=lambda record: record.sent_at)
    visible = tuple(record for record in ordered if visible_text(record.body))

    logger.debug(
        "Conversation reconciled",
        contact_id=contact_id,
        local_count=len(local_records),
        remote_count=len(remote_records),
        merged_count=len(ordered),
    )

    return ConversationThread(
        contact_id=contact_id,
        records=tuple(ordered),
        visible_records=visible,
        anchor_subject=anchor_subject(ordered),
        stats=compute_stats(ordered),
        dropped_count=dropped,
    )
