"""
Tests for boundary normalization of local rows and provider payloads.
"""

from datetime import UTC, datetime

import pytest

from hirebuddy.features.email_outreach.conversation.normalizer import (
    extract_remote_messages,
    local_record_from_row,
    normalize_address,
    normalize_many,
    parse_timestamp,
    remote_record_from_payload,
)
from hirebuddy.features.email_outreach.domain.errors import MalformedRecordError
from hirebuddy.features.email_outreach.domain.models import NO_SUBJECT

NOON = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    "value",
    [
        NOON,
        "2025-03-10T12:00:00Z",
        "2025-03-10T13:00:00+01:00",
        "Mon, 10 Mar 2025 12:00:00 +0000",
        1741608000,
        1741608000000,
        "1741608000000",
    ],
)
def test_parse_timestamp_formats(value):
    assert parse_timestamp(value) == NOON


def test_parse_timestamp_assumes_utc_for_naive_values():
    parsed = parse_timestamp(datetime(2025, 3, 10, 12, 0))
    assert parsed == NOON
    assert parsed.tzinfo is not None


@pytest.mark.parametrize("value", [None, "", "yesterday-ish", ["2025"]])
def test_parse_timestamp_rejects_garbage(value):
    with pytest.raises(MalformedRecordError):
        parse_timestamp(value)


def test_normalize_address():
    assert normalize_address('"Jane Doe" <Jane@Acme.com>') == "jane@acme.com"
    assert normalize_address("  ME@Example.COM ") == "me@example.com"
    assert normalize_address(None) == ""


def test_local_row_directions():
    row = {
        "id": 7,
        "contact_id": "contact-1",
        "sender_email": "me@example.com",
        "recipient_email": "jane@acme.com",
        "subject": "",
        "body": None,
        "email_type": "outbound",
        "sent_at": NOON,
        "metadata": None,
    }

    record = local_record_from_row(row)
    assert record.direction == "outbound"
    assert record.subject == NO_SUBJECT
    assert record.body == ""
    assert record.record_id == "7"
    assert record.source == "local"

    assert local_record_from_row({**row, "email_type": "follow_up"}).direction == "follow_up"
    assert local_record_from_row({**row, "email_type": "inbound"}).direction == "inbound"
    flagged = {**row, "metadata": {"is_follow_up": True}}
    assert local_record_from_row(flagged).direction == "follow_up"


def test_local_row_without_sender_is_malformed():
    with pytest.raises(MalformedRecordError):
        local_record_from_row({"contact_id": "contact-1", "sender_email": "", "sent_at": NOON})


def test_remote_payload_aliases():
    record = remote_record_from_payload(
        {
            "messageId": "m1",
            "threadId": "t1",
            "From": "Jane Doe <jane@acme.com>",
            "To": "me@example.com",
            "Subject": "Re: Hi",
            "snippet": "Sounds good",
            "internalDate": "1741608000000",
            "labelIds": ["INBOX"],
        },
        "contact-1",
    )

    assert record.message_id == "m1"
    assert record.thread_id == "t1"
    assert record.sender == "jane@acme.com"
    assert record.recipient == "me@example.com"
    assert record.subject == "Re: Hi"
    assert record.body == "Sounds good"
    assert record.sent_at == NOON
    assert record.direction == "inbound"
    assert record.source == "remote"
    assert record.metadata == {"labelIds": ["INBOX"]}


def test_remote_payload_follow_up_marker():
    record = remote_record_from_payload(
        {"from": "me@example.com", "date": "2025-03-10T12:00:00Z", "email_type": "follow_up"},
        "contact-1",
    )
    assert record.direction == "follow_up"


def test_remote_payload_without_date_is_dropped_not_stamped():
    payloads = [
        {"from": "jane@acme.com", "body": "no date"},
        {"from": "jane@acme.com", "body": "dated", "date": "2025-03-10T12:00:00Z"},
        "not a message",
        {"date": "2025-03-10T12:00:00Z", "body": "no sender"},
    ]

    records, dropped = normalize_many(
        payloads, lambda p: remote_record_from_payload(p, "contact-1"), source="remote"
    )

    assert [r.body for r in records] == ["dated"]
    assert dropped == 3


@pytest.mark.parametrize(
    "response,expected",
    [
        (None, 0),
        ([{"id": "a"}, {"id": "b"}], 2),
        ({"messages": [{"id": "a"}]}, 1),
        ({"emails": [{"id": "a"}, {"id": "b"}]}, 2),
        ({"conversation": []}, 0),
        ({"id": "single"}, 1),
        ("unexpected", 0),
    ],
)
def test_extract_remote_messages(response, expected):
    assert len(extract_remote_messages(response)) == expected
