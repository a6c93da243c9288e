"""
Tests for the conversation read side: stale-response guard, remote fallback
and eligibility lists built from stored history.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from hirebuddy.db.helpers import DatabaseError
from hirebuddy.features.email_outreach.clients.mail_transport import MailTransportClientError
from hirebuddy.features.email_outreach.conversation import (
    ConversationFeed,
    ConversationService,
    reconcile,
    synthetic_contact,
)
from hirebuddy.features.email_outreach.domain.models import Contact
from hirebuddy.features.email_outreach.eligibility import EligibilityEngine

SERVICE = "hirebuddy.features.email_outreach.conversation.service"
ME = "me@example.com"


def _row(contact_id, email_type, sent_at, body="Hello", message_id=None, recipient="jane@acme.com"):
    outbound = email_type != "inbound"
    return {
        "id": f"{contact_id}-{sent_at.isoformat()}",
        "contact_id": contact_id,
        "sender_email": ME if outbound else recipient,
        "recipient_email": recipient if outbound else ME,
        "subject": "Hi",
        "body": body,
        "email_type": email_type,
        "message_id": message_id,
        "thread_id": None,
        "sent_at": sent_at,
        "metadata": {},
    }


@pytest.fixture
def transport():
    return AsyncMock()


@pytest.fixture
def service(transport):
    return ConversationService(
        transport=transport,
        engine=EligibilityEngine(
            outreach_cooldown=timedelta(days=7), follow_up_delay=timedelta(hours=24)
        ),
    )


@pytest.mark.asyncio
async def test_stale_response_is_discarded():
    feed = ConversationFeed()
    slow_started = asyncio.Event()
    release_slow = asyncio.Event()

    async def slow_fetch():
        slow_started.set()
        await release_slow.wait()
        return reconcile("contact-a", [], [], authenticated_address=ME)

    async def fast_fetch():
        return reconcile("contact-b", [], [], authenticated_address=ME)

    slow = asyncio.create_task(feed.load("contact-a", slow_fetch))
    await slow_started.wait()

    fast_thread = await feed.load("contact-b", fast_fetch)
    release_slow.set()
    slow_thread = await slow

    assert slow_thread is None
    assert fast_thread is not None
    assert feed.contact_id == "contact-b"
    assert feed.thread.contact_id == "contact-b"


def test_tokens_increase_and_only_latest_applies():
    feed = ConversationFeed()
    first = feed.begin("contact-a")
    second = feed.begin("contact-b")
    thread = reconcile("contact-a", [], [], authenticated_address=ME)

    assert second > first
    assert feed.apply(first, thread) is False
    assert feed.thread is None
    assert feed.apply(second, thread) is True


def test_synthetic_contact():
    contact = synthetic_contact(" Recruiter@BigCo.com ")

    assert contact.id == "email-recruiter@bigco.com"
    assert contact.email == "recruiter@bigco.com"
    assert contact.name == "recruiter"


@pytest.mark.asyncio
async def test_resolve_contact_handles_synthetic_ids(service, monkeypatch):
    get_contact = AsyncMock()
    monkeypatch.setattr(f"{SERVICE}.ContactRepository.get_contact", get_contact)

    contact = await service.resolve_contact("email-someone@x.com")

    assert contact.email == "someone@x.com"
    get_contact.assert_not_awaited()


@pytest.mark.asyncio
async def test_thread_falls_back_to_local_when_remote_fails(
    service, transport, contact, now, monkeypatch
):
    monkeypatch.setattr(
        f"{SERVICE}.EmailRecordRepository.fetch_for_contact",
        AsyncMock(return_value=[_row("contact-1", "outbound", now - timedelta(days=1))]),
    )
    append = AsyncMock()
    monkeypatch.setattr(f"{SERVICE}.EmailRecordRepository.append_record", append)
    transport.get_conversation.side_effect = MailTransportClientError("down", error_code="timeout")

    thread = await service.get_thread("user-123", ME, contact)

    assert len(thread.records) == 1
    assert thread.records[0].direction == "outbound"
    append.assert_not_awaited()


@pytest.mark.asyncio
async def test_remote_replies_are_stored_locally(service, transport, contact, now, monkeypatch):
    sent_at = now - timedelta(days=2)
    monkeypatch.setattr(
        f"{SERVICE}.EmailRecordRepository.fetch_for_contact",
        AsyncMock(return_value=[_row("contact-1", "outbound", sent_at, message_id="m1")]),
    )
    append = AsyncMock(side_effect=DatabaseError("write failed"))
    monkeypatch.setattr(f"{SERVICE}.EmailRecordRepository.append_record", append)
    transport.get_conversation.return_value = {
        "messages": [
            {
                "id": "m1",
                "from": ME,
                "to": "jane@acme.com",
                "subject": "Hi",
                "body": "Hello",
                "date": sent_at.isoformat(),
            },
            {
                "id": "m2",
                "from": "Jane Doe <jane@acme.com>",
                "to": ME,
                "subject": "Re: Hi",
                "body": "Happy to chat!",
                "date": (now - timedelta(days=1)).isoformat(),
            },
            {"id": "m3", "from": "jane@acme.com", "body": "undated"},
        ]
    }

    thread = await service.get_thread("user-123", ME, contact)

    assert [r.direction for r in thread.records] == ["outbound", "inbound"]
    assert thread.anchor_subject == "Hi"
    append.assert_awaited_once()
    _, stored = append.await_args.args
    assert stored.message_id == "m2"


@pytest.mark.asyncio
async def test_follow_up_candidates_use_contacts_with_sent_email(service, now, monkeypatch):
    rows = [
        _row("c-waiting", "outbound", now - timedelta(days=4), recipient="w@x.com"),
        _row("c-replied", "outbound", now - timedelta(days=4), recipient="r@x.com"),
        _row("c-replied", "inbound", now - timedelta(days=1), recipient="r@x.com"),
        _row("c-inbound-only", "inbound", now - timedelta(days=3), recipient="i@x.com"),
    ]
    monkeypatch.setattr(f"{SERVICE}.EmailRecordRepository.fetch_for_user", AsyncMock(return_value=rows))
    monkeypatch.setattr(
        f"{SERVICE}.EmailRecordRepository.contacts_with_sent_email",
        AsyncMock(return_value=["c-waiting", "c-replied"]),
    )
    monkeypatch.setattr(f"{SERVICE}.ContactRepository.fetch_contacts", AsyncMock(return_value={}))

    due = await service.follow_up_candidates("user-123", now)

    assert [(contact.id, contact.email) for contact, _ in due] == [("c-waiting", "w@x.com")]


@pytest.mark.asyncio
async def test_outreach_candidates_exclude_recent_sends(service, now, monkeypatch, contact):
    fresh = Contact(id="contact-2", name="Fresh", email="fresh@x.com")
    monkeypatch.setattr(
        f"{SERVICE}.ContactRepository.list_contacts", AsyncMock(return_value=[contact, fresh])
    )
    monkeypatch.setattr(
        f"{SERVICE}.EmailRecordRepository.fetch_for_user",
        AsyncMock(return_value=[_row("contact-1", "outbound", now - timedelta(days=2))]),
    )

    available = await service.outreach_candidates("user-123", now)

    assert [c.id for c in available] == ["contact-2"]


@pytest.mark.asyncio
async def test_list_conversations_newest_first(service, now, monkeypatch, contact):
    rows = [
        _row("contact-1", "outbound", now - timedelta(days=5)),
        _row("email-old@x.com", "outbound", now - timedelta(days=9), recipient="old@x.com"),
        _row("contact-1", "inbound", now - timedelta(days=1), body="Reply"),
    ]
    monkeypatch.setattr(f"{SERVICE}.EmailRecordRepository.fetch_for_user", AsyncMock(return_value=rows))
    monkeypatch.setattr(
        f"{SERVICE}.ContactRepository.fetch_contacts",
        AsyncMock(return_value={"contact-1": contact}),
    )

    summaries = await service.list_conversations("user-123")

    assert [s.contact.id for s in summaries] == ["contact-1", "email-old@x.com"]
    assert summaries[0].email_count == 2
    assert summaries[0].last_email_at == now - timedelta(days=1)
    assert summaries[1].contact.email == "old@x.com"
