from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from hirebuddy.db.helpers import DatabaseError, fetch_one
from hirebuddy.features.email_outreach.domain.models import EmailRecord
from hirebuddy.features.email_outreach.repository import (
    ContactRepository,
    EmailRecordRepository,
)
from hirebuddy.features.email_outreach.services.usage import EmailUsageService

REPOSITORY = "hirebuddy.features.email_outreach.repository"
USAGE = "hirebuddy.features.email_outreach.services.usage"


@pytest.mark.asyncio
async def test_usage_falls_back_to_default_limit(monkeypatch):
    monkeypatch.setattr(f"{USAGE}.EmailUsageRepository.fetch_limit", AsyncMock(return_value=None))
    monkeypatch.setattr(f"{USAGE}.EmailRecordRepository.count_sent", AsyncMock(return_value=10))
    monkeypatch.setattr(f"{USAGE}.settings.DEFAULT_EMAIL_LIMIT", 125)

    usage = await EmailUsageService().get_usage("user-123")

    assert usage.limit == 125
    assert usage.remaining == 115


@pytest.mark.asyncio
async def test_can_send_explains_refusal(monkeypatch):
    monkeypatch.setattr(f"{USAGE}.EmailUsageRepository.fetch_limit", AsyncMock(return_value=50))
    monkeypatch.setattr(f"{USAGE}.EmailRecordRepository.count_sent", AsyncMock(return_value=49))

    allowed, usage, message = await EmailUsageService().can_send("user-123", count=3)

    assert allowed is False
    assert usage.remaining == 1
    assert message == "You can only send 1 more emails. You've used 49 out of 50 emails."


@pytest.mark.asyncio
async def test_update_contact_only_touches_known_columns(monkeypatch):
    captured = {}

    async def fake_fetch_one(query, params):
        captured["query"] = query
        captured["params"] = params
        return {
            "id": 5,
            "full_name": "Jane Doe",
            "email": "jane@newco.com",
            "company_name": "NewCo",
            "title": None,
            "linkedin_link": None,
            "created_at": None,
        }

    monkeypatch.setattr(f"{REPOSITORY}.fetch_one", fake_fetch_one)

    contact = await ContactRepository.update_contact(
        "5", {"email": " Jane@NewCo.com ", "company": "NewCo", "id": "evil"}
    )

    assert "email = %s" in captured["query"]
    assert "company_name = %s" in captured["query"]
    assert " id = %s" not in captured["query"].split("WHERE")[0]
    assert captured["params"] == ("jane@newco.com", "NewCo", "5")
    assert contact.id == "5"
    assert contact.company == "NewCo"


@pytest.mark.asyncio
async def test_append_record_stores_direction_as_email_type(monkeypatch):
    fetch_val = AsyncMock(return_value=42)
    monkeypatch.setattr(f"{REPOSITORY}.fetch_val", fetch_val)
    record = EmailRecord(
        contact_id="contact-1",
        sender="me@example.com",
        recipient="jane@acme.com",
        subject="Re: Hi",
        body="<p>Checking in</p>",
        direction="follow_up",
        sent_at=datetime(2025, 3, 10, 12, 0, tzinfo=UTC),
        source="local",
        message_id="fu-1",
        metadata={"email_type": "follow_up"},
    )

    record_id = await EmailRecordRepository.append_record("user-123", record)

    assert record_id == "42"
    _, params = fetch_val.await_args.args
    assert params[0] == "user-123"
    assert params[6] == "follow_up"
    assert params[7] == "fu-1"


@pytest.mark.asyncio
async def test_unavailable_pool_surfaces_as_database_error():
    with pytest.raises(DatabaseError) as exc_info:
        await fetch_one("SELECT 1")

    assert exc_info.value.operation == "fetch_one"
    assert exc_info.value.recoverable is True
