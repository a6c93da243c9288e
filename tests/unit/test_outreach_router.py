"""
Tests for the outreach HTTP endpoints.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from hirebuddy.features.email_outreach.clients.mail_transport import (
    MailTransportClientError,
    SendReceipt,
)
from hirebuddy.features.email_outreach.conversation import reconcile
from hirebuddy.features.email_outreach.domain.errors import GenerationError
from hirebuddy.features.email_outreach.domain.models import Contact, EmailUsage
from hirebuddy.features.email_outreach.services import OutreachOrchestrator
from hirebuddy.main import app

ROUTER = "hirebuddy.features.email_outreach.api.router"
ME = "me@example.com"

client = TestClient(app)


class FakeTransport:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []

    async def send(self, sender, to, subject, body, is_html):
        if to in self.fail_for:
            raise MailTransportClientError("Email service temporarily unavailable.", status_code=503)
        self.sent.append(to)
        return SendReceipt(message_id=f"msg-{len(self.sent)}", thread_id=None)


class FakeUsage:
    async def can_send(self, user_id, count=1):
        return True, EmailUsage(used=0, limit=125), None


@pytest.fixture(autouse=True)
def authenticated(apply_auth_override):
    apply_auth_override(app)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def profile(monkeypatch, complete_profile):
    monkeypatch.setattr(
        f"{ROUTER}.ProfileRepository.fetch_profile", AsyncMock(return_value=complete_profile)
    )
    return complete_profile


@pytest.fixture
def contacts(monkeypatch, contact):
    known = {
        contact.id: contact,
        "contact-2": Contact(id="contact-2", name="Two", email="two@x.com"),
        "contact-3": Contact(id="contact-3", name="Three", email="three@x.com"),
    }

    async def resolve(contact_id):
        return known.get(contact_id)

    monkeypatch.setattr(f"{ROUTER}.conversation_service.resolve_contact", resolve)
    return known


@pytest.fixture
def transport(monkeypatch):
    fake = FakeTransport()
    store = AsyncMock()
    orchestrator = OutreachOrchestrator(
        transport=fake, record_store=store, usage_service=FakeUsage(), generation_timeout=1
    )
    monkeypatch.setattr(f"{ROUTER}.outreach_orchestrator", orchestrator)
    fake.store = store
    return fake


def test_healthz():
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requires_authentication():
    app.dependency_overrides.clear()

    response = client.get("/outreach/usage")

    assert response.status_code in (401, 403)


def test_profile_completion(profile):
    response = client.get("/outreach/profile/completion")

    assert response.status_code == 200
    data = response.json()
    assert data["completion_percentage"] == 100
    assert data["can_send"] is True
    assert data["missing_fields"] == []


def test_preview_matches_send_formatting(profile):
    response = client.post(
        "/outreach/preview",
        json={"subject": " Hello ", "body": "Hi Jane\n\nThanks", "is_html": True},
    )

    assert response.status_code == 200
    assert response.json() == {
        "subject": "Hello",
        "body": "<p>Hi Jane</p><p>Thanks</p>",
        "is_html": True,
    }


def test_send_success(profile, contacts, transport):
    response = client.post(
        "/outreach/send",
        json={"contact_ids": ["contact-1"], "subject": "Hello", "body": "Hi Jane"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["state"] == "done"
    assert data["message_id"] == "msg-1"
    assert transport.sent == ["jane@acme.com"]
    transport.store.append_record.assert_awaited_once()


def test_send_with_incomplete_profile_is_422(monkeypatch, complete_profile, contacts, transport):
    monkeypatch.setattr(
        f"{ROUTER}.ProfileRepository.fetch_profile",
        AsyncMock(return_value=complete_profile.model_copy(update={"bio": None})),
    )

    response = client.post(
        "/outreach/send",
        json={"contact_ids": ["contact-1"], "subject": "Hello", "body": "Hi Jane"},
    )

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["field"] == "profile"
    assert detail["error_code"] == "profile_incomplete"
    assert transport.sent == []


def test_send_with_sender_mismatch_is_422(profile, contacts, transport):
    response = client.post(
        "/outreach/send",
        json={
            "contact_ids": ["contact-1"],
            "subject": "Hello",
            "body": "Hi",
            "sender": "other@example.com",
        },
    )

    assert response.status_code == 422
    assert response.json()["detail"]["error_code"] == "sender_mismatch"


def test_send_transport_failure_is_502(profile, contacts, transport):
    transport.fail_for.add("jane@acme.com")

    response = client.post(
        "/outreach/send",
        json={"contact_ids": ["contact-1"], "subject": "Hello", "body": "Hi Jane"},
    )

    assert response.status_code == 502
    assert response.json()["detail"]["error_code"] == "transport_failed"


def test_send_unknown_contact_is_404(profile, contacts, transport):
    response = client.post(
        "/outreach/send", json={"contact_ids": ["missing"], "subject": "Hello", "body": "Hi"}
    )

    assert response.status_code == 404


def test_batch_send_reports_each_recipient(profile, contacts, transport):
    transport.fail_for.add("two@x.com")

    response = client.post(
        "/outreach/send/batch",
        json={
            "contact_ids": ["contact-1", "contact-2", "contact-3"],
            "subject": "Hello",
            "body": "Hi there",
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert [r["success"] for r in data["results"]] == [True, False, True]
    assert data["succeeded"] == 2
    assert data["failed"] == 1
    assert data["results"][1]["error_code"] == "transport_failed"
    assert transport.store.append_record.await_count == 2


def test_generate_timeout_is_504(profile, contacts, monkeypatch):
    monkeypatch.setattr(
        f"{ROUTER}.outreach_orchestrator.generate_draft",
        AsyncMock(
            side_effect=GenerationError(
                "Generating the email took too long.", error_code="generation_timeout"
            )
        ),
    )

    response = client.post(
        "/outreach/generate", json={"contact_id": "contact-1", "subject": "Follow up on X"}
    )

    assert response.status_code == 504
    assert response.json()["detail"]["error_code"] == "generation_timeout"


def test_follow_up_for_ineligible_contact_is_422(profile, contacts, transport, monkeypatch):
    monkeypatch.setattr(
        f"{ROUTER}.conversation_service.follow_up_candidates", AsyncMock(return_value=[])
    )
    monkeypatch.setattr(
        f"{ROUTER}.conversation_service.load_local_records", AsyncMock(return_value=[])
    )

    response = client.post("/outreach/follow-up", json={"contact_id": "contact-1", "body": "Hi"})

    assert response.status_code == 422
    assert response.json()["detail"]["error_code"] == "not_eligible"


def test_conversation_echoes_request_token(contacts, monkeypatch, make_record, now):
    thread = reconcile(
        "contact-1",
        [
            make_record(now - timedelta(days=2), subject="Coffee?"),
            make_record(now - timedelta(days=1), direction="inbound", body=""),
        ],
        [],
        authenticated_address=ME,
    )
    get_thread = AsyncMock(return_value=thread)
    monkeypatch.setattr(f"{ROUTER}.conversation_service.get_thread", get_thread)

    response = client.get("/outreach/conversations/contact-1", params={"request_token": 7})

    assert response.status_code == 200
    data = response.json()
    assert data["request_token"] == 7
    assert data["anchor_subject"] == "Coffee?"
    assert data["stats"]["total"] == 2
    assert len(data["records"]) == 1
    assert get_thread.await_args.args[:2] == ("user-123", ME)


def test_usage(monkeypatch):
    monkeypatch.setattr(
        f"{ROUTER}.email_usage_service.get_usage",
        AsyncMock(return_value=EmailUsage(used=25, limit=125)),
    )

    response = client.get("/outreach/usage")

    assert response.status_code == 200
    assert response.json() == {
        "used": 25,
        "limit": 125,
        "remaining": 100,
        "percentage": 20.0,
        "can_send_email": True,
    }
