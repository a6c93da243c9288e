from datetime import UTC, datetime

import pytest

from hirebuddy.auth.verify import auth_dependency
from hirebuddy.features.email_outreach.domain.models import (
    Contact,
    EmailRecord,
    ExperienceSnapshot,
    ProfileSnapshot,
)

ME = "me@example.com"
NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123", "email": ME}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def contact():
    return Contact(id="contact-1", name="Jane Doe", email="jane@acme.com", company="Acme")


@pytest.fixture
def make_record():
    def _make(
        sent_at: datetime,
        direction: str = "outbound",
        contact_id: str = "contact-1",
        subject: str = "Hi",
        body: str = "Hello there",
        source: str = "local",
        message_id: str | None = None,
        thread_id: str | None = None,
        counterpart: str = "jane@acme.com",
    ) -> EmailRecord:
        outbound = direction in ("outbound", "follow_up")
        return EmailRecord(
            contact_id=contact_id,
            sender=ME if outbound else counterpart,
            recipient=counterpart if outbound else ME,
            subject=subject,
            body=body,
            direction=direction,
            sent_at=sent_at,
            source=source,
            message_id=message_id,
            thread_id=thread_id,
        )

    return _make


@pytest.fixture
def complete_profile():
    return ProfileSnapshot(
        user_id="user-123",
        full_name="Sam Seeker",
        title="Backend Engineer",
        location="Berlin",
        phone="+49 30 1234567",
        bio="Backend engineer focused on data pipelines.",
        skills=["Python", "PostgreSQL", "FastAPI"],
        college="TU Berlin",
        linkedin="https://linkedin.com/in/sam",
        github="https://github.com/sam",
        website="https://sam.dev",
        resume_url="https://files.example.com/sam-resume.pdf",
        experiences=[
            ExperienceSnapshot(job_title="Engineer", company="Initech", is_current=True)
        ],
    )
