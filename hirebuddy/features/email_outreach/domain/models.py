"""
Domain models for the email outreach feature.

Records coming from the local store and from the remote mail provider are
normalized into `EmailRecord` before any other layer sees them. Threads,
stats and eligibility windows are derived values and are never persisted.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

Direction = Literal["outbound", "inbound", "follow_up"]
RecordSource = Literal["local", "remote"]
Tone = Literal["professional", "friendly", "formal", "casual"]
EmailType = Literal["cold_outreach", "follow_up", "job_application", "networking", "partnership"]

OUTBOUND_FAMILY: frozenset[str] = frozenset({"outbound", "follow_up"})
NO_SUBJECT = "No Subject"


@dataclass(slots=True)
class Contact:
    """A row of the contact store."""

    id: str
    name: str
    email: str
    company: str | None = None
    title: str | None = None
    linkedin_link: str | None = None
    created_at: datetime | None = None

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0] if self.name else ""


@dataclass(frozen=True, slots=True)
class EmailRecord:
    """One logical email event between the user and a contact."""

    contact_id: str
    sender: str
    recipient: str
    subject: str
    body: str
    direction: Direction
    sent_at: datetime
    source: RecordSource
    message_id: str | None = None
    thread_id: str | None = None
    record_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_outbound_family(self) -> bool:
        return self.direction in OUTBOUND_FAMILY


@dataclass(frozen=True, slots=True)
class ConversationStats:
    total: int
    outbound_count: int
    inbound_count: int
    follow_up_count: int
    first_at: datetime | None
    last_at: datetime | None


@dataclass(frozen=True, slots=True)
class ConversationThread:
    """Deduplicated, time-ordered view of one contact's records."""

    contact_id: str
    records: tuple[EmailRecord, ...]
    visible_records: tuple[EmailRecord, ...]
    anchor_subject: str
    stats: ConversationStats
    dropped_count: int = 0


@dataclass(frozen=True, slots=True)
class EligibilityWindow:
    contact_id: str
    available_for_outreach: bool
    needs_follow_up: bool
    last_outbound_at: datetime | None
    last_inbound_at: datetime | None


@dataclass(slots=True)
class ConversationSummary:
    """A contact that has at least one stored record, for the conversation list."""

    contact: Contact
    email_count: int
    last_email_at: datetime
    last_subject: str


class ExperienceSnapshot(BaseModel):
    job_title: str
    company: str
    location: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_current: bool = False
    description: str | None = None
    achievements: list[str] = Field(default_factory=list)
    skills_used: list[str] = Field(default_factory=list)


class ProfileSnapshot(BaseModel):
    """Read-only view of the user's profile used for gating and generation."""

    user_id: str
    full_name: str | None = None
    title: str | None = None
    company: str | None = None
    location: str | None = None
    bio: str | None = None
    skills: list[str] = Field(default_factory=list)
    experience_years: int | None = None
    college: str | None = None
    linkedin: str | None = None
    github: str | None = None
    website: str | None = None
    phone: str | None = None
    available_for_work: bool | None = None
    resume_url: str | None = None
    experiences: list[ExperienceSnapshot] = Field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ProfileCompletionGate:
    completion_percentage: int
    missing_fields: tuple[str, ...]
    required_percentage: int

    @property
    def passed(self) -> bool:
        return self.completion_percentage >= self.required_percentage


class GenerationRequest(BaseModel):
    contact: Contact
    user_profile: ProfileSnapshot
    email_type: EmailType = "cold_outreach"
    tone: Tone = "professional"
    custom_instructions: str | None = None
    target_roles: list[str] = Field(default_factory=list)


class GenerationResponse(BaseModel):
    subject: str
    body: str
    reasoning: str | None = None


@dataclass(frozen=True, slots=True)
class EmailUsage:
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def percentage(self) -> float:
        if self.limit <= 0:
            return 100.0
        return min(100.0, self.used / self.limit * 100)

    @property
    def can_send_email(self) -> bool:
        return self.used < self.limit
