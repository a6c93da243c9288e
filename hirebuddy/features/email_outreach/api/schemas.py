"""
Outreach API request and response models.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from hirebuddy.features.email_outreach.domain.models import (
    Contact,
    ConversationThread,
    EmailRecord,
    EmailType,
    Tone,
)


class ContactResponse(BaseModel):
    id: str
    name: str
    email: str
    company: str | None = None
    title: str | None = None
    linkedin_link: str | None = None

    @classmethod
    def from_contact(cls, contact: Contact) -> "ContactResponse":
        return cls(
            id=contact.id,
            name=contact.name,
            email=contact.email,
            company=contact.company,
            title=contact.title,
            linkedin_link=contact.linkedin_link,
        )


class ContactCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Contact display name")
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+$", description="Contact email address")
    company: str | None = Field(default=None, description="Company name")
    title: str | None = Field(default=None, description="Job title")
    linkedin_link: str | None = Field(default=None, description="LinkedIn profile URL")


class ContactUpdateRequest(BaseModel):
    name: str | None = None
    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$")
    company: str | None = None
    title: str | None = None
    linkedin_link: str | None = None


class EmailRecordResponse(BaseModel):
    contact_id: str
    sender: str
    recipient: str
    subject: str
    body: str
    direction: str
    sent_at: datetime
    source: str
    message_id: str | None = None
    thread_id: str | None = None

    @classmethod
    def from_record(cls, record: EmailRecord) -> "EmailRecordResponse":
        return cls(
            contact_id=record.contact_id,
            sender=record.sender,
            recipient=record.recipient,
            subject=record.subject,
            body=record.body,
            direction=record.direction,
            sent_at=record.sent_at,
            source=record.source,
            message_id=record.message_id,
            thread_id=record.thread_id,
        )


class ConversationStatsResponse(BaseModel):
    total: int
    outbound_count: int
    inbound_count: int
    follow_up_count: int
    first_at: datetime | None = None
    last_at: datetime | None = None


class ConversationThreadResponse(BaseModel):
    contact: ContactResponse
    request_token: int | None = Field(
        default=None, description="Echo of the client's token; apply only the latest"
    )
    anchor_subject: str
    records: list[EmailRecordResponse]
    stats: ConversationStatsResponse

    @classmethod
    def from_thread(
        cls, contact: Contact, thread: ConversationThread, request_token: int | None
    ) -> "ConversationThreadResponse":
        stats = thread.stats
        return cls(
            contact=ContactResponse.from_contact(contact),
            request_token=request_token,
            anchor_subject=thread.anchor_subject,
            records=[EmailRecordResponse.from_record(r) for r in thread.visible_records],
            stats=ConversationStatsResponse(
                total=stats.total,
                outbound_count=stats.outbound_count,
                inbound_count=stats.inbound_count,
                follow_up_count=stats.follow_up_count,
                first_at=stats.first_at,
                last_at=stats.last_at,
            ),
        )


class ConversationSummaryResponse(BaseModel):
    contact: ContactResponse
    email_count: int
    last_email_at: datetime
    last_subject: str


class FollowUpCandidateResponse(BaseModel):
    contact: ContactResponse
    last_outbound_at: datetime | None = None
    last_inbound_at: datetime | None = None


class ProfileCompletionResponse(BaseModel):
    completion_percentage: int
    required_percentage: int
    missing_fields: list[str]
    can_send: bool


class EmailUsageResponse(BaseModel):
    used: int
    limit: int
    remaining: int
    percentage: float
    can_send_email: bool


class DraftFields(BaseModel):
    subject: str = Field(default="", max_length=300, description="Email subject")
    body: str = Field(default="", description="Email body as typed")
    is_html: bool = Field(default=True, description="Send as HTML instead of plain text")
    attach_resume: bool = Field(default=False, description="Append the profile resume link")
    sender: str | None = Field(
        default=None, description="Optional sender; must match the signed-in address"
    )


class PreviewResponse(BaseModel):
    subject: str
    body: str
    is_html: bool


class GenerateRequest(DraftFields):
    contact_id: str = Field(..., description="Contact the email is for")
    email_type: EmailType = "cold_outreach"
    tone: Tone = "professional"
    custom_instructions: str | None = Field(default=None, max_length=2000)
    target_roles: list[str] = Field(default_factory=list)


class GenerateResponse(BaseModel):
    subject: str
    body: str
    reasoning: str | None = None


class SendRequest(DraftFields):
    contact_ids: list[str] = Field(..., description="Recipients; compose sends take exactly one")


class BatchSendRequest(DraftFields):
    contact_ids: list[str] = Field(..., min_length=1, description="Recipients, sent in order")


class FollowUpRequest(BaseModel):
    contact_id: str = Field(..., description="Contact due for a follow-up")
    body: str = Field(default="", description="Follow-up body")
    is_html: bool = True
    attach_resume: bool = False
    sender: str | None = None


class SendResultResponse(BaseModel):
    success: bool
    contact_id: str | None = None
    recipient: str | None = None
    state: str
    message_id: str | None = None
    thread_id: str | None = None
    error: str | None = None
    error_code: str | None = None
    warning: str | None = None


class BatchSendResponse(BaseModel):
    results: list[SendResultResponse]
    succeeded: int
    failed: int
