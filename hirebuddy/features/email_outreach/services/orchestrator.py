"""
Outreach orchestrator.

Each send runs as an attempt through

    Draft -> Validating -> Sending -> Persisting -> Done

and draft generation as

    Draft -> Validating -> Generating -> Done

with Error reachable from every non-terminal state. Validation never touches
the network before the profile gate and the input checks have passed. A
failed transport call ends the attempt without retry. A failed history write
after a successful send is reported as a PersistenceWarning, not a failure.
"""

import asyncio
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from hirebuddy.config import settings
from hirebuddy.db.helpers import DatabaseError
from hirebuddy.features.email_outreach.clients.generation import (
    EmailGenerationError,
    EmailGenerationService,
    email_generation_service,
)
from hirebuddy.features.email_outreach.clients.mail_transport import (
    MailTransportClient,
    MailTransportClientError,
    mail_transport_client,
)
from hirebuddy.features.email_outreach.domain.errors import (
    GenerationError,
    OutreachError,
    PersistenceWarning,
    TransportError,
    ValidationError,
)
from hirebuddy.features.email_outreach.domain.models import (
    Contact,
    EmailRecord,
    EmailType,
    GenerationRequest,
    GenerationResponse,
    ProfileSnapshot,
    Tone,
)
from hirebuddy.features.email_outreach.formatting.content_formatter import (
    FormattedContent,
    render_draft,
)
from hirebuddy.features.email_outreach.profile.completion import evaluate_profile_gate
from hirebuddy.features.email_outreach.repository import EmailRecordRepository
from hirebuddy.features.email_outreach.services.usage import EmailUsageService, email_usage_service
from hirebuddy.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

AttemptKind = Literal["compose", "follow_up", "generate"]


class AttemptState(str, Enum):
    DRAFT = "draft"
    VALIDATING = "validating"
    GENERATING = "generating"
    SENDING = "sending"
    PERSISTING = "persisting"
    DONE = "done"
    ERROR = "error"


_TRANSITIONS: dict[AttemptState, frozenset[AttemptState]] = {
    AttemptState.DRAFT: frozenset({AttemptState.VALIDATING}),
    AttemptState.VALIDATING: frozenset({AttemptState.GENERATING, AttemptState.SENDING}),
    AttemptState.GENERATING: frozenset({AttemptState.DONE}),
    AttemptState.SENDING: frozenset({AttemptState.PERSISTING}),
    AttemptState.PERSISTING: frozenset({AttemptState.DONE}),
    AttemptState.DONE: frozenset(),
    AttemptState.ERROR: frozenset(),
}


@dataclass
class Draft:
    """The user's in-progress email. Only a successful generation rewrites it."""

    subject: str = ""
    body: str = ""
    is_html: bool = True
    attach_resume: bool = False
    sender: str | None = None


@dataclass(slots=True)
class SenderContext:
    """Who is sending: user id, mailbox address from the session, profile snapshot."""

    user_id: str
    authenticated_address: str
    profile: ProfileSnapshot | None


@dataclass
class SendAttempt:
    contact: Contact | None
    kind: AttemptKind
    draft: Draft
    state: AttemptState = AttemptState.DRAFT
    history: list[AttemptState] = field(default_factory=lambda: [AttemptState.DRAFT])
    error: OutreachError | None = None

    def transition(self, state: AttemptState) -> None:
        if state is not AttemptState.ERROR and state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid attempt transition {self.state.value} -> {state.value}")
        if state is AttemptState.ERROR and self.state in (AttemptState.DONE, AttemptState.ERROR):
            raise RuntimeError(f"Attempt already finished in {self.state.value}")

        logger.debug(
            "Send attempt state changed",
            kind=self.kind,
            contact_id=self.contact.id if self.contact else None,
            from_state=self.state.value,
            to_state=state.value,
        )
        self.state = state
        self.history.append(state)

    def fail(self, error: OutreachError) -> None:
        self.error = error
        self.transition(AttemptState.ERROR)


@dataclass(slots=True)
class SendOutcome:
    contact_id: str | None
    recipient: str | None
    success: bool
    state: AttemptState
    history: list[AttemptState]
    content: FormattedContent | None = None
    record: EmailRecord | None = None
    error: OutreachError | None = None
    warning: PersistenceWarning | None = None

    @classmethod
    def from_attempt(
        cls,
        attempt: SendAttempt,
        content: FormattedContent | None = None,
        record: EmailRecord | None = None,
        warning: PersistenceWarning | None = None,
    ) -> "SendOutcome":
        return cls(
            contact_id=attempt.contact.id if attempt.contact else None,
            recipient=attempt.contact.email if attempt.contact else None,
            success=attempt.state is AttemptState.DONE,
            state=attempt.state,
            history=list(attempt.history),
            content=content,
            record=record,
            error=attempt.error,
            warning=warning,
        )


class OutreachOrchestrator:
    """
    Validates, sends and records outreach emails.

    Holds an in-flight set keyed by user and contact; a second attempt by the
    same user for a contact whose send has not finished is rejected with a
    ValidationError.
    """

    def __init__(
        self,
        transport: MailTransportClient | None = None,
        generator: EmailGenerationService | None = None,
        record_store=EmailRecordRepository,
        usage_service: EmailUsageService | None = None,
        generation_timeout: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.transport = transport or mail_transport_client
        self.generator = generator or email_generation_service
        self.record_store = record_store
        self.usage_service = usage_service or email_usage_service
        self.generation_timeout = generation_timeout or settings.GENERATION_TIMEOUT_SECONDS
        self._clock = clock or (lambda: datetime.now(UTC))
        self._in_flight: set[tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # Preview and generation
    # ------------------------------------------------------------------

    def preview(self, context: SenderContext, draft: Draft) -> FormattedContent:
        """The exact subject and body a send of this draft would transmit."""
        resume_url = None
        if draft.attach_resume and context.profile and context.profile.resume_url:
            resume_url = context.profile.resume_url
        return render_draft(draft.subject, draft.body, draft.is_html, resume_url)

    async def generate_draft(
        self,
        context: SenderContext,
        contact: Contact | None,
        draft: Draft,
        *,
        email_type: EmailType = "cold_outreach",
        tone: Tone = "professional",
        custom_instructions: str | None = None,
        target_roles: Sequence[str] = (),
    ) -> GenerationResponse:
        """
        Fill the draft with generated content.

        On any failure the draft keeps the user's text unchanged.

        Raises:
            ValidationError: If the profile gate fails or no contact is selected
            GenerationError: If generation fails or exceeds the timeout
        """
        attempt = SendAttempt(contact=contact, kind="generate", draft=draft)
        try:
            attempt.transition(AttemptState.VALIDATING)
            self._check_profile_gate(context)
            if contact is None:
                raise ValidationError("Select a contact before generating an email", field="contact")

            attempt.transition(AttemptState.GENERATING)
            request = GenerationRequest(
                contact=contact,
                user_profile=context.profile,
                email_type=email_type,
                tone=tone,
                custom_instructions=custom_instructions or None,
                target_roles=list(target_roles),
            )
            response = await self._generate(request)

        except OutreachError as e:
            attempt.fail(e)
            raise

        draft.subject = response.subject
        draft.body = response.body
        attempt.transition(AttemptState.DONE)
        return response

    async def _generate(self, request: GenerationRequest) -> GenerationResponse:
        contact_id = request.contact.id
        try:
            return await asyncio.wait_for(
                self.generator.generate(request), timeout=self.generation_timeout
            )
        except TimeoutError as e:
            logger.warning(
                "Draft generation timed out", contact_id=contact_id, timeout=self.generation_timeout
            )
            raise GenerationError(
                "Generating the email took too long. Your draft was kept, please try again.",
                contact_id=contact_id,
                error_code="generation_timeout",
            ) from e
        except EmailGenerationError as e:
            logger.warning("Draft generation failed", contact_id=contact_id, error=str(e))
            raise GenerationError(
                f"Could not generate the email: {e}",
                contact_id=contact_id,
                error_code="generation_failed",
                recoverable=e.recoverable,
            ) from e

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_email(
        self, context: SenderContext, recipients: Sequence[Contact], draft: Draft
    ) -> SendOutcome:
        """
        Send a compose email to exactly one recipient.

        Raises:
            ValidationError: If a precondition fails
            TransportError: If the transport rejects the send
        """
        contact = recipients[0] if len(recipients) == 1 else None
        attempt = SendAttempt(contact=contact, kind="compose", draft=draft)
        return await self._execute(context, attempt, recipient_count=len(recipients))

    async def send_follow_up(
        self,
        context: SenderContext,
        contact: Contact | None,
        draft: Draft,
        *,
        eligible_contact_ids: Collection[str],
        anchor_subject: str | None = None,
    ) -> SendOutcome:
        """
        Send a follow-up to a contact previously listed as due for one.

        Raises:
            ValidationError: If a precondition fails
            TransportError: If the transport rejects the send
        """
        attempt = SendAttempt(contact=contact, kind="follow_up", draft=draft)
        return await self._execute(
            context,
            attempt,
            recipient_count=1 if contact else 0,
            eligible_contact_ids=eligible_contact_ids,
            anchor_subject=anchor_subject,
        )

    async def send_batch(
        self, context: SenderContext, contacts: Sequence[Contact], draft: Draft
    ) -> list[SendOutcome]:
        """
        Send the same draft to several contacts, one after another.

        Every recipient gets its own validated and persisted attempt; a failure
        for one recipient never stops the others.
        """
        outcomes: list[SendOutcome] = []
        for contact in contacts:
            attempt = SendAttempt(contact=contact, kind="compose", draft=draft)
            try:
                outcome = await self._execute(context, attempt, recipient_count=1)
            except OutreachError:
                outcome = SendOutcome.from_attempt(attempt)
            outcomes.append(outcome)

        logger.info(
            "Batch send finished",
            user_id=context.user_id,
            total=len(outcomes),
            succeeded=sum(1 for outcome in outcomes if outcome.success),
            failed=sum(1 for outcome in outcomes if not outcome.success),
        )
        return outcomes

    async def _execute(
        self,
        context: SenderContext,
        attempt: SendAttempt,
        *,
        recipient_count: int,
        eligible_contact_ids: Collection[str] = (),
        anchor_subject: str | None = None,
    ) -> SendOutcome:
        lock_key = None
        try:
            attempt.transition(AttemptState.VALIDATING)
            self._validate(context, attempt, recipient_count, eligible_contact_ids)
            content = self.preview(context, attempt.draft)
            await self._check_quota(context, attempt.contact)
            lock_key = self._acquire(context, attempt.contact)

            attempt.transition(AttemptState.SENDING)
            receipt_ids = await self._transmit(context, attempt, content)

            attempt.transition(AttemptState.PERSISTING)
            record = self._build_record(context, attempt, content, receipt_ids, anchor_subject)
            warning = await self._persist(context, record)

        except OutreachError as e:
            attempt.fail(e)
            raise
        finally:
            if lock_key is not None:
                self._in_flight.discard(lock_key)

        attempt.transition(AttemptState.DONE)
        return SendOutcome.from_attempt(attempt, content=content, record=record, warning=warning)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_profile_gate(self, context: SenderContext) -> None:
        gate = evaluate_profile_gate(context.profile)
        if not gate.passed:
            raise ValidationError(
                f"Complete at least {gate.required_percentage}% of your profile before sending "
                f"emails (currently {gate.completion_percentage}%). "
                f"Missing: {', '.join(gate.missing_fields)}",
                field="profile",
                error_code="profile_incomplete",
            )

    def _validate(
        self,
        context: SenderContext,
        attempt: SendAttempt,
        recipient_count: int,
        eligible_contact_ids: Collection[str],
    ) -> None:
        self._check_profile_gate(context)

        contact = attempt.contact
        if attempt.kind == "compose":
            if recipient_count != 1 or contact is None:
                raise ValidationError(
                    "Select exactly one recipient", field="to", error_code="recipient_count"
                )
        elif contact is None or contact.id not in eligible_contact_ids:
            raise ValidationError(
                "Select a contact that is due for a follow-up",
                field="contact",
                contact_id=contact.id if contact else None,
                error_code="not_eligible",
            )

        if not contact.email or "@" not in contact.email:
            raise ValidationError(
                "The selected contact has no valid email address",
                field="to",
                contact_id=contact.id,
            )

        draft = attempt.draft
        if attempt.kind == "compose" and not draft.subject.strip():
            raise ValidationError("Subject is required", field="subject", contact_id=contact.id)
        if not draft.body.strip():
            raise ValidationError("Email body is required", field="body", contact_id=contact.id)

        account = context.authenticated_address.strip().lower()
        if not account:
            raise ValidationError("No authenticated mailbox", field="sender", contact_id=contact.id)
        if draft.sender and draft.sender.strip().lower() != account:
            raise ValidationError(
                "Emails can only be sent from your signed-in address",
                field="sender",
                contact_id=contact.id,
                error_code="sender_mismatch",
            )

    async def _check_quota(self, context: SenderContext, contact: Contact) -> None:
        try:
            allowed, _, message = await self.usage_service.can_send(context.user_id)
        except DatabaseError as e:
            logger.error("Email quota check failed", user_id=context.user_id, error=str(e))
            raise ValidationError(
                "Error checking email limits. Please try again.",
                field="quota",
                contact_id=contact.id,
                error_code="quota_unavailable",
            ) from e

        if not allowed:
            raise ValidationError(
                message, field="quota", contact_id=contact.id, error_code="email_limit_reached"
            )

    def _acquire(self, context: SenderContext, contact: Contact) -> tuple[str, str]:
        key = (context.user_id, contact.id)
        if key in self._in_flight:
            logger.warning(
                "Rejected concurrent send to contact", user_id=context.user_id, contact_id=contact.id
            )
            raise ValidationError(
                "An email to this contact is already being sent",
                field="to",
                contact_id=contact.id,
                error_code="send_in_progress",
            )
        self._in_flight.add(key)
        return key

    # ------------------------------------------------------------------
    # Transport and persistence
    # ------------------------------------------------------------------

    async def _transmit(
        self, context: SenderContext, attempt: SendAttempt, content: FormattedContent
    ) -> tuple[str | None, str | None, str | None]:
        contact = attempt.contact
        sender = context.authenticated_address.strip().lower()
        try:
            if attempt.kind == "follow_up":
                receipt = await self.transport.send_follow_up(
                    sender, contact.email, content.body, content.is_html
                )
                return receipt.message_id, receipt.thread_id, receipt.message

            receipt = await self.transport.send(
                sender, contact.email, content.subject, content.body, content.is_html
            )
            return receipt.message_id, receipt.thread_id, None

        except MailTransportClientError as e:
            raise TransportError(
                str(e),
                contact_id=contact.id,
                error_code=e.error_code or "transport_failed",
                status_code=e.status_code,
            ) from e
        except Exception as e:
            logger.error("Unexpected error sending email", contact_id=contact.id, error=str(e))
            raise TransportError(f"Failed to send email: {e}", contact_id=contact.id) from e

    def _build_record(
        self,
        context: SenderContext,
        attempt: SendAttempt,
        content: FormattedContent,
        receipt_ids: tuple[str | None, str | None, str | None],
        anchor_subject: str | None,
    ) -> EmailRecord:
        contact = attempt.contact
        message_id, thread_id, transport_message = receipt_ids

        if attempt.kind == "follow_up":
            direction = "follow_up"
            if anchor_subject and anchor_subject.lower().startswith("re:"):
                subject = anchor_subject
            elif anchor_subject:
                subject = f"Re: {anchor_subject}"
            else:
                subject = f"Re: Follow-up to {contact.name or contact.email}"
        else:
            direction = "outbound"
            subject = content.subject

        metadata = {"email_type": direction, "is_html": content.is_html}
        if transport_message:
            metadata["transport_message"] = transport_message

        return EmailRecord(
            contact_id=contact.id,
            sender=context.authenticated_address.strip().lower(),
            recipient=contact.email,
            subject=subject,
            body=content.body,
            direction=direction,
            sent_at=self._clock(),
            source="local",
            message_id=message_id,
            thread_id=thread_id,
            metadata=metadata,
        )

    async def _persist(
        self, context: SenderContext, record: EmailRecord
    ) -> PersistenceWarning | None:
        try:
            await self.record_store.append_record(context.user_id, record)
        except Exception as e:
            logger.warning(
                "Email sent but history write failed",
                user_id=context.user_id,
                contact_id=record.contact_id,
                message_id=record.message_id,
                error=str(e),
            )
            return PersistenceWarning(
                "Email sent, but it could not be saved to your history.",
                contact_id=record.contact_id,
                error_code="history_write_failed",
            )

        logger.info(
            "Email sent and recorded",
            user_id=context.user_id,
            contact_id=record.contact_id,
            direction=record.direction,
            message_id=record.message_id,
        )
        return None


outreach_orchestrator = OutreachOrchestrator()
