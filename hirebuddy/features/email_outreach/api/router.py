"""
Email outreach routes.

Contacts, conversation threads, eligibility lists, draft preview and
generation, and the compose, batch and follow-up sends. The sender address is
always the `email` claim of the caller's token.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hirebuddy.auth.verify import auth_dependency
from hirebuddy.db.pool import db_health_check
from hirebuddy.features.email_outreach.api.schemas import (
    BatchSendRequest,
    BatchSendResponse,
    ContactCreateRequest,
    ContactResponse,
    ContactUpdateRequest,
    ConversationSummaryResponse,
    ConversationThreadResponse,
    DraftFields,
    EmailRecordResponse,
    EmailUsageResponse,
    FollowUpCandidateResponse,
    FollowUpRequest,
    GenerateRequest,
    GenerateResponse,
    PreviewResponse,
    ProfileCompletionResponse,
    SendRequest,
    SendResultResponse,
)
from hirebuddy.features.email_outreach.clients.mail_transport import mail_transport_client
from hirebuddy.features.email_outreach.conversation.normalizer import normalize_address
from hirebuddy.features.email_outreach.conversation.reconciler import anchor_subject
from hirebuddy.features.email_outreach.conversation.service import conversation_service
from hirebuddy.features.email_outreach.domain.errors import (
    GenerationError,
    OutreachError,
    ValidationError,
)
from hirebuddy.features.email_outreach.domain.models import Contact
from hirebuddy.features.email_outreach.profile.completion import evaluate_profile_gate
from hirebuddy.features.email_outreach.repository import ContactRepository, ProfileRepository
from hirebuddy.features.email_outreach.services.orchestrator import (
    Draft,
    SenderContext,
    SendOutcome,
    outreach_orchestrator,
)
from hirebuddy.features.email_outreach.services.usage import email_usage_service
from hirebuddy.infrastructure.observability.logging import bind_user, get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/outreach", tags=["outreach"])


def _identity(claims: dict) -> tuple[str, str]:
    user_id = claims.get("sub")
    address = normalize_address(claims.get("email"))
    if not user_id or not address:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    bind_user(user_id)
    return user_id, address


async def _sender_context(claims: dict) -> SenderContext:
    user_id, address = _identity(claims)
    profile = await ProfileRepository.fetch_profile(user_id)
    return SenderContext(user_id=user_id, authenticated_address=address, profile=profile)


async def _contact_or_404(contact_id: str) -> Contact:
    contact = await conversation_service.resolve_contact(contact_id)
    if contact is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")
    return contact


def _draft(fields: DraftFields | FollowUpRequest) -> Draft:
    return Draft(
        subject=getattr(fields, "subject", ""),
        body=fields.body,
        is_html=fields.is_html,
        attach_resume=fields.attach_resume,
        sender=fields.sender,
    )


def _http_error(error: OutreachError) -> HTTPException:
    logger.warning(
        "Outreach request failed",
        error_type=type(error).__name__,
        error_code=error.error_code,
        contact_id=error.contact_id,
    )
    detail = {"message": error.message, "error_code": error.error_code}
    if isinstance(error, ValidationError):
        detail["field"] = error.field
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    if isinstance(error, GenerationError) and error.error_code == "generation_timeout":
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=detail)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


def _result(outcome: SendOutcome) -> SendResultResponse:
    return SendResultResponse(
        success=outcome.success,
        contact_id=outcome.contact_id,
        recipient=outcome.recipient,
        state=outcome.state.value,
        message_id=outcome.record.message_id if outcome.record else None,
        thread_id=outcome.record.thread_id if outcome.record else None,
        error=outcome.error.message if outcome.error else None,
        error_code=outcome.error.error_code if outcome.error else None,
        warning=outcome.warning.message if outcome.warning else None,
    )


# ----------------------------------------------------------------------
# Contacts
# ----------------------------------------------------------------------


@router.get("/contacts", response_model=list[ContactResponse])
async def list_contacts(
    claims: dict = Depends(auth_dependency),
    limit: int = Query(default=500, ge=1, le=2000),
):
    _identity(claims)
    contacts = await ContactRepository.list_contacts(limit=limit)
    return [ContactResponse.from_contact(contact) for contact in contacts]


@router.post("/contacts", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def create_contact(request: ContactCreateRequest, claims: dict = Depends(auth_dependency)):
    _identity(claims)
    contact = await ContactRepository.create_contact(
        name=request.name,
        email=request.email,
        company=request.company,
        title=request.title,
        linkedin_link=request.linkedin_link,
    )
    return ContactResponse.from_contact(contact)


@router.get("/contacts/search", response_model=list[ContactResponse])
async def search_contacts(
    q: str = Query(..., min_length=1, description="Name, email or company fragment"),
    claims: dict = Depends(auth_dependency),
):
    _identity(claims)
    contacts = await ContactRepository.search_contacts(q)
    return [ContactResponse.from_contact(contact) for contact in contacts]


@router.get("/contacts/available", response_model=list[ContactResponse])
async def list_available_contacts(claims: dict = Depends(auth_dependency)):
    """Contacts that may receive a first outreach email."""
    user_id, _ = _identity(claims)
    contacts = await conversation_service.outreach_candidates(user_id, datetime.now(UTC))
    return [ContactResponse.from_contact(contact) for contact in contacts]


@router.get("/contacts/follow-up", response_model=list[FollowUpCandidateResponse])
async def list_follow_up_contacts(claims: dict = Depends(auth_dependency)):
    """Contacts due for a follow-up, longest-waiting first."""
    user_id, _ = _identity(claims)
    due = await conversation_service.follow_up_candidates(user_id, datetime.now(UTC))
    return [
        FollowUpCandidateResponse(
            contact=ContactResponse.from_contact(contact),
            last_outbound_at=window.last_outbound_at,
            last_inbound_at=window.last_inbound_at,
        )
        for contact, window in due
    ]


@router.get("/contacts/{contact_id}", response_model=ContactResponse)
async def get_contact(contact_id: str, claims: dict = Depends(auth_dependency)):
    _identity(claims)
    return ContactResponse.from_contact(await _contact_or_404(contact_id))


@router.patch("/contacts/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: str, request: ContactUpdateRequest, claims: dict = Depends(auth_dependency)
):
    _identity(claims)
    contact = await ContactRepository.update_contact(
        contact_id, request.model_dump(exclude_unset=True)
    )
    if contact is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")
    return ContactResponse.from_contact(contact)


@router.delete("/contacts/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(contact_id: str, claims: dict = Depends(auth_dependency)):
    _identity(claims)
    if not await ContactRepository.delete_contact(contact_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")


# ----------------------------------------------------------------------
# Conversations
# ----------------------------------------------------------------------


@router.get("/conversations", response_model=list[ConversationSummaryResponse])
async def list_conversations(claims: dict = Depends(auth_dependency)):
    """Contacts with any conversation, newest activity first."""
    user_id, _ = _identity(claims)
    summaries = await conversation_service.list_conversations(user_id)
    return [
        ConversationSummaryResponse(
            contact=ContactResponse.from_contact(summary.contact),
            email_count=summary.email_count,
            last_email_at=summary.last_email_at,
            last_subject=summary.last_subject,
        )
        for summary in summaries
    ]


@router.get("/conversations/search", response_model=list[EmailRecordResponse])
async def search_conversations(
    q: str = Query(..., min_length=1, description="Keyword in subject or body"),
    claims: dict = Depends(auth_dependency),
):
    user_id, _ = _identity(claims)
    records = await conversation_service.search(user_id, q)
    return [EmailRecordResponse.from_record(record) for record in records]


@router.get("/conversations/{contact_id}", response_model=ConversationThreadResponse)
async def get_conversation(
    contact_id: str,
    claims: dict = Depends(auth_dependency),
    request_token: int | None = Query(
        default=None, description="Client request token, echoed back for stale-response checks"
    ),
):
    user_id, address = _identity(claims)
    contact = await _contact_or_404(contact_id)
    thread = await conversation_service.get_thread(user_id, address, contact)
    return ConversationThreadResponse.from_thread(contact, thread, request_token)


# ----------------------------------------------------------------------
# Profile and quota
# ----------------------------------------------------------------------


@router.get("/profile/completion", response_model=ProfileCompletionResponse)
async def get_profile_completion(claims: dict = Depends(auth_dependency)):
    user_id, _ = _identity(claims)
    gate = evaluate_profile_gate(await ProfileRepository.fetch_profile(user_id))
    return ProfileCompletionResponse(
        completion_percentage=gate.completion_percentage,
        required_percentage=gate.required_percentage,
        missing_fields=list(gate.missing_fields),
        can_send=gate.passed,
    )


@router.get("/usage", response_model=EmailUsageResponse)
async def get_email_usage(claims: dict = Depends(auth_dependency)):
    user_id, _ = _identity(claims)
    usage = await email_usage_service.get_usage(user_id)
    return EmailUsageResponse(
        used=usage.used,
        limit=usage.limit,
        remaining=usage.remaining,
        percentage=round(usage.percentage, 1),
        can_send_email=usage.can_send_email,
    )


# ----------------------------------------------------------------------
# Drafts and sends
# ----------------------------------------------------------------------


@router.post("/preview", response_model=PreviewResponse)
async def preview_email(request: DraftFields, claims: dict = Depends(auth_dependency)):
    """Render the draft exactly as it would be sent."""
    context = await _sender_context(claims)
    content = outreach_orchestrator.preview(context, _draft(request))
    return PreviewResponse(subject=content.subject, body=content.body, is_html=content.is_html)


@router.post("/generate", response_model=GenerateResponse)
async def generate_email(request: GenerateRequest, claims: dict = Depends(auth_dependency)):
    context = await _sender_context(claims)
    contact = await _contact_or_404(request.contact_id)
    try:
        response = await outreach_orchestrator.generate_draft(
            context,
            contact,
            _draft(request),
            email_type=request.email_type,
            tone=request.tone,
            custom_instructions=request.custom_instructions,
            target_roles=request.target_roles,
        )
    except OutreachError as e:
        raise _http_error(e) from e
    return GenerateResponse(subject=response.subject, body=response.body, reasoning=response.reasoning)


@router.post("/send", response_model=SendResultResponse)
async def send_email(request: SendRequest, claims: dict = Depends(auth_dependency)):
    context = await _sender_context(claims)
    recipients = [await _contact_or_404(contact_id) for contact_id in request.contact_ids]
    try:
        outcome = await outreach_orchestrator.send_email(context, recipients, _draft(request))
    except OutreachError as e:
        raise _http_error(e) from e
    return _result(outcome)


@router.post("/send/batch", response_model=BatchSendResponse)
async def send_batch(request: BatchSendRequest, claims: dict = Depends(auth_dependency)):
    context = await _sender_context(claims)
    recipients = [await _contact_or_404(contact_id) for contact_id in request.contact_ids]
    outcomes = await outreach_orchestrator.send_batch(context, recipients, _draft(request))
    results = [_result(outcome) for outcome in outcomes]
    succeeded = sum(1 for result in results if result.success)
    return BatchSendResponse(results=results, succeeded=succeeded, failed=len(results) - succeeded)


@router.post("/follow-up", response_model=SendResultResponse)
async def send_follow_up(request: FollowUpRequest, claims: dict = Depends(auth_dependency)):
    context = await _sender_context(claims)
    contact = await _contact_or_404(request.contact_id)

    due = await conversation_service.follow_up_candidates(context.user_id, datetime.now(UTC))
    history = await conversation_service.load_local_records(context.user_id, contact.id)
    try:
        outcome = await outreach_orchestrator.send_follow_up(
            context,
            contact,
            _draft(request),
            eligible_contact_ids={candidate.id for candidate, _ in due},
            anchor_subject=anchor_subject(history) if history else None,
        )
    except OutreachError as e:
        raise _http_error(e) from e
    return _result(outcome)


@router.get("/health")
async def outreach_health():
    """Reachability of the email API and the database pool."""
    checks = {
        "mail_transport": await mail_transport_client.health_check(),
        "database": await db_health_check(),
    }
    return {"healthy": all(check["healthy"] for check in checks.values()), "checks": checks}
