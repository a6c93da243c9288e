"""
Conversation read side.

Loads local and remote records, normalizes them at the boundary, reconciles
them into a thread and feeds eligibility. Inbound replies discovered remotely
are appended to the local store so later eligibility checks see them.
"""

from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime

from hirebuddy.db.helpers import DatabaseError
from hirebuddy.features.email_outreach.clients.mail_transport import (
    MailTransportClient,
    MailTransportClientError,
    mail_transport_client,
)
from hirebuddy.features.email_outreach.conversation.normalizer import (
    extract_remote_messages,
    local_record_from_row,
    normalize_many,
    remote_record_from_payload,
)
from hirebuddy.features.email_outreach.conversation.reconciler import reconcile
from hirebuddy.features.email_outreach.domain.models import (
    Contact,
    ConversationSummary,
    ConversationThread,
    EligibilityWindow,
    EmailRecord,
)
from hirebuddy.features.email_outreach.eligibility.service import (
    EligibilityEngine,
    eligibility_engine,
)
from hirebuddy.features.email_outreach.repository import ContactRepository, EmailRecordRepository
from hirebuddy.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SYNTHETIC_CONTACT_PREFIX = "email-"


def synthetic_contact(address: str) -> Contact:
    """Stand-in for a recipient that is not in the contact store."""
    address = address.strip().lower()
    return Contact(
        id=f"{SYNTHETIC_CONTACT_PREFIX}{address}",
        name=address.split("@")[0],
        email=address,
    )


class ConversationFeed:
    """
    Request-token guard for one user session.

    Every fetch is tagged with a monotonically increasing token; only the
    response carrying the latest token is applied, so a slow fetch for a
    previously selected contact never replaces the current one.
    """

    def __init__(self):
        self._latest_token = 0
        self.contact_id: str | None = None
        self.thread: ConversationThread | None = None

    @property
    def latest_token(self) -> int:
        return self._latest_token

    def begin(self, contact_id: str) -> int:
        self._latest_token += 1
        self.contact_id = contact_id
        return self._latest_token

    def is_current(self, token: int) -> bool:
        return token == self._latest_token

    def apply(self, token: int, thread: ConversationThread) -> bool:
        if not self.is_current(token):
            logger.warning(
                "Discarding stale conversation response",
                token=token,
                latest_token=self._latest_token,
                contact_id=thread.contact_id,
            )
            return False
        self.thread = thread
        return True

    async def load(
        self, contact_id: str, fetch: Callable[[], Awaitable[ConversationThread]]
    ) -> ConversationThread | None:
        """Run a fetch under a new token; None when a newer selection superseded it."""
        token = self.begin(contact_id)
        thread = await fetch()
        return thread if self.apply(token, thread) else None


class ConversationService:
    """Builds conversation threads and contact lists for a user."""

    def __init__(
        self,
        transport: MailTransportClient | None = None,
        engine: EligibilityEngine | None = None,
    ):
        self.transport = transport or mail_transport_client
        self.engine = engine or eligibility_engine

    async def resolve_contact(self, contact_id: str) -> Contact | None:
        if contact_id.startswith(SYNTHETIC_CONTACT_PREFIX):
            return synthetic_contact(contact_id[len(SYNTHETIC_CONTACT_PREFIX) :])
        return await ContactRepository.get_contact(contact_id)

    async def load_local_records(self, user_id: str, contact_id: str) -> list[EmailRecord]:
        rows = await EmailRecordRepository.fetch_for_contact(user_id, contact_id)
        records, _ = normalize_many(rows, local_record_from_row, source="local")
        return records

    async def fetch_remote_records(
        self, authenticated_address: str, contact: Contact
    ) -> list[EmailRecord]:
        """Fetch the provider copy; a failed fetch yields no remote records."""
        try:
            response = await self.transport.get_conversation(authenticated_address, contact.email)
        except MailTransportClientError as e:
            logger.warning(
                "Remote conversation fetch failed, using local history only",
                contact_id=contact.id,
                error=str(e),
            )
            return []

        records, _ = normalize_many(
            extract_remote_messages(response),
            lambda payload: remote_record_from_payload(payload, contact.id),
            source="remote",
        )
        return records

    async def get_thread(
        self, user_id: str, authenticated_address: str, contact: Contact
    ) -> ConversationThread:
        local_records = await self.load_local_records(user_id, contact.id)
        remote_records = await self.fetch_remote_records(authenticated_address, contact)

        thread = reconcile(
            contact.id,
            local_records,
            remote_records,
            authenticated_address=authenticated_address,
        )
        await self._store_new_replies(user_id, thread)
        return thread

    async def _store_new_replies(self, user_id: str, thread: ConversationThread) -> None:
        new_replies = [
            record
            for record in thread.records
            if record.direction == "inbound" and record.source == "remote"
        ]
        for record in new_replies:
            try:
                await EmailRecordRepository.append_record(user_id, record)
            except DatabaseError as e:
                logger.warning(
                    "Failed to store discovered reply",
                    user_id=user_id,
                    contact_id=record.contact_id,
                    message_id=record.message_id,
                    error=str(e),
                )

    async def load_histories(self, user_id: str) -> dict[str, list[EmailRecord]]:
        rows = await EmailRecordRepository.fetch_for_user(user_id)
        records, _ = normalize_many(rows, local_record_from_row, source="local")

        histories: dict[str, list[EmailRecord]] = defaultdict(list)
        for record in records:
            histories[record.contact_id].append(record)
        return dict(histories)

    async def outreach_candidates(self, user_id: str, now: datetime) -> list[Contact]:
        contacts = await ContactRepository.list_contacts()
        histories = await self.load_histories(user_id)
        return self.engine.outreach_candidates(contacts, histories, now)

    async def follow_up_candidates(
        self, user_id: str, now: datetime
    ) -> list[tuple[Contact, EligibilityWindow]]:
        sent_ids = set(await EmailRecordRepository.contacts_with_sent_email(user_id))
        histories = {
            contact_id: records
            for contact_id, records in (await self.load_histories(user_id)).items()
            if contact_id in sent_ids
        }
        contacts = await self._contacts_for(histories)
        return self.engine.follow_up_candidates(contacts, histories, now)

    async def list_conversations(self, user_id: str) -> list[ConversationSummary]:
        """Contacts with any stored record, most recent activity first."""
        histories = await self.load_histories(user_id)
        contacts = {contact.id: contact for contact in await self._contacts_for(histories)}

        summaries = []
        for contact_id, records in histories.items():
            latest = max(records, key=lambda record: record.sent_at)
            summaries.append(
                ConversationSummary(
                    contact=contacts[contact_id],
                    email_count=len(records),
                    last_email_at=latest.sent_at,
                    last_subject=latest.subject,
                )
            )

        summaries.sort(key=lambda summary: summary.last_email_at, reverse=True)
        return summaries

    async def search(self, user_id: str, keyword: str) -> list[EmailRecord]:
        if not keyword.strip():
            return []
        rows = await EmailRecordRepository.search_records(user_id, keyword)
        records, _ = normalize_many(rows, local_record_from_row, source="local")
        return records

    async def _contacts_for(self, histories: dict[str, list[EmailRecord]]) -> list[Contact]:
        stored_ids = [
            contact_id
            for contact_id in histories
            if not contact_id.startswith(SYNTHETIC_CONTACT_PREFIX)
        ]
        stored = await ContactRepository.fetch_contacts(stored_ids)

        contacts = []
        for contact_id, records in histories.items():
            contact = stored.get(contact_id)
            if contact is None:
                outbound = next((r for r in records if r.is_outbound_family), records[0])
                address = outbound.recipient if outbound.is_outbound_family else outbound.sender
                contact = synthetic_contact(address)
                # Keep the stored contact id so histories stay keyed consistently.
                contact.id = contact_id
            contacts.append(contact)
        return contacts


conversation_service = ConversationService()
