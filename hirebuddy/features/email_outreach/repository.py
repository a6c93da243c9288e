"""
Repository helpers for the outreach feature.

Contacts are read and written through the contact store tables. Email records
are append-only: rows are inserted and read, never updated or deleted here.
Record rows are returned raw and normalized by the conversation layer.
"""

from typing import Any

from psycopg.types.json import Jsonb

from hirebuddy.db.helpers import execute_query, fetch_all, fetch_one, fetch_val
from hirebuddy.features.email_outreach.domain.models import (
    Contact,
    EmailRecord,
    ExperienceSnapshot,
    ProfileSnapshot,
)
from hirebuddy.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_CONTACT_COLUMNS = "id, full_name, email, company_name, title, linkedin_link, created_at"
_RECORD_COLUMNS = (
    "id, contact_id, sender_email, recipient_email, subject, body, email_type, "
    "message_id, thread_id, sent_at, metadata"
)
# API field name -> contacts column
_CONTACT_UPDATABLE = {
    "name": "full_name",
    "email": "email",
    "company": "company_name",
    "title": "title",
    "linkedin_link": "linkedin_link",
}


def _contact_from_row(row: dict[str, Any]) -> Contact:
    return Contact(
        id=str(row["id"]),
        name=row.get("full_name") or "",
        email=(row.get("email") or "").strip().lower(),
        company=row.get("company_name"),
        title=row.get("title"),
        linkedin_link=row.get("linkedin_link"),
        created_at=row.get("created_at"),
    )


class ContactRepository:
    """Raw SQL helpers for the contact store."""

    @classmethod
    async def list_contacts(cls, limit: int = 500) -> list[Contact]:
        query = f"""
            SELECT {_CONTACT_COLUMNS}
            FROM contacts
            WHERE email IS NOT NULL AND email <> ''
            ORDER BY created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (limit,))
        return [_contact_from_row(row) for row in rows]

    @classmethod
    async def get_contact(cls, contact_id: str) -> Contact | None:
        query = f"SELECT {_CONTACT_COLUMNS} FROM contacts WHERE id::text = %s"
        row = await fetch_one(query, (contact_id,))
        return _contact_from_row(row) if row else None

    @classmethod
    async def fetch_contacts(cls, contact_ids: list[str]) -> dict[str, Contact]:
        if not contact_ids:
            return {}

        query = f"SELECT {_CONTACT_COLUMNS} FROM contacts WHERE id::text = ANY(%s)"
        rows = await fetch_all(query, (contact_ids,))
        contacts = [_contact_from_row(row) for row in rows]
        return {contact.id: contact for contact in contacts}

    @classmethod
    async def find_by_emails(cls, addresses: list[str]) -> dict[str, Contact]:
        if not addresses:
            return {}

        query = f"""
            SELECT {_CONTACT_COLUMNS}
            FROM contacts
            WHERE lower(email) = ANY(%s)
        """
        rows = await fetch_all(query, ([address.lower() for address in addresses],))
        contacts = [_contact_from_row(row) for row in rows]
        return {contact.email: contact for contact in contacts}

    @classmethod
    async def search_contacts(cls, term: str, limit: int = 50) -> list[Contact]:
        pattern = f"%{term.strip()}%"
        query = f"""
            SELECT {_CONTACT_COLUMNS}
            FROM contacts
            WHERE full_name ILIKE %s OR email ILIKE %s OR company_name ILIKE %s
            ORDER BY full_name ASC
            LIMIT %s
        """
        rows = await fetch_all(query, (pattern, pattern, pattern, limit))
        return [_contact_from_row(row) for row in rows]

    @classmethod
    async def create_contact(
        cls,
        name: str,
        email: str,
        company: str | None = None,
        title: str | None = None,
        linkedin_link: str | None = None,
    ) -> Contact:
        query = f"""
            INSERT INTO contacts (full_name, email, company_name, title, linkedin_link, created_at)
            VALUES (%s, %s, %s, %s, %s, NOW())
            RETURNING {_CONTACT_COLUMNS}
        """
        row = await fetch_one(
            query, (name, email.strip().lower(), company, title, linkedin_link)
        )
        logger.info("Contact created", contact_id=str(row["id"]))
        return _contact_from_row(row)

    @classmethod
    async def update_contact(cls, contact_id: str, fields: dict[str, Any]) -> Contact | None:
        columns = {
            _CONTACT_UPDATABLE[name]: value
            for name, value in fields.items()
            if name in _CONTACT_UPDATABLE
        }
        if not columns:
            return await cls.get_contact(contact_id)

        if "email" in columns and columns["email"]:
            columns["email"] = columns["email"].strip().lower()

        assignments = ", ".join(f"{column} = %s" for column in columns)
        query = f"""
            UPDATE contacts SET {assignments}
            WHERE id::text = %s
            RETURNING {_CONTACT_COLUMNS}
        """
        row = await fetch_one(query, (*columns.values(), contact_id))
        return _contact_from_row(row) if row else None

    @classmethod
    async def delete_contact(cls, contact_id: str) -> bool:
        affected = await execute_query("DELETE FROM contacts WHERE id::text = %s", (contact_id,))
        return affected > 0


class EmailRecordRepository:
    """Append-only storage for EmailRecord rows, scoped per user."""

    @classmethod
    async def append_record(cls, user_id: str, record: EmailRecord) -> str:
        query = """
            INSERT INTO email_records (
                user_id, contact_id, sender_email, recipient_email, subject, body,
                email_type, message_id, thread_id, sent_at, metadata
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
        """
        record_id = await fetch_val(
            query,
            (
                user_id,
                record.contact_id,
                record.sender,
                record.recipient,
                record.subject,
                record.body,
                record.direction,
                record.message_id,
                record.thread_id,
                record.sent_at,
                Jsonb(record.metadata),
            ),
        )
        logger.info(
            "Email record stored",
            user_id=user_id,
            contact_id=record.contact_id,
            direction=record.direction,
        )
        return str(record_id)

    @classmethod
    async def fetch_for_contact(cls, user_id: str, contact_id: str) -> list[dict[str, Any]]:
        query = f"""
            SELECT {_RECORD_COLUMNS}
            FROM email_records
            WHERE user_id = %s AND contact_id = %s
            ORDER BY sent_at ASC, id ASC
        """
        return await fetch_all(query, (user_id, contact_id))

    @classmethod
    async def fetch_for_user(cls, user_id: str) -> list[dict[str, Any]]:
        query = f"""
            SELECT {_RECORD_COLUMNS}
            FROM email_records
            WHERE user_id = %s
            ORDER BY sent_at ASC, id ASC
        """
        return await fetch_all(query, (user_id,))

    @classmethod
    async def contacts_with_sent_email(cls, user_id: str) -> list[str]:
        query = """
            SELECT DISTINCT contact_id
            FROM email_records
            WHERE user_id = %s AND email_type IN ('outbound', 'follow_up')
        """
        rows = await fetch_all(query, (user_id,))
        return [row["contact_id"] for row in rows]

    @classmethod
    async def search_records(cls, user_id: str, keyword: str, limit: int = 100) -> list[dict]:
        pattern = f"%{keyword.strip()}%"
        query = f"""
            SELECT {_RECORD_COLUMNS}
            FROM email_records
            WHERE user_id = %s AND (subject ILIKE %s OR body ILIKE %s)
            ORDER BY sent_at DESC
            LIMIT %s
        """
        return await fetch_all(query, (user_id, pattern, pattern, limit))

    @classmethod
    async def count_sent(cls, user_id: str) -> int:
        query = """
            SELECT COUNT(*)
            FROM email_records
            WHERE user_id = %s AND email_type IN ('outbound', 'follow_up')
        """
        return int(await fetch_val(query, (user_id,)) or 0)


class ProfileRepository:
    """Read-only access to the user profile."""

    @classmethod
    async def fetch_profile(cls, user_id: str) -> ProfileSnapshot | None:
        query = """
            SELECT
                user_id, full_name, title, company, location, bio,
                COALESCE(skills, '{}'::text[]) AS skills,
                experience_years, college, linkedin, github, website, phone,
                available_for_work, resume_url
            FROM user_profiles
            WHERE user_id = %s
        """
        row = await fetch_one(query, (user_id,))
        if not row:
            return None

        experience_query = """
            SELECT
                job_title, company, location, start_date, end_date, is_current, description,
                COALESCE(achievements, '{}'::text[]) AS achievements,
                COALESCE(skills_used, '{}'::text[]) AS skills_used
            FROM user_experiences
            WHERE user_id = %s
            ORDER BY is_current DESC, start_date DESC NULLS LAST
        """
        experience_rows = await fetch_all(experience_query, (user_id,))

        profile = dict(row)
        profile["user_id"] = str(profile["user_id"])
        profile["experiences"] = [ExperienceSnapshot(**exp) for exp in experience_rows]
        return ProfileSnapshot(**profile)


class EmailUsageRepository:
    """Per-user send limits."""

    @classmethod
    async def fetch_limit(cls, user_id: str) -> int | None:
        query = "SELECT email_limit FROM email_quotas WHERE user_id = %s"
        value = await fetch_val(query, (user_id,))
        return int(value) if value is not None else None
