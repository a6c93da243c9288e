"""
Eligibility rules for outreach and follow-up.

Three independent conditions drive the two predicates:

* the outreach cooldown: an `outbound` record younger than the cooldown blocks
  a fresh outreach;
* the follow-up delay: the latest outbound or follow-up must be at least the
  delay old;
* the reply check: any inbound record later than that latest send means the
  contact has replied.

The caller always supplies `now`.
"""

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timedelta

from hirebuddy.config import settings
from hirebuddy.features.email_outreach.domain.models import (
    OUTBOUND_FAMILY,
    Contact,
    EligibilityWindow,
    EmailRecord,
)


class EligibilityEngine:
    """Pure predicates over a contact's email history."""

    def __init__(
        self,
        outreach_cooldown: timedelta | None = None,
        follow_up_delay: timedelta | None = None,
    ):
        self.outreach_cooldown = outreach_cooldown or settings.outreach_cooldown()
        self.follow_up_delay = follow_up_delay or settings.follow_up_delay()

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def within_outreach_cooldown(self, history: Iterable[EmailRecord], now: datetime) -> bool:
        return any(
            record.direction == "outbound" and now - record.sent_at < self.outreach_cooldown
            for record in history
        )

    def follow_up_delay_elapsed(self, last_send_at: datetime, now: datetime) -> bool:
        return now - last_send_at >= self.follow_up_delay

    @staticmethod
    def has_reply_after(history: Iterable[EmailRecord], moment: datetime) -> bool:
        return any(
            record.direction == "inbound" and record.sent_at > moment for record in history
        )

    @staticmethod
    def last_send_at(history: Iterable[EmailRecord]) -> datetime | None:
        sends = [record.sent_at for record in history if record.direction in OUTBOUND_FAMILY]
        return max(sends) if sends else None

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def available_for_outreach(
        self, contact: Contact, history: Sequence[EmailRecord], now: datetime
    ) -> bool:
        return not self.within_outreach_cooldown(_for_contact(contact, history), now)

    def needs_follow_up(
        self, contact: Contact, history: Sequence[EmailRecord], now: datetime
    ) -> bool:
        records = _for_contact(contact, history)
        last_send = self.last_send_at(records)
        if last_send is None:
            return False
        if not self.follow_up_delay_elapsed(last_send, now):
            return False
        return not self.has_reply_after(records, last_send)

    def evaluate(
        self, contact: Contact, history: Sequence[EmailRecord], now: datetime
    ) -> EligibilityWindow:
        records = _for_contact(contact, history)
        inbound = [record.sent_at for record in records if record.direction == "inbound"]
        return EligibilityWindow(
            contact_id=contact.id,
            available_for_outreach=self.available_for_outreach(contact, records, now),
            needs_follow_up=self.needs_follow_up(contact, records, now),
            last_outbound_at=self.last_send_at(records),
            last_inbound_at=max(inbound) if inbound else None,
        )

    # ------------------------------------------------------------------
    # Contact lists
    # ------------------------------------------------------------------

    def outreach_candidates(
        self,
        contacts: Sequence[Contact],
        histories: Mapping[str, Sequence[EmailRecord]],
        now: datetime,
    ) -> list[Contact]:
        """Contacts that may receive a first outreach email, in store order."""
        return [
            contact
            for contact in contacts
            if self.available_for_outreach(contact, histories.get(contact.id, ()), now)
        ]

    def follow_up_candidates(
        self,
        contacts: Sequence[Contact],
        histories: Mapping[str, Sequence[EmailRecord]],
        now: datetime,
    ) -> list[tuple[Contact, EligibilityWindow]]:
        """Contacts due for a follow-up, longest-waiting first."""
        due = []
        for contact in contacts:
            window = self.evaluate(contact, histories.get(contact.id, ()), now)
            if window.needs_follow_up:
                due.append((contact, window))

        due.sort(key=lambda item: item[1].last_outbound_at)
        return due


def _for_contact(contact: Contact, history: Iterable[EmailRecord]) -> list[EmailRecord]:
    return [record for record in history if record.contact_id == contact.id]


eligibility_engine = EligibilityEngine()
