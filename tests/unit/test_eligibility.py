"""
Tests for outreach and follow-up eligibility.
"""

from datetime import timedelta

from hirebuddy.features.email_outreach.domain.models import Contact
from hirebuddy.features.email_outreach.eligibility import EligibilityEngine

engine = EligibilityEngine(outreach_cooldown=timedelta(days=7), follow_up_delay=timedelta(hours=24))


def test_contact_without_history_is_available_and_not_due(contact, now):
    assert engine.available_for_outreach(contact, [], now) is True
    assert engine.needs_follow_up(contact, [], now) is False


def test_emailed_three_days_ago_without_reply(contact, now, make_record):
    """Excluded from outreach but due for a follow-up; the two lists are independent."""
    history = [make_record(now - timedelta(days=3))]

    assert engine.available_for_outreach(contact, history, now) is False
    assert engine.needs_follow_up(contact, history, now) is True


def test_reply_after_send_clears_follow_up(contact, now, make_record):
    history = [
        make_record(now - timedelta(days=2)),
        make_record(now - timedelta(days=1), direction="inbound"),
    ]

    assert engine.needs_follow_up(contact, history, now) is False


def test_reply_before_latest_send_does_not_count(contact, now, make_record):
    history = [
        make_record(now - timedelta(days=5)),
        make_record(now - timedelta(days=4), direction="inbound"),
        make_record(now - timedelta(days=2), direction="follow_up"),
    ]

    assert engine.needs_follow_up(contact, history, now) is True


def test_follow_up_delay_boundary(contact, now, make_record):
    exactly = [make_record(now - timedelta(hours=24))]
    just_under = [make_record(now - timedelta(hours=24) + timedelta(seconds=1))]

    assert engine.needs_follow_up(contact, exactly, now) is True
    assert engine.needs_follow_up(contact, just_under, now) is False


def test_outreach_cooldown_boundary(contact, now, make_record):
    exactly = [make_record(now - timedelta(days=7))]
    just_under = [make_record(now - timedelta(days=7) + timedelta(seconds=1))]

    assert engine.available_for_outreach(contact, exactly, now) is True
    assert engine.available_for_outreach(contact, just_under, now) is False


def test_follow_up_records_do_not_block_outreach(contact, now, make_record):
    history = [make_record(now - timedelta(days=1), direction="follow_up")]

    assert engine.available_for_outreach(contact, history, now) is True


def test_records_for_other_contacts_are_ignored(contact, now, make_record):
    history = [make_record(now - timedelta(days=1), contact_id="someone-else")]

    assert engine.available_for_outreach(contact, history, now) is True
    assert engine.needs_follow_up(contact, history, now) is False


def test_evaluate_reports_window(contact, now, make_record):
    sent = now - timedelta(days=3)
    replied = now - timedelta(days=10)
    window = engine.evaluate(
        contact, [make_record(replied, direction="inbound"), make_record(sent)], now
    )

    assert window.contact_id == contact.id
    assert window.available_for_outreach is False
    assert window.needs_follow_up is True
    assert window.last_outbound_at == sent
    assert window.last_inbound_at == replied


def test_outreach_candidates_keep_store_order(now, make_record):
    contacts = [
        Contact(id="c3", name="C", email="c@x.com"),
        Contact(id="c1", name="A", email="a@x.com"),
        Contact(id="c2", name="B", email="b@x.com"),
    ]
    histories = {"c1": [make_record(now - timedelta(days=1), contact_id="c1")]}

    candidates = engine.outreach_candidates(contacts, histories, now)

    assert [c.id for c in candidates] == ["c3", "c2"]


def test_follow_up_candidates_longest_waiting_first(now, make_record):
    contacts = [
        Contact(id="recent", name="R", email="r@x.com"),
        Contact(id="oldest", name="O", email="o@x.com"),
        Contact(id="replied", name="P", email="p@x.com"),
        Contact(id="middle", name="M", email="m@x.com"),
    ]
    histories = {
        "recent": [make_record(now - timedelta(days=2), contact_id="recent")],
        "oldest": [make_record(now - timedelta(days=9), contact_id="oldest")],
        "middle": [make_record(now - timedelta(days=5), contact_id="middle")],
        "replied": [
            make_record(now - timedelta(days=6), contact_id="replied"),
            make_record(now - timedelta(days=1), direction="inbound", contact_id="replied"),
        ],
    }

    due = engine.follow_up_candidates(contacts, histories, now)

    assert [contact.id for contact, _ in due] == ["oldest", "middle", "recent"]


def test_predicates_are_deterministic(contact, now, make_record):
    history = [make_record(now - timedelta(days=3))]

    results = {
        (
            engine.available_for_outreach(contact, history, now),
            engine.needs_follow_up(contact, history, now),
        )
        for _ in range(5)
    }

    assert results == {(False, True)}
