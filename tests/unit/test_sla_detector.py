"""
Unit tests for the SLA breach detector
Breach rules, levels, suppression and the once-per-session fan-out guard
"""
from datetime import date, datetime, timedelta

import pytz

from leadflow.domain.models.lead import Lead
from leadflow.domain.models.follow_up import FollowUpTask
from leadflow.domain.models.sla import SlaThresholds
from leadflow.domain.services.sla_detector import (
    compute_breaches,
    breach_level,
    filter_suppressed,
    BreachFanout,
)
from leadflow.infrastructure.alert_state.local_store import LocalAlertStateStore

NOW = pytz.UTC.localize(datetime(2026, 10, 19, 12, 0))
BERLIN = pytz.timezone("Europe/Berlin")


def make_lead(hours_ago: float, status: str = "new", **overrides) -> Lead:
    data = {
        "id": "lead-1",
        "tenant_id": "tenant-1",
        "name": "Max Mustermann",
        "status": status,
        "status_since": NOW - timedelta(hours=hours_ago),
    }
    data.update(overrides)
    return Lead(**data)


def make_task(due: date, **overrides) -> FollowUpTask:
    data = {
        "id": "task-1",
        "tenant_id": "tenant-1",
        "lead_id": "lead-1",
        "type": "followup",
        "due_date": due,
    }
    data.update(overrides)
    return FollowUpTask(**data)


class TestContactBreach:
    """Tests for contact_24h"""

    def test_new_lead_25_hours_is_breach(self):
        breaches = compute_breaches([make_lead(25)], [], NOW)
        assert len(breaches) == 1
        breach = breaches[0]
        assert breach.breach_type == "contact_24h"
        assert breach.due_at == NOW - timedelta(hours=1)
        assert breach.level == 1

    def test_new_lead_23_hours_is_not(self):
        assert compute_breaches([make_lead(23)], [], NOW) == []

    def test_contacted_counts_too(self):
        assert len(compute_breaches([make_lead(30, status="contacted")], [], NOW)) == 1

    def test_in_progress_never_breaches(self):
        assert compute_breaches([make_lead(500, status="in_progress")], [], NOW) == []

    def test_missing_status_since_is_skipped(self):
        assert compute_breaches([make_lead(30, status_since=None)], [], NOW) == []

    def test_custom_threshold(self):
        thresholds = SlaThresholds(contact_hours=4)
        assert len(compute_breaches([make_lead(5)], [], NOW, thresholds=thresholds)) == 1


class TestOfferBreach:
    """Tests for offer_48h"""

    def test_offer_submitted_after_48h(self):
        breaches = compute_breaches([make_lead(49, status="offer_submitted")], [], NOW)
        assert [b.breach_type for b in breaches] == ["offer_48h"]

    def test_offer_created_within_48h(self):
        assert compute_breaches([make_lead(47, status="offer_created")], [], NOW) == []


class TestFollowUpOverdue:
    """Tests for followup_overdue"""

    def test_one_breach_per_overdue_task(self):
        lead = make_lead(1, status="in_progress")
        tasks = [
            make_task(date(2026, 10, 16), id="a"),
            make_task(date(2026, 10, 18), id="b"),
            make_task(date(2026, 10, 19), id="c"),
        ]
        breaches = compute_breaches([lead], tasks, NOW)
        assert sorted(b.task_id for b in breaches) == ["a", "b"]

    def test_completed_task_is_not_overdue(self):
        lead = make_lead(1, status="in_progress")
        task = make_task(date(2026, 10, 1), completed_at=NOW)
        assert compute_breaches([lead], [task], NOW) == []

    def test_orphan_task_is_omitted(self):
        task = make_task(date(2026, 10, 1), lead_id="ghost")
        assert compute_breaches([make_lead(1, status="in_progress")], [task], NOW) == []

    def test_cross_tenant_task_is_omitted(self):
        task = make_task(date(2026, 10, 1), tenant_id="tenant-2")
        assert compute_breaches([make_lead(1, status="in_progress")], [task], NOW) == []

    def test_tenant_filter(self):
        other = make_lead(30, id="lead-2", tenant_id="tenant-2")
        breaches = compute_breaches([make_lead(30), other], [], NOW, tenant_id="tenant-1")
        assert [b.lead_id for b in breaches] == ["lead-1"]

    def test_due_at_is_end_of_due_day_in_business_timezone(self):
        lead = make_lead(1, status="in_progress")
        breaches = compute_breaches([lead], [make_task(date(2026, 10, 18))], NOW, tz=BERLIN)
        assert breaches[0].due_at == BERLIN.localize(datetime(2026, 10, 19, 0, 0))


class TestLevels:
    """Tests for breach_level and ordering"""

    def test_level_grows_per_step(self):
        due = NOW - timedelta(hours=1)
        assert breach_level(due, NOW, 24) == 1
        assert breach_level(NOW - timedelta(hours=25), NOW, 24) == 2
        assert breach_level(NOW - timedelta(hours=49), NOW, 24) == 3

    def test_level_is_monotonic(self):
        due = NOW - timedelta(hours=100)
        levels = [breach_level(due, NOW + timedelta(hours=h), 24) for h in range(0, 120, 6)]
        assert levels == sorted(levels)

    def test_sorted_by_level_desc(self):
        old = make_lead(100, id="old")
        fresh = make_lead(25, id="fresh")
        breaches = compute_breaches([fresh, old], [], NOW)
        assert [b.lead_id for b in breaches] == ["old", "fresh"]


class TestSuppression:
    """Tests for filter_suppressed"""

    def test_snoozed_breach_is_hidden_until_expiry(self):
        store = LocalAlertStateStore()
        breaches = compute_breaches([make_lead(30)], [], NOW)
        store.snooze("lead-1", "contact_24h", NOW + timedelta(hours=1))
        assert filter_suppressed(breaches, store, NOW) == []
        assert len(filter_suppressed(breaches, store, NOW + timedelta(hours=2))) == 1

    def test_acknowledged_breach_is_hidden(self):
        store = LocalAlertStateStore()
        breaches = compute_breaches([make_lead(30)], [], NOW)
        store.acknowledge("lead-1", "contact_24h", NOW)
        assert filter_suppressed(breaches, store, NOW + timedelta(days=30)) == []

    def test_suppression_is_per_breach_type(self):
        store = LocalAlertStateStore()
        store.acknowledge("lead-1", "offer_48h", NOW)
        breaches = compute_breaches([make_lead(30)], [], NOW)
        assert len(filter_suppressed(breaches, store, NOW)) == 1


class TestBreachFanout:
    """Tests for BreachFanout"""

    def test_announces_once(self):
        fanout = BreachFanout()
        breaches = compute_breaches([make_lead(30)], [], NOW)
        assert len(fanout.select_new(breaches, NOW)) == 1
        assert fanout.select_new(breaches, NOW + timedelta(seconds=30)) == []
        assert fanout.seen_count == 1

    def test_new_breach_type_is_announced(self):
        fanout = BreachFanout()
        fanout.select_new(compute_breaches([make_lead(30)], [], NOW), NOW)
        lead = make_lead(50, status="offer_submitted")
        fresh = fanout.select_new(compute_breaches([lead], [], NOW), NOW)
        assert [b.breach_type for b in fresh] == ["offer_48h"]

    def test_reset_starts_new_session(self):
        fanout = BreachFanout()
        breaches = compute_breaches([make_lead(30)], [], NOW)
        fanout.select_new(breaches, NOW)
        assert fanout.has_seen(breaches[0])
        fanout.reset()
        assert len(fanout.select_new(breaches, NOW)) == 1

    def test_retain_forgets_resolved_breaches(self):
        fanout = BreachFanout()
        contact = compute_breaches([make_lead(30)], [], NOW)
        offer = compute_breaches([make_lead(50, status="offer_submitted")], [], NOW)
        fanout.select_new(contact + offer, NOW)

        assert fanout.retain(b.key for b in offer) == 1
        assert fanout.seen_count == 1
        assert not fanout.has_seen(contact[0])
        assert fanout.select_new(contact + offer, NOW) == contact
