"""
Unit tests for the follow-up task generator
Generation table, followup upsert planning, priorities and stats
"""
import pytest
from datetime import date, datetime
from unittest.mock import patch

import pytz

from leadflow.domain.models.lead import Lead
from leadflow.domain.models.follow_up import FollowUpTask
from leadflow.domain.services.status_engine import InvalidTransitionError
from leadflow.domain.services.follow_up_generator import (
    GENERATION_RULES,
    WORKFLOW_NOT_REACHED_EMAIL,
    generate_tasks,
    workflow_for_transition,
    plan_legacy_followup,
    plan_offer_followup,
    find_open_followup,
    validate_task_type,
    followup_priority,
    followup_stats,
)

FRIDAY = date(2026, 10, 16)
MONDAY = date(2026, 10, 19)


def make_lead(**overrides) -> Lead:
    data = {"id": "lead-1", "tenant_id": "tenant-1", "status": "contacted"}
    data.update(overrides)
    return Lead(**data)


def make_task(**overrides) -> FollowUpTask:
    data = {
        "id": "task-1",
        "tenant_id": "tenant-1",
        "lead_id": "lead-1",
        "type": "followup",
        "due_date": MONDAY,
    }
    data.update(overrides)
    return FollowUpTask(**data)


class TestGenerationTable:
    """Tests for generate_tasks"""

    def test_every_rule_has_templates(self):
        assert all(rule.templates for rule in GENERATION_RULES)

    def test_not_reached_1x_calls_next_business_day(self):
        """Friday + 1 business day is Monday"""
        tasks = generate_tasks(make_lead(), "contacted", "not_reached_1x", today=FRIDAY)
        assert len(tasks) == 1
        assert tasks[0].type == "call"
        assert tasks[0].due_date == MONDAY
        assert tasks[0].priority == "medium"
        assert tasks[0].escalation_level == 0

    def test_not_reached_2x_uses_calendar_days(self):
        tasks = generate_tasks(make_lead(), "not_reached_1x", "not_reached_2x", today=FRIDAY)
        assert [t.type for t in tasks] == ["call"]
        assert tasks[0].due_date == date(2026, 10, 24)

    def test_not_reached_3x_escalates(self):
        tasks = generate_tasks(make_lead(), "not_reached_2x", "not_reached_3x", today=MONDAY)
        assert len(tasks) == 1
        task = tasks[0]
        assert task.type == "custom"
        assert task.due_date == MONDAY
        assert task.priority == "high"
        assert task.escalation_level == 1
        assert task.auto_generated is True
        assert task.triggered_by_status == "not_reached_3x"

    def test_offer_submitted_emits_two_tasks(self):
        tasks = generate_tasks(make_lead(), "contacted", "offer_submitted", today=MONDAY)
        assert [(t.type, t.due_date) for t in tasks] == [
            ("offer", date(2026, 10, 20)),
            ("followup", date(2026, 10, 26)),
        ]

    def test_tvp_followup_is_high(self):
        tasks = generate_tasks(make_lead(), "in_consideration", "tvp", today=MONDAY)
        assert [(t.type, t.priority) for t in tasks] == [("tvp", "medium"), ("followup", "high")]

    def test_lost_not_interested_reengages(self):
        lead = make_lead(status="lost", lost_reason="not_interested")
        tasks = generate_tasks(lead, "contacted", "lost", today=MONDAY)
        assert len(tasks) == 1
        assert tasks[0].type == "reengagement"
        assert tasks[0].priority == "low"
        assert tasks[0].due_date == date(2026, 11, 18)

    def test_lost_other_reason_no_tasks(self):
        lead = make_lead(status="lost", lost_reason="other_company")
        assert generate_tasks(lead, "contacted", "lost", today=MONDAY) == []

    def test_same_status_no_tasks(self):
        assert generate_tasks(make_lead(), "offer_submitted", "offer_submitted", today=MONDAY) == []

    def test_other_transitions_no_tasks(self):
        assert generate_tasks(make_lead(), "new", "contacted", today=MONDAY) == []

    def test_default_today_uses_business_timezone(self):
        """Thursday 23:30 UTC is Friday in Berlin, so the call lands on Monday"""
        with patch("leadflow.domain.services.follow_up_generator.datetime") as clock:
            clock.now.return_value = pytz.UTC.localize(datetime(2026, 10, 15, 23, 30))
            berlin = generate_tasks(make_lead(), "contacted", "not_reached_1x", tz=pytz.timezone("Europe/Berlin"))
            utc = generate_tasks(make_lead(), "contacted", "not_reached_1x")

        assert berlin[0].due_date == MONDAY
        assert utc[0].due_date == FRIDAY

    def test_unknown_status_rejected(self):
        with pytest.raises(InvalidTransitionError):
            generate_tasks(make_lead(), "contacted", "archived", today=MONDAY)

    def test_followup_reuses_open_task_id(self):
        """A second generation updates the open followup instead of adding one"""
        existing = make_task(id="existing-followup")
        tasks = generate_tasks(
            make_lead(), "contacted", "offer_submitted", today=MONDAY, open_tasks=[existing]
        )
        followups = [t for t in tasks if t.type == "followup"]
        assert len(followups) == 1
        assert followups[0].id == "existing-followup"
        offer = [t for t in tasks if t.type == "offer"][0]
        assert offer.id is None

    def test_completed_followup_not_reused(self):
        done = make_task(completed_at=datetime(2026, 10, 1, 12, 0))
        tasks = generate_tasks(make_lead(), "contacted", "offer_submitted", today=MONDAY, open_tasks=[done])
        assert all(t.id is None for t in tasks)


class TestWorkflowForTransition:
    """Tests for workflow_for_transition"""

    def test_not_reached_3x_triggers_email(self):
        assert workflow_for_transition("not_reached_2x", "not_reached_3x", make_lead()) == WORKFLOW_NOT_REACHED_EMAIL

    def test_repeat_does_not_trigger(self):
        assert workflow_for_transition("not_reached_3x", "not_reached_3x", make_lead()) is None

    def test_other_transitions_have_no_workflow(self):
        assert workflow_for_transition("contacted", "offer_submitted", make_lead()) is None


class TestLegacyFollowUp:
    """Tests for plan_legacy_followup"""

    def test_updates_existing_open_followup(self):
        existing = make_task(due_date=FRIDAY)
        planned = plan_legacy_followup(make_lead(), MONDAY, [existing])
        assert planned.id == "task-1"
        assert planned.due_date == MONDAY

    def test_creates_draft_when_none_open(self):
        planned = plan_legacy_followup(make_lead(), MONDAY, [make_task(type="call")], notes="call back")
        assert planned.id is None
        assert planned.type == "followup"
        assert planned.auto_generated is False
        assert planned.notes == "call back"

    def test_find_open_followup_ignores_other_leads(self):
        other = make_task(lead_id="lead-2")
        assert find_open_followup("lead-1", [other]) is None

    def test_offer_followup_due_today(self):
        task = plan_offer_followup(make_lead(), MONDAY)
        assert task.type == "offer_followup"
        assert task.due_date == MONDAY


class TestTaskHelpers:
    """Tests for validation, priority and stats"""

    def test_validate_task_type(self):
        assert validate_task_type("meeting") == "meeting"
        with pytest.raises(InvalidTransitionError):
            validate_task_type("lunch")

    @pytest.mark.parametrize("due,expected", [
        (date(2026, 10, 1), "critical"),
        (date(2026, 10, 10), "high"),
        (date(2026, 10, 18), "medium"),
        (MONDAY, "low"),
        (date(2026, 10, 25), "low"),
    ])
    def test_followup_priority(self, due, expected):
        assert followup_priority(due, MONDAY) == expected

    def test_effective_priority_marks_overdue(self):
        task = make_task(due_date=FRIDAY, priority="low")
        assert task.effective_priority(MONDAY) == "overdue"
        assert task.effective_priority(FRIDAY) == "low"

    def test_to_record_drops_draft_id(self):
        record = make_task(id=None).to_record()
        assert "id" not in record
        assert record["due_date"] == "2026-10-19"

    def test_stats(self):
        tasks = [
            make_task(id="a", due_date=FRIDAY),
            make_task(id="b", due_date=MONDAY),
            make_task(id="c", due_date=date(2026, 10, 23)),
            make_task(id="d", due_date=date(2026, 10, 30)),
            make_task(id="e", due_date=FRIDAY, completed_at=datetime(2026, 10, 16, 9, 0)),
        ]
        stats = followup_stats(tasks, MONDAY)
        assert stats.total == 4
        assert stats.overdue == 1
        assert stats.today == 1
        assert stats.this_week == 2
        assert stats.next_week == 1
        assert stats.by_priority["medium"] == 1
        assert stats.by_priority["low"] == 3
