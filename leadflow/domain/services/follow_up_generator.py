"""
Follow-Up Task Generator
Derives scheduled tasks from a resolved status transition.

The generation table is data, not branching code: each GenerationRule names
the status that triggers it and the task templates it emits. Due dates are
computed from `today` at generation time.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Tuple

import pytz

from leadflow.domain.models.lead import Lead, LeadStatus, LostReason
from leadflow.domain.models.follow_up import FollowUpTask, TaskType, TaskPriority
from leadflow.domain.models.dashboard import FollowUpStats
from leadflow.domain.services.business_calendar import add_business_days, add_calendar_days, days_between, local_today
from leadflow.domain.services.status_engine import InvalidTransitionError, validate_status

logger = logging.getLogger(__name__)


# Workflow names resolved to webhook paths by the service layer
WORKFLOW_NOT_REACHED_EMAIL = "not_reached_3x_email"
WORKFLOW_APPOINTMENT_INVITE = "appointment_invite"


@dataclass(frozen=True)
class TaskTemplate:
    """One task to emit; `business_days` switches the due-date arithmetic."""
    type: str
    title: str
    offset_days: int
    priority: str = TaskPriority.MEDIUM.value
    escalation_level: int = 0
    business_days: bool = False

    def due_date(self, today: date, holidays: Iterable[str] = ()) -> date:
        if self.business_days:
            return add_business_days(today, self.offset_days, holidays)
        return add_calendar_days(today, self.offset_days)


@dataclass(frozen=True)
class GenerationRule:
    status: str
    templates: Tuple[TaskTemplate, ...]
    condition: Callable[[Lead], bool] = lambda lead: True
    workflow: Optional[str] = None


GENERATION_RULES: Tuple[GenerationRule, ...] = (
    GenerationRule(
        status=LeadStatus.NOT_REACHED_1X.value,
        templates=(
            TaskTemplate(TaskType.CALL.value, "Call again (not reached 1x)", 1, business_days=True),
        ),
    ),
    GenerationRule(
        status=LeadStatus.NOT_REACHED_2X.value,
        templates=(
            TaskTemplate(TaskType.CALL.value, "Call again (not reached 2x)", 8),
        ),
    ),
    GenerationRule(
        status=LeadStatus.NOT_REACHED_3X.value,
        templates=(
            TaskTemplate(
                TaskType.CUSTOM.value,
                "Send outreach email (not reached 3x)",
                0,
                priority=TaskPriority.HIGH.value,
                escalation_level=1,
            ),
        ),
        workflow=WORKFLOW_NOT_REACHED_EMAIL,
    ),
    GenerationRule(
        status=LeadStatus.OFFER_SUBMITTED.value,
        templates=(
            TaskTemplate(TaskType.OFFER.value, "Follow up on submitted offer", 1),
            TaskTemplate(TaskType.FOLLOWUP.value, "Check offer decision", 7),
        ),
    ),
    GenerationRule(
        status=LeadStatus.TVP.value,
        templates=(
            TaskTemplate(TaskType.TVP.value, "Confirm TVP", 1),
            TaskTemplate(TaskType.FOLLOWUP.value, "Closing call", 3, priority=TaskPriority.HIGH.value),
        ),
    ),
    GenerationRule(
        status=LeadStatus.LOST.value,
        templates=(
            TaskTemplate(
                TaskType.REENGAGEMENT.value,
                "Re-engage lead",
                30,
                priority=TaskPriority.LOW.value,
            ),
        ),
        condition=lambda lead: lead.lost_reason == LostReason.NOT_INTERESTED.value,
    ),
)


def rule_for_status(status: str, lead: Lead) -> Optional[GenerationRule]:
    for rule in GENERATION_RULES:
        if rule.status == status and rule.condition(lead):
            return rule
    return None


def find_open_followup(lead_id: str, open_tasks: Iterable[FollowUpTask]) -> Optional[FollowUpTask]:
    """The single open `followup` task of a lead, if any."""
    for task in open_tasks:
        if task.lead_id == lead_id and task.type == TaskType.FOLLOWUP.value and task.is_open:
            return task
    return None


def generate_tasks(
    lead: Lead,
    old_status: Optional[str],
    new_status: str,
    today: Optional[date] = None,
    open_tasks: Optional[Iterable[FollowUpTask]] = None,
    holidays: Iterable[str] = (),
    tz=None,
) -> List[FollowUpTask]:
    """
    Emit the tasks implied by `old_status -> new_status`.

    `lead` is the snapshot after the transition (lost_reason is read from
    it). A `followup` template reuses the id of an already open `followup`
    task of the lead, so persisting the result updates instead of
    duplicating.

    Raises:
        InvalidTransitionError: If a status is not a known lead status
    """
    new_status = validate_status(new_status)
    if old_status is not None:
        old_status = validate_status(old_status)
    if old_status == new_status:
        return []

    rule = rule_for_status(new_status, lead)
    if rule is None:
        return []

    today = today or local_today(datetime.now(pytz.UTC), tz or pytz.UTC)
    existing_followup = find_open_followup(lead.id, open_tasks or [])

    tasks = []
    for template in rule.templates:
        task = FollowUpTask(
            tenant_id=lead.tenant_id,
            lead_id=lead.id,
            type=template.type,
            title=template.title,
            due_date=template.due_date(today, holidays),
            priority=template.priority,
            auto_generated=True,
            escalation_level=template.escalation_level,
            triggered_by_status=new_status,
        )
        if template.type == TaskType.FOLLOWUP.value and existing_followup is not None:
            task.id = existing_followup.id
        tasks.append(task)

    logger.debug(
        f"Generated {len(tasks)} task(s) for lead {lead.id}: {old_status} -> {new_status}"
    )
    return tasks


def workflow_for_transition(old_status: Optional[str], new_status: str, lead: Lead) -> Optional[str]:
    """Outbound workflow to fire for this transition, if any."""
    if old_status == new_status:
        return None
    rule = rule_for_status(new_status, lead)
    return rule.workflow if rule else None


def plan_legacy_followup(
    lead: Lead,
    due_date: date,
    open_tasks: Iterable[FollowUpTask],
    notes: Optional[str] = None,
) -> FollowUpTask:
    """
    Upsert plan for the legacy "follow-up requested" field.

    Returns the existing open `followup` task with the new due date, or a
    new draft (no id) when the lead has none.
    """
    existing = find_open_followup(lead.id, open_tasks)
    if existing is not None:
        return existing.model_copy(update={"due_date": due_date})

    return FollowUpTask(
        tenant_id=lead.tenant_id,
        lead_id=lead.id,
        type=TaskType.FOLLOWUP.value,
        title="Follow-up",
        due_date=due_date,
        priority=TaskPriority.MEDIUM.value,
        auto_generated=False,
        notes=notes,
    )


def plan_offer_followup(lead: Lead, today: date) -> FollowUpTask:
    """Manual task created when "offer" is newly chosen as the next action."""
    return FollowUpTask(
        tenant_id=lead.tenant_id,
        lead_id=lead.id,
        type=TaskType.OFFER_FOLLOWUP.value,
        title="Prepare offer",
        due_date=today,
        priority=TaskPriority.MEDIUM.value,
        auto_generated=False,
    )


def validate_task_type(value: str) -> str:
    try:
        return TaskType(value).value
    except ValueError:
        raise InvalidTransitionError(f"Unknown task type: {value!r}")


def followup_priority(due: date, today: date) -> str:
    """Urgency of a legacy follow-up by days overdue."""
    overdue = days_between(due, today)
    if overdue > 14:
        return "critical"
    if overdue > 7:
        return "high"
    if overdue > 0:
        return "medium"
    return "low"


def followup_stats(tasks: Iterable[FollowUpTask], today: date) -> FollowUpStats:
    """Counters over open tasks; `this_week`/`next_week` look ahead 0-7 / 8-14 days."""
    stats = FollowUpStats()
    for task in tasks:
        if not task.is_open:
            continue
        diff = days_between(task.due_date, today)
        stats.total += 1
        if diff > 0:
            stats.overdue += 1
        if diff == 0:
            stats.today += 1
        if -7 <= diff <= 0:
            stats.this_week += 1
        if -14 <= diff < -7:
            stats.next_week += 1
        stats.by_priority[followup_priority(task.due_date, today)] += 1
    return stats
