"""
Dashboard Aggregator
Merges follow-up tasks and appointments into one due-task agenda
"""
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

import pytz

from leadflow.domain.models.follow_up import FollowUpTask, TaskPriority
from leadflow.domain.models.appointment import Appointment
from leadflow.domain.models.dashboard import (
    TaskSource,
    DashboardTask,
    DashboardView,
    WeekDay,
    LeadPriority,
)
from leadflow.domain.services.business_calendar import add_calendar_days, to_local

# Lower sorts first
PRIORITY_RANK = {
    TaskPriority.OVERDUE.value: 0,
    TaskPriority.HIGH.value: 1,
    TaskPriority.MEDIUM.value: 2,
    TaskPriority.LOW.value: 3,
}

NEXT_DAYS = 7


def task_from_follow_up(task: FollowUpTask, today: date) -> DashboardTask:
    return DashboardTask(
        task_id=task.id or "",
        source=TaskSource.FOLLOW_UP.value,
        lead_id=task.lead_id,
        tenant_id=task.tenant_id,
        title=task.title or task.type,
        due_date=task.due_date,
        priority=task.effective_priority(today),
        notes=task.notes,
    )


def task_from_appointment(appointment: Appointment, today: date, tz) -> DashboardTask:
    local_start = to_local(appointment.start_time, tz)
    due = local_start.date()
    return DashboardTask(
        task_id=appointment.id,
        source=TaskSource.APPOINTMENT.value,
        lead_id=appointment.lead_id,
        tenant_id=appointment.tenant_id,
        title=appointment.title or "Appointment",
        due_date=due,
        due_at=local_start,
        priority=TaskPriority.OVERDUE.value if due < today else TaskPriority.HIGH.value,
        notes=appointment.notes,
    )


def _sort_key(task: DashboardTask):
    due_at = task.due_at.astimezone(pytz.UTC).replace(tzinfo=None) if task.due_at else datetime.min
    return (task.due_date, PRIORITY_RANK.get(task.priority, 9), due_at, task.title)


def merge_due_tasks(
    follow_ups: Iterable[FollowUpTask],
    appointments: Iterable[Appointment],
    today: date,
    tz=None,
) -> List[DashboardTask]:
    """Open follow-ups and open appointments as one list, ordered by due date."""
    tz = tz or pytz.UTC
    merged = [task_from_follow_up(t, today) for t in follow_ups if t.is_open]
    merged.extend(task_from_appointment(a, today, tz) for a in appointments if a.is_open)
    merged.sort(key=_sort_key)
    return merged


def bucket_tasks(tasks: Iterable[DashboardTask], today: date) -> Dict[str, List[DashboardTask]]:
    """Split merged tasks into overdue, today and the next seven days."""
    horizon = add_calendar_days(today, NEXT_DAYS)
    buckets = {"overdue": [], "today": [], "next7": []}
    for task in tasks:
        if task.due_date < today:
            buckets["overdue"].append(task)
        elif task.due_date == today:
            buckets["today"].append(task)
        elif task.due_date <= horizon:
            buckets["next7"].append(task)
    return buckets


def week_overview(tasks: Iterable[DashboardTask], today: date) -> List[WeekDay]:
    days = [WeekDay(day=add_calendar_days(today, offset)) for offset in range(NEXT_DAYS)]
    by_day = {d.day: d for d in days}
    for task in tasks:
        slot = by_day.get(task.due_date)
        if slot is None:
            continue
        if task.source == TaskSource.APPOINTMENT.value:
            slot.appointment_count += 1
        else:
            slot.follow_up_count += 1
    return days


def lead_priorities(tasks: Iterable[DashboardTask]) -> List[LeadPriority]:
    """Most urgent open item per lead, most urgent leads first."""
    result: Dict[str, LeadPriority] = {}
    for task in tasks:
        if not task.lead_id:
            continue
        current = result.get(task.lead_id)
        if current is None:
            result[task.lead_id] = LeadPriority(
                lead_id=task.lead_id, top_priority=task.priority, next_due=task.due_date
            )
            continue
        if PRIORITY_RANK.get(task.priority, 9) < PRIORITY_RANK.get(current.top_priority, 9):
            current.top_priority = task.priority
        if task.due_date < current.next_due:
            current.next_due = task.due_date
    return sorted(
        result.values(),
        key=lambda p: (PRIORITY_RANK.get(p.top_priority, 9), p.next_due),
    )


def build_dashboard(
    follow_ups: Iterable[FollowUpTask],
    appointments: Iterable[Appointment],
    today: date,
    tz=None,
    lead_id: Optional[str] = None,
) -> DashboardView:
    merged = merge_due_tasks(follow_ups, appointments, today, tz)
    if lead_id:
        merged = [t for t in merged if t.lead_id == lead_id]
    buckets = bucket_tasks(merged, today)
    return DashboardView(
        overdue=buckets["overdue"],
        today=buckets["today"],
        next7=buckets["next7"],
        week=week_overview(merged, today),
        priorities=lead_priorities(merged),
    )
