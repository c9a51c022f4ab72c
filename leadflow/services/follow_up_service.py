"""
Follow-Up Service
Persists generated and manual follow-up tasks and the task actions users take on them.

The "at most one open `followup` task per lead" invariant is enforced
here: every write of a `followup` task goes through an upsert against the
lead's current open tasks.
"""
import logging
from typing import Optional, List, Dict, Any, Iterable
from datetime import date, datetime

import pytz

from leadflow.domain.models.lead import Lead
from leadflow.domain.models.follow_up import FollowUpTask, TaskType, TaskPriority, STORABLE_PRIORITIES
from leadflow.domain.services.business_calendar import add_business_days, local_today
from leadflow.domain.services.follow_up_generator import (
    find_open_followup,
    plan_legacy_followup,
    followup_stats,
    validate_task_type,
)
from leadflow.domain.services.status_engine import InvalidTransitionError
from leadflow.infrastructure.storage.record_store import (
    RecordStore,
    RecordStoreError,
    TABLE_FOLLOW_UP_TASKS,
)

logger = logging.getLogger(__name__)


def validate_priority(priority: str) -> str:
    """Only low/medium/high are stored; overdue is derived."""
    if priority not in STORABLE_PRIORITIES:
        raise InvalidTransitionError(f"Priority must be one of {sorted(STORABLE_PRIORITIES)}, got {priority!r}")
    return priority


class FollowUpService:
    """
    Follow-up task persistence.

    Responsibilities:
    - Persist generator output (insert drafts, update upserted `followup` tasks)
    - Upsert the legacy manual follow-up
    - Task actions: create, complete, reschedule, set priority, snooze
    - Open-task listing and stats
    """

    def __init__(self, store: RecordStore, holidays: Iterable[str] = (), tz=None):
        self.store = store
        self.holidays = tuple(holidays)
        self.tz = tz or pytz.UTC

    def today(self) -> date:
        """Current date in the business timezone."""
        return local_today(datetime.now(pytz.UTC), self.tz)

    async def fetch_open_tasks(self, tenant_id: str, lead_id: Optional[str] = None) -> List[FollowUpTask]:
        """
        Open tasks of a tenant (optionally one lead), ordered by due date.

        Raises:
            RecordStoreError: If the store read fails
        """
        match = {"tenant_id": tenant_id}
        if lead_id:
            match["lead_id"] = lead_id
        rows = await self.store.select_where(
            TABLE_FOLLOW_UP_TASKS,
            match=match,
            filters=[("completed_at", "is_null", True)],
            order_by="due_date",
        )
        return [FollowUpTask(**row) for row in rows]

    async def _get_task(self, tenant_id: str, task_id: str) -> Optional[FollowUpTask]:
        row = await self.store.select_one(TABLE_FOLLOW_UP_TASKS, {"id": task_id, "tenant_id": tenant_id})
        return FollowUpTask(**row) if row else None

    async def _save(self, task: FollowUpTask) -> FollowUpTask:
        """Insert a draft or update an existing task in place."""
        record = task.to_record()
        if task.id:
            rows = await self.store.update(
                TABLE_FOLLOW_UP_TASKS,
                {"id": task.id, "tenant_id": task.tenant_id},
                {k: v for k, v in record.items() if k not in ("id", "tenant_id", "lead_id")},
            )
            if not rows:
                raise RecordStoreError(f"Task {task.id} not found", TABLE_FOLLOW_UP_TASKS)
            return FollowUpTask(**rows[0])
        row = await self.store.insert(TABLE_FOLLOW_UP_TASKS, record)
        return FollowUpTask(**row)

    async def _upsert_followup(self, task: FollowUpTask) -> FollowUpTask:
        """Write a `followup` task, reusing the lead's open one if it exists."""
        if not task.id:
            existing = find_open_followup(task.lead_id, await self.fetch_open_tasks(task.tenant_id, task.lead_id))
            if existing is not None:
                task = task.model_copy(update={"id": existing.id})
        return await self._save(task)

    async def apply_generated(self, tasks: List[FollowUpTask]) -> Dict[str, Any]:
        """
        Persist generator output.

        Each task is written independently; one failed write does not stop
        the others.

        Returns:
            {"success", "tasks": [saved...], "errors": [messages...]}
        """
        saved: List[FollowUpTask] = []
        errors: List[str] = []
        for task in tasks:
            try:
                if task.type == TaskType.FOLLOWUP.value:
                    saved.append(await self._upsert_followup(task))
                else:
                    saved.append(await self._save(task))
            except RecordStoreError as e:
                logger.error(f"Failed to persist {task.type} task for lead {task.lead_id}: {e.message}")
                errors.append(e.message)
        return {"success": not errors, "tasks": saved, "errors": errors}

    async def upsert_legacy_followup(
        self,
        lead: Lead,
        due_date: date,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Honor the legacy "follow-up requested" field.

        Updates the lead's open `followup` task's due date, or inserts one.
        """
        try:
            open_tasks = await self.fetch_open_tasks(lead.tenant_id, lead.id)
            planned = plan_legacy_followup(lead, due_date, open_tasks, notes=notes)
            task = await self._save(planned)
        except RecordStoreError as e:
            logger.error(f"Legacy follow-up upsert failed for lead {lead.id}: {e.message}")
            return {"success": False, "error": e.message}

        logger.info(f"Follow-up for lead {lead.id} set to {due_date} (task {task.id})")
        return {"success": True, "task": task, "created": planned.id is None}

    async def create_task(
        self,
        tenant_id: str,
        lead_id: str,
        type: str,
        due_date: date,
        priority: str = TaskPriority.MEDIUM.value,
        title: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a manual task.

        Raises:
            InvalidTransitionError: Unknown task type or non-storable priority
        """
        task = FollowUpTask(
            tenant_id=tenant_id,
            lead_id=lead_id,
            type=validate_task_type(type),
            title=title,
            due_date=due_date,
            priority=validate_priority(priority),
            auto_generated=False,
            notes=notes,
        )
        try:
            if task.type == TaskType.FOLLOWUP.value:
                saved = await self._upsert_followup(task)
            else:
                saved = await self._save(task)
        except RecordStoreError as e:
            return {"success": False, "error": e.message}
        return {"success": True, "task": saved}

    async def _update_task(self, tenant_id: str, task_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        try:
            rows = await self.store.update(TABLE_FOLLOW_UP_TASKS, {"id": task_id, "tenant_id": tenant_id}, values)
        except RecordStoreError as e:
            logger.error(f"Task {task_id} update failed: {e.message}")
            return {"success": False, "error": e.message}
        if not rows:
            return {"success": False, "error": "Task not found"}
        return {"success": True, "task": FollowUpTask(**rows[0])}

    async def complete_task(self, tenant_id: str, task_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Mark a task done; it leaves the open set (and the SLA follow-up check)."""
        now = now or datetime.now(pytz.UTC)
        result = await self._update_task(tenant_id, task_id, {"completed_at": now})
        if result["success"]:
            logger.info(f"Task {task_id} completed")
        return result

    async def reschedule_task(self, tenant_id: str, task_id: str, due_date: date) -> Dict[str, Any]:
        return await self._update_task(tenant_id, task_id, {"due_date": due_date})

    async def set_priority(self, tenant_id: str, task_id: str, priority: str) -> Dict[str, Any]:
        """
        Raises:
            InvalidTransitionError: If priority is not low/medium/high
        """
        return await self._update_task(tenant_id, task_id, {"priority": validate_priority(priority)})

    async def snooze_task(
        self,
        tenant_id: str,
        task_id: str,
        days: int,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Push an open task to `today + days` business days."""
        if days < 1:
            raise InvalidTransitionError("Snooze needs at least one day")
        today = today or self.today()
        try:
            task = await self._get_task(tenant_id, task_id)
        except RecordStoreError as e:
            return {"success": False, "error": e.message}
        if task is None:
            return {"success": False, "error": "Task not found"}
        if not task.is_open:
            return {"success": False, "error": "Task already completed"}
        return await self.reschedule_task(tenant_id, task_id, add_business_days(today, days, self.holidays))

    async def list_open_tasks(
        self,
        tenant_id: str,
        lead_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        today = today or self.today()
        try:
            tasks = await self.fetch_open_tasks(tenant_id, lead_id)
        except RecordStoreError as e:
            return {"success": False, "error": e.message}
        return {
            "success": True,
            "tasks": [
                {**t.model_dump(mode="json"), "effective_priority": t.effective_priority(today)}
                for t in tasks
            ],
        }

    async def stats(self, tenant_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or self.today()
        try:
            tasks = await self.fetch_open_tasks(tenant_id)
        except RecordStoreError as e:
            return {"success": False, "error": e.message}
        return {"success": True, "stats": followup_stats(tasks, today)}

