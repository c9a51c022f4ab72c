"""
Lead Service
Orchestrates a lead mutation end-to-end around the pure engine.

Flow of update_lead():
1. Validate the patch (invalid input raises, nothing is written)
2. Read the lead and, for "reached", whether a future appointment exists
3. Resolve the next status
4. Persist the lead (a failure here is the only failure of the mutation)
5. Best-effort: status history, generated tasks, workflow call,
   legacy follow-up, next-action task, notification
"""
import logging
from typing import Optional, List, Dict, Any, Union
from datetime import date, datetime

import pytz

from leadflow.domain.models.lead import Lead, LeadPatch, LeadStatus, PhoneStatus, NextAction
from leadflow.domain.models.follow_up import FollowUpTask
from leadflow.domain.models.status_change import StatusChange
from leadflow.domain.models.appointment import OPEN_APPOINTMENT_STATUSES
from leadflow.domain.models.notification import NotificationType, NotificationPriority
from leadflow.domain.services.business_calendar import local_today, start_of_day
from leadflow.domain.services.status_engine import (
    coerce_patch,
    resolve_status,
    apply_phone_outcome,
    validate_lost_reason,
    available_statuses,
    should_notify_status_change,
    build_status_notification,
)
from leadflow.domain.services.follow_up_generator import (
    generate_tasks,
    workflow_for_transition,
    plan_offer_followup,
    WORKFLOW_APPOINTMENT_INVITE,
)
from leadflow.infrastructure.storage.record_store import (
    RecordStore,
    RecordStoreError,
    TABLE_LEADS,
    TABLE_APPOINTMENTS,
    TABLE_STATUS_CHANGES,
)
from leadflow.infrastructure.workflow.webhook_client import WorkflowClient
from leadflow.services.follow_up_service import FollowUpService
from leadflow.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class LeadNotFoundError(Exception):
    """Raised when a lead does not exist for the tenant."""
    def __init__(self, lead_id: str):
        self.message = f"Lead {lead_id} not found"
        super().__init__(self.message)


def _failure(error: str, error_type: str) -> Dict[str, Any]:
    return {"success": False, "error": error, "error_type": error_type}


class LeadService:
    """
    Lead mutation orchestrator.

    Responsibilities:
    - Gather inputs and call the status engine
    - Persist the lead and its status history
    - Derive follow-up tasks and the outbound workflow call
    - Create the status-change notification

    Only the lead write can fail the mutation; every derived effect is
    best-effort and reported in `warnings`.
    """

    def __init__(
        self,
        store: RecordStore,
        follow_ups: FollowUpService,
        notifications: NotificationService,
        workflows: WorkflowClient,
        tz=None,
    ):
        self.store = store
        self.follow_ups = follow_ups
        self.notifications = notifications
        self.workflows = workflows
        self.tz = tz or pytz.UTC

    async def get_lead(self, tenant_id: str, lead_id: str) -> Lead:
        """
        Raises:
            LeadNotFoundError: No such lead for the tenant
            RecordStoreError: Store read failed
        """
        row = await self.store.select_one(TABLE_LEADS, {"id": lead_id, "tenant_id": tenant_id})
        if not row:
            raise LeadNotFoundError(lead_id)
        return Lead(**row)

    async def has_future_appointment(self, lead: Lead, today: date) -> bool:
        """Open appointment for the lead dated today or later; read failures count as none."""
        try:
            rows = await self.store.select_where(
                TABLE_APPOINTMENTS,
                match={"lead_id": lead.id, "tenant_id": lead.tenant_id},
                filters=[
                    ("start_time", "gte", start_of_day(today, self.tz)),
                    ("status", "in", sorted(OPEN_APPOINTMENT_STATUSES)),
                ],
                limit=1,
            )
        except RecordStoreError as e:
            logger.warning(f"Appointment lookup failed for lead {lead.id}: {e.message}")
            return False
        return bool(rows)

    async def update_lead(
        self,
        tenant_id: str,
        user_id: Optional[str],
        lead_id: str,
        patch: Union[LeadPatch, Dict[str, Any]],
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
        appointment_changed: bool = False,
    ) -> Dict[str, Any]:
        """
        Apply a patch to a lead.

        Args:
            tenant_id: Owning tenant
            user_id: Acting user (history + notification recipient fallback)
            lead_id: Lead to update
            patch: LeadPatch or raw dict
            reason: Optional reason stored in the status history
            now: Clock override
            appointment_changed: An appointment of the lead was (re)booked

        Returns:
            {"success", "lead", "old_status", "new_status", "tasks",
             "workflow_triggered", "warnings"} or a failure dict

        Raises:
            InvalidTransitionError: Malformed patch; nothing was written
        """
        original = coerce_patch(patch)
        now = now or datetime.now(pytz.UTC)
        today = local_today(now, self.tz)

        try:
            lead = await self.get_lead(tenant_id, lead_id)
        except LeadNotFoundError as e:
            return _failure(e.message, "not_found")
        except RecordStoreError as e:
            return _failure(e.message, "store")

        expanded = apply_phone_outcome(lead, original, today)
        validate_lost_reason(lead, expanded)

        has_future = False
        if expanded.phone_status == PhoneStatus.REACHED.value:
            has_future = await self.has_future_appointment(lead, today)

        old_status = lead.status
        new_status = resolve_status(lead, expanded, has_future)

        values = expanded.changes()
        values["status"] = new_status
        if new_status != old_status:
            values["status_since"] = now
        if new_status != LeadStatus.LOST.value and "lost_reason" not in values:
            values["lost_reason"] = None
        values["updated_at"] = now

        try:
            rows = await self.store.update(TABLE_LEADS, {"id": lead_id, "tenant_id": tenant_id}, values)
        except RecordStoreError as e:
            logger.error(f"Lead {lead_id} update failed: {e.message}")
            return _failure(e.message, "store")
        if not rows:
            return _failure(f"Lead {lead_id} not found", "not_found")

        updated = Lead(**rows[0])
        if new_status != old_status:
            logger.info(f"Lead {lead_id} status {old_status} -> {new_status}")

        warnings: List[str] = []
        tasks: List[FollowUpTask] = []

        if new_status != old_status:
            await self._record_history(updated, old_status, user_id, reason, now, warnings)
            tasks.extend(await self._generate_tasks(updated, old_status, new_status, today, warnings))

        workflow_triggered = False
        workflow = workflow_for_transition(old_status, new_status, updated)
        if workflow:
            workflow_triggered = await self.workflows.trigger(
                workflow,
                updated.id,
                updated.tenant_id,
                leadName=updated.name,
                email=updated.email,
                phone=updated.phone,
                status=new_status,
            )
            if not workflow_triggered:
                warnings.append(f"workflow {workflow} not sent")

        if original.follow_up_requested and original.follow_up_date is not None:
            result = await self.follow_ups.upsert_legacy_followup(updated, original.follow_up_date)
            if result["success"]:
                tasks.append(result["task"])
            else:
                warnings.append(f"follow-up: {result['error']}")

        if original.next_action == NextAction.OFFER.value and lead.next_action != NextAction.OFFER.value:
            result = await self.follow_ups.apply_generated([plan_offer_followup(updated, today)])
            tasks.extend(result["tasks"])
            warnings.extend(f"offer task: {e}" for e in result["errors"])

        if should_notify_status_change(lead, updated, appointment_changed):
            await self._notify(lead, updated, user_id, appointment_changed, warnings)

        return {
            "success": True,
            "lead": updated,
            "old_status": old_status,
            "new_status": new_status,
            "tasks": tasks,
            "workflow_triggered": workflow_triggered,
            "warnings": warnings,
        }

    async def _record_history(
        self,
        lead: Lead,
        old_status: str,
        user_id: Optional[str],
        reason: Optional[str],
        now: datetime,
        warnings: List[str],
    ) -> None:
        entry = StatusChange(
            tenant_id=lead.tenant_id,
            lead_id=lead.id,
            old_status=old_status,
            new_status=lead.status,
            changed_by=user_id,
            changed_at=now,
            reason=reason,
        )
        try:
            await self.store.insert(TABLE_STATUS_CHANGES, entry.model_dump(exclude={"id"}))
        except RecordStoreError as e:
            logger.warning(f"Status history write failed for lead {lead.id}: {e.message}")
            warnings.append(f"history: {e.message}")

    async def _generate_tasks(
        self,
        lead: Lead,
        old_status: str,
        new_status: str,
        today: date,
        warnings: List[str],
    ) -> List[FollowUpTask]:
        try:
            open_tasks = await self.follow_ups.fetch_open_tasks(lead.tenant_id, lead.id)
        except RecordStoreError as e:
            logger.warning(f"Open task lookup failed for lead {lead.id}: {e.message}")
            warnings.append(f"tasks: {e.message}")
            return []

        planned = generate_tasks(
            lead,
            old_status,
            new_status,
            today=today,
            open_tasks=open_tasks,
            holidays=self.follow_ups.holidays,
            tz=self.tz,
        )
        if not planned:
            return []
        result = await self.follow_ups.apply_generated(planned)
        warnings.extend(f"tasks: {e}" for e in result["errors"])
        return result["tasks"]

    async def _notify(
        self,
        old: Lead,
        new: Lead,
        user_id: Optional[str],
        appointment_changed: bool,
        warnings: List[str],
    ) -> None:
        recipient = new.user_id or user_id
        content = build_status_notification(old, new, appointment_changed)
        if not recipient or content is None:
            return
        title, message = content
        priority = (
            NotificationPriority.HIGH.value
            if new.status == LeadStatus.NOT_REACHED_3X.value
            else NotificationPriority.NORMAL.value
        )
        result = await self.notifications.create(
            user_id=recipient,
            tenant_id=new.tenant_id,
            type=NotificationType.LEAD_STATUS_CHANGE.value,
            title=title,
            message=message,
            lead_id=new.id,
            priority=priority,
            action_data={"old_status": old.status, "new_status": new.status},
        )
        if not result["success"]:
            warnings.append(f"notification: {result['error']}")

    async def record_phone_outcome(
        self,
        tenant_id: str,
        user_id: Optional[str],
        lead_id: str,
        phone_status: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Shortcut for the phone-status buttons."""
        return await self.update_lead(tenant_id, user_id, lead_id, {"phone_status": phone_status}, now=now)

    async def book_appointment(
        self,
        tenant_id: str,
        user_id: Optional[str],
        lead_id: str,
        start_time: datetime,
        title: Optional[str] = None,
        duration_minutes: int = 60,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Book an appointment and move the lead to AppointmentScheduled.

        The invite workflow is fire-and-forget; the status is forced since
        the outcome of a booking is already known.
        """
        try:
            lead = await self.get_lead(tenant_id, lead_id)
            appointment = await self.store.insert(TABLE_APPOINTMENTS, {
                "tenant_id": tenant_id,
                "lead_id": lead_id,
                "title": title or f"Appointment with {lead.display_name}",
                "start_time": start_time,
                "duration_minutes": duration_minutes,
                "status": "scheduled",
                "notes": notes,
            })
        except LeadNotFoundError as e:
            return _failure(e.message, "not_found")
        except RecordStoreError as e:
            return _failure(e.message, "store")

        invite_sent = await self.workflows.trigger(
            WORKFLOW_APPOINTMENT_INVITE,
            lead_id,
            tenant_id,
            appointmentId=appointment.get("id"),
            startTime=start_time.isoformat(),
            durationMinutes=duration_minutes,
            email=lead.email,
            leadName=lead.name,
        )

        result = await self.update_lead(
            tenant_id,
            user_id,
            lead_id,
            LeadPatch(force_status=LeadStatus.APPOINTMENT_SCHEDULED.value),
            reason="appointment booked",
            now=now,
            appointment_changed=True,
        )
        result["appointment"] = appointment
        result["invite_sent"] = invite_sent
        return result

    async def available_statuses(self, tenant_id: str, lead_id: str) -> Dict[str, Any]:
        try:
            lead = await self.get_lead(tenant_id, lead_id)
        except LeadNotFoundError as e:
            return _failure(e.message, "not_found")
        except RecordStoreError as e:
            return _failure(e.message, "store")
        return {"success": True, "current": lead.status, "statuses": available_statuses(lead.status)}

    async def status_history(self, tenant_id: str, lead_id: str) -> Dict[str, Any]:
        try:
            rows = await self.store.select_where(
                TABLE_STATUS_CHANGES,
                match={"tenant_id": tenant_id, "lead_id": lead_id},
                order_by="changed_at",
                desc=True,
            )
        except RecordStoreError as e:
            return _failure(e.message, "store")
        return {"success": True, "history": [StatusChange(**row).model_dump(mode="json") for row in rows]}

