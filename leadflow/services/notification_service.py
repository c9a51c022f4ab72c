"""
Notification Service
Inbox creation, read/snooze state and the resolve action.

Snooze expiry is a computed view: nothing rewrites a row when its
`snoozed_until` passes; the notification simply reappears in `inbox()`.
"""
import logging
from typing import Optional, List, Dict, Any
from datetime import datetime

import pytz

from leadflow.domain.models.notification import (
    Notification,
    NotificationType,
    NotificationPriority,
    InboxView,
    category_for,
)
from leadflow.domain.models.follow_up import TaskType, TaskPriority
from leadflow.domain.models.appointment import AppointmentStatus
from leadflow.domain.models.sla import BreachType
from leadflow.domain.services.business_calendar import local_today
from leadflow.domain.services.snooze import resolve_snooze_until, split_inbox
from leadflow.domain.services.status_engine import InvalidTransitionError
from leadflow.infrastructure.storage.record_store import (
    RecordStore,
    RecordStoreError,
    TABLE_NOTIFICATIONS,
    TABLE_APPOINTMENTS,
)
from leadflow.services.follow_up_service import FollowUpService

logger = logging.getLogger(__name__)

# action_data["kind"] values understood by resolve()
KIND_OFFER_OVERDUE = "offer_overdue"
KIND_CONTACT_OVERDUE = "contact_overdue"

BREACH_KIND = {
    BreachType.CONTACT_24H.value: KIND_CONTACT_OVERDUE,
    BreachType.OFFER_48H.value: KIND_OFFER_OVERDUE,
}


def _validate_type(value: str) -> str:
    try:
        return NotificationType(value).value
    except ValueError:
        raise InvalidTransitionError(f"Unknown notification type: {value!r}")


def _validate_priority(value: str) -> str:
    try:
        return NotificationPriority(value).value
    except ValueError:
        raise InvalidTransitionError(f"Unknown notification priority: {value!r}")


class NotificationService:
    """
    Notification inbox for one record store.

    Responsibilities:
    - Append-only creation
    - Read state (single and bulk)
    - Snooze with presets, single and bulk
    - Resolve: run the type-specific side effect, then mark read
    """

    def __init__(self, store: RecordStore, follow_ups: FollowUpService, tz=None):
        self.store = store
        self.follow_ups = follow_ups
        self.tz = tz or pytz.UTC

    async def create(
        self,
        user_id: str,
        tenant_id: str,
        type: str,
        title: str,
        message: str,
        lead_id: Optional[str] = None,
        priority: str = NotificationPriority.NORMAL.value,
        action_data: Optional[Dict[str, Any]] = None,
        category: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Append a notification.

        Raises:
            InvalidTransitionError: Unknown type or priority
        """
        type = _validate_type(type)
        record = {
            "user_id": user_id,
            "tenant_id": tenant_id,
            "lead_id": lead_id,
            "type": type,
            "title": title,
            "message": message,
            "read": False,
            "priority": _validate_priority(priority),
            "action_data": action_data or {},
            "category": category_for(type, category),
            "snoozed_until": None,
        }
        try:
            row = await self.store.insert(TABLE_NOTIFICATIONS, record)
        except RecordStoreError as e:
            logger.error(f"Failed to create {type} notification for user {user_id}: {e.message}")
            return {"success": False, "error": e.message}
        return {"success": True, "notification": Notification(**row)}

    async def _fetch(self, user_id: str, tenant_id: Optional[str] = None, limit: Optional[int] = None) -> List[Notification]:
        match = {"user_id": user_id}
        if tenant_id:
            match["tenant_id"] = tenant_id
        rows = await self.store.select_where(
            TABLE_NOTIFICATIONS, match=match, order_by="created_at", desc=True, limit=limit
        )
        return [Notification(**row) for row in rows]

    async def _get(self, user_id: str, notification_id: str) -> Optional[Notification]:
        row = await self.store.select_one(TABLE_NOTIFICATIONS, {"id": notification_id, "user_id": user_id})
        return Notification(**row) if row else None

    async def inbox(self, user_id: str, tenant_id: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Active/snoozed split with unread count over active items only."""
        now = now or datetime.now(pytz.UTC)
        try:
            notifications = await self._fetch(user_id, tenant_id)
        except RecordStoreError as e:
            return {"success": False, "error": e.message}
        return {"success": True, "inbox": split_inbox(notifications, now)}

    async def unread_count(self, user_id: str, tenant_id: Optional[str] = None, now: Optional[datetime] = None) -> int:
        result = await self.inbox(user_id, tenant_id, now)
        return result["inbox"].unread_count if result["success"] else 0

    async def _update(self, user_id: str, notification_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        try:
            rows = await self.store.update(TABLE_NOTIFICATIONS, {"id": notification_id, "user_id": user_id}, values)
        except RecordStoreError as e:
            logger.error(f"Notification {notification_id} update failed: {e.message}")
            return {"success": False, "error": e.message}
        if not rows:
            return {"success": False, "error": "Notification not found"}
        return {"success": True, "notification": Notification(**rows[0])}

    async def mark_read(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        return await self._update(user_id, notification_id, {"read": True})

    async def mark_all_read(self, user_id: str, tenant_id: Optional[str] = None) -> Dict[str, Any]:
        match = {"user_id": user_id, "read": False}
        if tenant_id:
            match["tenant_id"] = tenant_id
        try:
            rows = await self.store.update(TABLE_NOTIFICATIONS, match, {"read": True})
        except RecordStoreError as e:
            return {"success": False, "error": e.message}
        return {"success": True, "updated": len(rows)}

    async def snooze(
        self,
        user_id: str,
        notification_id: str,
        preset: str,
        custom: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Hide a notification until the preset's wake-up time.

        Raises:
            InvalidTransitionError: Unknown preset or custom without timestamp
        """
        until = resolve_snooze_until(preset, now=now, custom=custom, tz=self.tz)
        result = await self._update(user_id, notification_id, {"snoozed_until": until})
        if result["success"]:
            result["snoozed_until"] = until
        return result

    async def unsnooze(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        return await self._update(user_id, notification_id, {"snoozed_until": None})

    async def bulk_snooze(
        self,
        user_id: str,
        tenant_id: Optional[str],
        preset: str,
        custom: Optional[datetime] = None,
        category: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Snooze every currently active notification (optionally one category).

        The preset is resolved once, so all items get the same wake-up time.
        Items are updated one by one; failures are counted, not raised.
        """
        now = now or datetime.now(pytz.UTC)
        until = resolve_snooze_until(preset, now=now, custom=custom, tz=self.tz)
        try:
            view: InboxView = split_inbox(await self._fetch(user_id, tenant_id), now)
        except RecordStoreError as e:
            return {"success": False, "error": e.message}

        targets = [
            n for n in view.active
            if category is None or n.resolved_category == category
        ]
        snoozed, failed = 0, 0
        for notification in targets:
            result = await self._update(user_id, notification.id, {"snoozed_until": until})
            if result["success"]:
                snoozed += 1
            else:
                failed += 1

        logger.info(f"Bulk snoozed {snoozed} notification(s) for user {user_id} until {until.isoformat()}")
        return {"success": failed == 0, "snoozed": snoozed, "failed": failed, "snoozed_until": until}

    async def _apply_side_effect(self, notification: Notification, now: datetime) -> Dict[str, Any]:
        data = notification.action_data or {}
        kind = data.get("kind") or BREACH_KIND.get(data.get("breach_type"))
        today = local_today(now, self.tz)

        task_types = (NotificationType.FOLLOWUP_DUE.value, NotificationType.SLA_BREACH.value)
        if notification.type in task_types and data.get("task_id"):
            return await self.follow_ups.complete_task(notification.tenant_id, data["task_id"], now=now)

        if notification.type == NotificationType.APPOINTMENT_REMINDER.value and data.get("appointment_id"):
            try:
                rows = await self.store.update(
                    TABLE_APPOINTMENTS,
                    {"id": data["appointment_id"], "tenant_id": notification.tenant_id},
                    {"status": AppointmentStatus.COMPLETED.value},
                )
            except RecordStoreError as e:
                return {"success": False, "error": e.message}
            return {"success": bool(rows), "updated": len(rows)}

        if not notification.lead_id:
            return {"success": True, "action": "none"}

        if notification.type == NotificationType.OFFER_OVERDUE.value or (
            notification.type == NotificationType.SLA_BREACH.value and kind == KIND_OFFER_OVERDUE
        ):
            return await self.follow_ups.create_task(
                notification.tenant_id, notification.lead_id, TaskType.OFFER_FOLLOWUP.value,
                today, priority=TaskPriority.HIGH.value, title="Follow up on overdue offer",
            )

        if notification.type == NotificationType.SLA_BREACH.value and kind == KIND_CONTACT_OVERDUE:
            return await self.follow_ups.create_task(
                notification.tenant_id, notification.lead_id, TaskType.CALL.value,
                today, priority=TaskPriority.HIGH.value, title="First contact overdue",
            )

        return {"success": True, "action": "none"}

    async def resolve(self, user_id: str, notification_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Resolve the condition behind a notification.

        The side effect runs at most once: an already-read notification is
        skipped. The notification is marked read even if the side effect
        fails.
        """
        now = now or datetime.now(pytz.UTC)
        try:
            notification = await self._get(user_id, notification_id)
        except RecordStoreError as e:
            return {"success": False, "error": e.message}
        if notification is None:
            return {"success": False, "error": "Notification not found"}
        if notification.read:
            return {"success": True, "skipped": True, "side_effect": None}

        side_effect: Dict[str, Any] = {"success": False, "error": "not attempted"}
        try:
            side_effect = await self._apply_side_effect(notification, now)
            if not side_effect.get("success"):
                logger.warning(
                    f"Resolve side effect failed for notification {notification_id}: {side_effect.get('error')}"
                )
        finally:
            marked = await self.mark_read(user_id, notification_id)

        return {
            "success": marked["success"],
            "skipped": False,
            "side_effect": side_effect,
            "error": marked.get("error"),
        }

