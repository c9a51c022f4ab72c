"""
Tests for the Notification Service
Creation, read state, snooze and the resolve action
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytz

from leadflow.domain.services.status_engine import InvalidTransitionError
from leadflow.infrastructure.storage.record_store import (
    InMemoryRecordStore,
    TABLE_APPOINTMENTS,
    TABLE_FOLLOW_UP_TASKS,
    TABLE_NOTIFICATIONS,
)
from leadflow.services.follow_up_service import FollowUpService
from leadflow.services.notification_service import NotificationService

NOW = pytz.UTC.localize(datetime(2026, 10, 19, 12, 0))
USER = "user-1"
TENANT = "tenant-1"


def build():
    store = InMemoryRecordStore()
    follow_ups = FollowUpService(store)
    return store, follow_ups, NotificationService(store, follow_ups, pytz.timezone("Europe/Berlin"))


async def create(service: NotificationService, **overrides):
    data = {
        "user_id": USER,
        "tenant_id": TENANT,
        "type": "lead_status_change",
        "title": "Lead status changed",
        "message": "Status changed",
        "lead_id": "lead-1",
    }
    data.update(overrides)
    result = await service.create(**data)
    assert result["success"] is True
    return result["notification"]


class TestCreate:
    """Tests for create"""

    @pytest.mark.asyncio
    async def test_create_sets_defaults(self):
        _, _, service = build()
        notification = await create(service)
        assert notification.read is False
        assert notification.priority == "normal"
        assert notification.category == "leads"
        assert notification.snoozed_until is None

    @pytest.mark.asyncio
    async def test_sla_type_is_filed_under_sla(self):
        _, _, service = build()
        notification = await create(service, type="sla_breach")
        assert notification.category == "sla"

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self):
        _, _, service = build()
        with pytest.raises(InvalidTransitionError):
            await service.create(USER, TENANT, "newsletter", "t", "m")


class TestReadState:
    """Tests for mark_read / mark_all_read / unread_count"""

    @pytest.mark.asyncio
    async def test_mark_read(self):
        _, _, service = build()
        notification = await create(service)
        result = await service.mark_read(USER, notification.id)
        assert result["notification"].read is True
        assert await service.unread_count(USER, TENANT, now=NOW) == 0

    @pytest.mark.asyncio
    async def test_mark_read_other_user_not_found(self):
        _, _, service = build()
        notification = await create(service)
        result = await service.mark_read("intruder", notification.id)
        assert result == {"success": False, "error": "Notification not found"}

    @pytest.mark.asyncio
    async def test_mark_all_read_counts_unread_only(self):
        _, _, service = build()
        first = await create(service)
        await create(service)
        await service.mark_read(USER, first.id)

        result = await service.mark_all_read(USER, TENANT)
        assert result["updated"] == 1
        assert await service.unread_count(USER, TENANT, now=NOW) == 0


class TestSnooze:
    """Tests for snooze / unsnooze / bulk_snooze"""

    @pytest.mark.asyncio
    async def test_snooze_hides_until_expiry(self):
        _, _, service = build()
        notification = await create(service)

        result = await service.snooze(USER, notification.id, "1h", now=NOW)
        assert result["snoozed_until"] == NOW + timedelta(hours=1)

        inbox = (await service.inbox(USER, TENANT, now=NOW))["inbox"]
        assert inbox.active == []
        assert inbox.unread_count == 0

        later = (await service.inbox(USER, TENANT, now=NOW + timedelta(hours=1, minutes=1)))["inbox"]
        assert [n.id for n in later.active] == [notification.id]
        assert later.unread_count == 1

    @pytest.mark.asyncio
    async def test_unsnooze(self):
        _, _, service = build()
        notification = await create(service)
        await service.snooze(USER, notification.id, "4h", now=NOW)
        await service.unsnooze(USER, notification.id)
        inbox = (await service.inbox(USER, TENANT, now=NOW))["inbox"]
        assert len(inbox.active) == 1

    @pytest.mark.asyncio
    async def test_bulk_snooze_same_target(self):
        """Every active item gets the same wake-up time"""
        store, _, service = build()
        for _ in range(3):
            await create(service)

        result = await service.bulk_snooze(USER, TENANT, "tomorrow9", now=NOW)

        assert result["snoozed"] == 3
        assert result["failed"] == 0
        targets = {row["snoozed_until"] for row in store.rows(TABLE_NOTIFICATIONS)}
        assert targets == {result["snoozed_until"].isoformat()}

    @pytest.mark.asyncio
    async def test_bulk_snooze_by_category(self):
        _, _, service = build()
        await create(service, type="sla_breach")
        await create(service)

        result = await service.bulk_snooze(USER, TENANT, "1h", category="sla", now=NOW)

        assert result["snoozed"] == 1
        inbox = (await service.inbox(USER, TENANT, now=NOW))["inbox"]
        assert [n.resolved_category for n in inbox.active] == ["leads"]

    @pytest.mark.asyncio
    async def test_bulk_snooze_skips_already_snoozed(self):
        _, _, service = build()
        snoozed = await create(service)
        await create(service)
        await service.snooze(USER, snoozed.id, "nextweek", now=NOW)

        result = await service.bulk_snooze(USER, TENANT, "1h", now=NOW)
        assert result["snoozed"] == 1


class TestResolve:
    """Tests for resolve"""

    @pytest.mark.asyncio
    async def test_followup_due_completes_task_once(self):
        store, follow_ups, service = build()
        task = (await follow_ups.create_task(TENANT, "lead-1", "call", NOW.date()))["task"]
        notification = await create(service, type="followup_due", action_data={"task_id": task.id})

        first = await service.resolve(USER, notification.id, now=NOW)
        assert first["success"] is True
        assert first["skipped"] is False
        assert store.rows(TABLE_FOLLOW_UP_TASKS)[0]["completed_at"] is not None

        with patch.object(follow_ups, "complete_task", AsyncMock()) as complete:
            second = await service.resolve(USER, notification.id, now=NOW)
        assert second["skipped"] is True
        complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_appointment_reminder_completes_appointment(self):
        store, _, service = build()
        appointment = await store.insert(TABLE_APPOINTMENTS, {
            "tenant_id": TENANT, "lead_id": "lead-1", "start_time": NOW.isoformat(), "status": "scheduled",
        })
        notification = await create(
            service, type="appointment_reminder", action_data={"appointment_id": appointment["id"]}
        )

        await service.resolve(USER, notification.id, now=NOW)
        assert store.rows(TABLE_APPOINTMENTS)[0]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_offer_overdue_creates_targeted_task(self):
        store, _, service = build()
        notification = await create(service, type="offer_overdue")

        result = await service.resolve(USER, notification.id, now=NOW)

        assert result["side_effect"]["success"] is True
        task = store.rows(TABLE_FOLLOW_UP_TASKS)[0]
        assert task["type"] == "offer_followup"
        assert task["priority"] == "high"
        assert task["due_date"] == "2026-10-19"

    @pytest.mark.asyncio
    async def test_contact_breach_creates_call(self):
        store, _, service = build()
        notification = await create(service, type="sla_breach", action_data={"breach_type": "contact_24h"})
        await service.resolve(USER, notification.id, now=NOW)
        assert store.rows(TABLE_FOLLOW_UP_TASKS)[0]["type"] == "call"

    @pytest.mark.asyncio
    async def test_failed_side_effect_still_marks_read(self):
        """Resolve never leaves the notification unread"""
        store, follow_ups, service = build()
        notification = await create(service, type="followup_due", action_data={"task_id": "gone"})

        result = await service.resolve(USER, notification.id, now=NOW)

        assert result["success"] is True
        assert result["side_effect"]["success"] is False
        assert store.rows(TABLE_NOTIFICATIONS)[0]["read"] is True

    @pytest.mark.asyncio
    async def test_side_effect_exception_still_marks_read(self):
        store, follow_ups, service = build()
        notification = await create(service, type="followup_due", action_data={"task_id": "t-1"})

        with patch.object(follow_ups, "complete_task", AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(RuntimeError):
                await service.resolve(USER, notification.id, now=NOW)

        assert store.rows(TABLE_NOTIFICATIONS)[0]["read"] is True

    @pytest.mark.asyncio
    async def test_resolve_unknown(self):
        _, _, service = build()
        result = await service.resolve(USER, "missing", now=NOW)
        assert result["success"] is False
