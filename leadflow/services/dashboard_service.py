"""
Dashboard Service
Loads open follow-ups and appointments and hands them to the aggregator
"""
import logging
from typing import Optional, Dict, Any
from datetime import date, datetime

import pytz

from leadflow.domain.models.appointment import Appointment, OPEN_APPOINTMENT_STATUSES
from leadflow.domain.services.business_calendar import add_calendar_days, local_today, start_of_day
from leadflow.domain.services.dashboard_aggregator import build_dashboard
from leadflow.infrastructure.storage.record_store import RecordStore, RecordStoreError, TABLE_APPOINTMENTS
from leadflow.services.follow_up_service import FollowUpService

logger = logging.getLogger(__name__)

# Appointments older than this are not loaded for the agenda
APPOINTMENT_LOOKBACK_DAYS = 30


class DashboardService:
    """Daily agenda for a tenant"""

    def __init__(self, store: RecordStore, follow_ups: FollowUpService, tz=None):
        self.store = store
        self.follow_ups = follow_ups
        self.tz = tz or pytz.UTC

    async def build(self, tenant_id: str, today: Optional[date] = None, lead_id: Optional[str] = None) -> Dict[str, Any]:
        today = today or local_today(datetime.now(pytz.UTC), self.tz)
        since = start_of_day(add_calendar_days(today, -APPOINTMENT_LOOKBACK_DAYS), self.tz)
        try:
            tasks = await self.follow_ups.fetch_open_tasks(tenant_id, lead_id)
            rows = await self.store.select_where(
                TABLE_APPOINTMENTS,
                match={"tenant_id": tenant_id},
                filters=[
                    ("start_time", "gte", since),
                    ("status", "in", sorted(OPEN_APPOINTMENT_STATUSES)),
                ],
                order_by="start_time",
            )
        except RecordStoreError as e:
            logger.error(f"Dashboard load failed for tenant {tenant_id}: {e.message}")
            return {"success": False, "error": e.message}

        appointments = [Appointment(**row) for row in rows]
        return {
            "success": True,
            "dashboard": build_dashboard(tasks, appointments, today, tz=self.tz, lead_id=lead_id),
        }
