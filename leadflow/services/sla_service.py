"""
SLA Service
Evaluates breaches against the record store, applies per-user suppression
and announces newly seen breaches once per session.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from datetime import datetime

import pytz

from leadflow.domain.models.lead import Lead
from leadflow.domain.models.sla import SlaBreach, SlaThresholds, BreachType
from leadflow.domain.models.notification import NotificationType, NotificationPriority
from leadflow.domain.services.business_calendar import ensure_aware, format_duration_hours
from leadflow.domain.services.sla_detector import compute_breaches, filter_suppressed, BreachFanout
from leadflow.domain.services.snooze import resolve_snooze_until
from leadflow.domain.services.status_engine import InvalidTransitionError
from leadflow.infrastructure.alert_state.local_store import AlertStateStore, ScopedAlertStateStore
from leadflow.infrastructure.storage.record_store import RecordStore, RecordStoreError, TABLE_LEADS
from leadflow.services.follow_up_service import FollowUpService
from leadflow.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def _validate_breach_type(value: str) -> str:
    try:
        return BreachType(value).value
    except ValueError:
        raise InvalidTransitionError(f"Unknown breach type: {value!r}")


class BreachNotifier(ABC):
    """Receives breaches the session has not announced yet"""

    @abstractmethod
    async def notify(self, breaches: List[SlaBreach], leads: Dict[str, Lead], now: datetime) -> None:
        pass


class LoggingBreachNotifier(BreachNotifier):
    """Announces breaches in the log (headless desktop-notification stand-in)"""

    async def notify(self, breaches: List[SlaBreach], leads: Dict[str, Lead], now: datetime) -> None:
        for breach in breaches:
            overdue = (now - breach.due_at).total_seconds() / 3600
            logger.warning(
                f"{breach.title}: {breach.lead_name or breach.lead_id} "
                f"(overdue {format_duration_hours(max(overdue, 0))}, level {breach.level})"
            )


class InboxBreachNotifier(BreachNotifier):
    """Files an `sla_breach` notification for the lead owner"""

    def __init__(self, notifications: NotificationService, fallback_user_id: Optional[str] = None):
        self.notifications = notifications
        self.fallback_user_id = fallback_user_id

    async def notify(self, breaches: List[SlaBreach], leads: Dict[str, Lead], now: datetime) -> None:
        for breach in breaches:
            lead = leads.get(breach.lead_id)
            user_id = (lead.user_id if lead else None) or self.fallback_user_id
            if not user_id:
                logger.debug(f"No recipient for breach {breach.key}")
                continue
            result = await self.notifications.create(
                user_id=user_id,
                tenant_id=breach.tenant_id,
                type=NotificationType.SLA_BREACH.value,
                title=breach.title,
                message=f'"{breach.lead_name or breach.lead_id}" was due {breach.due_at.isoformat()}',
                lead_id=breach.lead_id,
                priority=NotificationPriority.CRITICAL.value if breach.level > 1 else NotificationPriority.HIGH.value,
                action_data={
                    "breach_type": breach.breach_type,
                    "task_id": breach.task_id,
                    "level": breach.level,
                },
            )
            if not result["success"]:
                logger.warning(f"Could not file breach notification {breach.key}: {result['error']}")


@dataclass
class SlaSession:
    """Suppression state and announcement guard of one user or device"""
    state_store: AlertStateStore
    fanout: BreachFanout = field(default_factory=BreachFanout)


class SlaService:
    """
    SLA evaluation with per-session suppression and announcements.

    `session_id=None` is the server's own session (the SLA worker): it uses
    `state_store` directly and hands new breaches to the notifier. Any other
    session id (the API passes the user id) gets its own fan-out guard and a
    scoped view of `state_store`, so one user's snooze or acknowledgement
    never hides a breach from another user.
    """

    def __init__(
        self,
        store: RecordStore,
        follow_ups: FollowUpService,
        state_store: AlertStateStore,
        thresholds: Optional[SlaThresholds] = None,
        notifier: Optional[BreachNotifier] = None,
        tz=None,
    ):
        self.store = store
        self.follow_ups = follow_ups
        self.state_store = state_store
        self.thresholds = thresholds or SlaThresholds()
        self.notifier = notifier or LoggingBreachNotifier()
        self.tz = tz or pytz.UTC
        self._default_session = SlaSession(state_store)
        self._sessions: Dict[str, SlaSession] = {}

    @property
    def fanout(self) -> BreachFanout:
        return self._default_session.fanout

    def session(self, session_id: Optional[str] = None) -> SlaSession:
        if session_id is None:
            return self._default_session
        if session_id not in self._sessions:
            self._sessions[session_id] = SlaSession(ScopedAlertStateStore(self.state_store, session_id))
        return self._sessions[session_id]

    async def _fetch_leads(self, tenant_id: str) -> List[Lead]:
        rows = await self.store.select_where(TABLE_LEADS, match={"tenant_id": tenant_id})
        return [Lead(**row) for row in rows]

    async def evaluate(
        self,
        tenant_id: str,
        now: Optional[datetime] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Recompute breaches for a tenant.

        Returns:
            {"success", "breaches": active (unsuppressed), "new": first seen
             by this session, "suppressed": count}
        """
        now = ensure_aware(now or datetime.now(pytz.UTC))
        try:
            leads = await self._fetch_leads(tenant_id)
            tasks = await self.follow_ups.fetch_open_tasks(tenant_id)
        except RecordStoreError as e:
            logger.error(f"SLA evaluation failed for tenant {tenant_id}: {e.message}")
            return {"success": False, "error": e.message}

        session = self.session(session_id)
        all_breaches = compute_breaches(
            leads, tasks, now, thresholds=self.thresholds, tz=self.tz, tenant_id=tenant_id
        )
        # Only resolved breaches are forgotten; snoozed ones keep their key
        session.fanout.retain(b.key for b in all_breaches)
        active = filter_suppressed(all_breaches, session.state_store, now)
        fresh = session.fanout.select_new(active, now)

        if fresh and session_id is None:
            await self.notifier.notify(fresh, {lead.id: lead for lead in leads}, now)

        return {
            "success": True,
            "breaches": active,
            "new": fresh,
            "suppressed": len(all_breaches) - len(active),
        }

    async def _find_lead(self, tenant_id: str, lead_id: str) -> Optional[Dict[str, Any]]:
        """Failure result when the lead is not visible to the tenant, else None."""
        try:
            row = await self.store.select_one(TABLE_LEADS, {"id": lead_id, "tenant_id": tenant_id})
        except RecordStoreError as e:
            logger.error(f"Lead lookup failed for {lead_id}: {e.message}")
            return {"success": False, "error": e.message}
        if row is None:
            return {"success": False, "error": f"Lead {lead_id} not found", "error_type": "not_found"}
        return None

    async def snooze(
        self,
        tenant_id: str,
        lead_id: str,
        breach_type: str,
        preset: str = "1h",
        custom: Optional[datetime] = None,
        now: Optional[datetime] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Suppress a breach for the session until the preset's wake-up time.

        Raises:
            InvalidTransitionError: Unknown breach type or preset
        """
        breach_type = _validate_breach_type(breach_type)
        until = resolve_snooze_until(preset, now=now, custom=custom, tz=self.tz)
        failure = await self._find_lead(tenant_id, lead_id)
        if failure:
            return failure
        self.session(session_id).state_store.snooze(lead_id, breach_type, until)
        logger.info(f"Breach {lead_id}_{breach_type} snoozed until {until.isoformat()}")
        return {"success": True, "snoozed_until": until}

    async def acknowledge(
        self,
        tenant_id: str,
        lead_id: str,
        breach_type: str,
        now: Optional[datetime] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Suppress a breach for the session until the acknowledgement is cleared."""
        breach_type = _validate_breach_type(breach_type)
        failure = await self._find_lead(tenant_id, lead_id)
        if failure:
            return failure
        self.session(session_id).state_store.acknowledge(lead_id, breach_type, now)
        return {"success": True}

    async def clear_acknowledgement(
        self,
        tenant_id: str,
        lead_id: str,
        breach_type: str,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        breach_type = _validate_breach_type(breach_type)
        failure = await self._find_lead(tenant_id, lead_id)
        if failure:
            return failure
        self.session(session_id).state_store.clear_acknowledgement(lead_id, breach_type)
        return {"success": True}
