"""
Engine Wiring
Builds the service graph once for the API process or the SLA worker
"""
import logging
from dataclasses import dataclass
from typing import Optional

from leadflow.core.config import Settings, ConfigManager, get_settings, get_config_manager
from leadflow.domain.services.business_calendar import get_timezone, STATIC_HOLIDAYS
from leadflow.domain.services.follow_up_generator import (
    WORKFLOW_NOT_REACHED_EMAIL,
    WORKFLOW_APPOINTMENT_INVITE,
)
from leadflow.infrastructure.alert_state.local_store import AlertStateStore, LocalAlertStateStore
from leadflow.infrastructure.storage.record_store import RecordStore, InMemoryRecordStore, SupabaseRecordStore
from leadflow.infrastructure.workflow.webhook_client import WorkflowClient
from leadflow.services.follow_up_service import FollowUpService
from leadflow.services.notification_service import NotificationService
from leadflow.services.lead_service import LeadService
from leadflow.services.sla_service import SlaService, BreachNotifier
from leadflow.services.dashboard_service import DashboardService

logger = logging.getLogger(__name__)


@dataclass
class EngineServices:
    store: RecordStore
    workflows: WorkflowClient
    follow_ups: FollowUpService
    notifications: NotificationService
    leads: LeadService
    sla: SlaService
    dashboard: DashboardService


def create_record_store(settings: Settings) -> RecordStore:
    """Supabase when configured, otherwise an in-memory store."""
    if settings.supabase_url and settings.supabase_service_key:
        from supabase import create_client
        return SupabaseRecordStore(create_client(settings.supabase_url, settings.supabase_service_key))
    logger.warning("Supabase not configured; using in-memory record store")
    return InMemoryRecordStore()


def create_workflow_client(settings: Settings) -> WorkflowClient:
    return WorkflowClient(
        settings.workflow_webhook_url,
        paths={
            WORKFLOW_NOT_REACHED_EMAIL: settings.not_reached_email_webhook_path,
            WORKFLOW_APPOINTMENT_INVITE: settings.appointment_invite_webhook_path,
        },
        timeout=settings.workflow_timeout_seconds,
    )


def build_engine(
    store: Optional[RecordStore] = None,
    settings: Optional[Settings] = None,
    config: Optional[ConfigManager] = None,
    workflows: Optional[WorkflowClient] = None,
    state_store: Optional[AlertStateStore] = None,
    notifier: Optional[BreachNotifier] = None,
) -> EngineServices:
    """Wire all services; any collaborator can be injected (tests)."""
    settings = settings or get_settings()
    config = config or get_config_manager()
    tz = get_timezone(settings.business_timezone)
    holidays = list(config.get("calendar.holidays", []) or [])
    if config.get("calendar.static_holidays", False):
        holidays.extend(sorted(STATIC_HOLIDAYS))

    store = store or create_record_store(settings)
    workflows = workflows or create_workflow_client(settings)
    state_store = state_store or LocalAlertStateStore(settings.alert_state_path)

    follow_ups = FollowUpService(store, holidays, tz)
    notifications = NotificationService(store, follow_ups, tz)
    leads = LeadService(store, follow_ups, notifications, workflows, tz)
    sla = SlaService(
        store,
        follow_ups,
        state_store,
        thresholds=config.get_sla_thresholds(),
        notifier=notifier,
        tz=tz,
    )
    dashboard = DashboardService(store, follow_ups, tz)

    return EngineServices(
        store=store,
        workflows=workflows,
        follow_ups=follow_ups,
        notifications=notifications,
        leads=leads,
        sla=sla,
        dashboard=dashboard,
    )
