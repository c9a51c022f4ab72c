"""
SLA Breach Detector
Computes active SLA breaches from the current lead and task sets.

Breaches are never stored. They are recomputed from scratch on every
evaluation, so the result is a pure function of (leads, tasks, now).
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set

import pytz

from leadflow.domain.models.lead import Lead, LeadStatus
from leadflow.domain.models.follow_up import FollowUpTask
from leadflow.domain.models.sla import BreachType, SlaBreach, SlaThresholds
from leadflow.domain.services.business_calendar import add_calendar_days, ensure_aware, local_today, start_of_day

logger = logging.getLogger(__name__)


CONTACT_STATUSES = {LeadStatus.NEW.value, LeadStatus.CONTACTED.value}
OFFER_STATUSES = {LeadStatus.OFFER_CREATED.value, LeadStatus.OFFER_SUBMITTED.value}


def breach_level(due_at: datetime, now: datetime, step_hours: float) -> int:
    """1 right after the deadline, +1 for every further `step_hours` overdue."""
    overdue_hours = (ensure_aware(now) - ensure_aware(due_at)).total_seconds() / 3600
    if overdue_hours <= 0:
        return 1
    return 1 + int(math.floor(overdue_hours / step_hours))


def _status_breach(
    lead: Lead,
    now: datetime,
    thresholds: SlaThresholds,
) -> Optional[SlaBreach]:
    if lead.status_since is None:
        return None

    if lead.status in CONTACT_STATUSES:
        breach_type, hours = BreachType.CONTACT_24H.value, thresholds.contact_hours
    elif lead.status in OFFER_STATUSES:
        breach_type, hours = BreachType.OFFER_48H.value, thresholds.offer_hours
    else:
        return None

    due_at = ensure_aware(lead.status_since) + timedelta(hours=hours)
    if ensure_aware(now) <= due_at:
        return None

    return SlaBreach(
        tenant_id=lead.tenant_id,
        lead_id=lead.id,
        lead_name=lead.name,
        breach_type=breach_type,
        due_at=due_at,
        level=breach_level(due_at, now, thresholds.level_step_hours),
    )


def compute_breaches(
    leads: Iterable[Lead],
    tasks: Iterable[FollowUpTask],
    now: datetime,
    thresholds: Optional[SlaThresholds] = None,
    tz=None,
    tenant_id: Optional[str] = None,
) -> List[SlaBreach]:
    """
    Active breaches at `now`.

    Args:
        leads: Lead snapshots
        tasks: Follow-up tasks (completed ones are ignored)
        now: Evaluation instant (naive = UTC)
        thresholds: SLA limits, defaults to 24 h contact / 48 h offer
        tz: Business timezone that decides what "today" is for due dates
        tenant_id: Restrict to one tenant; rows of other tenants are skipped

    Returns:
        Breaches sorted by level (highest first), then due time
    """
    thresholds = thresholds or SlaThresholds()
    tz = tz or pytz.UTC
    today = local_today(ensure_aware(now), tz)

    leads_by_id: Dict[str, Lead] = {}
    for lead in leads:
        if tenant_id and lead.tenant_id != tenant_id:
            continue
        leads_by_id[lead.id] = lead

    breaches: List[SlaBreach] = []
    for lead in leads_by_id.values():
        breach = _status_breach(lead, now, thresholds)
        if breach is not None:
            breaches.append(breach)

    for task in tasks:
        if not task.is_overdue(today):
            continue
        lead = leads_by_id.get(task.lead_id)
        # Orphaned or cross-tenant tasks fail safe by omission
        if lead is None or lead.tenant_id != task.tenant_id:
            logger.debug(f"Skipping overdue task {task.id}: no matching lead {task.lead_id}")
            continue
        due_at = start_of_day(add_calendar_days(task.due_date, 1), tz)
        breaches.append(
            SlaBreach(
                tenant_id=lead.tenant_id,
                lead_id=lead.id,
                lead_name=lead.name,
                breach_type=BreachType.FOLLOWUP_OVERDUE.value,
                due_at=due_at,
                level=breach_level(due_at, now, thresholds.level_step_hours),
                task_id=task.id,
            )
        )

    breaches.sort(key=lambda b: (-b.level, ensure_aware(b.due_at)))
    return breaches


def filter_suppressed(breaches: Iterable[SlaBreach], state_store, now: datetime) -> List[SlaBreach]:
    """Drop breaches snoozed into the future or acknowledged on this device."""
    return [
        b for b in breaches
        if not state_store.is_suppressed(b.lead_id, b.breach_type, now)
    ]


class BreachFanout:
    """
    Once-per-session notification guard.

    Remembers every (lead, breach type) pair it has announced; re-polling
    the same unresolved breach yields nothing new. `retain` drops pairs
    whose breach has resolved, so a recurrence is announced again.
    """

    def __init__(self):
        self._seen: Dict[str, datetime] = {}

    def select_new(self, breaches: Iterable[SlaBreach], now: Optional[datetime] = None) -> List[SlaBreach]:
        now = now or datetime.now(pytz.UTC)
        fresh = []
        keys: Set[str] = set()
        for breach in breaches:
            key = breach.key
            if key in self._seen or key in keys:
                continue
            keys.add(key)
            fresh.append(breach)
        for key in keys:
            self._seen[key] = now
        return fresh

    def retain(self, keys: Iterable[str]) -> int:
        """Forget announced breaches whose key is not in `keys`; returns how many."""
        keep = set(keys)
        stale = [key for key in self._seen if key not in keep]
        for key in stale:
            del self._seen[key]
        return len(stale)

    def has_seen(self, breach: SlaBreach) -> bool:
        return breach.key in self._seen

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def reset(self) -> None:
        """Start a new session (for testing)."""
        self._seen.clear()
