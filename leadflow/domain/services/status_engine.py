"""
Status Transition Engine
Resolves the single next lead status from a snapshot and a proposed patch.

Resolution is an ordered list of rules evaluated top-down; the first rule
that applies decides the status. The order is part of the contract: offer
progress outranks contact progress, so a patch that both uploads an offer
and records "reached" lands on OFFER_SUBMITTED.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Tuple, Union, Dict, Any

from pydantic import ValidationError

from leadflow.domain.models.lead import (
    Lead,
    LeadPatch,
    LeadStatus,
    PhoneStatus,
    LostReason,
    MAX_NOT_REACHED,
)
from leadflow.domain.services.business_calendar import add_business_days

logger = logging.getLogger(__name__)


class InvalidTransitionError(ValueError):
    """Raised for malformed transition input; the patch must not be applied."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


@dataclass(frozen=True)
class StatusTransitionRequest:
    """
    Everything the resolver needs, gathered before it runs.

    `has_future_appointment` comes from the appointments collection and is
    read by the caller so the resolver stays free of I/O.
    """
    lead: Lead
    patch: LeadPatch
    has_future_appointment: bool = False


@dataclass(frozen=True)
class TransitionRule:
    """One precedence step: predicate -> resulting status"""
    name: str
    applies: Callable[[StatusTransitionRequest], bool]
    resolve: Callable[[StatusTransitionRequest], str]
    description: str


NOT_REACHED_STATUS_BY_COUNT = {
    1: LeadStatus.NOT_REACHED_1X.value,
    2: LeadStatus.NOT_REACHED_2X.value,
    3: LeadStatus.NOT_REACHED_3X.value,
}


def _effective_not_reached(request: StatusTransitionRequest) -> int:
    if request.patch.not_reached_count is not None:
        return request.patch.not_reached_count
    return request.lead.not_reached_count or 0


def _newly_set(patch_value: Optional[bool], current: bool) -> bool:
    return bool(patch_value) and not current


TRANSITION_RULES: Tuple[TransitionRule, ...] = (
    TransitionRule(
        name="forced_status",
        applies=lambda r: r.patch.force_status is not None,
        resolve=lambda r: r.patch.force_status,
        description="Internal override after a booking; bypasses all inference",
    ),
    TransitionRule(
        name="explicit_status",
        applies=lambda r: r.patch.status is not None and r.patch.status != r.lead.status,
        resolve=lambda r: r.patch.status,
        description="User picked a different status",
    ),
    TransitionRule(
        name="offer_uploaded",
        applies=lambda r: _newly_set(r.patch.offer_uploaded, r.lead.offer_uploaded),
        resolve=lambda r: LeadStatus.OFFER_SUBMITTED.value,
        description="Offer document uploaded for the first time",
    ),
    TransitionRule(
        name="tvp_uploaded",
        applies=lambda r: _newly_set(r.patch.tvp_uploaded, r.lead.tvp_uploaded),
        resolve=lambda r: LeadStatus.TVP.value,
        description="TVP document uploaded for the first time",
    ),
    TransitionRule(
        name="phone_reached",
        applies=lambda r: r.patch.phone_status == PhoneStatus.REACHED.value,
        resolve=lambda r: (
            LeadStatus.APPOINTMENT_SCHEDULED.value
            if r.has_future_appointment
            else LeadStatus.IN_PROGRESS.value
        ),
        description="Customer reached; appointment on file decides the status",
    ),
    TransitionRule(
        name="not_reached_cascade",
        applies=lambda r: _effective_not_reached(r) >= 1,
        resolve=lambda r: NOT_REACHED_STATUS_BY_COUNT[min(_effective_not_reached(r), MAX_NOT_REACHED)],
        description="Not-reached counter maps to the 1x/2x/3x cascade",
    ),
)


def coerce_patch(patch: Union[LeadPatch, Dict[str, Any]]) -> LeadPatch:
    """Validate a raw patch; unknown enum values become InvalidTransitionError."""
    if isinstance(patch, LeadPatch):
        return patch
    try:
        return LeadPatch(**patch)
    except ValidationError as e:
        raise InvalidTransitionError(f"Invalid lead patch: {e.errors()[0].get('msg')}") from e


def validate_status(value: Any) -> str:
    try:
        return LeadStatus(value).value
    except ValueError:
        raise InvalidTransitionError(f"Unknown lead status: {value!r}")


def match_rule(
    request: StatusTransitionRequest,
    rules: Tuple[TransitionRule, ...] = TRANSITION_RULES,
) -> Optional[TransitionRule]:
    """First rule that applies, or None for a no-op."""
    for rule in rules:
        if rule.applies(request):
            return rule
    return None


def resolve_transition(request: StatusTransitionRequest) -> str:
    rule = match_rule(request)
    if rule is None:
        return request.lead.status
    return validate_status(rule.resolve(request))


def resolve_status(
    lead: Lead,
    patch: Union[LeadPatch, Dict[str, Any]],
    has_future_appointment: bool = False,
) -> str:
    """
    Resolve the next status for `lead` given `patch`.

    Pure and deterministic: the same (lead, patch, has_future_appointment)
    always yields the same status.

    Raises:
        InvalidTransitionError: If the patch carries unknown enum values
    """
    return resolve_transition(
        StatusTransitionRequest(
            lead=lead,
            patch=coerce_patch(patch),
            has_future_appointment=has_future_appointment,
        )
    )


def record_not_reached(count: Optional[int]) -> int:
    """Increment the not-reached counter, saturating at MAX_NOT_REACHED."""
    return min((count or 0) + 1, MAX_NOT_REACHED)


def apply_phone_outcome(lead: Lead, patch: LeadPatch, today: date) -> LeadPatch:
    """
    Expand a phone outcome into the fields it implies.

    A "not reached" attempt bumps the counter and, when no follow-up is on
    file or in the patch, requests one for the next business day. Other
    outcomes pass through unchanged.
    """
    if patch.phone_status != PhoneStatus.NOT_REACHED.value:
        return patch

    data = patch.model_dump(exclude_unset=True)
    if patch.not_reached_count is None:
        data["not_reached_count"] = record_not_reached(lead.not_reached_count)
    else:
        data["not_reached_count"] = min(patch.not_reached_count, MAX_NOT_REACHED)

    if not patch.sets("follow_up_requested") and not lead.follow_up_requested:
        data["follow_up_requested"] = True
        data["follow_up_date"] = add_business_days(today, 1)

    return LeadPatch(**data)


def validate_lost_reason(lead: Lead, patch: LeadPatch) -> None:
    """A lost reason only makes sense together with LOST."""
    if patch.lost_reason is None:
        return
    target = patch.force_status or patch.status or lead.status
    if target != LeadStatus.LOST.value:
        raise InvalidTransitionError(
            f"lost_reason {patch.lost_reason!r} requires status {LeadStatus.LOST.value!r}"
        )


# Status picker offered to users, by current status
_BASE_CHOICES = [LeadStatus.NEW.value, LeadStatus.CONTACTED.value]
_PICKER = {
    LeadStatus.NEW.value: [LeadStatus.LOST.value],
    LeadStatus.CONTACTED.value: [
        LeadStatus.APPOINTMENT_SCHEDULED.value,
        LeadStatus.OFFER_SUBMITTED.value,
        LeadStatus.LOST.value,
    ],
    LeadStatus.APPOINTMENT_SCHEDULED.value: [
        LeadStatus.APPOINTMENT_SCHEDULED.value,
        LeadStatus.OFFER_SUBMITTED.value,
        LeadStatus.IN_CONSIDERATION.value,
        LeadStatus.LOST.value,
    ],
    LeadStatus.IN_CONSIDERATION.value: [
        LeadStatus.APPOINTMENT_SCHEDULED.value,
        LeadStatus.OFFER_SUBMITTED.value,
        LeadStatus.IN_CONSIDERATION.value,
        LeadStatus.TVP.value,
        LeadStatus.LOST.value,
    ],
    LeadStatus.TVP.value: [
        LeadStatus.APPOINTMENT_SCHEDULED.value,
        LeadStatus.OFFER_SUBMITTED.value,
        LeadStatus.IN_CONSIDERATION.value,
        LeadStatus.TVP.value,
        LeadStatus.WON.value,
        LeadStatus.LOST.value,
    ],
}
_PICKER[LeadStatus.OFFER_SUBMITTED.value] = _PICKER[LeadStatus.APPOINTMENT_SCHEDULED.value]


def available_statuses(current: str) -> List[str]:
    """Statuses shown in the picker for a lead currently in `current` (display only)."""
    return _BASE_CHOICES + _PICKER.get(validate_status(current), [])


def should_notify_status_change(old: Lead, new: Lead, appointment_changed: bool = False) -> bool:
    """Notification-worthy: status, phone outcome, follow-up request or appointment date changed."""
    return any([
        old.status != new.status,
        old.phone_status != new.phone_status,
        not old.follow_up_requested and new.follow_up_requested,
        appointment_changed,
    ])


def build_status_notification(old: Lead, new: Lead, appointment_changed: bool = False) -> Optional[Tuple[str, str]]:
    """Title and message for a notification-worthy change, or None."""
    name = new.display_name
    if old.status != new.status:
        return (
            f"Lead status changed: {old.status or 'none'} -> {new.status}",
            f'Status of lead "{name}" was changed',
        )
    if old.phone_status != new.phone_status:
        return (
            f"Phone status changed: {old.phone_status or 'none'} -> {new.phone_status}",
            f'Phone status of "{name}" was updated',
        )
    if not old.follow_up_requested and new.follow_up_requested:
        return (
            "Follow-up created",
            f'Follow-up for "{name}" on {new.follow_up_date} created',
        )
    if appointment_changed:
        return ("Appointment changed", f'Appointment for "{name}" was rescheduled')
    return None


def is_lost_not_interested(lead: Lead) -> bool:
    return lead.status == LeadStatus.LOST.value and lead.lost_reason == LostReason.NOT_INTERESTED.value
