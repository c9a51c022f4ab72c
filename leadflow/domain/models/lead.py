"""
Lead Domain Models
Lead snapshot, lifecycle status and the partial patch applied by forms and phone actions
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, date
from enum import Enum


class LeadStatus(str, Enum):
    """Lifecycle status of a lead"""
    NEW = "new"
    CONTACTED = "contacted"
    IN_PROGRESS = "in_progress"
    APPOINTMENT_SCHEDULED = "appointment_scheduled"
    OFFER_CREATED = "offer_created"
    OFFER_SUBMITTED = "offer_submitted"
    IN_CONSIDERATION = "in_consideration"
    TVP = "tvp"
    WON = "won"
    LOST = "lost"
    NOT_REACHED_1X = "not_reached_1x"
    NOT_REACHED_2X = "not_reached_2x"
    NOT_REACHED_3X = "not_reached_3x"


class PhoneStatus(str, Enum):
    """Outcome of a single contact attempt"""
    REACHED = "reached"
    NOT_REACHED = "not_reached"
    CALLBACK_REQUESTED = "callback_requested"
    APPOINTMENT_SET = "appointment_set"


class LostReason(str, Enum):
    """Why a lead was lost"""
    OTHER_COMPANY = "other_company"
    PROJECT_PAUSED = "project_paused"
    NOT_INTERESTED = "not_interested"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    OFFER_REJECTED = "offer_rejected"


class NextAction(str, Enum):
    """Next step chosen on the lead form"""
    APPOINTMENT = "appointment"
    OFFER = "offer"
    FOLLOW_UP = "follow_up"
    NOTE = "note"


# The not-reached counter saturates here
MAX_NOT_REACHED = 3


class Lead(BaseModel):
    """
    Snapshot of a lead as stored in the `leads` table.

    The engine never mutates a snapshot; it proposes a LeadPatch and the
    record store applies it.
    """
    id: str
    tenant_id: str
    user_id: Optional[str] = None

    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    status: LeadStatus = LeadStatus.NEW.value
    status_since: Optional[datetime] = None
    phone_status: Optional[PhoneStatus] = None
    not_reached_count: int = Field(default=0, ge=0, le=MAX_NOT_REACHED)
    lost_reason: Optional[LostReason] = None

    # Legacy follow-up fields, still honored
    follow_up_requested: bool = False
    follow_up_date: Optional[date] = None

    offer_uploaded: bool = False
    tvp_uploaded: bool = False
    next_action: Optional[NextAction] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"use_enum_values": True, "extra": "ignore"}

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.phone or self.id


class LeadPatch(BaseModel):
    """
    Partial update proposed for a lead.

    Only fields the caller explicitly set are considered changed
    (`model_fields_set`). `force_status` is an internal override used after a
    booking where the resulting status is already known; it is never
    persisted.
    """
    status: Optional[LeadStatus] = None
    force_status: Optional[LeadStatus] = None
    phone_status: Optional[PhoneStatus] = None
    not_reached_count: Optional[int] = Field(default=None, ge=0)
    lost_reason: Optional[LostReason] = None
    follow_up_requested: Optional[bool] = None
    follow_up_date: Optional[date] = None
    offer_uploaded: Optional[bool] = None
    tvp_uploaded: Optional[bool] = None
    next_action: Optional[NextAction] = None

    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    model_config = {"use_enum_values": True, "extra": "forbid"}

    @field_validator("not_reached_count")
    @classmethod
    def _saturate_counter(cls, v: Optional[int]) -> Optional[int]:
        return None if v is None else min(v, MAX_NOT_REACHED)

    def changes(self) -> dict:
        """Fields explicitly set on the patch, without the internal override."""
        data = self.model_dump(exclude_unset=True)
        data.pop("force_status", None)
        return data

    def sets(self, field: str) -> bool:
        return field in self.model_fields_set
