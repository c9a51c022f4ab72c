"""
Appointment Domain Model
Booked on-site or phone appointments, owned outside the automation engine
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum


class AppointmentStatus(str, Enum):
    """Status of an appointment"""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


OPEN_APPOINTMENT_STATUSES = {AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value}


class Appointment(BaseModel):
    """Row of the `appointments` table"""
    id: str
    tenant_id: str
    lead_id: Optional[str] = None
    title: Optional[str] = None
    start_time: datetime
    duration_minutes: int = 60
    status: AppointmentStatus = AppointmentStatus.SCHEDULED.value
    calendar_link: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"use_enum_values": True, "extra": "ignore"}

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_APPOINTMENT_STATUSES
