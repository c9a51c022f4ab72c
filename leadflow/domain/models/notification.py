"""
Notification Domain Models
Inbox entries with read and snooze state
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum


class NotificationType(str, Enum):
    """What produced the notification"""
    LEAD_STATUS_CHANGE = "lead_status_change"
    NEW_LEAD_ASSIGNED = "new_lead_assigned"
    OFFER_OVERDUE = "offer_overdue"
    SLA_BREACH = "sla_breach"
    WORKFLOW_ERROR = "workflow_error"
    SYSTEM_MAINTENANCE = "system_maintenance"
    FOLLOWUP_DUE = "followup_due"
    APPOINTMENT_REMINDER = "appointment_reminder"


class NotificationPriority(str, Enum):
    """Display priority"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationCategory(str, Enum):
    """Inbox tab a notification is filed under"""
    SLA = "sla"
    LEADS = "leads"
    SYSTEM = "system"


class SnoozePreset(str, Enum):
    """Snooze shortcuts, resolved to absolute timestamps at call time"""
    ONE_HOUR = "1h"
    FOUR_HOURS = "4h"
    TOMORROW_9 = "tomorrow9"
    NEXT_WEEK = "nextweek"
    CUSTOM = "custom"


def category_for(type: Optional[str], category: Optional[str] = None) -> str:
    """Stored category wins; otherwise derive it from the notification type."""
    if category in (NotificationCategory.SLA.value, NotificationCategory.SYSTEM.value):
        return category
    t = type or ""
    if "sla" in t:
        return NotificationCategory.SLA.value
    if "workflow" in t or "system" in t:
        return NotificationCategory.SYSTEM.value
    return NotificationCategory.LEADS.value


class Notification(BaseModel):
    """Row of the `notifications` table"""
    id: str
    user_id: str
    tenant_id: str
    lead_id: Optional[str] = None

    type: NotificationType
    title: str
    message: str
    read: bool = False
    created_at: Optional[datetime] = None
    priority: NotificationPriority = NotificationPriority.NORMAL.value
    action_data: Dict[str, Any] = Field(default_factory=dict)
    snoozed_until: Optional[datetime] = None
    category: Optional[NotificationCategory] = None

    model_config = {"use_enum_values": True, "extra": "ignore"}

    @property
    def resolved_category(self) -> str:
        return category_for(self.type, self.category)


class InboxView(BaseModel):
    """Computed split of a user's notifications at one instant"""
    active: List[Notification] = Field(default_factory=list)
    snoozed: List[Notification] = Field(default_factory=list)
    unread_count: int = 0
    count_by_category: Dict[str, int] = Field(default_factory=dict)
