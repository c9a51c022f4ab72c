"""Domain models"""

# Lead lifecycle
from .lead import (
    LeadStatus,
    PhoneStatus,
    LostReason,
    NextAction,
    Lead,
    LeadPatch,
    MAX_NOT_REACHED,
)

# Tasks and appointments
from .follow_up import (
    TaskType,
    TaskPriority,
    FollowUpTask,
)
from .appointment import (
    AppointmentStatus,
    Appointment,
)

# SLA and notifications
from .sla import (
    BreachType,
    SlaThresholds,
    SlaBreach,
)
from .notification import (
    NotificationType,
    NotificationPriority,
    NotificationCategory,
    SnoozePreset,
    Notification,
    InboxView,
)

from .dashboard import (
    TaskSource,
    DashboardTask,
    DashboardView,
    FollowUpStats,
)
from .status_change import StatusChange

__all__ = [
    # Lead lifecycle
    "LeadStatus",
    "PhoneStatus",
    "LostReason",
    "NextAction",
    "Lead",
    "LeadPatch",
    "MAX_NOT_REACHED",
    # Tasks and appointments
    "TaskType",
    "TaskPriority",
    "FollowUpTask",
    "AppointmentStatus",
    "Appointment",
    # SLA and notifications
    "BreachType",
    "SlaThresholds",
    "SlaBreach",
    "NotificationType",
    "NotificationPriority",
    "NotificationCategory",
    "SnoozePreset",
    "Notification",
    "InboxView",
    # Dashboard
    "TaskSource",
    "DashboardTask",
    "DashboardView",
    "FollowUpStats",
    "StatusChange",
]
