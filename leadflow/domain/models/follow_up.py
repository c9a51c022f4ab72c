"""
Follow-Up Task Domain Models
Scheduled obligations attached to a lead
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, date
from enum import Enum


class TaskType(str, Enum):
    """Kind of follow-up task"""
    CALL = "call"
    OFFER = "offer"
    OFFER_FOLLOWUP = "offer_followup"
    MEETING = "meeting"
    CUSTOM = "custom"
    REENGAGEMENT = "reengagement"
    TVP = "tvp"
    FOLLOWUP = "followup"


class TaskPriority(str, Enum):
    """
    Stored priority of a task.

    OVERDUE is never stored; it is derived at read time from the due date.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    OVERDUE = "overdue"


STORABLE_PRIORITIES = {TaskPriority.LOW.value, TaskPriority.MEDIUM.value, TaskPriority.HIGH.value}


class FollowUpTask(BaseModel):
    """
    Row of the `follow_up_tasks` table.

    A task is open while `completed_at` is None. A task without an id is a
    draft that has not been persisted yet.
    """
    id: Optional[str] = None
    tenant_id: str
    lead_id: str

    type: TaskType
    title: Optional[str] = None
    due_date: date
    priority: TaskPriority = TaskPriority.MEDIUM.value
    auto_generated: bool = False
    escalation_level: int = Field(default=0, ge=0)
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    triggered_by_status: Optional[str] = None

    created_at: Optional[datetime] = None

    model_config = {"use_enum_values": True, "extra": "ignore"}

    @property
    def is_open(self) -> bool:
        return self.completed_at is None

    def is_overdue(self, today: date) -> bool:
        return self.is_open and self.due_date < today

    def effective_priority(self, today: date) -> str:
        """Priority as displayed: open tasks past their due date read as overdue."""
        if self.is_overdue(today):
            return TaskPriority.OVERDUE.value
        return self.priority

    def to_record(self) -> dict:
        """Serialize for the record store (dates as ISO strings, no id for drafts)."""
        data = self.model_dump(mode="json", exclude={"created_at"})
        if data.get("id") is None:
            data.pop("id", None)
        return data
