"""
Dashboard Domain Models
Unified due-task view over follow-ups and appointments
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date
from enum import Enum


class TaskSource(str, Enum):
    """Collection a dashboard task came from"""
    FOLLOW_UP = "follow_up"
    APPOINTMENT = "appointment"


class DashboardTask(BaseModel):
    """One row of the daily agenda"""
    task_id: str
    source: TaskSource
    lead_id: Optional[str] = None
    tenant_id: str
    title: str
    due_date: date
    due_at: Optional[datetime] = None
    priority: str
    notes: Optional[str] = None

    model_config = {"use_enum_values": True}


class WeekDay(BaseModel):
    """Per-day counts for the week overview"""
    day: date
    follow_up_count: int = 0
    appointment_count: int = 0


class LeadPriority(BaseModel):
    """Most urgent open item per lead"""
    lead_id: str
    top_priority: str
    next_due: date


class DashboardView(BaseModel):
    """Everything the daily dashboard renders"""
    overdue: List[DashboardTask] = Field(default_factory=list)
    today: List[DashboardTask] = Field(default_factory=list)
    next7: List[DashboardTask] = Field(default_factory=list)
    week: List[WeekDay] = Field(default_factory=list)
    priorities: List[LeadPriority] = Field(default_factory=list)


class FollowUpStats(BaseModel):
    """Counters for the follow-up panel"""
    total: int = 0
    overdue: int = 0
    today: int = 0
    this_week: int = 0
    next_week: int = 0
    by_priority: dict = Field(default_factory=lambda: {"critical": 0, "high": 0, "medium": 0, "low": 0})
