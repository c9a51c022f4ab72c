"""
SLA Domain Models
Computed breach indicators; never persisted as rows
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class BreachType(str, Enum):
    """Kind of time-bound obligation that was missed"""
    CONTACT_24H = "contact_24h"
    OFFER_48H = "offer_48h"
    FOLLOWUP_OVERDUE = "followup_overdue"


class SlaThresholds(BaseModel):
    """Tunable SLA limits (loaded from config/default.yaml)"""
    contact_hours: float = Field(default=24, gt=0)
    offer_hours: float = Field(default=48, gt=0)
    level_step_hours: float = Field(default=24, gt=0)


class SlaBreach(BaseModel):
    """A missed deadline on a lead, recomputed on every evaluation"""
    tenant_id: str
    lead_id: str
    lead_name: Optional[str] = None
    breach_type: BreachType
    due_at: datetime
    level: int = Field(default=1, ge=1)
    task_id: Optional[str] = None

    model_config = {"use_enum_values": True}

    @property
    def key(self) -> str:
        """Identity used for suppression and once-per-session notification"""
        return f"{self.lead_id}_{self.breach_type}"

    @property
    def title(self) -> str:
        if self.breach_type == BreachType.CONTACT_24H:
            return "SLA: first contact overdue"
        if self.breach_type == BreachType.OFFER_48H:
            return "SLA: offer 48h"
        return "Follow-up overdue"
