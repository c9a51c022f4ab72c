"""
Dashboard API Endpoints
Daily agenda: overdue, today and next-7-days buckets with the week overview
"""
import logging
from typing import Optional
from datetime import datetime

import pytz

from fastapi import APIRouter, Depends, Query

from leadflow.api.v1.dependencies import get_current_user, get_engine, raise_for_result, CurrentUser
from leadflow.domain.services.business_calendar import local_today
from leadflow.services.engine import EngineServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/")
async def get_dashboard(
    lead_id: Optional[str] = Query(None, description="Restrict the agenda to one lead"),
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """Open follow-ups and appointments bucketed by due day in the business timezone."""
    today = local_today(datetime.now(pytz.UTC), engine.dashboard.tz)
    result = raise_for_result(await engine.dashboard.build(current_user.tenant_id, today, lead_id))
    return result["dashboard"].model_dump(mode="json")
