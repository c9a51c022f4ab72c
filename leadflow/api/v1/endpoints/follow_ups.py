"""
Follow-Ups API Endpoints
Task listing, stats and the task actions (create, complete, reschedule, priority, snooze)
"""
import logging
from typing import Optional
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from leadflow.api.v1.dependencies import get_current_user, get_engine, raise_for_result, CurrentUser
from leadflow.services.engine import EngineServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/follow-ups", tags=["Follow-Ups"])


class CreateTaskRequest(BaseModel):
    """Manual follow-up task"""
    lead_id: str
    type: str = Field(..., description="call, offer, offer_followup, meeting, custom, reengagement, tvp, followup")
    due_date: date
    priority: str = "medium"
    title: Optional[str] = None
    notes: Optional[str] = None


class RescheduleRequest(BaseModel):
    due_date: date


class PriorityRequest(BaseModel):
    priority: str = Field(..., description="low, medium or high")


class SnoozeTaskRequest(BaseModel):
    days: int = Field(..., ge=1, le=60, description="Business days to push the task")


def _task_response(result: dict) -> dict:
    raise_for_result(result)
    return {"success": True, "task": result["task"].model_dump(mode="json")}


@router.get("/")
async def list_open_tasks(
    lead_id: Optional[str] = Query(None, description="Only tasks of this lead"),
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """Open tasks ordered by due date, with the display priority."""
    result = raise_for_result(await engine.follow_ups.list_open_tasks(current_user.tenant_id, lead_id))
    return {"tasks": result["tasks"]}


@router.get("/stats")
async def get_stats(
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    result = raise_for_result(await engine.follow_ups.stats(current_user.tenant_id))
    return result["stats"].model_dump()


@router.post("/")
async def create_task(
    request: CreateTaskRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    try:
        result = await engine.follow_ups.create_task(
            tenant_id=current_user.tenant_id,
            lead_id=request.lead_id,
            type=request.type,
            due_date=request.due_date,
            priority=request.priority,
            title=request.title,
            notes=request.notes,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _task_response(result)


@router.post("/{task_id}/complete")
async def complete_task(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    return _task_response(await engine.follow_ups.complete_task(current_user.tenant_id, task_id))


@router.patch("/{task_id}/reschedule")
async def reschedule_task(
    task_id: str,
    request: RescheduleRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    return _task_response(
        await engine.follow_ups.reschedule_task(current_user.tenant_id, task_id, request.due_date)
    )


@router.patch("/{task_id}/priority")
async def set_priority(
    task_id: str,
    request: PriorityRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    try:
        result = await engine.follow_ups.set_priority(current_user.tenant_id, task_id, request.priority)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _task_response(result)


@router.post("/{task_id}/snooze")
async def snooze_task(
    task_id: str,
    request: SnoozeTaskRequest,
    current_user: CurrentUser = Depends(get_current_user),
    engine: EngineServices = Depends(get_engine)
):
    """Push a task forward by N business days from today."""
    try:
        result = await engine.follow_ups.snooze_task(current_user.tenant_id, task_id, request.days)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not result["success"] and result.get("error") == "Task already completed":
        raise HTTPException(status_code=409, detail=result["error"])
    return _task_response(result)
