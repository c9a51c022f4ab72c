"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from leadflow.api.v1.endpoints import (
    leads,
    follow_ups,
    notifications,
    sla,
    dashboard,
)

api_router = APIRouter()

# Lead lifecycle
api_router.include_router(leads.router)
api_router.include_router(follow_ups.router)

# Inbox and SLA indicators
api_router.include_router(notifications.router)
api_router.include_router(sla.router)

# Daily agenda
api_router.include_router(dashboard.router)
