"""Responder dashboard endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.core.auth import authenticate_request
from incident_hub.core.rbac import AuthContext
from incident_hub.db.session import get_db
from incident_hub.schemas.incident import DashboardStats
from incident_hub.services.incident_service import incident_service

router = APIRouter()


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> DashboardStats:
    """Today's intake and workload counters, in UTC days."""
    return await incident_service.dashboard_stats(db, context)
