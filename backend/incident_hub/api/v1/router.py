"""API v1 router aggregation."""

from fastapi import APIRouter

from incident_hub.api.v1.routes import auth, dashboard, health, incidents, rewards, users

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["Health"])
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(incidents.router, prefix="/incidents", tags=["Incidents"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(rewards.router, prefix="/rewards", tags=["Rewards"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
