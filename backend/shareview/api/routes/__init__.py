"""API route registration."""

from fastapi import APIRouter

from shareview.api.routes import health, shared

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(shared.router, tags=["shared"])
