"""
Central API router that aggregates all route modules.

No version prefix: the public paths double as the URIs recorded by the hit
counter (`/events`, `/events/{id}`).
"""

from fastapi import APIRouter
from eventhub.api.routes import admin, private_events, public_events, requests

api_router = APIRouter()
api_router.include_router(private_events.router)
api_router.include_router(requests.router)
api_router.include_router(admin.router)
api_router.include_router(public_events.router)
