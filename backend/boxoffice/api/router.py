"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from boxoffice.api.routes import admin, events, maintenance, orders, payments

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(orders.router)
api_router.include_router(payments.router)
api_router.include_router(admin.router)
api_router.include_router(maintenance.router)
