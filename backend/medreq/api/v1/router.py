from fastapi import APIRouter

from medreq.api.v1.endpoints import (
    extraction,
    exports,
    health,
    messages,
    notifications,
    payments,
    requisitions,
)

api_router = APIRouter()

# Technical routes
api_router.include_router(health.router, tags=["health"])
api_router.include_router(extraction.router, prefix="/ai", tags=["ai"])

# Workflow routes
api_router.include_router(requisitions.router, prefix="/requisitions", tags=["requisitions"])
api_router.include_router(messages.router, prefix="/requisitions", tags=["messages"])
api_router.include_router(payments.router, prefix="/requisitions", tags=["payments"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(exports.router, prefix="/exports", tags=["exports"])
