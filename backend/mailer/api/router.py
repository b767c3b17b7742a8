"""API router configuration."""
from fastapi import APIRouter
from mailer.api.endpoints import auth, campaigns, cron, process, quota, send_test, stream

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router)
api_router.include_router(campaigns.router)
api_router.include_router(stream.router)
api_router.include_router(process.router)
api_router.include_router(cron.router)
api_router.include_router(quota.router)
api_router.include_router(send_test.router)
