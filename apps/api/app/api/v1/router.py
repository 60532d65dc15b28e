from fastapi import APIRouter

from app.api.v1 import audit_logs, services, stacks

api_router = APIRouter()
api_router.include_router(stacks.router)
api_router.include_router(services.router)
api_router.include_router(audit_logs.router)
