from fastapi import APIRouter

from escala.api.routers.auth import router as auth_router
from escala.api.routers.change_logs import router as change_logs_router
from escala.api.routers.state import router as state_router


api_router = APIRouter()
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(state_router, prefix="/state", tags=["state"])
api_router.include_router(change_logs_router, prefix="/change-logs", tags=["change-logs"])
