from fastapi import APIRouter

from app.api.live import router as live_router

api_router = APIRouter()

api_router.include_router(live_router)
