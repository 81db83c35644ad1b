from fastapi import APIRouter
from backend.app.api.endpoints import telegram, tools

api_router = APIRouter()
api_router.include_router(telegram.router, prefix="/telegram", tags=["telegram"])
api_router.include_router(tools.router, prefix="/tools", tags=["tools"])
