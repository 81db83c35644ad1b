from fastapi import FastAPI
from backend.app.core.config import settings
from backend.app.core.errors import TransportError
from backend.app.core.logger_config import setup_logger
from backend.app.core.prompts import messages
from backend.app.db.arango import db
from backend.app.api.api import api_router
from backend.app.api.deps import get_telegram_client, get_wizard

logger = setup_logger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

@app.on_event("startup")
async def startup_event():
    db.initialize()
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning("TELEGRAM_BOT_TOKEN is not set; outbound Telegram calls will fail")
        return
    try:
        await get_telegram_client().set_my_commands([
            {"command": "start", "description": messages.get("command_start")},
            {"command": "savetool", "description": messages.get("command_savetool")},
        ])
    except TransportError as e:
        logger.error("Failed to register bot commands: %s", e)

@app.on_event("shutdown")
async def shutdown_event():
    await get_wizard().scheduler.shutdown()
    await get_telegram_client().close()

app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": f"{settings.PROJECT_NAME} is running"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
