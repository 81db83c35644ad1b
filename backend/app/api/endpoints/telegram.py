import re
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from backend.app.api.deps import get_wizard
from backend.app.core.config import settings
from backend.app.core.logger_config import setup_logger
from backend.app.models.telegram import Update
from backend.app.services.parser import SAVE_TOOL_COMMAND
from backend.app.services.wizard import WizardController

logger = setup_logger(__name__)

router = APIRouter()

START_COMMAND = "/start"
MENTION_RE = re.compile(r"^(/\w+)@\w+")

def command_of(text: Optional[str]) -> Optional[str]:
    """
    The bot command a message starts with, without any @BotName suffix.
    """
    if not text or not text.startswith("/"):
        return None
    return text.split(maxsplit=1)[0].split("@", 1)[0]

def strip_mention(text: str) -> str:
    return MENTION_RE.sub(r"\1", text, count=1)

@router.post("/webhook")
async def telegram_webhook(
    update: Update,
    wizard: WizardController = Depends(get_wizard),
    secret_token: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    """
    Receives Telegram updates. Always acknowledges processed updates so
    Telegram does not redeliver them.
    """
    if settings.TELEGRAM_WEBHOOK_SECRET and secret_token != settings.TELEGRAM_WEBHOOK_SECRET:
        raise HTTPException(status_code=403, detail="Invalid secret token")

    if update.callback_query is not None:
        await wizard.handle_callback(update.callback_query)
        return {"ok": True}

    message = update.message
    command = command_of(message.text) if message else None
    if command == START_COMMAND:
        await wizard.handle_start(message)
    elif command == SAVE_TOOL_COMMAND:
        await wizard.handle_save_tool(message.model_copy(update={"text": strip_mention(message.text)}))
    else:
        logger.debug("Ignoring update %s", update.update_id)

    return {"ok": True}
