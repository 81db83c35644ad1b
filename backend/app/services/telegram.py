"""
Telegram Bot API client.

Contract:
- All methods are async (httpx.AsyncClient)
- Every call waits for a token from the outbound TokenBucket
- Failures raise TransportError; HTTP 429 raises RateLimitedError carrying
  retry_after, "message is not modified" raises MessageNotModifiedError
- No wizard logic, only transport
"""
import asyncio
from typing import Any, Dict, List, Optional, Protocol

import httpx

from backend.app.core.config import settings
from backend.app.core.errors import MessageNotModifiedError, RateLimitedError, TransportError
from backend.app.core.logger_config import setup_logger
from backend.app.core.rate_limiter import TokenBucket
from backend.app.services.presentation import Keyboard, to_reply_markup

logger = setup_logger(__name__)


class ChatTransport(Protocol):
    async def send_message(self, chat_id: int, text: str, keyboard: Optional[Keyboard] = None) -> int: ...
    async def edit_message_text(self, chat_id: int, message_id: int, text: str,
                                keyboard: Optional[Keyboard] = None) -> None: ...
    async def edit_message_keyboard(self, chat_id: int, message_id: int, keyboard: Keyboard) -> None: ...
    async def delete_message(self, chat_id: int, message_id: int) -> None: ...
    async def answer_callback(self, query_id: str, text: Optional[str] = None,
                              show_alert: bool = False) -> None: ...


class TelegramClient:
    def __init__(
        self,
        token: str = settings.TELEGRAM_BOT_TOKEN,
        base_url: str = settings.TELEGRAM_API_URL,
        timeout: float = 30.0,
        limiter: Optional[TokenBucket] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = f"{base_url.rstrip('/')}/bot{token}"
        self.timeout = timeout
        self.limiter = limiter or TokenBucket(
            capacity=settings.TELEGRAM_RATE_CAPACITY,
            refill_rate=settings.TELEGRAM_RATE_PER_SECOND,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        async with self._lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    transport=self._transport,
                )
            return self._client

    async def close(self):
        """Close the HTTP client."""
        async with self._lock:
            if self._client:
                await self._client.aclose()
                self._client = None

    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        await self.limiter.wait_for_token()
        client = await self._get_client()
        try:
            response = await client.post(f"/{method}", json=payload)
        except httpx.RequestError as e:
            raise TransportError(method, f"Request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            raise TransportError(method, response.text[:200], response.status_code)

        if body.get("ok"):
            return body.get("result")

        description = body.get("description", "")
        error_code = body.get("error_code", response.status_code)
        if error_code == 429:
            retry_after = (body.get("parameters") or {}).get("retry_after", 2)
            raise RateLimitedError(method, description, int(retry_after))
        if "message is not modified" in description:
            raise MessageNotModifiedError(method, description, error_code)
        raise TransportError(method, description, error_code)

    async def send_message(self, chat_id: int, text: str, keyboard: Optional[Keyboard] = None) -> int:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if keyboard is not None:
            payload["reply_markup"] = to_reply_markup(keyboard)
        result = await self._call("sendMessage", payload)
        return result["message_id"]

    async def edit_message_text(self, chat_id: int, message_id: int, text: str,
                                keyboard: Optional[Keyboard] = None) -> None:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": "HTML",
        }
        if keyboard is not None:
            payload["reply_markup"] = to_reply_markup(keyboard)
        await self._call("editMessageText", payload)

    async def edit_message_keyboard(self, chat_id: int, message_id: int, keyboard: Keyboard) -> None:
        await self._call("editMessageReplyMarkup", {
            "chat_id": chat_id,
            "message_id": message_id,
            "reply_markup": to_reply_markup(keyboard),
        })

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_callback(self, query_id: str, text: Optional[str] = None,
                              show_alert: bool = False) -> None:
        payload: Dict[str, Any] = {"callback_query_id": query_id}
        if text:
            payload["text"] = text
            payload["show_alert"] = show_alert
        await self._call("answerCallbackQuery", payload)

    async def set_my_commands(self, commands: List[Dict[str, str]]) -> None:
        await self._call("setMyCommands", {"commands": commands})
