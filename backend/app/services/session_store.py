import asyncio
from datetime import datetime
from typing import Dict

from backend.app.core.logger_config import setup_logger
from backend.app.models.tool import InitialTool
from backend.app.models.wizard_session import WizardSession, WizardStep

logger = setup_logger(__name__)

class SessionStore:
    """
    In-memory wizard sessions keyed by chat id.

    A chat has at most one session. Sessions are created empty on first
    contact and replaced, never merged, when a new /savetool arrives.
    """

    def __init__(self):
        self._sessions: Dict[int, WizardSession] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def get(self, chat_id: int) -> WizardSession:
        session = self._sessions.get(chat_id)
        if session is None:
            session = WizardSession()
            self._sessions[chat_id] = session
        return session

    def lock(self, chat_id: int) -> asyncio.Lock:
        """Serializes event processing within one chat."""
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chat_id] = lock
        return lock

    def start(self, chat_id: int, user_id: int, initial_tool: InitialTool,
              now: datetime) -> WizardSession:
        """
        Seeds a fresh session. A pending summary of the replaced session keeps
        its timer: that record is already persisted and still auto-approves.
        """
        session = WizardSession(
            user_id=user_id,
            started_at=now,
            initial_tool=initial_tool,
            step=WizardStep.AWAITING_DETAIL_CHOICE,
        )
        self._sessions[chat_id] = session
        logger.info("Session started in chat %s by user %s", chat_id, user_id)
        return session

    def reset(self, chat_id: int) -> WizardSession:
        previous = self._sessions.get(chat_id)
        if previous is not None and previous.pending_summary is not None:
            previous.pending_summary.disarm()
        session = WizardSession()
        self._sessions[chat_id] = session
        return session
