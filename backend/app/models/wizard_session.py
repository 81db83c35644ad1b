from pydantic import BaseModel
from typing import Any, List, Optional
from datetime import datetime
from enum import Enum

from backend.app.models.events import NAV_API, NAV_START, NAV_TYPES
from backend.app.models.tool import CompleteTool, InitialTool
from backend.app.services.scheduler import HandledFlag

class WizardStep(str, Enum):
    IDLE = "idle"
    AWAITING_DETAIL_CHOICE = "awaiting_detail_choice"
    SELECTING_TYPES = "selecting_types"
    SELECTING_API_TIER = "selecting_api_tier"
    SELECTING_PAYMENT = "selecting_payment"
    AWAITING_SUMMARY_CONFIRMATION = "awaiting_summary_confirmation"
    CONFIRMING_CANCEL = "confirming_cancel"

class PendingSummary(BaseModel):
    """A persisted record whose summary waits for approve / edit / cancel."""
    message_id: int
    tool: CompleteTool
    timer: Any = None
    flag: HandledFlag

    class Config:
        arbitrary_types_allowed = True

    def disarm(self):
        if self.timer is not None:
            self.timer.cancel()

class WizardSession(BaseModel):
    user_id: Optional[int] = None
    started_at: Optional[datetime] = None
    initial_tool: Optional[InitialTool] = None
    step: WizardStep = WizardStep.IDLE

    types: List[str] = []
    api_tier: Optional[str] = None
    payments: List[str] = []

    last_message_id: Optional[int] = None
    pending_summary: Optional[PendingSummary] = None
    last_record_id: Optional[str] = None
    cancel_return: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.initial_tool is None and self.step == WizardStep.IDLE

    def age_seconds(self, now: datetime) -> Optional[float]:
        if self.started_at is None:
            return None
        return (now - self.started_at).total_seconds()

    def toggle_type(self, label: str) -> bool:
        """Returns True when the type was added, False when removed."""
        return _toggle(self.types, label)

    def toggle_payment(self, label: str) -> bool:
        return _toggle(self.payments, label)

def _toggle(values: List[str], label: str) -> bool:
    if label in values:
        values.remove(label)
        return False
    values.append(label)
    return True

def cancel_return_target(session: WizardSession) -> str:
    """
    Where "No, go back" on the cancel confirmation leads: the last step
    that holds a selection.
    """
    if session.api_tier:
        return NAV_API
    if session.types:
        return NAV_TYPES
    return NAV_START
