"""
Selection events.

Inline buttons carry short string tokens (Telegram limits callback data to
64 bytes). They are decoded exactly once, at the callback boundary, into a
Selection: an action family plus an optional payload. Tokens that do not map
to a known family and payload decode to None and are ignored.
"""
from enum import Enum
from typing import Dict, Optional, Set

from pydantic import BaseModel

from backend.app.models.tool import API_TIERS, PAYMENT_OPTIONS, TOOL_TYPES


class Action(str, Enum):
    CONFIRM_DETAILS = "confirm"
    NAVIGATE = "nav"
    TOGGLE_TYPE = "type"
    TYPES_DONE = "types_done"
    SELECT_API_TIER = "api"
    API_TIER_DONE = "api_done"
    TOGGLE_PAYMENT = "paid"
    PAYMENT_DONE = "paid_done"
    SUMMARY = "summary"
    DELETE_SUMMARY = "delete_summary"
    CANCEL = "abort"
    CANCEL_CONFIRM = "abort_confirm"


# Payload values
DETAILS_YES = "yes"
DETAILS_NO = "no"

NAV_START = "start"
NAV_TYPES = "types"
NAV_API = "api"

SUMMARY_CANCEL = "cancel"
SUMMARY_EDIT = "edit"
SUMMARY_APPROVE = "approve"

# Families that take no payload and are matched on the whole token
_BARE_ACTIONS = {
    Action.TYPES_DONE,
    Action.API_TIER_DONE,
    Action.PAYMENT_DONE,
    Action.DELETE_SUMMARY,
    Action.CANCEL,
    Action.CANCEL_CONFIRM,
}

_PAYLOADS: Dict[Action, Set[str]] = {
    Action.CONFIRM_DETAILS: {DETAILS_YES, DETAILS_NO},
    Action.NAVIGATE: {NAV_START, NAV_TYPES, NAV_API},
    Action.TOGGLE_TYPE: set(TOOL_TYPES),
    Action.SELECT_API_TIER: set(API_TIERS),
    Action.TOGGLE_PAYMENT: set(PAYMENT_OPTIONS),
    Action.SUMMARY: {SUMMARY_CANCEL, SUMMARY_EDIT, SUMMARY_APPROVE},
}


class Selection(BaseModel):
    action: Action
    value: Optional[str] = None

    class Config:
        frozen = True

    @property
    def token(self) -> str:
        return encode(self.action, self.value)


def encode(action: Action, value: Optional[str] = None) -> str:
    if value is None:
        return action.value
    return f"{action.value}_{value}"


def decode(token: Optional[str]) -> Optional[Selection]:
    """
    Returns the Selection for a callback token, or None when the token is
    not part of the scheme.
    """
    if not token:
        return None

    for action in _BARE_ACTIONS:
        if token == action.value:
            return Selection(action=action)

    prefix, sep, value = token.partition("_")
    if not sep:
        return None
    try:
        action = Action(prefix)
    except ValueError:
        return None

    if value not in _PAYLOADS.get(action, ()):
        return None
    return Selection(action=action, value=value)
