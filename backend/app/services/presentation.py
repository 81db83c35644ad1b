"""
Pure rendering of wizard prompts: option keyboards and HTML texts.
No state, no I/O; the same input always yields the same output.
"""
import html
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from backend.app.core.prompts import MessageCatalog, messages as default_messages
from backend.app.models.events import (
    Action, DETAILS_NO, DETAILS_YES, NAV_API, NAV_TYPES,
    SUMMARY_APPROVE, SUMMARY_CANCEL, SUMMARY_EDIT, encode,
)
from backend.app.models.tool import (
    API_TIERS, PAYMENT_OPTIONS, TOOL_TYPES, CompleteTool, InitialTool,
)

CHECKMARK = "✅"

class Button(NamedTuple):
    label: str
    token: str

Keyboard = List[List[Button]]

# Row layout of the types keyboard (token keys of TOOL_TYPES)
TYPE_ROWS = [
    ["undefined"],
    ["text_to_image", "text_to_video"],
    ["image_to_image", "image_to_video"],
    ["character_to_image", "character_to_video"],
    ["text_to_sound", "text_to_speech"],
    ["text_to_music"],
    ["image_helper", "video_helper"],
    ["ai_aggregator", "automation"],
]

def _mark(label: str, selected: bool) -> str:
    return f"{label} {CHECKMARK}" if selected else label

def detail_choice_keyboard(catalog: MessageCatalog = default_messages) -> Keyboard:
    return [[
        Button(catalog.get("button_more_details"), encode(Action.CONFIRM_DETAILS, DETAILS_YES)),
        Button(catalog.get("button_save_as_is"), encode(Action.CONFIRM_DETAILS, DETAILS_NO)),
    ]]

def types_keyboard(selected: Iterable[str] = (), catalog: MessageCatalog = default_messages) -> Keyboard:
    selected = set(selected)
    keyboard: Keyboard = []
    for row in TYPE_ROWS:
        keyboard.append([
            Button(_mark(TOOL_TYPES[key], TOOL_TYPES[key] in selected), encode(Action.TOGGLE_TYPE, key))
            for key in row
        ])
    keyboard.append([
        Button(catalog.get("button_cancel"), encode(Action.CANCEL)),
        Button(catalog.get("button_next"), encode(Action.TYPES_DONE)),
    ])
    return keyboard

def api_tier_keyboard(selected: Optional[str] = None, catalog: MessageCatalog = default_messages) -> Keyboard:
    keyboard: Keyboard = [
        [Button(_mark(label, label == selected), encode(Action.SELECT_API_TIER, key))]
        for key, label in API_TIERS.items()
    ]
    keyboard.append([
        Button(catalog.get("button_cancel"), encode(Action.CANCEL)),
        Button(catalog.get("button_back"), encode(Action.NAVIGATE, NAV_TYPES)),
        Button(catalog.get("button_next"), encode(Action.API_TIER_DONE)),
    ])
    return keyboard

def payment_keyboard(selected: Iterable[str] = (), catalog: MessageCatalog = default_messages) -> Keyboard:
    selected = set(selected)
    keyboard: Keyboard = [
        [Button(_mark(label, label in selected), encode(Action.TOGGLE_PAYMENT, key))]
        for key, label in PAYMENT_OPTIONS.items()
    ]
    keyboard.append([
        Button(catalog.get("button_cancel"), encode(Action.CANCEL)),
        Button(catalog.get("button_back"), encode(Action.NAVIGATE, NAV_API)),
        Button(catalog.get("button_save"), encode(Action.PAYMENT_DONE)),
    ])
    return keyboard

def cancel_confirmation_keyboard(return_target: str, catalog: MessageCatalog = default_messages) -> Keyboard:
    return [[
        Button(catalog.get("button_confirm_cancel"), encode(Action.CANCEL_CONFIRM)),
        Button(catalog.get("button_go_back"), encode(Action.NAVIGATE, return_target)),
    ]]

def summary_keyboard(catalog: MessageCatalog = default_messages) -> Keyboard:
    return [[
        Button(catalog.get("button_cancel"), encode(Action.SUMMARY, SUMMARY_CANCEL)),
        Button(catalog.get("button_edit"), encode(Action.SUMMARY, SUMMARY_EDIT)),
        Button(catalog.get("button_approve"), encode(Action.SUMMARY, SUMMARY_APPROVE)),
    ]]

def final_summary_keyboard(catalog: MessageCatalog = default_messages) -> Keyboard:
    return [[Button(catalog.get("button_delete"), encode(Action.DELETE_SUMMARY))]]

def to_reply_markup(keyboard: Optional[Keyboard]) -> Optional[Dict[str, Any]]:
    """Telegram InlineKeyboardMarkup for a keyboard."""
    if keyboard is None:
        return None
    return {
        "inline_keyboard": [
            [{"text": button.label, "callback_data": button.token} for button in row]
            for row in keyboard
        ]
    }

# --- Texts ---

def tool_received_text(tool: InitialTool, catalog: MessageCatalog = default_messages) -> str:
    return catalog.get(
        "tool_received",
        name=html.escape(tool.name),
        url=html.escape(tool.url),
        description=html.escape(tool.description),
    )

def summary_text(tool: CompleteTool, header_key: str, catalog: MessageCatalog = default_messages) -> str:
    """Header line followed by the summary of every stored field."""
    body = catalog.get(
        "summary_body",
        name=html.escape(tool.name),
        url=html.escape(tool.url),
        description=html.escape(tool.description),
        types=html.escape(", ".join(tool.types)),
        api_services=html.escape(tool.api_services),
        payment=html.escape(", ".join(tool.is_paid)),
    )
    return f"{catalog.get(header_key)}\n\n{body}"
