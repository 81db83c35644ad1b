from pydantic import BaseModel
from typing import Any, Dict, List

UNDEFINED = "Undefined"
PUBLIC = "Public"

# Ordered catalogues: token key -> stored label
TOOL_TYPES: Dict[str, str] = {
    "undefined": "Undefined",
    "text_to_image": "Text to Image",
    "text_to_video": "Text to Video",
    "image_to_image": "Image to Image",
    "image_to_video": "Image to Video",
    "character_to_image": "Character to Image",
    "character_to_video": "Character to Video",
    "text_to_sound": "Text to Sound",
    "text_to_speech": "Text to Speech",
    "text_to_music": "Text to Music",
    "image_helper": "Image Helper",
    "video_helper": "Video Helper",
    "ai_aggregator": "AI Aggregator",
    "automation": "Automation",
}

API_TIERS: Dict[str, str] = {
    "fully": "Fully",
    "partially": "Partially",
    "unofficial": "Unofficial",
    "not_provided": "Not Provided",
}

PAYMENT_OPTIONS: Dict[str, str] = {
    "pay_go": "Pay as you Go",
    "monthly": "Monthly",
    "freemium": "Freemium",
    "opensource": "Open Source",
}

class InitialTool(BaseModel):
    name: str
    url: str
    description: str

    class Config:
        frozen = True

class CompleteTool(InitialTool):
    types: List[str]
    state: str
    api_services: str
    is_paid: List[str]

    @classmethod
    def minimal(cls, initial: InitialTool) -> "CompleteTool":
        """Record saved when the user skips the detail steps."""
        return cls(
            **initial.model_dump(),
            types=[UNDEFINED],
            state=UNDEFINED,
            api_services=UNDEFINED,
            is_paid=[UNDEFINED],
        )

    def to_fields(self) -> Dict[str, Any]:
        """Column mapping of the tools table."""
        return {
            "Name": self.name,
            "URL": self.url,
            "Types": list(self.types),
            "Description": self.description,
            "State": self.state,
            "API Services": self.api_services,
            "isPaid": list(self.is_paid),
        }

class ToolRecord(BaseModel):
    id: str
    name: str
    url: str = ""
    types: List[str] = []
    description: str = ""
    state: str = ""
    api_services: str = ""
    is_paid: List[str] = []

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ToolRecord":
        return cls(
            id=doc["_key"],
            name=doc.get("Name", ""),
            url=doc.get("URL", ""),
            types=doc.get("Types") or [],
            description=doc.get("Description", ""),
            state=doc.get("State", ""),
            api_services=doc.get("API Services", ""),
            is_paid=doc.get("isPaid") or [],
        )
