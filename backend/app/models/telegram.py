"""
The subset of the Telegram Bot API update schema the wizard consumes.
Unknown fields are ignored.
"""
from pydantic import BaseModel, Field
from typing import Optional

class User(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    username: Optional[str] = None

class Chat(BaseModel):
    id: int
    type: str = "private"

class Message(BaseModel):
    message_id: int
    chat: Chat
    from_user: Optional[User] = Field(default=None, alias="from")
    text: Optional[str] = None
    date: int = 0

    class Config:
        populate_by_name = True

class CallbackQuery(BaseModel):
    id: str
    from_user: User = Field(alias="from")
    message: Optional[Message] = None
    data: Optional[str] = None

    class Config:
        populate_by_name = True

class Update(BaseModel):
    update_id: int
    message: Optional[Message] = None
    callback_query: Optional[CallbackQuery] = None