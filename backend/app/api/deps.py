from functools import lru_cache

from backend.app.services.record_store import ArangoRecordStore
from backend.app.services.telegram import TelegramClient
from backend.app.services.wizard import WizardController

@lru_cache
def get_telegram_client() -> TelegramClient:
    return TelegramClient()

@lru_cache
def get_record_store() -> ArangoRecordStore:
    return ArangoRecordStore()

@lru_cache
def get_wizard() -> WizardController:
    return WizardController(transport=get_telegram_client(), store=get_record_store())
