import os
from typing import Dict, Optional

import yaml

from backend.app.core.logger_config import setup_logger

logger = setup_logger(__name__)

DEFAULT_MESSAGES_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "prompts", "messages.yaml"
)

class MessageCatalog:
    def __init__(self, messages_path: Optional[str] = None):
        self.messages_path = os.path.abspath(messages_path or DEFAULT_MESSAGES_PATH)
        self._messages: Dict[str, str] = {}
        self._load_messages()

    def _load_messages(self):
        try:
            with open(self.messages_path, "r", encoding="utf-8") as f:
                self._messages = yaml.safe_load(f) or {}
            logger.info("Loaded %d messages from %s", len(self._messages), self.messages_path)
        except (OSError, yaml.YAMLError) as e:
            logger.critical("Failed to load messages from %s: %s", self.messages_path, e)
            self._messages = {}

    def reload(self):
        """Hot-reload messages from disk."""
        self._load_messages()

    def get(self, key: str, **kwargs) -> str:
        """
        Retrieves a message template by key and formats it with kwargs.
        """
        template = self._messages.get(key)
        if template is None:
            raise KeyError(f"Message key '{key}' not found in {self.messages_path}")

        try:
            return template.format(**kwargs)
        except KeyError as e:
            raise KeyError(f"Missing argument for message '{key}': {e}")

# Singleton Instance
messages = MessageCatalog()
