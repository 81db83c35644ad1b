from urllib.parse import urlparse

from backend.app.core.errors import InvalidCommand, InvalidUrl, UsageError
from backend.app.models.tool import InitialTool

SAVE_TOOL_COMMAND = "/savetool"

def is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)

def parse_save_tool_command(text: str, command: str = SAVE_TOOL_COMMAND) -> InitialTool:
    """
    Parses `/savetool <name> <url> <description...>` into an InitialTool.

    Raises InvalidCommand, UsageError or InvalidUrl; their message is meant
    to be shown to the user as is.
    """
    parts = (text or "").split()

    if not parts or parts[0] != command:
        raise InvalidCommand(f"Invalid command. Use {command}")

    if len(parts) < 4:
        raise UsageError(f"Usage: {command} [name] [url] [description]")

    name, url, *description_parts = parts[1:]

    if not is_absolute_url(url):
        raise InvalidUrl("Invalid URL format")

    return InitialTool(name=name, url=url, description=" ".join(description_parts))
