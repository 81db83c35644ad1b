"""
Error taxonomy for the tool wizard.

Every error raised by the wizard derives from WizardError so the callback
boundary can tell expected conditions (bad input, wrong user, expired
session, missing selection) from genuine failures.
"""
from typing import Optional


class WizardError(Exception):
    """Base class for all wizard errors."""


# --- Input (malformed /savetool command) ---

class InputError(WizardError):
    """Malformed command. The message is shown to the user verbatim."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

class InvalidCommand(InputError):
    pass

class UsageError(InputError):
    pass

class InvalidUrl(InputError):
    pass


# --- Gates ---

class AuthorizationError(WizardError):
    """Someone other than the session owner pressed a button."""
    def __init__(self, user_id: Optional[int], owner_id: Optional[int]):
        self.user_id = user_id
        self.owner_id = owner_id
        super().__init__(f"User {user_id} is not the session owner ({owner_id})")

class ExpiryError(WizardError):
    """The session is older than the configured timeout."""
    def __init__(self, age_seconds: float):
        self.age_seconds = age_seconds
        super().__init__(f"Session expired after {age_seconds:.0f}s")


# --- Transport (Telegram Bot API) ---

class TransportError(WizardError):
    def __init__(self, method: str, description: str, error_code: int = 0):
        self.method = method
        self.description = description
        self.error_code = error_code
        super().__init__(f"Telegram {method} failed ({error_code}): {description}")

class RateLimitedError(TransportError):
    def __init__(self, method: str, description: str, retry_after: int):
        self.retry_after = retry_after
        super().__init__(method, description, error_code=429)

class MessageNotModifiedError(TransportError):
    pass


# --- Persistence (record store) ---

class PersistenceError(WizardError):
    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Record store {operation} failed: {detail}")


# --- Missing selection on a "done" transition ---

class ValidationError(WizardError):
    """Carries the warning shown ephemerally to the user."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
