"""Domain exceptions.

Routers translate these into HTTP responses; the sync engine catches the
per-item ones and records them instead of aborting the exchange.
"""


class ChatSyncError(Exception):
    """Base class for all chatsync errors."""


class AuthenticationError(ChatSyncError):
    """Missing or invalid credentials."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ChatSyncError):
    """A single change-set entry or message failed validation."""


class StoreError(ChatSyncError):
    """The authoritative store rejected or failed an operation."""


class ChatNotFoundError(ChatSyncError):
    """No chat with the given id exists for the user."""

    def __init__(self, chat_id: str):
        super().__init__(f"Chat {chat_id} not found")
        self.chat_id = chat_id


class MessageNotFoundError(ChatSyncError):
    """No message with the given id exists in the chat."""

    def __init__(self, message_id: str):
        super().__init__(f"Message {message_id} not found")
        self.message_id = message_id


class RateLimitExceeded(ChatSyncError):
    """Caller exceeded the per-user request quota."""

    def __init__(self, retry_after: int | None = None):
        super().__init__("Too many requests")
        self.retry_after = retry_after
