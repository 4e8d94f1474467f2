"""Shared constants for routers and client-facing limits."""

# API prefix -----------------------------------------------------------------

API_PREFIX = "/api"
SYNC_PREFIX = "/v2/sync"
CHATS_PREFIX = "/v2/chats"
USER_PREFIX = "/user"

# Request limits -------------------------------------------------------------

MAX_LOCAL_CHATS = 100
MAX_MESSAGES_PER_CHAT = 500
MAX_MESSAGE_LENGTH = 10000
MAX_CONTACT_NAME_LENGTH = 100

# Denormalised preview stored on the chat row
LAST_MESSAGE_PREVIEW_LENGTH = 100

# Message pagination
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
