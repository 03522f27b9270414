from .character_ai_client import CharacterAiClient
from .chub_client import ChubClient, ChubSearchParams
from .http_base import ChatBackendError, JsonHttpClient
from .openai_chat_client import OpenAiChatClient

__all__ = [
    "ChatBackendError",
    "CharacterAiClient",
    "ChubClient",
    "ChubSearchParams",
    "JsonHttpClient",
    "OpenAiChatClient",
]
