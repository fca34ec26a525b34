"""Conversation stores."""

from thumbforge.config import ContextSettings
from thumbforge.store.base import ConversationStore
from thumbforge.store.json_file import JsonFileConversationStore
from thumbforge.store.memory import InMemoryConversationStore

__all__ = ["ConversationStore", "InMemoryConversationStore", "JsonFileConversationStore", "create_store"]


def create_store(settings: ContextSettings) -> ConversationStore:
    """Create appropriate conversation store."""
    if settings.storage.backend == "json":
        return JsonFileConversationStore(settings.storage_dir())
    elif settings.storage.backend == "memory":
        return InMemoryConversationStore()
    else:
        raise ValueError(f"Unknown storage backend: {settings.storage.backend}")
