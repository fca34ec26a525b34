"""Bounded conversational context management for thumbnail edit sessions."""

from thumbforge.context import ContextManager, estimate_tokens
from thumbforge.errors import (
    ContextError,
    NotFoundError,
    PersistenceError,
    StateInvariantViolation,
    ValidationError,
)
from thumbforge.prompt import build_edit_prompt, render_history
from thumbforge.service import ConversationService
from thumbforge.types import (
    ContextEntry,
    ConversationState,
    ConversationStatus,
    Interaction,
    InteractionKind,
    ProjectType,
    Role,
)

__all__ = [
    "ContextEntry",
    "ContextError",
    "ContextManager",
    "ConversationService",
    "ConversationState",
    "ConversationStatus",
    "Interaction",
    "InteractionKind",
    "NotFoundError",
    "PersistenceError",
    "ProjectType",
    "Role",
    "StateInvariantViolation",
    "ValidationError",
    "build_edit_prompt",
    "estimate_tokens",
    "render_history",
]
