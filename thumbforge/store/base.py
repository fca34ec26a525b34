"""Base conversation store interface."""

from abc import ABC, abstractmethod
from typing import Optional

from thumbforge.types import ConversationState, ConversationStatus


class ConversationStore(ABC):
    """Base class for conversation stores.

    Stores perform no retries; failures surface to the caller.
    """

    @abstractmethod
    def load_by_key(
        self,
        project_id: str,
        user_id: str,
        status: ConversationStatus = ConversationStatus.ACTIVE,
    ) -> ConversationState:
        """
        Load the conversation for a (project, user) pair.

        Raises:
            NotFoundError: no conversation with that status exists
            PersistenceError: the store could not be read
        """

    @abstractmethod
    def save(self, state: ConversationState) -> None:
        """
        Save a conversation state, replacing any previous version.

        Raises:
            PersistenceError: the state could not be written
        """

    @abstractmethod
    def list_conversations(
        self, project_id: Optional[str] = None, user_id: Optional[str] = None
    ) -> list[ConversationState]:
        """List stored conversations, most recently active first."""


def pick_latest(states: list[ConversationState]) -> Optional[ConversationState]:
    """Pick the most recently active state, if any."""
    if not states:
        return None
    return max(states, key=lambda s: s.last_interaction_at)
