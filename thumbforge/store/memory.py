"""In-memory conversation store."""

from typing import Optional

from thumbforge.errors import NotFoundError
from thumbforge.store.base import ConversationStore, pick_latest
from thumbforge.types import ConversationState, ConversationStatus


class InMemoryConversationStore(ConversationStore):
    """Keeps copies of conversation states in a dict keyed by conversation id."""

    def __init__(self):
        """Initialize an empty store."""
        self.conversations: dict[str, ConversationState] = {}

    def load_by_key(
        self,
        project_id: str,
        user_id: str,
        status: ConversationStatus = ConversationStatus.ACTIVE,
    ) -> ConversationState:
        matches = [
            state
            for state in self.conversations.values()
            if state.project_id == project_id and state.user_id == user_id and state.status == status
        ]
        state = pick_latest(matches)
        if state is None:
            raise NotFoundError(project_id, user_id)
        # Callers own what they load; edits are invisible until saved.
        return state.model_copy(deep=True)

    def save(self, state: ConversationState) -> None:
        self.conversations[state.id] = state.model_copy(deep=True)

    def list_conversations(
        self, project_id: Optional[str] = None, user_id: Optional[str] = None
    ) -> list[ConversationState]:
        states = [
            state.model_copy(deep=True)
            for state in self.conversations.values()
            if (project_id is None or state.project_id == project_id)
            and (user_id is None or state.user_id == user_id)
        ]
        return sorted(states, key=lambda s: s.last_interaction_at, reverse=True)
