"""JSON file conversation store - one file per conversation."""

import logging
from pathlib import Path
from typing import Optional

from thumbforge.errors import NotFoundError, PersistenceError
from thumbforge.store.base import ConversationStore, pick_latest
from thumbforge.types import ConversationState, ConversationStatus

logger = logging.getLogger(__name__)


class JsonFileConversationStore(ConversationStore):
    """Handles saving and loading conversations as JSON files."""

    def __init__(self, conversations_dir: Optional[Path] = None):
        """
        Initialize JSON store.

        Args:
            conversations_dir: Directory to store conversations
                (default: ~/.config/thumbforge/conversations)
        """
        if conversations_dir is None:
            conversations_dir = Path.home() / ".config" / "thumbforge" / "conversations"
        self.conversations_dir = Path(conversations_dir)
        self.conversations_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, conversation_id: str) -> Path:
        return self.conversations_dir / f"{conversation_id}.json"

    def _read_all(self, strict: bool = False) -> list[ConversationState]:
        """Read every stored conversation. Unreadable files raise when ``strict``, else are skipped."""
        states = []
        for conversation_file in self.conversations_dir.glob("*.json"):
            try:
                states.append(ConversationState.model_validate_json(conversation_file.read_text()))
            except (OSError, ValueError) as e:
                if strict:
                    raise PersistenceError(f"Failed to read conversation file {conversation_file}: {e}") from e
                logger.warning(f"Skipping unreadable conversation file {conversation_file}: {e}")
        return states

    def load_by_key(
        self,
        project_id: str,
        user_id: str,
        status: ConversationStatus = ConversationStatus.ACTIVE,
    ) -> ConversationState:
        matches = [
            state
            for state in self._read_all(strict=True)
            if state.project_id == project_id and state.user_id == user_id and state.status == status
        ]
        state = pick_latest(matches)
        if state is None:
            raise NotFoundError(project_id, user_id)
        return state

    def load(self, conversation_id: str) -> Optional[ConversationState]:
        """Load a conversation by id."""
        conversation_file = self._path(conversation_id)
        if not conversation_file.exists():
            return None
        try:
            return ConversationState.model_validate_json(conversation_file.read_text())
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read conversation {conversation_id}: {e}") from e

    def save(self, state: ConversationState) -> None:
        conversation_file = self._path(state.id)
        tmp_file = conversation_file.with_suffix(".json.tmp")
        try:
            tmp_file.write_text(state.model_dump_json(indent=2))
            tmp_file.replace(conversation_file)
        except OSError as e:
            raise PersistenceError(f"Failed to save conversation {state.id}: {e}") from e
        logger.debug(f"Saved conversation {state.id} to {conversation_file}")

    def list_conversations(
        self, project_id: Optional[str] = None, user_id: Optional[str] = None
    ) -> list[ConversationState]:
        states = [
            state
            for state in self._read_all()
            if (project_id is None or state.project_id == project_id)
            and (user_id is None or state.user_id == user_id)
        ]
        return sorted(states, key=lambda s: s.last_interaction_at, reverse=True)
