"""Conversation service: store-backed access to context managers."""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from thumbforge.config import ContextSettings
from thumbforge.context import Clock, ContextManager
from thumbforge.errors import NotFoundError, ValidationError
from thumbforge.prompt import build_edit_prompt
from thumbforge.store.base import ConversationStore
from thumbforge.types import (
    ContextEntry,
    ConversationOverview,
    ConversationState,
    InteractionKind,
    ProjectType,
    Role,
)

logger = logging.getLogger(__name__)


class ConversationService:
    """Manages one active conversation per (project, user) pair.

    Writes for a key are serialized with a per-key lock. The store is
    supplied by the caller.
    """

    def __init__(
        self,
        store: ConversationStore,
        settings: Optional[ContextSettings] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize conversation service."""
        self.store = store
        self.settings = settings or ContextSettings()
        self.clock = clock
        # key -> [lock, number of callers holding or waiting on it]
        self._locks: dict[tuple[str, str], list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _lock_for(self, project_id: str, user_id: str) -> Iterator[None]:
        """Hold the write lock for a key. The entry is dropped once no caller uses it."""
        key = (project_id, user_id)
        with self._locks_guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def _manager(self, state: ConversationState) -> ContextManager:
        return ContextManager(
            state,
            chars_per_token=self.settings.window.chars_per_token,
            clock=self.clock,
        )

    def load(self, project_id: str, user_id: str) -> ContextManager:
        """
        Load the active conversation.

        Raises:
            NotFoundError: no active conversation for the key
        """
        _check_key(project_id, user_id)
        return self._manager(self.store.load_by_key(project_id, user_id))

    def get_or_create(
        self,
        project_id: str,
        user_id: str,
        project_type: ProjectType | str = ProjectType.YOUTUBE,
        aspect_ratio: Optional[str] = None,
    ) -> ContextManager:
        """Load the active conversation or start a fresh, unsaved one."""
        try:
            return self.load(project_id, user_id)
        except NotFoundError:
            manager = ContextManager.create(
                project_id,
                user_id,
                project_type=project_type,
                aspect_ratio=aspect_ratio,
                window_size=self.settings.window.window_size,
                chars_per_token=self.settings.window.chars_per_token,
                clock=self.clock,
            )
            logger.info(
                f"Started conversation {manager.state.id} for project {project_id} and user {user_id}"
            )
            return manager

    def add_interaction(
        self,
        project_id: str,
        user_id: str,
        role: Role | str,
        content: str,
        artifact_ref: str,
        kind: InteractionKind | str = InteractionKind.CREATE,
        parent_ref: Optional[str] = None,
    ) -> ContextManager:
        """Append one interaction to the active conversation and save it."""
        with self._lock_for(project_id, user_id):
            manager = self.get_or_create(project_id, user_id)
            manager.add_interaction(role, content, artifact_ref, kind=kind, parent_ref=parent_ref)
            self.store.save(manager.state)
            return manager

    def record_generation(
        self,
        project_id: str,
        user_id: str,
        prompt: str,
        artifact_ref: str,
        response_text: Optional[str] = None,
        edit: bool = False,
        parent_ref: Optional[str] = None,
        project_type: ProjectType | str = ProjectType.YOUTUBE,
        aspect_ratio: Optional[str] = None,
    ) -> ContextManager:
        """
        Record one generation round: the user prompt and the model's reply.

        Args:
            project_id: Project the conversation belongs to
            user_id: Opaque user identifier
            prompt: Prompt that was submitted
            artifact_ref: Reference to the produced image
            response_text: Text returned by the generation backend, if any
            edit: Whether the round edited an existing image
            parent_ref: Reference to the image that was edited
            project_type: Project type for a newly created conversation
            aspect_ratio: Aspect ratio for a newly created conversation

        Returns:
            The updated context manager (already saved)
        """
        kind = InteractionKind.EDIT if edit else InteractionKind.CREATE
        if not response_text:
            response_text = f"Generated {'edited' if edit else 'new'} thumbnail successfully"

        with self._lock_for(project_id, user_id):
            manager = self.get_or_create(project_id, user_id, project_type, aspect_ratio)
            manager.add_interaction(Role.USER, prompt, artifact_ref, kind=kind, parent_ref=parent_ref)
            manager.add_interaction(
                Role.ASSISTANT, response_text, artifact_ref, kind=kind, parent_ref=parent_ref
            )
            self.store.save(manager.state)
            logger.info(
                f"Conversation {manager.state.id} updated: {len(manager.state.history)} in window, "
                f"{manager.state.total_tokens_used} tokens total"
            )
            return manager

    def generation_context(
        self, project_id: str, user_id: str, max_tokens: Optional[int] = None
    ) -> list[ContextEntry]:
        """Context slice for a generation request; empty when no conversation exists."""
        if max_tokens is None:
            max_tokens = self.settings.budget.generation_max_tokens
        try:
            manager = self.load(project_id, user_id)
        except NotFoundError:
            return []
        return manager.get_context_for_generation(max_tokens)

    def edit_prompt(
        self,
        project_id: str,
        user_id: str,
        request: str,
        project_type: ProjectType | str = ProjectType.YOUTUBE,
        aspect_ratio: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Prompt for an edit request, carrying the conversation so far when there is one.

        Project type and aspect ratio of an existing conversation take
        precedence over the arguments.
        """
        if max_tokens is None:
            max_tokens = self.settings.budget.generation_max_tokens
        try:
            manager = self.load(project_id, user_id)
        except NotFoundError:
            try:
                project_type = ProjectType(project_type)
            except ValueError as e:
                raise ValidationError(f"Invalid project type: {project_type}") from e
            return build_edit_prompt(
                [],
                request,
                step=1,
                project_type=project_type,
                aspect_ratio=aspect_ratio or project_type.default_aspect_ratio,
            )

        state = manager.state
        context = manager.get_context_for_generation(max_tokens) if state.history else []
        return build_edit_prompt(
            context,
            request,
            step=len(state.history) + 1,
            project_type=state.project_type,
            aspect_ratio=state.aspect_ratio,
        )

    def overview(self, project_id: str, user_id: str) -> Optional[ConversationOverview]:
        """Display payload for the active conversation, or None."""
        try:
            manager = self.load(project_id, user_id)
        except NotFoundError:
            return None

        state = manager.state
        return ConversationOverview(
            id=state.id,
            project_id=state.project_id,
            total_steps=len(state.history),
            total_tokens=state.total_tokens_used,
            window_tokens=state.window_token_count,
            last_interaction=state.last_interaction_at,
            status=state.status,
            summary=state.summary,
            history=manager.get_context_for_generation(self.settings.budget.display_max_tokens),
            current_artifact_ref=state.current_artifact_ref,
        )

    def archive(self, project_id: str, user_id: str) -> bool:
        """
        Archive the active conversation.

        Returns:
            True if an active conversation was archived
        """
        with self._lock_for(project_id, user_id):
            try:
                manager = self.load(project_id, user_id)
            except NotFoundError:
                return False
            manager.archive()
            self.store.save(manager.state)
            return True

    def reset(self, project_id: str, user_id: str) -> bool:
        """Archive the active conversation so the next round starts fresh."""
        return self.archive(project_id, user_id)

    def update_settings(self, project_id: str, user_id: str, window_size: int) -> ConversationState:
        """
        Change the window size of the active conversation.

        Raises:
            NotFoundError: no active conversation for the key
            ValidationError: window size outside 1..50
        """
        with self._lock_for(project_id, user_id):
            manager = self.load(project_id, user_id)
            manager.set_window_size(window_size)
            self.store.save(manager.state)
            return manager.state


def _check_key(project_id: str, user_id: str) -> None:
    if not project_id:
        raise ValidationError("Project ID is required")
    if not user_id:
        raise ValidationError("User ID is required")
