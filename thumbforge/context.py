"""Context window management for image-edit conversations."""

import logging
import math
from datetime import datetime, timezone
from typing import Callable, Optional

import pydantic

from thumbforge.errors import StateInvariantViolation, ValidationError
from thumbforge.types import (
    DEFAULT_WINDOW_SIZE,
    MAX_WINDOW_SIZE,
    MIN_WINDOW_SIZE,
    ContextEntry,
    ConversationState,
    ConversationStatus,
    Interaction,
    InteractionKind,
    ProjectType,
    Role,
    SummaryDigest,
)

logger = logging.getLogger(__name__)

DEFAULT_CHARS_PER_TOKEN = 4
EDIT_SEPARATOR = " → "
SUMMARY_PREFIX = "Previous conversation summary: "

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def estimate_tokens(text: str, chars_per_token: int = DEFAULT_CHARS_PER_TOKEN) -> int:
    """
    Estimate token count for text.

    Simple heuristic: ~4 chars per token, rounded up. Not a real tokenizer.
    """
    return math.ceil(len(text) / chars_per_token)


def fold_digest(digest: SummaryDigest, evicted: list[Interaction]) -> SummaryDigest:
    """
    Fold evicted interactions into a summary digest.

    Keeps the first create-kind request ever evicted and the chronological
    chain of evicted edit-kind requests. Returns ``digest`` itself when there
    is nothing to fold.
    """
    if not evicted:
        return digest

    original_request = digest.original_request
    if original_request is None:
        for interaction in evicted:
            if interaction.kind == InteractionKind.CREATE:
                original_request = interaction.content
                break

    edits = digest.edits + [i.content for i in evicted if i.kind == InteractionKind.EDIT]

    return SummaryDigest(
        original_request=original_request,
        edits=edits,
        folded_count=digest.folded_count + len(evicted),
    )


def render_summary(digest: SummaryDigest, project_type: ProjectType, aspect_ratio: str) -> str:
    """Render a digest as the short narrative sent to generation backends."""
    if digest.is_empty():
        return ""

    lines = [f"Project Type: {project_type.value} ({aspect_ratio})"]
    if digest.original_request is not None:
        lines.append(f"Original Creation: {digest.original_request}")
    if digest.edits:
        lines.append(f"Previous Edits: {EDIT_SEPARATOR.join(digest.edits)}")
    return "\n".join(lines)


class ContextManager:
    """Owns the bounded interaction log of one conversation.

    Mutating methods change ``self.state`` in place; persisting it is the
    caller's job. Writes for one conversation must be serialized by the
    caller.
    """

    def __init__(
        self,
        state: ConversationState,
        chars_per_token: int = DEFAULT_CHARS_PER_TOKEN,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize context manager.

        Args:
            state: Conversation state to manage
            chars_per_token: Characters per token for estimation
            clock: Timestamp source (default: current UTC time)
        """
        if chars_per_token < 1:
            raise ValidationError(f"chars_per_token must be >= 1, got {chars_per_token}")
        self.state = state
        self.chars_per_token = chars_per_token
        self.clock = clock or utc_now

    @classmethod
    def create(
        cls,
        project_id: str,
        user_id: str,
        project_type: ProjectType | str = ProjectType.YOUTUBE,
        aspect_ratio: Optional[str] = None,
        window_size: int = DEFAULT_WINDOW_SIZE,
        chars_per_token: int = DEFAULT_CHARS_PER_TOKEN,
        clock: Optional[Clock] = None,
    ) -> "ContextManager":
        """Start a fresh active conversation for a (project, user) pair."""
        if not project_id or not user_id:
            raise ValidationError("project_id and user_id must be non-empty")
        _check_window_size(window_size)
        try:
            project_type = ProjectType(project_type)
        except ValueError as e:
            raise ValidationError(f"Invalid project type: {project_type}") from e

        now = (clock or utc_now)()
        try:
            state = ConversationState(
                project_id=project_id,
                user_id=user_id,
                project_type=project_type,
                aspect_ratio=aspect_ratio or project_type.default_aspect_ratio,
                window_size=window_size,
                created_at=now,
                last_interaction_at=now,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid conversation: {e}") from e
        return cls(state, chars_per_token=chars_per_token, clock=clock)

    def estimate_tokens(self, text: str) -> int:
        """Estimate tokens for text with this manager's ratio."""
        return estimate_tokens(text, self.chars_per_token)

    def add_interaction(
        self,
        role: Role | str,
        content: str,
        artifact_ref: str,
        kind: InteractionKind | str = InteractionKind.CREATE,
        parent_ref: Optional[str] = None,
    ) -> Interaction:
        """
        Append an interaction and evict from the head if the window overflows.

        Evicted interactions are folded into the summary; this is the only
        path by which the summary changes.

        Raises:
            ValidationError: empty content, missing artifact reference, bad
                role/kind, or an inactive conversation
            StateInvariantViolation: the clock went backwards
        """
        state = self.state
        if state.status != ConversationStatus.ACTIVE:
            raise ValidationError(f"Conversation {state.id} is {state.status.value}, not active")
        try:
            role = Role(role)
        except ValueError as e:
            raise ValidationError(f"Invalid role: {role}") from e
        try:
            kind = InteractionKind(kind)
        except ValueError as e:
            raise ValidationError(f"Invalid interaction kind: {kind}") from e
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Interaction content must be non-empty")
        if not artifact_ref:
            raise ValidationError("Interaction requires an artifact reference")

        now = self.clock()
        if now < state.last_interaction_at:
            raise StateInvariantViolation(
                f"Interaction timestamp {now.isoformat()} precedes "
                f"{state.last_interaction_at.isoformat()} in conversation {state.id}"
            )

        try:
            interaction = Interaction(
                role=role,
                content=content,
                artifact_ref=artifact_ref,
                created_at=now,
                token_count=self.estimate_tokens(content),
                kind=kind,
                parent_ref=parent_ref,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid interaction: {e}") from e
        state.history.append(interaction)
        state.total_tokens_used += interaction.token_count
        state.current_artifact_ref = artifact_ref
        state.last_interaction_at = now

        overflow = len(state.history) - state.window_size
        if overflow > 0:
            self._evict(overflow, now)

        return interaction

    def _evict(self, count: int, now: datetime) -> None:
        """Remove ``count`` interactions from the head and fold them into the summary."""
        state = self.state
        if count > len(state.history):
            raise StateInvariantViolation(
                f"Cannot evict {count} interactions from a history of {len(state.history)}"
            )

        evicted = state.history[:count]
        del state.history[:count]

        digest = fold_digest(state.summary_digest, evicted)
        state.summary = render_summary(digest, state.project_type, state.aspect_ratio)
        state.summary_digest = digest
        state.last_summary_update = now
        logger.debug(
            f"Evicted {count} interaction(s) from conversation {state.id}; "
            f"{digest.folded_count} summarized so far"
        )

    def update_summary(self, evicted: list[Interaction]) -> str:
        """
        Compute the summary that results from folding ``evicted`` in.

        Does not modify the state. Only interactions already removed from the
        window belong here, so the most recent exchange is never summarized
        while it is still held verbatim.
        """
        state = self.state
        digest = fold_digest(state.summary_digest, evicted)
        if digest is state.summary_digest:
            return state.summary
        return render_summary(digest, state.project_type, state.aspect_ratio)

    def get_context_for_generation(self, max_tokens: int) -> list[ContextEntry]:
        """
        Build a token-budgeted context slice in chronological order.

        Strategy:
        1. Always include the summary (if any) as a leading system entry
        2. Walk history newest first while entries fit the remaining budget
        3. Stop at the first entry that does not fit

        Args:
            max_tokens: Token budget for the slice

        Returns:
            Context entries, oldest first
        """
        if max_tokens < 0:
            raise ValidationError(f"max_tokens must be >= 0, got {max_tokens}")

        state = self.state
        entries: list[ContextEntry] = []
        used = 0

        if state.summary:
            summary_tokens = self.estimate_tokens(state.summary)
            entries.append(
                ContextEntry(
                    role="system",
                    content=f"{SUMMARY_PREFIX}{state.summary}",
                    token_count=summary_tokens,
                )
            )
            used += summary_tokens

        recent: list[ContextEntry] = []
        for interaction in reversed(state.history):
            if used + interaction.token_count > max_tokens:
                break
            recent.append(
                ContextEntry(
                    role=interaction.role.value,
                    content=interaction.content,
                    token_count=interaction.token_count,
                    artifact_ref=interaction.artifact_ref,
                    created_at=interaction.created_at,
                )
            )
            used += interaction.token_count

        entries.extend(reversed(recent))
        return entries

    def set_window_size(self, window_size: int) -> None:
        """Change the window size. A smaller window takes effect on the next append."""
        _check_window_size(window_size)
        self.state.window_size = window_size

    def archive(self) -> None:
        """Move the conversation to ``archived``. Terminal for this state."""
        state = self.state
        if state.status != ConversationStatus.ACTIVE:
            raise StateInvariantViolation(
                f"Conversation {state.id} is {state.status.value}; only active conversations can be archived"
            )
        state.status = ConversationStatus.ARCHIVED
        state.archived_at = self.clock()
        logger.info(f"Archived conversation {state.id} for project {state.project_id}")


def _check_window_size(window_size: int) -> None:
    if not MIN_WINDOW_SIZE <= window_size <= MAX_WINDOW_SIZE:
        raise ValidationError(
            f"window_size must be between {MIN_WINDOW_SIZE} and {MAX_WINDOW_SIZE}, got {window_size}"
        )
