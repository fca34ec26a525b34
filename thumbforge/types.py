"""Conversation data model."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

MIN_WINDOW_SIZE = 1
MAX_WINDOW_SIZE = 50
DEFAULT_WINDOW_SIZE = 10


class Role(str, Enum):
    """Author of an interaction."""

    USER = "user"
    ASSISTANT = "assistant"


class InteractionKind(str, Enum):
    """Intent of an interaction."""

    CREATE = "create"
    EDIT = "edit"
    REFINE = "refine"


class ConversationStatus(str, Enum):
    """Conversation lifecycle status.

    ``paused`` is reserved: nothing transitions into or out of it.
    """

    ACTIVE = "active"
    ARCHIVED = "archived"
    PAUSED = "paused"


class ProjectType(str, Enum):
    """Target platform of a thumbnail project."""

    YOUTUBE = "youtube"
    REELS = "reels"

    @property
    def default_aspect_ratio(self) -> str:
        return "9:16" if self is ProjectType.REELS else "16:9"

    @property
    def platform_label(self) -> str:
        return "Instagram Reels/social media" if self is ProjectType.REELS else "YouTube"


def new_id() -> str:
    return uuid.uuid4().hex


class Interaction(BaseModel):
    """One turn of an editing conversation. Immutable once appended."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    role: Role
    content: str
    artifact_ref: str  # opaque, owned by the artifact store
    created_at: datetime
    token_count: int
    kind: InteractionKind = InteractionKind.CREATE
    parent_ref: Optional[str] = None


class ContextEntry(BaseModel):
    """An entry of a context slice handed to a generation backend."""

    model_config = ConfigDict(frozen=True)

    role: str  # "system", "user" or "assistant"
    content: str
    token_count: int
    artifact_ref: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_summary(self) -> bool:
        return self.role == "system"


class SummaryDigest(BaseModel):
    """Structured form of the rolling summary of evicted interactions."""

    original_request: Optional[str] = None
    edits: list[str] = Field(default_factory=list)
    folded_count: int = 0

    def is_empty(self) -> bool:
        return self.folded_count == 0


class ConversationState(BaseModel):
    """Persistent state of one conversation for a (project, user) pair."""

    id: str = Field(default_factory=new_id)
    project_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    project_type: ProjectType = ProjectType.YOUTUBE
    aspect_ratio: str = "16:9"
    history: list[Interaction] = Field(default_factory=list)
    window_size: int = Field(default=DEFAULT_WINDOW_SIZE, ge=MIN_WINDOW_SIZE, le=MAX_WINDOW_SIZE)
    total_tokens_used: int = 0
    current_artifact_ref: Optional[str] = None
    summary: str = ""
    summary_digest: SummaryDigest = Field(default_factory=SummaryDigest)
    status: ConversationStatus = ConversationStatus.ACTIVE
    created_at: datetime
    last_interaction_at: datetime
    last_summary_update: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.project_id, self.user_id)

    @property
    def is_active(self) -> bool:
        return self.status == ConversationStatus.ACTIVE

    @property
    def window_token_count(self) -> int:
        """Tokens held verbatim in the window (not the lifetime total)."""
        return sum(interaction.token_count for interaction in self.history)


class ConversationOverview(BaseModel):
    """Display payload for a conversation."""

    id: str
    project_id: str
    total_steps: int
    total_tokens: int
    window_tokens: int
    last_interaction: datetime
    status: ConversationStatus
    summary: str
    history: list[ContextEntry]
    current_artifact_ref: Optional[str] = None
