"""Tests for conversation context management."""

from datetime import datetime, timezone

import pytest

from thumbforge.context import ContextManager, estimate_tokens, fold_digest
from thumbforge.errors import StateInvariantViolation, ValidationError
from thumbforge.types import ConversationStatus, InteractionKind, Role, SummaryDigest


def test_estimate_tokens():
    """Test token estimation rounds up at ~4 chars per token."""
    assert estimate_tokens("Hello, world!") == 4
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("a") == 1
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcdef", chars_per_token=3) == 2


def test_identical_content_has_identical_token_count(make_manager):
    """Test that token counts are deterministic."""
    manager = make_manager()
    first = manager.add_interaction("user", "make it darker", "img1", "edit")
    second = manager.add_interaction("user", "make it darker", "img2", "edit")
    assert first.token_count == second.token_count


def test_add_interaction_updates_state(make_manager):
    """Test that an append updates counters and references."""
    manager = make_manager()
    interaction = manager.add_interaction("user", "a cat on a skateboard", "img1")

    state = manager.state
    assert state.history == [interaction]
    assert interaction.role == Role.USER
    assert interaction.kind == InteractionKind.CREATE
    assert interaction.parent_ref is None
    assert state.total_tokens_used == interaction.token_count
    assert state.current_artifact_ref == "img1"
    assert state.last_interaction_at == interaction.created_at
    assert state.summary == ""


@pytest.mark.parametrize("count", [1, 3, 4, 9])
def test_window_bound(make_manager, count):
    """Test that history never exceeds the window size."""
    manager = make_manager(window_size=3)
    for i in range(count):
        manager.add_interaction("user", f"step {i}", f"img{i}", "edit")
    assert len(manager.state.history) == min(count, 3)


def test_total_tokens_is_lifetime_counter(make_manager):
    """Test that eviction never decreases the token total."""
    manager = make_manager(window_size=2)
    contents = ["short", "a somewhat longer request", "x" * 37, "final tweak"]
    for i, content in enumerate(contents):
        manager.add_interaction("user", content, f"img{i}")

    state = manager.state
    assert state.total_tokens_used == sum(estimate_tokens(c) for c in contents)
    assert state.total_tokens_used > state.window_token_count


def test_history_is_chronological(make_manager):
    """Test that history and context slices are ordered oldest first."""
    manager = make_manager(window_size=4)
    for i in range(7):
        manager.add_interaction("user" if i % 2 == 0 else "assistant", f"turn {i}", f"img{i}")

    timestamps = [i.created_at for i in manager.state.history]
    assert timestamps == sorted(timestamps)
    assert [i.content for i in manager.state.history] == ["turn 3", "turn 4", "turn 5", "turn 6"]

    context = manager.get_context_for_generation(1000)
    dated = [e.created_at for e in context if not e.is_summary]
    assert dated == sorted(dated)


def test_eviction_scenario_window_two(make_manager):
    """Test the first eviction folds the oldest edit into the summary."""
    manager = make_manager(window_size=2)
    manager.add_interaction(Role.USER, "make it blue", "img1", InteractionKind.EDIT)
    manager.add_interaction(Role.ASSISTANT, "Done - blue background applied", "img2", InteractionKind.EDIT)

    assert len(manager.state.history) == 2
    assert manager.state.summary == ""
    assert manager.state.last_summary_update is None

    manager.add_interaction(Role.USER, "now add text", "img2", InteractionKind.EDIT)

    state = manager.state
    assert [i.content for i in state.history] == ["Done - blue background applied", "now add text"]
    assert "Previous Edits: make it blue" in state.summary.splitlines()
    assert state.summary.splitlines()[0] == "Project Type: youtube (16:9)"
    assert state.last_summary_update is not None


def test_summary_lags_window(make_manager):
    """Test that interactions still in the window are never summarized."""
    manager = make_manager(window_size=3)
    for i in range(1, 6):
        manager.add_interaction("user", f"edit {i}", f"img{i}", "edit")

    summary = manager.state.summary
    assert "Previous Edits: edit 1 → edit 2" in summary
    assert "edit 3" not in summary
    assert [i.content for i in manager.state.history] == ["edit 3", "edit 4", "edit 5"]


def test_summary_keeps_first_creation(make_manager):
    """Test that the original request survives later evictions."""
    manager = make_manager(window_size=1, project_type="reels")
    manager.add_interaction("user", "gaming thumbnail with neon lights", "img1", "create")
    manager.add_interaction("assistant", "Generated new thumbnail", "img1", "create")
    manager.add_interaction("user", "add a headset", "img2", "edit")
    manager.add_interaction("user", "brighter", "img3", "refine")

    assert manager.state.summary.splitlines() == [
        "Project Type: reels (9:16)",
        "Original Creation: gaming thumbnail with neon lights",
        "Previous Edits: add a headset",
    ]
    assert manager.state.summary_digest.folded_count == 3


def test_summary_omits_missing_lines(make_manager):
    """Test that absent creation and edit lines are left out."""
    manager = make_manager(window_size=1)
    manager.add_interaction("user", "sharper", "img1", "refine")
    manager.add_interaction("user", "sharper still", "img2", "refine")

    assert manager.state.summary == "Project Type: youtube (16:9)"


def test_update_summary_is_pure(make_manager):
    """Test that update_summary computes without modifying state."""
    manager = make_manager(window_size=5)
    first = manager.add_interaction("user", "make it red", "img1", "edit")

    assert manager.update_summary([]) == ""
    assert manager.update_summary([first]) == "Project Type: youtube (16:9)\nPrevious Edits: make it red"
    assert manager.state.summary == ""
    assert manager.state.summary_digest.is_empty()


def test_fold_digest_noop_on_empty():
    """Test that folding nothing returns the same digest."""
    digest = SummaryDigest(original_request="a cat", folded_count=1)
    assert fold_digest(digest, []) is digest


def test_context_respects_budget_and_stops_at_first_misfit(make_manager):
    """Test that the backward walk stops instead of skipping large entries."""
    manager = make_manager()
    manager.add_interaction("user", "a" * 4, "img1")  # 1 token
    manager.add_interaction("assistant", "b" * 40, "img1")  # 10 tokens
    manager.add_interaction("user", "c" * 8, "img2")  # 2 tokens

    context = manager.get_context_for_generation(5)
    assert [e.content for e in context] == ["c" * 8]

    context = manager.get_context_for_generation(13)
    assert [e.content for e in context] == ["a" * 4, "b" * 40, "c" * 8]
    assert sum(e.token_count for e in context) <= 13


def test_context_entries_carry_interaction_fields(make_manager):
    """Test that history entries keep role, artifact and timestamp."""
    manager = make_manager()
    interaction = manager.add_interaction("assistant", "Generated thumbnail", "img9")

    (entry,) = manager.get_context_for_generation(100)
    assert entry.role == "assistant"
    assert entry.artifact_ref == "img9"
    assert entry.created_at == interaction.created_at
    assert entry.token_count == interaction.token_count


def test_context_summary_always_included(make_manager):
    """Test that the summary is included even when it exceeds the budget."""
    manager = make_manager(window_size=1)
    manager.add_interaction("user", "make it blue", "img1", "edit")
    manager.add_interaction("user", "now add text", "img2", "edit")

    for budget in (0, 1):
        context = manager.get_context_for_generation(budget)
        assert len(context) == 1
        assert context[0].role == "system"
        assert context[0].content.startswith("Previous conversation summary: ")
        assert context[0].token_count == estimate_tokens(manager.state.summary)

    context = manager.get_context_for_generation(1000)
    assert [e.role for e in context] == ["system", "user"]


def test_context_zero_budget_without_summary(make_manager):
    """Test that a zero budget with no summary yields nothing."""
    manager = make_manager()
    manager.add_interaction("user", "hello", "img1")
    assert manager.get_context_for_generation(0) == []


def test_context_read_is_idempotent(make_manager):
    """Test that repeated reads match and leave state untouched."""
    manager = make_manager(window_size=3)
    for i in range(6):
        manager.add_interaction("user", f"edit number {i}", f"img{i}", "edit")

    before = manager.state.model_dump()
    first = manager.get_context_for_generation(12)
    second = manager.get_context_for_generation(12)

    assert first == second
    assert manager.state.model_dump() == before


def test_context_rejects_negative_budget(make_manager):
    """Test that a negative budget is rejected."""
    with pytest.raises(ValidationError):
        make_manager().get_context_for_generation(-1)


@pytest.mark.parametrize(
    "role, content, artifact_ref, kind, parent_ref",
    [
        ("user", "", "img1", "create", None),
        ("user", "   ", "img1", "create", None),
        ("user", "make it blue", "", "create", None),
        ("user", "make it blue", None, "create", None),
        ("system", "make it blue", "img1", "create", None),
        ("user", "make it blue", "img1", "delete", None),
        ("user", "make it blue", 12345, "create", None),
        ("user", "make it blue", "img2", "edit", 12345),
    ],
)
def test_add_interaction_validation(make_manager, role, content, artifact_ref, kind, parent_ref):
    """Test that malformed input is rejected without changing state."""
    manager = make_manager()
    with pytest.raises(ValidationError):
        manager.add_interaction(role, content, artifact_ref, kind, parent_ref=parent_ref)
    assert manager.state.history == []
    assert manager.state.total_tokens_used == 0


def test_clock_going_backwards_is_rejected(make_manager):
    """Test that an earlier timestamp cannot follow a later one."""
    times = iter(
        [
            datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
            datetime(2024, 1, 1, 12, 5, tzinfo=timezone.utc),
            datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc),
        ]
    )
    manager = ContextManager.create("project_1", "user_1", clock=lambda: next(times))
    manager.add_interaction("user", "first", "img1")

    with pytest.raises(StateInvariantViolation):
        manager.add_interaction("user", "second", "img2")
    assert len(manager.state.history) == 1


def test_archive_is_terminal(make_manager):
    """Test archive transitions and rejects further use."""
    manager = make_manager()
    manager.add_interaction("user", "hello", "img1")
    manager.archive()

    assert manager.state.status == ConversationStatus.ARCHIVED
    assert manager.state.archived_at is not None
    with pytest.raises(ValidationError):
        manager.add_interaction("user", "again", "img2")
    with pytest.raises(StateInvariantViolation):
        manager.archive()


def test_shrinking_window_evicts_on_next_append(make_manager):
    """Test that a smaller window takes effect on the next append."""
    manager = make_manager(window_size=5)
    for i in range(5):
        manager.add_interaction("user", f"edit {i}", f"img{i}", "edit")

    manager.set_window_size(2)
    assert len(manager.state.history) == 5
    assert manager.state.summary == ""

    manager.add_interaction("user", "edit 5", "img5", "edit")
    assert [i.content for i in manager.state.history] == ["edit 4", "edit 5"]
    assert "Previous Edits: edit 0 → edit 1 → edit 2 → edit 3" in manager.state.summary


@pytest.mark.parametrize("window_size", [0, 51])
def test_window_size_range(make_manager, window_size):
    """Test that window sizes outside 1..50 are rejected."""
    with pytest.raises(ValidationError):
        make_manager(window_size=window_size)
    with pytest.raises(ValidationError):
        make_manager().set_window_size(window_size)


def test_create_validates_key():
    """Test that empty key components are rejected."""
    with pytest.raises(ValidationError):
        ContextManager.create("project_1", "")
    with pytest.raises(ValidationError):
        ContextManager.create("", "user_1")


def test_create_uses_project_type_aspect_ratio():
    """Test default aspect ratios per project type."""
    assert ContextManager.create("p", "u", project_type="reels").state.aspect_ratio == "9:16"
    assert ContextManager.create("p", "u").state.aspect_ratio == "16:9"
    assert ContextManager.create("p", "u", aspect_ratio="4:3").state.aspect_ratio == "4:3"
    with pytest.raises(ValidationError):
        ContextManager.create("p", "u", project_type="tiktok")


def test_first_interaction_cannot_precede_creation():
    """Test that the first append is checked against the creation time."""
    times = iter(
        [
            datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
            datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc),
        ]
    )
    manager = ContextManager.create("project_1", "user_1", clock=lambda: next(times))

    with pytest.raises(StateInvariantViolation, match="precedes"):
        manager.add_interaction("user", "first", "img1")
    assert manager.state.history == []
    assert manager.state.total_tokens_used == 0


@pytest.mark.parametrize(
    "project_id, user_id, aspect_ratio",
    [
        (123, "user_1", None),
        ("project_1", ["user_1"], None),
        ("project_1", "user_1", 169),
    ],
)
def test_create_rejects_wrong_types(project_id, user_id, aspect_ratio):
    """Test that badly typed fields surface as ValidationError."""
    with pytest.raises(ValidationError, match="Invalid conversation"):
        ContextManager.create(project_id, user_id, aspect_ratio=aspect_ratio)
