"""Conversation-aware prompt composition for edit requests."""

from thumbforge.types import ContextEntry, ProjectType


def render_history(context: list[ContextEntry]) -> str:
    """Render a context slice as the conversation history block."""
    if not context:
        return ""

    lines = []
    for index, entry in enumerate(context, start=1):
        if entry.is_summary:
            lines.append(entry.content)
        else:
            label = "USER REQUEST" if entry.role == "user" else "PREVIOUS RESULT"
            lines.append(f"{label} {index}: {entry.content}")

    return "=== CONVERSATION HISTORY ===\n" + "\n".join(lines) + "\n\n=== CURRENT REQUEST ==="


def build_edit_prompt(
    context: list[ContextEntry],
    request: str,
    step: int,
    project_type: ProjectType | str = ProjectType.YOUTUBE,
    aspect_ratio: str = "16:9",
) -> str:
    """
    Build the prompt for one step of an ongoing editing session.

    With an empty context the prompt asks for a plain edit of the current image.

    Args:
        context: Slice from ContextManager.get_context_for_generation
        request: The current modification request
        step: 1-based step number of this request in the session
        project_type: Target platform
        aspect_ratio: Aspect ratio to keep

    Returns:
        Prompt text for the generation backend
    """
    platform = ProjectType(project_type).platform_label
    if not context:
        return (
            "You are editing an existing thumbnail image. Based on the current image provided, "
            f"please make the following modifications: {request}.\n\n"
            "Keep the overall composition and style cohesive while implementing the requested changes. "
            f"Maintain the {aspect_ratio} aspect ratio and ensure the result looks professional "
            f"and engaging for {platform}.\n\n"
            "Important: Focus on modifying the existing elements rather than creating an entirely "
            "new design. The changes should feel natural and integrated with the original image."
        )

    history = render_history(context)

    return (
        "You are continuing an ongoing thumbnail editing conversation.\n"
        f"{history}\n\n"
        f"Current modification request: {request}\n\n"
        "IMPORTANT INSTRUCTIONS:\n"
        f"- This is step {step} in an ongoing editing session\n"
        "- Build upon the previous edits shown in the conversation history above\n"
        "- Keep the overall design cohesive with previous changes\n"
        "- Focus on making natural, iterative improvements\n"
        f"- Maintain {aspect_ratio} aspect ratio for {platform}\n"
        "- The changes should feel like a natural progression from the conversation history\n\n"
        "Please implement the current modification while maintaining consistency with all previous edits."
    )
