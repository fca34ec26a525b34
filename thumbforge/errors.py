"""Error types for conversation context management."""


class ContextError(Exception):
    """Base class for all conversation context errors."""


class ValidationError(ContextError):
    """Malformed input to a context operation. Never retried."""


class NotFoundError(ContextError):
    """No active conversation exists for a (project, user) key."""

    def __init__(self, project_id: str, user_id: str):
        self.project_id = project_id
        self.user_id = user_id
        super().__init__(f"No active conversation for project {project_id} and user {user_id}")


class StateInvariantViolation(ContextError):
    """A conversation state contract was broken. Indicates a programming error."""


class PersistenceError(ContextError):
    """A conversation store could not read or write a state."""
