"""Exception taxonomy shared by the core, the collaborators and the outer surfaces."""


class NexBuilderError(Exception):
    """Base class for all nexbuilder errors."""


class ConfigurationError(NexBuilderError):
    """Raised when credentials or binaries needed by a collaborator are missing."""


class CollaboratorError(NexBuilderError):
    """Raised when an external collaborator (LLM API, CLI) fails."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status


class EmptyPlanError(NexBuilderError):
    """Raised when plan generation yields zero tasks."""


class EmptyDecompositionError(NexBuilderError):
    """Raised when a task decomposition yields zero subtasks."""


class ParseError(NexBuilderError):
    """Raised when collaborator output cannot be turned into structured data."""


class NoProjectError(NexBuilderError):
    """Raised when an operation needs a project but none is loaded."""


class TaskNotFoundError(NexBuilderError):
    """Raised when a task ID does not resolve in the current graph."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TaskNotReadyError(NexBuilderError):
    """Raised when executing a task that is not ready."""


class TaskNotEditableError(NexBuilderError):
    """Raised when a task is in a status that forbids the requested change."""


class InvalidDependencyError(NexBuilderError):
    """Raised when a dependency edit would reference a missing task or itself."""


class CycleError(NexBuilderError):
    """Raised when task dependencies would form a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle


class OperationInProgressError(NexBuilderError):
    """Raised when another operation of the same category is already running."""

    def __init__(self, category: str) -> None:
        super().__init__(f"Another {category} is already in progress")
        self.category = category


class StaleExecutionError(NexBuilderError):
    """Raised when an execution finishes after its task or project was replaced."""
