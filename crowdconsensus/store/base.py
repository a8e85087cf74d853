"""
Base stage store interface.

Defines the read boundary the consensus algorithms consume and the
errors surfaced at that boundary.
"""

from abc import ABC, abstractmethod

from ..models import Answer, StageConfig, Task, Worker


class StageStore(ABC):
    """Abstract base class for stage-scoped storage of tasks, workers and answers."""

    name: str = "base"

    @abstractmethod
    def list_tasks_for_stage(self, stage_id: str) -> list[Task]:
        """
        List the tasks of a stage in insertion order.

        Raises:
            StageNotFoundError: If the stage is unknown
            StoreReadError: If the read fails
        """
        pass

    @abstractmethod
    def list_answers_for_stage(self, stage_id: str) -> list[Answer]:
        """List the answers of a stage in insertion order."""
        pass

    @abstractmethod
    def list_workers_for_stage(self, stage_id: str) -> list[Worker]:
        """List the workers of a stage in insertion order."""
        pass

    def list_answers_for_task(self, stage_id: str, task_id: int) -> list[Answer]:
        """List the answers submitted for one task of a stage."""
        return [a for a in self.list_answers_for_stage(stage_id) if a.task_id == task_id]

    @abstractmethod
    def find_stage(self, stage_id: str) -> StageConfig | None:
        """Get a stage definition, or None if unknown."""
        pass

    @abstractmethod
    def list_stages(self) -> list[StageConfig]:
        """List all stage definitions."""
        pass

    @abstractmethod
    def insert_stage(self, config: StageConfig) -> str:
        """
        Store a new stage definition.

        Raises:
            StageConflictError: If the stage id is taken
        """
        pass

    @abstractmethod
    def update_stage(self, config: StageConfig) -> None:
        """
        Replace an existing stage definition.

        Raises:
            StageNotFoundError: If the stage is unknown
        """
        pass


class StoreError(Exception):
    """Base exception for stage store errors."""

    retryable: bool = False

    def __init__(self, message: str, stage_id: str | None = None):
        self.message = message
        self.stage_id = stage_id
        super().__init__(f"[{stage_id}] {message}" if stage_id else message)


class StageNotFoundError(StoreError):
    """Raised when a stage id is unknown."""

    def __init__(self, stage_id: str):
        super().__init__("Stage not found", stage_id)


class StageConflictError(StoreError):
    """Raised when creating a stage whose id already exists."""

    def __init__(self, stage_id: str):
        super().__init__("Stage already exists", stage_id)


class StoreReadError(StoreError):
    """Raised when a storage read fails; callers may retry."""

    retryable = True

    def __init__(
        self,
        message: str,
        stage_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.original_error = original_error
        super().__init__(message, stage_id)
