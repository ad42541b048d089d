"""Domain exceptions.

Services raise these synchronously; the API layer maps them to HTTP
responses in ``taskflow.middleware.errors``.
"""

from uuid import UUID


class TaskFlowError(Exception):
    """Base exception for all domain errors."""

    status_code: int = 500

    def __init__(self, message: str, code: str = "TASKFLOW_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(TaskFlowError):
    """Input rejected by a business rule (self-parenting, depth, minute range...)."""

    status_code = 400

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message=message, code=code)


class CycleError(ValidationError):
    """Re-parenting would make a task its own ancestor."""

    def __init__(self, task_id: UUID, parent_id: UUID):
        self.task_id = task_id
        self.parent_id = parent_id
        super().__init__(
            message=(
                f"Cannot set task {parent_id} as parent of {task_id}: "
                "this would create a circular reference"
            ),
            code="HIERARCHY_CYCLE",
        )


class NotFoundError(TaskFlowError):
    """Entity is missing or soft-deleted."""

    status_code = 404

    def __init__(self, entity: str, entity_id: UUID):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message=f"{entity} with ID {entity_id} not found",
            code="NOT_FOUND",
        )


class ForbiddenError(TaskFlowError):
    """Requesting user is neither the creator nor an assignee."""

    status_code = 403

    def __init__(self, message: str = "You do not have permission to access this task"):
        super().__init__(message=message, code="FORBIDDEN")


class ConflictError(TaskFlowError):
    """Write conflicts with existing state."""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message=message, code="CONFLICT")


class HierarchyIntegrityError(TaskFlowError):
    """Traversal found a latent cycle or exceeded its step bound.

    ``set_parent`` prevents cycles, so this signals corrupted data
    (or a concurrent re-parenting race) rather than bad input.
    """

    status_code = 500

    def __init__(self, task_id: UUID, steps: int):
        self.task_id = task_id
        self.steps = steps
        super().__init__(
            message=f"Task hierarchy above {task_id} is corrupt (stopped after {steps} steps)",
            code="HIERARCHY_CORRUPT",
        )
