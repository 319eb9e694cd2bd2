"""Exception taxonomy of the workflow orchestration core."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for orchestration errors."""


class NotFound(WorkflowError):
    """Raised when a workflow, step, instance or assignment does not exist."""

    entity = "entity"

    def __init__(self, identifier: object) -> None:
        super().__init__(f"{self.entity} {identifier} not found")
        self.identifier = identifier


class WorkflowNotFound(NotFound):
    entity = "workflow"


class DefinitionNotFound(NotFound):
    entity = "workflow definition"


class StepNotFound(NotFound):
    entity = "step"


class InstanceNotFound(NotFound):
    entity = "instance"


class AssignmentNotFound(NotFound):
    entity = "assignment"


class NoStepsDefined(WorkflowError):
    """Raised when starting a workflow that has no steps."""


class WorkflowAlreadyStarted(WorkflowError):
    """Raised when a one-off workflow is started a second time."""


class InvalidTransition(WorkflowError):
    """Raised when mutating an assignment that is already completed."""


class ValidationError(WorkflowError):
    """Raised when a payload or step configuration is invalid."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


class ConcurrencyArtifact(WorkflowError):
    """Benign result of a duplicate or stale completion signal."""


class NotActive(ConcurrencyArtifact):
    """Raised when advancing an instance that is no longer active."""


class StepMismatch(ConcurrencyArtifact):
    """Raised when the completed step is not the instance's current step."""


class PartialAdvancementFailure(WorkflowError):
    """Raised when advancement kept failing on storage faults.

    The instance is flagged ``needs_repair`` before this is raised.
    """

    def __init__(self, instance_id: int, attempts: int) -> None:
        super().__init__(
            f"advancement of instance {instance_id} failed after {attempts} attempts"
        )
        self.instance_id = instance_id
        self.attempts = attempts
