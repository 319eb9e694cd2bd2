"""Database models for the Flowdesk workflow backend."""

from .assignment import StepAssignment
from .instance import WorkflowInstance
from .logs import WorkflowEvent
from .workflow import Workflow, WorkflowDefinition, WorkflowStep

__all__ = [
    "StepAssignment",
    "Workflow",
    "WorkflowDefinition",
    "WorkflowEvent",
    "WorkflowInstance",
    "WorkflowStep",
]
