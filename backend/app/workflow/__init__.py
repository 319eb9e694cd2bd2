"""Workflow orchestration core: definitions, assignments, instances and advancement."""

from .engine import AdvancementResult, advance, complete_step, repair_instance
from .instances import start
from .visibility import list_visible_assignments, reconcile_orphans

__all__ = [
    "AdvancementResult",
    "advance",
    "complete_step",
    "list_visible_assignments",
    "reconcile_orphans",
    "repair_instance",
    "start",
]
