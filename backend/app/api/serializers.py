"""JSON serialisation helpers shared by the API blueprints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ..models.assignment import StepAssignment
from ..models.instance import WorkflowInstance
from ..models.logs import WorkflowEvent
from ..models.workflow import Workflow, WorkflowDefinition, WorkflowStep
from ..workflow.visibility import VisibleAssignment


def timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.isoformat()
    return value.isoformat() + "Z"


def serialize_step(step: WorkflowStep) -> dict[str, Any]:
    return {
        "id": step.id,
        "workflow_id": step.workflow_id,
        "name": step.name,
        "description": step.description,
        "order": step.step_order,
        "assignee": step.assignee,
        "estimated_hours": step.estimated_hours,
        "kind": step.kind,
        "config": step.config,
    }


def serialize_workflow(workflow: Workflow, *, include_steps: bool = True) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": workflow.id,
        "name": workflow.name,
        "description": workflow.description,
        "is_reusable": workflow.is_reusable,
        "definition_id": workflow.definition_id,
        "created_by": workflow.created_by,
        "created_at": timestamp(workflow.created_at),
    }
    if include_steps:
        payload["steps"] = [serialize_step(step) for step in workflow.steps]
    return payload


def serialize_definition(definition: WorkflowDefinition) -> dict[str, Any]:
    return {
        "id": definition.id,
        "name": definition.name,
        "description": definition.description,
        "is_reusable": definition.is_reusable,
        "steps": definition.step_templates,
        "created_by": definition.created_by,
        "created_at": timestamp(definition.created_at),
    }


def serialize_instance(instance: WorkflowInstance) -> dict[str, Any]:
    current = instance.current_step
    return {
        "id": instance.id,
        "workflow_id": instance.workflow_id,
        "workflow_name": instance.workflow.name if instance.workflow else None,
        "started_by": instance.started_by,
        "current_step_id": instance.current_step_id,
        "current_step_name": current.name if current is not None else None,
        "status": instance.status,
        "start_data": instance.start_data or {},
        "version": instance.version,
        "awaiting_assignment": instance.awaiting_assignment,
        "needs_repair": instance.needs_repair,
        "created_at": timestamp(instance.created_at),
        "updated_at": timestamp(instance.updated_at),
        "completed_at": timestamp(instance.completed_at),
    }


def serialize_assignment(assignment: StepAssignment) -> dict[str, Any]:
    step = assignment.step
    return {
        "id": assignment.id,
        "instance_id": assignment.instance_id,
        "step_id": assignment.step_id,
        "step_name": step.name if step is not None else None,
        "step_order": step.step_order if step is not None else None,
        "workflow_id": step.workflow_id if step is not None else None,
        "workflow_name": step.workflow.name if step is not None and step.workflow else None,
        "assigned_to": assignment.assigned_to,
        "assigned_by": assignment.assigned_by,
        "status": assignment.status,
        "due_date": timestamp(assignment.due_date),
        "completed_at": timestamp(assignment.completed_at),
        "notes": assignment.notes,
        "created_at": timestamp(assignment.created_at),
    }


def serialize_visible(item: VisibleAssignment) -> dict[str, Any]:
    payload = serialize_assignment(item.assignment)
    payload["live"] = item.live
    payload["stale"] = item.stale
    instance = item.instance
    payload["instance"] = (
        {
            "id": instance.id,
            "status": instance.status,
            "current_step_id": instance.current_step_id,
            "started_by": instance.started_by,
            "created_at": timestamp(instance.created_at),
        }
        if instance is not None
        else None
    )
    return payload


def serialize_event(entry: WorkflowEvent) -> dict[str, Any]:
    return {
        "id": entry.id,
        "source": entry.source,
        "instanceId": entry.instance_id,
        "message": entry.message,
        "createdAt": timestamp(entry.created_at),
    }
