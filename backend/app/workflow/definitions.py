"""Definition store: workflow templates, workflow records and ordered steps."""
from __future__ import annotations

import json
from typing import Any

from sqlalchemy import func

from ..extensions import db
from ..models.workflow import Workflow, WorkflowDefinition, WorkflowStep
from .errors import (
    DefinitionNotFound,
    NoStepsDefined,
    StepNotFound,
    ValidationError,
    WorkflowNotFound,
)
from .steps import DEFAULT_KIND, config_to_dict, parse_step_config

MAX_NAME_LENGTH = 255
MAX_USER_ID_LENGTH = 64


def get_workflow(workflow_id: int) -> Workflow:
    workflow = db.session.get(Workflow, workflow_id)
    if workflow is None:
        raise WorkflowNotFound(workflow_id)
    return workflow


def get_definition(definition_id: int) -> WorkflowDefinition:
    definition = db.session.get(WorkflowDefinition, definition_id)
    if definition is None:
        raise DefinitionNotFound(definition_id)
    return definition


def get_step(step_id: int) -> WorkflowStep:
    step = db.session.get(WorkflowStep, step_id)
    if step is None:
        raise StepNotFound(step_id)
    return step


def get_steps_ordered(workflow_id: int) -> list[WorkflowStep]:
    """Return the steps of a workflow in execution order."""

    return (
        WorkflowStep.query.filter_by(workflow_id=workflow_id)
        .order_by(WorkflowStep.step_order.asc())
        .all()
    )


def get_first_step(workflow_id: int) -> WorkflowStep:
    """Return the step with the smallest order, raising if there is none."""

    step = (
        WorkflowStep.query.filter_by(workflow_id=workflow_id)
        .order_by(WorkflowStep.step_order.asc())
        .first()
    )
    if step is None:
        raise NoStepsDefined(f"workflow {workflow_id} has no steps")
    return step


def get_next_step(workflow_id: int, current_order: int) -> WorkflowStep | None:
    """Return the step with the smallest order strictly greater than ``current_order``."""

    return (
        WorkflowStep.query.filter(WorkflowStep.workflow_id == workflow_id)
        .filter(WorkflowStep.step_order > current_order)
        .order_by(WorkflowStep.step_order.asc())
        .first()
    )


def _normalize_optional_text(value: Any, label: str, errors: list[str]) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        errors.append(f"{label} must be a string")
        return None
    value = value.strip()
    return value or None


def _normalize_step(item: Any, index: int) -> tuple[dict[str, Any], list[str]]:
    prefix = f"steps[{index}]"
    if not isinstance(item, dict):
        return {}, [f"{prefix} must be an object"]

    errors: list[str] = []
    name = item.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append(f"{prefix}.name is required")
        name = ""
    elif len(name.strip()) > MAX_NAME_LENGTH:
        errors.append(f"{prefix}.name is too long")

    order = item.get("order", index)
    if isinstance(order, bool) or not isinstance(order, int) or order < 1:
        errors.append(f"{prefix}.order must be a positive integer")
        order = 0

    assignee = _normalize_optional_text(item.get("assignee"), f"{prefix}.assignee", errors)
    if assignee is not None and len(assignee) > MAX_USER_ID_LENGTH:
        errors.append(f"{prefix}.assignee is too long")

    estimated = item.get("estimated_hours")
    if estimated is not None and (
        isinstance(estimated, bool) or not isinstance(estimated, (int, float)) or estimated < 0
    ):
        errors.append(f"{prefix}.estimated_hours must be a non-negative number")
        estimated = None

    kind = item.get("kind") or DEFAULT_KIND
    config, config_errors = parse_step_config(kind, item.get("config"))
    errors.extend(f"{prefix}: {message}" for message in config_errors)

    return (
        {
            "name": name.strip(),
            "description": _normalize_optional_text(
                item.get("description"), f"{prefix}.description", errors
            ),
            "step_order": order,
            "assignee": assignee,
            "estimated_hours": float(estimated) if estimated is not None else None,
            "kind": kind,
            "config": config_to_dict(config) if config is not None else {},
        },
        errors,
    )


def normalize_steps(value: Any, *, allow_empty: bool = False) -> tuple[list[dict[str, Any]], list[str]]:
    """Validate a list of step payloads, returning normalised steps and errors.

    Steps without an explicit ``order`` take their 1-based list position.
    """

    if value is None:
        value = []
    if not isinstance(value, list):
        return [], ["steps must be a list"]
    if not value and not allow_empty:
        return [], ["at least one step is required"]

    steps: list[dict[str, Any]] = []
    errors: list[str] = []
    for index, item in enumerate(value, start=1):
        step, step_errors = _normalize_step(item, index)
        errors.extend(step_errors)
        steps.append(step)

    orders = [step["step_order"] for step in steps if step.get("step_order")]
    if len(orders) != len(set(orders)):
        errors.append("step orders must be unique")

    steps.sort(key=lambda step: step.get("step_order") or 0)
    return steps, errors


def normalize_name(value: Any) -> tuple[str, list[str]]:
    name = value.strip() if isinstance(value, str) else ""
    if not name:
        return "", ["name is required"]
    if len(name) > MAX_NAME_LENGTH:
        return "", ["name is too long"]
    return name, []


def is_name_unique(model: type[Workflow] | type[WorkflowDefinition], name: str, exclude_id: int | None = None) -> bool:
    """Check whether the name is unique (case-insensitive) for the given model."""

    query = model.query.filter(func.lower(model.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return not db.session.query(query.exists()).scalar()


def _build_step(data: dict[str, Any]) -> WorkflowStep:
    return WorkflowStep(
        name=data["name"],
        description=data["description"],
        step_order=data["step_order"],
        assignee=data["assignee"],
        estimated_hours=data["estimated_hours"],
        kind=data["kind"],
        config_json=json.dumps(data["config"]),
    )


def create_definition(
    name: Any,
    steps: Any,
    created_by: str,
    *,
    description: Any = None,
    is_reusable: bool = True,
    commit: bool = True,
) -> WorkflowDefinition:
    """Validate and persist a workflow template."""

    normalized_name, errors = normalize_name(name)
    normalized_steps, step_errors = normalize_steps(steps)
    errors.extend(step_errors)
    summary = _normalize_optional_text(description, "description", errors)
    if errors:
        raise ValidationError(errors)
    if not is_name_unique(WorkflowDefinition, normalized_name):
        raise ValidationError([f"workflow definition {normalized_name} already exists"])

    definition = WorkflowDefinition(
        name=normalized_name,
        description=summary,
        is_reusable=bool(is_reusable),
        steps_json=json.dumps(normalized_steps),
        created_by=created_by,
    )
    db.session.add(definition)
    if commit:
        db.session.commit()
    return definition


def create_workflow(
    name: Any,
    steps: Any,
    created_by: str,
    *,
    description: Any = None,
    is_reusable: bool = False,
    definition_id: int | None = None,
    commit: bool = True,
) -> Workflow:
    """Validate and persist a workflow record together with its steps."""

    normalized_name, errors = normalize_name(name)
    normalized_steps, step_errors = normalize_steps(steps)
    errors.extend(step_errors)
    summary = _normalize_optional_text(description, "description", errors)
    if errors:
        raise ValidationError(errors)
    if not is_name_unique(Workflow, normalized_name):
        raise ValidationError([f"workflow {normalized_name} already exists"])

    workflow = Workflow(
        name=normalized_name,
        description=summary,
        is_reusable=bool(is_reusable),
        definition_id=definition_id,
        created_by=created_by,
    )
    workflow.steps = [_build_step(data) for data in normalized_steps]
    db.session.add(workflow)
    if commit:
        db.session.commit()
    return workflow


def create_workflow_from_definition(
    definition_id: int,
    name: Any,
    created_by: str,
    *,
    assignees: dict[int, str] | None = None,
) -> Workflow:
    """Materialise a workflow record from a template.

    ``assignees`` maps step orders to the user responsible for that step and
    overrides the template's assignee.
    """

    definition = get_definition(definition_id)
    templates = [dict(step) for step in definition.step_templates]
    for template in templates:
        override = (assignees or {}).get(template.get("step_order"))
        if override is not None:
            template["assignee"] = override
        template["order"] = template.pop("step_order", None)

    return create_workflow(
        name,
        templates,
        created_by,
        description=definition.description,
        is_reusable=definition.is_reusable,
        definition_id=definition.id,
    )
