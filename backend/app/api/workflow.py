"""REST API endpoints for workflow definitions and workflow records."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from flask import Blueprint, g, jsonify, request

from ..models.workflow import Workflow, WorkflowDefinition
from ..utils.identity import require_user
from ..workflow import definitions, instances
from ..workflow.errors import ValidationError
from .serializers import (
    serialize_definition,
    serialize_instance,
    serialize_step,
    serialize_workflow,
)

bp = Blueprint("workflows", __name__)


def _normalize_flag(value: Any, default: bool) -> tuple[bool, list[str]]:
    if value is None:
        return default, []
    if not isinstance(value, bool):
        return default, ["is_reusable must be a boolean"]
    return value, []


def _normalize_assignees(value: Any) -> tuple[dict[int, str], list[str]]:
    """Validate ``{"<order>": "<user id>"}`` assignee overrides."""

    if value is None:
        return {}, []
    if not isinstance(value, dict):
        return {}, ["assignees must be an object"]

    assignees: dict[int, str] = {}
    errors: list[str] = []
    for key, user_id in value.items():
        try:
            order = int(key)
        except (TypeError, ValueError):
            errors.append(f"assignees key {key!r} must be a step order")
            continue
        if not isinstance(user_id, str) or not user_id.strip():
            errors.append(f"assignees[{key}] must be a user id")
            continue
        assignees[order] = user_id.strip()
    return assignees, errors


@bp.post("/definitions")
@require_user
def create_definition() -> tuple[object, int]:
    payload = request.get_json(silent=True, force=True) or {}
    is_reusable, errors = _normalize_flag(payload.get("is_reusable"), True)
    if errors:
        raise ValidationError(errors)

    definition = definitions.create_definition(
        payload.get("name"),
        payload.get("steps"),
        g.user_id,
        description=payload.get("description"),
        is_reusable=is_reusable,
    )
    return jsonify(serialize_definition(definition)), HTTPStatus.CREATED


@bp.get("/definitions")
def list_definitions() -> tuple[object, int]:
    query = WorkflowDefinition.query
    reusable = request.args.get("reusable")
    if reusable is not None:
        query = query.filter_by(is_reusable=reusable.lower() in {"1", "true", "yes"})
    items = query.order_by(WorkflowDefinition.created_at.desc()).all()
    return jsonify([serialize_definition(item) for item in items]), HTTPStatus.OK


@bp.get("/definitions/<int:definition_id>")
def get_definition(definition_id: int) -> tuple[object, int]:
    definition = definitions.get_definition(definition_id)
    return jsonify(serialize_definition(definition)), HTTPStatus.OK


@bp.post("/definitions/<int:definition_id>/workflows")
@require_user
def create_workflow_from_definition(definition_id: int) -> tuple[object, int]:
    payload = request.get_json(silent=True, force=True) or {}
    assignees, errors = _normalize_assignees(payload.get("assignees"))
    if errors:
        raise ValidationError(errors)

    workflow = definitions.create_workflow_from_definition(
        definition_id,
        payload.get("name"),
        g.user_id,
        assignees=assignees,
    )
    return jsonify(serialize_workflow(workflow)), HTTPStatus.CREATED


@bp.post("/workflows")
@require_user
def create_workflow() -> tuple[object, int]:
    payload = request.get_json(silent=True, force=True) or {}
    is_reusable, errors = _normalize_flag(payload.get("is_reusable"), False)
    if errors:
        raise ValidationError(errors)

    workflow = definitions.create_workflow(
        payload.get("name"),
        payload.get("steps"),
        g.user_id,
        description=payload.get("description"),
        is_reusable=is_reusable,
    )
    return jsonify(serialize_workflow(workflow)), HTTPStatus.CREATED


@bp.get("/workflows")
def list_workflows() -> tuple[object, int]:
    workflows = Workflow.query.order_by(Workflow.created_at.desc(), Workflow.id.desc()).all()
    return (
        jsonify([serialize_workflow(workflow, include_steps=False) for workflow in workflows]),
        HTTPStatus.OK,
    )


@bp.get("/workflows/<int:workflow_id>")
def get_workflow(workflow_id: int) -> tuple[object, int]:
    workflow = definitions.get_workflow(workflow_id)
    payload = serialize_workflow(workflow, include_steps=False)
    payload["steps"] = [serialize_step(step) for step in definitions.get_steps_ordered(workflow_id)]
    return jsonify(payload), HTTPStatus.OK


@bp.get("/workflows/<int:workflow_id>/active-instance")
def get_active_instance(workflow_id: int) -> tuple[object, int]:
    definitions.get_workflow(workflow_id)
    instance = instances.get_active_instance(workflow_id)
    if instance is None:
        return jsonify({"error": "workflow has no active instance"}), HTTPStatus.NOT_FOUND
    return jsonify(serialize_instance(instance)), HTTPStatus.OK

