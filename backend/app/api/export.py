"""API endpoints for exporting and importing workflow configuration snapshots."""
from __future__ import annotations

import json
from collections.abc import Iterable
from http import HTTPStatus
from typing import Any

from flask import Blueprint, g, jsonify, request
from sqlalchemy import func

from ..extensions import db
from ..models.instance import WorkflowInstance
from ..models.workflow import Workflow, WorkflowDefinition, WorkflowStep
from ..utils.identity import require_user
from ..workflow.definitions import normalize_name, normalize_steps

bp = Blueprint("export", __name__)

SNAPSHOT_VERSION = 1


def _step_payload(step: WorkflowStep) -> dict[str, Any]:
    return {
        "name": step.name,
        "description": step.description,
        "order": step.step_order,
        "assignee": step.assignee,
        "estimated_hours": step.estimated_hours,
        "kind": step.kind,
        "config": step.config,
    }


def _template_payload(template: dict[str, Any]) -> dict[str, Any]:
    payload = {key: value for key, value in template.items() if key != "step_order"}
    payload["order"] = template.get("step_order")
    return payload


def _serialize_definitions(items: Iterable[WorkflowDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "name": item.name,
            "description": item.description,
            "is_reusable": item.is_reusable,
            "steps": [_template_payload(template) for template in item.step_templates],
        }
        for item in items
    ]


def _serialize_workflows(items: Iterable[Workflow]) -> list[dict[str, Any]]:
    return [
        {
            "name": item.name,
            "description": item.description,
            "is_reusable": item.is_reusable,
            "steps": [_step_payload(step) for step in item.steps],
        }
        for item in items
    ]


@bp.get("/export")
def export_configuration() -> tuple[object, int]:
    """Return a snapshot of all workflow definitions and workflows."""

    definitions = WorkflowDefinition.query.order_by(WorkflowDefinition.name.asc()).all()
    workflows = Workflow.query.order_by(Workflow.name.asc()).all()
    payload = {
        "version": SNAPSHOT_VERSION,
        "definitions": _serialize_definitions(definitions),
        "workflows": _serialize_workflows(workflows),
    }
    return jsonify(payload), HTTPStatus.OK


def _validate_items(label: str, payload: list[Any]) -> tuple[list[dict[str, Any]], list[str]]:
    """Validate and normalise one section of an import payload."""

    normalised: list[dict[str, Any]] = []
    for index, item in enumerate(payload, start=1):
        if not isinstance(item, dict):
            return normalised, [f"{label}[{index}] must be an object"]

        name, errors = normalize_name(item.get("name"))
        steps, step_errors = normalize_steps(item.get("steps"))
        errors.extend(step_errors)
        is_reusable = item.get("is_reusable", label == "definitions")
        if not isinstance(is_reusable, bool):
            errors.append("is_reusable must be a boolean")
        description = item.get("description")
        if description is not None and not isinstance(description, str):
            errors.append("description must be a string")
        if errors:
            return normalised, [f"{label}[{index}]: {message}" for message in errors]

        normalised.append(
            {
                "name": name,
                "description": description,
                "is_reusable": is_reusable,
                "steps": steps,
            }
        )
    return normalised, []


def _find_by_name(model: type[Workflow] | type[WorkflowDefinition], name: str):
    return model.query.filter(func.lower(model.name) == name.lower()).first()


def _build_steps(steps: list[dict[str, Any]]) -> list[WorkflowStep]:
    return [
        WorkflowStep(
            name=data["name"],
            description=data["description"],
            step_order=data["step_order"],
            assignee=data["assignee"],
            estimated_hours=data["estimated_hours"],
            kind=data["kind"],
            config_json=json.dumps(data["config"]),
        )
        for data in steps
    ]


@bp.post("/import")
@require_user
def import_configuration() -> tuple[object, int]:
    """Import workflow definitions and workflows from a snapshot.

    Existing workflows are only overwritten with ``?overwrite=true`` and only
    while no instance has been started from them.
    """

    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "payload must be an object"}), HTTPStatus.BAD_REQUEST

    overwrite_flag = request.args.get("overwrite", "false").lower()
    overwrite = overwrite_flag in {"1", "true", "yes"}

    definition_items = payload.get("definitions", [])
    workflow_items = payload.get("workflows", [])

    if not isinstance(definition_items, list):
        return jsonify({"error": "definitions must be a list"}), HTTPStatus.BAD_REQUEST
    if not isinstance(workflow_items, list):
        return jsonify({"error": "workflows must be a list"}), HTTPStatus.BAD_REQUEST

    definitions, errors = _validate_items("definitions", definition_items)
    if errors:
        return jsonify({"errors": errors}), HTTPStatus.BAD_REQUEST

    workflows, errors = _validate_items("workflows", workflow_items)
    if errors:
        return jsonify({"errors": errors}), HTTPStatus.BAD_REQUEST

    created = 0
    updated = 0

    for data in definitions:
        existing = _find_by_name(WorkflowDefinition, data["name"])
        if existing is not None:
            if not overwrite:
                db.session.rollback()
                return (
                    jsonify({"error": f"workflow definition {data['name']} already exists"}),
                    HTTPStatus.CONFLICT,
                )
            existing.description = data["description"]
            existing.is_reusable = data["is_reusable"]
            existing.steps_json = json.dumps(data["steps"])
            updated += 1
        else:
            db.session.add(
                WorkflowDefinition(
                    name=data["name"],
                    description=data["description"],
                    is_reusable=data["is_reusable"],
                    steps_json=json.dumps(data["steps"]),
                    created_by=g.user_id,
                )
            )
            created += 1

    for data in workflows:
        existing = _find_by_name(Workflow, data["name"])
        if existing is not None:
            if not overwrite:
                db.session.rollback()
                return (
                    jsonify({"error": f"workflow {data['name']} already exists"}),
                    HTTPStatus.CONFLICT,
                )
            started = db.session.query(
                WorkflowInstance.query.filter_by(workflow_id=existing.id).exists()
            ).scalar()
            if started:
                db.session.rollback()
                return (
                    jsonify({"error": f"workflow {data['name']} has instances and cannot be replaced"}),
                    HTTPStatus.CONFLICT,
                )
            existing.description = data["description"]
            existing.is_reusable = data["is_reusable"]
            existing.steps = []
            db.session.flush()
            existing.steps = _build_steps(data["steps"])
            updated += 1
        else:
            workflow = Workflow(
                name=data["name"],
                description=data["description"],
                is_reusable=data["is_reusable"],
                created_by=g.user_id,
            )
            workflow.steps = _build_steps(data["steps"])
            db.session.add(workflow)
            created += 1

    db.session.commit()

    return jsonify({"created": created, "updated": updated}), HTTPStatus.OK
