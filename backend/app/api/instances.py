"""REST API endpoints for starting and inspecting workflow instances."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, g, jsonify, request

from ..utils.identity import require_user
from ..workflow import assignments, engine, instances
from ..workflow.errors import ValidationError
from .serializers import serialize_assignment, serialize_instance

bp = Blueprint("instances", __name__)


@bp.post("/workflows/<int:workflow_id>/instances")
@require_user
def start_workflow(workflow_id: int) -> tuple[object, int]:
    payload = request.get_json(silent=True, force=True) or {}
    instance = instances.start(workflow_id, g.user_id, payload.get("start_data"))
    return jsonify(serialize_instance(instance)), HTTPStatus.CREATED


@bp.get("/instances")
def list_instances() -> tuple[object, int]:
    items = instances.list_instances(
        workflow_id=request.args.get("workflow_id", type=int),
        status=request.args.get("status") or None,
        started_by=request.args.get("started_by") or None,
    )
    return jsonify([serialize_instance(item) for item in items]), HTTPStatus.OK


@bp.get("/instances/<int:instance_id>")
def get_instance(instance_id: int) -> tuple[object, int]:
    instance = instances.get_instance(instance_id)
    if instance.needs_repair:
        fixes = engine.repair_instance(instance_id)
        if fixes:
            current_app.logger.info("Instance %s repaired on read: %s", instance_id, fixes)
        instance = instances.get_instance(instance_id)
    return jsonify(serialize_instance(instance)), HTTPStatus.OK


@bp.get("/instances/<int:instance_id>/assignments")
def list_instance_assignments(instance_id: int) -> tuple[object, int]:
    instances.get_instance(instance_id)
    items = assignments.list_for_instance(instance_id)
    return jsonify([serialize_assignment(item) for item in items]), HTTPStatus.OK


@bp.post("/instances/<int:instance_id>/assign")
@require_user
def assign_current_step(instance_id: int) -> tuple[object, int]:
    payload = request.get_json(silent=True, force=True) or {}
    assigned_to = payload.get("assigned_to")
    notes = payload.get("notes")
    if not isinstance(assigned_to, str) or not assigned_to.strip():
        raise ValidationError(["assigned_to is required"])
    if notes is not None and not isinstance(notes, str):
        raise ValidationError(["notes must be a string"])

    assignment = engine.assign_step(instance_id, assigned_to.strip(), g.user_id, notes)
    return jsonify(serialize_assignment(assignment)), HTTPStatus.CREATED


@bp.post("/instances/<int:instance_id>/repair")
@require_user
def repair_instance(instance_id: int) -> tuple[object, int]:
    fixes = engine.repair_instance(instance_id)
    instance = instances.get_instance(instance_id)
    return jsonify({"fixes": fixes, "instance": serialize_instance(instance)}), HTTPStatus.OK
