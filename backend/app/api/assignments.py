"""REST API endpoints for step assignments and the per-user work feed."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from flask import Blueprint, g, jsonify, request

from ..extensions import limiter
from ..models.assignment import ASSIGNMENT_STATUSES
from ..utils.identity import require_user
from ..workflow import assignments, engine, visibility
from ..workflow.errors import ValidationError
from .serializers import serialize_assignment, serialize_visible

bp = Blueprint("assignments", __name__)

MAX_NOTES_LENGTH = 10_000


def _normalize_notes(value: Any) -> tuple[str | None, list[str]]:
    if value is None:
        return None, []
    if not isinstance(value, str):
        return None, ["notes must be a string"]
    if len(value) > MAX_NOTES_LENGTH:
        return None, ["notes is too long"]
    return value, []


def _parse_bool_arg(name: str) -> bool | None:
    value = request.args.get(name)
    if value is None:
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


@bp.get("/users/<string:user_id>/assignments")
def list_my_assignments(user_id: str) -> tuple[object, int]:
    limit = request.args.get("limit", type=int)
    if limit is not None and limit < 1:
        return jsonify({"error": "limit must be positive"}), HTTPStatus.BAD_REQUEST

    items = visibility.list_visible_assignments(
        user_id, limit=limit, reconcile=_parse_bool_arg("reconcile")
    )
    return jsonify([serialize_visible(item) for item in items]), HTTPStatus.OK


@bp.get("/assignments")
def list_assignments() -> tuple[object, int]:
    status = request.args.get("status") or None
    if status is not None and status not in ASSIGNMENT_STATUSES:
        return jsonify({"error": "invalid status"}), HTTPStatus.BAD_REQUEST

    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))
    items = assignments.list_assignments(
        status=status,
        instance_id=request.args.get("instance_id", type=int),
        assigned_to=request.args.get("assigned_to") or None,
        limit=limit,
    )
    return jsonify([serialize_assignment(item) for item in items]), HTTPStatus.OK


@bp.get("/assignments/<int:assignment_id>")
def get_assignment(assignment_id: int) -> tuple[object, int]:
    return jsonify(serialize_assignment(assignments.get_assignment(assignment_id))), HTTPStatus.OK


@bp.patch("/assignments/<int:assignment_id>")
@require_user
def update_assignment(assignment_id: int) -> tuple[object, int]:
    payload = request.get_json(silent=True, force=True) or {}
    status = payload.get("status")
    notes, errors = _normalize_notes(payload.get("notes"))
    if not isinstance(status, str) or status not in ASSIGNMENT_STATUSES:
        errors.append(f"status must be one of {', '.join(ASSIGNMENT_STATUSES)}")
    if errors:
        raise ValidationError(errors)

    if status == "completed":
        result = engine.complete_step(assignment_id, g.user_id, notes)
        return jsonify({"status": "ok", "advancement": result.to_dict()}), HTTPStatus.OK

    assignment = assignments.update_status(assignment_id, status, notes)
    return jsonify(serialize_assignment(assignment)), HTTPStatus.OK


@bp.post("/assignments/<int:assignment_id>/complete")
@require_user
def complete_assignment(assignment_id: int) -> tuple[object, int]:
    payload = request.get_json(silent=True, force=True) or {}
    notes, errors = _normalize_notes(payload.get("notes"))
    if errors:
        raise ValidationError(errors)

    result = engine.complete_step(assignment_id, g.user_id, notes)
    return jsonify({"status": "ok", "advancement": result.to_dict()}), HTTPStatus.OK


@bp.post("/reconcile")
@require_user
@limiter.limit("10 per minute")
def reconcile() -> tuple[object, int]:
    user_id = request.args.get("user_id") or None
    report = visibility.reconcile_orphans(user_id)
    return jsonify(report.to_dict()), HTTPStatus.OK
