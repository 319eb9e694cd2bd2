"""API endpoints exposing workflow audit events."""

from __future__ import annotations

import json
from http import HTTPStatus

from flask import Blueprint, Response, jsonify, request

from ..models.logs import EVENT_SOURCES, WorkflowEvent
from .serializers import serialize_event

bp = Blueprint("logs", __name__)


def _filtered_query():
    source = request.args.get("source")
    query = WorkflowEvent.query
    if source:
        if source not in EVENT_SOURCES:
            return None
        query = query.filter_by(source=source)
    instance_id = request.args.get("instance_id", type=int)
    if instance_id is not None:
        query = query.filter_by(instance_id=instance_id)
    return query


@bp.get("/events")
def get_events() -> tuple[object, int]:
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 200))

    query = _filtered_query()
    if query is None:
        return jsonify({"error": "invalid source"}), HTTPStatus.BAD_REQUEST

    entries = query.order_by(WorkflowEvent.created_at.desc(), WorkflowEvent.id.desc()).limit(limit).all()
    return jsonify([serialize_event(entry) for entry in entries]), HTTPStatus.OK


@bp.get("/events/download")
def download_events() -> Response | tuple[object, int]:
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 1000))

    query = _filtered_query()
    if query is None:
        return jsonify({"error": "invalid source"}), HTTPStatus.BAD_REQUEST

    entries = query.order_by(WorkflowEvent.created_at.desc(), WorkflowEvent.id.desc()).limit(limit).all()
    lines = [json.dumps(serialize_event(entry)) for entry in reversed(entries)]
    response = Response("\n".join(lines), mimetype="application/x-ndjson")
    response.headers["Content-Disposition"] = "attachment; filename=workflow-events.ndjson"
    return response
