"""Translate orchestration errors into JSON responses."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..workflow.errors import (
    ConcurrencyArtifact,
    InvalidTransition,
    NoStepsDefined,
    NotFound,
    PartialAdvancementFailure,
    ValidationError,
    WorkflowAlreadyStarted,
)

bp = Blueprint("errors", __name__)


@bp.app_errorhandler(ValidationError)
def handle_validation_error(exc: ValidationError) -> tuple[object, int]:
    return jsonify({"errors": exc.errors}), HTTPStatus.BAD_REQUEST


@bp.app_errorhandler(NotFound)
def handle_not_found(exc: NotFound) -> tuple[object, int]:
    return jsonify({"error": str(exc)}), HTTPStatus.NOT_FOUND


@bp.app_errorhandler(NoStepsDefined)
def handle_no_steps(exc: NoStepsDefined) -> tuple[object, int]:
    return jsonify({"error": str(exc)}), HTTPStatus.UNPROCESSABLE_ENTITY


@bp.app_errorhandler(InvalidTransition)
@bp.app_errorhandler(WorkflowAlreadyStarted)
def handle_conflict(exc: Exception) -> tuple[object, int]:
    return jsonify({"error": str(exc)}), HTTPStatus.CONFLICT


@bp.app_errorhandler(ConcurrencyArtifact)
def handle_concurrency_artifact(exc: ConcurrencyArtifact) -> tuple[object, int]:
    # Duplicate or stale completion signal, answered as a no-op.
    current_app.logger.warning("Ignored stale completion signal: %s", exc)
    return jsonify({"status": "noop", "warning": str(exc)}), HTTPStatus.OK


@bp.app_errorhandler(PartialAdvancementFailure)
def handle_partial_failure(exc: PartialAdvancementFailure) -> tuple[object, int]:
    return (
        jsonify({"error": str(exc), "instance_id": exc.instance_id, "retry": True}),
        HTTPStatus.SERVICE_UNAVAILABLE,
    )


@bp.app_errorhandler(SQLAlchemyError)
def handle_storage_error(exc: SQLAlchemyError) -> tuple[object, int]:
    db.session.rollback()
    current_app.logger.exception("Storage failure while handling request")
    return jsonify({"error": "storage unavailable", "retry": True}), HTTPStatus.SERVICE_UNAVAILABLE
