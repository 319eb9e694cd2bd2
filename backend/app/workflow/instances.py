"""Instance tracker: creates workflow instances and owns the current-step pointer."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from flask import current_app
from sqlalchemy import update

from .. import signals
from ..extensions import db
from ..models.instance import INSTANCE_STATUSES, WorkflowInstance
from . import assignments, definitions
from .errors import InstanceNotFound, ValidationError, WorkflowAlreadyStarted
from .events import record_event
from .steps import TaskConfig, due_date_for


def get_instance(instance_id: int) -> WorkflowInstance:
    instance = db.session.get(WorkflowInstance, instance_id)
    if instance is None:
        raise InstanceNotFound(instance_id)
    return instance


def get_active_instance(workflow_id: int) -> WorkflowInstance | None:
    """Return the most recently started active instance of a workflow.

    Several active instances may exist for a reusable workflow; callers that
    need a specific execution must look it up by instance id.
    """

    return (
        WorkflowInstance.query.filter_by(workflow_id=workflow_id, status="active")
        .order_by(WorkflowInstance.created_at.desc(), WorkflowInstance.id.desc())
        .first()
    )


def list_instances(
    *,
    workflow_id: int | None = None,
    status: str | None = None,
    started_by: str | None = None,
) -> list[WorkflowInstance]:
    query = WorkflowInstance.query
    if workflow_id is not None:
        query = query.filter_by(workflow_id=workflow_id)
    if status is not None:
        if status not in INSTANCE_STATUSES:
            raise ValidationError([f"status must be one of {', '.join(INSTANCE_STATUSES)}"])
        query = query.filter_by(status=status)
    if started_by is not None:
        query = query.filter_by(started_by=started_by)
    return query.order_by(WorkflowInstance.created_at.desc(), WorkflowInstance.id.desc()).all()


def _normalize_start_data(value: Any, required_fields: list[str]) -> tuple[dict[str, Any], list[str]]:
    if value is None:
        value = {}
    if not isinstance(value, dict):
        return {}, ["start_data must be an object"]

    errors: list[str] = []
    try:
        encoded = json.dumps(value)
    except (TypeError, ValueError):
        return {}, ["start_data must be serialisable"]

    max_bytes = int(current_app.config.get("MAX_START_DATA_BYTES", 100_000))
    if len(encoded.encode("utf-8")) > max_bytes:
        errors.append("start_data exceeds the maximum size")

    missing = [
        name
        for name in required_fields
        if value.get(name) is None or (isinstance(value.get(name), str) and not value[name].strip())
    ]
    if missing:
        errors.append(f"start_data is missing required fields: {', '.join(missing)}")

    return value, errors


def start(workflow_id: int, started_by: str, start_data: Any = None) -> WorkflowInstance:
    """Start a workflow and create the assignment for its first step.

    The instance and the first assignment are committed in one transaction.
    """

    workflow = definitions.get_workflow(workflow_id)
    first_step = definitions.get_first_step(workflow_id)

    if not workflow.is_reusable:
        already_started = db.session.query(
            WorkflowInstance.query.filter_by(workflow_id=workflow_id).exists()
        ).scalar()
        if already_started:
            raise WorkflowAlreadyStarted(f"workflow {workflow_id} has already been started")

    config = first_step.config
    required_fields = config.get("required_fields", []) if first_step.kind == TaskConfig.kind else []
    payload, errors = _normalize_start_data(start_data, required_fields)
    if errors:
        raise ValidationError(errors)

    instance = WorkflowInstance(
        workflow_id=workflow_id,
        started_by=started_by,
        current_step_id=first_step.id,
        status="active",
        start_data=payload,
        version=1,
        awaiting_assignment=first_step.assignee is None,
    )
    try:
        db.session.add(instance)
        db.session.flush()

        first_assignment = None
        if first_step.assignee is not None:
            first_assignment = assignments.create_assignment(
                instance.id,
                first_step.id,
                first_step.assignee,
                started_by,
                due_date=due_date_for(config),
                commit=False,
            )
            record_event(
                "instance",
                f"instance {instance.id} of workflow {workflow.name} started by {started_by}",
                instance.id,
            )
        else:
            current_app.logger.warning(
                "First step %s of workflow %s has no assignee; instance %s awaits assignment",
                first_step.id,
                workflow_id,
                instance.id,
            )
            record_event(
                "instance",
                f"instance {instance.id} of workflow {workflow.name} started by {started_by}; "
                f"step {first_step.name} is unassigned",
                instance.id,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    signals.instance_started.send(current_app._get_current_object(), instance=instance)
    if first_assignment is not None:
        signals.assignment_created.send(
            current_app._get_current_object(), assignment=first_assignment
        )
    else:
        signals.step_unassigned.send(
            current_app._get_current_object(), instance=instance, step=first_step
        )
    return instance


def advance_current_step(
    instance_id: int,
    new_step_id: int | None,
    new_status: str | None = None,
    *,
    expected_step_id: int | None,
    expected_version: int,
    awaiting_assignment: bool = False,
) -> bool:
    """Compare-and-swap the current-step pointer of an active instance.

    The update only applies while the instance is still active, still points
    at ``expected_step_id`` and still carries ``expected_version``. Returns
    whether the row was updated. The caller owns the transaction.
    """

    now = datetime.now(timezone.utc)
    values: dict[str, Any] = {
        "current_step_id": new_step_id,
        "version": WorkflowInstance.version + 1,
        "awaiting_assignment": awaiting_assignment,
        "updated_at": now,
    }
    if new_status is not None:
        if new_status not in INSTANCE_STATUSES:
            raise ValidationError([f"status must be one of {', '.join(INSTANCE_STATUSES)}"])
        values["status"] = new_status
        if new_status == "completed":
            values["completed_at"] = now

    if expected_step_id is None:
        step_guard = WorkflowInstance.current_step_id.is_(None)
    else:
        step_guard = WorkflowInstance.current_step_id == expected_step_id

    result = db.session.execute(
        update(WorkflowInstance)
        .where(
            WorkflowInstance.id == instance_id,
            WorkflowInstance.status == "active",
            WorkflowInstance.version == expected_version,
            step_guard,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
