"""Assignment ledger: CRUD over step assignments."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import joinedload
from sqlalchemy.orm.util import identity_key

from ..extensions import db
from ..models.assignment import ASSIGNMENT_STATUSES, StepAssignment
from ..models.instance import WorkflowInstance
from ..models.workflow import WorkflowStep
from .errors import AssignmentNotFound, InvalidTransition, ValidationError


def get_assignment(assignment_id: int) -> StepAssignment:
    assignment = db.session.get(StepAssignment, assignment_id)
    if assignment is None:
        raise AssignmentNotFound(assignment_id)
    return assignment


def create_assignment(
    instance_id: int,
    step_id: int,
    assigned_to: str,
    assigned_by: str,
    notes: str | None = None,
    *,
    due_date: datetime | None = None,
    commit: bool = True,
) -> StepAssignment:
    """Insert a pending assignment for a step of an instance."""

    assignment = StepAssignment(
        instance_id=instance_id,
        step_id=step_id,
        assigned_to=assigned_to,
        assigned_by=assigned_by,
        status="pending",
        due_date=due_date,
        notes=notes,
    )
    db.session.add(assignment)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return assignment


def update_status(
    assignment_id: int,
    status: str,
    notes: str | None = None,
    *,
    commit: bool = True,
) -> StepAssignment:
    """Change the status of an assignment.

    Completed assignments are frozen; ``completed_at`` is stamped when the new
    status is ``completed``.
    """

    if status not in ASSIGNMENT_STATUSES:
        raise ValidationError([f"status must be one of {', '.join(ASSIGNMENT_STATUSES)}"])

    assignment = get_assignment(assignment_id)
    if assignment.is_completed():
        raise InvalidTransition(f"assignment {assignment_id} is already completed")

    assignment.status = status
    if status == "completed":
        assignment.completed_at = datetime.now(timezone.utc)
    if notes is not None:
        assignment.notes = notes

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return assignment


def _with_step(query):
    return query.options(joinedload(StepAssignment.step).joinedload(WorkflowStep.workflow))


def _newest_first(query):
    return query.order_by(StepAssignment.created_at.desc(), StepAssignment.id.desc())


def list_for_user(user_id: str) -> list[StepAssignment]:
    """Return every assignment ever given to ``user_id``, newest first."""

    return _newest_first(_with_step(StepAssignment.query.filter_by(assigned_to=user_id))).all()


def list_for_instance(instance_id: int) -> list[StepAssignment]:
    return _newest_first(_with_step(StepAssignment.query.filter_by(instance_id=instance_id))).all()


def list_assignments(
    *,
    status: str | None = None,
    instance_id: int | None = None,
    assigned_to: str | None = None,
    limit: int | None = None,
) -> list[StepAssignment]:
    query = _with_step(StepAssignment.query)
    if status is not None:
        query = query.filter_by(status=status)
    if instance_id is not None:
        query = query.filter_by(instance_id=instance_id)
    if assigned_to is not None:
        query = query.filter_by(assigned_to=assigned_to)
    query = _newest_first(query)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def find_live_assignment(instance_id: int, step_id: int) -> StepAssignment | None:
    """Return the newest open assignment for a step of an instance."""

    return (
        _newest_first(
            StepAssignment.query.filter_by(instance_id=instance_id, step_id=step_id).filter(
                StepAssignment.status != "completed"
            )
        )
        .first()
    )


def find_latest_assignment(instance_id: int, step_id: int) -> StepAssignment | None:
    return _newest_first(
        StepAssignment.query.filter_by(instance_id=instance_id, step_id=step_id)
    ).first()


def delete_orphan(assignment_id: int) -> bool:
    """Delete an open assignment unless it became live or completed meanwhile.

    The orphan check is repeated inside the DELETE statement, so an assignment
    completed or re-pointed by a concurrent advancement is kept. Returns
    whether the row was deleted. The caller commits.
    """

    live_owner = (
        select(WorkflowInstance.id)
        .where(
            WorkflowInstance.id == StepAssignment.instance_id,
            WorkflowInstance.status == "active",
            WorkflowInstance.current_step_id == StepAssignment.step_id,
        )
        .correlate(StepAssignment)
        .exists()
    )
    result = db.session.execute(
        delete(StepAssignment)
        .where(
            StepAssignment.id == assignment_id,
            StepAssignment.status != "completed",
            ~live_owner,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    deleted = db.session.identity_map.get(identity_key(StepAssignment, assignment_id))
    if deleted is not None:
        db.session.expunge(deleted)
    return True
