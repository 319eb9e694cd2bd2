"""Advancement engine: moves a workflow instance from one step to the next.

Completing the current step, moving the pointer and creating the next
assignment happen in one transaction. The pointer update is a
compare-and-swap on ``(current_step_id, version)`` so that of two racing
completions of the same step exactly one wins; the other rolls back and
surfaces as :class:`StepMismatch`.
"""
from __future__ import annotations

import time
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .. import signals
from ..extensions import db
from ..models.assignment import StepAssignment
from ..models.instance import WorkflowInstance
from ..models.workflow import WorkflowStep
from . import assignments, definitions, instances
from .errors import (
    AssignmentNotFound,
    InvalidTransition,
    NotActive,
    PartialAdvancementFailure,
    StepMismatch,
    ValidationError,
)
from .events import record_event
from .steps import due_date_for


@dataclass(frozen=True)
class AdvancementResult:
    """Outcome of a successful advancement."""

    instance_id: int
    completed_step_id: int
    completed_assignment_id: int | None
    next_step_id: int | None
    next_assignment_id: int | None
    status: str
    unassigned: bool = False

    @property
    def finished(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> dict[str, object]:
        return {
            "instance_id": self.instance_id,
            "completed_step_id": self.completed_step_id,
            "completed_assignment_id": self.completed_assignment_id,
            "next_step_id": self.next_step_id,
            "next_assignment_id": self.next_assignment_id,
            "status": self.status,
            "unassigned": self.unassigned,
        }


@dataclass(frozen=True)
class _Transition:
    next_step: WorkflowStep | None
    next_assignment: StepAssignment | None
    unassigned: bool


def _move_pointer(
    instance: WorkflowInstance,
    completed_step: WorkflowStep,
    actor: str,
) -> _Transition:
    """Point the instance at the step after ``completed_step``.

    Runs inside the caller's transaction. Raises :class:`StepMismatch` when the
    compare-and-swap loses against a concurrent advancement.
    """

    next_step = definitions.get_next_step(instance.workflow_id, completed_step.step_order)
    expected_version = instance.version

    if next_step is None:
        swapped = instances.advance_current_step(
            instance.id,
            None,
            "completed",
            expected_step_id=completed_step.id,
            expected_version=expected_version,
        )
        if not swapped:
            raise StepMismatch(f"instance {instance.id} was advanced concurrently")
        record_event(
            "instance",
            f"instance {instance.id} completed after step {completed_step.name}",
            instance.id,
        )
        return _Transition(next_step=None, next_assignment=None, unassigned=False)

    unassigned = next_step.assignee is None
    swapped = instances.advance_current_step(
        instance.id,
        next_step.id,
        expected_step_id=completed_step.id,
        expected_version=expected_version,
        awaiting_assignment=unassigned,
    )
    if not swapped:
        raise StepMismatch(f"instance {instance.id} was advanced concurrently")

    next_assignment = None
    if unassigned:
        current_app.logger.warning(
            "Step %s of instance %s has no assignee and needs administrative assignment",
            next_step.id,
            instance.id,
        )
        record_event(
            "instance",
            f"instance {instance.id} advanced to step {next_step.name}; step is unassigned",
            instance.id,
        )
    else:
        next_assignment = assignments.create_assignment(
            instance.id,
            next_step.id,
            next_step.assignee,
            actor,
            due_date=due_date_for(next_step.config),
            commit=False,
        )
        record_event(
            "instance",
            f"instance {instance.id} advanced from {completed_step.name} to {next_step.name}",
            instance.id,
        )
    return _Transition(next_step=next_step, next_assignment=next_assignment, unassigned=unassigned)


def _apply_advancement(
    instance_id: int,
    completed_step_id: int,
    completed_by: str | None,
    notes: str | None,
    assignment_id: int | None,
) -> AdvancementResult:
    """Run one advancement attempt and commit it."""

    instance = instances.get_instance(instance_id)
    if not instance.is_active():
        raise NotActive(f"instance {instance_id} is {instance.status}")

    if instance.needs_repair:
        _repair(instance)
        db.session.commit()
        instance = instances.get_instance(instance_id)
        if not instance.is_active():
            raise NotActive(f"instance {instance_id} is {instance.status}")

    if instance.current_step_id != completed_step_id:
        raise StepMismatch(
            f"step {completed_step_id} is not the current step of instance {instance_id}"
        )

    completed_step = definitions.get_step(completed_step_id)

    if assignment_id is not None:
        assignment = assignments.get_assignment(assignment_id)
        if assignment.instance_id != instance_id or assignment.step_id != completed_step_id:
            raise AssignmentNotFound(assignment_id)
        if assignment.is_completed():
            raise StepMismatch(f"assignment {assignment_id} is already completed")
    else:
        assignment = assignments.find_live_assignment(instance_id, completed_step_id)
        if assignment is None:
            raise AssignmentNotFound(f"for step {completed_step_id} of instance {instance_id}")

    actor = completed_by or assignment.assigned_to
    try:
        assignments.update_status(assignment.id, "completed", notes, commit=False)
        transition = _move_pointer(instance, completed_step, actor)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return AdvancementResult(
        instance_id=instance_id,
        completed_step_id=completed_step_id,
        completed_assignment_id=assignment.id,
        next_step_id=transition.next_step.id if transition.next_step else None,
        next_assignment_id=transition.next_assignment.id if transition.next_assignment else None,
        status="completed" if transition.next_step is None else "active",
        unassigned=transition.unassigned,
    )


def _flag_needs_repair(instance_id: int) -> None:
    try:
        instance = db.session.get(WorkflowInstance, instance_id)
        if instance is not None:
            instance.needs_repair = True
            db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not flag instance %s for repair", instance_id)


def advance(
    instance_id: int,
    completed_step_id: int,
    *,
    completed_by: str | None = None,
    notes: str | None = None,
    assignment_id: int | None = None,
) -> AdvancementResult:
    """Advance an instance past ``completed_step_id``.

    Transient storage faults are retried up to ``ADVANCEMENT_MAX_RETRIES``
    times after the first attempt; when retries are exhausted the
    instance is flagged ``needs_repair`` and :class:`PartialAdvancementFailure`
    is raised.
    """

    max_retries = max(0, int(current_app.config.get("ADVANCEMENT_MAX_RETRIES", 3)))
    max_attempts = max_retries + 1
    retry_delay = float(current_app.config.get("ADVANCEMENT_RETRY_DELAY", 0.2))

    for attempt in range(1, max_attempts + 1):
        try:
            result = _apply_advancement(
                instance_id, completed_step_id, completed_by, notes, assignment_id
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            if attempt >= max_attempts:
                current_app.logger.exception(
                    "Advancement of instance %s failed after %s attempts", instance_id, attempt
                )
                _flag_needs_repair(instance_id)
                raise PartialAdvancementFailure(instance_id, attempt) from exc

            current_app.logger.warning(
                "Advancement attempt %s/%s for instance %s failed: %s",
                attempt,
                max_attempts,
                instance_id,
                exc,
            )
            time.sleep(retry_delay)
            continue

        current_app.logger.info(
            "Instance %s advanced past step %s (status=%s)",
            instance_id,
            completed_step_id,
            result.status,
        )
        return result

    raise PartialAdvancementFailure(instance_id, max_attempts)  # pragma: no cover


def complete_step(
    assignment_id: int,
    completed_by: str,
    notes: str | None = None,
) -> AdvancementResult:
    """Complete an assignment and advance its instance."""

    assignment = assignments.get_assignment(assignment_id)
    if assignment.is_completed():
        raise StepMismatch(f"assignment {assignment_id} is already completed")

    result = advance(
        assignment.instance_id,
        assignment.step_id,
        completed_by=completed_by,
        notes=notes,
        assignment_id=assignment_id,
    )

    app = current_app._get_current_object()
    signals.step_completed.send(app, result=result, completed_by=completed_by)
    if result.next_assignment_id is not None:
        signals.assignment_created.send(
            app, assignment=db.session.get(StepAssignment, result.next_assignment_id)
        )
    elif result.unassigned:
        signals.step_unassigned.send(
            app,
            instance=instances.get_instance(result.instance_id),
            step=definitions.get_step(result.next_step_id),
        )
    return result


def _repair(instance: WorkflowInstance) -> list[str]:
    """Detect and fix a half-applied advancement inside the current transaction."""

    fixes: list[str] = []
    if not instance.is_active() or instance.current_step_id is None:
        instance.needs_repair = False
        return fixes

    step = definitions.get_step(instance.current_step_id)
    live = assignments.find_live_assignment(instance.id, step.id)
    latest = assignments.find_latest_assignment(instance.id, step.id)

    if live is None and latest is not None and latest.is_completed():
        # The step was completed but the pointer never moved.
        transition = _move_pointer(instance, step, latest.assigned_to)
        target = transition.next_step.name if transition.next_step else "completion"
        fixes.append(f"moved pointer past completed step {step.name} to {target}")
        # The compare-and-swap bypassed the ORM; reload before touching the row again.
        db.session.expire(instance)
    elif live is None and latest is None:
        if step.assignee is not None:
            assignments.create_assignment(
                instance.id,
                step.id,
                step.assignee,
                instance.started_by,
                due_date=due_date_for(step.config),
                commit=False,
            )
            instance.awaiting_assignment = False
            fixes.append(f"created missing assignment for step {step.name}")
        elif not instance.awaiting_assignment:
            instance.awaiting_assignment = True
            fixes.append(f"flagged unassigned step {step.name} for assignment")
    instance.needs_repair = False

    for fix in fixes:
        current_app.logger.warning("Repaired instance %s: %s", instance.id, fix)
        record_event("instance", f"repaired instance {instance.id}: {fix}", instance.id)
    return fixes


def repair_instance(instance_id: int) -> list[str]:
    """Detect and repair inconsistencies of an instance; idempotent."""

    instance = instances.get_instance(instance_id)
    try:
        fixes = _repair(instance)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return fixes


def assign_step(
    instance_id: int,
    assigned_to: str,
    assigned_by: str,
    notes: str | None = None,
) -> StepAssignment:
    """Assign the current step of an instance that is awaiting assignment."""

    instance = instances.get_instance(instance_id)
    if not instance.is_active():
        raise NotActive(f"instance {instance_id} is {instance.status}")
    if instance.current_step_id is None:
        raise InvalidTransition(f"instance {instance_id} has no current step")
    if not assigned_to or len(assigned_to) > definitions.MAX_USER_ID_LENGTH:
        raise ValidationError(["assigned_to must be a user id"])

    if assignments.find_live_assignment(instance_id, instance.current_step_id) is not None:
        raise InvalidTransition(f"current step of instance {instance_id} is already assigned")

    step = definitions.get_step(instance.current_step_id)

    try:
        assignment = assignments.create_assignment(
            instance_id,
            instance.current_step_id,
            assigned_to,
            assigned_by,
            notes,
            due_date=due_date_for(step.config),
            commit=False,
        )
        instance.awaiting_assignment = False
        record_event(
            "assignment",
            f"step {instance.current_step_id} of instance {instance_id} assigned to "
            f"{assigned_to} by {assigned_by}",
            instance_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    signals.assignment_created.send(current_app._get_current_object(), assignment=assignment)
    return assignment
