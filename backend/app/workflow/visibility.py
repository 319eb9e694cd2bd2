"""Visibility filter: what each viewer sees of the assignment ledger.

An assignment is shown while it is the live work item of an active
instance, and forever once it is completed. Open assignments that lost
their instance or their step are orphans; they are removed by
:func:`reconcile_orphans`, an explicit audited job that list reads may run
before projecting.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models.assignment import StepAssignment
from ..models.instance import WorkflowInstance
from . import assignments
from .events import record_event


@dataclass(frozen=True)
class VisibleAssignment:
    """An assignment as presented to its viewer."""

    assignment: StepAssignment
    instance: WorkflowInstance | None
    live: bool
    stale: bool = False


@dataclass
class ReconciliationReport:
    deleted: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[int]]:
        return {"deleted": list(self.deleted), "failed": list(self.failed)}


def _load_instances(items: list[StepAssignment]) -> dict[int, WorkflowInstance]:
    instance_ids = {item.instance_id for item in items}
    if not instance_ids:
        return {}
    rows = WorkflowInstance.query.filter(WorkflowInstance.id.in_(instance_ids)).all()
    return {row.id: row for row in rows}


def is_live(assignment: StepAssignment, instance: WorkflowInstance | None) -> bool:
    return (
        instance is not None
        and instance.is_active()
        and instance.current_step_id == assignment.step_id
    )


def find_orphans(user_id: str | None = None) -> list[StepAssignment]:
    """Return open assignments that are no longer the live step of an active instance."""

    query = (
        StepAssignment.query.outerjoin(
            WorkflowInstance, WorkflowInstance.id == StepAssignment.instance_id
        )
        .filter(StepAssignment.status != "completed")
        .filter(
            or_(
                WorkflowInstance.id.is_(None),
                WorkflowInstance.status != "active",
                WorkflowInstance.current_step_id.is_(None),
                WorkflowInstance.current_step_id != StepAssignment.step_id,
            )
        )
    )
    if user_id is not None:
        query = query.filter(StepAssignment.assigned_to == user_id)
    return query.order_by(StepAssignment.id.asc()).all()


def reconcile_orphans(user_id: str | None = None) -> ReconciliationReport:
    """Delete orphaned assignments, one transaction per assignment.

    Failures are logged and skipped; the assignment stays in place and is
    reported as failed. Candidates that were completed or became live again
    before their delete ran are kept and reported in neither list.
    """

    report = ReconciliationReport()
    candidates = [
        (
            orphan.id,
            orphan.instance_id,
            f"deleted orphaned assignment {orphan.id} (step {orphan.step_id}, "
            f"instance {orphan.instance_id}, assigned to {orphan.assigned_to}, "
            f"status {orphan.status})",
        )
        for orphan in find_orphans(user_id)
    ]
    for orphan_id, instance_id, message in candidates:
        try:
            deleted = assignments.delete_orphan(orphan_id)
            if deleted:
                record_event("reconcile", message, instance_id)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Failed to delete orphaned assignment %s", orphan_id)
            report.failed.append(orphan_id)
            continue
        if deleted:
            report.deleted.append(orphan_id)
        else:
            current_app.logger.info("Assignment %s is no longer orphaned; kept", orphan_id)

    if report.deleted or report.failed:
        current_app.logger.info(
            "Reconciliation removed %s orphaned assignments (%s failed)",
            len(report.deleted),
            len(report.failed),
        )
    return report


def list_visible_assignments(
    user_id: str,
    *,
    limit: int | None = None,
    reconcile: bool | None = None,
) -> list[VisibleAssignment]:
    """Project the user's assignment feed into what the user should see."""

    if reconcile is None:
        reconcile = bool(current_app.config.get("RECONCILE_BEFORE_READ", True))

    failed: set[int] = set()
    if reconcile:
        failed = set(reconcile_orphans(user_id).failed)

    feed = assignments.list_for_user(user_id)
    owners = _load_instances(feed)

    visible: list[VisibleAssignment] = []
    for item in feed:
        instance = owners.get(item.instance_id)
        live = is_live(item, instance)
        if live or item.is_completed():
            visible.append(VisibleAssignment(assignment=item, instance=instance, live=live))
        elif item.id in failed:
            # Deletion failed; shown as stale until a later pass removes it.
            visible.append(
                VisibleAssignment(assignment=item, instance=instance, live=False, stale=True)
            )

    if limit is not None:
        visible = visible[:limit]
    return visible
