"""Workflow instance model definition."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db

INSTANCE_STATUSES = ("active", "completed", "cancelled", "paused")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowInstance(db.Model):
    """One running execution of a workflow record."""

    __tablename__ = "workflow_instances"

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id"), nullable=False, index=True
    )
    started_by = db.Column(db.String(64), nullable=False)
    current_step_id = db.Column(
        db.Integer, db.ForeignKey("workflow_steps.id"), nullable=True
    )
    status = db.Column(
        db.Enum(*INSTANCE_STATUSES, name="workflow_instance_status"),
        nullable=False,
        default="active",
    )
    start_data = db.Column(db.JSON, nullable=True)
    # Bumped on every pointer update; the advancement compare-and-swap keys on it.
    version = db.Column(db.Integer, nullable=False, default=1)
    awaiting_assignment = db.Column(db.Boolean, nullable=False, default=False)
    needs_repair = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    workflow = db.relationship("Workflow")
    current_step = db.relationship("WorkflowStep")

    def is_active(self) -> bool:
        """Return whether the instance can still be advanced."""

        return self.status == "active"

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<WorkflowInstance {self.id} {self.status}>"
