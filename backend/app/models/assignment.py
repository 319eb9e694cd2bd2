"""Step assignment model definition."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db

ASSIGNMENT_STATUSES = ("pending", "in_progress", "completed", "skipped")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepAssignment(db.Model):
    """Work item binding a step of one instance to a responsible user."""

    __tablename__ = "workflow_step_assignments"
    __table_args__ = (db.Index("ix_assignment_instance_step", "instance_id", "step_id"),)

    id = db.Column(db.Integer, primary_key=True)
    # No foreign key: assignments may outlive their instance until reconciliation.
    instance_id = db.Column(db.Integer, nullable=False)
    step_id = db.Column(db.Integer, db.ForeignKey("workflow_steps.id"), nullable=False)
    assigned_to = db.Column(db.String(64), nullable=False, index=True)
    assigned_by = db.Column(db.String(64), nullable=False)
    status = db.Column(
        db.Enum(*ASSIGNMENT_STATUSES, name="step_assignment_status"),
        nullable=False,
        default="pending",
    )
    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    step = db.relationship("WorkflowStep")

    def is_completed(self) -> bool:
        return self.status == "completed"

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<StepAssignment {self.id} step={self.step_id} {self.status}>"
