"""Workflow audit event model definition."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db

EVENT_SOURCES = ("instance", "assignment", "reconcile")


class WorkflowEvent(db.Model):
    """Audit trail entry for instance, assignment and reconciliation activity."""

    __tablename__ = "workflow_events"

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(
        db.Enum(*EVENT_SOURCES, name="workflow_event_source"), nullable=False
    )
    instance_id = db.Column(db.Integer, nullable=True, index=True)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(
        db.DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<WorkflowEvent {self.id} from {self.source}>"
