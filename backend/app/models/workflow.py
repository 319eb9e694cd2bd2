"""Workflow definition, workflow record and step models."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from ..extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowDefinition(db.Model):
    """Reusable workflow template holding an ordered list of step templates."""

    __tablename__ = "workflow_definitions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_reusable = db.Column(db.Boolean, nullable=False, default=True)
    steps_json = db.Column(db.Text, nullable=False, default="[]")
    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    @property
    def step_templates(self) -> list[dict[str, Any]]:
        try:
            steps = json.loads(self.steps_json or "[]")
        except (TypeError, ValueError):
            return []
        return steps if isinstance(steps, list) else []

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<WorkflowDefinition {self.name!r}>"


class Workflow(db.Model):
    """A concrete, nameable workflow with ordered steps."""

    __tablename__ = "workflows"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_reusable = db.Column(db.Boolean, nullable=False, default=False)
    definition_id = db.Column(
        db.Integer, db.ForeignKey("workflow_definitions.id"), nullable=True
    )
    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    steps = db.relationship(
        "WorkflowStep",
        back_populates="workflow",
        order_by="WorkflowStep.step_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<Workflow {self.name!r}>"


class WorkflowStep(db.Model):
    """One ordered unit of work within a workflow."""

    __tablename__ = "workflow_steps"
    __table_args__ = (
        db.UniqueConstraint("workflow_id", "step_order", name="uq_workflow_step_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    step_order = db.Column(db.Integer, nullable=False)
    assignee = db.Column(db.String(64), nullable=True)
    estimated_hours = db.Column(db.Float, nullable=True)
    kind = db.Column(db.String(32), nullable=False, default="task")
    config_json = db.Column(db.Text, nullable=False, default="{}")
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    workflow = db.relationship("Workflow", back_populates="steps")

    @property
    def config(self) -> dict[str, Any]:
        try:
            config = json.loads(self.config_json or "{}")
        except (TypeError, ValueError):
            return {}
        return config if isinstance(config, dict) else {}

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<WorkflowStep {self.workflow_id}:{self.step_order} {self.name!r}>"
