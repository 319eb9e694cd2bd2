"""Seed the database with an example workflow definition and workflow."""
from __future__ import annotations

import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app import create_app
from backend.app.extensions import db
from backend.app.models.workflow import Workflow, WorkflowDefinition
from backend.app.workflow import definitions

SEED_USER = "seed"
EXAMPLE_DEFINITION_NAME = "Customer Onboarding"
EXAMPLE_WORKFLOW_NAME = "Customer Onboarding (Sales)"

EXAMPLE_STEPS = [
    {
        "name": "Collect customer details",
        "order": 1,
        "assignee": "sales-rep",
        "estimated_hours": 1,
        "kind": "task",
        "config": {
            "required_fields": ["customer_name", "contact_email"],
            "instructions": "Capture the signed order form.",
        },
    },
    {
        "name": "Credit check approval",
        "order": 2,
        "assignee": "finance-lead",
        "kind": "approval",
        "config": {"approvers_required": 1, "due_in_hours": 24},
    },
    {
        "name": "Provision account",
        "order": 3,
        "assignee": "ops-engineer",
        "estimated_hours": 2.5,
        "kind": "task",
    },
]


def _ensure_definition() -> bool:
    existing = WorkflowDefinition.query.filter_by(name=EXAMPLE_DEFINITION_NAME).first()
    if existing is not None:
        return False
    definitions.create_definition(
        EXAMPLE_DEFINITION_NAME,
        EXAMPLE_STEPS,
        SEED_USER,
        description="Reusable onboarding template",
        is_reusable=True,
        commit=False,
    )
    return True


def _ensure_workflow() -> bool:
    existing = Workflow.query.filter_by(name=EXAMPLE_WORKFLOW_NAME).first()
    if existing is not None:
        return False
    definition = WorkflowDefinition.query.filter_by(name=EXAMPLE_DEFINITION_NAME).one()
    definitions.create_workflow_from_definition(definition.id, EXAMPLE_WORKFLOW_NAME, SEED_USER)
    return True


def main() -> None:
    app = create_app()
    with app.app_context():
        created_definition = _ensure_definition()
        db.session.commit()
        created_workflow = _ensure_workflow()
        db.session.commit()

        print(
            "Seed completed",
            f"definitions created={int(created_definition)}",
            f"workflows created={int(created_workflow)}",
        )


if __name__ == "__main__":
    main()
