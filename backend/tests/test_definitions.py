"""Tests for the definition store lookups and validation."""

from __future__ import annotations

import pytest

from backend.app.extensions import db
from backend.app.models.workflow import Workflow, WorkflowDefinition
from backend.app.workflow import definitions
from backend.app.workflow.errors import (
    DefinitionNotFound,
    NoStepsDefined,
    StepNotFound,
    ValidationError,
    WorkflowNotFound,
)


def test_first_and_next_step_follow_sparse_orders(make_workflow):
    workflow = make_workflow(["a", "b", "c"], orders=[10, 20, 30])
    first = definitions.get_first_step(workflow.id)

    assert first.step_order == 10
    assert definitions.get_next_step(workflow.id, 10).step_order == 20
    assert definitions.get_next_step(workflow.id, 15).step_order == 20
    assert definitions.get_next_step(workflow.id, 30) is None


def test_steps_are_ordered_regardless_of_submission_order(app):
    workflow = definitions.create_workflow(
        "Shuffled",
        [{"name": "C", "order": 3}, {"name": "A", "order": 1}, {"name": "B", "order": 2}],
        "author",
    )

    assert [step.name for step in definitions.get_steps_ordered(workflow.id)] == ["A", "B", "C"]


def test_first_step_requires_steps(app):
    workflow = Workflow(name="Stepless", created_by="author")
    db.session.add(workflow)
    db.session.commit()

    with pytest.raises(NoStepsDefined):
        definitions.get_first_step(workflow.id)


def test_missing_entities_raise_not_found(app):
    with pytest.raises(WorkflowNotFound):
        definitions.get_workflow(424242)
    with pytest.raises(DefinitionNotFound):
        definitions.get_definition(424242)
    with pytest.raises(StepNotFound) as excinfo:
        definitions.get_step(424242)
    assert str(excinfo.value) == "step 424242 not found"


def test_normalize_steps_defaults_order_to_position():
    steps, errors = definitions.normalize_steps([{"name": "One"}, {"name": " Two ", "assignee": " bob "}])

    assert errors == []
    assert [(step["name"], step["step_order"]) for step in steps] == [("One", 1), ("Two", 2)]
    assert steps[1]["assignee"] == "bob"
    assert steps[0]["assignee"] is None


def test_normalize_steps_collects_errors():
    steps, errors = definitions.normalize_steps(
        [{"name": ""}, {"name": "Hours", "estimated_hours": -1}, "nope"]
    )

    assert "steps[1].name is required" in errors
    assert "steps[2].estimated_hours must be a non-negative number" in errors
    assert "steps[3] must be an object" in errors

    assert definitions.normalize_steps("steps")[1] == ["steps must be a list"]
    assert definitions.normalize_steps([], allow_empty=True) == ([], [])


def test_name_uniqueness_is_case_insensitive(app):
    definitions.create_definition("Quarterly Close", [{"name": "Reconcile"}], "author")

    assert not definitions.is_name_unique(WorkflowDefinition, "QUARTERLY CLOSE")
    assert definitions.is_name_unique(Workflow, "Quarterly Close")
    with pytest.raises(ValidationError) as excinfo:
        definitions.create_definition("quarterly close", [{"name": "Reconcile"}], "author")
    assert excinfo.value.errors == ["workflow definition quarterly close already exists"]


def test_workflow_from_definition_applies_assignee_overrides(app):
    definition = definitions.create_definition(
        "Procurement",
        [
            {"name": "Request", "order": 1, "assignee": "requester"},
            {"name": "Approve", "order": 2, "kind": "approval"},
        ],
        "author",
        is_reusable=False,
    )

    workflow = definitions.create_workflow_from_definition(
        definition.id, "Procurement (IT)", "author", assignees={2: "it-manager"}
    )

    assert workflow.definition_id == definition.id
    assert workflow.is_reusable is False
    assert [(step.name, step.assignee, step.kind) for step in workflow.steps] == [
        ("Request", "requester", "task"),
        ("Approve", "it-manager", "approval"),
    ]
