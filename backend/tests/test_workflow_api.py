"""Tests for the workflow definition and workflow REST API."""

from __future__ import annotations

AUTHOR = {"X-User-Id": "designer"}


def _steps(*assignees):
    return [
        {"name": f"Step {index}", "order": index, "assignee": assignee}
        for index, assignee in enumerate(assignees, start=1)
    ]


def test_workflow_roundtrip(client):
    create_response = client.post(
        "/api/workflows",
        json={"name": "Pipeline", "description": "Ship it", "steps": _steps("alice", "bob")},
        headers=AUTHOR,
    )
    assert create_response.status_code == 201
    created = create_response.get_json()
    assert created["name"] == "Pipeline"
    assert created["is_reusable"] is False
    assert created["created_by"] == "designer"
    assert [step["order"] for step in created["steps"]] == [1, 2]
    assert created["steps"][0]["kind"] == "task"
    assert created["steps"][0]["config"] == {"required_fields": [], "instructions": ""}

    list_response = client.get("/api/workflows")
    assert list_response.status_code == 200
    listed = list_response.get_json()
    assert any(workflow["id"] == created["id"] for workflow in listed)
    assert all("steps" not in workflow for workflow in listed)

    detail_response = client.get(f"/api/workflows/{created['id']}")
    assert detail_response.status_code == 200
    detail = detail_response.get_json()
    assert [step["assignee"] for step in detail["steps"]] == ["alice", "bob"]


def test_steps_are_returned_in_order(client):
    response = client.post(
        "/api/workflows",
        json={
            "name": "Sparse",
            "steps": [
                {"name": "Last", "order": 30},
                {"name": "First", "order": 10},
                {"name": "Middle", "order": 20},
            ],
        },
        headers=AUTHOR,
    )
    assert response.status_code == 201

    detail = client.get(f"/api/workflows/{response.get_json()['id']}").get_json()
    assert [step["name"] for step in detail["steps"]] == ["First", "Middle", "Last"]


def test_workflow_requires_caller_identity(client):
    response = client.post("/api/workflows", json={"name": "Anonymous", "steps": _steps("a")})

    assert response.status_code == 401
    assert response.get_json() == {"error": "missing X-User-Id header"}


def test_workflow_name_must_be_unique(client):
    first = client.post("/api/workflows", json={"name": "Alpha", "steps": _steps("a")}, headers=AUTHOR)
    assert first.status_code == 201

    conflict = client.post("/api/workflows", json={"name": "alpha", "steps": _steps("a")}, headers=AUTHOR)
    assert conflict.status_code == 400
    assert conflict.get_json()["errors"] == ["workflow alpha already exists"]


def test_workflow_validation_errors(client):
    missing_steps = client.post("/api/workflows", json={"name": "Empty"}, headers=AUTHOR)
    assert missing_steps.status_code == 400
    assert "at least one step is required" in missing_steps.get_json()["errors"]

    duplicate_orders = client.post(
        "/api/workflows",
        json={"name": "Dupes", "steps": [{"name": "A", "order": 1}, {"name": "B", "order": 1}]},
        headers=AUTHOR,
    )
    assert duplicate_orders.status_code == 400
    assert "step orders must be unique" in duplicate_orders.get_json()["errors"]

    bad_order = client.post(
        "/api/workflows",
        json={"name": "BadOrder", "steps": [{"name": "A", "order": 0}]},
        headers=AUTHOR,
    )
    assert bad_order.status_code == 400
    assert "steps[1].order must be a positive integer" in bad_order.get_json()["errors"]

    bad_flag = client.post(
        "/api/workflows",
        json={"name": "BadFlag", "is_reusable": "yes", "steps": _steps("a")},
        headers=AUTHOR,
    )
    assert bad_flag.status_code == 400
    assert bad_flag.get_json()["errors"] == ["is_reusable must be a boolean"]


def test_step_kind_configuration_is_validated(client):
    invalid = client.post(
        "/api/workflows",
        json={
            "name": "Hooks",
            "steps": [{"name": "Notify", "kind": "webhook", "config": {"url": "not a url"}}],
        },
        headers=AUTHOR,
    )
    assert invalid.status_code == 400
    assert invalid.get_json()["errors"] == ["steps[1]: url must be an http(s) URL"]

    unknown = client.post(
        "/api/workflows",
        json={"name": "Unknown", "steps": [{"name": "Wait", "kind": "sleep"}]},
        headers=AUTHOR,
    )
    assert unknown.status_code == 400
    assert unknown.get_json()["errors"][0].startswith("steps[1]: kind must be one of")

    valid = client.post(
        "/api/workflows",
        json={
            "name": "Approvals",
            "steps": [
                {"name": "Sign off", "kind": "approval", "config": {"approvers_required": 2}},
                {"name": "Cool down", "kind": "delay", "config": {"duration_minutes": 15}},
            ],
        },
        headers=AUTHOR,
    )
    assert valid.status_code == 201
    steps = valid.get_json()["steps"]
    assert steps[0]["config"] == {"approvers_required": 2}
    assert steps[1]["config"] == {"duration_minutes": 15}


def test_unknown_workflow_returns_404(client):
    response = client.get("/api/workflows/999999")

    assert response.status_code == 404
    assert response.get_json() == {"error": "workflow 999999 not found"}


def test_definition_materialises_workflow(client):
    definition_response = client.post(
        "/api/definitions",
        json={
            "name": "Hiring",
            "description": "Template",
            "steps": [
                {"name": "Screen", "order": 1, "assignee": "recruiter"},
                {"name": "Interview", "order": 2},
            ],
        },
        headers=AUTHOR,
    )
    assert definition_response.status_code == 201
    definition = definition_response.get_json()
    assert definition["is_reusable"] is True
    assert [step["step_order"] for step in definition["steps"]] == [1, 2]

    listed = client.get("/api/definitions?reusable=true").get_json()
    assert any(item["id"] == definition["id"] for item in listed)

    workflow_response = client.post(
        f"/api/definitions/{definition['id']}/workflows",
        json={"name": "Hiring (Backend)", "assignees": {"2": "tech-lead"}},
        headers=AUTHOR,
    )
    assert workflow_response.status_code == 201
    workflow = workflow_response.get_json()
    assert workflow["definition_id"] == definition["id"]
    assert workflow["is_reusable"] is True
    assert workflow["description"] == "Template"
    assert [step["assignee"] for step in workflow["steps"]] == ["recruiter", "tech-lead"]


def test_definition_assignee_overrides_are_validated(client):
    definition = client.post(
        "/api/definitions",
        json={"name": "Review", "steps": [{"name": "Read"}]},
        headers=AUTHOR,
    ).get_json()

    response = client.post(
        f"/api/definitions/{definition['id']}/workflows",
        json={"name": "Review copy", "assignees": {"first": "someone"}},
        headers=AUTHOR,
    )

    assert response.status_code == 400
    assert response.get_json()["errors"] == ["assignees key 'first' must be a step order"]


def test_active_instance_lookup(client):
    workflow = client.post(
        "/api/workflows",
        json={"name": "Lookup", "is_reusable": True, "steps": _steps("alice")},
        headers=AUTHOR,
    ).get_json()

    missing = client.get(f"/api/workflows/{workflow['id']}/active-instance")
    assert missing.status_code == 404

    client.post(f"/api/workflows/{workflow['id']}/instances", json={}, headers=AUTHOR)
    latest = client.post(f"/api/workflows/{workflow['id']}/instances", json={}, headers=AUTHOR)

    found = client.get(f"/api/workflows/{workflow['id']}/active-instance")
    assert found.status_code == 200
    assert found.get_json()["id"] == latest.get_json()["id"]
