"""Tests for the workflow instance REST API."""

from __future__ import annotations

from backend.app.extensions import db
from backend.app.models.instance import WorkflowInstance
from backend.app.workflow import assignments


def _create_workflow(client, name, assignees, **extra):
    steps = [
        {"name": f"{name} {index}", "order": index, "assignee": assignee}
        for index, assignee in enumerate(assignees, start=1)
    ]
    steps[0].update(extra.pop("first_step", {}))
    response = client.post(
        "/api/workflows",
        json={"name": name, "steps": steps, **extra},
        headers={"X-User-Id": "designer"},
    )
    assert response.status_code == 201
    return response.get_json()


def test_start_and_inspect_instance(client):
    workflow = _create_workflow(client, "Onboarding", ["hr", "it"], is_reusable=True)

    response = client.post(
        f"/api/workflows/{workflow['id']}/instances",
        json={"start_data": {"employee": "Jo"}},
        headers={"X-User-Id": "manager"},
    )
    assert response.status_code == 201
    instance = response.get_json()
    assert instance["status"] == "active"
    assert instance["started_by"] == "manager"
    assert instance["current_step_id"] == workflow["steps"][0]["id"]
    assert instance["current_step_name"] == "Onboarding 1"
    assert instance["workflow_name"] == "Onboarding"
    assert instance["start_data"] == {"employee": "Jo"}
    assert instance["version"] == 1
    assert instance["awaiting_assignment"] is False

    detail = client.get(f"/api/instances/{instance['id']}")
    assert detail.status_code == 200
    assert detail.get_json()["id"] == instance["id"]

    items = client.get(f"/api/instances/{instance['id']}/assignments").get_json()
    assert [(item["assigned_to"], item["status"], item["step_order"]) for item in items] == [
        ("hr", "pending", 1)
    ]

    listed = client.get("/api/instances", query_string={"started_by": "manager"}).get_json()
    assert [item["id"] for item in listed] == [instance["id"]]


def test_start_errors_map_to_status_codes(client):
    one_off = _create_workflow(client, "Audit", ["auditor"])
    headers = {"X-User-Id": "manager"}

    assert client.post(f"/api/workflows/{one_off['id']}/instances", json={}, headers=headers).status_code == 201
    again = client.post(f"/api/workflows/{one_off['id']}/instances", json={}, headers=headers)
    assert again.status_code == 409
    assert "already been started" in again.get_json()["error"]

    missing = client.post("/api/workflows/987654/instances", json={}, headers=headers)
    assert missing.status_code == 404

    anonymous = client.post(f"/api/workflows/{one_off['id']}/instances", json={})
    assert anonymous.status_code == 401


def test_required_start_data(client):
    workflow = _create_workflow(
        client,
        "Intake",
        ["clerk"],
        is_reusable=True,
        first_step={"config": {"required_fields": ["case_number"]}},
    )

    response = client.post(
        f"/api/workflows/{workflow['id']}/instances",
        json={"start_data": {}},
        headers={"X-User-Id": "clerk"},
    )

    assert response.status_code == 400
    assert response.get_json() == {"errors": ["start_data is missing required fields: case_number"]}


def test_invalid_status_filter(client):
    response = client.get("/api/instances", query_string={"status": "finished"})

    assert response.status_code == 400


def test_unknown_instance(client):
    response = client.get("/api/instances/424242")

    assert response.status_code == 404
    assert response.get_json() == {"error": "instance 424242 not found"}


def test_manual_assignment_of_unassigned_step(client):
    workflow = _create_workflow(client, "Escalation", [None, "lead"], is_reusable=True)
    instance = client.post(
        f"/api/workflows/{workflow['id']}/instances", json={}, headers={"X-User-Id": "ops"}
    ).get_json()
    assert instance["awaiting_assignment"] is True

    missing = client.post(f"/api/instances/{instance['id']}/assign", json={}, headers={"X-User-Id": "admin"})
    assert missing.status_code == 400
    assert missing.get_json() == {"errors": ["assigned_to is required"]}

    assigned = client.post(
        f"/api/instances/{instance['id']}/assign",
        json={"assigned_to": "oncall", "notes": "first responder"},
        headers={"X-User-Id": "admin"},
    )
    assert assigned.status_code == 201
    assignment = assigned.get_json()
    assert assignment["assigned_to"] == "oncall"
    assert assignment["assigned_by"] == "admin"

    duplicate = client.post(
        f"/api/instances/{instance['id']}/assign",
        json={"assigned_to": "someone-else"},
        headers={"X-User-Id": "admin"},
    )
    assert duplicate.status_code == 409

    detail = client.get(f"/api/instances/{instance['id']}").get_json()
    assert detail["awaiting_assignment"] is False


def test_instance_flagged_for_repair_is_repaired_on_read(client):
    workflow = _create_workflow(client, "Fragile", ["alice", "bob"], is_reusable=True)
    instance = client.post(
        f"/api/workflows/{workflow['id']}/instances", json={}, headers={"X-User-Id": "ops"}
    ).get_json()

    # Simulate a completion whose pointer move was lost.
    first = client.get(f"/api/instances/{instance['id']}/assignments").get_json()[0]
    started = client.patch(
        f"/api/assignments/{first['id']}",
        json={"status": "in_progress"},
        headers={"X-User-Id": "alice"},
    )
    assert started.get_json()["status"] == "in_progress"
    row = db.session.get(WorkflowInstance, instance["id"])
    row.needs_repair = True
    db.session.commit()
    assignments.update_status(first["id"], "completed")

    detail = client.get(f"/api/instances/{instance['id']}")
    assert detail.status_code == 200
    repaired = detail.get_json()
    assert repaired["needs_repair"] is False
    assert repaired["current_step_id"] == workflow["steps"][1]["id"]

    explicit = client.post(f"/api/instances/{instance['id']}/repair", headers={"X-User-Id": "ops"})
    assert explicit.status_code == 200
    assert explicit.get_json()["fixes"] == []
