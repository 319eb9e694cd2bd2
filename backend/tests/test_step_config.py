"""Tests for step kind configuration validation."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend.app.workflow.steps import (
    ApprovalConfig,
    TaskConfig,
    WebhookConfig,
    config_to_dict,
    due_date_for,
    parse_step_config,
)


def test_missing_kind_defaults_to_task():
    config, errors = parse_step_config(None, {"required_fields": ["customer"]})

    assert errors == []
    assert isinstance(config, TaskConfig)
    assert config.required_fields == ["customer"]


def test_unknown_kind_is_rejected():
    config, errors = parse_step_config("teleport", {})

    assert config is None
    assert "kind must be one of" in errors[0]


def test_unknown_keys_are_rejected():
    config, errors = parse_step_config("approval", {"approvers_required": 2, "sla": 4})

    assert config is None
    assert errors == ["unknown approval config keys: sla"]


@pytest.mark.parametrize(
    ("kind", "raw", "message"),
    [
        ("approval", {"approvers_required": 0}, "approvers_required"),
        ("delay", {"duration_minutes": -5}, "duration_minutes"),
        ("webhook", {"url": "ftp://example.com"}, "url"),
        ("webhook", {"url": "https://example.com", "method": "DELETE"}, "method"),
        ("email", {"to": ["not-an-address"]}, "to"),
        ("task", {"required_fields": "customer"}, "required_fields"),
        ("task", {"due_in_hours": 0}, "due_in_hours"),
        ("approval", {"due_in_hours": "tomorrow"}, "due_in_hours"),
        ("task", {"due_in_hours": True}, "due_in_hours"),
        ("delay", {"due_in_hours": 4}, "unknown delay config keys"),
    ],
)
def test_invalid_configs_report_errors(kind, raw, message):
    config, errors = parse_step_config(kind, raw)

    assert config is None
    assert any(message in error for error in errors)


def test_valid_configs_round_trip_to_dict():
    webhook, errors = parse_step_config(
        "webhook", {"url": "https://hooks.example.com/step", "method": "put"}
    )
    assert errors == []
    assert isinstance(webhook, WebhookConfig)
    assert config_to_dict(webhook) == {"url": "https://hooks.example.com/step", "method": "PUT"}

    approval, errors = parse_step_config("approval", None)
    assert errors == []
    assert approval == ApprovalConfig(approvers_required=1)
    assert config_to_dict(approval) == {"approvers_required": 1}


def test_due_in_hours_sets_an_assignment_deadline():
    approval, errors = parse_step_config("approval", {"approvers_required": 2, "due_in_hours": 36})
    assert errors == []
    assert config_to_dict(approval) == {"approvers_required": 2, "due_in_hours": 36.0}

    now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    assert due_date_for(config_to_dict(approval), now) == datetime(
        2024, 3, 2, 21, 0, tzinfo=timezone.utc
    )
    assert due_date_for({"instructions": "no deadline"}, now) is None


def test_config_must_be_an_object():
    config, errors = parse_step_config("task", ["a"])

    assert config is None
    assert errors == ["config must be an object"]
