"""Step kinds and their configuration schemas.

Every step carries a ``kind`` and a configuration validated against the
schema of that kind when the workflow is saved.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlparse

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_WEBHOOK_METHODS = {"GET", "POST", "PUT", "PATCH"}

DEFAULT_KIND = "task"


@dataclass(frozen=True)
class TaskConfig:
    """Manual work performed by the assignee."""

    kind = "task"
    required_fields: list[str] = field(default_factory=list)
    instructions: str = ""
    due_in_hours: float | None = None


@dataclass(frozen=True)
class ApprovalConfig:
    """Sign-off step."""

    kind = "approval"
    approvers_required: int = 1
    due_in_hours: float | None = None


@dataclass(frozen=True)
class DelayConfig:
    kind = "delay"
    duration_minutes: int = 0


@dataclass(frozen=True)
class WebhookConfig:
    kind = "webhook"
    url: str = ""
    method: str = "POST"


@dataclass(frozen=True)
class EmailConfig:
    kind = "email"
    to: list[str] = field(default_factory=list)
    subject: str = ""


StepConfig = TaskConfig | ApprovalConfig | DelayConfig | WebhookConfig | EmailConfig


def config_to_dict(config: StepConfig) -> dict[str, Any]:
    """Return the JSON serialisable form of a step configuration.

    Unset optional settings are left out.
    """

    return {key: value for key, value in asdict(config).items() if value is not None}


def due_date_for(config: dict[str, Any], now: datetime | None = None) -> datetime | None:
    """Return the due date of an assignment created now for a step with ``config``."""

    hours = config.get("due_in_hours")
    if hours is None:
        return None
    return (now or datetime.now(timezone.utc)) + timedelta(hours=hours)


def _parse_due_in_hours(raw: dict[str, Any], errors: list[str]) -> float | None:
    hours = raw.get("due_in_hours")
    if hours is None:
        return None
    if isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours <= 0:
        errors.append("due_in_hours must be a positive number")
        return None
    return float(hours)


def _parse_task(raw: dict[str, Any], errors: list[str]) -> TaskConfig:
    required = raw.get("required_fields", [])
    if not isinstance(required, list) or not all(
        isinstance(item, str) and item.strip() for item in required
    ):
        errors.append("required_fields must be a list of non-empty strings")
        required = []
    instructions = raw.get("instructions", "")
    if not isinstance(instructions, str):
        errors.append("instructions must be a string")
        instructions = ""
    return TaskConfig(
        required_fields=[item.strip() for item in required],
        instructions=instructions,
        due_in_hours=_parse_due_in_hours(raw, errors),
    )


def _parse_approval(raw: dict[str, Any], errors: list[str]) -> ApprovalConfig:
    required = raw.get("approvers_required", 1)
    if isinstance(required, bool) or not isinstance(required, int) or required < 1:
        errors.append("approvers_required must be a positive integer")
        required = 1
    return ApprovalConfig(
        approvers_required=required,
        due_in_hours=_parse_due_in_hours(raw, errors),
    )


def _parse_delay(raw: dict[str, Any], errors: list[str]) -> DelayConfig:
    duration = raw.get("duration_minutes", 0)
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
        errors.append("duration_minutes must be a non-negative integer")
        duration = 0
    return DelayConfig(duration_minutes=duration)


def _parse_webhook(raw: dict[str, Any], errors: list[str]) -> WebhookConfig:
    url = raw.get("url")
    parsed = urlparse(url) if isinstance(url, str) else None
    if parsed is None or parsed.scheme not in {"http", "https"} or not parsed.netloc:
        errors.append("url must be an http(s) URL")
        url = ""
    method = raw.get("method", "POST")
    if not isinstance(method, str) or method.upper() not in _WEBHOOK_METHODS:
        errors.append("method must be one of GET, POST, PUT, PATCH")
        method = "POST"
    return WebhookConfig(url=url, method=method.upper())


def _parse_email(raw: dict[str, Any], errors: list[str]) -> EmailConfig:
    recipients = raw.get("to")
    if (
        not isinstance(recipients, list)
        or not recipients
        or not all(isinstance(item, str) and _EMAIL_PATTERN.match(item) for item in recipients)
    ):
        errors.append("to must be a non-empty list of e-mail addresses")
        recipients = []
    subject = raw.get("subject", "")
    if not isinstance(subject, str):
        errors.append("subject must be a string")
        subject = ""
    return EmailConfig(to=list(recipients), subject=subject)


_PARSERS: dict[str, tuple[type, Callable[[dict[str, Any], list[str]], StepConfig]]] = {
    "task": (TaskConfig, _parse_task),
    "approval": (ApprovalConfig, _parse_approval),
    "delay": (DelayConfig, _parse_delay),
    "webhook": (WebhookConfig, _parse_webhook),
    "email": (EmailConfig, _parse_email),
}

STEP_KINDS = frozenset(_PARSERS)


def parse_step_config(kind: Any, raw: Any) -> tuple[StepConfig | None, list[str]]:
    """Validate a step configuration against the schema of its kind."""

    if kind is None:
        kind = DEFAULT_KIND
    if not isinstance(kind, str) or kind not in _PARSERS:
        return None, [f"kind must be one of {', '.join(sorted(STEP_KINDS))}"]

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        return None, ["config must be an object"]

    config_type, parser = _PARSERS[kind]
    allowed = set(config_type.__dataclass_fields__)
    unknown = sorted(set(raw) - allowed)
    errors: list[str] = []
    if unknown:
        errors.append(f"unknown {kind} config keys: {', '.join(unknown)}")

    config = parser(raw, errors)
    if errors:
        return None, errors
    return config, []
