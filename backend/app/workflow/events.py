"""Helpers for recording workflow audit events."""

from __future__ import annotations

from ..extensions import db
from ..models.logs import WorkflowEvent


def record_event(source: str, message: str, instance_id: int | None = None) -> None:
    """Add an audit event to the current transaction.

    The event is committed or rolled back together with the caller's changes.
    """
    if not message:
        return
    db.session.add(WorkflowEvent(source=source, message=message, instance_id=instance_id))

