"""Signals emitted after workflow state changes are committed.

Notification delivery subscribes to these; nothing in the core depends on a
receiver being connected.
"""

from blinker import Namespace

_signals = Namespace()

instance_started = _signals.signal("instance-started")
step_completed = _signals.signal("step-completed")
assignment_created = _signals.signal("assignment-created")
step_unassigned = _signals.signal("step-unassigned")

__all__ = ["assignment_created", "instance_started", "step_completed", "step_unassigned"]
