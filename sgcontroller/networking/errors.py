from typing import Optional
import threading


class ReconcileError(Exception):
    """Base class for failures of a reconcile pass against a single resource."""

    def __init__(self, message: str, resource_id: str = None):
        super().__init__(message)
        self.resource_id = resource_id


class FetchError(ReconcileError):
    """Observed state could not be retrieved. Nothing was mutated."""


class SecurityGroupNotFoundError(FetchError):
    pass


class RevokeError(ReconcileError):
    pass


class GrantError(ReconcileError):
    pass


class DuplicatePermissionError(GrantError):
    """The rule already exists on the group, possibly under another owner's description."""


class ReconcileCancelled(ReconcileError):
    """The pass was aborted because its cancel event was set.

    Safe to reschedule; callers should not report it as an anomaly.
    """


def check_cancelled(cancel_event: Optional[threading.Event], resource_id: str, step: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ReconcileCancelled(f"Reconcile of {resource_id} cancelled before {step}", resource_id)
