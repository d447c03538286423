from dataclasses import dataclass, field

from .selector import LabelSelector


@dataclass(frozen=True)
class ReconcileOptions:
    """Settings for a single security group reconcile pass."""

    # Selects the observed permissions the pass may revoke. Permissions it
    # does not match are never altered or deleted. Selects everything by default.
    permission_selector: LabelSelector = field(default_factory=LabelSelector.everything)
