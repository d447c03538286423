"""
In-memory SecurityGroupManager used by unit tests.
"""

from collections import deque
from typing import Dict, List, Tuple
import threading

from .equality import compare_ip_permission, same_ec2_rule
from .errors import DuplicatePermissionError, GrantError, ReconcileCancelled, RevokeError, SecurityGroupNotFoundError
from .ip_permission import IPPermissionInfo
from .sg_manager import SecurityGroupInfo, SecurityGroupManager

FETCH = "fetch"
REVOKE = "revoke"
AUTHORIZE = "authorize"


class InMemorySecurityGroupManager(SecurityGroupManager):
    """
    Keeps security group rules in a dict and records every call in order.

    Args:
        groups: Initial ingress permissions keyed by security group ID
        reject_port_conflicts: Reject a grant whose protocol and port range is
            already occupied by another rule, even with a different peer
    """

    def __init__(self, groups: Dict[str, List[IPPermissionInfo]] = None, reject_port_conflicts: bool = False):
        self.groups = {sg_id: list(perms) for sg_id, perms in (groups or {}).items()}
        self.reject_port_conflicts = reject_port_conflicts
        self.calls: List[Tuple[str, Tuple[str, ...], List[IPPermissionInfo]]] = []
        self._failures: Dict[str, deque] = {FETCH: deque(), REVOKE: deque(), AUTHORIZE: deque()}

    def fail_next(self, method: str, exc: Exception) -> None:
        """Make the next call to method raise exc."""
        self._failures[method].append(exc)

    def _enter(self, method, sg_ids, permissions, cancel_event):
        self.calls.append((method, tuple(sg_ids), list(permissions)))
        if cancel_event is not None and cancel_event.is_set():
            raise ReconcileCancelled(f"{method} cancelled", sg_ids[0] if sg_ids else None)
        if self._failures[method]:
            raise self._failures[method].popleft()

    def fetch_sg_infos_by_id(self, *sg_ids, cancel_event=None):
        self._enter(FETCH, sg_ids, [], cancel_event)
        missing = [sg_id for sg_id in sg_ids if sg_id not in self.groups]
        if missing:
            raise SecurityGroupNotFoundError(f"Security groups not found: {', '.join(missing)}", missing[0])
        return {sg_id: SecurityGroupInfo(sg_id=sg_id, ingress=list(self.groups[sg_id])) for sg_id in sg_ids}

    def revoke_sg_ingress(self, sg_id, permissions, cancel_event=None):
        self._enter(REVOKE, (sg_id,), permissions, cancel_event)
        current = self._group(sg_id, RevokeError)
        for permission in permissions:
            if not any(compare_ip_permission(permission, existing) for existing in current):
                raise RevokeError(f"Permission {permission} not found on {sg_id}", sg_id)
        self.groups[sg_id] = [existing for existing in current
                              if not any(compare_ip_permission(existing, p) for p in permissions)]

    def authorize_sg_ingress(self, sg_id, permissions, cancel_event=None):
        self._enter(AUTHORIZE, (sg_id,), permissions, cancel_event)
        current = self._group(sg_id, GrantError)
        for i, permission in enumerate(permissions):
            others = current + list(permissions[:i])
            if any(same_ec2_rule(permission, existing) for existing in others):
                raise DuplicatePermissionError(f"Duplicate permission {permission} on {sg_id}", sg_id)
            if self.reject_port_conflicts and any(_same_port_range(permission, existing) for existing in others):
                raise GrantError(f"Port range of {permission} already in use on {sg_id}", sg_id)
        self.groups[sg_id] = current + list(permissions)

    def _group(self, sg_id, error_cls):
        if sg_id not in self.groups:
            raise error_cls(f"Security group {sg_id} not found", sg_id)
        return list(self.groups[sg_id])

    def mutation_calls(self) -> List[Tuple[str, List[IPPermissionInfo]]]:
        """Revoke and authorize calls in order, without fetches."""
        return [(method, permissions) for method, _, permissions in self.calls if method != FETCH]


def _same_port_range(a: IPPermissionInfo, b: IPPermissionInfo) -> bool:
    return a.protocol == b.protocol and a.from_port == b.from_port and a.to_port == b.to_port
