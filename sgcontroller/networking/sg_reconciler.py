from typing import List
import logging
import threading

from .equality import compare_ip_permission
from .errors import check_cancelled
from .ip_permission import IPPermissionInfo
from .options import ReconcileOptions
from .reconcile import ChangeSet, apply_changes, compute_changes
from .sg_manager import SecurityGroupManager

logger = logging.getLogger(__name__)


class SecurityGroupReconciler:
    """
    Converges the ingress rules of a security group toward a desired set.

    Holds no state between passes. Callers must not run two passes against
    the same security group at the same time.
    """

    def __init__(self, sg_manager: SecurityGroupManager):
        self.sg_manager = sg_manager

    def reconcile_ingress(self, sg_id: str, desired_permissions: List[IPPermissionInfo],
                          options: ReconcileOptions = None, cancel_event: threading.Event = None) -> ChangeSet:
        """
        Reconcile ingress permissions on a security group to be desired_permissions.

        Args:
            sg_id: ID of the security group
            desired_permissions: Permissions that should exist
            options: Reconcile options, selecting everything by default
            cancel_event: Aborts the pass when set

        Returns:
            ChangeSet: the permissions that were revoked and granted

        Raises:
            ReconcileError: Whatever the manager raised, unwrapped
        """
        if options is None:
            options = ReconcileOptions()

        check_cancelled(cancel_event, sg_id, "fetch")
        sg_info = self.sg_manager.fetch_sg_infos_by_id(sg_id, cancel_event=cancel_event)[sg_id]

        selector = options.permission_selector
        changes = compute_changes(
            sg_info.ingress,
            desired_permissions,
            compare_ip_permission,
            selects=lambda permission: selector.matches(permission.labels),
        )
        logger.debug(f"Security group {sg_id}: {len(changes.to_revoke)} to revoke, {len(changes.to_grant)} to grant")

        apply_changes(
            sg_id,
            changes,
            revoke=lambda perms: self.sg_manager.revoke_sg_ingress(sg_id, perms, cancel_event=cancel_event),
            grant=lambda perms: self.sg_manager.authorize_sg_ingress(sg_id, perms, cancel_event=cancel_event),
            cancel_event=cancel_event,
        )
        return changes
