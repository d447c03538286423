from dataclasses import dataclass
from typing import Dict, Any, List, Optional
import logging
import threading
from botocore.exceptions import ClientError
from .client import retry_aws_operation
from ..networking.errors import FetchError, GrantError, RevokeError
from ..networking.reconcile import ChangeSet, apply_changes, compute_changes

logger = logging.getLogger(__name__)

TARGET_STATE_DRAINING = "draining"


@dataclass(frozen=True)
class TargetInfo:
    """A target registered (or to be registered) with a target group.

    state is the reported health state and is not part of target identity.
    """
    target_id: str
    port: Optional[int] = None
    availability_zone: Optional[str] = None
    state: Optional[str] = None

    def to_target_description(self) -> Dict[str, Any]:
        target = {'Id': self.target_id}
        if self.port is not None:
            target['Port'] = self.port
        if self.availability_zone:
            target['AvailabilityZone'] = self.availability_zone
        return target


def compare_target(a: TargetInfo, b: TargetInfo) -> bool:
    return a.target_id == b.target_id and a.port == b.port and a.availability_zone == b.availability_zone


class TargetGroupManager:
    """Reads and mutates target registrations of ELBv2 target groups."""

    def __init__(self, elbv2: Any):
        self.elbv2 = elbv2

    def fetch_targets(self, target_group_arn: str, cancel_event: threading.Event = None) -> List[TargetInfo]:
        """
        Get the targets currently registered with a target group.

        Args:
            target_group_arn: ARN of the target group
            cancel_event: Aborts retries when set

        Returns:
            List[TargetInfo]: registered targets with their health state

        Raises:
            FetchError: If the targets cannot be described
        """
        try:
            response = retry_aws_operation(
                self.elbv2.describe_target_health,
                TargetGroupArn=target_group_arn,
                cancel_event=cancel_event,
                resource_id=target_group_arn
            )
        except ClientError as e:
            logger.error(f"Failed to describe target health for {target_group_arn}: {str(e)}")
            raise FetchError(f"Failed to describe targets: {str(e)}", target_group_arn) from e

        targets = []
        for description in response.get('TargetHealthDescriptions', []):
            target = description['Target']
            targets.append(TargetInfo(
                target_id=target['Id'],
                port=target.get('Port'),
                availability_zone=target.get('AvailabilityZone'),
                state=description.get('TargetHealth', {}).get('State'),
            ))
        return targets

    def register_targets(self, target_group_arn: str, targets: List[TargetInfo],
                         cancel_event: threading.Event = None) -> None:
        try:
            retry_aws_operation(
                self.elbv2.register_targets,
                TargetGroupArn=target_group_arn,
                Targets=[t.to_target_description() for t in targets],
                cancel_event=cancel_event,
                resource_id=target_group_arn
            )
            logger.info(f"Registered {len(targets)} targets with {target_group_arn}")
        except ClientError as e:
            logger.error(f"Failed to register targets: {str(e)}")
            raise GrantError(f"Failed to register targets: {str(e)}", target_group_arn) from e

    def deregister_targets(self, target_group_arn: str, targets: List[TargetInfo],
                           cancel_event: threading.Event = None) -> None:
        try:
            retry_aws_operation(
                self.elbv2.deregister_targets,
                TargetGroupArn=target_group_arn,
                Targets=[t.to_target_description() for t in targets],
                cancel_event=cancel_event,
                resource_id=target_group_arn
            )
            logger.info(f"Deregistered {len(targets)} targets from {target_group_arn}")
        except ClientError as e:
            logger.error(f"Failed to deregister targets: {str(e)}")
            raise RevokeError(f"Failed to deregister targets: {str(e)}", target_group_arn) from e


def reconcile_targets(manager: TargetGroupManager, target_group_arn: str, desired_targets: List[TargetInfo],
                      cancel_event: threading.Event = None) -> ChangeSet:
    """
    Reconcile the targets of a target group to be desired_targets.

    Draining targets are already on their way out and are treated as absent,
    so a desired target that is draining gets registered again.

    Args:
        manager: TargetGroupManager for the target group's region
        target_group_arn: ARN of the target group
        desired_targets: Targets that should be registered
        cancel_event: Aborts the pass when set

    Returns:
        ChangeSet: the deregistered and registered targets
    """
    observed = [t for t in manager.fetch_targets(target_group_arn, cancel_event=cancel_event)
                if t.state != TARGET_STATE_DRAINING]
    changes = compute_changes(observed, desired_targets, compare_target)
    apply_changes(
        target_group_arn,
        changes,
        revoke=lambda targets: manager.deregister_targets(target_group_arn, targets, cancel_event=cancel_event),
        grant=lambda targets: manager.register_targets(target_group_arn, targets, cancel_event=cancel_event),
        cancel_event=cancel_event,
    )
    return changes
