from typing import Dict, Any
import logging
from botocore.exceptions import ClientError
from .client import retry_aws_operation
from ..networking.errors import DuplicatePermissionError, FetchError, GrantError, RevokeError, SecurityGroupNotFoundError
from ..networking.ip_permission import from_ip_permission
from ..networking.sg_manager import SecurityGroupInfo, SecurityGroupManager

logger = logging.getLogger(__name__)

SG_NOT_FOUND_ERROR_CODES = ('InvalidGroup.NotFound', 'InvalidGroupId.Malformed')
DUPLICATE_PERMISSION_ERROR_CODE = 'InvalidPermission.Duplicate'


def _error_code(e: ClientError) -> str:
    return e.response.get('Error', {}).get('Code', '')


def build_security_group_info(sg: Dict[str, Any]) -> SecurityGroupInfo:
    """
    Convert a DescribeSecurityGroups entry into a SecurityGroupInfo.

    Args:
        sg: SecurityGroup dict from the EC2 API

    Returns:
        SecurityGroupInfo: ingress split into one permission per peer
    """
    ingress = []
    for ip_permission in sg.get('IpPermissions', []):
        ingress.extend(from_ip_permission(ip_permission))
    tags = {tag['Key']: tag['Value'] for tag in sg.get('Tags', [])}
    return SecurityGroupInfo(sg_id=sg['GroupId'], ingress=ingress, tags=tags)


class EC2SecurityGroupManager(SecurityGroupManager):
    """SecurityGroupManager backed by the EC2 API."""

    def __init__(self, ec2: Any):
        self.ec2 = ec2

    def fetch_sg_infos_by_id(self, *sg_ids, cancel_event=None):
        """
        Describe security groups and return their ingress permissions.

        Args:
            sg_ids: IDs of the security groups
            cancel_event: Aborts retries when set

        Returns:
            Dict[str, SecurityGroupInfo]: state keyed by security group ID

        Raises:
            SecurityGroupNotFoundError: If any requested group does not exist
            FetchError: If the EC2 API call fails
        """
        try:
            response = retry_aws_operation(
                self.ec2.describe_security_groups,
                GroupIds=list(sg_ids),
                cancel_event=cancel_event,
                resource_id=sg_ids[0]
            )
        except ClientError as e:
            logger.error(f"Failed to describe security groups {', '.join(sg_ids)}: {str(e)}")
            if _error_code(e) in SG_NOT_FOUND_ERROR_CODES:
                raise SecurityGroupNotFoundError(f"Security group not found: {str(e)}", sg_ids[0]) from e
            raise FetchError(f"Failed to describe security groups: {str(e)}", sg_ids[0]) from e

        sg_infos = {}
        for sg in response.get('SecurityGroups', []):
            sg_info = build_security_group_info(sg)
            sg_infos[sg_info.sg_id] = sg_info

        missing = [sg_id for sg_id in sg_ids if sg_id not in sg_infos]
        if missing:
            raise SecurityGroupNotFoundError(f"Security groups not found: {', '.join(missing)}", missing[0])
        return sg_infos

    def revoke_sg_ingress(self, sg_id, permissions, cancel_event=None):
        try:
            retry_aws_operation(
                self.ec2.revoke_security_group_ingress,
                GroupId=sg_id,
                IpPermissions=[p.to_ip_permission() for p in permissions],
                cancel_event=cancel_event,
                resource_id=sg_id
            )
            logger.info(f"Revoked {len(permissions)} ingress permissions from {sg_id}")
        except ClientError as e:
            logger.error(f"Failed to revoke ingress on {sg_id}: {str(e)}")
            raise RevokeError(f"Failed to revoke ingress on {sg_id}: {str(e)}", sg_id) from e

    def authorize_sg_ingress(self, sg_id, permissions, cancel_event=None):
        try:
            retry_aws_operation(
                self.ec2.authorize_security_group_ingress,
                GroupId=sg_id,
                IpPermissions=[p.to_ip_permission() for p in permissions],
                cancel_event=cancel_event,
                resource_id=sg_id
            )
            logger.info(f"Authorized {len(permissions)} ingress permissions on {sg_id}")
        except ClientError as e:
            logger.error(f"Failed to authorize ingress on {sg_id}: {str(e)}")
            if _error_code(e) == DUPLICATE_PERMISSION_ERROR_CODE:
                raise DuplicatePermissionError(f"Ingress rule already exists on {sg_id}: {str(e)}", sg_id) from e
            raise GrantError(f"Failed to authorize ingress on {sg_id}: {str(e)}", sg_id) from e
