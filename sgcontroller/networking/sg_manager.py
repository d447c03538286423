from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List
import threading

from .ip_permission import IPPermissionInfo


@dataclass
class SecurityGroupInfo:
    """Ingress state of a security group as last reported by the provider."""
    sg_id: str
    ingress: List[IPPermissionInfo] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)


class SecurityGroupManager(ABC):
    """
    Reads and mutates security group ingress rules.

    Implementations must return current state on every fetch and apply each
    revoke or authorize call atomically: all listed permissions or none.
    """

    @abstractmethod
    def fetch_sg_infos_by_id(self, *sg_ids: str, cancel_event: threading.Event = None) -> Dict[str, SecurityGroupInfo]:
        """
        Fetch the current state of security groups.

        Raises:
            SecurityGroupNotFoundError: If any requested group does not exist
            FetchError: If the state could not be retrieved
        """

    @abstractmethod
    def revoke_sg_ingress(self, sg_id: str, permissions: List[IPPermissionInfo],
                          cancel_event: threading.Event = None) -> None:
        """Remove ingress permissions. Raises RevokeError on failure."""

    @abstractmethod
    def authorize_sg_ingress(self, sg_id: str, permissions: List[IPPermissionInfo],
                             cancel_event: threading.Event = None) -> None:
        """Add ingress permissions. Raises GrantError on failure, including duplicates."""
