from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

PEER_CIDR = "cidr"
PEER_CIDR_IPV6 = "cidr_ipv6"
PEER_SECURITY_GROUP = "security_group"
PEER_PREFIX_LIST = "prefix_list"

# peer kind -> (IpPermission list key, id key inside each entry)
_PEER_FIELDS = {
    PEER_CIDR: ("IpRanges", "CidrIp"),
    PEER_CIDR_IPV6: ("Ipv6Ranges", "CidrIpv6"),
    PEER_SECURITY_GROUP: ("UserIdGroupPairs", "GroupId"),
    PEER_PREFIX_LIST: ("PrefixListIds", "PrefixListId"),
}


@dataclass(frozen=True)
class Peer:
    """Source of traffic for an ingress rule."""
    kind: str
    value: str
    description: str = ""

    def __post_init__(self):
        if self.kind not in _PEER_FIELDS:
            raise ValueError(f"Unknown peer kind: {self.kind}")


@dataclass(frozen=True)
class IPPermissionInfo:
    """
    A single ingress rule on a security group.

    Labels carry ownership information only. They are never sent to AWS and
    are ignored when deciding whether two rules are the same; on observed
    rules they are parsed back out of the peer description.
    """
    protocol: str
    from_port: Optional[int] = None
    to_port: Optional[int] = None
    peers: Tuple[Peer, ...] = ()
    labels: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def to_ip_permission(self) -> Dict[str, Any]:
        """Render the boto3 IpPermission shape."""
        permission = {'IpProtocol': self.protocol}
        if self.from_port is not None:
            permission['FromPort'] = self.from_port
        if self.to_port is not None:
            permission['ToPort'] = self.to_port
        for peer in self.peers:
            list_key, id_key = _PEER_FIELDS[peer.kind]
            entry = {id_key: peer.value}
            if peer.description:
                entry['Description'] = peer.description
            permission.setdefault(list_key, []).append(entry)
        return permission


def build_description_for_labels(labels: Dict[str, str]) -> str:
    return ",".join(f"{key}={labels[key]}" for key in sorted(labels))


def labels_from_description(description: str) -> Dict[str, str]:
    labels = {}
    if not description:
        return labels
    for component in description.split(","):
        key, sep, value = component.partition("=")
        if sep:
            labels[key] = value
    return labels


def _new_ip_permission(kind: str, protocol: str, from_port: Optional[int], to_port: Optional[int],
                       value: str, labels: Dict[str, str] = None) -> IPPermissionInfo:
    labels = dict(labels or {})
    return IPPermissionInfo(
        protocol=protocol,
        from_port=from_port,
        to_port=to_port,
        peers=(Peer(kind, value, build_description_for_labels(labels)),),
        labels=labels,
    )


def new_cidr_ip_permission(protocol, from_port, to_port, cidr, labels=None) -> IPPermissionInfo:
    return _new_ip_permission(PEER_CIDR, protocol, from_port, to_port, cidr, labels)


def new_cidr_v6_ip_permission(protocol, from_port, to_port, cidr_ipv6, labels=None) -> IPPermissionInfo:
    return _new_ip_permission(PEER_CIDR_IPV6, protocol, from_port, to_port, cidr_ipv6, labels)


def new_group_id_ip_permission(protocol, from_port, to_port, group_id, labels=None) -> IPPermissionInfo:
    return _new_ip_permission(PEER_SECURITY_GROUP, protocol, from_port, to_port, group_id, labels)


def new_prefix_list_ip_permission(protocol, from_port, to_port, prefix_list_id, labels=None) -> IPPermissionInfo:
    return _new_ip_permission(PEER_PREFIX_LIST, protocol, from_port, to_port, prefix_list_id, labels)


def from_ip_permission(ip_permission: Dict[str, Any]) -> List[IPPermissionInfo]:
    """
    Split a boto3 IpPermission into one IPPermissionInfo per peer.

    Args:
        ip_permission: IpPermission dict as returned by DescribeSecurityGroups

    Returns:
        List[IPPermissionInfo]: one entry per CIDR, group pair or prefix list
    """
    infos = []
    for kind, (list_key, id_key) in _PEER_FIELDS.items():
        for entry in ip_permission.get(list_key, []):
            description = entry.get('Description', "")
            infos.append(IPPermissionInfo(
                protocol=ip_permission['IpProtocol'],
                from_port=ip_permission.get('FromPort'),
                to_port=ip_permission.get('ToPort'),
                peers=(Peer(kind, entry[id_key], description),),
                labels=labels_from_description(description),
            ))
    return infos
