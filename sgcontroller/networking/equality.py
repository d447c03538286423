from typing import List

from .ip_permission import IPPermissionInfo, Peer
from .reconcile import diff


def compare_peer(a: Peer, b: Peer) -> bool:
    return a.kind == b.kind and a.value == b.value and a.description == b.description


def _peer_key(peer: Peer):
    return (peer.kind, peer.value, peer.description)


def compare_ip_permission(a: IPPermissionInfo, b: IPPermissionInfo) -> bool:
    """
    Decide whether two permissions denote the same rule.

    Only protocol, port range and peers are significant. Peer order is not.
    Labels are not consulted.
    """
    if a.protocol != b.protocol:
        return False
    if a.from_port != b.from_port or a.to_port != b.to_port:
        return False
    if len(a.peers) != len(b.peers):
        return False
    a_peers = sorted(a.peers, key=_peer_key)
    b_peers = sorted(b.peers, key=_peer_key)
    return all(compare_peer(x, y) for x, y in zip(a_peers, b_peers))


def same_ec2_rule(a: IPPermissionInfo, b: IPPermissionInfo) -> bool:
    """
    Decide whether EC2 would treat two permissions as the same rule.

    EC2 ignores peer descriptions, so rules owned by different objects can
    still collide.
    """
    if a.protocol != b.protocol or a.from_port != b.from_port or a.to_port != b.to_port:
        return False
    return sorted((p.kind, p.value) for p in a.peers) == sorted((p.kind, p.value) for p in b.peers)


def diff_ip_permissions(source: List[IPPermissionInfo], target: List[IPPermissionInfo]) -> List[IPPermissionInfo]:
    """Permissions in source with no equal permission in target."""
    return diff(source, target, compare_ip_permission)
