import unittest
from .ip_permission import (
    PEER_CIDR,
    PEER_PREFIX_LIST,
    PEER_SECURITY_GROUP,
    IPPermissionInfo,
    Peer,
    build_description_for_labels,
    from_ip_permission,
    labels_from_description,
    new_cidr_ip_permission,
    new_group_id_ip_permission,
)


class TestIPPermission(unittest.TestCase):
    def test_description_built_from_sorted_labels(self):
        """Test labels are rendered as sorted key=value pairs"""
        description = build_description_for_labels({"b": "2", "a": "1"})
        self.assertEqual(description, "a=1,b=2")

    def test_labels_parsed_from_description(self):
        """Test key=value components are parsed and free text is ignored"""
        labels = labels_from_description("aws.k8s.io/securitygroupingress=default/web,allow ssh,team=a=b")
        self.assertEqual(labels, {"aws.k8s.io/securitygroupingress": "default/web", "team": "a=b"})
        self.assertEqual(labels_from_description(""), {})

    def test_constructor_writes_label_description(self):
        """Test constructors derive the peer description from labels"""
        permission = new_cidr_ip_permission("tcp", 443, 443, "10.0.0.0/8", {"owner": "default/web"})
        self.assertEqual(permission.peers, (Peer(PEER_CIDR, "10.0.0.0/8", "owner=default/web"),))
        self.assertEqual(permission.labels, {"owner": "default/web"})

    def test_unknown_peer_kind_rejected(self):
        """Test constructing a peer with an unknown kind fails"""
        with self.assertRaises(ValueError):
            Peer("vpc", "vpc-123")

    def test_to_ip_permission_omits_labels(self):
        """Test the boto3 shape carries the description but not the labels"""
        permission = new_group_id_ip_permission("tcp", 5432, 5432, "sg-0aaaabbbbccccdddd", {"owner": "db"})
        self.assertEqual(permission.to_ip_permission(), {
            'IpProtocol': 'tcp',
            'FromPort': 5432,
            'ToPort': 5432,
            'UserIdGroupPairs': [{'GroupId': 'sg-0aaaabbbbccccdddd', 'Description': 'owner=db'}]
        })

    def test_to_ip_permission_all_ports(self):
        """Test ports are left out when the permission covers all ports"""
        permission = IPPermissionInfo("-1", None, None, (Peer(PEER_CIDR, "10.0.0.0/8"),))
        self.assertEqual(permission.to_ip_permission(), {
            'IpProtocol': '-1',
            'IpRanges': [{'CidrIp': '10.0.0.0/8'}]
        })

    def test_from_ip_permission_splits_peers(self):
        """Test one EC2 IpPermission becomes one permission per peer"""
        infos = from_ip_permission({
            'IpProtocol': 'tcp',
            'FromPort': 443,
            'ToPort': 443,
            'IpRanges': [
                {'CidrIp': '10.0.0.0/8', 'Description': 'owner=default/web'},
                {'CidrIp': '192.168.0.0/16'}
            ],
            'Ipv6Ranges': [],
            'PrefixListIds': [{'PrefixListId': 'pl-12345678'}],
            'UserIdGroupPairs': [{'GroupId': 'sg-0aaaabbbbccccdddd', 'UserId': '123456789012'}]
        })

        self.assertEqual(len(infos), 4)
        self.assertEqual(infos[0].labels, {"owner": "default/web"})
        self.assertEqual(infos[1].labels, {})
        kinds = sorted(info.peers[0].kind for info in infos)
        self.assertEqual(kinds, sorted([PEER_CIDR, PEER_CIDR, PEER_PREFIX_LIST, PEER_SECURITY_GROUP]))
        self.assertTrue(all(info.from_port == 443 and info.to_port == 443 for info in infos))

    def test_from_ip_permission_round_trips_constructor(self):
        """Test a rule read back from EC2 equals the rule that was granted"""
        permission = new_cidr_ip_permission("udp", 53, 53, "10.0.0.0/8", {"owner": "dns"})
        self.assertEqual(from_ip_permission(permission.to_ip_permission()), [permission])

    def test_labels_excluded_from_equality_and_hash(self):
        """Test permissions are hashable and labels do not affect equality"""
        peer = Peer(PEER_CIDR, "10.0.0.0/8", "owner=web")
        a = IPPermissionInfo("tcp", 22, 22, (peer,), {"owner": "web"})
        b = IPPermissionInfo("tcp", 22, 22, (peer,), {"team": "platform"})

        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))
        self.assertEqual(len({a, b}), 1)


if __name__ == '__main__':
    unittest.main()
