import unittest
from .equality import compare_ip_permission, diff_ip_permissions, same_ec2_rule
from .ip_permission import (
    PEER_CIDR,
    PEER_SECURITY_GROUP,
    IPPermissionInfo,
    Peer,
    new_cidr_ip_permission,
    new_cidr_v6_ip_permission,
)


class TestCompareIPPermission(unittest.TestCase):
    def test_labels_are_ignored(self):
        """Test permissions differing only in labels are equal"""
        peer = Peer(PEER_CIDR, "10.0.0.0/8")
        a = IPPermissionInfo("tcp", 80, 80, (peer,), {"owner": "a"})
        b = IPPermissionInfo("tcp", 80, 80, (peer,), {"owner": "b"})
        self.assertTrue(compare_ip_permission(a, b))

    def test_description_is_significant(self):
        """Test a different peer description makes permissions different"""
        a = IPPermissionInfo("tcp", 80, 80, (Peer(PEER_CIDR, "10.0.0.0/8", "web"),))
        b = IPPermissionInfo("tcp", 80, 80, (Peer(PEER_CIDR, "10.0.0.0/8", "api"),))
        self.assertFalse(compare_ip_permission(a, b))

    def test_protocol_and_ports_are_significant(self):
        """Test protocol, from port and to port each take part in equality"""
        base = new_cidr_ip_permission("tcp", 80, 80, "10.0.0.0/8")
        self.assertFalse(compare_ip_permission(base, new_cidr_ip_permission("udp", 80, 80, "10.0.0.0/8")))
        self.assertFalse(compare_ip_permission(base, new_cidr_ip_permission("tcp", 81, 81, "10.0.0.0/8")))
        self.assertFalse(compare_ip_permission(base, new_cidr_ip_permission("tcp", 80, 81, "10.0.0.0/8")))

    def test_absent_port_ranges_are_equal(self):
        """Test two all-ports permissions compare equal"""
        a = new_cidr_ip_permission("-1", None, None, "10.0.0.0/8")
        b = new_cidr_ip_permission("-1", None, None, "10.0.0.0/8")
        self.assertTrue(compare_ip_permission(a, b))
        self.assertFalse(compare_ip_permission(a, new_cidr_ip_permission("-1", 0, None, "10.0.0.0/8")))

    def test_peer_kind_is_significant(self):
        """Test an IPv4 and IPv6 peer never compare equal"""
        a = new_cidr_ip_permission("tcp", 80, 80, "::/0")
        b = new_cidr_v6_ip_permission("tcp", 80, 80, "::/0")
        self.assertFalse(compare_ip_permission(a, b))

    def test_peer_order_is_ignored(self):
        """Test permissions with the same peers in a different order are equal"""
        cidr = Peer(PEER_CIDR, "10.0.0.0/8")
        group = Peer(PEER_SECURITY_GROUP, "sg-0aaaabbbbccccdddd")
        a = IPPermissionInfo("tcp", 80, 80, (cidr, group))
        b = IPPermissionInfo("tcp", 80, 80, (group, cidr))
        self.assertTrue(compare_ip_permission(a, b))
        self.assertFalse(compare_ip_permission(a, IPPermissionInfo("tcp", 80, 80, (cidr,))))


class TestDiffIPPermissions(unittest.TestCase):
    def setUp(self):
        self.ssh = new_cidr_ip_permission("tcp", 22, 22, "10.0.0.0/8")
        self.http = new_cidr_ip_permission("tcp", 80, 80, "0.0.0.0/0")
        self.https = new_cidr_ip_permission("tcp", 443, 443, "0.0.0.0/0")

    def test_diff_returns_unmatched_source_entries(self):
        """Test diff keeps every source entry with no equal target entry"""
        self.assertEqual(diff_ip_permissions([self.ssh, self.http, self.https], [self.http]), [self.ssh, self.https])

    def test_diff_against_empty_target(self):
        """Test diff against nothing returns the whole source"""
        self.assertEqual(diff_ip_permissions([self.ssh], []), [self.ssh])
        self.assertEqual(diff_ip_permissions([], [self.ssh]), [])

    def test_diff_is_repeatable(self):
        """Test calling diff twice gives the same result and leaves inputs untouched"""
        source = [self.ssh, self.https]
        target = [self.https]
        first = diff_ip_permissions(source, target)
        second = diff_ip_permissions(source, target)
        self.assertEqual(first, second)
        self.assertEqual(source, [self.ssh, self.https])
        self.assertEqual(target, [self.https])


class TestSameEC2Rule(unittest.TestCase):
    def test_description_is_ignored(self):
        """Test rules differing only in description are the same EC2 rule"""
        a = IPPermissionInfo("tcp", 80, 80, (Peer(PEER_CIDR, "10.0.0.0/8", "web"),))
        b = IPPermissionInfo("tcp", 80, 80, (Peer(PEER_CIDR, "10.0.0.0/8", "api"),))
        self.assertTrue(same_ec2_rule(a, b))
        self.assertFalse(compare_ip_permission(a, b))

    def test_peer_and_ports_are_significant(self):
        """Test peer value, peer kind and port range distinguish EC2 rules"""
        base = new_cidr_ip_permission("tcp", 80, 80, "10.0.0.0/8")
        self.assertFalse(same_ec2_rule(base, new_cidr_ip_permission("tcp", 80, 80, "10.0.0.0/16")))
        self.assertFalse(same_ec2_rule(base, new_cidr_ip_permission("tcp", 80, 81, "10.0.0.0/8")))
        self.assertFalse(same_ec2_rule(base, IPPermissionInfo("tcp", 80, 80, (Peer(PEER_SECURITY_GROUP, "10.0.0.0/8"),))))


if __name__ == '__main__':
    unittest.main()
