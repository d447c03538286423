import threading
import unittest
from unittest.mock import MagicMock
from .errors import ReconcileCancelled
from .reconcile import ChangeSet, apply_changes, compute_changes, diff


def same(a, b):
    return a == b


class TestComputeChanges(unittest.TestCase):
    def test_diff_uses_comparator(self):
        """Test diff matches entries through the comparator, not identity"""
        result = diff(["A", "b"], ["a"], lambda x, y: x.lower() == y.lower())
        self.assertEqual(result, ["b"])

    def test_compute_changes_without_selector(self):
        """Test extra entries are revoked and missing entries granted"""
        changes = compute_changes([1, 2, 3], [2, 3, 4], same)
        self.assertEqual(changes, ChangeSet(to_revoke=[1], to_grant=[4]))

    def test_compute_changes_with_selector(self):
        """Test only selected extra entries are revoked while grants are unfiltered"""
        changes = compute_changes([1, 2, 3], [5], same, selects=lambda n: n % 2 == 1)
        self.assertEqual(changes.to_revoke, [1, 3])
        self.assertEqual(changes.to_grant, [5])

    def test_repeated_desired_entries_granted_once(self):
        """Test entries repeated in desired are granted a single time"""
        changes = compute_changes([1], [2, 2, 1, 2], same)
        self.assertEqual(changes.to_grant, [2])

    def test_empty_change_set(self):
        """Test identical inputs produce an empty change set"""
        self.assertTrue(compute_changes([1, 2], [2, 1], same).empty)
        self.assertFalse(ChangeSet(to_grant=[1]).empty)


class TestApplyChanges(unittest.TestCase):
    def setUp(self):
        self.calls = MagicMock()

    def test_no_calls_when_empty(self):
        """Test an empty change set calls neither revoke nor grant"""
        apply_changes("res-1", ChangeSet(), self.calls.revoke, self.calls.grant)
        self.assertEqual(self.calls.mock_calls, [])

    def test_revoke_runs_before_grant(self):
        """Test revoke is called before grant"""
        apply_changes("res-1", ChangeSet(to_revoke=["old"], to_grant=["new"]), self.calls.revoke, self.calls.grant)
        self.assertEqual([c[0] for c in self.calls.mock_calls], ["revoke", "grant"])
        self.calls.revoke.assert_called_once_with(["old"])
        self.calls.grant.assert_called_once_with(["new"])

    def test_only_grant_when_nothing_to_revoke(self):
        """Test revoke is not called with an empty list"""
        apply_changes("res-1", ChangeSet(to_grant=["new"]), self.calls.revoke, self.calls.grant)
        self.calls.revoke.assert_not_called()
        self.calls.grant.assert_called_once_with(["new"])

    def test_revoke_failure_skips_grant(self):
        """Test the revoke exception is raised unchanged and grant is skipped"""
        error = RuntimeError("boom")
        self.calls.revoke.side_effect = error

        with self.assertRaises(RuntimeError) as context:
            apply_changes("res-1", ChangeSet(to_revoke=["old"], to_grant=["new"]), self.calls.revoke, self.calls.grant)

        self.assertIs(context.exception, error)
        self.calls.grant.assert_not_called()

    def test_cancel_event_stops_before_mutation(self):
        """Test a set cancel event prevents any mutation"""
        cancel_event = threading.Event()
        cancel_event.set()

        with self.assertRaises(ReconcileCancelled):
            apply_changes("res-1", ChangeSet(to_revoke=["old"]), self.calls.revoke, self.calls.grant, cancel_event)

        self.assertEqual(self.calls.mock_calls, [])


if __name__ == '__main__':
    unittest.main()
