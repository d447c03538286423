import unittest
from .selector import LabelSelector


class TestLabelSelector(unittest.TestCase):
    def test_everything_matches_any_labels(self):
        """Test the default selector matches labelled and unlabelled sets"""
        selector = LabelSelector.everything()
        self.assertTrue(selector.empty)
        self.assertTrue(selector.matches({}))
        self.assertTrue(selector.matches(None))
        self.assertTrue(selector.matches({"owner": "x"}))

    def test_match_labels(self):
        """Test matchLabels requires every key to have the given value"""
        selector = LabelSelector(match_labels={"owner": "default/web", "tier": "edge"})
        self.assertTrue(selector.matches({"owner": "default/web", "tier": "edge", "extra": "1"}))
        self.assertFalse(selector.matches({"owner": "default/web"}))
        self.assertFalse(selector.matches({"owner": "default/api", "tier": "edge"}))

    def test_from_dict_expressions(self):
        """Test matchExpressions operators parsed from the Kubernetes shape"""
        selector = LabelSelector.from_dict({
            "matchExpressions": [
                {"key": "owner", "operator": "Exists"},
                {"key": "tier", "operator": "In", "values": ["edge", "internal"]},
                {"key": "env", "operator": "NotIn", "values": ["prod"]},
                {"key": "legacy", "operator": "DoesNotExist"},
            ]
        })
        self.assertFalse(selector.empty)
        self.assertTrue(selector.matches({"owner": "a", "tier": "edge"}))
        self.assertTrue(selector.matches({"owner": "a", "tier": "internal", "env": "dev"}))
        self.assertFalse(selector.matches({"tier": "edge"}))
        self.assertFalse(selector.matches({"owner": "a", "tier": "public"}))
        self.assertFalse(selector.matches({"owner": "a", "tier": "edge", "env": "prod"}))
        self.assertFalse(selector.matches({"owner": "a", "tier": "edge", "legacy": "true"}))

    def test_from_dict_rejects_invalid_expressions(self):
        """Test unknown operators and missing values are rejected"""
        with self.assertRaises(ValueError):
            LabelSelector.from_dict({"matchExpressions": [{"key": "a", "operator": "Gt", "values": ["1"]}]})
        with self.assertRaises(ValueError):
            LabelSelector.from_dict({"matchExpressions": [{"key": "a", "operator": "In"}]})
        with self.assertRaises(ValueError):
            LabelSelector.from_dict({"matchExpressions": [{"operator": "Exists"}]})

    def test_from_dict_none(self):
        """Test an absent selector selects everything"""
        self.assertTrue(LabelSelector.from_dict(None).empty)


if __name__ == '__main__':
    unittest.main()
