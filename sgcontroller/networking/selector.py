from dataclasses import dataclass, field
from typing import Dict, Any, List, Mapping

OP_IN = "In"
OP_NOT_IN = "NotIn"
OP_EXISTS = "Exists"
OP_DOES_NOT_EXIST = "DoesNotExist"

_OPERATORS = (OP_IN, OP_NOT_IN, OP_EXISTS, OP_DOES_NOT_EXIST)


@dataclass(frozen=True)
class LabelRequirement:
    key: str
    operator: str
    values: tuple = ()

    def __post_init__(self):
        if self.operator not in _OPERATORS:
            raise ValueError(f"Unsupported label selector operator: {self.operator}")
        if self.operator in (OP_IN, OP_NOT_IN) and not self.values:
            raise ValueError(f"Operator {self.operator} requires at least one value for key {self.key}")

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == OP_EXISTS:
            return self.key in labels
        if self.operator == OP_DOES_NOT_EXIST:
            return self.key not in labels
        if self.operator == OP_IN:
            return self.key in labels and labels[self.key] in self.values
        return self.key not in labels or labels[self.key] not in self.values


@dataclass(frozen=True)
class LabelSelector:
    """
    Predicate over a label set, shaped like a Kubernetes LabelSelector.

    A selector without requirements matches everything.
    """
    match_labels: Dict[str, str] = field(default_factory=dict)
    match_expressions: List[LabelRequirement] = field(default_factory=list)

    @classmethod
    def everything(cls) -> "LabelSelector":
        return cls()

    @classmethod
    def from_dict(cls, selector: Dict[str, Any]) -> "LabelSelector":
        """
        Build a selector from its Kubernetes wire shape.

        Args:
            selector: dict with optional matchLabels and matchExpressions

        Raises:
            ValueError: If an expression is malformed
        """
        selector = selector or {}
        expressions = []
        for expression in selector.get('matchExpressions', []):
            try:
                expressions.append(LabelRequirement(
                    key=expression['key'],
                    operator=expression['operator'],
                    values=tuple(expression.get('values', [])),
                ))
            except KeyError as e:
                raise ValueError(f"Label selector expression missing field: {str(e)}")
        return cls(match_labels=dict(selector.get('matchLabels', {})), match_expressions=expressions)

    @property
    def empty(self) -> bool:
        return not self.match_labels and not self.match_expressions

    def matches(self, labels: Mapping[str, str]) -> bool:
        labels = labels or {}
        for key, value in self.match_labels.items():
            if labels.get(key) != value:
                return False
        return all(requirement.matches(labels) for requirement in self.match_expressions)
