"""PromQL parsing and label scoping."""
from .ast import Expr, LabelMatcher, VectorSelector, walk
from .parser import parse
from .scoping import inject_matchers, scope_expression, scope_labels, scope_rule_labels

__all__ = [
    "Expr",
    "LabelMatcher",
    "VectorSelector",
    "walk",
    "parse",
    "inject_matchers",
    "scope_expression",
    "scope_labels",
    "scope_rule_labels",
]
