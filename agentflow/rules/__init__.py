"""
AgentFlow Rules - Composable boolean rule language for agent selection

Rules decide whether an agent (or a workflow edge) applies to a message:
- keywords: any keyword is a case-insensitive substring
- regex: pattern search, case-insensitive
- complex: AND/OR over child rules
- default: catch-all with an optional exclusion

Example usage:
    from agentflow.rules import parse_rule, evaluate

    rule = parse_rule({"type": "keywords", "keywords": ["code"]})
    evaluate(rule, "fix this code")  # True
"""

from .models import (
    RuleType,
    RuleOperator,
    KeywordsRule,
    RegexRule,
    ComplexRule,
    DefaultRule,
    UnknownRule,
    RuleNode,
    parse_rule,
    rule_to_dict,
)
from .evaluator import evaluate, contains_any, matched_keywords

__all__ = [
    "RuleType",
    "RuleOperator",
    "KeywordsRule",
    "RegexRule",
    "ComplexRule",
    "DefaultRule",
    "UnknownRule",
    "RuleNode",
    "parse_rule",
    "rule_to_dict",
    "evaluate",
    "contains_any",
    "matched_keywords",
]
