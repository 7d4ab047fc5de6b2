"""
AgentFlow Rule Models - Serializable selection rules

A rule is a boolean predicate over a chat message. Rules are plain data
(a tagged union) so they can be stored in agent/workflow files, edited by
an admin surface and evaluated by a pure function.

Serialized form (as found in agents.yaml / workflows.yaml):

    {"type": "keywords", "keywords": ["code", "bug"]}
    {"type": "regex", "pattern": "^fix\\b"}
    {"type": "complex", "operator": "AND", "rules": [...]}
    {"type": "default", "exclude": {"type": "keywords", "keywords": ["x"]}}
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Union

from ..errors import RuleEvaluationError

logger = logging.getLogger(__name__)


class RuleType(str, Enum):
    """Discriminator of the rule union"""
    KEYWORDS = "keywords"
    REGEX = "regex"
    COMPLEX = "complex"
    DEFAULT = "default"


class RuleOperator(str, Enum):
    """How a complex rule combines its children"""
    AND = "AND"
    OR = "OR"


@dataclass
class KeywordsRule:
    """Matches when any keyword is a case-insensitive substring of the message"""
    keywords: List[str] = field(default_factory=list)

    type = RuleType.KEYWORDS


@dataclass
class RegexRule:
    """
    Matches when the pattern is found anywhere in the message (case-insensitive).

    The pattern is compiled once here. An invalid pattern leaves
    ``compiled`` as None and the rule never matches.
    """
    pattern: Optional[str] = None
    compiled: Optional[Pattern[str]] = field(default=None, init=False, repr=False, compare=False)
    error: Optional[RuleEvaluationError] = field(default=None, init=False, repr=False, compare=False)

    type = RuleType.REGEX

    def __post_init__(self):
        if not self.pattern:
            return
        try:
            self.compiled = re.compile(self.pattern, re.IGNORECASE)
        except re.error as e:
            self.error = RuleEvaluationError(
                f"Invalid regex pattern '{self.pattern}': {e}", pattern=self.pattern
            )
            logger.warning(f"[Rules] {self.error} - rule will never match")


@dataclass
class ComplexRule:
    """Combines child rules with AND/OR. No children means no match."""
    rules: List["RuleNode"] = field(default_factory=list)
    operator: RuleOperator = RuleOperator.OR

    type = RuleType.COMPLEX


@dataclass
class DefaultRule:
    """Catch-all rule: matches unless the optional exclude rule matches"""
    exclude: Optional["RuleNode"] = None

    type = RuleType.DEFAULT


@dataclass
class UnknownRule:
    """Placeholder for unrecognised rule input. Never matches."""
    raw_type: Optional[str] = None

    type = None


RuleNode = Union[KeywordsRule, RegexRule, ComplexRule, DefaultRule, UnknownRule]


def parse_rule(data: Any) -> RuleNode:
    """
    Build a RuleNode from its dict form.

    Already-built rules are returned as-is. Anything unrecognised becomes an
    UnknownRule so that evaluation fails closed instead of raising.
    """
    if isinstance(data, (KeywordsRule, RegexRule, ComplexRule, DefaultRule, UnknownRule)):
        return data

    if not isinstance(data, dict):
        logger.warning(f"[Rules] Expected a rule mapping, got {type(data).__name__}")
        return UnknownRule(raw_type=None)

    rule_type = data.get("type")

    if rule_type == RuleType.KEYWORDS.value:
        keywords = data.get("keywords") or []
        if isinstance(keywords, str):
            keywords = [keywords]
        return KeywordsRule(keywords=[str(k) for k in keywords if k])

    if rule_type == RuleType.REGEX.value:
        return RegexRule(pattern=data.get("pattern"))

    if rule_type == RuleType.COMPLEX.value:
        operator = str(data.get("operator") or RuleOperator.OR.value).upper()
        if operator not in (RuleOperator.AND.value, RuleOperator.OR.value):
            logger.warning(f"[Rules] Unknown operator '{operator}', using OR")
            operator = RuleOperator.OR.value
        children = data.get("rules") or []
        return ComplexRule(
            rules=[parse_rule(child) for child in children],
            operator=RuleOperator(operator),
        )

    if rule_type == RuleType.DEFAULT.value:
        exclude = data.get("exclude")
        return DefaultRule(exclude=parse_rule(exclude) if exclude else None)

    logger.warning(f"[Rules] Unknown rule type '{rule_type}'")
    return UnknownRule(raw_type=rule_type)


def rule_to_dict(rule: RuleNode) -> Dict[str, Any]:
    """Convert a RuleNode back to its serialized dict form"""
    if isinstance(rule, KeywordsRule):
        return {"type": RuleType.KEYWORDS.value, "keywords": list(rule.keywords)}
    if isinstance(rule, RegexRule):
        return {"type": RuleType.REGEX.value, "pattern": rule.pattern}
    if isinstance(rule, ComplexRule):
        return {
            "type": RuleType.COMPLEX.value,
            "operator": rule.operator.value,
            "rules": [rule_to_dict(child) for child in rule.rules],
        }
    if isinstance(rule, DefaultRule):
        data: Dict[str, Any] = {"type": RuleType.DEFAULT.value}
        if rule.exclude is not None:
            data["exclude"] = rule_to_dict(rule.exclude)
        return data
    return {"type": rule.raw_type}
