"""
AgentFlow Rule Evaluator - Pure evaluation of selection rules against a message
"""

from typing import Iterable, List

from .models import (
    ComplexRule,
    DefaultRule,
    KeywordsRule,
    RegexRule,
    RuleNode,
    RuleOperator,
)


def evaluate(rule: RuleNode, message: str) -> bool:
    """
    Evaluate a rule against a message.

    Pure and side-effect free. Unknown rule types evaluate to False.

    Examples:
        evaluate(KeywordsRule(["code"]), "Fix this CODE")          # True
        evaluate(ComplexRule([], RuleOperator.AND), "anything")   # False
        evaluate(DefaultRule(exclude=KeywordsRule(["x"])), "x")   # False
    """
    message = message or ""

    if isinstance(rule, KeywordsRule):
        return contains_any(message, rule.keywords)

    if isinstance(rule, RegexRule):
        if rule.compiled is None:
            return False
        return rule.compiled.search(message) is not None

    if isinstance(rule, ComplexRule):
        if not rule.rules:
            return False
        if rule.operator == RuleOperator.AND:
            return all(evaluate(child, message) for child in rule.rules)
        return any(evaluate(child, message) for child in rule.rules)

    if isinstance(rule, DefaultRule):
        if rule.exclude is not None:
            return not evaluate(rule.exclude, message)
        return True

    return False


def contains_any(message: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring check, OR across keywords"""
    lower_message = (message or "").lower()
    return any(keyword and keyword.lower() in lower_message for keyword in keywords or [])


def matched_keywords(message: str, keywords: Iterable[str]) -> List[str]:
    """Return the keywords found in message, in keyword order"""
    lower_message = (message or "").lower()
    return [k for k in keywords if k and k.lower() in lower_message]
