"""
AgentFlow Template Processor - Placeholder substitution for agent instructions

Replaces ``{{ name }}`` placeholders (spaces optional) with values from a
variable map. Reserved variables:
- {{ input_user }}: the current user message
- {{ agent_response }}: the previous agent's response (workflows only)

Unknown placeholders, and placeholders whose value is None, are left as-is.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from .constants import VAR_AGENT_RESPONSE, VAR_INPUT_USER

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def substitute(template: Any, variables: Mapping[str, Optional[Any]]) -> Any:
    """
    Substitute variables into a template string.

    Args:
        template: Template with {{ variable }} placeholders
        variables: Variable name -> value

    Returns:
        The processed string (non-string templates are returned unchanged)

    Example:
        substitute("Hello {{ input_user }}!", {"input_user": "Ana"})
        # "Hello Ana!"
    """
    if not template or not isinstance(template, str):
        return template

    replaced: List[str] = []

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = variables.get(name)
        if value is None:
            return match.group(0)
        replaced.append(name)
        return str(value)

    result = _PLACEHOLDER.sub(_replace, template)

    if replaced:
        logger.debug(f"[Templates] Substituted {sorted(set(replaced))} in template ({len(template)} chars)")

    return result


def extract_variables(template: Any) -> List[str]:
    """
    Return the distinct placeholder names in a template, in order.

    Example:
        extract_variables("{{ input_user }} and {{ other }}")
        # ["input_user", "other"]
    """
    if not template or not isinstance(template, str):
        return []

    names: List[str] = []
    for match in _PLACEHOLDER.finditer(template):
        name = match.group(1)
        if name not in names:
            names.append(name)
    return names


def chain_variables(message: str, previous_response: Optional[str] = None) -> Dict[str, str]:
    """Build the reserved variable map for one step of an agent chain"""
    return {
        VAR_INPUT_USER: message or "",
        VAR_AGENT_RESPONSE: previous_response or "",
    }
