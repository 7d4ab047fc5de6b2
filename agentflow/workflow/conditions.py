"""
AgentFlow Workflow Conditions - Edge gates and if-else/while condition evaluation

Edge conditions (EdgeCondition on a WorkflowEdge):
- absent: always passes
- shouldUse: the rule is evaluated against the run's message
- result: always / success / error of the previous node
- auto: passes only when when=always
- custom: not implemented, passes with a warning

If-else and while conditions are Python boolean expressions evaluated with
no builtins and a fixed namespace:

    'help' in lower(input_user)
    len(agent_response) > 100 and last_node == 'Classifier'
    iteration < 3

``{{ name }}`` placeholders are replaced with quoted literals first, so
``"{{ input_user }}" == "yes"`` and ``{{ input_user }} == 'yes'`` both work.
"""

import logging
from typing import Dict, Any, Optional

from ..constants import VAR_AGENT_RESPONSE, VAR_INPUT_USER
from ..protocols import LLMClientProtocol
from ..rules import evaluate
from ..templates import substitute
from .models import ConditionWhen, EdgeCondition, EdgeConditionType, ExecutionContext

logger = logging.getLogger(__name__)


def evaluate_edge_condition(condition: Optional[EdgeCondition], context: ExecutionContext) -> bool:
    """
    Decide whether an edge may be traversed.

    Args:
        condition: The edge's condition (None means unconditional)
        context: Current run context

    Returns:
        True if the edge passes
    """
    if condition is None:
        return True

    if condition.type == EdgeConditionType.SHOULD_USE:
        if condition.rule is None:
            return True
        return evaluate(condition.rule, context.message)

    if condition.type == EdgeConditionType.RESULT:
        last = context.last_result
        if condition.when == ConditionWhen.SUCCESS:
            return last is not None and not _has_error(last)
        if condition.when == ConditionWhen.ERROR:
            return last is None or _has_error(last)
        return True

    if condition.type == EdgeConditionType.AUTO:
        return condition.when == ConditionWhen.ALWAYS

    if condition.type == EdgeConditionType.CUSTOM:
        logger.warning("Custom edge conditions are not implemented, edge passes")
        return True

    return True


def _has_error(result: Any) -> bool:
    if isinstance(result, dict):
        return bool(result.get("error"))
    return bool(getattr(result, "error", None))


def _lower(value: Any) -> str:
    return str(value if value is not None else "").lower()


def condition_variables(context: ExecutionContext, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Variables visible to a condition at the current point of a run"""
    variables: Dict[str, Any] = {
        VAR_INPUT_USER: context.message or "",
        VAR_AGENT_RESPONSE: context.last_response,
        "last_node": context.last_node or "",
        "iteration": context.variables.get("iteration", 0),
        "loop_count": context.variables.get("loop_count", 0),
    }
    if extra:
        variables.update(extra)
    return variables


class ExpressionConditionEvaluator:
    """
    Evaluates conditions as restricted Python expressions.

    Safe built-in functions available:
    len, str, int, float, bool, lower, any, all

    Example:
        evaluator = ExpressionConditionEvaluator()
        await evaluator.evaluate("'sim' in lower(input_user)", context)
    """

    SAFE_FUNCTIONS: Dict[str, Any] = {
        "len": len,
        "str": str,
        "int": int,
        "float": float,
        "bool": bool,
        "lower": _lower,
        "any": any,
        "all": all,
        "True": True,
        "False": False,
        "None": None,
    }

    def render(self, condition: str, variables: Dict[str, Any]) -> str:
        """Replace {{ name }} placeholders with quoted Python literals"""
        literals = {
            name: repr(value if isinstance(value, (int, float, bool)) else str(value))
            for name, value in variables.items()
            if value is not None
        }
        rendered = substitute(condition, literals)
        # A placeholder already wrapped in quotes would now be doubly quoted
        for name, literal in literals.items():
            if not isinstance(variables[name], str):
                continue
            for quote in ('"', "'"):
                rendered = rendered.replace(f"{quote}{literal}{quote}", literal)
        return rendered

    def evaluate_sync(
        self,
        condition: str,
        context: ExecutionContext,
        variables: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Evaluate a condition expression.

        Empty conditions are False. Errors are logged as warnings and
        evaluate to False.
        """
        if not condition or not condition.strip():
            return False

        names = condition_variables(context, variables)
        expression = self.render(condition, names)

        allowed_names = {
            **self.SAFE_FUNCTIONS,
            **names,
            "variables": dict(context.variables),
        }

        try:
            # Evaluate with restricted builtins
            result = eval(expression, {"__builtins__": {}}, allowed_names)
            return bool(result)
        except Exception as e:
            logger.warning(f"Condition evaluation failed: '{expression}' - {e}")
            return False

    async def evaluate(
        self,
        condition: str,
        context: ExecutionContext,
        variables: Optional[Dict[str, Any]] = None
    ) -> bool:
        return self.evaluate_sync(condition, context, variables)


CONDITION_EVALUATOR_PROMPT = """You evaluate logical conditions.

Given a condition and a context, decide whether the condition is TRUE or FALSE.

Rules:
- Answer with exactly "true" or "false", nothing else
- Use the context (user message, previous agent response, workflow variables)

Examples:
- Condition: "input_user contains 'yes'", user message "yes, please" -> true
- Condition: "agent_response has more than 100 characters", response "short" -> false"""


class LLMConditionEvaluator:
    """
    Asks an LLM for a true/false verdict on a natural-language condition.

    Falls back to the expression evaluator when the LLM call fails.

    Example:
        evaluator = LLMConditionEvaluator(llm_client)
        await evaluator.evaluate("the user sounds angry", context)
    """

    def __init__(
        self,
        llm_client: LLMClientProtocol,
        model: Optional[str] = None,
        fallback: Optional[ExpressionConditionEvaluator] = None
    ):
        self.llm_client = llm_client
        self.model = model
        self.fallback = fallback or ExpressionConditionEvaluator()

    def build_prompt(self, condition: str, context: ExecutionContext, variables: Dict[str, Any]) -> str:
        rendered = substitute(condition, {k: v for k, v in variables.items() if v is not None})
        return (
            f'Evaluate the following condition:\n\n'
            f'CONDITION: "{rendered}"\n\n'
            f'CONTEXT:\n'
            f'- User message (input_user): "{variables.get(VAR_INPUT_USER, "")}"\n'
            f'- Previous agent response (agent_response): "{variables.get(VAR_AGENT_RESPONSE, "")}"\n'
            f'- Last executed node: "{variables.get("last_node", "")}"\n'
            f'- Workflow variables: {context.variables}\n\n'
            f'Answer ONLY "true" or "false".'
        )

    @staticmethod
    def parse_verdict(text: str) -> bool:
        normalized = (text or "").strip().strip('"\'.').lower()
        return normalized == "true" or normalized.startswith("true")

    async def evaluate(
        self,
        condition: str,
        context: ExecutionContext,
        variables: Optional[Dict[str, Any]] = None
    ) -> bool:
        if not condition or not condition.strip():
            return False

        names = condition_variables(context, variables)
        messages = [
            {"role": "system", "content": CONDITION_EVALUATOR_PROMPT},
            {"role": "user", "content": self.build_prompt(condition, context, names)},
        ]
        config = {"model": self.model, "temperature": 0} if self.model else {"temperature": 0}

        try:
            response = await self.llm_client.chat_completion(messages=messages, config=config)
        except Exception as e:
            logger.warning(f"LLM condition evaluation failed, using expression evaluator: {e}")
            return self.fallback.evaluate_sync(condition, context, variables)

        content = getattr(response, "content", None)
        if content is None and isinstance(response, dict):
            content = response.get("content")
        verdict = self.parse_verdict(content or "")
        logger.debug(f"Condition '{condition}' -> {verdict} (LLM said {content!r})")
        return verdict
