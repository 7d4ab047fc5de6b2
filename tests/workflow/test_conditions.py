"""Tests for agentflow.workflow.conditions - edge gates and condition evaluators"""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentflow.rules import KeywordsRule
from agentflow.workflow import (
    ConditionWhen,
    EdgeCondition,
    EdgeConditionType,
    ExecutionContext,
    ExpressionConditionEvaluator,
    LLMConditionEvaluator,
    evaluate_edge_condition,
)


def _context(message="hello", last=None):
    context = ExecutionContext(message=message)
    if last is not None:
        context.record("Prev", last)
    return context


# =========================================================================
# evaluate_edge_condition
# =========================================================================


class TestEdgeConditions:

    def test_none_passes(self):
        assert evaluate_edge_condition(None, _context()) is True

    def test_should_use_rule(self):
        condition = EdgeCondition(type=EdgeConditionType.SHOULD_USE, rule=KeywordsRule(["help"]))
        assert evaluate_edge_condition(condition, _context("I need help")) is True
        assert evaluate_edge_condition(condition, _context("hi")) is False

    def test_should_use_without_rule_passes(self):
        condition = EdgeCondition(type=EdgeConditionType.SHOULD_USE)
        assert evaluate_edge_condition(condition, _context()) is True

    def test_result_success(self):
        condition = EdgeCondition(type=EdgeConditionType.RESULT, when=ConditionWhen.SUCCESS)
        assert evaluate_edge_condition(condition, _context(last={"response": "ok"})) is True
        assert evaluate_edge_condition(condition, _context(last={"error": "boom"})) is False
        assert evaluate_edge_condition(condition, _context()) is False

    def test_result_error(self):
        condition = EdgeCondition(type=EdgeConditionType.RESULT, when=ConditionWhen.ERROR)
        assert evaluate_edge_condition(condition, _context(last={"error": "boom"})) is True
        assert evaluate_edge_condition(condition, _context(last={"response": "ok"})) is False

    def test_result_always(self):
        condition = EdgeCondition(type=EdgeConditionType.RESULT, when=ConditionWhen.ALWAYS)
        assert evaluate_edge_condition(condition, _context()) is True

    def test_auto(self):
        always = EdgeCondition(type=EdgeConditionType.AUTO, when=ConditionWhen.ALWAYS)
        other = EdgeCondition(type=EdgeConditionType.AUTO, when=ConditionWhen.SUCCESS)
        assert evaluate_edge_condition(always, _context()) is True
        assert evaluate_edge_condition(other, _context()) is False

    def test_custom_passes_with_warning(self, caplog):
        condition = EdgeCondition(type=EdgeConditionType.CUSTOM, script="return true")
        with caplog.at_level(logging.WARNING):
            assert evaluate_edge_condition(condition, _context()) is True
        assert "not implemented" in caplog.text

    def test_unknown_type_passes(self):
        assert evaluate_edge_condition(EdgeCondition(type="semantic"), _context()) is True


# =========================================================================
# ExpressionConditionEvaluator
# =========================================================================


class TestExpressionConditionEvaluator:

    @pytest.fixture
    def evaluator(self):
        return ExpressionConditionEvaluator()

    def test_names(self, evaluator):
        context = _context("Yes please", last={"response": "a long answer"})
        assert evaluator.evaluate_sync("'yes' in lower(input_user)", context) is True
        assert evaluator.evaluate_sync("len(agent_response) > 100", context) is False
        assert evaluator.evaluate_sync("last_node == 'Prev'", context) is True

    def test_placeholders(self, evaluator):
        context = _context("yes")
        assert evaluator.evaluate_sync("{{ input_user }} == 'yes'", context) is True
        assert evaluator.evaluate_sync("\"{{ input_user }}\" == 'yes'", context) is True
        assert evaluator.evaluate_sync("'{{ input_user }}' == 'no'", context) is False

    def test_placeholder_with_quotes_in_value(self, evaluator):
        context = _context("it's fine")
        assert evaluator.evaluate_sync("'{{ input_user }}' == input_user", context) is True

    def test_extra_variables(self, evaluator):
        context = _context()
        assert evaluator.evaluate_sync("iteration < 3", context, {"iteration": 2}) is True
        assert evaluator.evaluate_sync("iteration < 3", context, {"iteration": 3}) is False

    def test_empty_is_false(self, evaluator):
        assert evaluator.evaluate_sync("", _context()) is False
        assert evaluator.evaluate_sync("   ", _context()) is False

    def test_errors_are_false(self, evaluator, caplog):
        with caplog.at_level(logging.WARNING):
            assert evaluator.evaluate_sync("undefined_name > 1", _context()) is False
        assert "Condition evaluation failed" in caplog.text

    def test_no_builtins(self, evaluator):
        assert evaluator.evaluate_sync("__import__('os')", _context()) is False
        assert evaluator.evaluate_sync("open('/etc/passwd')", _context()) is False

    @pytest.mark.asyncio
    async def test_async_interface(self, evaluator):
        assert await evaluator.evaluate("True", _context()) is True


# =========================================================================
# LLMConditionEvaluator
# =========================================================================


class TestLLMConditionEvaluator:

    @pytest.mark.parametrize("text,expected", [
        ("true", True),
        ("True.", True),
        ('"true"', True),
        ("false", False),
        ("I think it is true", False),
        ("", False),
    ])
    def test_parse_verdict(self, text, expected):
        assert LLMConditionEvaluator.parse_verdict(text) is expected

    @pytest.mark.asyncio
    async def test_asks_llm(self):
        llm = MagicMock()
        llm.chat_completion = AsyncMock(return_value=MagicMock(content="true"))
        evaluator = LLMConditionEvaluator(llm, model="gpt-4o-mini")

        result = await evaluator.evaluate("the user sounds happy", _context("great day!"))

        assert result is True
        kwargs = llm.chat_completion.call_args.kwargs
        assert kwargs["config"] == {"model": "gpt-4o-mini", "temperature": 0}
        prompt = kwargs["messages"][1]["content"]
        assert "the user sounds happy" in prompt
        assert "great day!" in prompt

    @pytest.mark.asyncio
    async def test_dict_response(self):
        llm = MagicMock()
        llm.chat_completion = AsyncMock(return_value={"content": "false"})
        evaluator = LLMConditionEvaluator(llm)
        assert await evaluator.evaluate("anything", _context()) is False

    @pytest.mark.asyncio
    async def test_falls_back_on_error(self):
        llm = MagicMock()
        llm.chat_completion = AsyncMock(side_effect=RuntimeError("rate limited"))
        evaluator = LLMConditionEvaluator(llm)
        assert await evaluator.evaluate("'hi' in input_user", _context("hi there")) is True

    @pytest.mark.asyncio
    async def test_empty_condition_skips_llm(self):
        llm = MagicMock()
        llm.chat_completion = AsyncMock()
        assert await LLMConditionEvaluator(llm).evaluate("", _context()) is False
        llm.chat_completion.assert_not_called()
