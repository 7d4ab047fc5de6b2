"""Tests for agentflow.workflow.executor - graph traversal"""

import asyncio
import logging
from typing import Dict, List, Optional

import pytest

from agentflow.agents import AgentDefinition, AgentRegistry
from agentflow.errors import DispatchError
from agentflow.events import CollectingEventSink, WorkflowEventType
from agentflow.llm import LLMAgentProvider, LLMResponse
from agentflow.rules import KeywordsRule
from agentflow.workflow import (
    EdgeCondition,
    EdgeConditionType,
    ConditionWhen,
    NodeType,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowEngine,
    WorkflowNode,
)


# ── Test doubles ──


class FakeLLM:
    """Answers with a canned reply per system prompt, echoing otherwise"""

    def __init__(self, replies: Optional[Dict[str, str]] = None, fail: bool = False):
        self.replies = replies or {}
        self.fail = fail
        self.calls: List[List[Dict[str, str]]] = []

    async def chat_completion(self, messages, tools=None, config=None):
        self.calls.append(messages)
        if self.fail:
            raise RuntimeError("provider unavailable")
        system = messages[0]["content"] if messages[0]["role"] == "system" else ""
        return LLMResponse(content=self.replies.get(system, f"echo: {messages[-1]['content']}"))

    @property
    def system_prompts(self) -> List[str]:
        return [m[0]["content"] for m in self.calls if m[0]["role"] == "system"]


class DownProvider(LLMAgentProvider):
    """Provider that cannot set up some agents"""

    def __init__(self, llm, down, error=None):
        super().__init__(llm)
        self.down = set(down)
        self.error = error

    async def ensure_agent(self, definition):
        if definition.name in self.down:
            raise self.error or DispatchError("provider down", agent_name=definition.name)
        return await super().ensure_agent(definition)


def _registry(*agents):
    registry = AgentRegistry()
    registry.reload(list(agents) or [
        AgentDefinition(
            name="Translator",
            instructions="Translate to English: {{ input_user }}",
            model="gpt-4o-mini",
        )
    ])
    return registry


def _engine(registry=None, llm=None, **kwargs):
    llm = llm or FakeLLM()
    return WorkflowEngine(registry or _registry(), LLMAgentProvider(llm), **kwargs), llm


def _node(node_id, node_type, agent=None, **data):
    return WorkflowNode(id=node_id, type=node_type, agent_name=agent, data=data)


def _edge(source, target, condition=None, condition_id=None):
    return WorkflowEdge(
        id=f"{source}->{target}",
        source=source,
        target=target,
        condition=condition,
        condition_id=condition_id,
    )


def _translate_workflow():
    return WorkflowDefinition(
        id="translate",
        name="Translate",
        nodes=[
            _node("start", NodeType.START),
            _node("Agent", NodeType.AGENT, agent="Translator"),
            _node("end", NodeType.END),
        ],
        edges=[_edge("start", "Agent"), _edge("Agent", "end")],
    )


# =========================================================================
# Linear runs
# =========================================================================


class TestLinearRun:

    @pytest.mark.asyncio
    async def test_single_agent(self):
        engine, llm = _engine()
        outcome = await engine.run(_translate_workflow(), "bom dia")

        assert outcome.success is True
        assert outcome.path == ["Agent"]
        assert outcome.result["agent_name"] == "Translator"
        assert outcome.result["response"] == "echo: bom dia"
        assert outcome.result["success"] is True
        # Instructions were rendered with the user message
        assert llm.system_prompts == ["Translate to English: bom dia"]

    @pytest.mark.asyncio
    async def test_chain_passes_previous_response(self):
        registry = _registry(
            AgentDefinition(name="First", instructions="first"),
            AgentDefinition(name="Second", instructions="Improve: {{ agent_response }}"),
        )
        workflow = WorkflowDefinition(
            id="chain",
            name="Chain",
            nodes=[
                _node("start", NodeType.START),
                _node("A", NodeType.AGENT, agent="First"),
                _node("B", NodeType.AGENT, agent="Second"),
                _node("end", NodeType.END),
            ],
            edges=[_edge("start", "A"), _edge("A", "B"), _edge("B", "end")],
        )
        engine, llm = _engine(registry, FakeLLM({"first": "draft"}))

        outcome = await engine.run(workflow, "write a poem")

        assert outcome.path == ["A", "B"]
        assert llm.system_prompts == ["first", "Improve: draft"]
        assert [h.node_id for h in outcome.context.history] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_start_straight_to_end(self):
        workflow = WorkflowDefinition(
            id="empty",
            name="Empty",
            nodes=[_node("start", NodeType.START), _node("end", NodeType.END)],
            edges=[_edge("start", "end")],
        )
        engine, _ = _engine()
        outcome = await engine.run(workflow, "hi")
        assert outcome.success is True
        assert outcome.path == []
        assert outcome.result is None

    @pytest.mark.asyncio
    async def test_stops_without_outgoing_edge(self):
        workflow = _translate_workflow()
        workflow.edges = workflow.edges[:1]
        engine, _ = _engine()
        outcome = await engine.run(workflow, "hi")
        assert outcome.success is True
        assert outcome.path == ["Agent"]

    @pytest.mark.asyncio
    async def test_start_edge_conditions(self):
        registry = _registry(
            AgentDefinition(name="Helper", instructions="help"),
            AgentDefinition(name="Other", instructions="other"),
        )
        workflow = WorkflowDefinition(
            id="w",
            name="W",
            nodes=[
                _node("start", NodeType.START),
                _node("A", NodeType.AGENT, agent="Other"),
                _node("B", NodeType.AGENT, agent="Helper"),
            ],
            edges=[
                _edge("start", "A", EdgeCondition(EdgeConditionType.SHOULD_USE, rule=KeywordsRule(["zzz"]))),
                _edge("start", "B", EdgeCondition(EdgeConditionType.SHOULD_USE, rule=KeywordsRule(["help"]))),
            ],
        )
        engine, _ = _engine(registry)

        assert (await engine.run(workflow, "help me")).path == ["B"]
        # Nothing matches: first start edge
        assert (await engine.run(workflow, "hello")).path == ["A"]

    @pytest.mark.asyncio
    async def test_result_edges_route_failures(self):
        registry = _registry(
            AgentDefinition(name="Worker", instructions="work"),
            AgentDefinition(name="Apologizer", instructions="sorry"),
            AgentDefinition(name="Reporter", instructions="report"),
        )
        workflow = WorkflowDefinition(
            id="w",
            name="W",
            nodes=[
                _node("start", NodeType.START),
                _node("work", NodeType.AGENT, agent="Worker"),
                _node("ok", NodeType.AGENT, agent="Reporter"),
                _node("failed", NodeType.AGENT, agent="Apologizer"),
            ],
            edges=[
                _edge("start", "work"),
                _edge("work", "ok", EdgeCondition(EdgeConditionType.RESULT, when=ConditionWhen.SUCCESS)),
                _edge("work", "failed", EdgeCondition(EdgeConditionType.RESULT, when=ConditionWhen.ERROR)),
            ],
        )
        engine, _ = _engine(registry)
        assert (await engine.run(workflow, "go")).path == ["work", "ok"]

        failing, _ = _engine(registry, FakeLLM(fail=True))
        assert (await failing.run(workflow, "go")).path == ["work", "failed"]


# =========================================================================
# Failures
# =========================================================================


class TestFailures:

    @pytest.mark.asyncio
    async def test_loop_guard(self):
        workflow = WorkflowDefinition(
            id="loop",
            name="Loop",
            nodes=[_node("start", NodeType.START), _node("Agent", NodeType.AGENT, agent="Translator")],
            edges=[_edge("start", "Agent"), _edge("Agent", "Agent")],
        )
        engine, _ = _engine()

        outcome = await engine.run(workflow, "again")

        assert outcome.success is False
        assert outcome.error_type == "ExecutionLoopError"
        assert "Infinite loop" in outcome.error
        assert len(outcome.path) == 100

    @pytest.mark.asyncio
    async def test_two_node_cycle(self):
        registry = _registry(
            AgentDefinition(name="Writer", instructions="write"),
            AgentDefinition(name="Critic", instructions="critique"),
        )
        workflow = WorkflowDefinition(
            id="cycle",
            name="Cycle",
            nodes=[
                _node("start", NodeType.START),
                _node("A", NodeType.AGENT, agent="Writer"),
                _node("B", NodeType.AGENT, agent="Critic"),
            ],
            edges=[_edge("start", "A"), _edge("A", "B"), _edge("B", "A")],
        )
        engine, llm = _engine(registry)

        outcome = await engine.run(workflow, "draft")

        assert outcome.error_type == "ExecutionLoopError"
        assert len(outcome.path) == 100
        assert outcome.path[:3] == ["A", "B", "A"]
        assert len(llm.calls) == 100

    @pytest.mark.asyncio
    async def test_custom_step_budget(self):
        workflow = WorkflowDefinition(
            id="loop",
            name="Loop",
            nodes=[_node("start", NodeType.START), _node("Agent", NodeType.AGENT, agent="Translator")],
            edges=[_edge("start", "Agent"), _edge("Agent", "Agent")],
        )
        engine, _ = _engine(max_executions=3)
        outcome = await engine.run(workflow, "again")
        assert outcome.path == ["Agent", "Agent", "Agent"]
        assert outcome.error_type == "ExecutionLoopError"

    @pytest.mark.asyncio
    async def test_invalid_graph(self):
        workflow = WorkflowDefinition(id="bad", name="Bad", nodes=[_node("end", NodeType.END)])
        engine, llm = _engine()

        outcome = await engine.run(workflow, "hi")

        assert outcome.success is False
        assert outcome.error_type == "WorkflowValidationError"
        assert "no start node" in outcome.error
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_unknown_agent(self):
        workflow = _translate_workflow()
        workflow.nodes[1].agent_name = "Ghost"
        engine, _ = _engine()

        outcome = await engine.run(workflow, "hi")

        assert outcome.success is False
        assert outcome.error_type == "ConfigurationError"
        assert "Ghost" in outcome.error
        assert outcome.path == ["Agent"]

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_reported_not_raised(self):
        engine, _ = _engine(llm=FakeLLM(fail=True))
        outcome = await engine.run(_translate_workflow(), "hi")

        assert outcome.success is True
        assert outcome.result["success"] is False
        assert "provider unavailable" in outcome.result["error"]
        assert outcome.result["response"] == ""

    @pytest.mark.asyncio
    async def test_ensure_agent_failure_follows_error_edge(self):
        registry = _registry(
            AgentDefinition(name="Worker", instructions="work"),
            AgentDefinition(name="Apologizer", instructions="sorry"),
        )
        workflow = WorkflowDefinition(
            id="w",
            name="W",
            nodes=[
                _node("start", NodeType.START),
                _node("work", NodeType.AGENT, agent="Worker"),
                _node("failed", NodeType.AGENT, agent="Apologizer"),
                _node("end", NodeType.END),
            ],
            edges=[
                _edge("start", "work"),
                _edge("work", "failed", EdgeCondition(EdgeConditionType.RESULT, when=ConditionWhen.ERROR)),
                _edge("failed", "end"),
            ],
        )
        llm = FakeLLM()
        engine = WorkflowEngine(registry, DownProvider(llm, {"Worker"}))

        outcome = await engine.run(workflow, "go")

        assert outcome.success is True
        assert outcome.path == ["work", "failed"]
        first = outcome.context.history[0].result
        assert first["success"] is False
        assert first["error"] == "provider down"
        assert llm.system_prompts == ["sorry"]

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_is_recorded(self):
        engine = WorkflowEngine(
            _registry(),
            DownProvider(FakeLLM(), {"Translator"}, error=ValueError("bad handle")),
        )
        outcome = await engine.run(_translate_workflow(), "hi")

        assert outcome.success is True
        assert outcome.result["success"] is False
        assert outcome.result["error"] == "ValueError: bad handle"


# =========================================================================
# If-else
# =========================================================================


def _branch_workflow(conditions, edges):
    return WorkflowDefinition(
        id="branching",
        name="Branching",
        nodes=[
            _node("start", NodeType.START),
            _node("classify", NodeType.AGENT, agent="Classifier"),
            _node("branch", NodeType.IF_ELSE, config={"conditions": conditions}),
            _node("urgent", NodeType.AGENT, agent="Urgent"),
            _node("normal", NodeType.AGENT, agent="Normal"),
            _node("end", NodeType.END),
        ],
        edges=[
            _edge("start", "classify"),
            _edge("classify", "branch"),
            *edges,
            _edge("urgent", "end"),
            _edge("normal", "end"),
        ],
    )


@pytest.fixture
def branch_registry():
    return _registry(
        AgentDefinition(name="Classifier", instructions="classify"),
        AgentDefinition(name="Urgent", instructions="Escalate: {{ agent_response }}"),
        AgentDefinition(name="Normal", instructions="normal"),
    )


class TestIfElse:

    @pytest.mark.asyncio
    async def test_matched_condition(self, branch_registry):
        workflow = _branch_workflow(
            [{"id": "c1", "condition": "'urgent' in agent_response", "caseName": "Urgent"}],
            [_edge("branch", "urgent", condition_id="c1"), _edge("branch", "normal", condition_id="else")],
        )
        engine, llm = _engine(branch_registry, FakeLLM({"classify": "urgent ticket"}))

        outcome = await engine.run(workflow, "server down")

        assert outcome.path == ["classify", "branch", "urgent"]
        branch_result = outcome.context.history[1].result
        assert branch_result["matched_condition"] == "c1"
        assert branch_result["case_name"] == "Urgent"
        # The routing node keeps the classifier response for the next agent
        assert llm.system_prompts[-1] == "Escalate: urgent ticket"

    @pytest.mark.asyncio
    async def test_else_branch(self, branch_registry):
        workflow = _branch_workflow(
            [{"id": "c1", "condition": "'urgent' in agent_response"}],
            [_edge("branch", "urgent", condition_id="c1"), _edge("branch", "normal", condition_id="else")],
        )
        engine, _ = _engine(branch_registry, FakeLLM({"classify": "routine"}))

        outcome = await engine.run(workflow, "question")

        assert outcome.path == ["classify", "branch", "normal"]
        assert outcome.context.history[1].result["condition_met"] is False

    @pytest.mark.asyncio
    async def test_first_matching_condition_wins(self, branch_registry):
        workflow = _branch_workflow(
            [
                {"id": "c1", "condition": "'server' in input_user"},
                {"id": "c2", "condition": "True"},
            ],
            [_edge("branch", "normal", condition_id="c2"), _edge("branch", "urgent", condition_id="c1")],
        )
        engine, _ = _engine(branch_registry)
        outcome = await engine.run(workflow, "server down")
        assert outcome.path[-1] == "urgent"

    @pytest.mark.asyncio
    async def test_condition_without_edge_is_skipped(self, branch_registry, caplog):
        workflow = _branch_workflow(
            [{"id": "c1", "condition": "True"}, {"id": "c2", "condition": "True"}],
            [_edge("branch", "urgent", condition_id="c2")],
        )
        engine, _ = _engine(branch_registry)
        with caplog.at_level(logging.WARNING):
            outcome = await engine.run(workflow, "x")
        assert outcome.context.history[1].result["matched_condition"] == "c2"
        assert "matched but has no edge" in caplog.text

    @pytest.mark.asyncio
    async def test_no_else_edge_uses_first_edge(self, branch_registry, caplog):
        workflow = _branch_workflow(
            [{"id": "c1", "condition": "False"}],
            [_edge("branch", "normal", condition_id="c1"), _edge("branch", "urgent")],
        )
        engine, _ = _engine(branch_registry)
        with caplog.at_level(logging.WARNING):
            outcome = await engine.run(workflow, "x")
        assert outcome.path == ["classify", "branch", "normal"]
        assert "has no else edge" in caplog.text


# =========================================================================
# While
# =========================================================================


def _while_workflow(condition, max_iterations=None, steps=("step",)):
    loop = {"condition": condition, "steps": list(steps)}
    if max_iterations is not None:
        loop["maxIterations"] = max_iterations
    return WorkflowDefinition(
        id="looping",
        name="Looping",
        nodes=[
            _node("start", NodeType.START),
            _node("loop", NodeType.WHILE, config={"while": loop}),
            _node("step", NodeType.AGENT, agent="Translator"),
            _node("end", NodeType.END),
        ],
        edges=[_edge("start", "loop"), _edge("loop", "end")],
    )


class TestWhile:

    @pytest.mark.asyncio
    async def test_runs_until_condition_false(self):
        engine, llm = _engine()
        outcome = await engine.run(_while_workflow("iteration <= 2"), "hi")

        result = outcome.result
        assert outcome.path == ["loop"]
        assert result["type"] == "while"
        assert result["completed"] is True
        assert result["stopped_by_limit"] is False
        assert len(result["results"]) == 2
        assert len(llm.calls) == 2
        # Step runs are recorded in the history before the while node itself
        assert [h.node_id for h in outcome.context.history] == ["step", "step", "loop"]

    @pytest.mark.asyncio
    async def test_stops_at_limit(self):
        engine, llm = _engine()
        outcome = await engine.run(_while_workflow("True", max_iterations=3), "hi")

        result = outcome.result
        assert result["iterations"] == 3
        assert result["stopped_by_limit"] is True
        assert result["completed"] is False
        assert len(llm.calls) == 3

    @pytest.mark.asyncio
    async def test_missing_step_recorded(self):
        engine, _ = _engine()
        outcome = await engine.run(_while_workflow("iteration == 1", steps=("ghost",)), "hi")

        step_results = outcome.result["results"][0]["step_results"]
        assert step_results == [{
            "step_id": "ghost",
            "iteration": 1,
            "executed": False,
            "error": "Step not found",
        }]
        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_missing_condition_fails_validation(self):
        engine, _ = _engine()
        outcome = await engine.run(_while_workflow(""), "hi")
        assert outcome.success is False
        assert outcome.error_type == "WorkflowValidationError"

    @pytest.mark.asyncio
    async def test_self_referencing_step_fails_validation(self):
        engine, llm = _engine()
        outcome = await asyncio.wait_for(
            engine.run(_while_workflow("True", max_iterations=3, steps=("loop",)), "hi"),
            timeout=5,
        )
        assert outcome.success is False
        assert outcome.error_type == "WorkflowValidationError"
        assert "cannot run while node 'loop'" in outcome.error
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_steps_draw_on_run_budget(self):
        engine, llm = _engine(max_executions=5)
        outcome = await engine.run(_while_workflow("True", max_iterations=50), "hi")

        assert outcome.success is False
        assert outcome.error_type == "ExecutionLoopError"
        assert outcome.path == ["loop"]
        # One step for the while node itself, four for its loop body
        assert len(llm.calls) == 4
        assert outcome.context.steps == 5

    @pytest.mark.asyncio
    async def test_steps_counted_on_context(self):
        engine, _ = _engine()
        outcome = await engine.run(_while_workflow("iteration <= 2"), "hi")
        assert outcome.context.steps == 3


# =========================================================================
# Other node types and events
# =========================================================================


class TestNodesAndEvents:

    @pytest.mark.asyncio
    async def test_bookkeeping_nodes(self):
        workflow = WorkflowDefinition(
            id="misc",
            name="Misc",
            nodes=[
                _node("start", NodeType.START),
                _node("Agent", NodeType.AGENT, agent="Translator"),
                _node("approve", NodeType.USER_APPROVAL),
                _node("check", NodeType.CONDITION, condition="anything"),
                _node("join", NodeType.MERGE),
                _node("end", NodeType.END),
            ],
            edges=[
                _edge("start", "Agent"),
                _edge("Agent", "approve"),
                _edge("approve", "check"),
                _edge("check", "join"),
                _edge("join", "end"),
            ],
        )
        engine, _ = _engine()
        outcome = await engine.run(workflow, "hi")

        assert outcome.path == ["Agent", "approve", "check", "join"]
        history = outcome.context.history
        assert history[1].result["response"] == "echo: hi"
        assert history[2].result == {"type": "condition", "evaluated": True, "condition": "anything"}
        assert outcome.result["merged"] is True
        assert len(outcome.result["results"]) == 3

    @pytest.mark.asyncio
    async def test_event_sequence(self):
        sink = CollectingEventSink()
        engine, _ = _engine(event_sink=sink)

        await engine.run(_translate_workflow(), "hi")

        assert [e.type for e in sink.events] == [
            WorkflowEventType.WORKFLOW_START,
            WorkflowEventType.EDGE_EVALUATED,
            WorkflowEventType.NODE_STARTED,
            WorkflowEventType.NODE_COMPLETED,
            WorkflowEventType.EDGE_EVALUATED,
            WorkflowEventType.WORKFLOW_END,
        ]
        assert all(e.workflow_id == "translate" for e in sink.events)
        assert sink.events[-1].data["path"] == ["Agent"]

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_break_run(self):
        class BrokenSink:
            def emit(self, event):
                raise RuntimeError("sink down")

        engine, _ = _engine(event_sink=BrokenSink())
        outcome = await engine.run(_translate_workflow(), "hi")
        assert outcome.success is True
