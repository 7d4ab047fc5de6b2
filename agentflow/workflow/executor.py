"""
AgentFlow Workflow Executor - Bounded graph traversal over a workflow

The engine walks a WorkflowDefinition from its start node:
1. Validate the graph and pick the first node (first start edge whose
   condition passes, else the first start edge)
2. Execute the current node, record it in the run history
3. Resolve the next edge (if-else branches by condition, other nodes by
   the first passing edge)
4. Stop at an end node, when no edge applies, or when the step budget
   (MAX_EXECUTIONS) runs out. Steps run inside while nodes draw on the
   same budget.

Errors never escape run(): they are reported in the WorkflowExecutionResult.
"""

import dataclasses
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from ..agents.registry import AgentRegistry, RegistrySnapshot
from ..constants import MAX_EXECUTIONS
from ..errors import ConfigurationError, DispatchError, ExecutionLoopError
from ..events import WorkflowEvent, WorkflowEventType, emit_safely
from ..llm.base import DispatchResult
from ..protocols import ConditionEvaluatorProtocol, EventSinkProtocol, LLMProviderProtocol
from ..templates import substitute
from .conditions import ExpressionConditionEvaluator, evaluate_edge_condition
from .loader import WorkflowValidationError
from .models import (
    ExecutionContext,
    IfElseCondition,
    NodeType,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowExecutionResult,
    WorkflowNode,
)

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """
    Executes workflow graphs.

    Example usage:
        engine = WorkflowEngine(
            registry=registry,
            provider=LLMAgentProvider(LiteLLMClient(model="gpt-4o-mini")),
            event_sink=LoggingEventSink(),
        )

        result = await engine.run(workflow, "hello")
        if result.success:
            print(result.result["response"])
    """

    def __init__(
        self,
        registry: AgentRegistry,
        provider: LLMProviderProtocol,
        condition_evaluator: Optional[ConditionEvaluatorProtocol] = None,
        event_sink: Optional[EventSinkProtocol] = None,
        max_executions: int = MAX_EXECUTIONS
    ):
        """
        Initialize the workflow engine.

        Args:
            registry: Agent registry used to resolve agent nodes
            provider: LLM provider that runs agents
            condition_evaluator: Evaluator for if-else and while conditions
                (defaults to the restricted expression evaluator)
            event_sink: Optional observability sink
            max_executions: Step budget for a single run
        """
        self.registry = registry
        self.provider = provider
        self.condition_evaluator = condition_evaluator or ExpressionConditionEvaluator()
        self.event_sink = event_sink
        self.max_executions = max_executions

    async def run(self, workflow: WorkflowDefinition, message: str) -> WorkflowExecutionResult:
        """
        Run a workflow for one message.

        Args:
            workflow: Workflow to execute
            message: The user message that triggered the run

        Returns:
            WorkflowExecutionResult (never raises)
        """
        context = ExecutionContext(message=message or "")
        path: List[str] = []
        snapshot = self.registry.snapshot()

        self._emit(workflow, WorkflowEventType.WORKFLOW_START, {
            "workflow_name": workflow.name,
            "message": context.message,
        })

        try:
            current = self._select_initial_node(workflow, context)

            while current is not None and current.node_type != NodeType.END:
                self._take_step(context)
                path.append(current.id)

                self._emit(workflow, WorkflowEventType.NODE_STARTED, self._node_info(current))
                logger.debug(f"[Workflow] Executing node {current.id} ({current.node_type.value})")

                result = await self._execute_node(current, workflow, context, snapshot)
                context.record(current.id, result)

                self._emit(workflow, WorkflowEventType.NODE_COMPLETED, {
                    **self._node_info(current),
                    "result": result,
                })

                edge = self._find_next_edge(workflow, current, result, context)
                if edge is None:
                    logger.debug(f"[Workflow] No outgoing edge from {current.id}, finishing")
                    break

                self._emit(workflow, WorkflowEventType.EDGE_EVALUATED, self._edge_info(edge, True))
                current = workflow.get_node(edge.target)

            outcome = WorkflowExecutionResult(
                success=True,
                result=context.last_result,
                path=path,
                context=context,
            )

        except Exception as e:
            logger.error(f"[Workflow] Run of '{workflow.id}' failed: {e}")
            outcome = WorkflowExecutionResult(
                success=False,
                result=None,
                path=path,
                context=context,
                error=str(e),
                error_type=type(e).__name__,
            )

        self._emit(workflow, WorkflowEventType.WORKFLOW_END, {
            "success": outcome.success,
            "path": list(outcome.path),
            "error": outcome.error,
        })
        return outcome

    # ===== Traversal =====

    def _take_step(self, context: ExecutionContext) -> None:
        """Charge one node execution to the run's step budget"""
        if context.steps >= self.max_executions:
            raise ExecutionLoopError(self.max_executions)
        context.steps += 1

    def _select_initial_node(self, workflow: WorkflowDefinition, context: ExecutionContext) -> WorkflowNode:
        """Validate the graph and choose the node after start"""
        errors = workflow.validate()
        if errors:
            raise WorkflowValidationError(
                f"Workflow '{workflow.id}' is invalid: {'; '.join(errors)}"
            )

        start = workflow.start_nodes()[0]
        start_edges = workflow.outgoing_edges(start.id)

        probe = ExecutionContext(message=context.message)
        chosen = next(
            (e for e in start_edges if evaluate_edge_condition(e.condition, probe)),
            start_edges[0],
        )

        self._emit(workflow, WorkflowEventType.EDGE_EVALUATED, self._edge_info(chosen, True))
        return workflow.get_node(chosen.target)

    def _find_next_edge(
        self,
        workflow: WorkflowDefinition,
        node: WorkflowNode,
        result: Any,
        context: ExecutionContext
    ) -> Optional[WorkflowEdge]:
        """Pick the edge to follow after a node has executed"""
        edges = workflow.outgoing_edges(node.id)

        if node.node_type == NodeType.IF_ELSE:
            matched = result.get("matched_condition") if isinstance(result, dict) else None
            if matched:
                for edge in edges:
                    if edge.condition_id == matched:
                        return edge

            for edge in edges:
                if edge.is_else:
                    logger.debug(f"[Workflow] No if-else condition matched on {node.id}, taking else edge")
                    return edge

            logger.warning(
                f"[Workflow] If-else node {node.id} has no else edge, using first outgoing edge"
            )
            return edges[0] if edges else None

        for edge in edges:
            if edge.condition is None or evaluate_edge_condition(edge.condition, context):
                return edge
        return None

    # ===== Node execution =====

    async def _execute_node(
        self,
        node: WorkflowNode,
        workflow: WorkflowDefinition,
        context: ExecutionContext,
        snapshot: RegistrySnapshot
    ) -> Any:
        node_type = node.node_type

        if node_type == NodeType.AGENT:
            return await self._execute_agent(node, context, snapshot)

        if node_type == NodeType.IF_ELSE:
            return await self._execute_if_else(node, workflow, context)

        if node_type == NodeType.WHILE:
            return await self._execute_while(node, workflow, context, snapshot)

        if node_type == NodeType.CONDITION:
            return {
                "type": "condition",
                "evaluated": True,
                "condition": node.data.get("condition", ""),
            }

        if node_type == NodeType.MERGE:
            return {
                "type": "merge",
                "merged": True,
                "results": [h.result for h in context.history],
            }

        if node_type == NodeType.USER_APPROVAL:
            # Approval is not implemented; the node passes the previous response through
            return {
                "type": "user-approval",
                "evaluated": True,
                "response": context.last_response,
            }

        if node_type == NodeType.END:
            return {"type": "end", "finished": True, "result": context.last_result}

        return {"type": node_type.value}

    async def _execute_agent(
        self,
        node: WorkflowNode,
        context: ExecutionContext,
        snapshot: RegistrySnapshot
    ) -> Dict[str, Any]:
        """Run the node's agent on the run message"""
        definition = snapshot.get(node.agent_name) if node.agent_name else None
        if definition is None:
            raise ConfigurationError(f"Agent '{node.agent_name}' not found (node '{node.id}')")

        instructions = substitute(definition.instructions, context.template_variables())
        runtime_definition = dataclasses.replace(definition, instructions=instructions)

        try:
            handle = await self.provider.ensure_agent(runtime_definition)
            dispatch = await self.provider.dispatch(handle, context.message)
        except DispatchError as e:
            dispatch = DispatchResult(response_text="", success=False, error=str(e))
        except Exception as e:
            dispatch = DispatchResult(
                response_text="", success=False, error=f"{type(e).__name__}: {e}"
            )

        if not dispatch.success:
            logger.warning(f"[Workflow] Agent '{definition.name}' failed: {dispatch.error}")

        return {
            "agent_name": definition.name,
            "config": {"name": definition.name, "description": definition.description},
            "message": context.message,
            "response": dispatch.response_text or "",
            "success": dispatch.success,
            "error": dispatch.error,
        }

    async def _execute_if_else(
        self,
        node: WorkflowNode,
        workflow: WorkflowDefinition,
        context: ExecutionContext
    ) -> Dict[str, Any]:
        """
        Evaluate the node's conditions in declared order.

        The first true condition that has a bound outgoing edge is reported
        as matched. Branching itself happens in _find_next_edge.
        """
        bound = {e.condition_id for e in workflow.outgoing_edges(node.id) if e.condition_id}
        matched: Optional[IfElseCondition] = None

        for condition in node.if_else_conditions:
            if not condition.condition or not condition.id:
                continue
            if not await self.condition_evaluator.evaluate(condition.condition, context):
                continue
            if condition.id not in bound:
                logger.warning(
                    f"[Workflow] Condition '{condition.id}' on {node.id} matched but has no edge"
                )
                continue
            matched = condition
            break

        if matched is not None:
            logger.debug(f"[Workflow] If-else {node.id} matched '{matched.case_name or matched.id}'")

        return {
            "type": "if-else",
            "evaluated": True,
            "condition_met": matched is not None,
            "matched_condition": matched.id if matched else None,
            "case_name": matched.case_name if matched else None,
            # Routing node: keep the previous response available downstream
            "response": context.last_response,
        }

    async def _execute_while(
        self,
        node: WorkflowNode,
        workflow: WorkflowDefinition,
        context: ExecutionContext,
        snapshot: RegistrySnapshot
    ) -> Dict[str, Any]:
        """Repeat the listed step nodes while the condition holds"""
        config = node.while_config
        if config is None or not config.condition:
            raise ConfigurationError(f"While node '{node.id}' has no condition configured")

        logger.info(
            f"[Workflow] While {node.id}: condition='{config.condition}', "
            f"max_iterations={config.max_iterations}, steps={config.steps}"
        )

        loop_results: List[Dict[str, Any]] = []
        iteration = 0
        condition_met = True
        context.variables["iteration"] = 0
        context.variables["loop_count"] = 0

        while condition_met and iteration < config.max_iterations:
            iteration += 1
            context.variables["iteration"] = iteration
            context.variables["loop_count"] = iteration

            condition_met = await self.condition_evaluator.evaluate(
                config.condition, context, {"iteration": iteration, "loop_count": iteration}
            )
            if not condition_met:
                break

            step_results: List[Dict[str, Any]] = []
            for step_id in config.steps:
                step = workflow.get_node(step_id)
                if step is None:
                    logger.warning(f"[Workflow] While step '{step_id}' not found in workflow")
                    step_results.append({
                        "step_id": step_id,
                        "iteration": iteration,
                        "executed": False,
                        "error": "Step not found",
                    })
                    continue

                self._take_step(context)
                try:
                    step_result = await self._execute_node(step, workflow, context, snapshot)
                except ExecutionLoopError:
                    raise
                except Exception as e:
                    logger.warning(f"[Workflow] While step '{step_id}' failed: {e}")
                    step_results.append({
                        "step_id": step_id,
                        "iteration": iteration,
                        "executed": False,
                        "error": str(e),
                    })
                    continue

                context.record(step_id, step_result)
                self._emit(workflow, WorkflowEventType.NODE_COMPLETED, {
                    **self._node_info(step),
                    "result": step_result,
                    "while_node": node.id,
                    "iteration": iteration,
                })
                step_results.append({
                    "step_id": step_id,
                    "iteration": iteration,
                    "executed": True,
                    "result": step_result,
                })

            loop_results.append({
                "iteration": iteration,
                "step_results": step_results,
                "timestamp": datetime.now().isoformat(),
            })
            context.variables["last_iteration_result"] = step_results

        stopped_by_limit = condition_met and iteration >= config.max_iterations
        if stopped_by_limit:
            logger.warning(f"[Workflow] While {node.id} hit its limit of {config.max_iterations} iterations")

        return {
            "type": "while",
            "condition": config.condition,
            "iterations": iteration,
            "max_iterations": config.max_iterations,
            "completed": not condition_met,
            "stopped_by_limit": stopped_by_limit,
            "results": loop_results,
        }

    # ===== Events =====

    def _emit(self, workflow: WorkflowDefinition, event_type: WorkflowEventType, data: Dict[str, Any]) -> None:
        emit_safely(self.event_sink, WorkflowEvent(type=event_type, data=data, workflow_id=workflow.id))

    @staticmethod
    def _node_info(node: WorkflowNode) -> Dict[str, Any]:
        return {
            "node_id": node.id,
            "node_type": node.node_type.value,
            "node_name": node.display_name,
        }

    @staticmethod
    def _edge_info(edge: WorkflowEdge, condition_met: bool) -> Dict[str, Any]:
        return {
            "edge_id": edge.id,
            "source": edge.source,
            "target": edge.target,
            "condition_met": condition_met,
        }
