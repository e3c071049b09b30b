from support_agent.retrieval.pipeline import RetrievalPipeline
from support_agent.tools.bridge import WorkflowToolBridge
from support_agent.tools.escalate import EscalationOrchestrator
from support_agent.tools.registry import ToolDispatcher, ToolOutcome, tool_declarations
from support_agent.workflows.engine import WorkflowEngine

__all__ = [
    "EscalationOrchestrator",
    "ToolDispatcher",
    "ToolOutcome",
    "WorkflowToolBridge",
    "build_tool_dispatcher",
    "tool_declarations",
]


def build_tool_dispatcher(engine: WorkflowEngine, pipeline: RetrievalPipeline) -> ToolDispatcher:
    bridge = WorkflowToolBridge(engine)
    return ToolDispatcher(pipeline, bridge, EscalationOrchestrator(bridge))
