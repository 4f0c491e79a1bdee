# madace/runtime package
# Executes agents, workflows and the story lifecycle, persisting their state.
#
# Core components:
#   - storage: StateStore abstraction with ETag compare-and-swap
#   - workflow_engine: Sequential step execution with durable JSON state
#   - state_machine: BACKLOG -> TODO -> IN PROGRESS -> DONE over a Markdown document
#   - discovery: Workflow catalogs and module-aware agent loading
#   - agent_runtime: Agent sessions, critical actions and menu dispatch
#
# Usage:
#     from madace.runtime import AgentRuntime
#     runtime = AgentRuntime()
#     runtime.load_agent("madace/mam/agents/pm.agent.yaml")
#     result = runtime.execute_command("*plan-project")

from .agent_runtime import (
    AgentRuntime,
    CommandResult,
    ExecutionContext,
    HistoryEntry,
)
from .discovery import (
    DirectoryWorkflowCatalog,
    ManifestWorkflowCatalog,
    WorkflowCatalog,
    WorkflowEntry,
    agent_stats,
    find_agent,
    load_agents_by_module,
    load_all_agents,
)
from .state_machine import (
    BacklogState,
    StateValidation,
    StoryRecord,
    StoryStage,
    StoryStateMachine,
    StoryStatus,
)
from .storage import FileStateStore, MemoryStateStore, StateStore, compute_etag
from .workflow_engine import (
    InstructionType,
    StepInstruction,
    StepStatus,
    WorkflowEngine,
    WorkflowExecutionState,
    WorkflowProgress,
    WorkflowSession,
    WorkflowStatus,
)

__all__ = [
    "AgentRuntime",
    "CommandResult",
    "ExecutionContext",
    "HistoryEntry",
    "DirectoryWorkflowCatalog",
    "ManifestWorkflowCatalog",
    "WorkflowCatalog",
    "WorkflowEntry",
    "agent_stats",
    "find_agent",
    "load_agents_by_module",
    "load_all_agents",
    "BacklogState",
    "StateValidation",
    "StoryRecord",
    "StoryStage",
    "StoryStateMachine",
    "StoryStatus",
    "FileStateStore",
    "MemoryStateStore",
    "StateStore",
    "compute_etag",
    "InstructionType",
    "StepInstruction",
    "StepStatus",
    "WorkflowEngine",
    "WorkflowExecutionState",
    "WorkflowProgress",
    "WorkflowSession",
    "WorkflowStatus",
]
