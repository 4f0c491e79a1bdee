"""
madace/spec - Agent and workflow definitions.

This package provides the definition layer of the orchestration core:
- Types: immutable AgentDefinition / WorkflowDefinition records
- Actions: the closed ActionKind union parsed from menu action strings
- Loader: schema-validated loading with a caller-owned LoaderCache

Usage:
    from madace.spec import AgentLoader, LoaderCache, load_workflow

    cache = LoaderCache()
    loader = AgentLoader(cache)
    pm = loader.load_agent("madace/mam/agents/pm.agent.yaml")
    result = loader.load_agents_from_directory("madace/mam/agents")
    workflow = load_workflow("madace/mam/workflows/plan-project.workflow.yaml")
"""

from .types import (
    ActionKind,
    AgentDefinition,
    AgentMetadata,
    AgentPersona,
    CustomAction,
    ElicitAction,
    GuideAction,
    MenuItem,
    WorkflowAction,
    WorkflowDefinition,
    WorkflowStep,
    agent_from_dict,
    agent_to_dict,
    format_action,
    parse_action,
    workflow_from_dict,
    workflow_to_dict,
)
from .loader import (
    DEFAULT_AGENT_PATTERN,
    AgentLoader,
    DirectoryLoadResult,
    LoadFailure,
    LoaderCache,
    load_workflow,
    parse_agent_text,
    parse_workflow_text,
    validate_definition,
)

__all__ = [
    # Types
    "ActionKind",
    "AgentDefinition",
    "AgentMetadata",
    "AgentPersona",
    "CustomAction",
    "ElicitAction",
    "GuideAction",
    "MenuItem",
    "WorkflowAction",
    "WorkflowDefinition",
    "WorkflowStep",
    "agent_from_dict",
    "agent_to_dict",
    "format_action",
    "parse_action",
    "workflow_from_dict",
    "workflow_to_dict",
    # Loader
    "DEFAULT_AGENT_PATTERN",
    "AgentLoader",
    "DirectoryLoadResult",
    "LoadFailure",
    "LoaderCache",
    "load_workflow",
    "parse_agent_text",
    "parse_workflow_text",
    "validate_definition",
]
