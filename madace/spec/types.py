"""
types.py - Dataclasses for agent and workflow definitions.

These records are the canonical in-memory form of the declarative files the
loader reads. They are immutable once built; the loader cache hands out the
same instance for repeated loads of one path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

DEFAULT_AGENT_ICON = "🤖"

# Keys a workflow step may carry that map onto WorkflowStep fields.
_STEP_FIELDS = ("name", "action", "type", "prompt", "guidance", "template",
                "output", "rules", "workflow")


# =============================================================================
# Menu Actions
# =============================================================================


@dataclass(frozen=True)
class WorkflowAction:
    """Menu action that starts a named workflow."""
    name: str


@dataclass(frozen=True)
class ElicitAction:
    """Menu action that asks the user for input."""
    prompt: str


@dataclass(frozen=True)
class GuideAction:
    """Menu action that hands guidance text back to the caller."""
    text: str


@dataclass(frozen=True)
class CustomAction:
    """Any other action string; executed by the critical-action dispatcher."""
    action: str


ActionKind = Union[WorkflowAction, ElicitAction, GuideAction, CustomAction]

_ACTION_PREFIXES = {
    "workflow:": WorkflowAction,
    "elicit:": ElicitAction,
    "guide:": GuideAction,
}


def parse_action(raw: str) -> ActionKind:
    """Parse a menu action string into its typed form.

    Examples:
        "workflow:plan-project" -> WorkflowAction("plan-project")
        "elicit:What is the goal?" -> ElicitAction("What is the goal?")
        "check-config" -> CustomAction("check-config")
    """
    for prefix, kind in _ACTION_PREFIXES.items():
        if raw.startswith(prefix):
            return kind(raw[len(prefix):].strip())
    return CustomAction(raw)


def format_action(kind: ActionKind) -> str:
    """Inverse of parse_action."""
    if isinstance(kind, WorkflowAction):
        return f"workflow:{kind.name}"
    if isinstance(kind, ElicitAction):
        return f"elicit:{kind.prompt}"
    if isinstance(kind, GuideAction):
        return f"guide:{kind.text}"
    return kind.action


# =============================================================================
# Agent Definition
# =============================================================================


@dataclass(frozen=True)
class AgentMetadata:
    """Identity block of an agent definition."""
    id: str
    name: str
    title: str
    icon: str = DEFAULT_AGENT_ICON
    module: Optional[str] = None
    version: Optional[str] = None


@dataclass(frozen=True)
class AgentPersona:
    """Persona block of an agent definition."""
    role: str
    identity: str
    communication_style: str = ""
    principles: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MenuItem:
    """One trigger on the agent's command menu.

    `kind` is parsed from `action` once, when the item is built.
    """
    trigger: str
    action: str
    description: str
    kind: ActionKind = field(default=None, compare=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.kind is None:
            object.__setattr__(self, "kind", parse_action(self.action))


@dataclass(frozen=True)
class AgentDefinition:
    """A fully validated agent definition."""
    metadata: AgentMetadata
    persona: AgentPersona
    menu: Tuple[MenuItem, ...] = ()
    critical_actions: Tuple[str, ...] = ()
    load_always: Tuple[str, ...] = ()
    prompts: Tuple[Dict[str, Any], ...] = ()
    source_path: Optional[Path] = None
    loaded_at: Optional[datetime] = None

    @property
    def triggers(self) -> Tuple[str, ...]:
        return tuple(item.trigger for item in self.menu)

    def find_menu_item(self, trigger: str) -> Optional[MenuItem]:
        """Exact-match lookup of a menu trigger."""
        for item in self.menu:
            if item.trigger == trigger:
                return item
        return None


# =============================================================================
# Workflow Definition
# =============================================================================


@dataclass(frozen=True)
class WorkflowStep:
    """One step in a workflow.

    `action` is normalized from either the `action` or `type` key.
    Unrecognized keys are kept in `extra`.
    """
    name: str
    action: str
    prompt: Optional[str] = None
    guidance: Optional[str] = None
    template: Optional[str] = None
    output: Optional[str] = None
    rules: Tuple[Any, ...] = ()
    workflow: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkflowDefinition:
    """A validated workflow definition."""
    name: str
    description: str
    steps: Tuple[WorkflowStep, ...]
    dependencies: Tuple[str, ...] = ()
    source_path: Optional[Path] = None

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def workflow_dir(self) -> Optional[Path]:
        return self.source_path.parent if self.source_path else None


# =============================================================================
# Serialization
# =============================================================================


def menu_item_from_dict(data: Dict[str, Any]) -> MenuItem:
    return MenuItem(
        trigger=str(data["trigger"]),
        action=str(data["action"]),
        description=str(data["description"]),
    )


def agent_from_dict(
    data: Dict[str, Any],
    source_path: Optional[Path] = None,
    loaded_at: Optional[datetime] = None,
) -> AgentDefinition:
    """Build an AgentDefinition from the body under the `agent` root key.

    The data is expected to have passed schema validation already.
    """
    meta = data["metadata"]
    persona = data["persona"]

    metadata = AgentMetadata(
        id=meta["id"],
        name=meta["name"],
        title=meta["title"],
        icon=meta.get("icon") or DEFAULT_AGENT_ICON,
        module=meta.get("module"),
        version=str(meta["version"]) if meta.get("version") is not None else None,
    )

    principles = persona.get("principles") or []
    if isinstance(principles, str):
        principles = [principles]

    return AgentDefinition(
        metadata=metadata,
        persona=AgentPersona(
            role=persona["role"],
            identity=persona["identity"],
            communication_style=persona.get("communication_style") or "",
            principles=tuple(str(p) for p in principles),
        ),
        menu=tuple(menu_item_from_dict(m) for m in data.get("menu") or []),
        critical_actions=tuple(str(a) for a in data.get("critical_actions") or []),
        load_always=tuple(str(p) for p in data.get("load_always") or []),
        prompts=tuple(dict(p) for p in data.get("prompts") or []),
        source_path=source_path,
        loaded_at=loaded_at,
    )


def agent_to_dict(agent: AgentDefinition) -> Dict[str, Any]:
    """Convert an AgentDefinition to the file shape, wrapped under `agent`."""
    metadata: Dict[str, Any] = {
        "id": agent.metadata.id,
        "name": agent.metadata.name,
        "title": agent.metadata.title,
        "icon": agent.metadata.icon,
    }
    if agent.metadata.module:
        metadata["module"] = agent.metadata.module
    if agent.metadata.version:
        metadata["version"] = agent.metadata.version

    body: Dict[str, Any] = {
        "metadata": metadata,
        "persona": {
            "role": agent.persona.role,
            "identity": agent.persona.identity,
            "communication_style": agent.persona.communication_style,
            "principles": list(agent.persona.principles),
        },
        "menu": [
            {"trigger": m.trigger, "action": m.action, "description": m.description}
            for m in agent.menu
        ],
    }
    if agent.critical_actions:
        body["critical_actions"] = list(agent.critical_actions)
    if agent.load_always:
        body["load_always"] = list(agent.load_always)
    if agent.prompts:
        body["prompts"] = [dict(p) for p in agent.prompts]
    return {"agent": body}


def workflow_step_from_dict(data: Dict[str, Any]) -> WorkflowStep:
    rules = data.get("rules") or []
    if not isinstance(rules, list):
        rules = [rules]
    return WorkflowStep(
        name=str(data["name"]),
        action=str(data.get("action") or data.get("type")),
        prompt=data.get("prompt"),
        guidance=data.get("guidance"),
        template=data.get("template"),
        output=data.get("output"),
        rules=tuple(rules),
        workflow=data.get("workflow"),
        extra={k: v for k, v in data.items() if k not in _STEP_FIELDS},
    )


def workflow_from_dict(
    data: Dict[str, Any],
    source_path: Optional[Path] = None,
) -> WorkflowDefinition:
    """Build a WorkflowDefinition from the body under the `workflow` root key."""
    return WorkflowDefinition(
        name=data["name"],
        description=data["description"],
        steps=tuple(workflow_step_from_dict(s) for s in data["steps"]),
        dependencies=tuple(str(d) for d in data.get("dependencies") or []),
        source_path=source_path,
    )


def workflow_to_dict(workflow: WorkflowDefinition) -> Dict[str, Any]:
    steps = []
    for step in workflow.steps:
        entry: Dict[str, Any] = {"name": step.name, "action": step.action}
        for key in ("prompt", "guidance", "template", "output", "workflow"):
            value = getattr(step, key)
            if value is not None:
                entry[key] = value
        if step.rules:
            entry["rules"] = list(step.rules)
        entry.update(step.extra)
        steps.append(entry)

    body: Dict[str, Any] = {
        "name": workflow.name,
        "description": workflow.description,
        "steps": steps,
    }
    if workflow.dependencies:
        body["dependencies"] = list(workflow.dependencies)
    return {"workflow": body}
