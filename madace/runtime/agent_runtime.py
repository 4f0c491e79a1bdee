"""
agent_runtime.py - Load an agent, build its context, dispatch its menu.

The runtime composes the loader, template engine and workflow engine:

1. load_agent() loads the definition, builds an ExecutionContext from the
   agent, the project configuration and a fresh session id, then runs each
   declared critical action. A failing critical action is logged and
   recorded in the history; the remaining ones still run.
2. execute_command() looks up a menu trigger and dispatches on the item's
   parsed ActionKind. Workflow actions start a workflow session; elicit and
   guide actions are returned as data; anything else goes to the
   critical-action dispatcher. Failures here propagate.

Usage:
    runtime = AgentRuntime()
    runtime.load_agent("madace/mam/agents/pm.agent.yaml")
    result = runtime.execute_command("*plan-project")
    instruction = runtime.engine.execute_step(result.session, 0)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from madace.config.project_config import (
    AGENT_MANIFEST,
    CFG_DIR,
    WORKFLOW_MANIFEST,
    ProjectConfig,
    auto_load_config,
    validate_installation,
)
from madace.errors import CommandNotFoundError, MadaceError, WorkflowStateError
from madace.prompts.template_engine import TemplateEngine
from madace.spec.loader import AgentLoader
from madace.spec.types import (
    AgentDefinition,
    CustomAction,
    ElicitAction,
    GuideAction,
    MenuItem,
    WorkflowAction,
)

from ._ids import generate_session_id
from ._time import now_iso
from .discovery import (
    DirectoryWorkflowCatalog,
    ManifestWorkflowCatalog,
    WorkflowCatalog,
    count_manifest_rows,
)
from .workflow_engine import WorkflowEngine, WorkflowSession

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
CriticalActionHandler = Callable[["AgentRuntime"], Optional[Dict[str, Any]]]

DEFAULT_PERSONA_TEMPLATE = """You are {{agent_name}}, {{agent_title}}.

Role: {{role}}

Identity: {{identity}}

Communication style: {{communication_style}}

Principles: {{principles}}

Address the user as {{user_name}} and respond in {{communication_language}}.
Project: {{project_name}}
"""


# =============================================================================
# Types
# =============================================================================


@dataclass
class ExecutionContext:
    """Everything templates and workflows may read during one agent session.

    Attributes:
        agent_id .. principles: Identity and persona of the loaded agent.
        user_name, project_name, communication_language: From configuration.
        madace_root, project_root, output_folder: Computed installation paths.
        loaded_at: ISO timestamp of load_agent().
        session_id: Unique id of this agent session.
        config: The loaded configuration record, including computed paths.
        extras: Load options and later update_context() values.
    """

    agent_id: str
    agent_name: str
    agent_title: str
    agent_icon: str
    role: str
    identity: str
    communication_style: str
    principles: List[str]
    user_name: str
    project_name: str
    communication_language: str
    madace_root: str
    project_root: str
    output_folder: str
    loaded_at: str
    session_id: str
    config: Dict[str, Any] = field(default_factory=dict)
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_variables(self) -> Dict[str, Any]:
        """Flat variable mapping.

        Top-level config keys come first, context fields replace them, and
        extras (load options, update_context values) are applied last.
        """
        data = asdict(self)
        extras = data.pop("extras")
        variables = {k: v for k, v in data["config"].items() if k != "paths"}
        variables.update(data)
        variables.update(extras)
        return variables


@dataclass
class HistoryEntry:
    """One recorded runtime action."""

    type: str  # "critical_action" | "menu_command" | "sub_workflow"
    action: str
    timestamp: str
    status: str  # "completed" | "failed"
    trigger: Optional[str] = None
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


@dataclass
class CommandResult:
    """What a dispatched command produced."""

    type: str  # "workflow" | "elicit" | "guide" | "custom" | "sub_workflow"
    action: str
    trigger: Optional[str] = None
    prompt: Optional[str] = None
    guidance: Optional[str] = None
    workflow: Optional[str] = None
    session: Optional[WorkflowSession] = None
    parent: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def summary(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "action": self.action}
        for key in ("trigger", "prompt", "guidance", "workflow", "parent"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.session is not None:
            data["total_steps"] = self.session.state.total_steps
        return data


# =============================================================================
# Runtime
# =============================================================================


class AgentRuntime:
    """One agent session at a time, over injectable collaborators."""

    def __init__(
        self,
        config: Optional[ProjectConfig] = None,
        loader: Optional[AgentLoader] = None,
        engine: Optional[WorkflowEngine] = None,
        catalog: Optional[WorkflowCatalog] = None,
        templates: Optional[TemplateEngine] = None,
    ):
        self.config = config
        self.loader = loader if loader is not None else AgentLoader()
        self.templates = templates if templates is not None else TemplateEngine()
        self.engine = engine if engine is not None else WorkflowEngine(templates=self.templates)
        self.catalog = catalog
        self._catalog_explicit = catalog is not None
        self.current_agent: Optional[AgentDefinition] = None
        self.context: Optional[ExecutionContext] = None
        self._history: List[HistoryEntry] = []
        self._handlers: Dict[str, CriticalActionHandler] = {
            "check-config": AgentRuntime._check_config,
            "validate-installation": AgentRuntime._validate_installation,
            "load-manifest": AgentRuntime._load_manifests,
            "create-output-folder": AgentRuntime._create_output_folder,
        }

    def register_critical_action(self, name: str, handler: CriticalActionHandler) -> None:
        """Add or replace a named action handler."""
        self._handlers[name] = handler

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load_agent(self, path: PathLike, **options: Any) -> AgentDefinition:
        """Load an agent and start a session for it.

        The project configuration is discovered upward from the agent file
        when none was supplied.

        Raises:
            NotFoundError, ParseError, ValidationError: From loading the
                agent or the configuration.
        """
        agent = self.loader.load_agent(path)
        if self.config is None:
            self.config = auto_load_config(Path(path).resolve().parent)
        if not self._catalog_explicit and self.config.paths is not None:
            self.catalog = DirectoryWorkflowCatalog(self.config.paths.project_root)

        self.current_agent = agent
        self.context = self._build_context(agent, options)
        logger.info(
            "Loaded agent %s (%s), session %s",
            agent.metadata.name,
            agent.metadata.title,
            self.context.session_id,
        )

        for action in agent.critical_actions:
            self._run_critical_action(action)
        return agent

    def _build_context(self, agent: AgentDefinition, options: Mapping[str, Any]) -> ExecutionContext:
        config = self.config
        paths = config.paths if config is not None else None
        return ExecutionContext(
            agent_id=agent.metadata.id,
            agent_name=agent.metadata.name,
            agent_title=agent.metadata.title,
            agent_icon=agent.metadata.icon,
            role=agent.persona.role,
            identity=agent.persona.identity,
            communication_style=agent.persona.communication_style,
            principles=list(agent.persona.principles),
            user_name=config.user_name if config else "User",
            project_name=config.project_name if config else "Unknown Project",
            communication_language=config.communication_language if config else "English",
            madace_root=str(paths.madace_root) if paths else "",
            project_root=str(paths.project_root) if paths else "",
            output_folder=str(paths.output_folder) if paths else "",
            loaded_at=now_iso(),
            session_id=generate_session_id(),
            config=config.to_variables() if config else {},
            extras=dict(options),
        )

    def _record(self, entry: HistoryEntry) -> None:
        self._history.append(entry)

    def _run_critical_action(self, action: str) -> None:
        try:
            result = self._dispatch_action(action)
        except Exception as e:
            logger.error("Critical action '%s' failed: %s", action, e)
            self._record(HistoryEntry(
                type="critical_action",
                action=action,
                timestamp=now_iso(),
                status="failed",
                error=str(e),
            ))
            return
        self._record(HistoryEntry(
            type="critical_action",
            action=action,
            timestamp=now_iso(),
            status="completed",
            result=result,
        ))

    def _dispatch_action(self, action: str) -> Optional[Dict[str, Any]]:
        handler = self._handlers.get(action)
        if handler is None:
            logger.info("Custom action: %s", action)
            return {"custom_action": action}
        return handler(self)

    # -------------------------------------------------------------------------
    # Built-in critical actions
    # -------------------------------------------------------------------------

    def _require_paths(self):
        if self.config is None or self.config.paths is None:
            raise WorkflowStateError("Configuration not loaded")
        return self.config.paths

    def _check_config(self) -> Dict[str, Any]:
        if self.config is None:
            raise WorkflowStateError("Configuration not loaded")
        logger.debug("Configuration validated for project '%s'", self.config.project_name)
        return {"project_name": self.config.project_name}

    def _validate_installation(self) -> Dict[str, Any]:
        paths = self._require_paths()
        report = validate_installation(paths.madace_root)
        if not report.valid:
            raise MadaceError(f"Installation validation failed: {'; '.join(report.issues)}")
        for warning in report.warnings:
            logger.warning("Installation warning: %s", warning)
        return {"warnings": list(report.warnings)}

    def _load_manifests(self) -> Dict[str, Any]:
        paths = self._require_paths()
        cfg_dir = paths.madace_root / CFG_DIR
        agents = count_manifest_rows(cfg_dir / AGENT_MANIFEST)
        workflow_manifest = cfg_dir / WORKFLOW_MANIFEST
        workflows = count_manifest_rows(workflow_manifest)
        if workflows and not self._catalog_explicit:
            self.catalog = ManifestWorkflowCatalog.from_csv(workflow_manifest, base_path=paths.project_root)
        logger.info("Manifests loaded: %d agents, %d workflows", agents, workflows)
        return {"agents": agents, "workflows": workflows}

    def _create_output_folder(self) -> Dict[str, Any]:
        paths = self._require_paths()
        paths.output_folder.mkdir(parents=True, exist_ok=True)
        logger.debug("Output folder ready: %s", paths.output_folder)
        return {"output_folder": str(paths.output_folder)}

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def _require_agent(self) -> AgentDefinition:
        if self.current_agent is None or self.context is None:
            raise WorkflowStateError("No agent loaded. Call load_agent() first.")
        return self.current_agent

    def execute_command(self, trigger: str) -> CommandResult:
        """Run the menu item whose trigger matches exactly.

        Raises:
            WorkflowStateError: If no agent is loaded.
            CommandNotFoundError: If the trigger is not on the menu.
            WorkflowNotFoundError: If a workflow action names an unknown workflow.
        """
        agent = self._require_agent()
        item = agent.find_menu_item(trigger)
        if item is None:
            raise CommandNotFoundError(trigger, agent.triggers)

        try:
            result = self._dispatch_menu(item)
        except MadaceError as e:
            self._record(HistoryEntry(
                type="menu_command",
                action=item.action,
                trigger=trigger,
                timestamp=now_iso(),
                status="failed",
                error=str(e),
            ))
            raise

        self._record(HistoryEntry(
            type="menu_command",
            action=item.action,
            trigger=trigger,
            timestamp=now_iso(),
            status="completed",
            result=result.summary(),
        ))
        return result

    def _dispatch_menu(self, item: MenuItem) -> CommandResult:
        kind = item.kind
        variables = self.get_context()

        if isinstance(kind, WorkflowAction):
            if self.catalog is None:
                raise WorkflowStateError("No workflow catalog available")
            path = self.catalog.require(kind.name)
            session = self.engine.initialize_workflow(path, variables)
            return CommandResult(
                type="workflow",
                action=item.action,
                trigger=item.trigger,
                workflow=session.definition.name,
                session=session,
            )
        if isinstance(kind, ElicitAction):
            return CommandResult(
                type="elicit",
                action=item.action,
                trigger=item.trigger,
                prompt=self.templates.render(kind.prompt, variables),
            )
        if isinstance(kind, GuideAction):
            return CommandResult(
                type="guide",
                action=item.action,
                trigger=item.trigger,
                guidance=self.templates.render(kind.text, variables),
            )
        if isinstance(kind, CustomAction):
            return CommandResult(
                type="custom",
                action=item.action,
                trigger=item.trigger,
                details=self._dispatch_action(kind.action),
            )
        raise MadaceError(f"Unsupported menu action: {item.action}")

    def execute_sub_workflow(
        self,
        path: PathLike,
        parent_context: Optional[Mapping[str, Any]] = None,
    ) -> CommandResult:
        """Start a workflow on behalf of a parent workflow.

        The runtime context is overlaid with `parent_context` (parent keys
        win) and `_parent_workflow`. Relative paths resolve against the
        project root.
        """
        parent = dict(parent_context or {})
        parent_name = str(parent.get("workflowName") or "unknown")
        merged = {
            **(self.get_context()),
            **parent,
            "_parent_workflow": parent_name,
        }

        workflow_path = Path(path)
        if not workflow_path.is_absolute() and self.config is not None and self.config.paths is not None:
            workflow_path = self.config.paths.project_root / workflow_path

        session = self.engine.initialize_workflow(workflow_path, merged, parent_workflow=parent_name)
        result = CommandResult(
            type="sub_workflow",
            action=f"workflow:{session.definition.name}",
            workflow=session.definition.name,
            session=session,
            parent=parent.get("workflowName"),
        )
        self._record(HistoryEntry(
            type="sub_workflow",
            action=str(workflow_path),
            timestamp=now_iso(),
            status="completed",
            result=result.summary(),
        ))
        return result

    def compose_persona_prompt(self, template: Optional[str] = None) -> str:
        """Render the persona prompt for the loaded agent."""
        self._require_agent()
        return self.templates.render_nested(template or DEFAULT_PERSONA_TEMPLATE, self.get_context())

    # -------------------------------------------------------------------------
    # Session state
    # -------------------------------------------------------------------------

    def get_history(self) -> List[HistoryEntry]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history = []

    def get_context(self) -> Dict[str, Any]:
        """Copy of the current context as template variables."""
        return self.context.to_variables() if self.context is not None else {}

    def update_context(self, **updates: Any) -> None:
        context = self.context
        if context is None:
            raise WorkflowStateError("No agent loaded. Call load_agent() first.")
        known = {f.name for f in fields(ExecutionContext)} - {"extras"}
        for key, value in updates.items():
            if key in known:
                setattr(context, key, value)
                context.extras.pop(key, None)
            else:
                context.extras[key] = value

    def unload_agent(self) -> None:
        self.current_agent = None
        self.context = None
