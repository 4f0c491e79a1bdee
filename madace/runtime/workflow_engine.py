"""
workflow_engine.py - Sequential workflow execution with durable JSON state.

A workflow instance moves through:

    initialized -> running -> completed | failed

Each step moves forward through pending -> in_progress -> completed | failed.
Every transition is persisted before the call returns, to a state file named
after the workflow file (`.<basename>.state.json` beside it), so any process
can rediscover an in-flight workflow from its path alone.

The engine never calls a model or renders files itself. Executing a step
returns a StepInstruction describing what the caller must do next
(ask the user, render a template, start a sub-workflow, ...).

Sessions are caller-owned: initialize_workflow() returns a WorkflowSession
and every later call takes that session explicitly.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from madace.errors import (
    MadaceError,
    ParseError,
    ValidationError,
    ValidationIssue,
    WorkflowStateError,
)
from madace.prompts.template_engine import TemplateEngine, build_context
from madace.spec.loader import load_workflow
from madace.spec.types import WorkflowDefinition, WorkflowStep

from ._time import datetime_to_iso, iso_to_datetime, now_iso, utc_now
from .storage import FileStateStore, StateStore

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

STATE_FILE_TEMPLATE = ".{stem}.state.json"

DEFAULT_ELICIT_PROMPT = "Please provide input"
DEFAULT_REFLECT_PROMPT = "Please reflect on the following"


# =============================================================================
# Status Enums
# =============================================================================


class WorkflowStatus(str, Enum):
    """Lifecycle of one workflow instance."""

    INITIALIZED = "initialized"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Lifecycle of one step within a workflow instance."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class InstructionType(str, Enum):
    """What the caller must do after a step executes."""

    ELICITATION = "elicitation"
    REFLECTION = "reflection"
    GUIDANCE = "guidance"
    TEMPLATE_RENDERING = "template_rendering"
    VALIDATION = "validation"
    SUB_WORKFLOW = "sub_workflow"
    CUSTOM = "custom"


# =============================================================================
# State Types
# =============================================================================


@dataclass
class StepState:
    """Persisted progress of one step.

    Attributes:
        step_index: Position of the step in the workflow.
        step_name: The step's declared name.
        status: Current step status.
        started_at: When the latest attempt started.
        completed_at: When the latest attempt finished (either outcome).
        error: Error message of a failed attempt.
        attempts: Number of times the step has been started.
    """

    step_index: int
    step_name: str
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    attempts: int = 0


@dataclass
class WorkflowExecutionState:
    """Persisted progress of one workflow instance.

    Attributes:
        workflow_name: Name from the workflow definition.
        workflow_path: Absolute path of the workflow file.
        status: Current workflow status.
        current_step: Index of the step most recently started (0 initially).
        total_steps: Number of steps in the definition.
        steps: One StepState per step, in order.
        started_at: When the instance was initialized.
        completed_at: When complete_workflow() was called.
        context: Variables available to every step.
        parent_workflow: Name of the invoking workflow for sub-workflows.
    """

    workflow_name: str
    workflow_path: str
    status: WorkflowStatus
    current_step: int
    total_steps: int
    steps: List[StepState]
    started_at: datetime
    completed_at: Optional[datetime] = None
    context: Dict[str, Any] = field(default_factory=dict)
    parent_workflow: Optional[str] = None


def step_state_to_dict(step: StepState) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "stepIndex": step.step_index,
        "stepName": step.step_name,
        "status": step.status.value,
        "attempts": step.attempts,
    }
    if step.started_at is not None:
        data["startedAt"] = datetime_to_iso(step.started_at)
    if step.completed_at is not None:
        data["completedAt"] = datetime_to_iso(step.completed_at)
    if step.error is not None:
        data["error"] = step.error
    return data


def step_state_from_dict(data: Dict[str, Any]) -> StepState:
    return StepState(
        step_index=data["stepIndex"],
        step_name=data["stepName"],
        status=StepStatus(data.get("status", "pending")),
        started_at=iso_to_datetime(data.get("startedAt")),
        completed_at=iso_to_datetime(data.get("completedAt")),
        error=data.get("error"),
        attempts=data.get("attempts", 0),
    )


def state_to_dict(state: WorkflowExecutionState) -> Dict[str, Any]:
    """Convert execution state to its JSON form (camelCase keys)."""
    data: Dict[str, Any] = {
        "workflowName": state.workflow_name,
        "workflowPath": state.workflow_path,
        "status": state.status.value,
        "currentStep": state.current_step,
        "totalSteps": state.total_steps,
        "steps": [step_state_to_dict(s) for s in state.steps],
        "startedAt": datetime_to_iso(state.started_at),
        "context": state.context,
    }
    if state.completed_at is not None:
        data["completedAt"] = datetime_to_iso(state.completed_at)
    if state.parent_workflow is not None:
        data["parentWorkflow"] = state.parent_workflow
    return data


def state_from_dict(data: Dict[str, Any]) -> WorkflowExecutionState:
    return WorkflowExecutionState(
        workflow_name=data["workflowName"],
        workflow_path=data["workflowPath"],
        status=WorkflowStatus(data["status"]),
        current_step=data.get("currentStep", 0),
        total_steps=data["totalSteps"],
        steps=[step_state_from_dict(s) for s in data.get("steps", [])],
        started_at=iso_to_datetime(data["startedAt"]),  # type: ignore[arg-type]
        completed_at=iso_to_datetime(data.get("completedAt")),
        context=data.get("context") or {},
        parent_workflow=data.get("parentWorkflow"),
    )


def _dump_state(state: WorkflowExecutionState) -> str:
    return json.dumps(state_to_dict(state), indent=2, ensure_ascii=False, default=str) + "\n"


def state_file_path(workflow_path: PathLike) -> Path:
    """`/x/plan.workflow.yaml` -> `/x/.plan.workflow.state.json`."""
    path = Path(os.path.abspath(workflow_path))
    return path.parent / STATE_FILE_TEMPLATE.format(stem=path.stem)


# =============================================================================
# Instructions, Sessions, Progress
# =============================================================================


@dataclass
class StepInstruction:
    """Typed description of what the caller must do for an executed step."""

    step_name: str
    action: str
    type: InstructionType
    timestamp: str
    context: Dict[str, Any] = field(default_factory=dict)
    prompt: Optional[str] = None
    guidance: Optional[str] = None
    template: Optional[str] = None
    output: Optional[str] = None
    validation_rules: Optional[List[Any]] = None
    sub_workflow: Optional[str] = None
    custom_action: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "stepName": self.step_name,
            "action": self.action,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "context": self.context,
        }
        optional = {
            "prompt": self.prompt,
            "guidance": self.guidance,
            "template": self.template,
            "output": self.output,
            "validationRules": self.validation_rules,
            "subWorkflow": self.sub_workflow,
            "customAction": self.custom_action,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data


@dataclass(frozen=True)
class WorkflowProgress:
    """Step counts for one workflow instance."""

    workflow_name: str
    status: WorkflowStatus
    current_step: int
    total_steps: int
    completed: int
    failed: int
    pending: int
    in_progress: int

    @property
    def percent_complete(self) -> int:
        if self.total_steps == 0:
            return 0
        return round(self.completed / self.total_steps * 100)


def compute_progress(state: WorkflowExecutionState) -> WorkflowProgress:
    counts = {status: 0 for status in StepStatus}
    for step in state.steps:
        counts[step.status] += 1
    return WorkflowProgress(
        workflow_name=state.workflow_name,
        status=state.status,
        current_step=state.current_step,
        total_steps=state.total_steps,
        completed=counts[StepStatus.COMPLETED],
        failed=counts[StepStatus.FAILED],
        pending=counts[StepStatus.PENDING],
        in_progress=counts[StepStatus.IN_PROGRESS],
    )


@dataclass
class WorkflowSession:
    """One workflow instance driven by one caller.

    `etag` is the ETag of the last state this session wrote; every later
    write is a compare-and-swap against it.
    """

    definition: WorkflowDefinition
    state: WorkflowExecutionState
    state_path: Path
    etag: Optional[str] = None

    def progress(self) -> WorkflowProgress:
        return compute_progress(self.state)


# =============================================================================
# Engine
# =============================================================================


class WorkflowEngine:
    """Drives workflow sessions and persists their state through a StateStore."""

    def __init__(
        self,
        store: Optional[StateStore] = None,
        templates: Optional[TemplateEngine] = None,
    ):
        self.store = store if store is not None else FileStateStore()
        self.templates = templates if templates is not None else TemplateEngine()

    def load_workflow(self, path: PathLike) -> WorkflowDefinition:
        return load_workflow(path)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize_workflow(
        self,
        path: PathLike,
        context: Optional[Mapping[str, Any]] = None,
        parent_workflow: Optional[str] = None,
    ) -> WorkflowSession:
        """Load a workflow and persist a fresh state with every step pending.

        An existing state file for the same workflow is replaced.
        """
        definition = self.load_workflow(path)
        workflow_path = definition.source_path or Path(os.path.abspath(path))
        state = WorkflowExecutionState(
            workflow_name=definition.name,
            workflow_path=str(workflow_path),
            status=WorkflowStatus.INITIALIZED,
            current_step=0,
            total_steps=definition.total_steps,
            steps=[
                StepState(step_index=i, step_name=step.name)
                for i, step in enumerate(definition.steps)
            ],
            started_at=utc_now(),
            context=dict(context or {}),
            parent_workflow=parent_workflow,
        )
        state_path = state_file_path(workflow_path)
        if self.store.exists(state_path):
            logger.info("Replacing existing state for workflow '%s' at %s", definition.name, state_path)
        etag = self.store.write(state_path, _dump_state(state))
        logger.info(
            "Initialized workflow '%s' (%d steps)%s",
            definition.name,
            definition.total_steps,
            f" under '{parent_workflow}'" if parent_workflow else "",
        )
        return WorkflowSession(definition=definition, state=state, state_path=state_path, etag=etag)

    def _persist(self, session: WorkflowSession) -> None:
        session.etag = self.store.compare_and_swap(
            session.state_path, session.etag, _dump_state(session.state)
        )

    def execute_step(
        self,
        session: WorkflowSession,
        index: int,
        step_context: Optional[Mapping[str, Any]] = None,
    ) -> StepInstruction:
        """Execute one step and return the caller's instruction.

        Re-executing a failed step is a retry: the attempt counter grows and
        the workflow returns to running. A completed step cannot be re-run.

        Raises:
            WorkflowStateError: If the workflow is completed, the index is
                out of range, or the step already completed.
            ValidationError: If the step lacks a field its action needs
                (the step and workflow are marked failed first).
            ConcurrencyError: If the state file changed underneath the session.
        """
        state = session.state
        if state.status == WorkflowStatus.COMPLETED:
            raise WorkflowStateError(f"Workflow '{state.workflow_name}' is already completed")
        if not 0 <= index < state.total_steps:
            raise WorkflowStateError(
                f"Invalid step index {index} for workflow '{state.workflow_name}' "
                f"({state.total_steps} steps)"
            )

        step_state = state.steps[index]
        if step_state.status == StepStatus.COMPLETED:
            raise WorkflowStateError(
                f"Step {index} ('{step_state.step_name}') of workflow "
                f"'{state.workflow_name}' is already completed"
            )

        step = session.definition.steps[index]
        state.current_step = index
        state.status = WorkflowStatus.RUNNING
        step_state.status = StepStatus.IN_PROGRESS
        step_state.started_at = utc_now()
        step_state.completed_at = None
        step_state.error = None
        step_state.attempts += 1
        self._persist(session)
        logger.debug("Executing step %d ('%s') of '%s'", index, step.name, state.workflow_name)

        context = build_context(state.context, step_context)
        try:
            instruction = self._build_instruction(session, index, step, context)
        except MadaceError as e:
            step_state.status = StepStatus.FAILED
            step_state.completed_at = utc_now()
            step_state.error = str(e)
            state.status = WorkflowStatus.FAILED
            self._persist(session)
            logger.warning("Step %d of '%s' failed: %s", index, state.workflow_name, e)
            raise

        step_state.status = StepStatus.COMPLETED
        step_state.completed_at = utc_now()
        self._persist(session)
        return instruction

    def complete_workflow(self, session: WorkflowSession) -> WorkflowExecutionState:
        """Mark the workflow completed, whatever its step outcomes."""
        state = session.state
        if state.status == WorkflowStatus.COMPLETED:
            return state
        state.status = WorkflowStatus.COMPLETED
        state.completed_at = utc_now()
        self._persist(session)
        logger.info("Completed workflow '%s'", state.workflow_name)
        return state

    # -------------------------------------------------------------------------
    # Step actions
    # -------------------------------------------------------------------------

    def _render(self, text: Optional[str], context: Mapping[str, Any]) -> Optional[str]:
        if text is None:
            return None
        return self.templates.render(text, context)

    def _build_instruction(
        self,
        session: WorkflowSession,
        index: int,
        step: WorkflowStep,
        context: Dict[str, Any],
    ) -> StepInstruction:
        instruction = StepInstruction(
            step_name=step.name,
            action=step.action,
            type=InstructionType.CUSTOM,
            timestamp=now_iso(),
            context=context,
        )
        action = step.action

        if action == "elicit":
            instruction.type = InstructionType.ELICITATION
            instruction.prompt = self._render(step.prompt or DEFAULT_ELICIT_PROMPT, context)
        elif action == "reflect":
            instruction.type = InstructionType.REFLECTION
            instruction.prompt = self._render(step.prompt or DEFAULT_REFLECT_PROMPT, context)
        elif action == "guide":
            instruction.type = InstructionType.GUIDANCE
            instruction.guidance = self._render(step.guidance or step.prompt or "", context)
        elif action == "template":
            if not step.template:
                raise ValidationError(
                    session.definition.source_path,
                    [ValidationIssue(f"workflow.steps.{index}", "template step requires 'template'")],
                )
            instruction.type = InstructionType.TEMPLATE_RENDERING
            instruction.template = step.template
            instruction.output = self._render(step.output, context)
        elif action == "validate":
            instruction.type = InstructionType.VALIDATION
            instruction.validation_rules = list(step.rules)
        elif action == "sub-workflow":
            if not step.workflow:
                raise ValidationError(
                    session.definition.source_path,
                    [ValidationIssue(f"workflow.steps.{index}", "sub-workflow step requires 'workflow'")],
                )
            instruction.type = InstructionType.SUB_WORKFLOW
            instruction.sub_workflow = step.workflow
        else:
            instruction.custom_action = action
            instruction.prompt = self._render(step.prompt, context)

        return instruction

    # -------------------------------------------------------------------------
    # Persistence queries
    # -------------------------------------------------------------------------

    def load_state(self, workflow_path: PathLike) -> Optional[WorkflowExecutionState]:
        """Read the persisted state for a workflow file, or None if there is none."""
        state_path = state_file_path(workflow_path)
        content = self.store.read(state_path)
        if content is None:
            return None
        try:
            return state_from_dict(json.loads(content))
        except json.JSONDecodeError as e:
            raise ParseError(state_path, f"Invalid JSON: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(state_path, f"Invalid execution state: {e}") from e

    def resume(self, workflow_path: PathLike) -> Optional[WorkflowSession]:
        """Rebuild a session from a workflow file and its persisted state.

        Raises:
            WorkflowStateError: If the definition no longer matches the state.
        """
        state = self.load_state(workflow_path)
        if state is None:
            return None
        definition = self.load_workflow(workflow_path)
        if definition.total_steps != state.total_steps:
            raise WorkflowStateError(
                f"Workflow '{definition.name}' now has {definition.total_steps} steps "
                f"but its saved state has {state.total_steps}; clear the state to restart"
            )
        state_path = state_file_path(workflow_path)
        return WorkflowSession(
            definition=definition,
            state=state,
            state_path=state_path,
            etag=self.store.etag(state_path),
        )

    def clear_state(self, target: Union[WorkflowSession, PathLike]) -> bool:
        """Delete the persisted state. Returns True if a state file existed."""
        if isinstance(target, WorkflowSession):
            state_path = target.state_path
        else:
            state_path = state_file_path(target)
        removed = self.store.delete(state_path)
        if removed:
            logger.info("Cleared workflow state %s", state_path)
        return removed

    def get_progress(
        self,
        target: Union[WorkflowSession, WorkflowExecutionState],
    ) -> WorkflowProgress:
        if isinstance(target, WorkflowSession):
            return target.progress()
        return compute_progress(target)
