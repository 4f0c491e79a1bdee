"""
state_machine.py - Story lifecycle over a Markdown status document.

Stories move BACKLOG -> TODO -> IN PROGRESS -> DONE. TODO and IN PROGRESS
each hold at most one story. The status document is the only durable form
of the state; it is re-parsed on every load() and rewritten in full after
every transition.

Status document format:

    # MAM Workflow Status

    **Current Phase:** Phase 4

    ---

    ## BACKLOG
    ...
    - [F12] Login form (story-f12.md) [Points: 3]

    ## TODO
    - [F11] Session store (story-f11.md) [Status: Draft] [Points: 5]

    ## IN PROGRESS
    _No story in progress_

    ## DONE
    - [F10] Schema (story-f10.md) [Status: Done] [Points: 2] [Date: 2026-10-01]

Transition contract:
- backlog_to_todo(): TODO must be empty and BACKLOG non-empty.
- todo_to_in_progress(): IN PROGRESS must be empty and TODO occupied. When
  BACKLOG is non-empty its head is moved into the freed TODO slot in the
  same transition, so TODO is refilled without a separate call.
- in_progress_to_done(): IN PROGRESS must be occupied; the story is stamped
  with today's date.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

from madace._io import read_text
from madace.errors import NotFoundError, TransitionError

from ._time import today as _system_today
from .storage import FileStateStore, StateStore

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_PHASE = 4
DOCUMENT_TITLE = "# MAM Workflow Status"


class StoryStage(str, Enum):
    """The four lifecycle stages."""

    BACKLOG = "BACKLOG"
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class StoryStatus:
    """Status values written into story lines."""

    DRAFT = "Draft"
    READY = "Ready"
    IN_REVIEW = "In Review"
    DONE = "Done"


# Section headings in document order, with the stage they introduce.
_SECTION_HEADINGS = (
    ("## BACKLOG", StoryStage.BACKLOG),
    ("## TODO", StoryStage.TODO),
    ("## IN PROGRESS", StoryStage.IN_PROGRESS),
    ("## DONE", StoryStage.DONE),
)

_ID_PATTERN = re.compile(r"\[([A-Z0-9-]+)\]")
_FILENAME_PATTERN = re.compile(r"\(([^)]+\.md)\)")
_TITLE_PATTERN = re.compile(r"\]\s+([^(]+?)\s+\(")
_STATUS_PATTERN = re.compile(r"Status:\s*([^\]]+)\]")
_POINTS_PATTERN = re.compile(r"Points:\s*(\d+)")
_DATE_PATTERN = re.compile(r"Date:\s*(\d{4}-\d{2}-\d{2})")
_PHASE_PATTERN = re.compile(r"Phase (\d+)")

_EPIC_PATTERN = re.compile(r"^###\s+Epic (\d+):\s*(.+)")
_EPIC_STORY_LINE = re.compile(r"^\s*(?:\d+\.|-)\s+\*\*Story")
_EPIC_STORY_PATTERN = re.compile(r"\*\*Story ([A-Z0-9-]+)\*\*:\s*(.+?)\s*\((\d+)\s+points?\)")


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class StoryRecord:
    """One story line of the status document."""

    id: str
    title: str
    filename: str
    status: Optional[str] = None
    points: Optional[int] = None
    date: Optional[str] = None  # YYYY-MM-DD
    epic: Optional[int] = field(default=None, compare=False)


@dataclass
class BacklogState:
    """Parsed status document.

    `todo_overflow` and `in_progress_overflow` hold any stories beyond the
    first found in a single-occupancy section; a valid document has none.
    """

    backlog: List[StoryRecord] = field(default_factory=list)
    todo: Optional[StoryRecord] = None
    in_progress: Optional[StoryRecord] = None
    done: List[StoryRecord] = field(default_factory=list)
    current_phase: Optional[int] = None
    todo_overflow: List[StoryRecord] = field(default_factory=list)
    in_progress_overflow: List[StoryRecord] = field(default_factory=list)


@dataclass
class StateValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid


# =============================================================================
# Parsing and Rendering
# =============================================================================


def parse_story_line(line: str) -> Optional[StoryRecord]:
    """Parse `- [ID] Title (file.md) [Status: X] [Points: N] [Date: D]`.

    Returns None when the line has no story id.
    """
    id_match = _ID_PATTERN.search(line)
    if not id_match:
        return None
    filename = _FILENAME_PATTERN.search(line)
    title = _TITLE_PATTERN.search(line)
    status = _STATUS_PATTERN.search(line)
    points = _POINTS_PATTERN.search(line)
    day = _DATE_PATTERN.search(line)
    return StoryRecord(
        id=id_match.group(1),
        title=title.group(1).strip() if title else "",
        filename=filename.group(1) if filename else "",
        status=status.group(1).strip() if status else None,
        points=int(points.group(1)) if points else None,
        date=day.group(1) if day else None,
    )


def format_story_line(story: StoryRecord) -> str:
    line = f"- [{story.id}] {story.title} ({story.filename})"
    if story.status:
        line += f" [Status: {story.status}]"
    if story.points:
        line += f" [Points: {story.points}]"
    if story.date:
        line += f" [Date: {story.date}]"
    return line


def parse_status_document(text: str) -> BacklogState:
    state = BacklogState()
    stage: Optional[StoryStage] = None

    for line in text.splitlines():
        if "**Current Phase:**" in line:
            match = _PHASE_PATTERN.search(line)
            if match:
                state.current_phase = int(match.group(1))

        heading = next((s for prefix, s in _SECTION_HEADINGS if line.startswith(prefix)), None)
        if heading is not None:
            stage = heading
            continue

        if stage is None or not line.strip().startswith("-"):
            continue
        story = parse_story_line(line)
        if story is None:
            continue

        if stage == StoryStage.BACKLOG:
            state.backlog.append(story)
        elif stage == StoryStage.TODO:
            if state.todo is None:
                state.todo = story
            else:
                state.todo_overflow.append(story)
        elif stage == StoryStage.IN_PROGRESS:
            if state.in_progress is None:
                state.in_progress = story
            else:
                state.in_progress_overflow.append(story)
        else:
            state.done.append(story)

    return state


def _section(heading: str, description: str, stories: List[StoryRecord], empty: str) -> List[str]:
    lines = [heading, "", description, ""]
    if stories:
        lines.extend(format_story_line(s) for s in stories)
    else:
        lines.append(empty)
    lines.append("")
    return lines


def render_status_document(state: BacklogState) -> str:
    """Render a BacklogState as the full status document."""
    lines = [
        DOCUMENT_TITLE,
        "",
        f"**Current Phase:** Phase {state.current_phase or DEFAULT_PHASE}",
        "",
        "---",
        "",
    ]
    lines += _section(
        "## BACKLOG", "Stories to be drafted (ordered by priority):",
        state.backlog, "_No stories in backlog_",
    )
    lines += _section(
        "## TODO", "Story ready for drafting (only ONE at a time):",
        ([state.todo] if state.todo else []) + state.todo_overflow, "_No story in TODO_",
    )
    lines += _section(
        "## IN PROGRESS", "Story being implemented (only ONE at a time):",
        ([state.in_progress] if state.in_progress else []) + state.in_progress_overflow,
        "_No story in progress_",
    )
    lines += _section("## DONE", "Completed stories:", state.done, "_No completed stories_")
    return "\n".join(lines)


def extract_stories_from_epics(text: str) -> List[StoryRecord]:
    """Collect `**Story <ID>**: <title> (<N> points)` lines under `### Epic <N>:` headers."""
    stories = []
    epic: Optional[int] = None
    for line in text.splitlines():
        epic_match = _EPIC_PATTERN.match(line)
        if epic_match:
            epic = int(epic_match.group(1))
            continue
        if epic is None or not _EPIC_STORY_LINE.match(line):
            continue
        match = _EPIC_STORY_PATTERN.search(line)
        if not match:
            continue
        story_id = match.group(1)
        stories.append(StoryRecord(
            id=story_id,
            title=match.group(2).strip(),
            filename=f"story-{story_id.lower()}.md",
            points=int(match.group(3)),
            epic=epic,
        ))
    return stories


# =============================================================================
# State Machine
# =============================================================================


class StoryStateMachine:
    """Enforces the story lifecycle over one status document."""

    def __init__(
        self,
        status_path: PathLike,
        store: Optional[StateStore] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.status_path = Path(status_path)
        self.store = store if store is not None else FileStateStore()
        self._today = today or _system_today
        self._state: Optional[BacklogState] = None
        self._etag: Optional[str] = None

    @property
    def state(self) -> BacklogState:
        if self._state is None:
            raise TransitionError(f"State for {self.status_path} not loaded; call load() first")
        return self._state

    def load(self) -> BacklogState:
        """Parse the status document.

        Raises:
            NotFoundError: If the status document does not exist.
        """
        content = self.store.read(self.status_path)
        if content is None:
            raise NotFoundError("Status document", self.status_path.name, self.status_path)
        self._state = parse_status_document(content)
        self._etag = self.store.etag(self.status_path)
        return self._state

    def save(self) -> None:
        """Rewrite the status document, failing if it changed since load()."""
        content = render_status_document(self.state)
        self._etag = self.store.compare_and_swap(self.status_path, self._etag, content)

    def validate(self) -> StateValidation:
        state = self.state
        result = StateValidation(valid=True)
        if state.todo_overflow:
            result.errors.append("TODO section contains multiple stories - only ONE allowed")
        if state.in_progress_overflow:
            result.errors.append("IN PROGRESS section contains multiple stories - only ONE allowed")
        if state.todo is None and state.backlog:
            result.warnings.append(
                "TODO is empty but BACKLOG has stories - consider moving next story to TODO"
            )
        if state.in_progress is None and state.todo is not None:
            result.warnings.append(
                "IN PROGRESS is empty but TODO has a story - consider reviewing and approving TODO story"
            )
        result.valid = not result.errors
        return result

    def _require_valid(self) -> BacklogState:
        validation = self.validate()
        if not validation.valid:
            raise TransitionError(
                f"Status document {self.status_path} is invalid: {'; '.join(validation.errors)}"
            )
        return self.state

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def backlog_to_todo(self) -> StoryRecord:
        state = self._require_valid()
        if state.todo is not None:
            raise TransitionError("Cannot move to TODO: TODO already contains a story")
        if not state.backlog:
            raise TransitionError("Cannot move to TODO: BACKLOG is empty")

        state.todo = replace(state.backlog.pop(0), status=StoryStatus.DRAFT)
        self.save()
        logger.info("Moved %s to TODO", state.todo.id)
        return state.todo

    def todo_to_in_progress(self) -> StoryRecord:
        state = self._require_valid()
        if state.in_progress is not None:
            raise TransitionError("Cannot move to IN PROGRESS: IN PROGRESS already contains a story")
        if state.todo is None:
            raise TransitionError("Cannot move to IN PROGRESS: TODO is empty")

        state.in_progress = replace(state.todo, status=StoryStatus.READY)
        state.todo = None
        if state.backlog:
            state.todo = replace(state.backlog.pop(0), status=StoryStatus.DRAFT)
        self.save()
        logger.info(
            "Moved %s to IN PROGRESS%s",
            state.in_progress.id,
            f"; backfilled TODO with {state.todo.id}" if state.todo else "",
        )
        return state.in_progress

    def in_progress_to_done(self) -> StoryRecord:
        state = self._require_valid()
        if state.in_progress is None:
            raise TransitionError("Cannot move to DONE: IN PROGRESS is empty")

        story = replace(
            state.in_progress,
            status=StoryStatus.DONE,
            date=self._today().isoformat(),
        )
        state.done.append(story)
        state.in_progress = None
        self.save()
        logger.info("Moved %s to DONE", story.id)
        return story

    def initialize_from_epics(self, epics_path: PathLike) -> BacklogState:
        """Seed the status document from an epics document.

        The first story goes to TODO, the rest to BACKLOG. An existing
        status document is replaced.
        """
        epics = Path(epics_path)
        if not epics.is_file():
            raise NotFoundError("Epics document", epics.name, epics)
        stories = extract_stories_from_epics(read_text(epics))

        state = BacklogState(current_phase=DEFAULT_PHASE)
        if stories:
            state.todo = replace(stories[0], status=StoryStatus.DRAFT)
            state.backlog = list(stories[1:])
        self._state = state
        self._etag = self.store.write(self.status_path, render_status_document(state))
        logger.info("Initialized %s from %s with %d stories", self.status_path, epics, len(stories))
        return state

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def todo_story(self) -> Optional[StoryRecord]:
        return self._state.todo if self._state else None

    @property
    def in_progress_story(self) -> Optional[StoryRecord]:
        return self._state.in_progress if self._state else None

    @property
    def backlog(self) -> List[StoryRecord]:
        return list(self._state.backlog) if self._state else []

    @property
    def done(self) -> List[StoryRecord]:
        return list(self._state.done) if self._state else []

    @property
    def current_phase(self) -> int:
        if self._state and self._state.current_phase:
            return self._state.current_phase
        return DEFAULT_PHASE
