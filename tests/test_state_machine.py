"""Tests for madace.runtime.state_machine (story lifecycle)."""

from datetime import date
from pathlib import Path

import pytest

from madace.errors import ConcurrencyError, NotFoundError, TransitionError
from madace.runtime.state_machine import (
    BacklogState,
    StoryRecord,
    StoryStateMachine,
    StoryStatus,
    extract_stories_from_epics,
    format_story_line,
    parse_status_document,
    parse_story_line,
    render_status_document,
)
from madace.runtime.storage import MemoryStateStore

EPICS = """# Epics

### Epic 1: Foundation

1. **Story F1**: Project setup (3 points)
2. **Story F2**: Config loader (5 points)

### Epic 2: Auth

- **Story AUTH-1**: Login form (2 point)
- Not a story line
"""

FIXED_DAY = date(2026, 10, 19)


def story(story_id: str, **kwargs) -> StoryRecord:
    return StoryRecord(id=story_id, title=f"Story {story_id}", filename=f"story-{story_id.lower()}.md", **kwargs)


def write_status(path: Path, state: BacklogState) -> Path:
    path.write_text(render_status_document(state), encoding="utf-8")
    return path


@pytest.fixture
def status_path(tmp_path: Path) -> Path:
    return tmp_path / "docs" / "mam-workflow-status.md"


class TestStoryLines:
    def test_parse_full_line(self):
        record = parse_story_line(
            "- [F12] Login form (story-f12.md) [Status: Done] [Points: 3] [Date: 2026-10-01]"
        )
        assert record == StoryRecord(
            id="F12", title="Login form", filename="story-f12.md",
            status="Done", points=3, date="2026-10-01",
        )

    def test_line_without_id(self):
        assert parse_story_line("- just a note") is None

    def test_format_then_parse(self):
        record = story("F1", status=StoryStatus.DRAFT, points=5)
        assert parse_story_line(format_story_line(record)) == record


class TestDocument:
    def test_render_empty_sections_use_placeholders(self):
        text = render_status_document(BacklogState(current_phase=2))
        assert text.startswith("# MAM Workflow Status")
        assert "**Current Phase:** Phase 2" in text
        assert "_No stories in backlog_" in text
        assert "_No story in TODO_" in text
        assert "_No story in progress_" in text
        assert "_No completed stories_" in text

    def test_render_then_parse(self):
        state = BacklogState(
            backlog=[story("F3", points=2), story("F4")],
            todo=story("F2", status=StoryStatus.DRAFT),
            in_progress=story("F1", status=StoryStatus.READY),
            done=[story("F0", status=StoryStatus.DONE, date="2026-10-01")],
            current_phase=4,
        )
        assert parse_status_document(render_status_document(state)) == state

    def test_multiple_todo_stories_are_overflow(self):
        text = "## TODO\n- [A] a (a.md)\n- [B] b (b.md)\n"
        state = parse_status_document(text)
        assert state.todo.id == "A"
        assert [s.id for s in state.todo_overflow] == ["B"]


class TestEpics:
    def test_extracts_stories_in_order(self):
        stories = extract_stories_from_epics(EPICS)
        assert [(s.id, s.points, s.epic) for s in stories] == [("F1", 3, 1), ("F2", 5, 1), ("AUTH-1", 2, 2)]
        assert stories[0].filename == "story-f1.md"
        assert stories[2].title == "Login form"

    def test_initialize_from_epics(self, tmp_path: Path, status_path: Path):
        epics = tmp_path / "epics.md"
        epics.write_text(EPICS, encoding="utf-8")
        status_path.parent.mkdir(parents=True)

        machine = StoryStateMachine(status_path)
        state = machine.initialize_from_epics(epics)

        assert state.todo.id == "F1"
        assert state.todo.status == StoryStatus.DRAFT
        assert [s.id for s in state.backlog] == ["F2", "AUTH-1"]
        assert StoryStateMachine(status_path).load() == state

    def test_initialize_missing_epics(self, tmp_path: Path, status_path: Path):
        with pytest.raises(NotFoundError):
            StoryStateMachine(status_path).initialize_from_epics(tmp_path / "none.md")


class TestTransitions:
    def _machine(self, status_path: Path, state: BacklogState) -> StoryStateMachine:
        status_path.parent.mkdir(parents=True, exist_ok=True)
        write_status(status_path, state)
        machine = StoryStateMachine(status_path, today=lambda: FIXED_DAY)
        machine.load()
        return machine

    def test_full_lifecycle(self, status_path: Path):
        machine = self._machine(status_path, BacklogState(backlog=[story("F1"), story("F2"), story("F3")]))

        assert machine.backlog_to_todo().id == "F1"
        started = machine.todo_to_in_progress()
        assert started.id == "F1"
        assert started.status == StoryStatus.READY
        assert machine.todo_story.id == "F2"
        finished = machine.in_progress_to_done()

        assert finished.status == StoryStatus.DONE
        assert finished.date == "2026-10-19"

        reloaded = StoryStateMachine(status_path)
        reloaded.load()
        assert reloaded.in_progress_story is None
        assert reloaded.todo_story.id == "F2"
        assert [s.id for s in reloaded.backlog] == ["F3"]
        assert [s.id for s in reloaded.done] == ["F1"]

    def test_backfill_means_next_backlog_to_todo_fails(self, status_path: Path):
        machine = self._machine(status_path, BacklogState(
            backlog=[story("F2")], todo=story("F1", status=StoryStatus.DRAFT),
        ))
        machine.todo_to_in_progress()

        with pytest.raises(TransitionError, match="TODO already contains a story"):
            machine.backlog_to_todo()

    def test_backlog_to_todo_with_empty_backlog(self, status_path: Path):
        machine = self._machine(status_path, BacklogState())
        with pytest.raises(TransitionError, match="BACKLOG is empty"):
            machine.backlog_to_todo()

    def test_todo_to_in_progress_requires_empty_slot(self, status_path: Path):
        machine = self._machine(status_path, BacklogState(
            todo=story("F2"), in_progress=story("F1"),
        ))
        with pytest.raises(TransitionError, match="IN PROGRESS already contains a story"):
            machine.todo_to_in_progress()

    def test_todo_to_in_progress_with_empty_todo(self, status_path: Path):
        machine = self._machine(status_path, BacklogState(backlog=[story("F1")]))
        with pytest.raises(TransitionError, match="TODO is empty"):
            machine.todo_to_in_progress()

    def test_done_requires_in_progress(self, status_path: Path):
        machine = self._machine(status_path, BacklogState())
        with pytest.raises(TransitionError, match="IN PROGRESS is empty"):
            machine.in_progress_to_done()

    def test_invalid_document_blocks_transitions(self, status_path: Path):
        status_path.parent.mkdir(parents=True)
        status_path.write_text("## TODO\n- [A] a (a.md)\n- [B] b (b.md)\n## IN PROGRESS\n", encoding="utf-8")
        machine = StoryStateMachine(status_path)
        machine.load()

        validation = machine.validate()
        assert not validation.valid
        assert "only ONE allowed" in validation.errors[0]
        with pytest.raises(TransitionError):
            machine.todo_to_in_progress()

    def test_validate_warnings(self, status_path: Path):
        machine = self._machine(status_path, BacklogState(backlog=[story("F1")]))
        result = machine.validate()
        assert result.valid
        assert any("TODO is empty" in w for w in result.warnings)

    def test_transition_before_load(self, status_path: Path):
        with pytest.raises(TransitionError):
            StoryStateMachine(status_path).backlog_to_todo()

    def test_missing_status_document(self, status_path: Path):
        with pytest.raises(NotFoundError):
            StoryStateMachine(status_path).load()

    def test_concurrent_edit_detected(self, status_path: Path):
        machine = self._machine(status_path, BacklogState(backlog=[story("F1")]))
        status_path.write_text(status_path.read_text(encoding="utf-8") + "\n", encoding="utf-8")

        with pytest.raises(ConcurrencyError):
            machine.backlog_to_todo()

    def test_memory_store(self, status_path: Path):
        store = MemoryStateStore()
        store.write(status_path, render_status_document(BacklogState(backlog=[story("F1")])))
        machine = StoryStateMachine(status_path, store=store)
        machine.load()

        machine.backlog_to_todo()

        assert "[F1]" in store.read(status_path).split("## TODO")[1]
        assert not status_path.exists()

    def test_current_phase_defaults_to_four(self, status_path: Path):
        machine = self._machine(status_path, BacklogState())
        assert machine.current_phase == 4
