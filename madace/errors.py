"""
errors.py - Error taxonomy for the MADACE core.

Every error raised by the loader, template engine, interop layer, workflow
engine, story state machine and agent runtime derives from MadaceError so
callers can catch the whole family at one boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

PathLike = Union[str, Path]


class MadaceError(Exception):
    """Base exception for MADACE core errors."""

    pass


class NotFoundError(MadaceError):
    """Raised when a file, directory or named resource does not exist."""

    def __init__(
        self,
        kind: str,
        name: str,
        path: Optional[PathLike] = None,
        searched: Sequence[PathLike] = (),
    ):
        self.kind = kind
        self.name = name
        self.path = Path(path) if path is not None else None
        self.searched = [Path(p) for p in searched]
        msg = f"{kind} '{name}' not found"
        if path is not None:
            msg += f" at {path}"
        if self.searched:
            msg += f" (searched: {', '.join(str(p) for p in self.searched)})"
        super().__init__(msg)


class ParseError(MadaceError):
    """Raised when source text (YAML, Markdown, status document) is malformed."""

    def __init__(self, path: Optional[PathLike], detail: str):
        self.path = Path(path) if path is not None else None
        self.detail = detail
        where = str(path) if path is not None else "<string>"
        super().__init__(f"Failed to parse {where}: {detail}")


@dataclass(frozen=True)
class ValidationIssue:
    """One schema violation, located by a dotted path."""

    location: str  # e.g. "agent.menu.1.trigger"
    message: str

    def __str__(self) -> str:
        if self.location:
            return f"[{self.location}] {self.message}"
        return self.message


class ValidationError(MadaceError):
    """Raised when content is structurally present but violates its schema."""

    def __init__(self, path: Optional[PathLike], issues: Sequence[ValidationIssue]):
        self.path = Path(path) if path is not None else None
        self.issues: List[ValidationIssue] = list(issues)
        where = str(path) if path is not None else "<string>"
        details = "; ".join(str(i) for i in self.issues)
        super().__init__(f"Validation failed for {where}: {details}")


class MissingVariablesError(MadaceError):
    """Raised by strict template rendering when placeholders remain unresolved."""

    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = sorted(set(missing))
        super().__init__(f"Missing template variables: {', '.join(self.missing)}")


class CommandNotFoundError(MadaceError):
    """Raised when a menu trigger does not exist on the loaded agent."""

    def __init__(self, trigger: str, available: Sequence[str] = ()):
        self.trigger = trigger
        self.available = list(available)
        msg = f"Command not found: {trigger}"
        if self.available:
            msg += f" (available: {', '.join(self.available)})"
        super().__init__(msg)


class WorkflowNotFoundError(NotFoundError):
    """Raised when workflow discovery exhausts every candidate location."""

    def __init__(self, name: str, searched: Sequence[PathLike] = ()):
        super().__init__("Workflow", name, searched=searched)


class WorkflowStateError(MadaceError):
    """Raised for an illegal workflow or session transition."""

    pass


class TransitionError(MadaceError):
    """Raised when a story lifecycle transition is rejected."""

    pass


class ConcurrencyError(MadaceError):
    """Raised when a persisted document changed since it was last read."""

    def __init__(
        self,
        path: PathLike,
        expected_etag: Optional[str],
        actual_etag: Optional[str],
    ):
        self.path = Path(path)
        self.expected_etag = expected_etag
        self.actual_etag = actual_etag
        super().__init__(
            f"{path} was modified by another process. "
            f"Expected ETag: {expected_etag}, Actual: {actual_etag}"
        )
