"""
discovery.py - Locate workflows and agents under either naming convention.

Workflow lookup goes through a WorkflowCatalog:
- DirectoryWorkflowCatalog probes the installation tree (framework x module
  alias candidates, flat and nested layouts)
- ManifestWorkflowCatalog matches rows supplied by an external manifest
  store (name / workflow_id / workflow_path)

Agent discovery loads whole module directories, trying every framework and
module alias before reporting that a module is missing.
"""

from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from madace.errors import NotFoundError, WorkflowNotFoundError
from madace.interop.aliases import (
    KNOWN_MODULES,
    ExistsPredicate,
    ListSubdirs,
    candidate_directories,
    find_workflow_file,
    resolve_directory,
    workflow_directories,
    workflow_file_candidates,
)
from madace.spec.loader import AgentLoader, DirectoryLoadResult
from madace.spec.types import AgentDefinition

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

WORKFLOW_SUFFIX = ".workflow.yaml"
NESTED_WORKFLOW_FILE = "workflow.yaml"


@dataclass(frozen=True)
class WorkflowEntry:
    """A workflow known to a catalog."""

    name: str
    path: Path
    workflow_id: str = ""
    module: Optional[str] = None


# =============================================================================
# Workflow Catalogs
# =============================================================================


class WorkflowCatalog(ABC):
    """Resolves workflow names to workflow files."""

    @abstractmethod
    def entries(self) -> List[WorkflowEntry]:
        """All workflows this catalog knows about."""
        ...

    def refresh(self) -> int:
        """Re-scan the underlying source. Returns the number of entries."""
        return len(self.entries())

    def searched(self, name: str) -> List[Path]:
        """Locations a failed lookup considered, for error reporting."""
        return []

    def find(self, name: str) -> Optional[Path]:
        """Match by exact name, else by substring of the workflow id."""
        entries = self.entries()
        for entry in entries:
            if entry.name == name:
                return entry.path
        for entry in entries:
            if entry.workflow_id and name in entry.workflow_id:
                return entry.path
        return None

    def require(self, name: str) -> Path:
        """Like find(), but raises WorkflowNotFoundError."""
        path = self.find(name)
        if path is None:
            raise WorkflowNotFoundError(name, self.searched(name))
        return path


class DirectoryWorkflowCatalog(WorkflowCatalog):
    """Finds workflows by probing the installation directory tree.

    `root` is the project root (the directory holding `madace/` or `bmad/`).
    """

    def __init__(
        self,
        root: PathLike,
        modules: Sequence[str] = KNOWN_MODULES,
        exists: Optional[ExistsPredicate] = None,
        list_subdirs: Optional[ListSubdirs] = None,
    ):
        self.root = Path(root)
        self.modules = tuple(modules)
        self._exists = exists
        self._list_subdirs = list_subdirs
        self._index: Optional[List[WorkflowEntry]] = None

    def find(self, name: str) -> Optional[Path]:
        path = find_workflow_file(
            self.root,
            name,
            self.modules,
            exists=self._exists,
            list_subdirs=self._list_subdirs,
        )
        if path is not None:
            return path
        return super().find(name)

    def searched(self, name: str) -> List[Path]:
        return workflow_file_candidates(self.root, name, self.modules)

    def entries(self) -> List[WorkflowEntry]:
        if self._index is None:
            self._index = self._scan()
        return list(self._index)

    def refresh(self) -> int:
        self._index = self._scan()
        logger.debug("Indexed %d workflows under %s", len(self._index), self.root)
        return len(self._index)

    def _scan(self) -> List[WorkflowEntry]:
        found: Dict[Path, WorkflowEntry] = {}
        for directory in workflow_directories(self.root, self.modules):
            if not directory.is_dir():
                continue
            module = directory.parent.name
            for path in sorted(directory.rglob("*.yaml")):
                if path.name.endswith(WORKFLOW_SUFFIX):
                    name = path.name[: -len(WORKFLOW_SUFFIX)]
                elif path.name == NESTED_WORKFLOW_FILE:
                    name = path.parent.name
                else:
                    continue
                found.setdefault(path, WorkflowEntry(
                    name=name,
                    path=path,
                    workflow_id=path.relative_to(self.root).as_posix(),
                    module=module,
                ))
        return list(found.values())


class ManifestWorkflowCatalog(WorkflowCatalog):
    """Catalog over manifest rows supplied by an external manifest store.

    Rows need `name` and `workflow_path`; `workflow_id` and `module` are
    optional. Relative paths resolve against `base_path`.
    """

    def __init__(
        self,
        rows: Iterable[Mapping[str, str]],
        base_path: Optional[PathLike] = None,
    ):
        self.base_path = Path(base_path) if base_path is not None else None
        self._entries = [self._entry(row) for row in rows]

    def _entry(self, row: Mapping[str, str]) -> WorkflowEntry:
        path = Path(row["workflow_path"])
        if self.base_path is not None and not path.is_absolute():
            path = self.base_path / path
        return WorkflowEntry(
            name=row["name"],
            path=path,
            workflow_id=row.get("workflow_id") or "",
            module=row.get("module") or None,
        )

    @classmethod
    def from_csv(cls, manifest_path: PathLike, base_path: Optional[PathLike] = None) -> "ManifestWorkflowCatalog":
        """Read rows from a workflow-manifest.csv (header row required)."""
        path = Path(manifest_path)
        if not path.is_file():
            raise NotFoundError("Workflow manifest", path.name, path)
        with open(path, "r", encoding="utf-8", newline="") as f:
            rows = [
                {k.strip(): (v or "").strip() for k, v in row.items() if k}
                for row in csv.DictReader(f)
            ]
        return cls(rows, base_path=base_path)

    def entries(self) -> List[WorkflowEntry]:
        return list(self._entries)

    def searched(self, name: str) -> List[Path]:
        return [entry.path for entry in self._entries]


def count_manifest_rows(manifest_path: PathLike) -> int:
    """Number of data rows in a manifest CSV; 0 if it does not exist."""
    path = Path(manifest_path)
    if not path.is_file():
        return 0
    with open(path, "r", encoding="utf-8", newline="") as f:
        return sum(1 for row in csv.DictReader(f) if any((v or "").strip() for v in row.values()))


# =============================================================================
# Agent Discovery
# =============================================================================


def load_agents_by_module(
    loader: AgentLoader,
    root: PathLike,
    module: str,
    exists: Optional[ExistsPredicate] = None,
) -> DirectoryLoadResult:
    """Load every agent of a module, wherever its alias places it.

    Raises:
        NotFoundError: If no framework x module candidate directory exists.
    """
    directory = resolve_directory(root, module, "agents", exists=exists)
    if directory is None:
        raise NotFoundError(
            "Agent module", module, searched=candidate_directories(root, module, "agents")
        )
    return loader.load_agents_from_directory(directory)


def load_all_agents(
    loader: AgentLoader,
    root: PathLike,
    modules: Sequence[str] = KNOWN_MODULES,
) -> Dict[str, DirectoryLoadResult]:
    """Load agents for every module that is installed; absent modules are skipped."""
    results = {}
    for module in modules:
        try:
            results[module] = load_agents_by_module(loader, root, module)
        except NotFoundError:
            logger.debug("No agents directory for module '%s' under %s", module, root)
    return results


def find_agent(agents: Iterable[AgentDefinition], name_or_id: str) -> Optional[AgentDefinition]:
    """Case-insensitive match on name, else substring of the id."""
    needle = name_or_id.lower()
    agents = list(agents)
    for agent in agents:
        if agent.metadata.name.lower() == needle:
            return agent
    for agent in agents:
        if needle in agent.metadata.id.lower():
            return agent
    return None


def agent_stats(agents: Iterable[AgentDefinition]) -> Dict[str, object]:
    by_module = Counter(agent.metadata.module or "unknown" for agent in agents)
    return {
        "total": sum(by_module.values()),
        "by_module": dict(by_module),
        "modules": sorted(by_module),
    }
