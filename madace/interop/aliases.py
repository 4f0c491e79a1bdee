"""
aliases.py - Module and framework naming aliases.

Two ecosystems file the same agents and workflows under different names:

    framework:  madace  <->  bmad
    module:     mam     <->  bmm
                mab     <->  bmb
                cis, core    (same in both)

Lookups are case-insensitive. Directory resolution builds the full list of
framework x module candidates up front; the existence check is injected so
the candidate logic can be tested without a filesystem.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

PathLike = Union[str, Path]
ExistsPredicate = Callable[[Path], bool]
ListSubdirs = Callable[[Path], Iterable[Path]]

MODULE_ALIASES: Dict[str, str] = {
    "bmm": "mam",
    "mam": "bmm",
    "bmb": "mab",
    "mab": "bmb",
}

FRAMEWORK_ALIASES: Dict[str, str] = {
    "bmad": "madace",
    "madace": "bmad",
}

# Module names native to each framework's vocabulary.
_FRAMEWORK_MODULES: Dict[str, Sequence[str]] = {
    "madace": ("mam", "mab"),
    "bmad": ("bmm", "bmb"),
}

KNOWN_MODULES = ("mam", "mab", "cis", "core")
FRAMEWORKS = ("madace", "bmad")


def _normalize(name: str) -> str:
    return name.strip().lower()


def resolve_module_alias(module: str) -> str:
    """Map a module name to its counterpart; unknown names map to themselves."""
    key = _normalize(module)
    return MODULE_ALIASES.get(key, key)


def resolve_framework_alias(framework: str) -> str:
    key = _normalize(framework)
    return FRAMEWORK_ALIASES.get(key, key)


def get_module_variants(module: str) -> List[str]:
    """Return [normalized] or [normalized, alias]."""
    key = _normalize(module)
    alias = MODULE_ALIASES.get(key)
    return [key, alias] if alias else [key]


def get_framework_variants(framework: str) -> List[str]:
    key = _normalize(framework)
    alias = FRAMEWORK_ALIASES.get(key)
    return [key, alias] if alias else [key]


def to_framework_module(module: str, framework: str) -> str:
    """Name a module in one framework's vocabulary.

    Examples:
        to_framework_module("bmm", "madace") -> "mam"
        to_framework_module("mam", "bmad") -> "bmm"
        to_framework_module("cis", "bmad") -> "cis"
    """
    key = _normalize(module)
    native = _FRAMEWORK_MODULES.get(_normalize(framework), ())
    if key in MODULE_ALIASES and key not in native:
        return MODULE_ALIASES[key]
    return key


# =============================================================================
# Candidate Paths
# =============================================================================


def _dedupe(paths: Iterable[Path]) -> List[Path]:
    seen = set()
    ordered = []
    for path in paths:
        if path not in seen:
            seen.add(path)
            ordered.append(path)
    return ordered


def candidate_directories(
    root: PathLike,
    module: str,
    kind: str,
    frameworks: Sequence[str] = FRAMEWORKS,
) -> List[Path]:
    """Every `<root>/<framework>/<module>/<kind>` a module could live under.

    Order: frameworks in the given order, and within each framework the
    module name as given before its alias.
    """
    base = Path(root)
    return _dedupe(
        base / fw / mod / kind
        for fw in frameworks
        for mod in get_module_variants(module)
    )


def resolve_directory(
    root: PathLike,
    module: str,
    kind: str,
    exists: Optional[ExistsPredicate] = None,
) -> Optional[Path]:
    """Return the first candidate directory that exists, or None."""
    check = exists or (lambda p: p.is_dir())
    for candidate in candidate_directories(root, module, kind):
        if check(candidate):
            return candidate
    return None


def workflow_directories(root: PathLike, modules: Sequence[str] = KNOWN_MODULES) -> List[Path]:
    return _dedupe(
        directory
        for module in modules
        for directory in candidate_directories(root, module, "workflows")
    )


def workflow_file_candidates(
    root: PathLike,
    name: str,
    modules: Sequence[str] = KNOWN_MODULES,
) -> List[Path]:
    """Flat file locations a workflow called `name` may occupy.

    For each workflow directory: `<name>.workflow.yaml`, `<name>.yaml`,
    `<name>/workflow.yaml`.
    """
    candidates = []
    for directory in workflow_directories(root, modules):
        candidates.append(directory / f"{name}.workflow.yaml")
        candidates.append(directory / f"{name}.yaml")
        candidates.append(directory / name / "workflow.yaml")
    return candidates


def _list_subdirs(directory: Path) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_dir())


def find_workflow_file(
    root: PathLike,
    name: str,
    modules: Sequence[str] = KNOWN_MODULES,
    exists: Optional[ExistsPredicate] = None,
    list_subdirs: Optional[ListSubdirs] = None,
) -> Optional[Path]:
    """Locate a workflow file under either naming convention.

    Flat candidates are tried first, then the nested BMAD layout
    `<workflows>/<category>/<name>/workflow.yaml`.
    """
    check = exists or (lambda p: p.is_file())
    for candidate in workflow_file_candidates(root, name, modules):
        if check(candidate):
            return candidate

    subdirs = list_subdirs or _list_subdirs
    for directory in workflow_directories(root, modules):
        for category in subdirs(directory):
            candidate = category / name / "workflow.yaml"
            if check(candidate):
                return candidate
    return None
