"""
template_engine.py - Placeholder interpolation for prompts and documents.

Supported placeholder syntaxes (each can be switched on per call):
- mustache:      {{name}}
- dollar_brace:  ${name}
- percent:       %name%
- dollar:        $name   (bare, ends at a word boundary)

The default active set is mustache + dollar_brace.

Missing variables are handled by mode:
- lenient (default): the placeholder is removed
- strict: MissingVariablesError listing every unresolved name, raised only
  after all active patterns have been applied once

Usage:
    from madace.prompts.template_engine import TemplateEngine

    engine = TemplateEngine()
    engine.render("Hello {{name}}", {"name": "Ada"})        # "Hello Ada"
    engine.render_nested("{{a}}", {"a": "{{b}}", "b": "x"})  # "x"
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Set, Tuple, Union

from madace.config.settings import get_template_max_depth
from madace._io import read_text
from madace.errors import MissingVariablesError, NotFoundError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

PATTERNS: Dict[str, Pattern[str]] = {
    "mustache": re.compile(r"\{\{(\w+)\}\}"),
    "dollar_brace": re.compile(r"\$\{(\w+)\}"),
    "percent": re.compile(r"%(\w+)%"),
    "dollar": re.compile(r"\$(\w+)\b"),
}

DEFAULT_PATTERNS: Tuple[str, ...] = ("mustache", "dollar_brace")


@dataclass
class TemplateValidation:
    """Pre-flight comparison of a template's placeholders with required names."""

    valid: bool
    found: List[str] = field(default_factory=list)
    required: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)  # required but absent
    extra: List[str] = field(default_factory=list)  # present but not required

    def __bool__(self) -> bool:
        return self.valid


def stringify(value: Any) -> str:
    """Render a variable value the way it appears in output text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify(v) for v in value)
    return str(value)


class TemplateEngine:
    """Resolves placeholders in text against a flat variable mapping."""

    def __init__(
        self,
        patterns: Sequence[str] = DEFAULT_PATTERNS,
        max_depth: Optional[int] = None,
    ):
        self._registry: Dict[str, Pattern[str]] = dict(PATTERNS)
        self.default_patterns: Tuple[str, ...] = tuple(patterns)
        self.max_depth = max_depth if max_depth is not None else get_template_max_depth()

    # -------------------------------------------------------------------------
    # Pattern registry
    # -------------------------------------------------------------------------

    @property
    def pattern_names(self) -> List[str]:
        return list(self._registry)

    def register_pattern(self, name: str, regex: Union[str, Pattern[str]]) -> None:
        """Add a placeholder syntax. The regex must have exactly one group."""
        compiled = re.compile(regex) if isinstance(regex, str) else regex
        if compiled.groups != 1:
            raise ValueError(f"Pattern '{name}' must have exactly one capture group")
        self._registry[name] = compiled

    def _active(self, patterns: Optional[Sequence[str]]) -> List[Pattern[str]]:
        names = self.default_patterns if patterns is None else patterns
        active = []
        for name in names:
            pattern = self._registry.get(name)
            if pattern is None:
                logger.warning("Unknown placeholder pattern '%s' ignored", name)
                continue
            active.append(pattern)
        return active

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _substitute(
        self,
        content: str,
        variables: Mapping[str, Any],
        patterns: Optional[Sequence[str]],
        keep_missing: bool,
    ) -> Tuple[str, Set[str]]:
        missing: Set[str] = set()

        def replace(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name in variables:
                return stringify(variables[name])
            missing.add(name)
            return match.group(0) if keep_missing else ""

        for pattern in self._active(patterns):
            content = pattern.sub(replace, content)
        return content, missing

    def render(
        self,
        content: str,
        variables: Mapping[str, Any],
        patterns: Optional[Sequence[str]] = None,
        strict: bool = False,
    ) -> str:
        """Replace every recognized placeholder with its variable's value.

        Raises:
            MissingVariablesError: In strict mode, if any placeholder has
                no variable.
        """
        rendered, missing = self._substitute(content, variables, patterns, keep_missing=strict)
        if strict and missing:
            raise MissingVariablesError(missing)
        return rendered

    def render_nested(
        self,
        content: str,
        variables: Mapping[str, Any],
        patterns: Optional[Sequence[str]] = None,
        strict: bool = False,
        max_depth: Optional[int] = None,
    ) -> str:
        """Render repeatedly so variables may reference other variables.

        Passes stop as soon as a pass leaves the text unchanged. If
        `max_depth` passes were made and the text was still changing, a
        warning is logged and the last result is used; placeholders whose
        variables exist are then left in place.
        """
        depth = self.max_depth if max_depth is None else max_depth
        current = content
        stable = False
        for _ in range(depth):
            rendered, _missing = self._substitute(current, variables, patterns, keep_missing=True)
            if rendered == current:
                stable = True
                break
            current = rendered

        if not stable:
            logger.warning(
                "Template nesting did not stabilize after %d passes; "
                "output may contain unexpanded placeholders",
                depth,
            )

        return self._finalize(current, variables, patterns, strict)

    def _finalize(
        self,
        content: str,
        variables: Mapping[str, Any],
        patterns: Optional[Sequence[str]],
        strict: bool,
    ) -> str:
        """Apply the missing-variable policy without expanding further."""
        missing: Set[str] = set()

        def drop(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name in variables:
                return match.group(0)
            missing.add(name)
            return match.group(0) if strict else ""

        for pattern in self._active(patterns):
            content = pattern.sub(drop, content)
        if strict and missing:
            raise MissingVariablesError(missing)
        return content

    # -------------------------------------------------------------------------
    # File helpers
    # -------------------------------------------------------------------------

    def render_file(
        self,
        path: PathLike,
        variables: Mapping[str, Any],
        patterns: Optional[Sequence[str]] = None,
        strict: bool = False,
        nested: bool = False,
    ) -> str:
        """Render a template file and return the result."""
        template_path = Path(path)
        if not template_path.is_file():
            raise NotFoundError("Template", template_path.name, template_path)
        content = read_text(template_path)
        if nested:
            return self.render_nested(content, variables, patterns, strict)
        return self.render(content, variables, patterns, strict)

    def render_to_file(
        self,
        template_path: PathLike,
        output_path: PathLike,
        variables: Mapping[str, Any],
        patterns: Optional[Sequence[str]] = None,
        strict: bool = False,
        nested: bool = False,
    ) -> Path:
        """Render a template file and write the result, creating parent dirs."""
        rendered = self.render_file(template_path, variables, patterns, strict, nested)
        out = Path(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(rendered, encoding="utf-8")
        logger.debug("Rendered %s -> %s", template_path, out)
        return out

    def render_directory(
        self,
        template_dir: PathLike,
        output_dir: PathLike,
        variables: Mapping[str, Any],
        extension: str = ".md",
        patterns: Optional[Sequence[str]] = None,
        strict: bool = False,
    ) -> List[Path]:
        """Render every `*<extension>` file below template_dir into output_dir.

        The relative directory structure is preserved.
        """
        src = Path(template_dir)
        if not src.is_dir():
            raise NotFoundError("Template directory", src.name, src)
        written = []
        for template in sorted(src.rglob(f"*{extension}")):
            if not template.is_file():
                continue
            target = Path(output_dir) / template.relative_to(src)
            written.append(self.render_to_file(template, target, variables, patterns, strict))
        return written

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def extract_variables(
        self,
        content: str,
        patterns: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """List the unique placeholder names in content, sorted.

        All registered patterns are scanned unless `patterns` is given.
        """
        names = self.pattern_names if patterns is None else patterns
        found: Set[str] = set()
        for pattern in self._active(names):
            found.update(pattern.findall(content))
        return sorted(found)

    def validate_content(
        self,
        content: str,
        required: Iterable[str],
        patterns: Optional[Sequence[str]] = None,
    ) -> TemplateValidation:
        found = self.extract_variables(content, patterns)
        required_list = sorted(set(required))
        missing = [name for name in required_list if name not in found]
        extra = [name for name in found if name not in required_list]
        return TemplateValidation(
            valid=not missing,
            found=found,
            required=required_list,
            missing=missing,
            extra=extra,
        )

    def validate_template(
        self,
        path: PathLike,
        required: Iterable[str],
        patterns: Optional[Sequence[str]] = None,
    ) -> TemplateValidation:
        """Check that a template file uses every required variable."""
        template_path = Path(path)
        if not template_path.is_file():
            raise NotFoundError("Template", template_path.name, template_path)
        return self.validate_content(read_text(template_path), required, patterns)


# =============================================================================
# Context helpers
# =============================================================================


def build_context(*sources: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge variable mappings; later sources win."""
    context: Dict[str, Any] = {}
    for source in sources:
        if source:
            context.update(source)
    return context


def standard_variables(
    config: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Variables every template can rely on.

    Project values come from `config` (a flat mapping, optionally with a
    `paths` sub-mapping) and fall back to neutral defaults.
    """
    config = config or {}
    paths = config.get("paths") or {}
    now = now or datetime.now()
    return {
        "project_name": config.get("project_name") or "Unknown Project",
        "user_name": config.get("user_name") or "User",
        "output_folder": config.get("output_folder") or "docs",
        "communication_language": config.get("communication_language") or "English",
        "current_date": now.strftime("%Y-%m-%d"),
        "current_datetime": now.isoformat(timespec="seconds"),
        "current_year": str(now.year),
        "madace_root": str(paths.get("madace_root") or config.get("madace_root") or ""),
        "project_root": str(paths.get("project_root") or config.get("project_root") or ""),
    }
