"""
converter.py - Convert agents between Markdown (BMAD) and YAML (MADACE).

Conversions report per-file problems in a ConversionResult instead of
raising, so a batch run always returns one result per input file.

Usage:
    from madace.interop.converter import ConversionOptions, markdown_to_yaml

    result = markdown_to_yaml("bmad/bmm/agents/pm.md",
                              ConversionOptions(output_path="madace/mam/agents/pm.agent.yaml"))
    if not result.success:
        print(result.errors)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional, Union

import yaml

from madace._io import read_text
from madace.errors import MadaceError
from madace.spec.loader import parse_agent_text
from madace.spec.types import AgentDefinition, agent_from_dict

from .generator import generate_markdown, generate_yaml
from .markdown_parser import parse_markdown

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

MARKDOWN_SUFFIX = ".md"
AGENT_YAML_SUFFIX = ".agent.yaml"


@dataclass(frozen=True)
class ConversionOptions:
    """Options shared by single-file and batch conversions."""

    output_path: Optional[Path] = None  # written only when set
    target_module: str = "mam"
    validate: bool = True


@dataclass
class ConversionResult:
    """Outcome of converting one file."""

    success: bool
    output: str = ""
    input_path: Optional[Path] = None
    output_path: Optional[Path] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _write_output(content: str, output_path: Optional[Path]) -> Optional[Path]:
    if output_path is None:
        return None
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(content, encoding="utf-8")
    return out


def markdown_to_yaml(
    path: PathLike,
    options: Optional[ConversionOptions] = None,
) -> ConversionResult:
    """Convert a Markdown agent file to MADACE YAML."""
    options = options or ConversionOptions()
    md_path = Path(path)
    result = ConversionResult(success=False, input_path=md_path)

    try:
        parsed = parse_markdown(read_text(md_path), source=md_path)
        content = generate_yaml(parsed, options.target_module)
        result.output = content
        if options.validate:
            parse_agent_text(content, source=options.output_path or md_path)
        result.output_path = _write_output(content, options.output_path)
    except (MadaceError, OSError) as e:
        logger.warning("Markdown to YAML conversion failed for %s: %s", md_path, e)
        result.errors.append(f"Conversion failed: {e}")
        return result

    if not parsed.workflows:
        result.warnings.append("No workflow triggers found; generated agent has an empty menu")
    result.success = True
    return result


def _load_agent_for_markdown(text: str, source: Path, validate: bool) -> AgentDefinition:
    if validate:
        return parse_agent_text(text, source=source)
    data = yaml.safe_load(text)
    try:
        return agent_from_dict(data["agent"], source_path=source)
    except (KeyError, TypeError) as e:
        raise MadaceError(f"Invalid agent document {source}: missing or malformed {e}") from e


def yaml_to_markdown(
    path: PathLike,
    options: Optional[ConversionOptions] = None,
) -> ConversionResult:
    """Convert a MADACE YAML agent file to Markdown.

    Prompts and load_always have no Markdown form; they are dropped with a
    warning.
    """
    options = options or ConversionOptions()
    yaml_path = Path(path)
    result = ConversionResult(success=False, input_path=yaml_path)

    try:
        agent = _load_agent_for_markdown(
            read_text(yaml_path), yaml_path, options.validate
        )
        content = generate_markdown(agent)
        result.output = content
        result.output_path = _write_output(content, options.output_path)
    except (MadaceError, OSError, yaml.YAMLError) as e:
        logger.warning("YAML to Markdown conversion failed for %s: %s", yaml_path, e)
        result.errors.append(f"Conversion failed: {e}")
        return result

    if agent.prompts:
        result.warnings.append(f"{len(agent.prompts)} prompt(s) not representable in Markdown")
    if agent.load_always:
        result.warnings.append("load_always entries not representable in Markdown")
    result.success = True
    return result


def _batch_failure(directory: Path, error: Exception) -> ConversionResult:
    return ConversionResult(
        success=False,
        input_path=directory,
        errors=[f"Batch conversion failed: {error}"],
    )


def batch_markdown_to_yaml(
    input_dir: PathLike,
    output_dir: PathLike,
    options: Optional[ConversionOptions] = None,
) -> List[ConversionResult]:
    """Convert every `*.md` in input_dir to `<stem>.agent.yaml` in output_dir."""
    options = options or ConversionOptions()
    src = Path(input_dir)
    if not src.is_dir():
        return [_batch_failure(src, FileNotFoundError(f"Directory not found: {src}"))]

    results = []
    for md_file in sorted(src.glob(f"*{MARKDOWN_SUFFIX}")):
        target = Path(output_dir) / (md_file.name[: -len(MARKDOWN_SUFFIX)] + AGENT_YAML_SUFFIX)
        results.append(markdown_to_yaml(md_file, replace(options, output_path=target)))
    return results


def batch_yaml_to_markdown(
    input_dir: PathLike,
    output_dir: PathLike,
    options: Optional[ConversionOptions] = None,
) -> List[ConversionResult]:
    """Convert every `*.agent.yaml` in input_dir to `<name>.md` in output_dir."""
    options = options or ConversionOptions()
    src = Path(input_dir)
    if not src.is_dir():
        return [_batch_failure(src, FileNotFoundError(f"Directory not found: {src}"))]

    results = []
    for yaml_file in sorted(src.glob(f"*{AGENT_YAML_SUFFIX}")):
        target = Path(output_dir) / (yaml_file.name[: -len(AGENT_YAML_SUFFIX)] + MARKDOWN_SUFFIX)
        results.append(yaml_to_markdown(yaml_file, replace(options, output_path=target)))
    return results


def default_output_path(input_path: PathLike, target_format: str) -> Path:
    """Conventional destination for a converted agent.

    "madace": pm.md -> madace/mam/agents/pm.agent.yaml
    "bmad":   pm.agent.yaml -> bmad/bmm/agents/pm.md
    """
    name = Path(input_path).name
    if target_format == "madace":
        if name.endswith(MARKDOWN_SUFFIX):
            name = name[: -len(MARKDOWN_SUFFIX)] + AGENT_YAML_SUFFIX
        return Path("madace") / "mam" / "agents" / name
    if target_format == "bmad":
        if name.endswith(AGENT_YAML_SUFFIX):
            name = name[: -len(AGENT_YAML_SUFFIX)] + MARKDOWN_SUFFIX
        return Path("bmad") / "bmm" / "agents" / name
    raise ValueError(f"Unknown target format '{target_format}' (expected 'madace' or 'bmad')")
