"""
markdown_parser.py - Parse Markdown agent files into structured data.

A Markdown agent looks like:

    # PM

    ## Role
    Product manager

    ## Identity
    Seasoned planner...

    ## Principles
    - Ship small
    - Measure

    ## Workflows
    - *plan-project - Create the project plan
    - *status: Show status

The first level-1 heading is the agent name. Level-2 headings name
sections; sections that do not map to a known field are dropped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from madace._io import read_text
from madace.errors import ParseError

PathLike = Union[str, Path]

# - *trigger - description   or   - *trigger: description
# A bullet that opens with "**" is bold prose, not a trigger.
WORKFLOW_LINE_PATTERN = re.compile(r"^-\s+\*(?!\*)([^\s:]+?)(?:\s*:\s*|\s+-\s+)(.+)$")
NAME_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)

_SECTION_FIELDS: Dict[str, str] = {
    "role": "role",
    "identity": "identity",
    "communication_style": "communication_style",
    "communicationstyle": "communication_style",
    "title": "title",
    "icon": "icon",
}


@dataclass
class MenuEntry:
    """A workflow trigger listed in a Markdown agent."""

    trigger: str  # includes the leading "*"
    description: str


@dataclass
class ParsedAgent:
    """Agent fields extracted from Markdown."""

    name: str
    role: str
    identity: str
    title: Optional[str] = None
    icon: Optional[str] = None
    communication_style: Optional[str] = None
    principles: List[str] = field(default_factory=list)
    workflows: List[MenuEntry] = field(default_factory=list)
    critical_actions: Optional[List[str]] = None
    load_always: Optional[List[str]] = None
    prompts: Optional[List[str]] = None


def normalize_section_name(heading: str) -> str:
    """Map a heading to a field key: "Communication Style" -> "communication_style"."""
    key = re.sub(r"\s+", "_", heading.strip().lower())
    return re.sub(r"[^\w]", "", key)


def _is_workflow_line(stripped: str) -> bool:
    return stripped.startswith("- *") and not stripped.startswith("- **")


def _parse_workflow_line(stripped: str) -> Optional[MenuEntry]:
    match = WORKFLOW_LINE_PATTERN.match(stripped)
    if not match:
        return None
    return MenuEntry(trigger=f"*{match.group(1)}", description=match.group(2).strip())


def _bullet_text(stripped: str) -> str:
    return re.sub(r"^-\s+", "", stripped).strip()


def parse_markdown(text: str, source: Optional[PathLike] = None) -> ParsedAgent:
    """Parse a Markdown agent document.

    Raises:
        ParseError: If the name heading, the Role section or the Identity
            section is missing.
    """
    name: Optional[str] = None
    fields: Dict[str, str] = {}
    principles: List[str] = []
    critical: List[str] = []
    workflows: List[MenuEntry] = []

    section: Optional[str] = None
    buffer: List[str] = []
    in_list = False

    def flush() -> None:
        if section is None:
            return
        content = "\n".join(buffer).strip()
        target = _SECTION_FIELDS.get(normalize_section_name(section))
        if content and target:
            fields[target] = content

    for line in text.splitlines():
        stripped = line.strip()

        if line.startswith("# ") and name is None:
            name = line[2:].strip()
            continue

        if line.startswith("## "):
            flush()
            section = line[3:].strip()
            buffer = []
            in_list = False
            continue

        if _is_workflow_line(stripped):
            entry = _parse_workflow_line(stripped)
            if entry:
                workflows.append(entry)
            continue

        heading = section.lower() if section else ""
        if stripped.startswith("- ") and "principle" in heading:
            item = _bullet_text(stripped)
            if item:
                principles.append(item)
            in_list = True
            continue
        if stripped.startswith("- ") and "critical" in heading:
            item = _bullet_text(stripped)
            if item:
                critical.append(item)
            in_list = True
            continue

        if not in_list:
            buffer.append(line)

    flush()

    if not name:
        raise ParseError(source, "Agent name not found (missing # Title)")
    if not fields.get("role"):
        raise ParseError(source, "Agent role not found (missing ## Role section)")
    if not fields.get("identity"):
        raise ParseError(source, "Agent identity not found (missing ## Identity section)")

    return ParsedAgent(
        name=name,
        role=fields["role"],
        identity=fields["identity"],
        title=fields.get("title"),
        icon=fields.get("icon"),
        communication_style=fields.get("communication_style"),
        principles=principles,
        workflows=workflows,
        critical_actions=critical or None,
    )


def parse_markdown_file(path: PathLike) -> ParsedAgent:
    md_path = Path(path)
    return parse_markdown(read_text(md_path), source=md_path)


def extract_agent_name(text: str) -> Optional[str]:
    match = NAME_PATTERN.search(text)
    return match.group(1).strip() if match else None


def extract_workflows(text: str) -> List[MenuEntry]:
    """Collect every workflow trigger line, regardless of section."""
    entries = []
    for line in text.splitlines():
        stripped = line.strip()
        if _is_workflow_line(stripped):
            entry = _parse_workflow_line(stripped)
            if entry:
                entries.append(entry)
    return entries
