"""
generator.py - Render agents as MADACE YAML or BMAD-style Markdown.

generate_yaml() turns a ParsedAgent (from Markdown) into the canonical
agent document; generate_markdown() turns a loaded AgentDefinition back into
Markdown. Prose formatting is not guaranteed to survive a round trip; role,
identity, principles, critical actions and workflow triggers are.
"""

from __future__ import annotations

from typing import Any, Dict, List

import yaml

from madace.spec.types import DEFAULT_AGENT_ICON, AgentDefinition

from .aliases import to_framework_module
from .markdown_parser import ParsedAgent

DEFAULT_LOAD_ALWAYS = ["madace/core/config.yaml"]
GENERATED_VERSION = "1.0.0"


def _bare_trigger(trigger: str) -> str:
    return trigger[1:] if trigger.startswith("*") else trigger


def build_agent_document(parsed: ParsedAgent, module: str = "mam") -> Dict[str, Any]:
    """Build the agent document (root key included) from a ParsedAgent.

    BMAD module names are translated to their MADACE counterparts, so
    `module="bmm"` produces a `mam` agent.
    """
    target = to_framework_module(module, "madace")
    body: Dict[str, Any] = {
        "metadata": {
            "id": f"madace/{target}/agents/{parsed.name.lower()}.md",
            "name": parsed.name,
            "title": parsed.title or f"{parsed.name} - {parsed.role}",
            "icon": parsed.icon or DEFAULT_AGENT_ICON,
            "module": target,
            "version": GENERATED_VERSION,
        },
        "persona": {
            "role": parsed.role,
            "identity": parsed.identity,
            "communication_style": parsed.communication_style or "",
            "principles": list(parsed.principles),
        },
        "menu": [
            {
                "trigger": entry.trigger,
                "action": f"workflow:{_bare_trigger(entry.trigger)}",
                "description": entry.description,
            }
            for entry in parsed.workflows
        ],
    }
    if parsed.critical_actions:
        body["critical_actions"] = list(parsed.critical_actions)
    body["load_always"] = list(parsed.load_always or DEFAULT_LOAD_ALWAYS)
    if parsed.prompts:
        body["prompts"] = [
            {"name": f"prompt-{i}", "trigger": f"*prompt-{i}", "content": content}
            for i, content in enumerate(parsed.prompts, start=1)
        ]
    return {"agent": body}


def dump_yaml(document: Dict[str, Any]) -> str:
    return yaml.safe_dump(
        document,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=100,
    )


def generate_yaml(parsed: ParsedAgent, module: str = "mam") -> str:
    """Render a ParsedAgent as MADACE agent YAML."""
    return dump_yaml(build_agent_document(parsed, module))


def generate_markdown(agent: AgentDefinition) -> str:
    """Render an AgentDefinition as a Markdown agent."""
    parts: List[str] = [f"# {agent.metadata.name}\n"]
    parts.append(f"## Role\n\n{agent.persona.role}\n")
    parts.append(f"## Identity\n\n{agent.persona.identity}\n")

    if agent.persona.communication_style.strip():
        parts.append(f"## Communication Style\n\n{agent.persona.communication_style}\n")

    if agent.persona.principles:
        bullets = "\n".join(f"- {p}" for p in agent.persona.principles)
        parts.append(f"## Principles\n\n{bullets}\n")

    if agent.critical_actions:
        bullets = "\n".join(f"- {a}" for a in agent.critical_actions)
        parts.append(f"## Critical Actions\n\n{bullets}\n")

    if agent.menu:
        bullets = "\n".join(
            f"- *{_bare_trigger(item.trigger)} - {item.description}" for item in agent.menu
        )
        parts.append(f"## Workflows\n\n{bullets}\n")

    return "\n".join(parts)
