"""
madace/interop - Interoperability between the MADACE and BMAD conventions.

- aliases: module (mam/bmm, mab/bmb) and framework (madace/bmad) names
- markdown_parser: Markdown agent -> ParsedAgent
- generator: ParsedAgent -> YAML, AgentDefinition -> Markdown
- converter: file-level and batch conversion with ConversionResult reports
"""

from .aliases import (
    FRAMEWORK_ALIASES,
    FRAMEWORKS,
    KNOWN_MODULES,
    MODULE_ALIASES,
    candidate_directories,
    find_workflow_file,
    get_framework_variants,
    get_module_variants,
    resolve_directory,
    resolve_framework_alias,
    resolve_module_alias,
    to_framework_module,
    workflow_file_candidates,
)
from .converter import (
    ConversionOptions,
    ConversionResult,
    batch_markdown_to_yaml,
    batch_yaml_to_markdown,
    default_output_path,
    markdown_to_yaml,
    yaml_to_markdown,
)
from .generator import build_agent_document, generate_markdown, generate_yaml
from .markdown_parser import MenuEntry, ParsedAgent, extract_agent_name, extract_workflows, parse_markdown

__all__ = [
    # Aliases
    "FRAMEWORK_ALIASES",
    "FRAMEWORKS",
    "KNOWN_MODULES",
    "MODULE_ALIASES",
    "candidate_directories",
    "find_workflow_file",
    "get_framework_variants",
    "get_module_variants",
    "resolve_directory",
    "resolve_framework_alias",
    "resolve_module_alias",
    "to_framework_module",
    "workflow_file_candidates",
    # Markdown
    "MenuEntry",
    "ParsedAgent",
    "extract_agent_name",
    "extract_workflows",
    "parse_markdown",
    # Generation
    "build_agent_document",
    "generate_markdown",
    "generate_yaml",
    # Conversion
    "ConversionOptions",
    "ConversionResult",
    "batch_markdown_to_yaml",
    "batch_yaml_to_markdown",
    "default_output_path",
    "markdown_to_yaml",
    "yaml_to_markdown",
]
