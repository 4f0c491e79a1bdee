#!/usr/bin/env python3
"""
cli.py - Command line entry point for the MADACE core.

Usage:
  madace status
  madace validate
  madace agent pm --command "*plan-project"
  madace workflow start madace/mam/workflows/plan.workflow.yaml
  madace workflow step madace/mam/workflows/plan.workflow.yaml --index 0
  madace story next --status-file docs/mam-workflow-status.md
  madace convert-agent --from bmad --input bmad/bmm/agents/pm.md
  madace render templates/prd.md --var feature=login --strict

## Exit Codes

0   Command succeeded
1   Command failed (invalid state, rejected transition, failed conversion)
2   Fatal error (missing installation or files, unparseable input)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from madace import __version__
from madace.config.project_config import (
    CONFIG_RELATIVE_PATH,
    ProjectConfig,
    auto_load_config,
    find_madace_root,
    load_config,
    validate_installation,
)
from madace.config.settings import get_default_module, get_log_level
from madace.errors import MadaceError, NotFoundError, ParseError
from madace.interop.aliases import KNOWN_MODULES, candidate_directories, resolve_directory
from madace.interop.converter import (
    ConversionOptions,
    ConversionResult,
    batch_markdown_to_yaml,
    batch_yaml_to_markdown,
    markdown_to_yaml,
    yaml_to_markdown,
)
from madace.prompts.template_engine import TemplateEngine, build_context, standard_variables
from madace.runtime.agent_runtime import AgentRuntime
from madace.runtime.state_machine import StoryRecord, StoryStateMachine, format_story_line
from madace.runtime.workflow_engine import StepStatus, WorkflowEngine, WorkflowSession

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_FATAL = 2

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _configure_logging(debug: bool) -> None:
    level = "DEBUG" if debug else get_log_level()
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)


def _key_value(text: str) -> Tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{text}'")
    return key.strip(), value


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


# =============================================================================
# Installation
# =============================================================================


def cmd_status(args: argparse.Namespace) -> int:
    config = auto_load_config(args.root)
    paths = config.paths
    print(f"Installation: {paths.madace_root if paths else '-'}")
    print(f"Project:      {config.project_name}")
    print(f"User:         {config.user_name}")
    print(f"Language:     {config.communication_language}")
    print(f"Version:      {config.madace_version}")
    if paths:
        print(f"Output:       {paths.output_folder}")
    return EXIT_SUCCESS


def cmd_validate(args: argparse.Namespace) -> int:
    root = find_madace_root(args.root)
    if root is None:
        print(f"No MADACE installation found above {args.root or Path.cwd()}", file=sys.stderr)
        return EXIT_FATAL

    report = validate_installation(root)
    for issue in report.issues:
        print(f"✗ {issue}")
    for warning in report.warnings:
        print(f"⚠ {warning}")
    if report.valid:
        print(f"✓ Installation at {root} is valid")
        return EXIT_SUCCESS
    return EXIT_FAILURE


# =============================================================================
# Agents
# =============================================================================


def _find_agent_file(config: ProjectConfig, name: str, module: Optional[str]) -> Path:
    project_root = config.paths.project_root if config.paths else Path.cwd()
    modules = [module] if module else [get_default_module(), *KNOWN_MODULES]
    searched: List[Path] = []
    for mod in dict.fromkeys(modules):
        directory = resolve_directory(project_root, mod, "agents")
        if directory is not None and (directory / f"{name}.agent.yaml").is_file():
            return directory / f"{name}.agent.yaml"
        searched.extend(d / f"{name}.agent.yaml" for d in candidate_directories(project_root, mod, "agents"))
    raise NotFoundError("Agent", name, searched=searched)


def cmd_agent(args: argparse.Namespace) -> int:
    config = auto_load_config(args.root)
    runtime = AgentRuntime(config=config)
    agent = runtime.load_agent(_find_agent_file(config, args.name, args.module))

    meta = agent.metadata
    print(f"{meta.icon} {meta.name} - {meta.title}")
    print(f"Role: {agent.persona.role}")
    print(f"Identity: {agent.persona.identity}")
    if agent.persona.communication_style:
        print(f"Style: {agent.persona.communication_style}")
    for principle in agent.persona.principles:
        print(f"  - {principle}")
    print("\nMenu:")
    for item in agent.menu:
        print(f"  {item.trigger:<24} {item.description}")

    failed = [h for h in runtime.get_history() if h.status == "failed"]
    for entry in failed:
        print(f"⚠ Critical action '{entry.action}' failed: {entry.error}", file=sys.stderr)

    if args.command:
        result = runtime.execute_command(args.command)
        print()
        _print_json(result.summary())
    return EXIT_SUCCESS


# =============================================================================
# Workflows
# =============================================================================


def _resume_or_fail(engine: WorkflowEngine, path: Path) -> WorkflowSession:
    session = engine.resume(path)
    if session is None:
        raise MadaceError(f"No saved state for {path}; run 'madace workflow start' first")
    return session


def _next_step_index(session: WorkflowSession) -> Optional[int]:
    for step in session.state.steps:
        if step.status != StepStatus.COMPLETED:
            return step.step_index
    return None


def cmd_workflow(args: argparse.Namespace) -> int:
    engine = WorkflowEngine()
    path = Path(args.path)

    if args.action == "start":
        session = engine.initialize_workflow(path, dict(args.var or []))
        print(f"Started '{session.definition.name}' ({session.state.total_steps} steps)")
        return EXIT_SUCCESS

    if args.action == "clear":
        removed = engine.clear_state(path)
        print("State cleared" if removed else "No state to clear")
        return EXIT_SUCCESS

    if args.action == "status":
        state = engine.load_state(path)
        if state is None:
            print(f"No saved state for {path}")
            return EXIT_FAILURE
        progress = engine.get_progress(state)
        print(f"Workflow: {progress.workflow_name} [{progress.status.value}]")
        print(
            f"Steps: {progress.completed}/{progress.total_steps} completed "
            f"({progress.percent_complete}%), {progress.failed} failed"
        )
        for step in state.steps:
            print(f"  {step.step_index:>3}  {step.status.value:<12} {step.step_name}")
        return EXIT_SUCCESS

    session = _resume_or_fail(engine, path)
    if args.action == "complete":
        engine.complete_workflow(session)
        print(f"Completed '{session.definition.name}'")
        return EXIT_SUCCESS

    index = args.index if args.index is not None else _next_step_index(session)
    if index is None:
        print("All steps completed")
        return EXIT_SUCCESS
    instruction = engine.execute_step(session, index, dict(args.var or []))
    _print_json(instruction.to_dict())
    return EXIT_SUCCESS


# =============================================================================
# Stories
# =============================================================================


def _print_stories(heading: str, stories: Sequence[Optional[StoryRecord]]) -> None:
    print(heading)
    present = [s for s in stories if s is not None]
    if not present:
        print("  (empty)")
    for story in present:
        print(f"  {format_story_line(story)}")


def cmd_story(args: argparse.Namespace) -> int:
    machine = StoryStateMachine(args.status_file)

    if args.action == "init":
        if not args.epics:
            print("--epics is required for 'story init'", file=sys.stderr)
            return EXIT_FATAL
        state = machine.initialize_from_epics(args.epics)
        count = len(state.backlog) + (1 if state.todo else 0)
        print(f"Initialized {args.status_file} with {count} stories")
        return EXIT_SUCCESS

    machine.load()
    if args.action == "status":
        print(f"Current Phase: {machine.current_phase}")
        _print_stories("BACKLOG", machine.backlog)
        _print_stories("TODO", [machine.todo_story])
        _print_stories("IN PROGRESS", [machine.in_progress_story])
        _print_stories("DONE", machine.done)
        return EXIT_SUCCESS

    if args.action == "validate":
        result = machine.validate()
        for error in result.errors:
            print(f"✗ {error}")
        for warning in result.warnings:
            print(f"⚠ {warning}")
        if result.valid:
            print("✓ Status document is valid")
            return EXIT_SUCCESS
        return EXIT_FAILURE

    transitions = {
        "next": (machine.backlog_to_todo, "TODO"),
        "start": (machine.todo_to_in_progress, "IN PROGRESS"),
        "finish": (machine.in_progress_to_done, "DONE"),
    }
    transition, stage = transitions[args.action]
    story = transition()
    print(f"Moved [{story.id}] {story.title} to {stage}")
    return EXIT_SUCCESS


# =============================================================================
# Conversion and Rendering
# =============================================================================


def _report_conversion(result: ConversionResult) -> bool:
    for warning in result.warnings:
        print(f"⚠ {result.input_path}: {warning}", file=sys.stderr)
    for error in result.errors:
        print(f"✗ {result.input_path}: {error}", file=sys.stderr)
    return result.success


def cmd_convert_agent(args: argparse.Namespace) -> int:
    options = ConversionOptions(
        output_path=Path(args.output) if args.output else None,
        target_module=args.module,
        validate=not args.no_validate,
    )
    convert = markdown_to_yaml if args.source == "bmad" else yaml_to_markdown
    result = convert(args.input, options)
    if not _report_conversion(result):
        return EXIT_FAILURE
    if result.output_path is not None:
        print(f"✓ Wrote {result.output_path}")
    else:
        print(result.output)
    return EXIT_SUCCESS


def cmd_convert_agents_batch(args: argparse.Namespace) -> int:
    options = ConversionOptions(target_module=args.module, validate=not args.no_validate)
    output_dir = args.output_dir or args.input_dir
    convert = batch_markdown_to_yaml if args.source == "bmad" else batch_yaml_to_markdown
    results = convert(args.input_dir, output_dir, options)

    ok = [r for r in results if _report_conversion(r)]
    print(f"Converted {len(ok)}/{len(results)} agents into {output_dir}")
    return EXIT_SUCCESS if len(ok) == len(results) else EXIT_FAILURE


def cmd_render(args: argparse.Namespace) -> int:
    root = find_madace_root(args.root)
    config_vars: Dict[str, Any] = {}
    if root is not None:
        config_vars = load_config(root / CONFIG_RELATIVE_PATH).to_variables()

    variables = build_context(standard_variables(config_vars), dict(args.var or []))
    engine = TemplateEngine()
    if args.output:
        out = engine.render_to_file(args.template, args.output, variables, strict=args.strict, nested=args.nested)
        print(f"✓ Wrote {out}")
    else:
        print(engine.render_file(args.template, variables, strict=args.strict, nested=args.nested))
    return EXIT_SUCCESS


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="madace",
        description="MADACE agent, workflow and story tooling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0  success
  1  command failed (invalid state, rejected transition, failed conversion)
  2  fatal error (missing installation or files, unparseable input)
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Directory to search upward from for the installation (default: cwd)",
    )
    sub = parser.add_subparsers(dest="command_name", required=True)

    p = sub.add_parser("status", help="Show installation and project configuration")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("validate", help="Validate the installation layout")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("agent", help="Load an agent and show its persona and menu")
    p.add_argument("name", help="Agent file name without .agent.yaml (e.g. pm)")
    p.add_argument("--module", help="Module to look in (default: all known modules)")
    p.add_argument("--command", help="Menu trigger to run after loading (e.g. *plan-project)")
    p.set_defaults(func=cmd_agent)

    p = sub.add_parser("workflow", help="Drive a workflow's persisted execution state")
    p.add_argument("action", choices=["start", "step", "complete", "status", "clear"])
    p.add_argument("path", type=Path, help="Workflow YAML file")
    p.add_argument("--index", type=int, help="Step index for 'step' (default: next incomplete step)")
    p.add_argument("--var", type=_key_value, action="append", help="Context variable KEY=VALUE")
    p.set_defaults(func=cmd_workflow)

    p = sub.add_parser("story", help="Move stories through BACKLOG, TODO, IN PROGRESS, DONE")
    p.add_argument("action", choices=["status", "validate", "next", "start", "finish", "init"])
    p.add_argument("--status-file", type=Path, required=True, help="Status Markdown document")
    p.add_argument("--epics", type=Path, help="Epics document (for 'init')")
    p.set_defaults(func=cmd_story)

    for name, func, help_text in (
        ("convert-agent", cmd_convert_agent, "Convert one agent between BMAD Markdown and MADACE YAML"),
        ("convert-agents-batch", cmd_convert_agents_batch, "Convert a directory of agents"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument(
            "--from",
            dest="source",
            choices=["bmad", "madace"],
            required=True,
            help="bmad: Markdown -> YAML, madace: YAML -> Markdown",
        )
        if name == "convert-agent":
            p.add_argument("--input", type=Path, required=True)
            p.add_argument("--output", type=Path, help="Output file (default: print to stdout)")
        else:
            p.add_argument("--input-dir", type=Path, required=True)
            p.add_argument("--output-dir", type=Path, help="Output directory (default: input dir)")
        p.add_argument("--module", default="mam", help="Target module for generated YAML")
        p.add_argument("--no-validate", action="store_true", help="Skip schema validation")
        p.set_defaults(func=func)

    p = sub.add_parser("render", help="Render a template file")
    p.add_argument("template", type=Path)
    p.add_argument("--var", type=_key_value, action="append", help="Template variable KEY=VALUE")
    p.add_argument("--output", type=Path, help="Write to file instead of stdout")
    p.add_argument("--strict", action="store_true", help="Fail on unresolved placeholders")
    p.add_argument("--nested", action="store_true", help="Resolve placeholders inside values")
    p.set_defaults(func=cmd_render)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.debug)

    try:
        return args.func(args)
    except (NotFoundError, ParseError) as e:
        logger.debug("Fatal error in '%s'", args.command_name, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except MadaceError as e:
        logger.debug("Command '%s' failed", args.command_name, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
