"""
madace - Agent and workflow orchestration core.

Subpackages:
- spec: agent/workflow definitions and the schema-validating loader
- prompts: placeholder interpolation
- interop: MADACE <-> BMAD aliases and Markdown/YAML conversion
- runtime: workflow engine, story state machine, agent runtime
- config: project configuration and runtime settings
- tools: command line entry point
"""

__version__ = "1.0.0"
