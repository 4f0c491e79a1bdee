"""
madace/prompts - Placeholder interpolation for prompts and documents.
"""

from .template_engine import (
    DEFAULT_PATTERNS,
    PATTERNS,
    TemplateEngine,
    TemplateValidation,
    build_context,
    standard_variables,
)

__all__ = [
    "DEFAULT_PATTERNS",
    "PATTERNS",
    "TemplateEngine",
    "TemplateValidation",
    "build_context",
    "standard_variables",
]
