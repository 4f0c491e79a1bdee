"""Project configuration for a MADACE installation.

An installation lives under `<project>/madace/` (or `<project>/bmad/`) with
its configuration at `core/config.yaml`:

    project_name: Acme
    user_name: Ada
    output_folder: docs
    communication_language: English

Usage:
    from madace.config.project_config import auto_load_config

    config = auto_load_config()          # walks up from the cwd
    config.paths.output_folder           # <project>/docs
    config.get("tools.editor", "vim")    # dotted lookup, extra keys included
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic import ValidationError as PydanticValidationError

from madace._io import read_text
from madace.errors import NotFoundError, ParseError, ValidationError, ValidationIssue
from madace.interop.aliases import FRAMEWORKS

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

CONFIG_RELATIVE_PATH = Path("core") / "config.yaml"
CFG_DIR = "_cfg"
AGENT_MANIFEST = "agent-manifest.csv"
WORKFLOW_MANIFEST = "workflow-manifest.csv"

DEFAULT_CONFIG: Dict[str, Any] = {
    "project_name": "MADACE Project",
    "output_folder": "docs",
    "user_name": "User",
    "communication_language": "English",
    "madace_version": "1.0.0-alpha.1",
}


class ConfigPaths(BaseModel):
    """Filesystem locations derived from where the config file lives."""

    madace_root: Path
    project_root: Path
    config_file: Path
    output_folder: Path


class ProjectConfig(BaseModel):
    """Validated project configuration; unknown keys are kept as extras."""

    model_config = ConfigDict(extra="allow")

    project_name: StrictStr = Field(min_length=1)
    user_name: StrictStr = Field(min_length=1)
    output_folder: StrictStr = DEFAULT_CONFIG["output_folder"]
    communication_language: StrictStr = DEFAULT_CONFIG["communication_language"]
    madace_version: StrictStr = DEFAULT_CONFIG["madace_version"]
    paths: Optional[ConfigPaths] = Field(default=None, exclude=True)

    def to_file_dict(self) -> Dict[str, Any]:
        """The persisted form: everything except computed paths."""
        return self.model_dump(mode="json", exclude={"paths"})

    def to_variables(self) -> Dict[str, Any]:
        """Flat mapping for template rendering, with `paths` as a sub-mapping."""
        data = self.to_file_dict()
        if self.paths is not None:
            data["paths"] = {k: str(v) for k, v in self.paths.model_dump().items()}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        """Dotted lookup, e.g. get("paths.output_folder")."""
        value: Any = self.to_variables()
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default
        return value


def _compute_paths(config_file: Path, output_folder: str) -> ConfigPaths:
    # <project>/madace/core/config.yaml
    madace_root = config_file.parent.parent
    project_root = madace_root.parent
    return ConfigPaths(
        madace_root=madace_root,
        project_root=project_root,
        config_file=config_file,
        output_folder=project_root / output_folder,
    )


def _issues_from_pydantic(error: PydanticValidationError) -> List[ValidationIssue]:
    return [
        ValidationIssue(
            location=".".join(str(p) for p in err["loc"]) or "root",
            message=err["msg"],
        )
        for err in error.errors()
    ]


def load_config(path: PathLike) -> ProjectConfig:
    """Load and validate a config.yaml, computing installation paths.

    Raises:
        NotFoundError: If the file does not exist.
        ParseError: If the YAML is malformed.
        ValidationError: If required fields are missing or mistyped.
    """
    config_file = Path(path).resolve()
    if not config_file.is_file():
        raise NotFoundError("Configuration", config_file.name, config_file)

    try:
        data = yaml.safe_load(read_text(config_file))
    except yaml.YAMLError as e:
        raise ParseError(config_file, f"Invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(config_file, [ValidationIssue("root", "Expected a mapping")])
    data.pop("paths", None)

    try:
        config = ProjectConfig(**data)
    except PydanticValidationError as e:
        raise ValidationError(config_file, _issues_from_pydantic(e)) from e

    config.paths = _compute_paths(config_file, config.output_folder)
    return config


def find_madace_root(start: Optional[PathLike] = None) -> Optional[Path]:
    """Walk up from `start` to the first `<dir>/<framework>/core/config.yaml`.

    Returns the framework directory (e.g. `<project>/madace`), or None.
    """
    current = Path(start or Path.cwd()).resolve()
    for directory in [current] + list(current.parents):
        for framework in FRAMEWORKS:
            candidate = directory / framework
            if (candidate / CONFIG_RELATIVE_PATH).is_file():
                return candidate
    return None


def auto_load_config(start: Optional[PathLike] = None) -> ProjectConfig:
    """Locate the installation above `start` and load its config."""
    root = find_madace_root(start)
    if root is None:
        where = str(start or Path.cwd())
        raise NotFoundError("MADACE installation", where)
    return load_config(root / CONFIG_RELATIVE_PATH)


def _dump(data: Dict[str, Any]) -> str:
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, width=120)


def create_default_config(path: PathLike, **overrides: Any) -> ProjectConfig:
    """Write a config.yaml from defaults plus overrides and load it back."""
    config_file = Path(path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(_dump({**DEFAULT_CONFIG, **overrides}), encoding="utf-8")
    logger.info("Created default configuration at %s", config_file)
    return load_config(config_file)


def save_config(config: ProjectConfig, path: Optional[PathLike] = None) -> Path:
    """Persist a config without its computed paths."""
    if path is not None:
        target = Path(path)
    elif config.paths is not None:
        target = config.paths.config_file
    else:
        raise ValueError("No configuration path specified")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(_dump(config.to_file_dict()), encoding="utf-8")
    return target


# =============================================================================
# Installation checks
# =============================================================================


@dataclass
class InstallationReport:
    valid: bool
    root: Path
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid


def validate_installation(root: PathLike) -> InstallationReport:
    """Check an installation directory.

    Missing core files are issues; missing manifests are warnings.
    """
    madace_root = Path(root)
    report = InstallationReport(valid=True, root=madace_root)

    core_dir = madace_root / "core"
    if not core_dir.is_dir():
        report.issues.append("Missing core directory")

    config_file = madace_root / CONFIG_RELATIVE_PATH
    if not config_file.is_file():
        report.issues.append("Missing config.yaml")
    else:
        try:
            load_config(config_file)
        except (ParseError, ValidationError) as e:
            report.issues.append(f"Invalid config.yaml: {e}")

    cfg_dir = madace_root / CFG_DIR
    if not cfg_dir.is_dir():
        report.warnings.append(f"Missing {CFG_DIR} directory")
    for manifest in (AGENT_MANIFEST, WORKFLOW_MANIFEST):
        if not (cfg_dir / manifest).is_file():
            report.warnings.append(f"Missing {manifest}")

    report.valid = not report.issues
    return report
