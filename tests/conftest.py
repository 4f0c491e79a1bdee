"""
Shared fixtures for the MADACE core tests.

Provides agent/workflow document builders and a temporary installation laid
out the way a real project is:

    <project>/
      madace/
        core/config.yaml
        _cfg/agent-manifest.csv, workflow-manifest.csv
        mam/agents/pm.agent.yaml
        mam/workflows/plan-project.workflow.yaml
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import yaml

_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from madace.config.settings import reset_settings


# ============================================================================
# Document builders
# ============================================================================


def make_agent_doc(
    name: str = "PM",
    menu: Optional[List[Dict[str, str]]] = None,
    critical_actions: Optional[List[str]] = None,
    **metadata: Any,
) -> Dict[str, Any]:
    """Build a valid agent document (root key included)."""
    body: Dict[str, Any] = {
        "metadata": {
            "id": f"madace/mam/agents/{name.lower()}.md",
            "name": name,
            "title": f"{name} Agent",
            "icon": "📋",
            "module": "mam",
            "version": "1.0.0",
            **metadata,
        },
        "persona": {
            "role": "Product manager",
            "identity": "Plans projects and keeps scope honest",
            "communication_style": "Direct",
            "principles": ["Ship small", "Measure outcomes"],
        },
        "menu": menu if menu is not None else [
            {"trigger": "*plan-project", "action": "workflow:plan-project", "description": "Plan the project"},
            {"trigger": "*ask", "action": "elicit:What is the goal for {{project_name}}?", "description": "Ask"},
            {"trigger": "*help", "action": "guide:Use *plan-project first", "description": "Help"},
            {"trigger": "*check", "action": "check-config", "description": "Check config"},
        ],
    }
    if critical_actions is not None:
        body["critical_actions"] = critical_actions
    return {"agent": body}


def make_workflow_doc(name: str = "plan-project", steps: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "workflow": {
            "name": name,
            "description": f"{name} workflow",
            "steps": steps if steps is not None else [
                {"name": "gather", "action": "elicit", "prompt": "Describe {{project_name}}"},
                {"name": "think", "action": "reflect"},
                {"name": "write", "action": "template", "template": "prd.md", "output": "{{output_folder}}/prd.md"},
            ],
        }
    }


def write_yaml(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return path


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate tests from MADACE_* environment variables and cached settings."""
    for var in ("MADACE_LOG_LEVEL", "MADACE_TEMPLATE_MAX_DEPTH", "MADACE_DEFAULT_MODULE"):
        monkeypatch.delenv(var, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def installation(tmp_path: Path) -> Dict[str, Path]:
    """A complete project with one agent and one workflow."""
    project = tmp_path / "project"
    root = project / "madace"
    write_yaml(root / "core" / "config.yaml", {
        "project_name": "Acme",
        "user_name": "Ada",
        "output_folder": "docs",
        "communication_language": "English",
    })
    cfg = root / "_cfg"
    cfg.mkdir(parents=True)
    (cfg / "agent-manifest.csv").write_text("name,module,path\npm,mam,mam/agents/pm.agent.yaml\n", encoding="utf-8")
    (cfg / "workflow-manifest.csv").write_text(
        "name,workflow_id,workflow_path\n"
        "plan-project,mam/plan-project,madace/mam/workflows/plan-project.workflow.yaml\n",
        encoding="utf-8",
    )
    agent = write_yaml(root / "mam" / "agents" / "pm.agent.yaml", make_agent_doc())
    workflow = write_yaml(root / "mam" / "workflows" / "plan-project.workflow.yaml", make_workflow_doc())
    return {
        "project": project,
        "root": root,
        "config": root / "core" / "config.yaml",
        "agent": agent,
        "workflow": workflow,
    }
