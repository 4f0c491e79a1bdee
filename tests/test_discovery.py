"""Tests for madace.runtime.discovery (workflow catalogs and agent discovery)."""

from pathlib import Path

import pytest

from conftest import make_agent_doc, make_workflow_doc, write_yaml
from madace.errors import NotFoundError, WorkflowNotFoundError
from madace.runtime.discovery import (
    DirectoryWorkflowCatalog,
    ManifestWorkflowCatalog,
    agent_stats,
    count_manifest_rows,
    find_agent,
    load_agents_by_module,
    load_all_agents,
)
from madace.spec.loader import AgentLoader


class TestDirectoryWorkflowCatalog:
    def test_finds_flat_workflow(self, installation):
        catalog = DirectoryWorkflowCatalog(installation["project"])
        assert catalog.find("plan-project") == installation["workflow"]

    def test_finds_workflow_under_bmad_alias(self, tmp_path: Path):
        target = write_yaml(
            tmp_path / "bmad" / "bmm" / "workflows" / "2-plan" / "prd" / "workflow.yaml",
            make_workflow_doc("prd"),
        )
        assert DirectoryWorkflowCatalog(tmp_path).require("prd") == target

    def test_entries_index(self, installation):
        write_yaml(installation["root"] / "cis" / "workflows" / "brainstorm" / "workflow.yaml", make_workflow_doc("b"))
        entries = DirectoryWorkflowCatalog(installation["project"]).entries()
        assert sorted(e.name for e in entries) == ["brainstorm", "plan-project"]
        assert {e.module for e in entries} == {"mam", "cis"}

    def test_substring_of_workflow_id(self, installation):
        catalog = DirectoryWorkflowCatalog(installation["project"])
        assert catalog.find("mam/workflows/plan") == installation["workflow"]

    def test_require_reports_searched_paths(self, tmp_path: Path):
        with pytest.raises(WorkflowNotFoundError) as exc_info:
            DirectoryWorkflowCatalog(tmp_path).require("ghost")
        err = exc_info.value
        assert isinstance(err, NotFoundError)
        assert tmp_path / "madace" / "mam" / "workflows" / "ghost.workflow.yaml" in err.searched
        assert "ghost" in str(err)


class TestManifestWorkflowCatalog:
    def test_from_csv_resolves_relative_paths(self, installation):
        catalog = ManifestWorkflowCatalog.from_csv(
            installation["root"] / "_cfg" / "workflow-manifest.csv",
            base_path=installation["project"],
        )
        assert catalog.find("plan-project") == installation["workflow"]
        assert catalog.find("mam/plan") == installation["workflow"]

    def test_rows(self, tmp_path: Path):
        catalog = ManifestWorkflowCatalog([
            {"name": "a", "workflow_path": "/abs/a.yaml"},
            {"name": "b", "workflow_path": "rel/b.yaml", "workflow_id": "x/b"},
        ], base_path=tmp_path)
        assert catalog.find("a") == Path("/abs/a.yaml")
        assert catalog.find("b") == tmp_path / "rel" / "b.yaml"
        assert catalog.find("c") is None

    def test_missing_manifest(self, tmp_path: Path):
        with pytest.raises(NotFoundError):
            ManifestWorkflowCatalog.from_csv(tmp_path / "workflow-manifest.csv")

    def test_count_rows(self, installation, tmp_path: Path):
        assert count_manifest_rows(installation["root"] / "_cfg" / "agent-manifest.csv") == 1
        assert count_manifest_rows(tmp_path / "none.csv") == 0


class TestAgentDiscovery:
    def test_load_by_module_alias(self, tmp_path: Path):
        write_yaml(tmp_path / "bmad" / "bmm" / "agents" / "pm.agent.yaml", make_agent_doc())
        result = load_agents_by_module(AgentLoader(), tmp_path, "mam")
        assert [a.metadata.name for a in result] == ["PM"]

    def test_missing_module(self, tmp_path: Path):
        with pytest.raises(NotFoundError) as exc_info:
            load_agents_by_module(AgentLoader(), tmp_path, "mab")
        assert len(exc_info.value.searched) == 4

    def test_load_all_skips_absent_modules(self, installation):
        write_yaml(installation["root"] / "cis" / "agents" / "muse.agent.yaml", make_agent_doc("Muse", module="cis"))
        results = load_all_agents(AgentLoader(), installation["project"])
        assert sorted(results) == ["cis", "mam"]

    def test_find_agent_and_stats(self, installation):
        write_yaml(installation["root"] / "cis" / "agents" / "muse.agent.yaml", make_agent_doc("Muse", module="cis"))
        results = load_all_agents(AgentLoader(), installation["project"])
        agents = [a for r in results.values() for a in r]

        assert find_agent(agents, "muse").metadata.name == "Muse"
        assert find_agent(agents, "agents/pm").metadata.name == "PM"
        assert find_agent(agents, "nobody") is None
        assert agent_stats(agents) == {"total": 2, "by_module": {"mam": 1, "cis": 1}, "modules": ["cis", "mam"]}
