"""Tests for madace.interop.aliases: module/framework aliasing and path probing."""

from pathlib import Path

import pytest

from madace.interop.aliases import (
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


class TestAliases:
    """Alias tables are symmetric and total."""

    @pytest.mark.parametrize("module", sorted(MODULE_ALIASES))
    def test_module_alias_is_an_involution(self, module):
        assert resolve_module_alias(resolve_module_alias(module)) == module

    def test_unknown_modules_map_to_themselves(self):
        assert resolve_module_alias("cis") == "cis"
        assert resolve_module_alias("core") == "core"
        assert resolve_module_alias("custom") == "custom"

    def test_case_and_whitespace_are_normalized(self):
        assert resolve_module_alias(" BMM ") == "mam"
        assert resolve_framework_alias("BMAD") == "madace"

    def test_variants(self):
        assert get_module_variants("mam") == ["mam", "bmm"]
        assert get_module_variants("cis") == ["cis"]
        assert get_framework_variants("bmad") == ["bmad", "madace"]

    @pytest.mark.parametrize("module,framework,expected", [
        ("bmm", "madace", "mam"),
        ("mam", "madace", "mam"),
        ("mam", "bmad", "bmm"),
        ("bmb", "madace", "mab"),
        ("cis", "bmad", "cis"),
    ])
    def test_to_framework_module(self, module, framework, expected):
        assert to_framework_module(module, framework) == expected


class TestCandidatePaths:
    def test_candidate_directories_order(self, tmp_path: Path):
        candidates = candidate_directories(tmp_path, "mam", "agents")
        assert candidates == [
            tmp_path / "madace" / "mam" / "agents",
            tmp_path / "madace" / "bmm" / "agents",
            tmp_path / "bmad" / "mam" / "agents",
            tmp_path / "bmad" / "bmm" / "agents",
        ]

    def test_resolve_directory_finds_bmad_layout(self, tmp_path: Path):
        (tmp_path / "bmad" / "bmm" / "agents").mkdir(parents=True)
        assert resolve_directory(tmp_path, "mam", "agents") == tmp_path / "bmad" / "bmm" / "agents"

    def test_resolve_directory_with_injected_predicate(self, tmp_path: Path):
        wanted = tmp_path / "madace" / "bmm" / "agents"
        assert resolve_directory(tmp_path, "mam", "agents", exists=lambda p: p == wanted) == wanted

    def test_resolve_directory_none(self, tmp_path: Path):
        assert resolve_directory(tmp_path, "mam", "agents") is None

    def test_workflow_file_candidates_cover_known_modules(self, tmp_path: Path):
        candidates = workflow_file_candidates(tmp_path, "plan")
        assert tmp_path / "madace" / "mam" / "workflows" / "plan.workflow.yaml" in candidates
        assert tmp_path / "bmad" / "bmm" / "workflows" / "plan" / "workflow.yaml" in candidates
        assert len(KNOWN_MODULES) == 4


class TestFindWorkflowFile:
    def test_flat_layout(self, tmp_path: Path):
        target = tmp_path / "madace" / "mam" / "workflows" / "plan.workflow.yaml"
        target.parent.mkdir(parents=True)
        target.write_text("x", encoding="utf-8")
        assert find_workflow_file(tmp_path, "plan") == target

    def test_nested_category_layout(self, tmp_path: Path):
        target = tmp_path / "bmad" / "bmm" / "workflows" / "2-plan" / "prd" / "workflow.yaml"
        target.parent.mkdir(parents=True)
        target.write_text("x", encoding="utf-8")
        assert find_workflow_file(tmp_path, "prd") == target

    def test_flat_wins_over_nested(self, tmp_path: Path):
        flat = tmp_path / "madace" / "mam" / "workflows" / "prd.yaml"
        nested = tmp_path / "madace" / "mam" / "workflows" / "cat" / "prd" / "workflow.yaml"
        for path in (flat, nested):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("x", encoding="utf-8")
        assert find_workflow_file(tmp_path, "prd") == flat

    def test_not_found(self, tmp_path: Path):
        assert find_workflow_file(tmp_path, "nothing") is None

    def test_injected_filesystem(self, tmp_path: Path):
        workflows = tmp_path / "madace" / "mam" / "workflows"
        target = workflows / "cat" / "prd" / "workflow.yaml"
        found = find_workflow_file(
            tmp_path,
            "prd",
            exists=lambda p: p == target,
            list_subdirs=lambda d: [workflows / "cat"] if d == workflows else [],
        )
        assert found == target
