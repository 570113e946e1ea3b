"""Tests for agentqa.models.config - ProjectConfig, find_project_root, load_project_config."""

from pathlib import Path

import pytest
from pydantic import ValidationError


class TestProjectConfig:
    """Test ProjectConfig model."""

    def test_defaults(self):
        """ProjectConfig has sensible defaults."""
        from agentqa.models import ProjectConfig

        config = ProjectConfig()
        assert config.storage_dir == ".agentqa"
        assert config.multi_run.runs == 3
        assert config.multi_run.continue_on_failure is True
        assert "deleted" in config.multi_run.hallucination_keywords
        assert config.wait.timeout_ms == 30_000
        assert config.wait.interval_ms == 1_000
        assert config.relationships == []

    def test_default_keywords_are_a_copy(self):
        """Mutating one config's keywords does not leak into the defaults."""
        from agentqa.models.config import DEFAULT_HALLUCINATION_KEYWORDS, MultiRunConfig

        config = MultiRunConfig()
        config.hallucination_keywords.append("archived")
        assert "archived" not in DEFAULT_HALLUCINATION_KEYWORDS

    def test_rejects_unknown_keys(self):
        """ProjectConfig rejects unknown keys (extra=forbid)."""
        from agentqa.models import ProjectConfig

        with pytest.raises(ValidationError):
            ProjectConfig(unknown_key="value")

    def test_runs_bounds(self):
        """runs must be between 1 and 1000."""
        from agentqa.models.config import MultiRunConfig

        with pytest.raises(ValidationError):
            MultiRunConfig(runs=0)
        with pytest.raises(ValidationError):
            MultiRunConfig(runs=1001)


class TestFindProjectRoot:
    """Test find_project_root directory walking."""

    def test_finds_yaml_in_current_dir(self, tmp_path: Path):
        from agentqa.models.config import find_project_root

        (tmp_path / "agentqa.yaml").write_text("storage_dir: .agentqa\n")
        assert find_project_root(tmp_path) == tmp_path.resolve()

    def test_finds_storage_dir_in_parent(self, tmp_path: Path):
        from agentqa.models.config import find_project_root

        (tmp_path / ".agentqa").mkdir()
        child = tmp_path / "scenarios" / "nested"
        child.mkdir(parents=True)
        assert find_project_root(child) == tmp_path.resolve()

    def test_falls_back_to_cwd(self, tmp_path: Path, monkeypatch):
        from agentqa.models.config import find_project_root

        monkeypatch.chdir(tmp_path)
        assert find_project_root(tmp_path) == Path.cwd()


class TestLoadProjectConfig:
    """Test load_project_config YAML loading."""

    def test_missing_file_returns_defaults(self, tmp_path: Path):
        from agentqa.models.config import load_project_config

        config = load_project_config(tmp_path)
        assert config.storage_dir == ".agentqa"

    def test_empty_file_returns_defaults(self, tmp_path: Path):
        from agentqa.models.config import load_project_config

        (tmp_path / "agentqa.yaml").write_text("")
        assert load_project_config(tmp_path).multi_run.runs == 3

    def test_loads_values(self, tmp_path: Path):
        from agentqa.models.config import load_project_config

        (tmp_path / "agentqa.yaml").write_text(
            "storage_dir: data/qa\n"
            "multi_run:\n"
            "  runs: 10\n"
            "  continue_on_failure: false\n"
            "  hallucination_keywords: [archived, closed]\n"
            "wait:\n"
            "  timeout_ms: 5000\n"
            "  interval_ms: 250\n"
            "relationships:\n"
            "  - name: assigned_to\n"
            "    pattern: '(.+) is assigned to (.+)'\n"
            "    subjectEntity: tasks\n"
            "    objectEntity: users\n"
            "    foreignKey: assigneeId\n"
            "    objectLookupField: name\n"
        )
        config = load_project_config(tmp_path)
        assert config.storage_dir == "data/qa"
        assert config.multi_run.runs == 10
        assert config.multi_run.continue_on_failure is False
        assert config.multi_run.hallucination_keywords == ["archived", "closed"]
        assert config.wait.interval_ms == 250
        assert config.relationships[0].object_lookup_field == "name"

    def test_invalid_yaml_values_raise(self, tmp_path: Path):
        from agentqa.models.config import load_project_config

        (tmp_path / "agentqa.yaml").write_text("multi_run:\n  runs: nope\n")
        with pytest.raises(ValidationError):
            load_project_config(tmp_path)
