"""Tests for the JSON storage layer (MultiRunStore)."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from agentqa.evaluation.aggregation import aggregate_results
from agentqa.models.multi_run import MultiRunResult, ScenarioInfo
from agentqa.models.report import ScenarioReport, ScenarioStatus
from agentqa.storage.json_store import MultiRunStore


def _make_result(run_id: str = "20250601T120000-aaaaaaaaaaaa", scenario_id: str = "create-task") -> MultiRunResult:
    """Build a MultiRunResult over two passing runs."""
    reports = [
        ScenarioReport(id=scenario_id, name="Create a task", status=ScenarioStatus.passed, duration_ms=900.0),
        ScenarioReport(id=scenario_id, name="Create a task", status=ScenarioStatus.passed, duration_ms=1100.0),
    ]
    aggregated = aggregate_results(ScenarioInfo(id=scenario_id, name="Create a task"), reports)
    now = datetime.now(timezone.utc)
    return MultiRunResult(
        run_id=run_id,
        success=True,
        aggregated_report=aggregated,
        started_at=now,
        ended_at=now,
        total_duration_ms=2000.0,
        runs_requested=2,
    )


class TestMultiRunStoreEnsureDirs:
    """Tests for directory creation."""

    def test_creates_runs_directory(self, tmp_path: Path) -> None:
        store = MultiRunStore(tmp_path)
        store.ensure_dirs()
        assert (tmp_path / ".agentqa" / "multi-runs").is_dir()

    def test_custom_storage_dir(self, tmp_path: Path) -> None:
        store = MultiRunStore(tmp_path, "data/qa")
        store.ensure_dirs()
        assert (tmp_path / "data" / "qa" / "multi-runs").is_dir()


class TestMultiRunStoreSave:
    """Tests for saving and loading results."""

    def test_save_and_load_round_trip(self, tmp_path: Path) -> None:
        store = MultiRunStore(tmp_path)
        result = _make_result()
        run_id = store.save_result(result)
        assert run_id == result.run_id
        assert store.load_result(run_id) == result

    def test_no_tmp_files_left(self, tmp_path: Path) -> None:
        store = MultiRunStore(tmp_path)
        store.save_result(_make_result())
        assert list(store.runs_dir.glob("*.tmp")) == []

    def test_index_keyed_by_scenario(self, tmp_path: Path) -> None:
        store = MultiRunStore(tmp_path)
        store.save_result(_make_result("20250601T120000-a"))
        store.save_result(_make_result("20250601T130000-b"))
        store.save_result(_make_result("20250601T140000-c", scenario_id="delete-task"))
        index = json.loads(store.index_path.read_text(encoding="utf-8"))
        assert index == {
            "create-task": ["20250601T120000-a", "20250601T130000-b"],
            "delete-task": ["20250601T140000-c"],
        }

    def test_load_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            MultiRunStore(tmp_path).load_result("nope")


class TestMultiRunStoreList:
    def test_empty(self, tmp_path: Path) -> None:
        assert MultiRunStore(tmp_path).list_results() == []

    def test_sorted_and_filtered(self, tmp_path: Path) -> None:
        store = MultiRunStore(tmp_path)
        store.save_result(_make_result("20250602T000000-b"))
        store.save_result(_make_result("20250601T000000-a", scenario_id="other"))
        assert store.list_results() == ["20250601T000000-a", "20250602T000000-b"]
        assert store.list_results("other") == ["20250601T000000-a"]
        assert store.list_results("unknown") == []


class TestMultiRunStoreDelete:
    def test_delete_removes_file_and_index_entry(self, tmp_path: Path) -> None:
        store = MultiRunStore(tmp_path)
        store.save_result(_make_result("20250601T000000-a"))
        assert store.delete_result("20250601T000000-a") is True
        assert store.list_results() == []
        assert json.loads(store.index_path.read_text(encoding="utf-8")) == {}

    def test_delete_missing(self, tmp_path: Path) -> None:
        assert MultiRunStore(tmp_path).delete_result("nope") is False


class TestMultiRunStoreLatest:
    def test_no_latest(self, tmp_path: Path) -> None:
        assert MultiRunStore(tmp_path).load_latest() is None

    def test_symlink_points_to_latest(self, tmp_path: Path) -> None:
        store = MultiRunStore(tmp_path)
        first, second = _make_result("20250601T000000-a"), _make_result("20250602T000000-b")
        store.save_result(first)
        store.update_latest_symlink(first.run_id)
        store.save_result(second)
        store.update_latest_symlink(second.run_id)
        assert store.load_latest() == second

    def test_fallback_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def _no_symlinks(*args, **kwargs):
            raise OSError("symlinks not supported")

        monkeypatch.setattr(os, "symlink", _no_symlinks)
        store = MultiRunStore(tmp_path)
        result = _make_result()
        store.save_result(result)
        store.update_latest_symlink(result.run_id)
        assert (store.runs_dir / ".latest").read_text(encoding="utf-8") == result.run_id
        assert store.load_latest() == result

    def test_latest_pointing_at_deleted_result(self, tmp_path: Path) -> None:
        store = MultiRunStore(tmp_path)
        result = _make_result()
        store.save_result(result)
        store.update_latest_symlink(result.run_id)
        store.delete_result(result.run_id)
        assert store.load_latest() is None
