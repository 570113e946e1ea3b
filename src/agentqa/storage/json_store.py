"""JSON file storage for multi-run results.

Stores MultiRunResult objects as JSON files under .agentqa/multi-runs/
with an index file mapping scenario ids to run IDs and a ``latest``
pointer. Uses atomic writes to prevent corruption.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from agentqa.models.multi_run import MultiRunResult


class MultiRunStore:
    """Persist and query MultiRunResult objects as JSON files in .agentqa/.

    File layout:
        .agentqa/
            multi-runs/
                {run-id}.json    # Individual multi-run results
                latest           # Symlink to the newest result (or .latest file)
            index.json           # Scenario id -> [run IDs] mapping

    Writes are atomic (write to .tmp, then rename) to prevent partial files.
    Run IDs are timestamp-prefixed, so they sort chronologically.
    """

    def __init__(self, project_root: Path, storage_dir: str | None = None) -> None:
        effective_dir = storage_dir or ".agentqa"
        self.agentqa_dir = project_root / effective_dir
        self.runs_dir = self.agentqa_dir / "multi-runs"
        self.index_path = self.agentqa_dir / "index.json"

    def ensure_dirs(self) -> None:
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def save_result(self, result: MultiRunResult) -> str:
        """Save a MultiRunResult and update the index.

        Args:
            result: The multi-run result to persist.

        Returns:
            The run ID.
        """
        self.ensure_dirs()

        run_id = result.run_id
        content = result.model_dump_json(indent=2)

        # Atomic write
        run_file = self.runs_dir / f"{run_id}.json"
        tmp_file = self.runs_dir / f"{run_id}.json.tmp"
        tmp_file.write_text(content, encoding="utf-8")
        tmp_file.rename(run_file)

        self._update_index(result.aggregated_report.id, run_id)
        return run_id

    def load_result(self, run_id: str) -> MultiRunResult:
        """Load a MultiRunResult from its JSON file.

        Raises:
            FileNotFoundError: If no result with that ID exists.
        """
        run_file = self.runs_dir / f"{run_id}.json"
        content = run_file.read_text(encoding="utf-8")
        return MultiRunResult.model_validate_json(content)

    def list_results(self, scenario_id: str | None = None) -> list[str]:
        """List run IDs, optionally filtered by scenario id.

        Args:
            scenario_id: If provided, only return runs for this scenario.
                If None, return all runs sorted chronologically.
        """
        if scenario_id is not None:
            index = self._load_index()
            return index.get(scenario_id, [])

        if not self.runs_dir.exists():
            return []
        return sorted(f.stem for f in self.runs_dir.glob("*.json"))

    def delete_result(self, run_id: str) -> bool:
        """Delete a result file and remove it from the index.

        Returns:
            True if the result existed and was deleted, False otherwise.
        """
        run_file = self.runs_dir / f"{run_id}.json"
        existed = run_file.exists()
        if existed:
            run_file.unlink()
        self._remove_from_index(run_id)
        return existed

    def update_latest_symlink(self, run_id: str) -> None:
        """Point 'latest' at the given run.

        Uses atomic pattern: create symlink at tmp path, then os.replace.
        Falls back to writing a .latest text file if symlinks fail (Windows).
        """
        self.ensure_dirs()
        target = f"{run_id}.json"
        link_path = self.runs_dir / "latest"

        try:
            tmp_link = self.runs_dir / f".latest_tmp_{run_id}"
            if tmp_link.exists() or tmp_link.is_symlink():
                tmp_link.unlink()
            os.symlink(target, tmp_link)
            os.replace(tmp_link, link_path)
        except OSError:
            fallback_path = self.runs_dir / ".latest"
            fallback_path.write_text(run_id, encoding="utf-8")

    def load_latest(self) -> MultiRunResult | None:
        """Load the most recent result via the 'latest' symlink or '.latest' file.

        Returns:
            The deserialized MultiRunResult, or None if there is none.
        """
        link_path = self.runs_dir / "latest"
        fallback_path = self.runs_dir / ".latest"

        run_id: str | None = None
        if link_path.is_symlink():
            run_id = os.readlink(link_path).removesuffix(".json")
        elif fallback_path.exists():
            run_id = fallback_path.read_text(encoding="utf-8").strip()

        if run_id is None:
            return None

        try:
            return self.load_result(run_id)
        except FileNotFoundError:
            return None

    def _load_index(self) -> dict[str, list[str]]:
        if self.index_path.exists():
            content = self.index_path.read_text(encoding="utf-8")
            return json.loads(content)
        return {}

    def _write_index(self, index: dict[str, list[str]]) -> None:
        content = json.dumps(index, indent=2, ensure_ascii=False)
        tmp_path = self.index_path.with_suffix(".json.tmp")
        tmp_path.write_text(content, encoding="utf-8")
        tmp_path.rename(self.index_path)

    def _update_index(self, scenario_id: str, run_id: str) -> None:
        index = self._load_index()
        index.setdefault(scenario_id, []).append(run_id)
        self._write_index(index)

    def _remove_from_index(self, run_id: str) -> None:
        index = self._load_index()
        changed = False
        for scenario_id in list(index):
            if run_id in index[scenario_id]:
                index[scenario_id].remove(run_id)
                changed = True
                if not index[scenario_id]:
                    del index[scenario_id]
        if changed:
            self._write_index(index)
