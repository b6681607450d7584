"""
End-to-end tests for the command-line pipeline (main.py).
"""

import json
import sys

import pytest

import main
from ifc_fragments.project_config import ProjectConfig


class TestRunPipeline:
    """Tests for run_pipeline function."""

    def test_summary_written(self, tmp_path, manifest_path):
        output = tmp_path / "out" / "office.fragments.json"
        summary = main.run_pipeline(str(manifest_path), str(output))

        assert output.exists()
        data = json.loads(output.read_text(encoding="utf-8"))
        assert len(data["fragments"]) == 3
        assert data["level_relationships"]["1"] == 100
        assert "edges" not in data
        assert summary["fragments"] == data["fragments"]

    def test_edges_and_stl(self, tmp_path, manifest_path):
        output = tmp_path / "summary.json"
        stl_dir = tmp_path / "stl"
        summary = main.run_pipeline(str(manifest_path), str(output), stl_dir=str(stl_dir), edges=True)

        assert len(summary["edges"]) == 2
        assert all(e["segments"] == 12 for e in summary["edges"].values())
        assert len(list(stl_dir.glob("*.stl"))) == 3
        assert json.loads(output.read_text(encoding="utf-8"))["edges"] == summary["edges"]

    def test_config_output_dir(self, tmp_path, manifest_path):
        config = ProjectConfig.from_dict({
            'output': {'output_dir': str(tmp_path / "cfg"), 'export_stl': True},
            'edges': {'enabled': True},
        })
        summary = main.run_pipeline(str(manifest_path), config=config)

        assert (tmp_path / "cfg" / "fragments.json").exists()
        assert len(list((tmp_path / "cfg" / "stl").glob("*.stl"))) == 3
        assert "edges" in summary


class TestMain:
    """Tests for the CLI entry point."""

    @pytest.fixture(autouse=True)
    def isolated(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("USERPROFILE", str(tmp_path))

    def test_success(self, tmp_path, manifest_path, monkeypatch):
        output = tmp_path / "cli.json"
        monkeypatch.setattr(sys, "argv", ["main.py", str(manifest_path), "-o", str(output)])
        main.main()
        assert output.exists()

    def test_missing_manifest_exits_1(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["main.py", str(tmp_path / "absent.json")])
        with pytest.raises(SystemExit) as exc_info:
            main.main()
        assert exc_info.value.code == 1
