from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from conftest import write

from single_cov.config import MAX_OUTPUT, find_project_root, load_settings, resolve_root
from single_cov.errors import SetupError


def test_defaults_without_config_file(project: Path) -> None:
    settings = load_settings(project)
    assert settings.root == project
    assert settings.library_root == "lib"
    assert settings.application_root == "app"
    assert "models" in settings.application_folders
    assert settings.max_output == MAX_OUTPUT
    assert settings.improvement == "auto"
    assert settings.default_source_patterns() == ["app/**/*.py", "lib/**/*.py"]


def test_config_file_overrides(project: Path) -> None:
    write(
        project / "single_cov.json",
        json.dumps(
            {
                "version": "v0",
                "library_root": "src",
                "max_output": 10,
                "improvement": "fail",
                "untested": ["src/legacy.py"],
                "rewrites": [{"pattern": "^src/plugins/", "replacement": "plugins/"}],
            }
        ),
    )
    settings = load_settings(project)
    assert settings.library_root == "src"
    assert settings.max_output == 10
    assert settings.improvement == "fail"
    assert settings.untested == ["src/legacy.py"]
    assert settings.rewrites == [("^src/plugins/", "plugins/")]
    assert settings.default_source_patterns() == ["app/**/*.py", "src/**/*.py"]


def test_invalid_config_names_the_key(project: Path) -> None:
    write(project / "single_cov.json", json.dumps({"improvement": "sometimes"}))
    with pytest.raises(SetupError, match="at improvement"):
        load_settings(project)


def test_unknown_key_is_rejected(project: Path) -> None:
    write(project / "single_cov.json", json.dumps({"max_lines": 3}))
    with pytest.raises(SetupError, match="invalid config"):
        load_settings(project)


def test_broken_json_is_rejected(project: Path) -> None:
    write(project / "single_cov.json", "{")
    with pytest.raises(SetupError, match="invalid config json"):
        load_settings(project)


def test_explicit_missing_config_file_is_an_error(project: Path) -> None:
    with pytest.raises(SetupError, match="missing config file"):
        load_settings(project, "other.json")


def test_root_precedence(project: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SINGLE_COV_ROOT", raising=False)
    assert resolve_root(project) == project
    assert resolve_root(None, fallback=project) == project

    monkeypatch.setenv("SINGLE_COV_ROOT", str(tmp_path))
    assert resolve_root(None, fallback=project) == Path(os.path.realpath(tmp_path))
    assert resolve_root(project) == project


def test_root_discovery_walks_up_to_pyproject(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SINGLE_COV_ROOT", raising=False)
    monkeypatch.chdir(project / "lib")
    assert find_project_root(project / "lib") == project
    assert resolve_root() == project
