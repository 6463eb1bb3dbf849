"""
Settings for single_cov.

Defaults mirror the conventional `app/` + `lib/` layout; a project can override
them with a `single_cov.json` file at its root.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import jsonschema

from single_cov.errors import SetupError


CONFIG_FILE = "single_cov.json"
CONFIG_VERSION = "v0"
ROOT_ENV = "SINGLE_COV_ROOT"
ROOT_MARKERS = ("pyproject.toml", "setup.cfg", "setup.py")
MAX_OUTPUT = 40
APP_FOLDERS = ["models", "serializers", "helpers", "controllers", "mailers", "views", "jobs"]
DEFAULT_TEST_DIRS = ["test", "tests", "spec"]
DEFAULT_EXCLUDE_PATTERNS = ["**/__init__.py", "**/conftest.py"]
IMPROVEMENT_POLICIES = ("auto", "warn", "fail")

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "version": {"const": CONFIG_VERSION},
        "library_root": {"type": "string", "minLength": 1},
        "application_root": {"type": "string", "minLength": 1},
        "application_folders": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "test_dirs": {"type": "array", "items": {"type": "string", "minLength": 1}, "minItems": 1},
        "max_output": {"type": "integer", "minimum": 2},
        "improvement": {"enum": list(IMPROVEMENT_POLICIES)},
        "source_patterns": {"type": "array", "items": {"type": "string"}},
        "test_patterns": {"type": "array", "items": {"type": "string"}},
        "exclude_patterns": {"type": "array", "items": {"type": "string"}},
        "untested": {"type": "array", "items": {"type": "string"}},
        "rewrites": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["pattern", "replacement"],
                "properties": {
                    "pattern": {"type": "string"},
                    "replacement": {"type": "string"},
                },
            },
        },
    },
}


@dataclass
class Settings:
    root: Path
    library_root: str = "lib"
    application_root: str = "app"
    application_folders: list[str] = field(default_factory=lambda: list(APP_FOLDERS))
    test_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_TEST_DIRS))
    max_output: int = MAX_OUTPUT
    improvement: str = "auto"
    source_patterns: list[str] | None = None
    test_patterns: list[str] | None = None
    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    untested: list[str] = field(default_factory=list)
    rewrites: list[tuple[str, str]] = field(default_factory=list)
    rewrite: Callable[[str], str] | None = None

    def default_source_patterns(self) -> list[str]:
        if self.source_patterns is not None:
            return list(self.source_patterns)
        return [f"{self.application_root}/**/*.py", f"{self.library_root}/**/*.py"]

    def default_test_patterns(self) -> list[str]:
        if self.test_patterns is not None:
            return list(self.test_patterns)
        out: list[str] = []
        for test_dir in self.test_dirs:
            out.extend([f"{test_dir}/**/*_test.py", f"{test_dir}/**/*_spec.py", f"{test_dir}/**/test_*.py"])
        return out


def find_project_root(start: Path) -> Path | None:
    for candidate in [start, *start.parents]:
        if any((candidate / marker).exists() for marker in ROOT_MARKERS):
            return candidate
    return None


def resolve_root(raw_root: str | os.PathLike[str] | None = None, fallback: Path | None = None) -> Path:
    if raw_root:
        return Path(os.path.realpath(raw_root))
    env_root = os.environ.get(ROOT_ENV)
    if env_root:
        return Path(os.path.realpath(env_root))
    if fallback is not None:
        return Path(os.path.realpath(fallback))
    cwd = Path.cwd()
    return Path(os.path.realpath(find_project_root(cwd) or cwd))


def load_config(path: Path) -> tuple[dict[str, Any] | None, str | None]:
    if not path.exists():
        return None, f"missing config file: {path}"
    try:
        obj = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        return None, f"invalid config json: {path}: {exc}"
    try:
        jsonschema.validate(instance=obj, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as exc:
        where = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        return None, f"invalid config {path} at {where}: {exc.message}"
    return obj, None


def load_settings(root: Path, config_file: str | os.PathLike[str] | None = None) -> Settings:
    settings = Settings(root=root)
    if config_file:
        path = Path(config_file)
        if not path.is_absolute():
            path = root / path
    else:
        path = root / CONFIG_FILE
        if not path.exists():
            return settings

    obj, err = load_config(path)
    if err is not None:
        raise SetupError(err)

    for key in (
        "library_root",
        "application_root",
        "application_folders",
        "test_dirs",
        "max_output",
        "improvement",
        "source_patterns",
        "test_patterns",
        "exclude_patterns",
        "untested",
    ):
        if key in obj:
            setattr(settings, key, obj[key])
    settings.rewrites = [(rule["pattern"], rule["replacement"]) for rule in obj.get("rewrites", [])]
    return settings
