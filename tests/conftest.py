from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from single_cov.config import Settings


REPO_ROOT = Path(__file__).resolve().parents[1]


def run_cmd(
    args: list[str],
    cwd: Path,
    expect_code: int = 0,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    proc_env = dict(os.environ)
    proc_env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), proc_env.get("PYTHONPATH")]))
    # an outer coverage run must not leak into the child process
    for name in list(proc_env):
        if name.startswith("COV_CORE_") or name in {"COVERAGE_PROCESS_START", "PYTEST_ADDOPTS", "SINGLE_COV_ROOT"}:
            proc_env.pop(name)
    proc_env.update(env or {})
    proc = subprocess.run(args, cwd=str(cwd), text=True, capture_output=True, check=False, env=proc_env)
    if proc.returncode != expect_code:
        raise AssertionError(
            f"command failed\ncwd={cwd}\nargs={args}\n"
            f"expected={expect_code} got={proc.returncode}\n"
            f"stdout:\n{proc.stdout}\n\nstderr:\n{proc.stderr}"
        )
    return proc


def run_cli(project_dir: Path, *cli_args: str, expect_code: int = 0) -> subprocess.CompletedProcess[str]:
    args = [sys.executable, "-m", "single_cov.cli", *cli_args, "--project-dir", str(project_dir)]
    return run_cmd(args, cwd=REPO_ROOT, expect_code=expect_code)


def run_pytest(project_dir: Path, *pytest_args: str, expect_code: int = 0) -> subprocess.CompletedProcess[str]:
    args = [sys.executable, "-m", "pytest", "-p", "single_cov.plugin", "-p", "no:cacheprovider", *pytest_args]
    return run_cmd(args, cwd=project_dir, expect_code=expect_code, env={"PYTEST_DISABLE_PLUGIN_AUTOLOAD": "1"})


def write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def load_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """A small project: lib/ and app/ sources with one declaring test each."""
    root = Path(os.path.realpath(tmp_path / "proj"))
    write(root / "pyproject.toml", "[project]\nname = 'demo'\n")
    write(root / "lib" / "__init__.py", "")
    write(root / "lib" / "parser.py", "def parse(text):\n    return text.split()\n")
    write(root / "lib" / "legacy.py", "VALUE = 1\n")
    write(root / "app" / "models" / "user.py", "class User:\n    pass\n")
    write(root / "tests" / "test_parser.py", "import single_cov\nsingle_cov.covered()\n")
    write(root / "tests" / "models" / "user_test.py", "import single_cov\nsingle_cov.not_covered()\n")
    return root


@pytest.fixture()
def settings(project: Path) -> Settings:
    return Settings(root=project)
