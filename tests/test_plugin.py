from __future__ import annotations

from pathlib import Path

import pytest

from conftest import run_pytest, write

from single_cov.plugin import is_filtered_run


@pytest.mark.parametrize(
    "args",
    [
        ["-k", "parse"],
        ["-kparse"],
        ["-m", "slow"],
        ["--lf"],
        ["--last-failed"],
        ["--sw"],
        ["--deselect", "tests/test_a.py::test_x"],
        ["--deselect=tests/test_a.py::test_x"],
        ["tests/test_a.py::test_x"],
        ["-vk", "parse"],
        ["-xm", "slow"],
        ["-qqkparse"],
        ["--ignore", "tests/slow"],
        ["--ignore=tests/slow"],
        ["--ignore-glob=*slow*"],
    ],
)
def test_filtered_runs(args: list[str]) -> None:
    assert is_filtered_run(args) is True


@pytest.mark.parametrize(
    "args",
    [
        [],
        ["tests"],
        ["tests/test_a.py"],
        ["-x", "-q", "--single-cov"],
        ["-p", "no:cacheprovider"],
        ["-vx"],
        ["-pmyplugin"],
        ["-rA"],
        ["-Wignore::DeprecationWarning"],
    ],
)
def test_unfiltered_runs(args: list[str]) -> None:
    assert is_filtered_run(args) is False


WIDGET = """\
def double(x):
    return x * 2


def unused(x):
    return x + 1
"""

WIDGET_TEST = """\
import single_cov

single_cov.covered(uncovered={uncovered})

from lib import widget


def test_double():
    assert widget.double(2) == 4
"""


@pytest.fixture()
def suite(tmp_path: Path) -> Path:
    root = tmp_path / "suite"
    write(root / "pytest.ini", "[pytest]\npythonpath = .\nsingle_cov = true\n")
    write(root / "lib" / "__init__.py", "")
    write(root / "lib" / "widget.py", WIDGET)
    return root


def test_declared_coverage_passes(suite: Path) -> None:
    write(suite / "tests" / "test_widget.py", WIDGET_TEST.format(uncovered=1))
    proc = run_pytest(suite)
    assert "single_cov: armed" in proc.stdout
    assert "uncovered" not in proc.stderr


def test_new_uncovered_line_fails_the_run(suite: Path) -> None:
    write(suite / "tests" / "test_widget.py", WIDGET_TEST.format(uncovered=0))
    proc = run_pytest(suite, expect_code=1)
    assert "lib/widget.py new uncovered lines introduced (1 current vs 0 configured)" in proc.stderr
    assert "lib/widget.py:6" in proc.stderr


def test_improvement_warns_for_a_single_file(suite: Path) -> None:
    write(suite / "tests" / "test_widget.py", WIDGET_TEST.format(uncovered=2))
    proc = run_pytest(suite)
    assert "decrement configured uncovered?" in proc.stderr


def test_filtered_run_is_not_verified(suite: Path) -> None:
    write(suite / "tests" / "test_widget.py", WIDGET_TEST.format(uncovered=0))
    proc = run_pytest(suite, "-k", "double")
    assert "single_cov: skipped" in proc.stdout
    assert "uncovered" not in proc.stderr


def test_failing_test_keeps_its_own_status(suite: Path) -> None:
    write(suite / "tests" / "test_widget.py", WIDGET_TEST.format(uncovered=0) + "\n\ndef test_broken():\n    assert False\n")
    proc = run_pytest(suite, expect_code=1)
    assert "lib/widget.py:6" not in proc.stderr


def test_disabled_without_flag_or_ini(suite: Path) -> None:
    write(suite / "pytest.ini", "[pytest]\npythonpath = .\n")
    write(suite / "tests" / "test_widget.py", WIDGET_TEST.format(uncovered=0))
    proc = run_pytest(suite)
    assert "single_cov:" not in proc.stdout


def test_combined_short_filter_is_not_verified(suite: Path) -> None:
    write(suite / "tests" / "test_widget.py", WIDGET_TEST.format(uncovered=0))
    proc = run_pytest(suite, "-vk", "double")
    assert "single_cov: skipped" in proc.stdout
    assert "uncovered" not in proc.stderr


def test_reads_coverage_recorded_by_pytest_cov(suite: Path) -> None:
    pytest.importorskip("pytest_cov")
    write(suite / "tests" / "test_widget.py", WIDGET_TEST.format(uncovered=1))
    proc = run_pytest(suite, "-p", "pytest_cov.plugin", "--cov=lib", "--cov-report=")
    assert "single_cov: armed" in proc.stdout
    assert "never loaded" not in proc.stderr
    assert "uncovered" not in proc.stderr


def test_pytest_cov_run_still_reports_new_uncovered_lines(suite: Path) -> None:
    pytest.importorskip("pytest_cov")
    write(suite / "tests" / "test_widget.py", WIDGET_TEST.format(uncovered=0))
    proc = run_pytest(suite, "-p", "pytest_cov.plugin", "--cov=lib", "--cov-report=", expect_code=1)
    assert "lib/widget.py:6" in proc.stderr
