#!/usr/bin/env python3
"""
single-cov

CI entry point: check that every source file has a test and every test
declares its coverage with single_cov.covered() / single_cov.not_covered().
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from single_cov.completeness import find_unused, find_untested
from single_cov.config import Settings, load_settings, resolve_root
from single_cov.errors import SingleCovError
from single_cov.resolver import file_under_test


REPORT_VERSION = "v0"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def write_report(path: Path, report: dict[str, Any]) -> None:
    # rename over the target so it is replaced whole
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    ) as handle:
        json.dump(report, handle, indent=2, sort_keys=True)
        handle.write("\n")
    try:
        os.replace(handle.name, path)
    except OSError:
        os.unlink(handle.name)
        raise


def load_project_settings(args: argparse.Namespace) -> Settings:
    root = resolve_root(args.project_dir)
    return load_settings(root, getattr(args, "config_file", None))


def compute_used_checks(settings: Settings, tests: list[str] | None) -> list[dict[str, Any]]:
    bad = find_unused(settings, tests)
    if not bad:
        return [{"check": "used", "status": "pass", "detail": ""}]
    return [
        {"check": f"used:{f}", "status": "fail", "detail": f"{f}: needs to use single_cov.covered()"}
        for f in bad
    ]


def compute_tested_checks(
    settings: Settings,
    files: list[str] | None,
    tests: list[str] | None,
    untested: list[str] | None,
) -> list[dict[str, Any]]:
    missing, fixed = find_untested(settings, files=files, tests=tests, untested=untested)
    checks: list[dict[str, Any]] = []
    for f in fixed:
        checks.append({"check": f"untested:{f}", "status": "fail", "detail": f"Remove {f!r} from untested!"})
    for f in missing:
        checks.append({"check": f"tested:{f}", "status": "fail", "detail": f"missing test for {f}"})
    if not checks:
        checks.append({"check": "tested", "status": "pass", "detail": ""})
    return checks


def build_report(settings: Settings, checks: list[dict[str, Any]]) -> dict[str, Any]:
    status = "pass" if all(c["status"] == "pass" for c in checks) else "fail"
    return {
        "version": REPORT_VERSION,
        "run_at": utc_now(),
        "project_dir": str(settings.root),
        "status": status,
        "checks": checks,
    }


def emit_report(args: argparse.Namespace, report: dict[str, Any]) -> int:
    if args.format == "json":
        print(json.dumps(report, indent=2, sort_keys=True))
    else:
        failed = [c for c in report["checks"] if c["status"] != "pass"]
        for c in failed:
            print(c["detail"], file=sys.stderr)
        print(f"status: {report['status']}")
        print(f"failed_checks: {len(failed)}")

    if args.out_file:
        out = Path(args.out_file)
        if not out.is_absolute():
            out = Path(report["project_dir"]) / out
        write_report(out, report)

    return 0 if report["status"] == "pass" else 1


def assert_used_project(args: argparse.Namespace) -> int:
    settings = load_project_settings(args)
    return emit_report(args, build_report(settings, compute_used_checks(settings, args.tests)))


def assert_tested_project(args: argparse.Namespace) -> int:
    settings = load_project_settings(args)
    checks = compute_tested_checks(settings, args.files, args.tests, args.untested)
    return emit_report(args, build_report(settings, checks))


def check_project(args: argparse.Namespace) -> int:
    settings = load_project_settings(args)
    checks = compute_used_checks(settings, args.tests)
    checks.extend(compute_tested_checks(settings, args.files, args.tests, args.untested))
    return emit_report(args, build_report(settings, checks))


def resolve_project(args: argparse.Namespace) -> int:
    settings = load_project_settings(args)
    resolved = {t: file_under_test(t, settings) for t in args.test_files}
    if args.format == "json":
        print(json.dumps({"version": REPORT_VERSION, "resolved": resolved}, indent=2, sort_keys=True))
    else:
        for test_file, source in resolved.items():
            print(f"{test_file} -> {source}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="single-cov completeness checks")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_project_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--project-dir", help="Project root (default: SINGLE_COV_ROOT or nearest pyproject.toml).")
        p.add_argument("--config-file", help="Optional config file (default: <project-dir>/single_cov.json).")
        p.add_argument("--format", choices=["text", "json"], default="text")

    def add_report_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--out-file", help="Also write the JSON report here (relative to the project dir).")

    def add_tests_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument("--tests", nargs="*", help="Test files to check (default: configured test patterns).")

    def add_tested_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--files", nargs="*", help="Source files that need tests (default: configured source patterns).")
        p.add_argument(
            "--untested",
            nargs="*",
            help="Source files allowed to have no test (default: 'untested' from the config file).",
        )

    p_used = sub.add_parser("assert-used", help="Fail when a test file does not declare its coverage.")
    add_project_args(p_used)
    add_report_args(p_used)
    add_tests_arg(p_used)
    p_used.set_defaults(func=assert_used_project)

    p_tested = sub.add_parser("assert-tested", help="Fail when a source file has no test.")
    add_project_args(p_tested)
    add_report_args(p_tested)
    add_tests_arg(p_tested)
    add_tested_args(p_tested)
    p_tested.set_defaults(func=assert_tested_project)

    p_check = sub.add_parser("check", help="Run assert-used and assert-tested.")
    add_project_args(p_check)
    add_report_args(p_check)
    add_tests_arg(p_check)
    add_tested_args(p_check)
    p_check.set_defaults(func=check_project)

    p_resolve = sub.add_parser("resolve", help="Print the source file each test file covers.")
    add_project_args(p_resolve)
    p_resolve.add_argument("test_files", nargs="+")
    p_resolve.set_defaults(func=resolve_project)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except SingleCovError as exc:
        print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
