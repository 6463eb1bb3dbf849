"""
Static checks that every source file has a test and every test declares coverage.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from fnmatch import fnmatch
from pathlib import Path

from single_cov.config import Settings
from single_cov.errors import CompletenessError
from single_cov.resolver import file_under_test


USED_RE = re.compile(r"single_cov\.(?:not_)?covered\(")


def _matches_any(path: str, patterns: list[str]) -> bool:
    # "**/x" also matches a top-level "x"
    return any(fnmatch(path, pat) or (pat.startswith("**/") and fnmatch(path, pat[3:])) for pat in patterns)


def glob_files(root: Path, patterns: list[str], exclude: list[str] | None = None) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    excluded = exclude or []
    for pat in patterns:
        for p in sorted(root.glob(pat)):
            if not p.is_file():
                continue
            rel = p.relative_to(root).as_posix()
            if _matches_any(rel, excluded):
                continue
            if rel in seen:
                continue
            seen.add(rel)
            out.append(rel)
    return out


def default_tests(settings: Settings) -> list[str]:
    return glob_files(settings.root, settings.default_test_patterns())


def default_files(settings: Settings) -> list[str]:
    return glob_files(settings.root, settings.default_source_patterns(), settings.exclude_patterns)


def find_unused(settings: Settings, tests: Iterable[str] | None = None) -> list[str]:
    files = default_tests(settings) if tests is None else list(tests)
    return [f for f in files if not USED_RE.search((settings.root / f).read_text(encoding="utf-8"))]


def find_untested(
    settings: Settings,
    files: Iterable[str] | None = None,
    tests: Iterable[str] | None = None,
    untested: Iterable[str] | None = None,
) -> tuple[list[str], list[str]]:
    """Return (missing, fixed).

    missing: source files without a test, minus the untested allow-list.
    fixed: allow-list entries that are no longer missing.
    """
    sources = default_files(settings) if files is None else list(files)
    test_files = default_tests(settings) if tests is None else list(tests)
    allowed = list(settings.untested if untested is None else untested)

    tested = {file_under_test(t, settings) for t in test_files}
    missing = [f for f in sources if f not in tested]
    fixed = [f for f in allowed if f not in missing]
    missing = [f for f in missing if f not in allowed]
    return missing, fixed


def assert_used(settings: Settings, tests: Iterable[str] | None = None) -> None:
    bad = find_unused(settings, tests)
    if bad:
        raise CompletenessError("\n".join(f"{f}: needs to use single_cov.covered()" for f in bad))


def assert_tested(
    settings: Settings,
    files: Iterable[str] | None = None,
    tests: Iterable[str] | None = None,
    untested: Iterable[str] | None = None,
) -> None:
    missing, fixed = find_untested(settings, files=files, tests=tests, untested=untested)
    if fixed:
        raise CompletenessError(f"Remove {fixed!r} from untested!")
    if missing:
        raise CompletenessError("\n".join(f"missing test for {f}" for f in missing))
