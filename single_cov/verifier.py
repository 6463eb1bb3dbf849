"""
Reconcile coverage declarations with recorded coverage.

Every declaration yields one Verdict. Diagnostics are one message per line;
a message ending in WARNING_MARKER is a soft warning and does not fail the
run on its own.
"""

from __future__ import annotations

import enum
import os
import sys
from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from single_cov.config import MAX_OUTPUT
from single_cov.registry import CoverageDeclaration


WARNING_MARKER = "?"
TRUNCATED = "... coverage output truncated"


class Status(str, enum.Enum):
    OK = "ok"
    MISMATCH = "mismatch"
    NOT_LOADED = "not_loaded"


@dataclass(frozen=True)
class Verdict:
    file: str
    status: Status
    details: str = ""

    @property
    def soft(self) -> bool:
        return bool(self.details) and all(line.endswith(WARNING_MARKER) for line in self.details.split("\n"))


def uncovered_line_numbers(counters: Sequence[int | None]) -> list[int]:
    return [i + 1 for i, count in enumerate(counters) if count == 0]


def bad_coverage_message(file: str, expected: int, uncovered: list[int], improvement_fatal: bool) -> str:
    details = f"({len(uncovered)} current vs {expected} configured)"
    if expected > len(uncovered):
        if improvement_fatal:
            return f"{file} has less uncovered lines {details}, decrement configured uncovered."
        return f"{file} has less uncovered lines {details}, decrement configured uncovered{WARNING_MARKER}"
    return "\n".join(
        [
            f"{file} new uncovered lines introduced {details}",
            "Lines missing coverage:",
            *[f"{file}:{line}" for line in uncovered],
        ]
    )


def no_coverage_message(file: str, absolute: str, preloaded: Collection[str]) -> str:
    if absolute in preloaded:
        # imported before recording started, so none of its lines were seen
        return f"{file} was expected to be covered, but already loaded before tests started."
    return f"{file} was expected to be covered, but never loaded."


def check_declaration(
    declaration: CoverageDeclaration,
    result: Mapping[str, Sequence[int | None]],
    root: Path,
    preloaded: Collection[str] = (),
    improvement_fatal: bool = False,
) -> Verdict:
    absolute = os.path.realpath(root / declaration.file)
    counters = result.get(absolute)
    if counters is None:
        return Verdict(declaration.file, Status.NOT_LOADED, no_coverage_message(declaration.file, absolute, preloaded))

    uncovered = uncovered_line_numbers(counters)
    if len(uncovered) == declaration.uncovered:
        return Verdict(declaration.file, Status.OK)
    return Verdict(
        declaration.file,
        Status.MISMATCH,
        bad_coverage_message(declaration.file, declaration.uncovered, uncovered, improvement_fatal),
    )


def check_declarations(
    declarations: Iterable[CoverageDeclaration],
    result: Mapping[str, Sequence[int | None]],
    root: Path,
    preloaded: Collection[str] = (),
    improvement_fatal: bool = False,
) -> list[Verdict]:
    return [
        check_declaration(d, result, root, preloaded=preloaded, improvement_fatal=improvement_fatal)
        for d in declarations
    ]


def diagnostic_lines(verdicts: Iterable[Verdict]) -> list[str]:
    messages = [v.details for v in verdicts if v.details]
    if not messages:
        return []
    # unify multi-line messages into one flat list of lines
    return "\n".join(messages).split("\n")


def truncate(lines: list[str], max_output: int = MAX_OUTPUT) -> list[str]:
    if len(lines) <= max_output:
        return lines
    return [*lines[: max_output - 1], TRUNCATED]


def passed(verdicts: Iterable[Verdict]) -> bool:
    # ok if there are only warnings
    return all(v.soft for v in verdicts if v.details)


def all_covered(
    result: Mapping[str, Sequence[int | None]],
    declarations: Iterable[CoverageDeclaration],
    root: Path,
    preloaded: Collection[str] = (),
    improvement_fatal: bool = False,
    max_output: int = MAX_OUTPUT,
    stream: TextIO | None = None,
) -> bool:
    verdicts = check_declarations(declarations, result, root, preloaded=preloaded, improvement_fatal=improvement_fatal)
    lines = diagnostic_lines(verdicts)
    if not lines:
        return True
    print("\n".join(truncate(lines, max_output)), file=stream or sys.stderr)
    return passed(verdicts)
