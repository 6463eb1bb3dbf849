"""
Line coverage recording backed by coverage.py.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator, Mapping
from typing import Callable

import coverage

from single_cov.errors import SetupError


def loaded_module_paths() -> set[str]:
    out: set[str] = set()
    for module in list(sys.modules.values()):
        path = getattr(module, "__file__", None)
        if path:
            out.add(os.path.realpath(path))
    return out


class CoverageSnapshot(Mapping):
    """Read-only view of one Coverage instance: real path -> per-line counters.

    Index i holds line i + 1: None for lines that are not statements, 1 for an
    executed statement, 0 for a missed one. Files that were never executed
    have no entry. Entries are analysed on first access.
    """

    def __init__(self, cov: coverage.Coverage) -> None:
        self._cov = cov
        self._measured = {os.path.realpath(path): path for path in cov.get_data().measured_files()}
        self._cache: dict[str, list[int | None]] = {}

    def __getitem__(self, path: str) -> list[int | None]:
        key = os.path.realpath(path)
        if key not in self._cache:
            if key not in self._measured:
                raise KeyError(path)
            self._cache[key] = self._line_counters(self._measured[key])
        return self._cache[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._measured)

    def __len__(self) -> int:
        return len(self._measured)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and os.path.realpath(path) in self._measured

    def _line_counters(self, measured_path: str) -> list[int | None]:
        try:
            _, statements, _, missing, _ = self._cov.analysis2(measured_path)
        except coverage.CoverageException:
            # measured but not analysable (no source on disk, not python)
            return []
        missed = set(missing)
        counters: list[int | None] = [None] * max(statements, default=0)
        for line in statements:
            counters[line - 1] = 0 if line in missed else 1
        return counters


class CoverageRecorder:
    def __init__(self) -> None:
        self._cov: coverage.Coverage | None = None
        self._external: Callable[[], coverage.Coverage | None] | None = None
        self.preloaded: set[str] = set()

    @property
    def started(self) -> bool:
        return self._cov is not None

    def start(self) -> None:
        if self._cov is not None:
            raise SetupError("coverage recording was already started")
        if coverage.Coverage.current() is not None:
            raise SetupError("coverage is already being recorded; start that tool after single_cov")
        self.preloaded = loaded_module_paths()
        self._cov = coverage.Coverage(data_file=None, config_file=False)
        self._cov.start()

    def read_through(self, source: Callable[[], coverage.Coverage | None]) -> None:
        """Prefer the Coverage returned by `source` (e.g. pytest-cov's) when it has one."""
        self._external = source

    def result(self) -> CoverageSnapshot:
        if self._cov is None:
            raise SetupError("coverage recording was never started")
        external = self._external() if self._external is not None else None
        current = coverage.Coverage.current()
        # a tool started after us that is still running owns the active tracer
        if external is None and current is not None and current is not self._cov:
            external = current
        # only the innermost Coverage may be stopped
        if current is self._cov:
            self._cov.stop()
        return CoverageSnapshot(external if external is not None else self._cov)
