"""
Per-file coverage declarations.

Test modules declare, while they are being imported, how many lines of the
file they cover may stay uncovered. Declarations are only appended during
the run and read once by the end-of-run verification.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from single_cov.config import Settings
from single_cov.errors import ResolutionError
from single_cov.resolver import file_under_test


@dataclass(frozen=True)
class CoverageDeclaration:
    file: str
    uncovered: int = 0


class Registry:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.declarations: list[CoverageDeclaration] = []

    def reset(self, settings: Settings | None = None) -> None:
        if settings is not None:
            self.settings = settings
        self.declarations = []

    def rewrite(self, fn: Callable[[str], str] | None) -> None:
        self.settings.rewrite = fn

    def covered(self, file: str | None = None, uncovered: int = 0, *, caller: str | None = None) -> CoverageDeclaration:
        if isinstance(uncovered, bool) or not isinstance(uncovered, int) or uncovered < 0:
            raise ResolutionError(f"uncovered must be a non-negative integer, got {uncovered!r}")
        declaration = CoverageDeclaration(self.guess_and_check_covered_file(file, caller), uncovered)
        self.declarations.append(declaration)
        return declaration

    def not_covered(self) -> None:
        # marker for assert_used; nothing is recorded
        return None

    def guess_and_check_covered_file(self, file: str | None, caller: str | None) -> str:
        root = self.settings.root
        if file is not None:
            if file.startswith("/"):
                raise ResolutionError("Use paths relative to root.")
            if not (root / file).exists():
                raise ResolutionError(f"{file} does not exist and cannot be covered.")
            return file

        if not caller:
            raise ResolutionError("Unable to guess covered file without a caller; pass file='target_file.py'.")
        guessed = file_under_test(caller, self.settings)
        if not (root / guessed).exists():
            raise ResolutionError(
                f"Tried to guess covered file as {guessed}, but it does not exist.\n"
                "Use `single_cov.covered(file='target_file.py')` to set covered file location."
            )
        return guessed
