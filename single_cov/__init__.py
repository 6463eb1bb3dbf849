"""
single_cov: per-file coverage declarations verified at the end of a test run.

    # tests/test_parser.py
    import single_cov
    single_cov.covered(uncovered=2)   # lib/parser.py may keep 2 uncovered lines
"""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Callable

from single_cov.config import Settings, load_settings, resolve_root
from single_cov.errors import CompletenessError, ResolutionError, SetupError, SingleCovError
from single_cov.guard import FrameworkHost, Guard
from single_cov.guard import setup as _setup_guard
from single_cov.registry import CoverageDeclaration, Registry


_registry: Registry | None = None
_guard: Guard | None = None


def default_registry() -> Registry:
    global _registry
    if _registry is None:
        _registry = Registry(load_settings(resolve_root()))
    return _registry


def configure(
    root: str | os.PathLike[str] | None = None,
    config_file: str | os.PathLike[str] | None = None,
    fallback_root: Path | None = None,
) -> Registry:
    global _registry
    settings = load_settings(resolve_root(root, fallback=fallback_root), config_file)
    if _registry is None:
        _registry = Registry(settings)
    else:
        settings.rewrite = _registry.settings.rewrite
        _registry.reset(settings)
    return _registry


def setup(framework: str, host: FrameworkHost, args: Sequence[str] = ()) -> Guard:
    global _guard
    if _guard is not None:
        raise SetupError("single_cov.setup was already called")
    _guard = _setup_guard(framework, host, default_registry(), args)
    return _guard


def rewrite(fn: Callable[[str], str] | None) -> None:
    """Post-process every guessed file name, e.g. lambda f: f.replace("lib/", "src/")."""
    default_registry().rewrite(fn)


def covered(file: str | None = None, uncovered: int = 0) -> CoverageDeclaration:
    caller = sys._getframe(1).f_globals.get("__file__")
    return default_registry().covered(file, uncovered, caller=caller)


def not_covered() -> None:
    default_registry().not_covered()


__all__ = [
    "CompletenessError",
    "CoverageDeclaration",
    "Registry",
    "ResolutionError",
    "SetupError",
    "Settings",
    "SingleCovError",
    "configure",
    "covered",
    "default_registry",
    "not_covered",
    "rewrite",
    "setup",
]
