from __future__ import annotations


class SingleCovError(RuntimeError):
    pass


class SetupError(SingleCovError):
    """Integration is misconfigured or loaded in the wrong order."""


class ResolutionError(SingleCovError):
    """A test file path cannot be mapped to the file it covers."""


class CompletenessError(SingleCovError):
    """Untested sources, undeclared tests or a stale untested allow-list."""
