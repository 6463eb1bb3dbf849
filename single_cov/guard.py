"""
Arms coverage verification for a test run.

    setup() -> ARMED   recorder started, end-of-run hook registered
            -> SKIPPED filtered run; nothing recorded or verified
    ARMED  -> VERIFIED once the end-of-run hook has run
"""

from __future__ import annotations

import enum
import sys
from collections.abc import Sequence
from typing import Callable, Protocol, TextIO

import coverage

from single_cov.errors import SetupError
from single_cov.recorder import CoverageRecorder
from single_cov.registry import Registry
from single_cov.verifier import all_covered


SUPPORTED_FRAMEWORKS = {"pytest"}

ExitCallback = Callable[[int, "BaseException | None"], "int | None"]


class State(str, enum.Enum):
    ARMED = "armed"
    SKIPPED = "skipped"
    VERIFIED = "verified"


class FrameworkHost(Protocol):
    def is_filtered_run(self, args: Sequence[str]) -> bool: ...

    def is_batch_run(self) -> bool: ...

    def on_process_exit(self, callback: ExitCallback) -> None: ...

    def external_coverage(self) -> coverage.Coverage | None: ...


def normalize_exit_status(status: int | None, error: BaseException | None = None) -> int:
    if error is None:
        return int(status or 0)
    if isinstance(error, SystemExit):
        code = error.code
        if code is None:
            return 0
        return code if isinstance(code, int) else 1
    return 1


class Guard:
    def __init__(
        self,
        host: FrameworkHost,
        registry: Registry,
        recorder: CoverageRecorder | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self.host = host
        self.registry = registry
        self.recorder = recorder or CoverageRecorder()
        self.stream = stream
        self.state: State | None = None

    def arm(self, args: Sequence[str]) -> State:
        if self.state is not None:
            raise SetupError(f"single_cov is already set up ({self.state.value})")
        # do not record or verify when only running selected tests since it would be missing data
        if self.host.is_filtered_run(args):
            self.state = State.SKIPPED
            return self.state
        # start recording before any source file is imported or nothing can be recorded
        self.recorder.start()
        self.recorder.read_through(self.host.external_coverage)
        self.host.on_process_exit(self.finish)
        self.state = State.ARMED
        return self.state

    def improvement_fatal(self) -> bool:
        policy = self.registry.settings.improvement
        if policy == "auto":
            return self.host.is_batch_run()
        return policy == "fail"

    def verify(self) -> bool:
        settings = self.registry.settings
        return all_covered(
            self.recorder.result(),
            self.registry.declarations,
            settings.root,
            preloaded=self.recorder.preloaded,
            improvement_fatal=self.improvement_fatal(),
            max_output=settings.max_output,
            stream=self.stream or sys.stderr,
        )

    def finish(self, status: int, error: BaseException | None = None) -> int | None:
        """End-of-run hook; returns the status to force, or None to leave it alone."""
        if self.state is not State.ARMED:
            return None
        self.state = State.VERIFIED
        exit_status = normalize_exit_status(status, error)
        # a failing run keeps its own status; coverage must not mask it
        if exit_status != 0:
            return None
        if self.verify():
            return None
        return 1


def setup(
    framework: str,
    host: FrameworkHost,
    registry: Registry,
    args: Sequence[str] = (),
    recorder: CoverageRecorder | None = None,
    stream: TextIO | None = None,
) -> Guard:
    if framework not in SUPPORTED_FRAMEWORKS:
        raise SetupError(f"Unsupported framework {framework!r}")
    guard = Guard(host, registry, recorder=recorder, stream=stream)
    guard.arm(args)
    return guard
