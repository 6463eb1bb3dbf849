"""
pytest integration: `pytest --single-cov` (or ini `single_cov = true`).
"""

from __future__ import annotations

from collections.abc import Generator, Sequence

import coverage
import pytest

import single_cov
from single_cov.guard import ExitCallback, Guard


FILTER_FLAGS = {
    "-k",
    "-m",
    "--lf",
    "--last-failed",
    "--sw",
    "--stepwise",
    "--deselect",
    "--ignore",
    "--ignore-glob",
}
SHORT_FILTERS = set("km")
# short options whose value may follow in the same argument ("-pno:x", "-rA")
SHORT_WITH_VALUE = set("cnoprW")

guard_key = pytest.StashKey[Guard]()


def is_filtered_run(args: Sequence[str]) -> bool:
    for arg in args:
        arg = str(arg)
        if arg.split("=", 1)[0] in FILTER_FLAGS:
            return True
        # -kexpr, -vk expr, -xm marker
        if arg.startswith("-") and not arg.startswith("--"):
            for flag in arg[1:]:
                if flag in SHORT_FILTERS:
                    return True
                if flag in SHORT_WITH_VALUE:
                    break
        # node ids: tests/test_x.py::test_y
        elif "::" in arg:
            return True
    return False


class SessionFinish:
    def __init__(self, host: PytestHost, callback: ExitCallback) -> None:
        self.host = host
        self.callback = callback

    @pytest.hookimpl(tryfirst=True)
    def pytest_sessionfinish(self, session: pytest.Session, exitstatus: int) -> None:
        self.host.session = session
        forced = self.callback(int(exitstatus), None)
        if forced is not None:
            session.exitstatus = forced


class PytestHost:
    def __init__(self, config: pytest.Config) -> None:
        self.config = config
        self.session: pytest.Session | None = None

    def is_filtered_run(self, args: Sequence[str]) -> bool:
        return is_filtered_run(args)

    def is_batch_run(self) -> bool:
        if self.session is None:
            return False
        return len({str(item.path) for item in self.session.items}) > 1

    def on_process_exit(self, callback: ExitCallback) -> None:
        self.config.pluginmanager.register(SessionFinish(self, callback), "single_cov_session_finish")

    def external_coverage(self) -> coverage.Coverage | None:
        # pytest-cov stops its Coverage when the test loop ends and keeps the
        # combined data on its controller, which outlives Coverage.current()
        plugin = self.config.pluginmanager.getplugin("_cov")
        controller = getattr(plugin, "cov_controller", None)
        return getattr(controller, "cov", None)


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("single_cov", "per-file coverage declarations")
    group.addoption(
        "--single-cov",
        action="store_true",
        dest="single_cov",
        default=False,
        help="Verify single_cov.covered() declarations at the end of the run.",
    )
    group.addoption(
        "--single-cov-root",
        dest="single_cov_root",
        help="Project root (default: SINGLE_COV_ROOT or the pytest rootdir).",
    )
    group.addoption(
        "--single-cov-config",
        dest="single_cov_config",
        help="Optional config file (default: <root>/single_cov.json).",
    )
    parser.addini("single_cov", type="bool", default=False, help="Enable single_cov verification.")


# recording must start before pytest-cov starts its own Coverage
@pytest.hookimpl(hookwrapper=True)
def pytest_load_initial_conftests(
    early_config: pytest.Config, parser: pytest.Parser, args: list[str]
) -> Generator[None, None, None]:
    options = early_config.known_args_namespace
    if getattr(options, "single_cov", False) or early_config.getini("single_cov"):
        single_cov.configure(
            root=getattr(options, "single_cov_root", None),
            config_file=getattr(options, "single_cov_config", None),
            fallback_root=early_config.rootpath,
        )
        early_config.stash[guard_key] = single_cov.setup("pytest", PytestHost(early_config), args)
    yield


def pytest_report_header(config: pytest.Config) -> str | None:
    guard = config.stash.get(guard_key, None)
    if guard is None or guard.state is None:
        return None
    return f"single_cov: {guard.state.value}"
