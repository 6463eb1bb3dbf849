"""
Map a test file to the source file it covers.

    tests/models/user_test.py   -> app/models/user.py
    tests/test_parser.py        -> lib/parser.py
    spec/lib/foo/bar_spec.rb    -> lib/foo/bar.rb
    plugin/test/thing_test.py   -> plugin/lib/thing.py
"""

from __future__ import annotations

import os
import re

from single_cov.config import Settings
from single_cov.errors import ResolutionError


CALL_SITE_RE = re.compile(r"^(?P<path>.+?\.[A-Za-z0-9_]+)(?::\d+.*|\s+\(.*|\s*)$")
TEST_SUFFIX_RE = re.compile(r"_(?:test|spec)(?P<ext>\.[A-Za-z0-9_]+)$")
TEST_PREFIX = "test_"


def strip_call_site(location: str) -> str:
    # "tests/test_x.py:12:in <module>" -> "tests/test_x.py"
    m = CALL_SITE_RE.match(location.strip())
    return m.group("path") if m else location.strip()


def relative_to_root(path: str, root: str) -> str:
    # relative paths are taken to be relative to the project root, not the cwd
    absolute = os.path.realpath(os.path.join(root, path))
    prefix = os.path.realpath(root).rstrip("/") + "/"
    if absolute.startswith(prefix):
        return absolute[len(prefix) :]
    return absolute


def split_test_dir(rel_path: str, test_dirs: list[str]) -> tuple[str, str] | None:
    markers = "|".join(re.escape(d) for d in test_dirs)
    parts = re.split(rf"(?:^|/)(?:{markers})/", rel_path, maxsplit=1)
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


def source_root_for(file_part: str, settings: Settings) -> str:
    head = file_part.split("/", 1)[0]
    if "/" in file_part and head in settings.application_folders:
        return settings.application_root + "/"
    if file_part.startswith(settings.library_root + "/"):
        return ""
    return settings.library_root + "/"


def strip_test_name(file_part: str) -> str | None:
    stripped, count = TEST_SUFFIX_RE.subn(r"\g<ext>", file_part)
    if count:
        return stripped
    dirname, _, basename = file_part.rpartition("/")
    if basename.startswith(TEST_PREFIX) and len(basename) > len(TEST_PREFIX) and "." in basename:
        basename = basename[len(TEST_PREFIX) :]
        return f"{dirname}/{basename}" if dirname else basename
    return None


def apply_rewrites(file_part: str, settings: Settings) -> str:
    for pattern, replacement in settings.rewrites:
        file_part = re.sub(pattern, replacement, file_part)
    if settings.rewrite is not None:
        file_part = settings.rewrite(file_part)
    return file_part


def file_under_test(test_file: str, settings: Settings) -> str:
    """Return the root-relative source path that `test_file` is expected to cover.

    Raises ResolutionError for any path shape the conventions cannot handle.
    """
    rel = relative_to_root(strip_call_site(test_file), str(settings.root))

    # preserve subfolders like plugin/test/x_test.py -> plugin/lib/x.py
    split = split_test_dir(rel, settings.test_dirs)
    if split is None:
        dirs = ", ".join(repr(d) for d in settings.test_dirs)
        raise ResolutionError(f"{rel} includes none of the test folders ({dirs}) ... unable to resolve")
    subfolder, file_part = split

    file_part = source_root_for(file_part, settings) + file_part

    stripped = strip_test_name(file_part)
    if stripped is None:
        raise ResolutionError(
            f"Unable to remove test extension from {rel} ... _test, _spec and test_ names are supported"
        )
    file_part = stripped

    if subfolder:
        file_part = f"{subfolder}/{file_part}"

    return apply_rewrites(file_part, settings)
