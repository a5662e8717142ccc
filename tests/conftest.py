"""Shared fixtures for the tracelight test suite."""

import importlib
import textwrap

import pytest

from tracelight.config import config_from_dict


def pytest_collect_file(parent, file_path):  # noqa: ARG001
    """Skip test_code_tree_* files when tree-sitter is not installed."""
    if file_path.name.startswith("test_code_tree") and file_path.suffix == ".py":
        if importlib.util.find_spec("tree_sitter") is None:
            return None  # skip collection entirely


@pytest.fixture
def write_sources(tmp_path):
    """Write Rust sources under tmp_path/src.

    Takes ``{relative path: source}``; sources are dedented. Returns the
    source root.
    """
    src = tmp_path / "src"
    src.mkdir(exist_ok=True)

    def _write(files: dict) -> object:
        for rel_path, text in files.items():
            path = src / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf8")
        return src

    return _write


@pytest.fixture
def rust_project(tmp_path, write_sources):
    """Write Rust sources and return a Config targeting them.

    Output goes to tmp_path/out unless ``output_dir`` is given.
    """
    def _make(files: dict, **options):
        write_sources(files)
        raw = {"target_dir": "src", "output_dir": "out", **options}
        return config_from_dict(raw, tmp_path)

    return _make
