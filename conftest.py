"""File for tests."""

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

GOLDEN_DEFAULT = "golden/*.yaml"


def pytest_configure(config: Any) -> None:
    """Configure the tests."""
    config.addinivalue_line(
        "markers",
        "golden_test(pattern): parameterize test with Intcode golden records matching pattern",
    )


def _iter_marker_patterns(node: Any) -> Iterator[str]:
    """Yield pattern strings from golden_test markers on `node`."""
    for m in node.iter_markers(name="golden_test"):
        yield m.args[0] if m.args else GOLDEN_DEFAULT


def _load_record(p: Path) -> dict[str, Any]:
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        data = {"__yaml_load_error__": str(e)}
    if not isinstance(data, dict):
        data = {"__yaml_load_error__": f"{p.name} is not a mapping"}
    data.setdefault("__path__", str(p))
    data.setdefault("__name__", p.name)
    return data


def pytest_generate_tests(metafunc: Any) -> None:
    """Generate tests (parametrization) from YAML golden files."""
    if "golden" not in metafunc.fixturenames:
        return

    patterns = list(_iter_marker_patterns(metafunc.definition)) or [GOLDEN_DEFAULT]
    root = Path(metafunc.config.rootpath)

    files: list[Path] = []
    for pat in patterns:
        files.extend(sorted(root.glob(pat)))

    metafunc.parametrize("golden", [_load_record(p) for p in files], ids=[p.name for p in files])


def _close_root_handlers() -> None:
    root = logging.getLogger()
    for h in list(root.handlers):
        h.flush()
        h.close()
        root.removeHandler(h)


@pytest.fixture
def debug_log(tmp_path: Path) -> Iterator[Path]:
    """Route debug logging into a temporary processor.log and yield its path."""
    import processor

    path = tmp_path / "processor.log"
    processor.init_logging(logfile=str(path), debug=True, console=False)
    yield path
    _close_root_handlers()


@pytest.fixture
def read_log(debug_log: Path) -> Any:
    """Return a callable that flushes handlers and reads the debug log."""

    def _read() -> str:
        for h in logging.getLogger().handlers:
            h.flush()
        return debug_log.read_text(encoding="utf-8")

    return _read
