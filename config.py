from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

"""Config loader and validator.

Provides `load_config` which accepts either a path to a YAML file,
a dictionary or None and returns a normalized configuration dict
using DEFAULTS for missing values.
"""


DEFAULTS: dict[str, Any] = {
    "inputs": [],
    "noun": None,
    "verb": None,
    "phases": None,
    "feedback": False,
    "lenient_log": False,
}


class ConfigError(ValueError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def _int_list(v: Any) -> list[int]:
    if isinstance(v, (str, bytes)) or not isinstance(v, (list, tuple)):
        msg = f"expected a list of integers, got {v!r}"
        raise TypeError(msg)
    return [int(x) for x in v]


def _convert_types(cfg: dict[str, Any]) -> None:
    """Normalize types for configuration values in-place.

    Raises ConfigError on conversion failure.
    """
    try:
        # inputs
        v = cfg.get("inputs")
        cfg["inputs"] = [] if v is None else _int_list(v)

        # noun / verb
        for key in ("noun", "verb"):
            v = cfg.get(key)
            cfg[key] = None if v is None else int(v)

        # phases
        v = cfg.get("phases")
        cfg["phases"] = None if v is None else _int_list(v)

        # feedback / lenient_log (bool coercion)
        cfg["feedback"] = bool(cfg.get("feedback", DEFAULTS["feedback"]))
        cfg["lenient_log"] = bool(cfg.get("lenient_log", DEFAULTS["lenient_log"]))
    except Exception as e:
        msg = f"Bad types in config: {e}"
        raise ConfigError(msg) from e


def _validate_cfg(cfg: dict[str, Any]) -> None:
    """Perform semantic validation on normalized config dict.

    Raises ConfigError on invalid values.
    """
    if (cfg["noun"] is None) != (cfg["verb"] is None):
        msg = "noun and verb must be given together"
        raise ConfigError(msg)

    for key in ("noun", "verb"):
        if cfg[key] is not None and cfg[key] < 0:
            msg = f"{key} must be non-negative or null"
            raise ConfigError(msg)

    if cfg["phases"] is not None and not cfg["phases"]:
        msg = "phases must not be empty"
        raise ConfigError(msg)

    if cfg["feedback"] and cfg["phases"] is None:
        msg = "feedback requires phases"
        raise ConfigError(msg)


def load_config(path_or_dict: str | dict[str, Any] | None = None) -> dict[str, Any]:
    """Load and normalize configuration.

    Accepts:
      - None -> returns DEFAULTS copy
      - dict -> overlay DEFAULTS with provided dict
      - str (path) -> load YAML and overlay DEFAULTS

    Returns a normalized dict or raises ConfigError.
    """
    if path_or_dict is None:
        cfg: dict[str, Any] = dict(DEFAULTS)
    elif isinstance(path_or_dict, dict):
        cfg = dict(DEFAULTS)
        cfg.update(path_or_dict)
    elif isinstance(path_or_dict, str):
        p = Path(path_or_dict)
        if not p.exists():
            msg = f"Config file not found: {path_or_dict}"
            raise ConfigError(msg)
        try:
            with p.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except Exception as e:
            msg = f"Failed to load config file {path_or_dict}: {e}"
            raise ConfigError(msg) from e
        if not isinstance(data, dict):
            msg = f"Config file {path_or_dict} does not contain a mapping"
            raise ConfigError(msg)
        cfg = dict(DEFAULTS)
        cfg.update(data)
    else:
        msg = "Unsupported config input"
        raise ConfigError(msg)

    # convert types and validate semantics
    _convert_types(cfg)
    _validate_cfg(cfg)

    return cfg
