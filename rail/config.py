"""Configuration for Rail instances.

Options can be built directly or loaded from environment variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{key} must be a boolean, got {raw!r}")


def _parse_limit(key: str, raw: str) -> int | None:
    value = raw.strip().lower()
    if value in ("none", "unbounded"):
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer or 'none', got {raw!r}") from e


@dataclass(frozen=True)
class RailOptions:
    """
    Options for a Rail instance.

    Args:
        name: Bus name, bound into every log line
        debug: Log registration, emission and lifecycle traces
        clone: Give every listener its own deep copy of the payload
        max_history: History entries kept (None for unbounded)
        setup_logging: Configure the ``rail`` logger when the bus is created
        log_json: Render log lines as JSON (with ``setup_logging``)
        log_file: Log to this file instead of stderr (with ``setup_logging``)
    """

    name: str = "rail-app"
    debug: bool = False
    clone: bool = True
    max_history: int | None = 1000
    setup_logging: bool = False
    log_json: bool = False
    log_file: str | None = None

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("name must be a non-empty string")
        if self.max_history is not None and self.max_history < 0:
            raise ValueError("max_history must be >= 0 or None")

    @classmethod
    def from_env(
        cls,
        prefix: str = "RAIL_",
        environ: Mapping[str, str] | None = None,
    ) -> RailOptions:
        """Load options from environment variables.

        Reads ``{prefix}NAME``, ``{prefix}DEBUG``, ``{prefix}CLONE``,
        ``{prefix}MAX_HISTORY``, ``{prefix}SETUP_LOGGING``, ``{prefix}LOG_JSON``
        and ``{prefix}LOG_FILE``. Unset variables keep their defaults.

        Args:
            prefix: Variable name prefix
            environ: Mapping to read instead of ``os.environ``

        Returns:
            RailOptions instance
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        if (name := env.get(f"{prefix}NAME")) is not None:
            values["name"] = name
        if (debug := env.get(f"{prefix}DEBUG")) is not None:
            values["debug"] = _parse_bool(f"{prefix}DEBUG", debug)
        if (clone := env.get(f"{prefix}CLONE")) is not None:
            values["clone"] = _parse_bool(f"{prefix}CLONE", clone)
        if (limit := env.get(f"{prefix}MAX_HISTORY")) is not None:
            values["max_history"] = _parse_limit(f"{prefix}MAX_HISTORY", limit)
        if (setup := env.get(f"{prefix}SETUP_LOGGING")) is not None:
            values["setup_logging"] = _parse_bool(f"{prefix}SETUP_LOGGING", setup)
        if (log_json := env.get(f"{prefix}LOG_JSON")) is not None:
            values["log_json"] = _parse_bool(f"{prefix}LOG_JSON", log_json)
        if log_file := env.get(f"{prefix}LOG_FILE"):
            values["log_file"] = log_file

        return cls(**values)

    def merged(self, **overrides: Any) -> RailOptions:
        """Copy with ``overrides`` applied; unknown keys raise TypeError."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown Rail options: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)
