"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < env vars < explicit overrides
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any

import yaml

from toolrun import constants
from toolrun.logs import LEVELS
from toolrun.types import FormatMode

FORMATS = (FormatMode.FULL, FormatMode.SUMMARY, FormatMode.MINIMAL)


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class TimeoutConfig:
    default_ms: int = constants.DEFAULT_TIMEOUT_MS
    elicitation_ms: int = constants.DEFAULT_ELICITATION_TIMEOUT_MS
    cancel_on_timeout: bool = False


@dataclass
class ResponseConfig:
    max_size_bytes: int = constants.MAX_RESPONSE_SIZE_BYTES
    summary_max_tokens: int = constants.DEFAULT_SUMMARY_MAX_TOKENS
    default_format: str = FormatMode.FULL


@dataclass
class PollingConfig:
    interval_ms: int = constants.DEFAULT_POLL_INTERVAL_MS
    timeout_ms: int = constants.DEFAULT_POLL_TIMEOUT_MS


@dataclass
class PaginationConfig:
    default_page_size: int = constants.DEFAULT_PAGE_SIZE
    max_page_size: int = constants.MAX_PAGE_SIZE


@dataclass
class LoggingConfig:
    level: str = "info"


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class ToolrunConfig:
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    response: ResponseConfig = field(default_factory=ResponseConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a value using dot notation (e.g. 'timeouts.default_ms')."""
        _apply_dotpath(self, dotpath, value)

    def to_dict(self) -> dict:
        return asdict(self)

    def validate(self) -> None:
        """Raise ValueError if any layered value is out of range."""
        for dotpath in (
            "timeouts.default_ms",
            "timeouts.elicitation_ms",
            "response.max_size_bytes",
            "response.summary_max_tokens",
            "polling.interval_ms",
            "polling.timeout_ms",
            "pagination.default_page_size",
            "pagination.max_page_size",
        ):
            section, key = dotpath.split(".")
            value = getattr(getattr(self, section), key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"{dotpath} must be a positive integer, got {value!r}")
        if self.response.default_format not in FORMATS:
            raise ValueError(
                f"response.default_format must be one of {', '.join(FORMATS)}, "
                f"got {self.response.default_format!r}"
            )
        if self.logging.level not in LEVELS:
            raise ValueError(f"Unknown logging.level: {self.logging.level!r}")
        if self.pagination.default_page_size > self.pagination.max_page_size:
            raise ValueError("pagination.default_page_size exceeds pagination.max_page_size")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    if not hasattr(obj, parts[-1]):
        raise AttributeError(f"Unknown config key: {dotpath}")
    setattr(obj, parts[-1], value)


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in (raw or {}).items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "TOOLRUN_TIMEOUT_MS":             ("timeouts.default_ms", int),
    "TOOLRUN_ELICITATION_TIMEOUT_MS": ("timeouts.elicitation_ms", int),
    "TOOLRUN_CANCEL_ON_TIMEOUT":      ("timeouts.cancel_on_timeout", bool),
    "TOOLRUN_MAX_RESPONSE_BYTES":     ("response.max_size_bytes", int),
    "TOOLRUN_SUMMARY_MAX_TOKENS":     ("response.summary_max_tokens", int),
    "TOOLRUN_RESPONSE_FORMAT":        ("response.default_format", str),
    "TOOLRUN_POLL_INTERVAL_MS":       ("polling.interval_ms", int),
    "TOOLRUN_POLL_TIMEOUT_MS":        ("polling.timeout_ms", int),
    "TOOLRUN_PAGE_SIZE":              ("pagination.default_page_size", int),
    "TOOLRUN_MAX_PAGE_SIZE":          ("pagination.max_page_size", int),
    "TOOLRUN_LOG_LEVEL":              ("logging.level", str),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    overrides: dict[str, Any] | None = None,
) -> ToolrunConfig:
    """
    Build a ToolrunConfig by layering sources in precedence order:

        defaults  <  config file  <  env vars  <  overrides

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    overrides : dict of dotpath -> value overrides
    """
    raw: dict[str, Any] = {}

    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}

    cfg = ToolrunConfig(
        timeouts=_build_section(TimeoutConfig, raw.get("timeouts", {})),
        response=_build_section(ResponseConfig, raw.get("response", {})),
        polling=_build_section(PollingConfig, raw.get("polling", {})),
        pagination=_build_section(PaginationConfig, raw.get("pagination", {})),
        logging=_build_section(LoggingConfig, raw.get("logging", {})),
    )

    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    if overrides:
        for dotpath, value in overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    cfg.validate()
    return cfg
