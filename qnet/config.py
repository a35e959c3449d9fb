"""Key/value configuration files with a separate file of default values."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Mapping

log = logging.getLogger(__name__)

DEFAULTS_PATH = "/usr/local/etc/defaults"

# Module types that may have their own defaults, e.g. ``dvap_frequency``.
MODULE_TYPES = ("dvrptr", "dvap", "mmdvmhost", "mmdvmmodem", "itap", "thumbdv")

_INT_PREFIX = re.compile(r"\s*[+-]?\d+")
_FLOAT_PREFIX = re.compile(
    r"\s*[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


class ConfigError(Exception):
    """A configuration value is missing, malformed or out of range."""


def _first_token(text: str, delimiters: str) -> str:
    """Return the first run of characters not in delimiters, skipping leading ones."""
    stripped = text.lstrip(delimiters)
    for position, char in enumerate(stripped):
        if char in delimiters:
            return stripped[:position]
    return stripped


def _parse_line(line: str) -> tuple[str, str] | None:
    key_part, sep, rest = line.lstrip("=").partition("=")
    key = key_part.strip()
    if not key or key.startswith("#") or not sep:
        return None
    raw = _first_token(rest, "\r\n")
    if not raw:
        return None
    value = raw.strip()
    if value.startswith("'"):
        if value[1:2] == "'":
            return key, ""
        return key, _first_token(value, "'")
    return key, _first_token(value, "# \t")


def read_config_file(path: str | Path) -> dict[str, str]:
    """Read ``key=value`` lines; ``#`` starts a comment, quotes keep spaces."""
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            lines = handle.readlines()
    except OSError as exc:
        raise ConfigError(f"could not open file {path}") from exc
    values: dict[str, str] = {}
    for line in lines:
        parsed = _parse_line(line)
        if parsed is not None:
            key, value = parsed
            values[key] = value
    return values


def _parse_bool(path: str, value: str) -> bool:
    first = value[:1]
    if first and first in "0fF":
        return False
    if first and first in "1tT":
        return True
    raise ConfigError(f"{path}={value} doesn't seem to define a boolean")


def _parse_int(path: str, value: str) -> int:
    match = _INT_PREFIX.match(value)
    if match is None:
        raise ConfigError(f"{path}={value} is not an integer")
    return int(match.group())


def _parse_float(path: str, value: str) -> float:
    match = _FLOAT_PREFIX.match(value)
    if match is None:
        raise ConfigError(f"{path}={value} is not a number")
    return float(match.group())


class Configuration:
    """Configured values, falling back to defaults when a key is absent."""

    def __init__(
        self,
        values: Mapping[str, str] | None = None,
        defaults: Mapping[str, str] | None = None,
    ) -> None:
        self._values = dict(values or {})
        self._defaults = dict(defaults or {})

    @classmethod
    def load(cls, path: str | Path, defaults_path: str | Path = DEFAULTS_PATH) -> "Configuration":
        """Read the defaults file and then the configuration file."""
        defaults = read_config_file(defaults_path)
        return cls(read_config_file(path), defaults)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def _default(self, path: str, mod: str) -> str:
        if not mod:
            keys = [path + "_d"]
        else:
            if not (
                path.startswith("module_")
                and len(path) > 8
                and path[7] in "abc"
                and path[8] == "_"
            ):
                raise ConfigError(f"{path} looks like an ill-formed request from module '{mod}'")
            if mod not in MODULE_TYPES:
                raise ConfigError(f"Unrecognized module type = '{mod}'")
            keys = [path[:7] + "x" + path[8:], mod + path[8:]]
        for key in keys:
            if key in self._defaults:
                return self._defaults[key]
        raise ConfigError(f"{path} not found in either the cfg file or the defaults file")

    def _raw(self, path: str, mod: str) -> tuple[str, bool]:
        """Return (value, came_from_defaults)."""
        if path in self._values:
            return self._values[path], False
        return self._default(path, mod), True

    def get_bool(self, path: str, mod: str = "") -> bool:
        value, _ = self._raw(path, mod)
        result = _parse_bool(path, value)
        log.info("%s = %s", path, "true" if result else "false")
        return result

    def get_float(self, path: str, mod: str, minimum: float, maximum: float) -> float:
        raw, from_default = self._raw(path, mod)
        value = _parse_float(path, raw)
        if value < minimum or value > maximum:
            prefix = "Default value " if from_default else ""
            raise ConfigError(f"{prefix}{path}={value:g} is out of acceptable range")
        log.info("%s = %g", path, value)
        return value

    def get_int(self, path: str, mod: str, minimum: int, maximum: int) -> int:
        raw, from_default = self._raw(path, mod)
        value = _parse_int(path, raw)
        if value < minimum or value > maximum:
            prefix = "Default value " if from_default else ""
            raise ConfigError(f"{prefix}{path}={raw} is out of acceptable range")
        log.info("%s = %d", path, value)
        return value

    def get_str(self, path: str, mod: str, minimum: int, maximum: int) -> str:
        value, from_default = self._raw(path, mod)
        if not minimum <= len(value) <= maximum:
            prefix = "Default value " if from_default else ""
            raise ConfigError(f"{prefix}{path}='{value}' is wrong size")
        log.info("%s = '%s'", path, value)
        return value