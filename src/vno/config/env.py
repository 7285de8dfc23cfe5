"""Environment variable reader with dependency injection support.

EnvReader reads ``VNO_*`` variables with type conversion. Tests pass an
explicit mapping instead of patching ``os.environ``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from vno.core.datetime_utils import parse_duration

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "off"})


class EnvReader:
    """Typed access to environment variables.

    Unparseable values are logged and treated as unset, so a typo in the
    environment falls back to the config file or the default.

    Example:
        reader = EnvReader(env={"VNO_SERVER_PORT": "9000"})
        reader.get_int("VNO_SERVER_PORT")  # 9000
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        """Initialize the environment reader.

        Args:
            env: Mapping to read instead of os.environ.
        """
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def _raw(self, var: str) -> str | None:
        value = self._env.get(var)
        if value is None or value.strip() == "":
            return None
        return value.strip()

    def get_str(self, var: str, default: str | None = None) -> str | None:
        """Get a string, or default if unset or blank."""
        value = self._raw(var)
        return default if value is None else value

    def get_int(self, var: str, default: int | None = None) -> int | None:
        """Get an integer, or default if unset or invalid."""
        value = self._raw(var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer value for %s: %s", var, value)
            return default

    def get_float(self, var: str, default: float | None = None) -> float | None:
        """Get a float, or default if unset or invalid."""
        value = self._raw(var)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            logger.warning("Invalid float value for %s: %s", var, value)
            return default

    def get_bool(self, var: str, default: bool | None = None) -> bool | None:
        """Get a boolean.

        Accepts true/1/yes/on and false/0/no/off (case-insensitive).
        Anything else is logged and treated as unset.
        """
        value = self._raw(var)
        if value is None:
            return default
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        logger.warning("Invalid boolean value for %s: %s", var, value)
        return default

    def get_seconds(self, var: str, default: float | None = None) -> float | None:
        """Get a duration in seconds.

        Accepts a bare number of seconds or a duration string like
        ``30s``, ``15m`` or ``24h``.
        """
        value = self._raw(var)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            pass
        try:
            return parse_duration(value).total_seconds()
        except ValueError:
            logger.warning("Invalid duration value for %s: %s", var, value)
            return default

    def get_path(self, var: str, default: Path | None = None) -> Path | None:
        """Get a path with tilde expansion. The path need not exist."""
        value = self._raw(var)
        if value is None:
            return default
        return Path(value).expanduser()
