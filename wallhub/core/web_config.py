"""``wallhub.env`` loader: KEY=VALUE lines, environment overrides, typed getters."""

import os
from pathlib import Path


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
_QUOTES = {"'", '"'}


def _parse_line(raw):
    """Return ``(key, value)`` for one config line, or None to skip it.

    Accepts an optional ``export`` prefix and strips `` # comments`` from
    unquoted values.
    """
    line = raw.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    key, value = (part.strip() for part in line.split("=", 1))
    if not key:
        return None
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
        return key, value[1:-1]
    if " #" in value:
        value = value.split(" #", 1)[0].rstrip()
    return key, value


class WebConfig:
    """Typed view over ``wallhub.env`` and the process environment.

    A non-blank environment variable wins over the file so secrets such as
    the service role key can be injected at deploy time. A missing file is
    not an error; every getter then falls back to its default.
    """

    def __init__(self, config_path, base_dir, environ=None):
        self.config_path = Path(config_path)
        self.base_dir = Path(base_dir)
        self.environ = os.environ if environ is None else environ
        self.values = self._load()

    def _load(self):
        try:
            text = self.config_path.read_text(encoding="utf-8")
        except OSError:
            return {}
        values = {}
        for raw in text.splitlines():
            parsed = _parse_line(raw)
            if parsed is not None:
                values[parsed[0]] = parsed[1]
        return values

    def _raw(self, name):
        """Stripped value for ``name`` or None when unset or blank."""
        for source in (self.environ, self.values):
            value = source.get(name)
            if value is not None and str(value).strip():
                return str(value).strip()
        return None

    def _number(self, name, default, minimum, cast):
        raw = self._raw(name)
        if raw is None:
            return default
        try:
            parsed = cast(raw)
        except ValueError:
            return default
        if minimum is not None and parsed < minimum:
            return minimum
        return parsed

    def get_str(self, name, default):
        value = self._raw(name)
        return default if value is None else value

    def get_int(self, name, default, minimum=None):
        """Integer setting, raised to ``minimum`` when below it."""
        return self._number(name, default, minimum, int)

    def get_float(self, name, default, minimum=None):
        return self._number(name, default, minimum, float)

    def get_bool(self, name, default):
        """``1/true/yes/on`` or ``0/false/no/off``; anything else is ``default``."""
        raw = self._raw(name)
        if raw is None:
            return default
        lowered = raw.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        return default

    def get_path(self, name, default):
        """Path setting; relative values resolve against ``base_dir``."""
        raw = self._raw(name)
        if raw is None:
            return Path(default)
        candidate = Path(raw)
        return candidate if candidate.is_absolute() else self.base_dir / candidate
