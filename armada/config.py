"""
Armada configuration: CLI defaults read from a project's pyproject.toml.

    [tool.armada]
    executable-name = "proj"
    extra-delimiters = ".:"
    base-level = "INFO"            # or a number (logging levels)
    index-file-name = ".armada.py"
    config-dir-name = ".armada"
    search-paths = ["tools"]       # relative to the pyproject.toml directory
    colorful = true
    fancy = false

load_settings() looks for pyproject.toml in the given directory and its parents;
without one (or without a [tool.armada] table) the defaults apply. Keyword
options given to CLI(...) win over these values.
"""
import dataclasses
import logging
import tomllib
from pathlib import Path

from .faults import LoaderError

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Settings:
    executable_name: str | None = None
    extra_delimiters: str = ""
    base_level: int = logging.WARNING
    index_file_name: str = ".armada.py"
    config_dir_name: str = ".armada"
    search_paths: tuple = ()
    colorful: bool = True
    fancy: bool = False


_CHECKS = {
    "executable_name": str,
    "extra_delimiters": str,
    "base_level": int,
    "index_file_name": str,
    "config_dir_name": str,
    "search_paths": tuple,
    "colorful": bool,
    "fancy": bool,
}


def _find_pyproject_toml(search_path):
    current = Path(search_path).resolve()
    for directory in (current, *current.parents):
        if (candidate := directory / "pyproject.toml").is_file():
            return candidate
    return None


def _level(value):
    if isinstance(value, str):
        level = logging.getLevelName(value.upper())
        if not isinstance(level, int):
            raise LoaderError("unknown log level %r in [tool.armada] base-level" % value)
        return level
    return value


def load_settings(search_path=".", /, **overrides):
    """
    Read [tool.armada] from the nearest pyproject.toml, then apply overrides.

    Raises
    - LoaderError: unknown keys or values of the wrong type.
    """
    values = {}
    if (config_path := _find_pyproject_toml(search_path)) is not None:
        with open(config_path, "rb") as stream:
            data = tomllib.load(stream)
        table = data.get("tool", {}).get("armada", {})
        logger.debug("loaded [tool.armada] from %s", config_path)
        for key, value in table.items():
            name = key.replace("-", "_")
            if name not in _CHECKS:
                raise LoaderError("unknown [tool.armada] setting %r in %s" % (key, config_path))
            if name == "base_level":
                value = _level(value)
            if name == "search_paths":
                if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                    raise LoaderError("[tool.armada] search-paths must be a list of strings")
                value = tuple(str(config_path.parent / item) for item in value)
            if not isinstance(value, _CHECKS[name]) or (_CHECKS[name] is int and isinstance(value, bool)):
                raise LoaderError("[tool.armada] setting %r has the wrong type" % key)
            values[name] = value
    values.update(overrides)
    return Settings(**values)


__all__ = (
    # Classes
    "Settings",

    # Functions
    "load_settings",
)
