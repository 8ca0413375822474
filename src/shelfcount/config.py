"""
Configuration file system for shelfcount.

Supports loading configuration from multiple locations, merged with precedence:
1. /etc/shelfcount/config.yaml or config.json (lowest priority)
2. ~/.config/shelfcount/config.yaml or config.json
3. ./shelfcount.yaml or ./shelfcount.json (highest priority)

All found config files are merged, with later files overriding earlier ones.
YAML is checked before JSON at each location. Environment variables
(SHELFCOUNT_*) have the highest priority.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

# Config filenames for current working directory (project-local config)
CONFIG_FILENAMES = ["shelfcount.yaml", "shelfcount.json", "config.yaml", "config.json"]
# Config filenames for system/user config directories
CONFIG_USER_FILENAMES = ["config.yaml", "config.json"]

DEFAULTS: dict[str, Any] = {
    "library_code": None,  # Library being counted, e.g. "12"
    "location_code": None,  # Optional shelf/location filter
    "catalog_file": None,
    "session_file": None,
    "policy": {
        # Loan eligibility codes that mean "may be lent out"
        "loanable_codes": ["0"],
    },
    "import": {"chunk_size": 250},
    "api": {"host": "127.0.0.1", "port": 8765},
    "reports": {"format": "csv"},
    # Reference tables, code -> display name
    "libraries": {},
    "locations": {},
}


def _get_config_dirs() -> list[Path]:
    """Get list of config directories to search, in merge order (lowest priority first)."""
    return [
        Path("/etc/shelfcount"),
        Path.home() / ".config" / "shelfcount",
        Path.cwd(),
    ]


def find_config_files() -> list[Path]:
    """Find all existing config files, in merge order (lowest priority first).

    At each location, only the first found file (YAML before JSON) is included.
    """
    found_files = []

    for dir_path in _get_config_dirs():
        filenames = CONFIG_FILENAMES if dir_path == Path.cwd() else CONFIG_USER_FILENAMES
        for filename in filenames:
            path = dir_path / filename
            if path.exists():
                found_files.append(path)
                break
    return found_files


def find_config_file() -> Path | None:
    """Find the highest-priority existing config file, or None."""
    files = find_config_files()
    return files[-1] if files else None


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base dict, modifying base in place."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _deep_copy(d: dict) -> dict:
    result = {}
    for key, value in d.items():
        if isinstance(value, dict):
            result[key] = _deep_copy(value)
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _load_config_file(path: Path) -> dict[str, Any]:
    """Load a single config file and return its contents.

    Raises:
        ImportError: If YAML config is found but PyYAML is not installed.
        json.JSONDecodeError: If JSON config file is malformed.
    """
    if path.suffix in (".yaml", ".yml"):
        try:
            import yaml
        except ImportError as e:
            raise ImportError(
                "PyYAML required for .yaml config files. Install with: pip install shelfcount[yaml]"
            ) from e
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    else:
        with open(path, encoding="utf-8") as f:
            return json.load(f)


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load config from file(s), merging with defaults.

    If path is provided, only that file is loaded (plus defaults and
    environment variables). Otherwise all standard locations are merged.
    """
    config = _deep_copy(DEFAULTS)

    if path is not None:
        if path.exists():
            _deep_merge(config, _load_config_file(path))
    else:
        for config_path in find_config_files():
            _deep_merge(config, _load_config_file(config_path))

    _apply_env_overrides(config)

    return config


def _apply_env_overrides(config: dict[str, Any]) -> None:
    """Apply environment variable overrides to config.

    Environment variables are named SHELFCOUNT_<KEY> where nested
    keys use double underscore, e.g., SHELFCOUNT_API__PORT=9000
    """
    prefix = "SHELFCOUNT_"
    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix) :].lower()
            _set_nested_value(config, config_key, value)


def _set_nested_value(config: dict, key: str, value: str) -> None:
    """Set a nested config value using double-underscore notation."""
    parts = key.split("__")
    target = config
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]

    final_key = parts[-1]
    # Codes such as library_code "12" must stay strings
    if final_key.endswith("_code") or final_key.endswith("_file"):
        target[final_key] = value
    else:
        target[final_key] = _convert_value(value)


def _convert_value(value: str) -> Any:
    """Convert string value to appropriate type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if "," in value:
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


def get_config_value(config: dict[str, Any], key: str, default: Any = None) -> Any:
    """Get a config value using dot notation, e.g. "api.port"."""
    parts = key.split(".")
    target = config
    for part in parts:
        if isinstance(target, dict) and part in target:
            target = target[part]
        else:
            return default
    return target


def _as_code(value: Any) -> str | None:
    # YAML turns an unquoted 12 into an int
    if value is None or value == "":
        return None
    return str(value)


class Config:
    """Configuration holder with convenient access methods."""

    def __init__(self, path: Path | None = None):
        self._explicit_path = path
        if path is not None:
            self._paths = [path] if path.exists() else []
        else:
            self._paths = find_config_files()
        self._data = load_config(path)

    @property
    def path(self) -> Path | None:
        """Return the highest-priority loaded config file, or None."""
        return self._paths[-1] if self._paths else None

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return get_config_value(self._data, key, default)

    @property
    def library_code(self) -> str | None:
        return _as_code(self.get("library_code"))

    @property
    def location_code(self) -> str | None:
        return _as_code(self.get("location_code"))

    @property
    def catalog_file(self) -> Path | None:
        val = self.get("catalog_file")
        return Path(val) if val else None

    @property
    def session_file(self) -> Path | None:
        val = self.get("session_file")
        return Path(val) if val else None

    @property
    def loanable_codes(self) -> frozenset[str]:
        """Return loan eligibility codes treated as loanable.

        Example config:
            policy:
              loanable_codes: ["0", "5"]
        """
        codes = self.get("policy.loanable_codes", ["0"])
        if isinstance(codes, (str, int)):
            codes = [codes]
        return frozenset(str(code) for code in codes)

    @property
    def chunk_size(self) -> int:
        return int(self.get("import.chunk_size", 250))

    @property
    def api_host(self) -> str:
        return self.get("api.host", "127.0.0.1")

    @property
    def api_port(self) -> int:
        return self.get("api.port", 8765)

    @property
    def report_format(self) -> str:
        return self.get("reports.format", "csv")

    @property
    def libraries(self) -> dict[str, str]:
        """Return library code -> name table from config."""
        return {str(code): str(name) for code, name in (self.get("libraries") or {}).items()}

    @property
    def locations(self) -> dict[str, str]:
        """Return location code -> name table from config."""
        return {str(code): str(name) for code, name in (self.get("locations") or {}).items()}
