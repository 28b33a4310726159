"""
Config system - layered typed configuration.

Merge order (later overrides earlier):
1. Dataclass defaults
2. YAML config files (``trellis.yaml`` auto-detected)
3. ``.env`` file (only ``TRELLIS_`` keys)
4. Environment variables (``TRELLIS_`` prefix, ``__`` for nesting)
5. Manual overrides
"""

from __future__ import annotations

import os
import types
from dataclasses import MISSING, asdict, dataclass, field, fields, is_dataclass
from glob import glob
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar, Union, get_args, get_origin, get_type_hints

import orjson
import yaml
from dotenv import dotenv_values


T = TypeVar("T")

DEFAULT_ENV_PREFIX = "TRELLIS_"


class ConfigError(Exception):
    """Raised when configuration validation fails."""


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class AppConfig:
    """
    Application settings.

    Attributes:
        debug: Include exception internals in 500 responses (unless production)
        production: Never expose internals, whatever ``debug`` says
        global_prefix: Path prefix prepended to every route
        server: Bind address used by ``listen()`` and ``trellis serve``
        log_level: Root log level configured by ``listen()``
        request_id_header: Header read for (and echoed with) the request id
    """

    debug: bool = False
    production: bool = False
    global_prefix: str = ""
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = "INFO"
    request_id_header: str = "x-request-id"

    @property
    def expose_internals(self) -> bool:
        return self.debug and not self.production

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Example:
        loader = ConfigLoader.load(paths=["config/*.yaml"], env_file=".env")
        config = loader.build(AppConfig)
        loader.get("server.port")
    """

    def __init__(self, env_prefix: str = DEFAULT_ENV_PREFIX):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = DEFAULT_ENV_PREFIX,
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        use_environ: bool = True,
    ) -> "ConfigLoader":
        """
        Load configuration from every layer.

        Args:
            paths: YAML/JSON file paths (glob patterns supported). When
                omitted, ``trellis.yaml`` is used if present.
            env_prefix: Prefix for environment variables
            env_file: Path to a .env file
            overrides: Manual overrides (highest precedence)
            use_environ: Read ``os.environ`` (disabled in some tests)
        """
        loader = cls(env_prefix=env_prefix)

        if not paths:
            for candidate in ("trellis.yaml", "trellis.yml"):
                if Path(candidate).exists():
                    paths = [candidate]
                    break

        for pattern in paths or ():
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        if use_environ:
            loader._load_from_env(os.environ)

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _load_from_files(self, pattern: str) -> None:
        matches = sorted(glob(pattern))
        if not matches and not any(ch in pattern for ch in "*?["):
            raise ConfigError(f"Config file not found: {pattern}")
        for path_str in matches:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise ConfigError(f"Unsupported config file type: {path}")

    def _load_json_file(self, path: Path) -> None:
        try:
            data = orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
        if data:
            self._merge_mapping(path, data)

    def _load_yaml_file(self, path: Path) -> None:
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if data:
            self._merge_mapping(path, data)

    def _merge_mapping(self, path: Path, data: Any) -> None:
        if not isinstance(data, dict):
            raise ConfigError(f"Top level of {path} must be a mapping")
        self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str) -> None:
        """Load prefixed keys from a .env file."""
        if not Path(path).exists():
            return
        for key, value in dotenv_values(path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self, environ: Dict[str, str]) -> None:
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str) -> None:
        """Convert TRELLIS_SERVER__PORT to {"server": {"port": ...}}."""
        key = key[len(self.env_prefix):]
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        lowered = value.lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return orjson.loads(value)
            except orjson.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict) -> None:
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current: Any = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def build(self, config_class: Type[T] = AppConfig) -> T:  # type: ignore[assignment]
        """
        Instantiate a dataclass config from the merged data.

        Raises:
            ConfigError: Type mismatch, unknown key, or missing required field
        """
        return _instantiate_dataclass(config_class, self.config_data, "")

    def to_dict(self) -> dict:
        return dict(self.config_data)


def load_config(
    paths: Optional[List[str]] = None,
    *,
    env_file: Optional[str] = ".env",
    overrides: Optional[Dict[str, Any]] = None,
) -> AppConfig:
    """Shortcut: all layers merged into an ``AppConfig``."""
    return ConfigLoader.load(paths=paths, env_file=env_file, overrides=overrides).build(AppConfig)


# ============================================================================
# Dataclass instantiation
# ============================================================================

def _instantiate_dataclass(config_class: Type[T], data: Any, prefix: str) -> T:
    if not isinstance(data, dict):
        raise ConfigError(f"Config section '{prefix.rstrip('.') or config_class.__name__}' must be a mapping")

    hints = get_type_hints(config_class)
    known = {f.name for f in fields(config_class)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(
            f"Unknown config key(s) {', '.join(prefix + k for k in unknown)} "
            f"for {config_class.__name__}"
        )

    kwargs: Dict[str, Any] = {}
    for field_info in fields(config_class):
        name = field_info.name
        field_type = hints.get(name, field_info.type)

        if name in data:
            value = data[name]
            if is_dataclass(field_type):
                value = _instantiate_dataclass(field_type, value, f"{prefix}{name}.")
            else:
                value = _coerce(value, field_type, f"{prefix}{name}")
            kwargs[name] = value
        elif field_info.default is not MISSING:
            kwargs[name] = field_info.default
        elif field_info.default_factory is not MISSING:
            kwargs[name] = field_info.default_factory()
        else:
            raise ConfigError(f"Required config field '{prefix}{name}' not provided")

    return config_class(**kwargs)


def _coerce(value: Any, expected: Any, name: str) -> Any:
    """Check ``value`` against ``expected``; numbers read as text are converted."""
    origin = get_origin(expected)
    if origin is Union or origin is types.UnionType:
        if value is None and type(None) in get_args(expected):
            return None
        for arg in get_args(expected):
            if arg is type(None):
                continue
            try:
                return _coerce(value, arg, name)
            except ConfigError:
                continue
        raise ConfigError(f"Config field '{name}' expected {expected}, got {type(value).__name__}")

    if origin is not None:
        if isinstance(value, origin):
            return value
        raise ConfigError(f"Config field '{name}' expected {expected}, got {type(value).__name__}")

    if expected is Any:
        return value

    if expected is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise ConfigError(f"Config field '{name}' expected bool, got {type(value).__name__}")

    if expected is int and isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    if expected is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if expected is str and isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)

    try:
        if isinstance(value, expected) and not (expected is int and isinstance(value, bool)):
            return value
    except TypeError:
        return value

    raise ConfigError(f"Config field '{name}' expected {getattr(expected, '__name__', expected)}, got {type(value).__name__}")
