"""Configuration loading for bsp-client."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from bsp_client.errors import BSPClientError

CLIENT_VERSION = "0.1.0"
BSP_VERSION = "2.0.0"

CONFIG_FILE_NAMES = ("bsp-client.yaml", ".bsp-client.yaml", "bsp-client.yml", ".bsp-client.yml")


class ConfigError(BSPClientError):
    """Configuration file is unreadable or has the wrong shape."""


@dataclass
class ClientInfoConfig:
    """How the client introduces itself in build/initialize."""

    display_name: str = "BSP Client"
    version: str = CLIENT_VERSION
    bsp_version: str = BSP_VERSION
    language_ids: list[str] = field(default_factory=lambda: ["erlang"])


@dataclass
class ShutdownConfig:
    """Shutdown timeout configuration."""

    interrupt_timeout: float = 2.0
    """Seconds to wait after sending interrupt (SIGINT/Ctrl+Break)."""

    terminate_timeout: float = 3.0
    """Seconds to wait after sending terminate (SIGTERM)."""


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    verbose: int | None = None
    file: str | None = None


@dataclass
class ClientConfig:
    """bsp-client configuration."""

    client: ClientInfoConfig = field(default_factory=ClientInfoConfig)

    # Seconds before a pending request fails; None waits forever
    request_timeout: float | None = None

    # Send exit as a notification rather than an id-carrying request
    exit_as_notification: bool = False

    shutdown: ShutdownConfig = field(default_factory=ShutdownConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def find_config_file(root: Path | None = None) -> Path | None:
    """Return the first default config file present in root (default: cwd)."""
    base = root if root is not None else Path.cwd()
    for name in CONFIG_FILE_NAMES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def load_config(config_path: Path | None = None, root: Path | None = None) -> ClientConfig:
    """Load configuration from an explicit file or the default locations."""
    if config_path is None:
        config_path = find_config_file(root)

    if config_path is None:
        return ClientConfig()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    return _load_yaml_config(config_path)


def _load_yaml_config(path: Path) -> ClientConfig:
    """Load config from YAML file."""
    try:
        with open(path, encoding="utf-8") as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    return config_from_dict(data)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(section).__name__}")
    return section


def _number(section: dict[str, Any], key: str, default: float | None, where: str) -> float | None:
    value = section.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"{where}{key} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}{key} must be a number, got {value!r}") from e


def config_from_dict(data: dict[str, Any]) -> ClientConfig:
    """Build a ClientConfig from parsed YAML, filling in defaults.

    Raises:
        ConfigError: If a section is not a mapping or a value has the wrong type.
    """
    client_data = _section(data, "client")
    defaults = ClientInfoConfig()
    language_ids = client_data.get("language_ids", defaults.language_ids)
    if isinstance(language_ids, str):
        language_ids = [language_ids]
    if not isinstance(language_ids, list):
        raise ConfigError(f"client.language_ids must be a list, got {language_ids!r}")

    client = ClientInfoConfig(
        display_name=str(client_data.get("display_name", defaults.display_name)),
        version=str(client_data.get("version", defaults.version)),
        bsp_version=str(client_data.get("bsp_version", defaults.bsp_version)),
        language_ids=[str(lang) for lang in language_ids],
    )

    shutdown_data = _section(data, "shutdown")
    shutdown = ShutdownConfig(
        interrupt_timeout=_number(shutdown_data, "interrupt_timeout", 2.0, "shutdown."),
        terminate_timeout=_number(shutdown_data, "terminate_timeout", 3.0, "shutdown."),
    )

    logging_data = _section(data, "logging")
    verbose = logging_data.get("verbose")
    if verbose is not None and (isinstance(verbose, bool) or not isinstance(verbose, int)):
        raise ConfigError(f"logging.verbose must be an integer, got {verbose!r}")
    log_file = logging_data.get("file")
    logging_config = LoggingConfig(
        level=str(logging_data.get("level", "INFO")),
        verbose=verbose,
        file=str(log_file) if log_file is not None else None,
    )

    request_timeout = _number(data, "request_timeout", None, "")
    if request_timeout is not None and request_timeout <= 0:
        raise ConfigError(f"request_timeout must be positive, got {request_timeout}")

    return ClientConfig(
        client=client,
        request_timeout=request_timeout,
        exit_as_notification=bool(data.get("exit_as_notification", False)),
        shutdown=shutdown,
        logging=logging_config,
    )
