"""
Runtime settings and the persisted router configuration.

``Settings`` comes from ``HALODESK_*`` environment variables and says where
the router lives and where local files go. ``AppConfig`` (default models)
is stored as pretty-printed JSON in ``<data_dir>/config.json`` and created
with defaults on first use.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .exceptions import ConfigError, require_router_port
from .models import AppConfig

logger = logging.getLogger("halodesk.config")

ENV_PREFIX = "HALODESK_"
DEFAULT_ROUTER_HOST = "127.0.0.1"
DEFAULT_ROUTER_PORT = 7878
DEFAULT_TIMEOUT_SECONDS = 120.0
LOOPBACK_HOSTS = frozenset({"127.0.0.1", "localhost", "::1"})
CONFIG_FILENAME = "config.json"
LOG_FILENAME = "halodesk.log"


def _default_data_dir() -> Path:
    return Path.home() / ".halodesk"


@dataclass
class Settings:
    """Process-wide settings resolved once at startup."""

    router_host: str = DEFAULT_ROUTER_HOST
    router_port: int = DEFAULT_ROUTER_PORT
    data_dir: Path = field(default_factory=_default_data_dir)
    log_level: str = "info"
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.router_host not in LOOPBACK_HOSTS:
            raise ConfigError(
                f"Router host {self.router_host!r} is not a loopback address; "
                f"expected one of {sorted(LOOPBACK_HOSTS)}."
            )
        self.router_port = require_router_port(self.router_port)
        if self.request_timeout <= 0:
            raise ConfigError("Request timeout must be > 0 seconds")
        self.data_dir = Path(self.data_dir).expanduser()

    @property
    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILENAME

    @property
    def log_path(self) -> Path:
        return self.data_dir / LOG_FILENAME

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``HALODESK_*`` variables, using defaults for the rest."""
        env = os.environ if environ is None else environ

        def read(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value and value.strip() else None

        port_raw = read("ROUTER_PORT")
        timeout_raw = read("TIMEOUT")
        try:
            port = int(port_raw) if port_raw else DEFAULT_ROUTER_PORT
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT_SECONDS
        except ValueError as exc:
            raise ConfigError(f"Invalid numeric setting: {exc}") from exc

        data_dir = read("DATA_DIR")
        return cls(
            router_host=read("ROUTER_HOST") or DEFAULT_ROUTER_HOST,
            router_port=port,
            data_dir=Path(data_dir) if data_dir else _default_data_dir(),
            log_level=read("LOG_LEVEL") or "info",
            request_timeout=timeout,
        )


def load_or_init(path: Path) -> AppConfig:
    """Read the app config, writing defaults first if the file does not exist."""
    if not path.exists():
        config = AppConfig()
        save_config(path, config)
        logger.info("[HaloDesk Config] Wrote default config to %s", path)
        return config
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Could not read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return AppConfig.from_dict(data)


def save_config(path: Path, config: AppConfig) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not write config {path}: {exc}") from exc
