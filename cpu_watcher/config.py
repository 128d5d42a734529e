"""Configuration management for CPU Watcher."""

import copy
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog
import yaml

from cpu_watcher.notifiers.telegram import (
    DEFAULT_TIMEOUT,
    build_telegram_url,
    with_timeouts,
)

# Configure initial logging with WARNING level
logging.basicConfig(level=logging.WARNING)
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

CONFIG_ENV_VAR = "CPU_WATCHER_CONFIG"

DEFAULT_CONFIG = {
    "watcher": {
        "threshold": 50.0,  # Alert when a process uses >= 50% CPU
        "interval": 1.0,  # Sample every second
        "cooldown": 600,  # One alert per pid per 10 minutes
        "gc_factor": 5,  # Forget pids not alerted for 5 cooldowns
        "notify_timeout": DEFAULT_TIMEOUT,  # Per-delivery timeout in seconds
    },
    "notifications": [],  # Telegram credentials usually come from the environment
    "logging": {
        "level": "info",
        "file": "stdout",
    },
    "paths": {},
}

# Environment variable -> (section, key, parser)
ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "CPU_THRESHOLD": ("watcher", "threshold", float),
    "CHECK_INTERVAL": ("watcher", "interval", float),
    "COOLDOWN_SECONDS": ("watcher", "cooldown", int),
}

SECRET_KEYS = {"token", "uri"}


class ConfigError(Exception):
    """Raised when the configuration cannot be used to start the watcher."""


@dataclass(frozen=True)
class WatcherConfig:
    """Validated settings, read once at startup."""

    destinations: list[str]
    threshold: float = 50.0
    check_interval: float = 1.0
    cooldown_seconds: int = 600
    gc_factor: int = 5
    log_level: str = "INFO"
    log_file: str = "stdout"
    paths: dict = field(default_factory=dict)


def _parse(value: Any, parser: Callable[[str], Any], default: Any, name: str) -> Any:
    """Parse a loosely typed value, falling back to the default."""
    try:
        return parser(str(value).strip())
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid value for {name}, using default",
            value=value,
            default=default,
        )
        return default


def mask_secrets(config: Any) -> Any:
    """Return a copy of the config with credentials hidden."""
    if isinstance(config, dict):
        return {
            key: "***" if key in SECRET_KEYS and value else mask_secrets(value)
            for key, value in config.items()
        }
    if isinstance(config, list):
        return [mask_secrets(item) for item in config]
    return config


class ConfigManager:
    """Manages application configuration."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        environ: Optional[dict[str, str]] = None,
    ):
        """Initialize configuration manager.

        Args:
            config_path: Path to a YAML configuration file
            environ: Environment mapping, defaults to os.environ
        """
        self.environ = os.environ if environ is None else environ
        self.config_path = config_path or self.environ.get(CONFIG_ENV_VAR)
        self.config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path:
            self.load_config()
        self._apply_environment()

    def load_config(self) -> dict:
        """Load configuration from file."""
        path = os.path.expanduser(self.config_path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                file_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load configuration from {path}: {e}") from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ConfigError(f"Configuration in {path} must be a mapping")
            self._merge_config(self.config, file_config)

        logger.debug("Configuration loaded", config=mask_secrets(self.config))
        return self.config

    def _merge_config(self, base: dict, override: dict) -> None:
        """Recursively merge override config into base config.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def _apply_environment(self) -> None:
        """Let environment variables override the file and defaults."""
        for env_name, (section, key, parser) in ENV_OVERRIDES.items():
            raw = self.environ.get(env_name)
            if raw is None:
                continue
            default = DEFAULT_CONFIG[section][key]
            self.config[section][key] = _parse(raw, parser, default, env_name)

        token = self.environ.get("TELEGRAM_BOT_TOKEN")
        chat_id = self.environ.get("TELEGRAM_CHAT_ID")
        if token or chat_id:
            self.config["notifications"] = [
                {"type": "telegram", "token": token, "chat_id": chat_id},
                *[
                    n
                    for n in self.config.get("notifications") or []
                    if isinstance(n, dict) and n.get("type") != "telegram"
                ],
            ]

        env_log_level = self.environ.get("LOGLEVEL", "")
        if env_log_level:
            self.config["logging"]["level"] = env_log_level

    def _destinations(self, timeout: float) -> list[str]:
        notifications = self.config.get("notifications") or []
        if not isinstance(notifications, list):
            raise ConfigError("Notifications must be a list")

        urls = []
        for notification in notifications:
            if not isinstance(notification, dict):
                raise ConfigError(f"Invalid notification entry: {notification!r}")
            if not notification.get("enabled", True):
                continue

            notification_type = notification.get("type", "apprise")
            if notification_type == "telegram":
                token = notification.get("token")
                chat_id = notification.get("chat_id")
                if not token:
                    raise ConfigError("TELEGRAM_BOT_TOKEN must be set")
                if not chat_id:
                    raise ConfigError("TELEGRAM_CHAT_ID must be set")
                urls.append(build_telegram_url(str(token), str(chat_id), timeout))
            elif notification_type == "apprise":
                uri = notification.get("uri")
                if not uri:
                    raise ConfigError("Missing URI for apprise notification")
                urls.append(with_timeouts(str(uri), timeout))
            else:
                raise ConfigError(
                    f"Unsupported notification type: {notification_type}"
                )

        if not urls:
            raise ConfigError(
                "No notification destination configured: "
                "TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set"
            )
        return urls

    def watcher_setting(self, key: str, parser: Callable[[str], Any]) -> Any:
        """Parse one value from the ``watcher`` section.

        Args:
            key: Setting name, e.g. ``threshold``
            parser: Converter such as ``float`` or ``int``

        Returns:
            The parsed value, or the default if it cannot be parsed
        """
        watcher = self.config.get("watcher")
        if not isinstance(watcher, dict):
            raise ConfigError("Watcher configuration must be a dictionary")
        default = DEFAULT_CONFIG["watcher"][key]
        return _parse(watcher.get(key, default), parser, default, key)

    def build(self) -> WatcherConfig:
        """Validate the merged configuration.

        Returns:
            The watcher settings

        Raises:
            ConfigError: If required credentials are missing or values are invalid
        """
        threshold = self.watcher_setting("threshold", float)
        interval = self.watcher_setting("interval", float)
        cooldown = self.watcher_setting("cooldown", int)
        gc_factor = self.watcher_setting("gc_factor", int)
        timeout = self.watcher_setting("notify_timeout", float)

        for name, value in (
            ("CPU threshold", threshold),
            ("Check interval", interval),
            ("Notification timeout", timeout),
        ):
            if not math.isfinite(value):
                raise ConfigError(f"{name} must be a finite number")
        if threshold < 0:
            raise ConfigError("CPU threshold must not be negative")
        if interval <= 0:
            raise ConfigError("Check interval must be positive")
        if cooldown < 0:
            raise ConfigError("Cooldown must not be negative")
        if gc_factor < 1:
            raise ConfigError("gc_factor must be at least 1")
        if timeout <= 0:
            raise ConfigError("Notification timeout must be positive")

        log_config = self.config.get("logging") or {}
        if not isinstance(log_config, dict):
            raise ConfigError("Logging configuration must be a dictionary")
        log_level = str(log_config.get("level", "info")).upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigError(f"Unknown log level: {log_level}")

        return WatcherConfig(
            destinations=self._destinations(timeout),
            threshold=threshold,
            check_interval=interval,
            cooldown_seconds=cooldown,
            gc_factor=gc_factor,
            log_level=log_level,
            log_file=log_config.get("file", "stdout"),
            paths=dict(self.config.get("paths") or {}),
        )

    def get_config(self) -> dict:
        """Get the current configuration.

        Returns:
            The current configuration dictionary
        """
        return self.config
