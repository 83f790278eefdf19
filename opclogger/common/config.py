"""
Configuration Dataclasses

Type-safe configuration structures for the data logger.
Loaded once at startup from a YAML file, then environment overrides.
Immutable for the lifetime of the process.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

DEFAULT_ENDPOINT = "opc.tcp://localhost:4841/my/new/server/"

# Server_ServerStatus_CurrentTime: always readable, cheap to read
DEFAULT_DIAGNOSTIC_NODE = "ns=0;i=2258"


@dataclass(frozen=True)
class PointConfig:
    """A configured data point; list position defines CSV column order"""
    node_id: str
    name: str


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for session acquisition"""
    max_retry: int = 5
    initial_delay_ms: int = 2000
    max_delay_ms: int = 10000

    def delay_ms(self, retry_index: int) -> int:
        """Delay before retry number retry_index (0-based), capped at max_delay_ms."""
        return min(self.initial_delay_ms * (2 ** retry_index), self.max_delay_ms)


@dataclass(frozen=True)
class KeepAliveSettings:
    """Keep-alive ping configuration"""
    interval_s: float = 15.0
    diagnostic_node: str = DEFAULT_DIAGNOSTIC_NODE
    reconnect_after_failures: int = 0  # 0 = never reconnect from keep-alive
    enabled: bool = True


@dataclass(frozen=True)
class SessionSettings:
    """Remote session limits"""
    timeout_s: float = 60.0  # Idle timeout requested from the server
    read_timeout_s: float = 10.0


@dataclass(frozen=True)
class HealthSettings:
    """Local HTTP health endpoint"""
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8086


def default_points() -> list[PointConfig]:
    return [PointConfig(node_id=f"ns=1;s=Tag{i}", name=f"Tag{i}") for i in range(1, 11)]


@dataclass(frozen=True)
class LoggerConfig:
    """Complete data logger configuration"""
    endpoint: str = DEFAULT_ENDPOINT
    log_dir: Path = Path(".")
    log_interval_s: float = 60.0
    logging_enabled: bool = True
    points: list[PointConfig] = field(default_factory=default_points)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    keep_alive: KeepAliveSettings = field(default_factory=KeepAliveSettings)
    session: SessionSettings = field(default_factory=SessionSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    shutdown_grace_s: float = 10.0

    @property
    def point_ids(self) -> list[str]:
        return [p.node_id for p in self.points]

    @property
    def point_names(self) -> list[str]:
        return [p.name for p in self.points]


def _point_from_dict(data: Any) -> PointConfig:
    """Accept either a bare node id string or {node_id, name}"""
    if isinstance(data, str):
        return PointConfig(node_id=data, name=_default_point_name(data))
    node_id = data["node_id"]
    return PointConfig(node_id=node_id, name=data.get("name") or _default_point_name(node_id))


def _default_point_name(node_id: str) -> str:
    # "ns=1;s=Tag1" -> "Tag1"
    return node_id.rsplit("=", 1)[-1] if "=" in node_id else node_id


def _number(data: dict, key: str, default: float, kind: type = float, section: str = "") -> Any:
    """Read a numeric setting, naming the offending key if it is not a number"""
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"{section}{key} must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"{section}{key} must be a number, got {value!r}")


def load_logger_config(data: dict) -> LoggerConfig:
    """Load LoggerConfig from dictionary (e.g., parsed YAML)"""
    defaults = LoggerConfig()

    retry_data = data.get("retry", {}) or {}
    retry = RetryPolicy(
        max_retry=_number(retry_data, "max_retry", 5, int, "retry."),
        initial_delay_ms=_number(retry_data, "initial_delay_ms", 2000, int, "retry."),
        max_delay_ms=_number(retry_data, "max_delay_ms", 10000, int, "retry."),
    )

    keep_alive_data = data.get("keep_alive", {}) or {}
    keep_alive = KeepAliveSettings(
        interval_s=_number(keep_alive_data, "interval_s", 15.0, section="keep_alive."),
        diagnostic_node=keep_alive_data.get("diagnostic_node", DEFAULT_DIAGNOSTIC_NODE),
        reconnect_after_failures=_number(
            keep_alive_data, "reconnect_after_failures", 0, int, "keep_alive."
        ),
        enabled=keep_alive_data.get("enabled", True),
    )

    session_data = data.get("session", {}) or {}
    session = SessionSettings(
        timeout_s=_number(session_data, "timeout_s", 60.0, section="session."),
        read_timeout_s=_number(session_data, "read_timeout_s", 10.0, section="session."),
    )

    health_data = data.get("health", {}) or {}
    health = HealthSettings(
        enabled=health_data.get("enabled", True),
        host=health_data.get("host", "127.0.0.1"),
        port=_number(health_data, "port", 8086, int, "health."),
    )

    # An explicit empty list is kept so validation can reject it
    points_data = data.get("points")
    if points_data is None:
        points = default_points()
    elif isinstance(points_data, list):
        points = [_point_from_dict(p) for p in points_data]
    else:
        raise ValueError(f"points must be a list, got {type(points_data).__name__}")

    return LoggerConfig(
        endpoint=data.get("endpoint", defaults.endpoint),
        log_dir=Path(data.get("log_dir", defaults.log_dir)),
        log_interval_s=_number(data, "log_interval_s", defaults.log_interval_s),
        logging_enabled=data.get("logging_enabled", True),
        points=points,
        retry=retry,
        keep_alive=keep_alive,
        session=session,
        health=health,
        shutdown_grace_s=_number(data, "shutdown_grace_s", defaults.shutdown_grace_s),
    )


def apply_env_overrides(config: LoggerConfig, environ: dict | None = None) -> LoggerConfig:
    """
    Apply OPCLOGGER_* environment overrides on top of file configuration.

    Supported: OPCLOGGER_ENDPOINT, OPCLOGGER_LOG_DIR, OPCLOGGER_LOG_INTERVAL,
    OPCLOGGER_KEEP_ALIVE_INTERVAL.
    """
    env = os.environ if environ is None else environ

    if env.get("OPCLOGGER_ENDPOINT"):
        config = replace(config, endpoint=env["OPCLOGGER_ENDPOINT"])
    if env.get("OPCLOGGER_LOG_DIR"):
        config = replace(config, log_dir=Path(env["OPCLOGGER_LOG_DIR"]))

    try:
        if env.get("OPCLOGGER_LOG_INTERVAL"):
            config = replace(config, log_interval_s=float(env["OPCLOGGER_LOG_INTERVAL"]))
        if env.get("OPCLOGGER_KEEP_ALIVE_INTERVAL"):
            config = replace(
                config,
                keep_alive=replace(
                    config.keep_alive,
                    interval_s=float(env["OPCLOGGER_KEEP_ALIVE_INTERVAL"]),
                ),
            )
    except ValueError as e:
        raise ConfigError(f"Invalid interval override: {e}")

    return config


def validate_logger_config(config: LoggerConfig) -> list[str]:
    """
    Validate configuration.

    Returns:
        List of error messages (empty when valid)
    """
    errors: list[str] = []

    if not config.endpoint:
        errors.append("Missing endpoint address")

    if config.log_interval_s <= 0:
        errors.append("log_interval_s must be positive")
    if config.keep_alive.interval_s <= 0:
        errors.append("keep_alive.interval_s must be positive")

    # The server drops the session if it sees nothing for timeout_s
    if config.keep_alive.interval_s >= config.session.timeout_s:
        errors.append(
            f"keep_alive.interval_s ({config.keep_alive.interval_s}) must be smaller "
            f"than session.timeout_s ({config.session.timeout_s})"
        )

    read_timeout = config.session.read_timeout_s
    if read_timeout <= 0:
        errors.append("session.read_timeout_s must be positive")
    if read_timeout >= config.log_interval_s:
        errors.append(
            f"session.read_timeout_s ({read_timeout}) must be smaller "
            f"than log_interval_s ({config.log_interval_s})"
        )
    if read_timeout >= config.keep_alive.interval_s:
        errors.append(
            f"session.read_timeout_s ({read_timeout}) must be smaller "
            f"than keep_alive.interval_s ({config.keep_alive.interval_s})"
        )

    if not config.points:
        errors.append("No points configured")
    node_ids = config.point_ids
    if len(set(node_ids)) != len(node_ids):
        errors.append("Duplicate point node ids")

    retry = config.retry
    if retry.max_retry < 1:
        errors.append("retry.max_retry must be at least 1")
    if retry.initial_delay_ms <= 0:
        errors.append("retry.initial_delay_ms must be positive")
    if retry.max_delay_ms < retry.initial_delay_ms:
        errors.append("retry.max_delay_ms must not be smaller than retry.initial_delay_ms")

    if config.keep_alive.reconnect_after_failures < 0:
        errors.append("keep_alive.reconnect_after_failures must be >= 0")
    if config.shutdown_grace_s < 0:
        errors.append("shutdown_grace_s must be >= 0")

    return errors


def load_config_file(config_path: str | Path, environ: dict | None = None) -> LoggerConfig:
    """
    Load, override and validate configuration from a YAML file.

    Raises:
        ConfigError: file missing, unparsable or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {config_path} must be a mapping")

    try:
        config = load_logger_config(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Malformed configuration: {e}", [str(e)])

    config = apply_env_overrides(config, environ)

    errors = validate_logger_config(config)
    if errors:
        raise ConfigError(f"{len(errors)} invalid setting(s): {'; '.join(errors)}", errors)

    return config
