"""
Configuration loading from config.yaml.

Uses typed dataclasses throughout so the rest of the app gets IDE
completion and type-checker support without touching raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    reload: bool = False


@dataclass
class DatabaseConfig:
    path: str = "./data/eventflow.db"


@dataclass
class PerformanceConfig:
    max_winners: int = 10        # display cap shown to viewers
    scoring_enabled: bool = True


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str = "./logs/eventflow.log"


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def database_path(self) -> Path:
        return Path(self.database.path)

    @property
    def log_file_path(self) -> Path:
        return Path(self.logging.file)


def load_config(path: str | Path = "config.yaml") -> Config:
    """
    Load and validate config.yaml.

    Raises:
        FileNotFoundError: config.yaml is missing.
        ValueError: fields are present but invalid.
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {cfg_path.resolve()}\n"
            "Copy config.example.yaml to config.yaml and adjust it."
        )

    with cfg_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    try:
        server_raw = raw.get("server") or {}
        db_raw = raw.get("database") or {}
        perf_raw = raw.get("performance") or {}
        log_raw = raw.get("logging") or {}

        config = Config(
            server=ServerConfig(
                host=str(server_raw.get("host", "0.0.0.0")),
                port=int(server_raw.get("port", 3000)),
                reload=bool(server_raw.get("reload", False)),
            ),
            database=DatabaseConfig(
                path=str(db_raw.get("path", "./data/eventflow.db")),
            ),
            performance=PerformanceConfig(
                max_winners=int(perf_raw.get("max_winners", 10)),
                scoring_enabled=bool(perf_raw.get("scoring_enabled", True)),
            ),
            logging=LoggingConfig(
                level=str(log_raw.get("level", "INFO")).upper(),
                file=str(log_raw.get("file", "./logs/eventflow.log")),
            ),
        )
        _validate(config)
        return config

    except (AttributeError, TypeError) as exc:
        raise ValueError(f"Invalid config.yaml structure: {exc}") from exc


def _validate(config: Config) -> None:
    if not 0 < config.server.port < 65536:
        raise ValueError(f"server.port must be in 1..65535, got {config.server.port}")
    if config.performance.max_winners < 1:
        raise ValueError("performance.max_winners must be >= 1")
    if config.logging.level not in _LOG_LEVELS:
        raise ValueError(
            f"logging.level must be one of {_LOG_LEVELS}, got '{config.logging.level}'"
        )
    if not config.database.path:
        raise ValueError("database.path must not be empty")
