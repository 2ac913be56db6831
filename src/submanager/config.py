"""Configuration loading for submanager."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import tomli

logger = logging.getLogger("submanager.config")


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"           # INFO or DEBUG
    output: str = "console"       # console, file, or both
    file: str = ""                # log file path
    rotate: bool = True           # enable rotation
    max_size_mb: int = 10         # max file size before rotation
    backup_count: int = 5         # rotated files to keep


@dataclass
class BarkConfig:
    """Bark push delivery options shared by all users."""
    title: str = "Subscription Manager"
    sound: str = "bell"
    group: str = "Subscription Manager"
    icon: str = "https://i.ibb.co/Z6f84xFY/icon.png"
    timeout: float = 10.0  # seconds per push request


@dataclass
class SchedulerConfig:
    cron: str = "0 * * * *"  # daemon mode tick schedule
    max_workers: int = 4  # users processed concurrently per tick
    history_retention_days: int = 30  # prune history entries older than this
    max_renewal_iterations: int = 5000  # resolver cap before flagging bad data


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path("data/submanager.db"))
    timezone: str = "UTC"  # calendar day boundary for "today"
    bark: BarkConfig = field(default_factory=BarkConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _candidate_paths() -> list[Path]:
    candidates = []
    env_path = os.environ.get("SUBMANAGER_CONFIG")
    if env_path:
        candidates.append(Path(env_path))
    candidates += [
        Path("config/config.toml"),
        Path.home() / ".config/submanager/config.toml",
        Path("/etc/submanager/config.toml"),
    ]
    return candidates


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from TOML file."""
    if config_path is None:
        for candidate in _candidate_paths():
            if candidate.exists():
                config_path = candidate
                break

    config = Config()

    if config_path is not None and config_path.exists():
        with open(config_path, "rb") as f:
            data = tomli.load(f)
        logger.debug("Loaded config from %s", config_path)

        if "db_path" in data:
            config.db_path = Path(data["db_path"])

        if "timezone" in data:
            config.timezone = data["timezone"]

        if "bark" in data:
            b = data["bark"]
            config.bark = BarkConfig(
                title=b.get("title", "Subscription Manager"),
                sound=b.get("sound", "bell"),
                group=b.get("group", "Subscription Manager"),
                icon=b.get("icon", "https://i.ibb.co/Z6f84xFY/icon.png"),
                timeout=b.get("timeout", 10.0),
            )

        if "scheduler" in data:
            sched = data["scheduler"]
            config.scheduler = SchedulerConfig(
                cron=sched.get("cron", "0 * * * *"),
                max_workers=sched.get("max_workers", 4),
                history_retention_days=sched.get("history_retention_days", 30),
                max_renewal_iterations=sched.get("max_renewal_iterations", 5000),
            )

        if "logging" in data:
            log = data["logging"]
            config.logging = LoggingConfig(
                level=log.get("level", "INFO"),
                output=log.get("output", "console"),
                file=log.get("file", ""),
                rotate=log.get("rotate", True),
                max_size_mb=log.get("max_size_mb", 10),
                backup_count=log.get("backup_count", 5),
            )

    # Environment variable overrides (allows EnvironmentFile= usage)
    db_path = os.environ.get("SUBMANAGER_DB_PATH")
    if db_path:
        config.db_path = Path(db_path)
    timezone = os.environ.get("SUBMANAGER_TIMEZONE")
    if timezone:
        config.timezone = timezone

    return config
