"""Configuration loading for submanager.config module."""

from pathlib import Path

from submanager.config import (
    BarkConfig,
    Config,
    LoggingConfig,
    SchedulerConfig,
    load_config,
)


class TestConfigDefaults:
    def test_default_db_path(self):
        assert Config().db_path == Path("data/submanager.db")

    def test_default_timezone(self):
        assert Config().timezone == "UTC"

    def test_default_bark_config(self):
        bark = BarkConfig()
        assert bark.title == "Subscription Manager"
        assert bark.sound == "bell"
        assert bark.group == "Subscription Manager"
        assert bark.timeout == 10.0

    def test_default_scheduler_config(self):
        sched = SchedulerConfig()
        assert sched.cron == "0 * * * *"
        assert sched.max_workers == 4
        assert sched.history_retention_days == 30
        assert sched.max_renewal_iterations == 5000

    def test_default_logging_config(self):
        log = LoggingConfig()
        assert log.level == "INFO"
        assert log.output == "console"


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "nope.toml") == Config()

    def test_full_file(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            'db_path = "/var/lib/submanager/subs.db"\n'
            'timezone = "Asia/Shanghai"\n'
            "\n"
            "[bark]\n"
            'title = "Renewals"\n'
            'sound = "minuet"\n'
            "timeout = 5.0\n"
            "\n"
            "[scheduler]\n"
            'cron = "0 9 * * *"\n'
            "max_workers = 8\n"
            "history_retention_days = 60\n"
            "\n"
            "[logging]\n"
            'level = "DEBUG"\n'
            'output = "both"\n'
            'file = "/var/log/submanager.log"\n'
        )

        config = load_config(path)

        assert config.db_path == Path("/var/lib/submanager/subs.db")
        assert config.timezone == "Asia/Shanghai"
        assert config.bark.title == "Renewals"
        assert config.bark.sound == "minuet"
        assert config.bark.group == "Subscription Manager"
        assert config.bark.timeout == 5.0
        assert config.scheduler.cron == "0 9 * * *"
        assert config.scheduler.max_workers == 8
        assert config.scheduler.history_retention_days == 60
        assert config.scheduler.max_renewal_iterations == 5000
        assert config.logging.level == "DEBUG"
        assert config.logging.output == "both"
        assert config.logging.file == "/var/log/submanager.log"

    def test_partial_section_keeps_other_defaults(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[scheduler]\nmax_workers = 1\n")

        config = load_config(path)

        assert config.scheduler.max_workers == 1
        assert config.scheduler.cron == "0 * * * *"
        assert config.bark == BarkConfig()

    def test_config_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.toml"
        path.write_text('timezone = "Europe/Berlin"\n')
        monkeypatch.setenv("SUBMANAGER_CONFIG", str(path))

        assert load_config().timezone == "Europe/Berlin"


class TestEnvOverrides:
    def test_db_path_override(self, tmp_path, monkeypatch):
        path = tmp_path / "config.toml"
        path.write_text('db_path = "from-file.db"\n')
        monkeypatch.setenv("SUBMANAGER_DB_PATH", "/tmp/from-env.db")

        assert load_config(path).db_path == Path("/tmp/from-env.db")

    def test_timezone_override_without_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SUBMANAGER_TIMEZONE", "America/New_York")

        assert load_config(tmp_path / "nope.toml").timezone == "America/New_York"
