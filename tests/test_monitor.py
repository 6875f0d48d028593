"""Tests for configuration loading and startup failures"""

import pytest

from netlog_monitor.monitor import load_config, run


@pytest.mark.unit
class TestConfig:
    """Tests for the settings layer"""

    def test_reads_settings_file(self, settings_file, db_path):
        config = load_config(str(settings_file))

        assert config.general.get("db_path") == db_path
        assert config.general.get("backend") == "sqlite"
        assert config.http.get("address") == "http://monitor.lan"
        assert config.mail.get("interval") == 0

    def test_environment_overrides(self, settings_file, monkeypatch):
        monkeypatch.setenv("NETLOG_HTTP__port", "9090")

        config = load_config(str(settings_file))

        assert config.http.get("port") == 9090
        assert config.http.get("host") == "127.0.0.1"


@pytest.mark.unit
class TestStartupFailures:
    """The monitor refuses to start without its log file or its database"""

    def test_missing_log_file(self, settings_file, tmp_path):
        config = load_config(str(settings_file))

        assert run(config, str(tmp_path / "missing.log")) == 1

    def test_unusable_database(self, settings_file, tmp_path, monkeypatch):
        log = tmp_path / "syslog"
        log.write_text("")
        monkeypatch.setenv("NETLOG_GENERAL__db_path", str(tmp_path / "no" / "such" / "dir" / "db"))

        assert run(load_config(str(settings_file)), str(log)) == 1

    def test_unsupported_backend(self, settings_file, tmp_path, monkeypatch):
        log = tmp_path / "syslog"
        log.write_text("")
        monkeypatch.setenv("NETLOG_GENERAL__backend", "floppy")

        assert run(load_config(str(settings_file)), str(log)) == 1
