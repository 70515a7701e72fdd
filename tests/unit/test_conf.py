"""Unit tests for the Conf model and pg_settings rows."""

import pytest

from pgfleet.core.exceptions import ValidationError
from pgfleet.pgconf.conf import Conf, ConfigSetting, ConfSettings


class TestConfRendering:
    """Tests for Conf rendering."""

    def test_as_args_sorted_and_quoted(self):
        """Args should be sorted with space-containing values quoted."""
        conf = Conf({"port": "5432", "application_name": "my app", "empty": ""})
        assert conf.as_args() == ["--application_name='my app'", "--port=5432"]

    @pytest.mark.parametrize("value", ["a\tb", "line\nbreak", "x\r"])
    def test_as_args_quotes_any_whitespace(self, value):
        """Tabs and line breaks should be quoted just like spaces."""
        assert Conf({"k": value}).as_args() == [f"--k='{value}'"]

    def test_as_file(self):
        """File rendering should be sorted key = value lines without empties."""
        conf = Conf({"work_mem": "4MB", "max_connections": "100", "unset": ""})
        assert conf.as_file() == "max_connections = 100\nwork_mem = 4MB\n"

    def test_empty_conf_renders_nothing(self):
        """An empty Conf should render to nothing."""
        assert Conf().as_args() == []
        assert Conf().as_file() == ""

    def test_merge_from_returns_new(self):
        """merge_from should not modify the receiver."""
        base = Conf({"a": "1", "b": "2"})
        merged = base.merge_from({"b": "3", "c": "4"})
        assert merged == {"a": "1", "b": "3", "c": "4"}
        assert base == {"a": "1", "b": "2"}
        assert isinstance(merged, Conf)


class TestConfViews:
    """Tests for derived Conf views."""

    @pytest.fixture
    def conf(self) -> Conf:
        return Conf({
            "shared_buffers": "1GB",
            "work_mem": "4MB",
            "port": "5432",
            "listen_addresses": "*",
            "archive_log": "on",
            "lc_collate": "en_US.UTF-8",
            "lc_ctype": "en_US.UTF-8",
            "server_encoding": "UTF8",
            "search_path": "public",
        })

    def test_core_excludes_tuning_startup_and_log(self, conf):
        """core should drop performance, startup and *_log parameters."""
        core = conf.core()
        assert "shared_buffers" not in core
        assert "work_mem" not in core
        assert "port" not in core
        assert "archive_log" not in core
        assert core["search_path"] == "public"
        assert "shared_buffers" in conf

    def test_for_initdb(self, conf):
        """for_initdb should keep locales and rename server_encoding."""
        initdb = conf.for_initdb()
        assert initdb == {
            "lc_collate": "en_US.UTF-8",
            "lc_ctype": "en_US.UTF-8",
            "encoding": "UTF8",
        }
        assert initdb.as_initdb_args() == [
            "--encoding=UTF8",
            "--lc-collate=en_US.UTF-8",
            "--lc-ctype=en_US.UTF-8",
        ]

    def test_for_temp_server_blocks_tcp(self, conf):
        """for_temp_server should keep startup params and clear listen_addresses."""
        temp = conf.for_temp_server()
        assert temp["listen_addresses"] == ""
        assert temp["shared_buffers"] == "1GB"
        assert temp["port"] == "5432"
        assert "work_mem" not in temp
        assert "--listen_addresses=" not in " ".join(temp.as_args())
        assert conf["listen_addresses"] == "*"


class TestConfigSetting:
    """Tests for ConfigSetting."""

    def test_get_int_with_units(self):
        """Memory units should scale the value to bytes."""
        assert ConfigSetting("shared_buffers", "16384", unit="8kB").get_int() == 16384 * 8192
        assert ConfigSetting("work_mem", "4096", unit="kB").get_int() == 4096 * 1024
        assert ConfigSetting("max_connections", "100").get_int() == 100

    def test_get_int_invalid(self):
        """Non-integer settings should raise ValidationError."""
        with pytest.raises(ValidationError):
            ConfigSetting("x", "abc").get_int()

    def test_get_bool(self):
        """Boolean settings should parse; empty means False."""
        assert ConfigSetting("fsync", "on").get_bool() is True
        assert ConfigSetting("fsync", "No").get_bool() is False
        assert ConfigSetting("fsync", "").get_bool() is False
        with pytest.raises(ValidationError):
            ConfigSetting("fsync", "sometimes").get_bool()

    def test_str_uses_largest_exact_unit(self):
        """Memory settings should render in the largest exact unit."""
        assert str(ConfigSetting("shared_buffers", "16384", unit="8kB")) == "128MB"
        assert str(ConfigSetting("x", "1048576", unit="kB")) == "1GB"
        assert str(ConfigSetting("x", "100", unit="kB")) == "100kB"
        assert str(ConfigSetting("x", "on")) == "on"

    def test_from_row_ignores_unknown_columns(self):
        """Unknown columns and NULL enumvals should be tolerated."""
        setting = ConfigSetting.from_row({
            "name": "work_mem",
            "setting": "4096",
            "unit": "kB",
            "enumvals": None,
            "extra_column": 1,
        })
        assert setting.name == "work_mem"
        assert setting.enumvals == []
        assert setting.is_bytes

    def test_settings_to_conf(self):
        """ConfSettings.to_conf should skip unset settings."""
        settings = ConfSettings.from_rows([
            {"name": "work_mem", "setting": "4096", "unit": "kB"},
            {"name": "search_path", "setting": ""},
            {"name": "port", "setting": "5432"},
        ])
        assert settings.to_conf() == {"work_mem": "4MB", "port": "5432"}
        assert set(settings.as_map()) == {"work_mem", "search_path", "port"}
