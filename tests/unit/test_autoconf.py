"""Unit tests for postgresql.auto.conf handling."""

from datetime import datetime

import pytest

from pgfleet.core.exceptions import ConfFileError
from pgfleet.tuning.autoconf import (
    AutoConfFile,
    conf_literal,
    get_defaults,
    update_auto_conf,
)
from pgfleet.tuning.pgtune import MANAGED_PARAMS, TuningConfig, calculate_optimal_config
from pgfleet.tuning.sysinfo import DBType, SystemInfo
from pgfleet.utils.units import GB


NOW = datetime(2025, 10, 29, 8, 0, 54)

EXISTING = """\
# Do not edit this file manually!
# It will be overwritten by the ALTER SYSTEM command.
shared_buffers = '128MB'
work_mem = 4MB  # set by hand
log_statement = 'ddl'
archive_command = 'wal-g wal-push %p'
"""


@pytest.fixture
def params():
    return calculate_optimal_config(TuningConfig(
        system_info=SystemInfo.from_values(16 * GB, 4),
        max_connections=100,
    ))


class TestParse:
    """Tests for AutoConfFile parsing."""

    def test_parse_text(self):
        """Parameters, inline comments and comment lines should be captured."""
        auto_conf = AutoConfFile.parse_text(EXISTING)

        assert auto_conf.names() == [
            "shared_buffers", "work_mem", "log_statement", "archive_command"
        ]
        assert auto_conf.get("shared_buffers") == "'128MB'"
        assert auto_conf.parameters["work_mem"].comment == "set by hand"
        assert auto_conf.get("archive_command") == "'wal-g wal-push %p'"
        assert len(auto_conf.comments) == 2
        assert auto_conf.get("missing") is None

    def test_hash_inside_quotes_is_not_a_comment(self):
        """A # inside a quoted value belongs to the value."""
        line = "archive_command = 'cp %p /a#b/%f'\n"

        entry = AutoConfFile.parse_text(line).parameters["archive_command"]

        assert entry.value == "'cp %p /a#b/%f'"
        assert entry.comment == ""
        assert entry.render() == line

    def test_escaped_quote_then_comment(self):
        """Doubled quotes stay inside the value; the trailing comment is split off."""
        auto_conf = AutoConfFile.parse_text("log_line_prefix = 'it''s #1'  # prefix\n")

        assert auto_conf.get("log_line_prefix") == "'it''s #1'"
        assert auto_conf.parameters["log_line_prefix"].comment == "prefix"

    def test_missing_file_is_empty(self, tmp_path):
        """A missing file should parse as empty."""
        auto_conf = AutoConfFile.parse(tmp_path / "postgresql.auto.conf")
        assert auto_conf.parameters == {}

    def test_unreadable_path(self, tmp_path):
        """A path that cannot be read should raise ConfFileError."""
        with pytest.raises(ConfFileError):
            AutoConfFile.parse(tmp_path)


class TestRender:
    """Tests for rendering."""

    def test_managed_first_then_others_sorted(self, params):
        """Managed parameters come first, then the rest alphabetically."""
        auto_conf = AutoConfFile.parse_text(EXISTING)
        auto_conf.merge_with_tuned_parameters(params)

        text = auto_conf.render(NOW)

        assert "# Last updated: 2025-10-29 08:00:54" in text
        assert text.index("max_connections = 100") < text.index("shared_buffers = 4GB")
        assert text.index("huge_pages = 'off'") < text.index("# OTHER PARAMETERS")
        assert text.index("archive_command") < text.index("log_statement")
        assert "work_mem = 20164kB  # set by hand\n" in text
        assert "It will be overwritten by the ALTER SYSTEM command" not in text

    def test_no_other_section_when_only_managed(self, params):
        """The OTHER PARAMETERS section is omitted when empty."""
        auto_conf = AutoConfFile()
        auto_conf.merge_with_tuned_parameters(params)
        assert "OTHER PARAMETERS" not in auto_conf.render(NOW)

    def test_enum_values_quoted(self, params):
        """Enum values should be written single-quoted."""
        auto_conf = AutoConfFile()
        auto_conf.merge_with_tuned_parameters(params)
        assert auto_conf.get("wal_level") == "'replica'"
        assert auto_conf.get("shared_buffers") == "4GB"


class TestDefaults:
    """Tests for baseline defaults."""

    def test_conf_literal(self):
        """Numbers and booleans stay bare; everything else is quoted."""
        assert conf_literal("10s") == "10s"
        assert conf_literal("0") == "0"
        assert conf_literal("true") == "true"
        assert conf_literal("off") == "off"
        assert conf_literal("UTC") == "'UTC'"
        assert conf_literal("*") == "'*'"
        assert conf_literal("it's") == "'it''s'"

    def test_apply_defaults_only_adds_missing(self):
        """Existing entries should not be replaced by defaults."""
        auto_conf = AutoConfFile.parse_text("timezone = 'Europe/Berlin'\n")

        added = auto_conf.apply_defaults({"timezone": "UTC", "ssl": "false"})

        assert added == ["ssl"]
        assert auto_conf.get("timezone") == "'Europe/Berlin'"
        assert auto_conf.get("ssl") == "false"

    def test_get_defaults_returns_fresh_dict(self):
        """Callers should be free to modify the returned mapping."""
        first = get_defaults()
        first["timezone"] = "Asia/Tokyo"
        assert get_defaults()["timezone"] == "UTC"
        assert get_defaults()["password_encryption"] == "scram-sha-256"


class TestUpdateAutoConf:
    """Tests for update_auto_conf."""

    def test_preserves_unmanaged(self, tmp_path, params):
        """Unmanaged parameters survive; managed ones take tuned values."""
        path = tmp_path / "postgresql.auto.conf"
        path.write_text(EXISTING)

        update_auto_conf(path, params, NOW)

        reread = AutoConfFile.parse(path)
        assert reread.get("shared_buffers") == "4GB"
        assert reread.get("log_statement") == "'ddl'"
        assert reread.get("archive_command") == "'wal-g wal-push %p'"
        assert (path.stat().st_mode & 0o777) == 0o600
        assert list(tmp_path.iterdir()) == [path]

    def test_creates_missing_file(self, tmp_path, params):
        """A missing file should be created."""
        path = tmp_path / "postgresql.auto.conf"
        auto_conf = update_auto_conf(path, params, NOW)
        assert path.exists()
        assert auto_conf.get("max_connections") == "100"

    def test_idempotent(self, tmp_path, params):
        """Running twice should give identical content."""
        path = tmp_path / "postgresql.auto.conf"
        path.write_text(EXISTING)

        update_auto_conf(path, params, NOW)
        first = path.read_text()
        update_auto_conf(path, params, NOW)

        assert path.read_text() == first

    def test_with_defaults(self, tmp_path, params):
        """Defaults fill gaps without overriding tuned values."""
        path = tmp_path / "postgresql.auto.conf"

        update_auto_conf(path, params, NOW, defaults={**get_defaults(), "work_mem": "1MB"})

        reread = AutoConfFile.parse(path)
        assert reread.get("work_mem") == "20164kB"
        assert reread.get("listen_addresses") == "'*'"
        assert reread.get("log_checkpoints") == "true"

    def test_missing_directory(self, tmp_path, params):
        """Writing into a missing directory should raise ConfFileError."""
        with pytest.raises(ConfFileError):
            update_auto_conf(tmp_path / "nope" / "postgresql.auto.conf", params, NOW)

    def test_round_trip_every_managed_and_unmanaged_entry(self, tmp_path):
        """After a write and re-read, managed values match the tuned ones and
        every unmanaged line comes back byte for byte."""
        # Desktop sets max_wal_senders, so every managed parameter has a value
        params = calculate_optimal_config(TuningConfig(
            system_info=SystemInfo.from_values(16 * GB, 4),
            max_connections=20,
            db_type=DBType.DESKTOP,
        ))
        unmanaged_lines = [
            "archive_command = 'cp %p /mnt/wal#archive/%f'",
            "log_line_prefix = '%m [%p] it''s # not a comment'",
            "log_statement = 'ddl'  # audit schema changes",
            "search_path = '\"$user\", public'",
        ]
        path = tmp_path / "postgresql.auto.conf"
        path.write_text("shared_buffers = '128MB'\n" + "\n".join(unmanaged_lines) + "\n")
        before = AutoConfFile.parse(path)

        update_auto_conf(path, params, NOW)
        reread = AutoConfFile.parse(path)

        expected = params.managed_values(quote_strings=True)
        assert set(expected) == set(MANAGED_PARAMS)
        for name in MANAGED_PARAMS:
            assert reread.get(name) == expected[name]

        written = path.read_text().splitlines()
        for line in unmanaged_lines:
            assert line in written
        for name in ("archive_command", "log_line_prefix", "log_statement", "search_path"):
            assert reread.parameters[name] == before.parameters[name]
