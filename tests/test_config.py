"""
Tests for publish_engine.config module.

Tests environment parsing helpers and default wait budgets.
"""

from publish_engine import config
from publish_engine.config import ScanLimits, Timeouts, _get_bool, _get_float, _get_int


class TestGetInt:
    """Test _get_int helper."""

    def test_first_set_name_wins(self, monkeypatch):
        """Should read the first non-empty variable in order."""
        monkeypatch.delenv("PUBLISH_TEST_A", raising=False)
        monkeypatch.setenv("PUBLISH_TEST_B", "42")

        assert _get_int(["PUBLISH_TEST_A", "PUBLISH_TEST_B"], 7) == 42

    def test_invalid_value_skipped(self, monkeypatch):
        """Should skip values that do not parse."""
        monkeypatch.setenv("PUBLISH_TEST_A", "abc")

        assert _get_int(["PUBLISH_TEST_A"], 7) == 7

    def test_minimum_applied(self, monkeypatch):
        """Should clamp to the minimum."""
        monkeypatch.setenv("PUBLISH_TEST_A", "80")

        assert _get_int(["PUBLISH_TEST_A"], 9300, minimum=1024) == 1024


class TestGetFloat:
    """Test _get_float helper."""

    def test_parses_float(self, monkeypatch):
        """Should parse decimal values."""
        monkeypatch.setenv("PUBLISH_TEST_F", " 2.5 ")

        assert _get_float(["PUBLISH_TEST_F"], 1.0) == 2.5

    def test_fallback_when_unset(self, monkeypatch):
        """Should return the fallback when nothing is set."""
        monkeypatch.delenv("PUBLISH_TEST_F", raising=False)

        assert _get_float(["PUBLISH_TEST_F"], 1.5) == 1.5


class TestGetBool:
    """Test _get_bool helper."""

    def test_truthy_values(self, monkeypatch):
        """Should accept the usual truthy spellings."""
        for value in ("1", "true", "YES", "on"):
            monkeypatch.setenv("PUBLISH_TEST_BOOL", value)
            assert _get_bool("PUBLISH_TEST_BOOL", False) is True

    def test_falsy_and_unset(self, monkeypatch):
        """Should treat other values as false and unset as fallback."""
        monkeypatch.setenv("PUBLISH_TEST_BOOL", "nope")
        assert _get_bool("PUBLISH_TEST_BOOL", True) is False

        monkeypatch.delenv("PUBLISH_TEST_BOOL")
        assert _get_bool("PUBLISH_TEST_BOOL", True) is True


class TestDefaults:
    """Test default budgets."""

    def test_timeouts_follow_module_constants(self):
        """Should derive per-attempt budgets from the module constants."""
        timeouts = Timeouts()

        assert timeouts.poll_interval_s == config.FAST_POLL_INTERVAL_MS / 1000.0
        assert timeouts.slow_signal_s == config.SLOW_SIGNAL_TIMEOUT_S
        assert timeouts.automation_s == config.AUTOMATION_TIMEOUT_S

    def test_scan_limits(self):
        """Should expose traversal bounds."""
        limits = ScanLimits()

        assert limits.max_frame_depth == config.MAX_FRAME_DEPTH
        assert limits.geometry_top_n >= 1

    def test_port_range_is_ordered(self):
        """Should keep the port range non-empty under defaults."""
        assert config.PORT_RANGE_START < config.PORT_RANGE_END
