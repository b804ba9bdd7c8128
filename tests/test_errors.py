"""
Tests for publish_engine.errors module.

Tests error codes, hints and the JSON shape handed to callers.
"""

import pytest

from publish_engine.errors import (
    ERROR_HINTS,
    AutomationFailedError,
    ErrorCode,
    LoginRequiredError,
    ProfileBusyError,
    PublishError,
    TargetPageBlockedError,
    TargetPageNotReadyError,
    hint_for,
)


class TestHints:
    """Test hint lookup."""

    def test_every_code_has_hint(self):
        """Should define a non-empty hint for every error code."""
        for code in ErrorCode:
            assert ERROR_HINTS[code].strip()

    def test_hint_for_string_code(self):
        """Should accept the string value of a code."""
        assert hint_for("LOGIN_REQUIRED") == ERROR_HINTS[ErrorCode.LOGIN_REQUIRED]

    def test_unknown_code_gets_generic_hint(self):
        """Should fall back to the generic failure hint."""
        assert hint_for("SOMETHING_ELSE") == ERROR_HINTS[ErrorCode.AUTOMATION_FAILED]


class TestPublishError:
    """Test PublishError hierarchy."""

    def test_str_includes_code(self):
        """Should render as 'CODE: message'."""
        error = ProfileBusyError("profile in use", {"pid": 123})

        assert str(error) == "PROFILE_BUSY: profile in use"
        assert error.details == {"pid": 123}

    def test_hint_follows_code(self):
        """Should expose the hint of its own code."""
        assert LoginRequiredError("x").hint == ERROR_HINTS[ErrorCode.LOGIN_REQUIRED]

    def test_blocked_is_not_ready(self):
        """Should let callers catch a blocked page as not-ready."""
        with pytest.raises(TargetPageNotReadyError):
            raise TargetPageBlockedError("rate limited")

    def test_blocked_keeps_own_code(self):
        """Should keep the blocked code despite the shared base class."""
        assert TargetPageBlockedError("x").code == ErrorCode.TARGET_PAGE_BLOCKED

    def test_to_json_dict(self):
        """Should serialize code, message, hint and details."""
        data = ProfileBusyError("busy", {"pid": 1}).to_json_dict()

        assert data["code"] == "PROFILE_BUSY"
        assert data["message"] == "busy"
        assert data["hint"] == ERROR_HINTS[ErrorCode.PROFILE_BUSY]
        assert data["details"] == {"pid": 1}

    def test_base_is_generic_failure(self):
        """Should default to the generic failure code."""
        assert PublishError("x").code == ErrorCode.AUTOMATION_FAILED


class TestAutomationFailedWrap:
    """Test AutomationFailedError.wrap."""

    def test_wraps_with_stage(self):
        """Should keep the stage and exception type."""
        error = AutomationFailedError.wrap(RuntimeError("boom"), "upload")

        assert error.message == "upload: boom"
        assert error.details == {"stage": "upload", "exception": "RuntimeError"}

    def test_wraps_without_stage(self):
        """Should use the bare exception text without a stage."""
        assert AutomationFailedError.wrap(ValueError("bad")).message == "bad"
