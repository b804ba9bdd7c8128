"""
Typed failures of the publish engine.

Callers key behaviour off ``PublishError.code``, never off the free-text message.
Each code carries a stable, actionable hint for the presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class ErrorCode(str, Enum):
    PROFILE_BUSY = "PROFILE_BUSY"
    CHROME_NOT_READY = "CHROME_NOT_READY"
    CDP_NO_PAGE = "CDP_NO_PAGE"
    TARGET_PAGE_NOT_FOUND = "TARGET_PAGE_NOT_FOUND"
    TARGET_PAGE_NOT_READY = "TARGET_PAGE_NOT_READY"
    TARGET_PAGE_BLOCKED = "TARGET_PAGE_BLOCKED"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"
    CHOOSER_NOT_OPENED = "CHOOSER_NOT_OPENED"
    UPLOAD_NO_ACTION = "UPLOAD_NO_ACTION"
    UPLOAD_SIGNAL_TIMEOUT = "UPLOAD_SIGNAL_TIMEOUT"
    FIELD_FILL_FAILED = "FIELD_FILL_FAILED"
    AUTOMATION_TIMEOUT = "AUTOMATION_TIMEOUT"
    AUTOMATION_FAILED = "AUTOMATION_FAILED"


ERROR_HINTS: dict[ErrorCode, str] = {
    ErrorCode.PROFILE_BUSY: (
        "Another browser window is using this profile. Close the other window and retry."
    ),
    ErrorCode.CHROME_NOT_READY: (
        "The browser did not expose a debugging endpoint. Check the browser installation "
        "and retry."
    ),
    ErrorCode.CDP_NO_PAGE: (
        "The browser is running but never opened a page. Close the profile window and retry."
    ),
    ErrorCode.TARGET_PAGE_NOT_FOUND: (
        "The upload page could not be opened. Open it manually in the profile window "
        "and retry."
    ),
    ErrorCode.TARGET_PAGE_NOT_READY: (
        "The upload page did not finish loading. Retry later or continue manually."
    ),
    ErrorCode.TARGET_PAGE_BLOCKED: (
        "The destination blocked the upload page (verification or rate limit). "
        "Resolve it in the browser window, then retry later."
    ),
    ErrorCode.LOGIN_REQUIRED: "Complete the login in the browser window, then retry.",
    ErrorCode.CHOOSER_NOT_OPENED: (
        "The file picker never opened. Click the upload button manually and pick the file."
    ),
    ErrorCode.UPLOAD_NO_ACTION: (
        "No upload control was found on the page. Upload the file manually."
    ),
    ErrorCode.UPLOAD_SIGNAL_TIMEOUT: (
        "The file was handed to the page but no upload progress appeared. Check the "
        "browser window; the upload may need a manual retry."
    ),
    ErrorCode.FIELD_FILL_FAILED: (
        "The upload started but title/description could not be filled. Fill them manually."
    ),
    ErrorCode.AUTOMATION_TIMEOUT: (
        "Automation timed out. The upload may still be in progress; continue manually "
        "in the browser window."
    ),
    ErrorCode.AUTOMATION_FAILED: "Unexpected automation failure. Check the logs and retry.",
}


def hint_for(code: ErrorCode | str) -> str:
    """Stable hint for an error code; unknown codes get the generic failure hint."""
    try:
        return ERROR_HINTS[ErrorCode(code)]
    except ValueError:
        return ERROR_HINTS[ErrorCode.AUTOMATION_FAILED]


@dataclass
class PublishError(Exception):
    """
    Known failure class of the engine. ``details`` holds port/URL/diagnostic context.
    """

    message: str
    details: dict[str, Any] = field(default_factory=dict)

    code: ClassVar[ErrorCode] = ErrorCode.AUTOMATION_FAILED

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    @property
    def hint(self) -> str:
        return hint_for(self.code)

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "hint": self.hint,
            "details": self.details,
        }


class ProfileBusyError(PublishError):
    """Another live process holds the profile. Terminal; never retried automatically."""

    code = ErrorCode.PROFILE_BUSY


class ChromeNotReadyError(PublishError):
    code = ErrorCode.CHROME_NOT_READY


class CdpNoPageError(PublishError):
    """Endpoint reachable but no page target ever appeared."""

    code = ErrorCode.CDP_NO_PAGE


class TargetPageNotFoundError(PublishError):
    code = ErrorCode.TARGET_PAGE_NOT_FOUND


class TargetPageNotReadyError(PublishError):
    code = ErrorCode.TARGET_PAGE_NOT_READY


class TargetPageBlockedError(TargetPageNotReadyError):
    code = ErrorCode.TARGET_PAGE_BLOCKED


class LoginRequiredError(PublishError):
    code = ErrorCode.LOGIN_REQUIRED


class ChooserNotOpenedError(PublishError):
    code = ErrorCode.CHOOSER_NOT_OPENED


class UploadNoActionError(PublishError):
    """Every upload strategy was exhausted without a single action being performed."""

    code = ErrorCode.UPLOAD_NO_ACTION


class UploadSignalTimeoutError(PublishError):
    code = ErrorCode.UPLOAD_SIGNAL_TIMEOUT


class FieldFillError(PublishError):
    code = ErrorCode.FIELD_FILL_FAILED


class AutomationTimeoutError(PublishError):
    """Outer deadline exceeded; partial progress may exist."""

    code = ErrorCode.AUTOMATION_TIMEOUT


class AutomationFailedError(PublishError):
    """Wrapper for failures outside the known taxonomy."""

    code = ErrorCode.AUTOMATION_FAILED

    @classmethod
    def wrap(cls, exc: BaseException, stage: str = "") -> AutomationFailedError:
        message = f"{stage}: {exc}" if stage else str(exc)
        return cls(message, {"stage": stage, "exception": type(exc).__name__})
