"""
Publish orchestration.

Runs one publish attempt end to end: acquire a browser session, attach over CDP,
select the upload tab, gate on readiness, run the upload cascade and fill the
auxiliary fields. The whole attempt sits under one outer deadline; when it passes,
the outcome is ``timeout`` (the upload may still be running in the browser), not a
hard failure.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from playwright.sync_api import sync_playwright

from .browser.devtools import CdpBridge
from .browser.locator import RemoteSessionLocator
from .config import ScanLimits, Timeouts
from .destinations import DestinationConfig, DestinationId, get_destination
from .errors import (
    AutomationFailedError,
    AutomationTimeoutError,
    CdpNoPageError,
    LoginRequiredError,
    ProfileBusyError,
    PublishError,
    TargetPageBlockedError,
)
from .models import (
    FillSummary,
    GuardState,
    OutcomeStatus,
    PublishOutcome,
    PublishRequest,
    Session,
    TargetDescriptor,
    UploadAttemptReport,
)
from .probe.readiness import ReadinessProber
from .probe.target import TargetProber
from .upload.fields import fill_basic_fields
from .upload.strategies import UploadStrategyEngine
from .utils.timing import CancelToken, Clock, Deadline, PageClock, SystemClock

logger = logging.getLogger(__name__)

# Failures that stay failures even when the outer deadline has also passed.
_TERMINAL_ERRORS = (ProfileBusyError, LoginRequiredError, TargetPageBlockedError)


class Publisher:
    """Unattended upload of one file to one destination through one browser profile."""

    def __init__(
        self,
        locator: RemoteSessionLocator | None = None,
        timeouts: Timeouts | None = None,
        limits: ScanLimits | None = None,
        clock: Clock | None = None,
        playwright_factory: Callable[[], Any] | None = None,
    ):
        self.timeouts = timeouts or Timeouts()
        self.limits = limits or ScanLimits()
        self.clock = clock
        self.locator = locator or RemoteSessionLocator(timeouts=self.timeouts)
        self.playwright_factory = playwright_factory or sync_playwright

    def open_login(self, profile: str | Path | None, destination: DestinationId | str) -> Session:
        """Bring up the profile's browser on the destination login page.

        With no profile, a fresh ``<destination>-<n>`` profile is allocated for a new account.
        """
        cfg = get_destination(destination)
        if profile is None:
            profile = self.locator.new_profile(cfg.id.value)
            logger.info(f"{cfg.tag} [Publish] Allocated new profile {profile}")
        session = self.locator.acquire(profile, cfg.login_url)
        logger.info(f"{cfg.tag} [Publish] Login window on port {session.endpoint_port} ({session.acquisition_mode.value})")
        return session

    def publish(
        self,
        profile: str | Path,
        destination: DestinationId | str,
        request: PublishRequest,
        cancel: CancelToken | None = None,
    ) -> PublishOutcome:
        """Run one attempt; never raises for known or unknown automation failures."""
        cfg = get_destination(destination)
        clock = self.clock or SystemClock()
        deadline = Deadline(self.timeouts.automation_s, clock)
        token = CancelToken(deadline=deadline, parent=cancel)
        path = Path(request.file_path).expanduser()
        progress: dict[str, Any] = {"stage": "start", "report": None, "fill": None}

        logger.info(f"{cfg.tag} [Publish] Starting upload of {path.name}")
        if path.suffix.lower() == ".mov":
            logger.warning(f"{cfg.tag} [Publish] .mov files have poor compatibility on some destinations; prefer .mp4")

        try:
            if not path.is_file():
                raise AutomationFailedError(f"File not found: {path}", {"stage": "input", "path": str(path)})

            progress["stage"] = "session"
            session = self.locator.acquire(profile, cfg.upload_url)
            logger.info(
                f"{cfg.tag} [Publish] Session port={session.endpoint_port} mode={session.acquisition_mode.value}"
            )
            with self.playwright_factory() as pw:
                browser = pw.chromium.connect_over_cdp(session.endpoint_url)
                self._run(browser, cfg, request, path, token, progress)
        except PublishError as e:
            return self._failure(e, cfg, deadline, progress)
        except Exception as e:
            logger.exception(f"{cfg.tag} [Publish] Unexpected failure at stage {progress['stage']}")
            return self._failure(AutomationFailedError.wrap(e, progress["stage"]), cfg, deadline, progress)

        report: UploadAttemptReport = progress["report"]
        fill: FillSummary = progress["fill"]
        message = f"{report.signal};{fill.render()}"
        logger.info(f"✅ {cfg.tag} [Publish] {message} ({deadline.elapsed_ms()}ms)")
        return PublishOutcome(
            status=OutcomeStatus.PUBLISHED,
            message=message,
            report=report,
            fill=fill,
            elapsed_ms=deadline.elapsed_ms(),
        )

    def _run(
        self,
        browser: Any,
        cfg: DestinationConfig,
        request: PublishRequest,
        path: Path,
        token: CancelToken,
        progress: dict[str, Any],
    ) -> None:
        if not browser.contexts:
            raise CdpNoPageError("Connected browser has no context")
        context = browser.contexts[0]

        progress["stage"] = "target"
        selection = TargetProber(context, self.timeouts, self.clock, token).acquire(
            TargetDescriptor.for_destination(cfg)
        )
        page = selection.page
        clock = self.clock or PageClock(page)
        self._check_deadline(token, "target")

        progress["stage"] = "readiness"
        readiness = ReadinessProber(page, self.timeouts, self.limits, clock, token)
        probe = readiness.wait_for_upload_ready(cfg)
        if probe.guard_state != GuardState.READY and not readiness.wait_for_surface_brief(cfg):
            logger.warning(f"{cfg.tag} [Publish] Upload surface not confirmed; trying upload actions anyway")
        self._check_deadline(token, "readiness")

        progress["stage"] = "upload"
        bridge = CdpBridge(page)
        try:
            engine = UploadStrategyEngine(page, bridge, self.timeouts, self.limits, clock, token)
            progress["report"] = engine.upload(path, cfg)
        finally:
            bridge.detach()
        self._check_deadline(token, "upload")

        progress["stage"] = "fill"
        progress["fill"] = fill_basic_fields(page, request, cfg)

    @staticmethod
    def _check_deadline(token: CancelToken, stage: str) -> None:
        if token.cancelled:
            raise AutomationTimeoutError(f"Automation deadline passed after {stage}", {"stage": stage})

    def _failure(
        self, error: PublishError, cfg: DestinationConfig, deadline: Deadline, progress: dict[str, Any]
    ) -> PublishOutcome:
        if isinstance(error, AutomationTimeoutError) or (
            deadline.expired() and not isinstance(error, _TERMINAL_ERRORS)
        ):
            timeout = error if isinstance(error, AutomationTimeoutError) else AutomationTimeoutError(
                f"Automation timed out at stage {progress['stage']}: {error.message}",
                {"stage": progress["stage"], "cause": error.code.value},
            )
            logger.warning(f"⚠️ {cfg.tag} [Publish] {timeout}")
            return PublishOutcome(
                status=OutcomeStatus.TIMEOUT,
                message=str(timeout),
                error_code=timeout.code.value,
                hint=timeout.hint,
                report=progress["report"],
                fill=progress["fill"],
                elapsed_ms=deadline.elapsed_ms(),
            )

        logger.error(f"❌ {cfg.tag} [Publish] {error}")
        return PublishOutcome(
            status=OutcomeStatus.FAILED,
            message=str(error),
            error_code=error.code.value,
            hint=error.hint,
            report=progress["report"],
            fill=progress["fill"],
            elapsed_ms=deadline.elapsed_ms(),
        )
