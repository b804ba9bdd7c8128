"""
Upload page readiness guard.

Each poll tick runs the ``readiness-probe`` script in every reachable frame (bounded
depth and count), merges the per-frame results and classifies the page. Guard states
have a strict priority: a blocked page is never reported as ready, whatever else it
shows.
"""

from __future__ import annotations

import logging
from typing import Any

from ..browser.frames import iter_frames
from ..browser.page_scripts import LOCATION_REPLACE, READINESS_PROBE
from ..browser.script_runner import run_json
from ..config import ScanLimits, Timeouts
from ..destinations import DestinationConfig
from ..errors import LoginRequiredError, TargetPageBlockedError, TargetPageNotReadyError
from ..models import DiagnosticTrail, GuardState, ReadinessProbe, ReadyKind
from ..utils.timing import CancelToken, Clock, SystemClock, poll_until

logger = logging.getLogger(__name__)

_COUNT_KEYS = (
    "bodyTextLen",
    "fileInputCount",
    "hiddenFileInputCount",
    "surfaceMatchCount",
    "interactiveCandidateCount",
    "shadowRootCount",
)
_HIT_KEYS = ("blockedHit", "loginHit", "initHit", "surfaceHit")


def classify_guard_state(
    blocked_hit: str,
    login_hit: str,
    init_hit: str,
    anchor_hit: bool,
    interactive_candidate_count: int,
) -> GuardState:
    """Blocked > LoginRequired > InitPending > Ready > Pending."""
    if blocked_hit:
        return GuardState.BLOCKED
    if login_hit:
        return GuardState.LOGIN_REQUIRED
    if init_hit:
        return GuardState.INIT_PENDING
    if anchor_hit and interactive_candidate_count > 0:
        return GuardState.READY
    return GuardState.PENDING


def classify_ready_kind(
    guard_state: GuardState,
    body_text_len: int,
    anchor_hit: bool,
    interactive_candidate_count: int,
    min_body_text_len: int = 0,
) -> ReadyKind:
    if guard_state in (GuardState.BLOCKED, GuardState.LOGIN_REQUIRED, GuardState.INIT_PENDING):
        return ReadyKind.NONE
    if anchor_hit and interactive_candidate_count > 0:
        return ReadyKind.STRONG
    if body_text_len <= max(0, min_body_text_len):
        return ReadyKind.WEAK_EMPTY
    if anchor_hit:
        return ReadyKind.WEAK_NO_INTERACTIVE
    return ReadyKind.NONE


def merge_frame_results(results: list[dict[str, Any]]) -> dict[str, Any]:
    """Combine per-frame probe dicts; the first entry is the main frame."""
    merged: dict[str, Any] = {key: 0 for key in _COUNT_KEYS}
    merged.update({key: "" for key in _HIT_KEYS})
    merged["anchorHit"] = False
    merged["title"] = ""
    merged["url"] = ""
    merged["frameCount"] = 0
    errors = []

    for idx, data in enumerate(results):
        if data.get("error"):
            errors.append(f"frame{idx}:{data['error']}")
            continue
        if idx == 0:
            merged["title"] = data.get("title", "")
            merged["url"] = data.get("url", "")
            merged["frameCount"] = int(data.get("frameCount") or 0)
        for key in _COUNT_KEYS:
            merged[key] += int(data.get(key) or 0)
        for key in _HIT_KEYS:
            if not merged[key] and data.get(key):
                merged[key] = data[key]
        merged["anchorHit"] = merged["anchorHit"] or bool(data.get("anchorHit"))

    merged["frameCount"] = max(merged["frameCount"], len(results) - 1)
    merged["errors"] = errors
    merged["allFailed"] = bool(results) and len(errors) == len(results)
    return merged


def build_readiness_probe(merged: dict[str, Any], min_body_text_len: int = 0) -> ReadinessProbe:
    if merged.get("allFailed"):
        return ReadinessProbe.error_default(";".join(merged.get("errors", [])))

    guard = classify_guard_state(
        merged["blockedHit"],
        merged["loginHit"],
        merged["initHit"],
        merged["anchorHit"],
        merged["interactiveCandidateCount"],
    )
    kind = classify_ready_kind(
        guard,
        merged["bodyTextLen"],
        merged["anchorHit"],
        merged["interactiveCandidateCount"],
        min_body_text_len,
    )
    return ReadinessProbe(
        title=merged["title"],
        url=merged["url"],
        body_text_len=merged["bodyTextLen"],
        file_input_count=merged["fileInputCount"],
        hidden_file_input_count=merged["hiddenFileInputCount"],
        surface_match_count=merged["surfaceMatchCount"],
        blocked_hit=merged["blockedHit"],
        init_hit=merged["initHit"],
        login_hit=merged["loginHit"],
        surface_hit=merged["surfaceHit"],
        anchor_hit=merged["anchorHit"],
        interactive_candidate_count=merged["interactiveCandidateCount"],
        frame_count=merged["frameCount"],
        shadow_root_count=merged["shadowRootCount"],
        guard_state=guard,
        ready_kind=kind,
        error=";".join(merged.get("errors", [])),
    )


class ReadinessProber:
    """Runs readiness scans against one page and gates the upload on them."""

    def __init__(
        self,
        page: Any,
        timeouts: Timeouts | None = None,
        limits: ScanLimits | None = None,
        clock: Clock | None = None,
        cancel: CancelToken | None = None,
    ):
        self.page = page
        self.timeouts = timeouts or Timeouts()
        self.limits = limits or ScanLimits()
        self.clock = clock or SystemClock()
        self.cancel = cancel
        self.trail = DiagnosticTrail()
        self._healed = False

    def _params(self, cfg: DestinationConfig) -> dict[str, Any]:
        return {
            "surfaceSelectors": list(cfg.surface_selectors),
            "blockedMarkers": list(cfg.blocked_text_markers),
            "loginMarkers": list(cfg.login_text_markers),
            "initMarkers": list(cfg.init_text_markers),
            "surfaceMarkers": list(cfg.surface_text_markers),
            "maxShadowDepth": self.limits.max_shadow_depth,
            "maxAncestorWalk": self.limits.max_ancestor_walk,
        }

    def scan(self, cfg: DestinationConfig) -> ReadinessProbe:
        """One readiness snapshot across all reachable frames."""
        params = self._params(cfg)
        try:
            refs = iter_frames(self.page, self.limits.max_frame_depth, self.limits.max_frames)
        except Exception as e:
            logger.debug(f"[Probe] Frame walk failed: {e}")
            return ReadinessProbe.error_default(f"frames:{type(e).__name__}")
        results = [run_json(ref.frame, READINESS_PROBE, params) for ref in refs]
        return build_readiness_probe(merge_frame_results(results), cfg.min_body_text_len_for_weak_ready)

    def _current_url(self) -> str:
        try:
            return self.page.url or ""
        except Exception:
            return ""

    def ensure_upload_context(self, cfg: DestinationConfig) -> None:
        """Navigate to the upload URL once when the page is off host or path."""
        url = self._current_url()
        logger.info(f"{cfg.tag} [Probe] Page guard: current URL={url}")
        if cfg.is_target_url(url):
            return
        self.trail.add("guard", url or "-", "off_target")
        try:
            self.page.goto(
                cfg.upload_url,
                wait_until="domcontentloaded",
                timeout=int(self.timeouts.navigation_settle_s * 1000),
            )
        except Exception as e:
            raise TargetPageNotReadyError(
                f"Navigation to {cfg.upload_url} failed: {e}",
                {"url": url, "expected_url": cfg.upload_url},
            ) from e

    def wait_for_surface_brief(self, cfg: DestinationConfig) -> bool:
        """Short, non-fatal check that some upload affordance is present."""

        def has_surface() -> bool:
            probe = self.scan(cfg)
            return probe.anchor_hit or bool(probe.surface_hit)

        found = poll_until(
            has_surface,
            self.timeouts.quick_surface_s,
            self.timeouts.poll_interval_s,
            self.clock,
            self.cancel,
        )
        return bool(found)

    def self_heal(self, cfg: DestinationConfig) -> bool:
        """In-place replace to the canonical URL plus a reload. Runs at most once."""
        if self._healed:
            return False
        self._healed = True
        logger.warning(f"{cfg.tag} [Probe] Weak ready state; self-healing via replace + reload")
        run_json(self.page, LOCATION_REPLACE, {"url": cfg.upload_url})
        try:
            self.page.wait_for_load_state("domcontentloaded", timeout=int(self.timeouts.navigation_settle_s * 1000))
        except Exception as e:
            logger.debug(f"[Probe] Load state wait after replace failed: {e}")
        try:
            self.page.reload(wait_until="domcontentloaded", timeout=int(self.timeouts.navigation_settle_s * 1000))
        except Exception as e:
            logger.debug(f"[Probe] Reload after replace failed: {e}")
        self.trail.add("self_heal", cfg.upload_url, "replace+reload")
        return True

    def _is_ready(self, probe: ReadinessProbe, cfg: DestinationConfig) -> bool:
        if probe.guard_state != GuardState.READY:
            return False
        return not probe.url or cfg.is_target_url(probe.url)

    def wait_for_upload_ready(self, cfg: DestinationConfig) -> ReadinessProbe:
        """Poll until the page is ready for an upload.

        Raises:
            TargetPageBlockedError: Destination shows a blocked/rate-limit marker
            LoginRequiredError: Destination shows a login marker
            TargetPageNotReadyError: Deadline passed and the destination requires a ready surface
        """
        self.ensure_upload_context(cfg)
        last: list[ReadinessProbe] = []

        def tick() -> ReadinessProbe | None:
            probe = self.scan(cfg)
            last[:] = [probe]
            if probe.guard_state in (GuardState.BLOCKED, GuardState.LOGIN_REQUIRED):
                return probe
            return probe if self._is_ready(probe, cfg) else None

        window = self.timeouts.ready_s
        while True:
            result = poll_until(tick, window, self.timeouts.poll_interval_s, self.clock, self.cancel)
            if result is not None:
                return self._resolve(result, cfg)
            probe = last[0] if last else ReadinessProbe.error_default("no_scan")
            cancelled = self.cancel is not None and self.cancel.cancelled
            if (
                not cancelled
                and cfg.self_heal_on_weak_ready
                and probe.ready_kind.is_weak
                and self.self_heal(cfg)
            ):
                window = self.timeouts.self_heal_window_s
                continue
            return self._give_up(probe, cfg)

    def _resolve(self, probe: ReadinessProbe, cfg: DestinationConfig) -> ReadinessProbe:
        self.trail.add("guard", probe.guard_state.value, probe.summary())
        details = {"url": probe.url, "probe": probe.summary()}
        if probe.guard_state == GuardState.BLOCKED:
            raise TargetPageBlockedError(f"{cfg.name_en} upload page blocked: {probe.blocked_hit}", details)
        if probe.guard_state == GuardState.LOGIN_REQUIRED:
            raise LoginRequiredError(f"{cfg.name_en} requires login: {probe.login_hit}", details)
        logger.info(f"{cfg.tag} [Probe] Upload page ready: {probe.summary()}")
        return probe

    def _give_up(self, probe: ReadinessProbe, cfg: DestinationConfig) -> ReadinessProbe:
        self.trail.add("guard", probe.guard_state.value, f"timeout {probe.summary()}")
        if cfg.require_surface_ready:
            raise TargetPageNotReadyError(
                f"{cfg.name_en} upload page not ready: {probe.summary()}",
                {
                    "url": probe.url,
                    "expected_host": cfg.target_host,
                    "allowed_paths": list(cfg.allowed_paths),
                    "probe": probe.summary(),
                },
            )
        logger.warning(f"{cfg.tag} [Probe] Upload page not confirmed ready; continuing: {probe.summary()}")
        return probe
