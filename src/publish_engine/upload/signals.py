"""
Upload-started signal detection.

A check is a single read-only script evaluation per frame, safe to poll at a high
rate. Per destination the checks run in priority order: URL pattern, file input with
files, progress element text, uploading text, replace-file text. The same order holds
across frames: a file input signal in an iframe outranks replace text in the main
frame. Without a destination config only the file input check runs.
"""

from __future__ import annotations

import logging
from typing import Any

from ..browser.frames import iter_frames
from ..browser.page_scripts import UPLOAD_SIGNAL
from ..browser.script_runner import run_json
from ..config import ScanLimits, Timeouts
from ..destinations import DestinationConfig
from ..utils.timing import CancelToken, Clock, SystemClock, poll_until

logger = logging.getLogger(__name__)

SIGNAL_PRIORITY = ("url", "file_input", "progress", "uploading", "replace")


def signal_rank(signal: str) -> int:
    """Position of the signal's kind in SIGNAL_PRIORITY; unknown kinds rank last."""
    kind = signal.split(":", 1)[0]
    return SIGNAL_PRIORITY.index(kind) if kind in SIGNAL_PRIORITY else len(SIGNAL_PRIORITY)


def signal_params(cfg: DestinationConfig | None, max_shadow_depth: int) -> dict[str, Any]:
    if cfg is None:
        return {"generic": True, "maxShadowDepth": max_shadow_depth}
    return {
        "generic": False,
        "urlPatterns": list(cfg.signal_url_patterns),
        "progressSelectors": list(cfg.progress_selectors),
        "uploadingMarkers": list(cfg.uploading_text_markers),
        "replaceMarkers": list(cfg.replace_text_markers),
        "maxShadowDepth": max_shadow_depth,
    }


class SignalDetector:
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

    def check(self, cfg: DestinationConfig | None) -> str:
        """Highest-priority upload-started signal across all frames, or ``""``.

        Each frame reports its own best signal; ties keep frame order (main frame first).
        """
        params = signal_params(cfg, self.limits.max_shadow_depth)
        try:
            refs = iter_frames(self.page, self.limits.max_frame_depth, self.limits.max_frames)
        except Exception as e:
            logger.debug(f"[Signal] Frame walk failed: {e}")
            return ""
        best = ""
        for ref in refs:
            signal = run_json(ref.frame, UPLOAD_SIGNAL, params).get("signal", "")
            if not signal:
                continue
            if not best or signal_rank(signal) < signal_rank(best):
                best = signal
            if signal_rank(best) == 0:
                break
        return best

    def wait_for_signal(self, cfg: DestinationConfig | None, timeout_s: float) -> str | None:
        signal = poll_until(
            lambda: self.check(cfg),
            timeout_s,
            self.timeouts.poll_interval_s,
            self.clock,
            self.cancel,
        )
        if signal:
            logger.info(f"[Signal] Upload started: {signal}")
        return signal or None
