"""
Upload strategy cascade.

Tries increasingly invasive ways of attaching a file to the upload surface:

    A  file chooser interception around a click on the file input
    B  direct file assignment on the input plus synthetic input/change events
    C  drag-and-drop simulation on a drop zone (or a geometry-ranked point)
    D  click an upload entry and catch the file chooser it opens

Every step has its own short timeout and writes to one diagnostic trail. A failing
step never aborts the cascade; only exhausting it does. The first step that both
performs an action and sees an upload-started signal wins.
"""

from __future__ import annotations

import base64
import logging
import mimetypes
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .. import config
from ..browser.devtools import CdpBridge
from ..browser.frames import find_frame, frame_offset, iter_frames
from ..browser.page_scripts import CLICK_FILE_INPUT, DRAG_DROP, DROP_ZONE_LOCATE, FILE_INPUT_EVENTS, SELECTOR_COUNT
from ..browser.script_runner import run_json
from ..config import ScanLimits, Timeouts
from ..destinations import DestinationConfig
from ..errors import ChooserNotOpenedError, UploadNoActionError, UploadSignalTimeoutError
from ..models import DiagnosticTrail, UploadAttemptReport
from ..utils.log_utils import shorten
from ..utils.timing import CancelToken, Clock, Deadline, SystemClock
from .chooser import ClickChooser
from .geometry import GeometryClickScorer
from .signals import SignalDetector

logger = logging.getLogger(__name__)


@dataclass
class _Attempt:
    trail: DiagnosticTrail = field(default_factory=DiagnosticTrail)
    action_performed: bool = False
    last_strategy: str = ""
    last_selector: str = ""
    chooser_error: ChooserNotOpenedError | None = None

    def mark_action(self, strategy: str, selector: str) -> None:
        self.action_performed = True
        self.last_strategy = strategy
        self.last_selector = selector


@dataclass(frozen=True)
class _Hit:
    selector: str
    signal: str


def guess_mime(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "video/mp4"


class UploadStrategyEngine:
    def __init__(
        self,
        page: Any,
        bridge: CdpBridge,
        timeouts: Timeouts | None = None,
        limits: ScanLimits | None = None,
        clock: Clock | None = None,
        cancel: CancelToken | None = None,
        detector: SignalDetector | None = None,
        scorer: GeometryClickScorer | None = None,
        chooser: ClickChooser | None = None,
    ):
        self.page = page
        self.bridge = bridge
        self.timeouts = timeouts or Timeouts()
        self.limits = limits or ScanLimits()
        self.clock = clock or SystemClock()
        self.cancel = cancel
        self.detector = detector or SignalDetector(page, self.timeouts, self.limits, self.clock, cancel)
        self.scorer = scorer or GeometryClickScorer(page, self.limits)
        self.chooser = chooser or ClickChooser(
            page, bridge, self.scorer, self.timeouts, self.limits, self.clock, cancel
        )

    def strategy_order(self, cfg: DestinationConfig) -> list[str]:
        return ["A", "B", "D", "C"] if cfg.chooser_first else ["A", "B", "C", "D"]

    def upload(self, file_path: str | Path, cfg: DestinationConfig) -> UploadAttemptReport:
        """Attach ``file_path`` to the upload surface and wait for an upload-started signal.

        Raises:
            UploadNoActionError: Nothing in the cascade ever matched; raised before any waiting
            UploadSignalTimeoutError: An action was performed but no signal appeared
        """
        path = Path(file_path).expanduser().resolve()
        started = Deadline(self.timeouts.automation_s, self.clock)
        attempt = _Attempt()
        attempt.trail.add("file", "ext", path.suffix.lower().lstrip(".") or "unknown")

        steps: dict[str, Callable[[Path, DestinationConfig, _Attempt], _Hit | None]] = {
            "A": self._chooser_interception,
            "B": self._direct_assignment,
            "C": self._drag_drop,
            "D": self._click_to_chooser,
        }
        for name in self.strategy_order(cfg):
            if self.cancel is not None and self.cancel.cancelled:
                attempt.trail.add(name, "-", "cancelled")
                break
            logger.info(f"{cfg.tag} [Upload] Strategy {name}")
            try:
                hit = steps[name](path, cfg, attempt)
            except Exception as e:
                attempt.trail.add(name, "-", f"failed={type(e).__name__}: {shorten(str(e), 80)}")
                logger.info(f"{cfg.tag} [Upload] Strategy {name} failed: {e}")
                continue
            if hit is not None:
                return self._report(hit.signal, name, hit.selector, True, attempt, started)

        if not attempt.action_performed and attempt.chooser_error is not None:
            # Upload entries were found and clicked; the failure is the missing chooser.
            err = attempt.chooser_error
            logger.error(f"{cfg.tag} [Upload] Clicks never opened a file chooser: {attempt.trail.render()}")
            raise ChooserNotOpenedError(err.message, {**err.details, "trail": attempt.trail.to_json_list()}) from err

        if not attempt.action_performed:
            logger.error(f"{cfg.tag} [Upload] No strategy performed an action: {attempt.trail.render()}")
            raise UploadNoActionError(
                f"{cfg.name_en}: every upload strategy failed, upload manually",
                {"trail": attempt.trail.to_json_list()},
            )

        slow_s = self.timeouts.slow_signal_s
        signal = self.detector.wait_for_signal(cfg, slow_s)
        if signal:
            attempt.trail.add("fallback", "-", f"signal={signal}")
            return self._report(signal, attempt.last_strategy, attempt.last_selector, False, attempt, started)

        attempt.trail.add("fallback", "-", f"no_signal({slow_s:g}s)")
        logger.error(f"{cfg.tag} [Upload] Action performed but no upload signal: {attempt.trail.render()}")
        raise UploadSignalTimeoutError(
            f"{cfg.name_en}: upload action performed but no upload signal detected",
            {
                "strategy": attempt.last_strategy,
                "selector": attempt.last_selector,
                "trail": attempt.trail.to_json_list(),
            },
        )

    def _report(
        self, signal: str, strategy: str, selector: str, fast_path: bool, attempt: _Attempt, started: Deadline
    ) -> UploadAttemptReport:
        logger.info(f"[Upload] Strategy {strategy} won selector={selector} signal={signal} fast={fast_path}")
        return UploadAttemptReport(
            signal=signal,
            strategy=strategy,
            selector=selector,
            fast_path=fast_path,
            trail=attempt.trail,
            elapsed_ms=started.elapsed_ms(),
        )

    # -- helpers ---------------------------------------------------------------

    def _count(self, selector: str) -> int:
        data = run_json(self.page, SELECTOR_COUNT, {"selector": selector, "maxShadowDepth": self.limits.max_shadow_depth})
        return int(data.get("count") or 0)

    def _fast_signal(self, stage: str, selector: str, cfg: DestinationConfig, attempt: _Attempt) -> _Hit | None:
        fast_s = self.timeouts.fast_signal_s
        signal = self.detector.wait_for_signal(cfg, fast_s)
        if signal:
            attempt.trail.add(stage, selector, f"signal={signal}")
            return _Hit(selector, signal)
        attempt.trail.add(stage, selector, f"no_signal_fast({fast_s:g}s)")
        return None

    # -- A ---------------------------------------------------------------------

    def _chooser_interception(self, path: Path, cfg: DestinationConfig, attempt: _Attempt) -> _Hit | None:
        files = [str(path)]
        for selector in cfg.file_input_selectors:
            count = self._count(selector)
            if count <= 0:
                attempt.trail.add("A", selector, "count=0")
                continue
            attempt.trail.add("A", selector, f"count={count}")
            try:
                via = self._set_via_chooser(selector, files)
            except Exception as e:
                attempt.trail.add("A", selector, f"failed={type(e).__name__}: {shorten(str(e), 80)}")
                continue
            if not via:
                attempt.trail.add("A", selector, "no_node")
                continue
            attempt.mark_action("A", selector)
            attempt.trail.add("A", selector, f"files_set via={via}")
            hit = self._fast_signal("A", selector, cfg, attempt)
            if hit:
                return hit
        return None

    def _set_via_chooser(self, selector: str, files: list[str]) -> str:
        self.bridge.arm_file_chooser()
        try:
            run_json(
                self.page,
                CLICK_FILE_INPUT,
                {"selector": selector, "maxShadowDepth": self.limits.max_shadow_depth},
            )
            event = self.bridge.wait_for_file_chooser(
                self.timeouts.chooser_event_s, self.clock, self.cancel, self.timeouts.poll_interval_s
            )
        finally:
            self.bridge.disarm_file_chooser()

        backend_node_id = int((event or {}).get("backendNodeId") or 0)
        if backend_node_id:
            self.bridge.set_files_by_backend_node(backend_node_id, files)
            return "backend_node"
        # No chooser event: degrade to selector-based node lookup.
        if self.bridge.set_files_by_selector(selector, files):
            return "selector_lookup"
        return ""

    # -- B ---------------------------------------------------------------------

    def _direct_assignment(self, path: Path, cfg: DestinationConfig, attempt: _Attempt) -> _Hit | None:
        files = [str(path)]
        for selector in cfg.file_input_selectors:
            count = self._count(selector)
            if count <= 0:
                attempt.trail.add("B", selector, "count=0")
                continue
            try:
                if not self.bridge.set_files_by_selector(selector, files):
                    attempt.trail.add("B", selector, "no_node")
                    continue
            except Exception as e:
                attempt.trail.add("B", selector, f"failed={type(e).__name__}: {shorten(str(e), 80)}")
                continue
            attempt.mark_action("B", selector)
            dispatched = run_json(
                self.page,
                FILE_INPUT_EVENTS,
                {"selector": selector, "maxShadowDepth": self.limits.max_shadow_depth},
            )
            attempt.trail.add("B", selector, f"dispatch={dispatched.get('dispatched', 0)}")
            hit = self._fast_signal("B", selector, cfg, attempt)
            if hit:
                return hit
        return None

    # -- C ---------------------------------------------------------------------

    def _locate_drop_point(self, cfg: DestinationConfig, attempt: _Attempt) -> tuple[Any, float, float, str] | None:
        params = {"selectors": list(cfg.drop_zone_selectors), "maxShadowDepth": self.limits.max_shadow_depth}
        if cfg.drop_zone_selectors:
            for ref in iter_frames(self.page, self.limits.max_frame_depth, self.limits.max_frames):
                zone = run_json(ref.frame, DROP_ZONE_LOCATE, params)
                if zone.get("found"):
                    return ref.frame, float(zone["x"]), float(zone["y"]), str(zone["selector"])
        attempt.trail.add("C", "drop_zone", "not_found")

        if not cfg.drop_zone_geometry_fallback:
            return None
        for cand in self.scorer.scan(cfg):
            frame = find_frame(self.page, cand.frame_context, self.limits.max_frame_depth, self.limits.max_frames)
            if frame is None:
                continue
            ox, oy = frame_offset(frame) if cand.frame_context != "main" else (0.0, 0.0)
            return frame, cand.x - ox, cand.y - oy, f"geometry:{cand.score:.1f}"
        attempt.trail.add("C", "geometry", "no_candidates")
        return None

    def _drag_drop(self, path: Path, cfg: DestinationConfig, attempt: _Attempt) -> _Hit | None:
        point = self._locate_drop_point(cfg, attempt)
        if point is None:
            return None
        frame, x, y, marker = point

        size = path.stat().st_size
        if size > config.DRAG_DROP_MAX_BYTES:
            attempt.trail.add("C", marker, f"too_large={size}")
            return None

        payload = {
            "x": x,
            "y": y,
            "b64": base64.b64encode(path.read_bytes()).decode("ascii"),
            "name": path.name,
            "mime": guess_mime(path),
            "maxShadowDepth": self.limits.max_shadow_depth,
        }
        result = run_json(frame, DRAG_DROP, payload)
        if not result.get("dispatched"):
            attempt.trail.add("C", marker, f"drop_failed={result.get('error', 'no_target')}")
            return None
        attempt.mark_action("C", marker)
        attempt.trail.add("C", marker, f"drag_drop target={result.get('tag', '')}")
        return self._fast_signal("C", marker, cfg, attempt)

    # -- D ---------------------------------------------------------------------

    def _click_to_chooser(self, path: Path, cfg: DestinationConfig, attempt: _Attempt) -> _Hit | None:
        try:
            result = self.chooser.open_and_set(str(path), cfg)
        except ChooserNotOpenedError as e:
            attempt.trail.extend(self.chooser.last_trail)
            if e.details.get("clicks"):
                attempt.chooser_error = e
            attempt.trail.add("D", "chooser", f"failed={e.code.value}")
            return None
        attempt.trail.extend(result.trail)
        if not result.opened:
            attempt.trail.add("D", "chooser", "not_opened")
            return None
        if not result.files_set:
            attempt.trail.add("D", result.marker, "files_not_set")
            return None
        attempt.mark_action("D", result.marker)
        attempt.trail.add(
            "D", result.marker, f"clicked technique={result.technique} rounds={result.rounds} {result.elapsed_ms}ms"
        )
        return self._fast_signal("D", result.marker, cfg, attempt)
