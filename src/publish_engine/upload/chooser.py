"""
Click-to-open file chooser.

Finds an upload entry to click (selector, visible text marker, class/attribute
hotspot, then geometry candidates), clicks it with file chooser interception armed,
and hands the file to the input behind the chooser. Destinations with a high silent
click failure rate get several rounds, alternating an in-page pointer event sequence
with a trusted protocol-level mouse click, all under one shared time budget.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from ..browser.devtools import CdpBridge
from ..browser.frames import find_frame, frame_offset, iter_frames
from ..browser.page_scripts import CLICK_SCAN, POINTER_CLICK
from ..browser.script_runner import run_json
from ..config import ScanLimits, Timeouts
from ..destinations import DestinationConfig
from ..errors import ChooserNotOpenedError
from ..models import ClickChooserResult, DiagnosticTrail
from ..utils.timing import CancelToken, Clock, Deadline, SystemClock
from .geometry import GeometryClickScorer

logger = logging.getLogger(__name__)

HOTSPOT_HINTS = ("upload", "uploader", "drag", "drop", "select-file", "file-picker")

TECHNIQUE_POINTER = "pointer"
TECHNIQUE_CDP = "cdp_mouse"


@dataclass(frozen=True)
class ClickTarget:
    source: str
    marker: str
    frame: Any
    local_x: float
    local_y: float
    page_x: float
    page_y: float

    def describe(self) -> str:
        return f"{self.source}:{self.marker}@({self.page_x:.0f},{self.page_y:.0f})"


def technique_for_round(round_idx: int) -> str:
    """Rounds alternate: pointer events first, then a trusted protocol click."""
    return TECHNIQUE_POINTER if round_idx % 2 == 0 else TECHNIQUE_CDP


class ClickChooser:
    def __init__(
        self,
        page: Any,
        bridge: CdpBridge,
        scorer: GeometryClickScorer,
        timeouts: Timeouts | None = None,
        limits: ScanLimits | None = None,
        clock: Clock | None = None,
        cancel: CancelToken | None = None,
    ):
        self.page = page
        self.bridge = bridge
        self.scorer = scorer
        self.timeouts = timeouts or Timeouts()
        self.limits = limits or ScanLimits()
        self.clock = clock or SystemClock()
        self.cancel = cancel
        self.last_trail = DiagnosticTrail()

    # -- locating --------------------------------------------------------------

    def _scan_params(self, mode: str, cfg: DestinationConfig, selectors: tuple[str, ...] = ()) -> dict[str, Any]:
        return {
            "mode": mode,
            "selectors": list(selectors or cfg.click_selectors),
            "markers": list(cfg.click_text_markers),
            "hotspotHints": list(HOTSPOT_HINTS),
            "maxShadowDepth": self.limits.max_shadow_depth,
            "maxAncestorWalk": self.limits.max_ancestor_walk,
        }

    def locate(self, mode: str, cfg: DestinationConfig, selectors: tuple[str, ...] = ()) -> ClickTarget | None:
        """First visible target for ``mode`` (selector, text or hotspot) across frames."""
        params = self._scan_params(mode, cfg, selectors)
        for ref in iter_frames(self.page, self.limits.max_frame_depth, self.limits.max_frames):
            data = run_json(ref.frame, CLICK_SCAN, params)
            if not data.get("found"):
                continue
            ox, oy = frame_offset(ref.frame) if not ref.is_main else (0.0, 0.0)
            x, y = float(data["x"]), float(data["y"])
            return ClickTarget(mode, str(data.get("marker") or ""), ref.frame, x, y, x + ox, y + oy)
        return None

    def _geometry_targets(self, cfg: DestinationConfig) -> list[ClickTarget]:
        targets = []
        for cand in self.scorer.scan(cfg):
            frame = find_frame(self.page, cand.frame_context, self.limits.max_frame_depth, self.limits.max_frames)
            if frame is None:
                continue
            ox, oy = frame_offset(frame) if cand.frame_context != "main" else (0.0, 0.0)
            targets.append(
                ClickTarget("geometry", f"{cand.score:.1f}", frame, cand.x - ox, cand.y - oy, cand.x, cand.y)
            )
        return targets

    def iter_targets(self, cfg: DestinationConfig, trail: DiagnosticTrail) -> Iterator[ClickTarget]:
        """Targets in fallback order; geometry is only scanned once the cheaper modes are used up."""
        seen: set[tuple[int, int]] = set()
        for mode in ("selector", "text", "hotspot"):
            target = self.locate(mode, cfg)
            if target is None:
                trail.add("D", mode, "not_found")
                continue
            key = (round(target.page_x), round(target.page_y))
            if key in seen:
                continue
            seen.add(key)
            yield target
        geometry = self._geometry_targets(cfg)
        if not geometry:
            trail.add("D", "geometry", "no_candidates")
        for target in geometry:
            key = (round(target.page_x), round(target.page_y))
            if key not in seen:
                seen.add(key)
                yield target

    # -- clicking --------------------------------------------------------------

    def click(self, target: ClickTarget, technique: str) -> bool:
        if technique == TECHNIQUE_CDP:
            self.bridge.dispatch_mouse_click(target.page_x, target.page_y)
            return True
        result = run_json(
            target.frame,
            POINTER_CLICK,
            {
                "x": target.local_x,
                "y": target.local_y,
                "maxShadowDepth": self.limits.max_shadow_depth,
                "maxAncestorWalk": self.limits.max_ancestor_walk,
            },
        )
        return bool(result.get("clicked"))

    def _pre_click(self, cfg: DestinationConfig, trail: DiagnosticTrail) -> None:
        for selector in cfg.pre_click_selectors:
            target = self.locate("selector", cfg, (selector,))
            if target is None:
                trail.add("D", f"pre_click:{selector}", "not_found")
                continue
            clicked = self.click(target, TECHNIQUE_POINTER)
            trail.add("D", f"pre_click:{selector}", "clicked" if clicked else "click_failed")
            if clicked:
                self.clock.sleep(self.timeouts.poll_interval_s)

    def _set_files(self, event: dict[str, Any], file_path: str, trail: DiagnosticTrail) -> bool:
        backend_node_id = int(event.get("backendNodeId") or 0)
        try:
            if backend_node_id:
                self.bridge.set_files_by_backend_node(backend_node_id, [file_path])
                trail.add("D", f"backend_node:{backend_node_id}", "files_set")
                return True
            if self.bridge.set_files_by_selector("input[type='file']", [file_path]):
                trail.add("D", "input[type='file']", "files_set_by_selector")
                return True
            trail.add("D", "input[type='file']", "no_node")
        except Exception as e:
            trail.add("D", "set_files", f"failed={type(e).__name__}")
            logger.warning(f"[Chooser] Setting files after chooser event failed: {e}")
        return False

    def open_and_set(self, file_path: str, cfg: DestinationConfig) -> ClickChooserResult:
        """Click until a file chooser opens, then set ``file_path`` on its input.

        Raises:
            ChooserNotOpenedError: Multi-round destination and no round produced a chooser
        """
        budget = Deadline(self.timeouts.click_rounds_budget_s, self.clock)
        trail = DiagnosticTrail()
        self.last_trail = trail
        rounds = max(1, cfg.click_rounds)
        clicks = 0
        rounds_run = 0

        def result(opened: bool, marker: str, technique: str, files_set: bool) -> ClickChooserResult:
            return ClickChooserResult(opened, marker, technique, rounds_run, files_set, trail, budget.elapsed_ms())

        self.bridge.arm_file_chooser()
        try:
            self._pre_click(cfg, trail)
            event = self.bridge.wait_for_file_chooser(0, self.clock, self.cancel, self.timeouts.poll_interval_s)
            if event is not None:
                files_set = self._set_files(event, file_path, trail)
                return result(True, "pre_click", TECHNIQUE_POINTER, files_set)

            targets: list[ClickTarget] = []
            target_iter = self.iter_targets(cfg, trail)
            for round_idx in range(rounds):
                if budget.expired() or (self.cancel is not None and self.cancel.cancelled):
                    break
                rounds_run = round_idx + 1
                technique = technique_for_round(round_idx)
                # Equal share of what is left, so later techniques always get a turn.
                window = budget.child(budget.remaining() / (rounds - round_idx))
                idx = 0
                while window.remaining() >= self.timeouts.poll_interval_s:
                    if idx < len(targets):
                        target = targets[idx]
                    else:
                        target = next(target_iter, None)
                        if target is None:
                            break
                        targets.append(target)
                    idx += 1

                    if not self.click(target, technique):
                        trail.add("D", target.describe(), f"{technique} click_failed")
                        continue
                    clicks += 1
                    wait_s = min(self.timeouts.chooser_event_s, window.remaining())
                    event = self.bridge.wait_for_file_chooser(
                        wait_s, self.clock, self.cancel, self.timeouts.poll_interval_s
                    )
                    if event is None:
                        trail.add("D", target.describe(), f"{technique} no_chooser round={rounds_run}")
                        continue
                    trail.add("D", target.describe(), f"{technique} chooser_opened round={rounds_run}")
                    logger.info(f"[Chooser] Chooser opened via {technique} on {target.describe()}")
                    files_set = self._set_files(event, file_path, trail)
                    return result(True, target.marker or target.source, technique, files_set)
                if not targets:
                    break
        finally:
            self.bridge.disarm_file_chooser()

        if rounds > 1:
            raise ChooserNotOpenedError(
                f"{cfg.name_en}: no file chooser after {rounds_run} round(s), {clicks} click(s)",
                {"rounds": rounds_run, "clicks": clicks, "trail": trail.to_json_list()},
            )
        return result(False, "", "", False)
