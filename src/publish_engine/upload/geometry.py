"""
Geometry click scorer.

Used when a destination exposes no stable selector for its upload entry (e.g. an
upload widget rendered inside an embedded micro-frontend). The ``geometry-scan``
script only collects raw features of visible elements; all scoring happens here so
it can be tested against frozen snapshots. Ranking is fully deterministic: the same
snapshot always yields the same top-N list in the same order.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from ..browser.frames import frame_offset, iter_frames
from ..browser.page_scripts import GEOMETRY_SCAN
from ..browser.script_runner import run_json
from ..config import ScanLimits
from ..destinations import DestinationConfig
from ..models import GeometryCandidate

logger = logging.getLogger(__name__)

UPLOAD_MARKERS = (
    "上传视频",
    "点击上传",
    "选择视频",
    "选择文件",
    "拖拽",
    "上传",
    "Upload",
    "Select files",
    "Drag",
    "Drop",
)
NAVIGATION_MARKERS = (
    "首页",
    "内容管理",
    "数据中心",
    "数据",
    "消息",
    "设置",
    "帮助",
    "退出",
    "草稿箱",
    "Home",
    "Dashboard",
    "Settings",
    "Analytics",
)
CLASS_HINTS = ("upload", "drag", "drop", "uploader", "file")


@dataclass(frozen=True)
class GeometryWeights:
    """Scoring weights, tuned against the embedded upload widget of one destination."""

    text_marker: float = 45.0
    dashed_border: float = 30.0
    aria_marker: float = 18.0
    class_hint: float = 12.0
    embed_priority_max: float = 30.0
    widget_area: float = 8.0
    navigation_penalty: float = -42.0
    oversized_penalty: float = -24.0
    oversized_ratio: float = 0.58
    distance_scale: float = 20.0
    widget_area_min: float = 40 * 40
    widget_area_max: float = 640 * 480
    text_marker_max_len: int = 80


DEFAULT_WEIGHTS = GeometryWeights()


def upload_markers_for(cfg: DestinationConfig | None) -> tuple[str, ...]:
    markers: list[str] = []
    if cfg is not None:
        markers.extend(cfg.click_text_markers)
        markers.extend(cfg.surface_text_markers)
    markers.extend(UPLOAD_MARKERS)
    return tuple(dict.fromkeys(m for m in markers if m))


def score_candidate(
    element: dict[str, Any],
    viewport: tuple[float, float],
    markers: tuple[str, ...],
    weights: GeometryWeights = DEFAULT_WEIGHTS,
    offset: tuple[float, float] = (0.0, 0.0),
    frame_context: str = "main",
) -> GeometryCandidate:
    """Score one raw element from ``geometry-scan``. Pure."""
    vw, vh = viewport
    x = float(element.get("x", 0.0)) + offset[0]
    y = float(element.get("y", 0.0)) + offset[1]
    width = float(element.get("width", 0.0))
    height = float(element.get("height", 0.0))
    text = str(element.get("text") or "")
    aria = str(element.get("aria") or "")
    class_name = str(element.get("className") or "").lower()

    score = 0.0
    tags: list[str] = []

    text_hit = next((m for m in markers if m in text), "") if len(text) <= weights.text_marker_max_len else ""
    if text_hit:
        score += weights.text_marker
        tags.append(f"text:{text_hit}")
    if element.get("dashed"):
        score += weights.dashed_border
        tags.append("dashed")
    aria_hit = next((m for m in markers if m in aria), "")
    if aria_hit:
        score += weights.aria_marker
        tags.append(f"aria:{aria_hit}")
    class_hit = next((h for h in CLASS_HINTS if h in class_name), "")
    if class_hit:
        score += weights.class_hint
        tags.append(f"class:{class_hit}")

    embed = max(0.0, min(float(element.get("embedPriority") or 0), weights.embed_priority_max))
    if embed:
        score += embed
        tags.append(f"embed:{embed:g}")

    area = width * height
    if weights.widget_area_min <= area <= weights.widget_area_max:
        score += weights.widget_area
        tags.append("widget")

    nav_hit = next((m for m in NAVIGATION_MARKERS if m in text), "")
    if nav_hit:
        score += weights.navigation_penalty
        tags.append(f"nav:{nav_hit}")

    viewport_area = vw * vh
    if viewport_area > 0 and area > weights.oversized_ratio * viewport_area:
        score += weights.oversized_penalty
        tags.append("oversized")

    diagonal = math.hypot(vw, vh)
    if diagonal > 0:
        distance = math.hypot(x - vw / 2, y - vh / 2)
        score -= weights.distance_scale * distance / diagonal

    return GeometryCandidate(
        x=round(x, 1),
        y=round(y, 1),
        score=round(score, 3),
        dom_context=str(element.get("domContext") or "document"),
        frame_context=frame_context,
        reason_tags=tuple(tags),
    )


def rank_candidates(candidates: list[GeometryCandidate], top_n: int = 3) -> list[GeometryCandidate]:
    """Deduplicate by rounded point and context, keep positive scores, return the top N."""
    best: dict[tuple[int, int, str, str], GeometryCandidate] = {}
    for cand in candidates:
        if cand.score <= 0:
            continue
        current = best.get(cand.dedup_key)
        if current is None or cand.score > current.score:
            best[cand.dedup_key] = cand
    ordered = sorted(
        best.values(),
        key=lambda c: (-c.score, c.y, c.x, c.frame_context, c.dom_context),
    )
    return ordered[: max(0, top_n)]


class GeometryClickScorer:
    def __init__(
        self,
        page: Any,
        limits: ScanLimits | None = None,
        weights: GeometryWeights = DEFAULT_WEIGHTS,
    ):
        self.page = page
        self.limits = limits or ScanLimits()
        self.weights = weights

    def scan(self, cfg: DestinationConfig | None) -> list[GeometryCandidate]:
        """Ranked click points across all reachable frames and shadow roots."""
        markers = upload_markers_for(cfg)
        params = {
            "textMarkers": list(markers),
            "classHints": list(CLASS_HINTS),
            "embeddedHosts": [list(pair) for pair in (cfg.embedded_host_selectors if cfg else ())],
            "maxElements": self.limits.geometry_max_elements,
            "maxShadowDepth": self.limits.max_shadow_depth,
        }
        try:
            refs = iter_frames(self.page, self.limits.max_frame_depth, self.limits.max_frames)
        except Exception as e:
            logger.debug(f"[Geometry] Frame walk failed: {e}")
            return []

        viewport: tuple[float, float] | None = None
        scored: list[GeometryCandidate] = []
        for ref in refs:
            data = run_json(ref.frame, GEOMETRY_SCAN, params)
            if data.get("error"):
                continue
            if viewport is None:
                vp = data.get("viewport") or {}
                viewport = (float(vp.get("width") or 0), float(vp.get("height") or 0))
            offset = frame_offset(ref.frame) if not ref.is_main else (0.0, 0.0)
            for element in data.get("elements", []):
                if isinstance(element, dict):
                    scored.append(
                        score_candidate(element, viewport, markers, self.weights, offset, ref.path)
                    )

        ranked = rank_candidates(scored, self.limits.geometry_top_n)
        for cand in ranked:
            logger.debug(f"[Geometry] {cand.describe()}")
        return ranked
