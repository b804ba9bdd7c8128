"""
Tests for publish_engine.upload.geometry module.

Scoring runs against frozen element snapshots, the same shape the geometry-scan
script returns.
"""

import pytest

from publish_engine.destinations import WECHAT
from publish_engine.models import GeometryCandidate
from publish_engine.upload.geometry import (
    DEFAULT_WEIGHTS,
    UPLOAD_MARKERS,
    GeometryClickScorer,
    rank_candidates,
    score_candidate,
    upload_markers_for,
)

from conftest import FakeFrame, FakePage

VIEWPORT = (1000.0, 800.0)

UPLOAD_ZONE = {
    "x": 500,
    "y": 400,
    "width": 300,
    "height": 200,
    "text": "上传视频",
    "aria": "",
    "className": "upload-area",
    "dashed": True,
    "embedPriority": 0,
    "tag": "div",
    "domContext": "shadow:wujie-app",
}
NAV_LINK = {
    "x": 60,
    "y": 40,
    "width": 80,
    "height": 30,
    "text": "首页",
    "className": "menu-item",
    "tag": "a",
    "domContext": "document",
}
PAGE_WRAPPER = {
    "x": 500,
    "y": 400,
    "width": 1000,
    "height": 800,
    "text": "",
    "className": "upload-page",
    "tag": "div",
    "domContext": "document",
}


def _snapshot():
    return {"viewport": {"width": VIEWPORT[0], "height": VIEWPORT[1]}, "elements": [NAV_LINK, UPLOAD_ZONE, PAGE_WRAPPER], "scanned": 3}


class TestScoreCandidate:
    """Test score_candidate function."""

    def test_upload_zone_features(self):
        """Should add text, dashed, class and widget weights at the viewport centre."""
        cand = score_candidate(UPLOAD_ZONE, VIEWPORT, UPLOAD_MARKERS)

        w = DEFAULT_WEIGHTS
        assert cand.score == pytest.approx(w.text_marker + w.dashed_border + w.class_hint + w.widget_area)
        assert cand.reason_tags == ("text:上传视频", "dashed", "class:upload", "widget")
        assert cand.dom_context == "shadow:wujie-app"

    def test_navigation_penalty(self):
        """Should penalize navigation chrome below zero."""
        cand = score_candidate(NAV_LINK, VIEWPORT, UPLOAD_MARKERS)

        assert cand.score < 0
        assert "nav:首页" in cand.reason_tags

    def test_oversized_penalty(self):
        """Should penalize elements covering most of the viewport."""
        cand = score_candidate(PAGE_WRAPPER, VIEWPORT, UPLOAD_MARKERS)

        assert "oversized" in cand.reason_tags
        assert cand.score < DEFAULT_WEIGHTS.class_hint

    def test_distance_lowers_score(self):
        """Should prefer points closer to the viewport centre."""
        centre = score_candidate({**UPLOAD_ZONE}, VIEWPORT, UPLOAD_MARKERS)
        corner = score_candidate({**UPLOAD_ZONE, "x": 950, "y": 760}, VIEWPORT, UPLOAD_MARKERS)

        assert corner.score < centre.score

    def test_long_text_ignored(self):
        """Should not award the text marker to large text blocks."""
        element = {**UPLOAD_ZONE, "text": "上传视频 " + "x" * 200}

        assert not any(t.startswith("text:") for t in score_candidate(element, VIEWPORT, UPLOAD_MARKERS).reason_tags)

    def test_embed_priority_capped(self):
        """Should cap the embedded-host bonus."""
        element = {**UPLOAD_ZONE, "embedPriority": 500}

        assert "embed:30" in score_candidate(element, VIEWPORT, UPLOAD_MARKERS).reason_tags

    def test_frame_offset_applied(self):
        """Should translate frame-local points into page coordinates."""
        cand = score_candidate(UPLOAD_ZONE, VIEWPORT, UPLOAD_MARKERS, offset=(20, 100), frame_context="main/0")

        assert (cand.x, cand.y) == (520, 500)
        assert cand.frame_context == "main/0"


class TestRankCandidates:
    """Test rank_candidates function."""

    def test_drops_non_positive(self):
        """Should drop candidates at or below zero."""
        cands = [GeometryCandidate(1, 1, 0, "d", "main"), GeometryCandidate(2, 2, -5, "d", "main")]

        assert rank_candidates(cands) == []

    def test_dedupe_keeps_best(self):
        """Should keep the best-scored candidate per rounded point and context."""
        low = GeometryCandidate(100.2, 100.4, 10, "document", "main")
        high = GeometryCandidate(99.8, 99.7, 40, "document", "main")
        other_frame = GeometryCandidate(100, 100, 20, "document", "main/0")

        ranked = rank_candidates([low, high, other_frame])

        assert ranked == [high, other_frame]

    def test_top_n(self):
        """Should return at most top_n candidates."""
        cands = [GeometryCandidate(i * 10, 0, 50 - i, "d", "main") for i in range(6)]

        assert len(rank_candidates(cands, top_n=3)) == 3

    def test_deterministic_tie_break(self):
        """Should order equal scores by position regardless of input order."""
        a = GeometryCandidate(10, 50, 30, "d", "main")
        b = GeometryCandidate(10, 20, 30, "d", "main")
        c = GeometryCandidate(5, 20, 30, "d", "main")

        assert rank_candidates([a, b, c]) == rank_candidates([c, a, b]) == [c, b, a]


class TestGeometryClickScorer:
    """Test GeometryClickScorer.scan."""

    def test_scan_ranks_snapshot(self):
        """Should return the upload zone first and drop negative candidates."""
        page = FakePage(WECHAT.upload_url, handlers={"geometry-scan": _snapshot()})

        ranked = GeometryClickScorer(page).scan(WECHAT)

        assert ranked[0].x == 500 and ranked[0].y == 400
        assert all(c.score > 0 for c in ranked)
        assert not any("nav:首页" in c.reason_tags for c in ranked)

    def test_scan_is_idempotent(self):
        """Should return the same list for the same snapshot."""
        page = FakePage(WECHAT.upload_url, handlers={"geometry-scan": _snapshot()})
        scorer = GeometryClickScorer(page)

        assert scorer.scan(WECHAT) == scorer.scan(WECHAT)

    def test_scan_passes_embedded_hosts(self):
        """Should hand the destination's embedded hosts to the script."""
        page = FakePage(WECHAT.upload_url, handlers={"geometry-scan": _snapshot()})

        GeometryClickScorer(page).scan(WECHAT)

        params = page.called("geometry-scan")[0]
        assert ["wujie-app", 30] in params["embeddedHosts"]
        assert params["textMarkers"][: len(WECHAT.click_text_markers)] == list(WECHAT.click_text_markers)

    def test_scan_offsets_child_frames(self):
        """Should translate iframe elements by the frame's position."""
        page = FakePage(WECHAT.upload_url, handlers={"geometry-scan": {"viewport": {"width": 1000, "height": 800}, "elements": []}})
        child = FakeFrame(
            {"geometry-scan": {"viewport": {"width": 600, "height": 400}, "elements": [{**UPLOAD_ZONE, "x": 300, "y": 200}]}},
            box={"x": 200, "y": 200, "width": 600, "height": 400},
        )
        page.main_frame.add_child(child)

        ranked = GeometryClickScorer(page).scan(WECHAT)

        assert (ranked[0].x, ranked[0].y, ranked[0].frame_context) == (500, 400, "main/0")

    def test_scan_skips_failed_frames(self):
        """Should return nothing when every frame fails."""
        page = FakePage(WECHAT.upload_url, handlers={"geometry-scan": RuntimeError("detached")})

        assert GeometryClickScorer(page).scan(WECHAT) == []


class TestUploadMarkers:
    """Test upload_markers_for function."""

    def test_destination_first_and_unique(self):
        """Should put destination markers first without duplicates."""
        markers = upload_markers_for(WECHAT)

        assert markers[0] == WECHAT.click_text_markers[0]
        assert len(markers) == len(set(markers))

    def test_generic(self):
        """Should fall back to the generic markers."""
        assert upload_markers_for(None) == UPLOAD_MARKERS
