"""
Tests for publish_engine.probe.readiness module.

Tests guard classification, frame merging and the readiness wait with self-heal.
"""

import itertools

import pytest

from publish_engine.destinations import BILIBILI, DOUYIN, WECHAT
from publish_engine.errors import (
    LoginRequiredError,
    TargetPageBlockedError,
    TargetPageNotReadyError,
)
from publish_engine.models import GuardState, ReadyKind
from publish_engine.probe.readiness import (
    ReadinessProber,
    build_readiness_probe,
    classify_guard_state,
    classify_ready_kind,
    merge_frame_results,
)

from conftest import FakeFrame, FakePage

READY_FRAME = {
    "url": DOUYIN.upload_url,
    "title": "抖音创作者中心",
    "bodyTextLen": 800,
    "fileInputCount": 0,
    "hiddenFileInputCount": 1,
    "surfaceMatchCount": 2,
    "interactiveCandidateCount": 1,
    "anchorHit": True,
    "surfaceHit": "上传视频",
}


class TestClassifyGuardState:
    """Test classify_guard_state function."""

    @pytest.mark.parametrize(
        "blocked, login, init, anchor, interactive",
        list(itertools.product(["", "访问过于频繁"], ["", "扫码登录"], ["", "加载中"], [False, True], [0, 2])),
    )
    def test_priority(self, blocked, login, init, anchor, interactive):
        """Should apply Blocked > LoginRequired > InitPending > Ready > Pending."""
        state = classify_guard_state(blocked, login, init, anchor, interactive)

        if blocked:
            assert state == GuardState.BLOCKED
        elif login:
            assert state == GuardState.LOGIN_REQUIRED
        elif init:
            assert state == GuardState.INIT_PENDING
        elif anchor and interactive:
            assert state == GuardState.READY
        else:
            assert state == GuardState.PENDING

    def test_blocked_page_with_file_input_is_not_ready(self):
        """Should report a rate-limit page as blocked even with an upload control."""
        merged = merge_frame_results([{**READY_FRAME, "blockedHit": "访问过于频繁", "fileInputCount": 1}])

        probe = build_readiness_probe(merged)

        assert probe.guard_state == GuardState.BLOCKED
        assert probe.ready_kind == ReadyKind.NONE


class TestClassifyReadyKind:
    """Test classify_ready_kind function."""

    def test_strong(self):
        """Should be strong with an anchor and an interactive candidate."""
        assert classify_ready_kind(GuardState.READY, 500, True, 1) == ReadyKind.STRONG

    def test_weak_empty(self):
        """Should be weak-empty when body text is at or below the minimum."""
        assert classify_ready_kind(GuardState.PENDING, 40, False, 0, 40) == ReadyKind.WEAK_EMPTY
        assert classify_ready_kind(GuardState.PENDING, 0, True, 0) == ReadyKind.WEAK_EMPTY

    def test_weak_no_interactive(self):
        """Should be weak-no-interactive with an anchor but nothing clickable."""
        assert classify_ready_kind(GuardState.PENDING, 500, True, 0) == ReadyKind.WEAK_NO_INTERACTIVE

    def test_none_for_blocking_states(self):
        """Should never call a blocked, login or init page weak."""
        for state in (GuardState.BLOCKED, GuardState.LOGIN_REQUIRED, GuardState.INIT_PENDING):
            assert classify_ready_kind(state, 0, False, 0) == ReadyKind.NONE

    def test_none_with_text_and_no_anchor(self):
        """Should be none for a populated page without upload anchors."""
        assert classify_ready_kind(GuardState.PENDING, 500, False, 0) == ReadyKind.NONE


class TestMergeFrameResults:
    """Test merge_frame_results function."""

    def test_sums_counts_and_keeps_main_url(self):
        """Should add counts across frames and keep the main frame's URL."""
        main = {"url": "https://main", "title": "Main", "bodyTextLen": 10, "frameCount": 1}
        child = {
            "url": "https://child",
            "bodyTextLen": 300,
            "hiddenFileInputCount": 1,
            "interactiveCandidateCount": 1,
            "anchorHit": True,
            "surfaceHit": "上传视频",
        }

        merged = merge_frame_results([main, child])

        assert merged["url"] == "https://main"
        assert merged["bodyTextLen"] == 310
        assert merged["anchorHit"] is True
        assert merged["surfaceHit"] == "上传视频"
        assert merged["frameCount"] == 1

    def test_failed_frame_is_skipped(self):
        """Should record frame errors without losing other frames."""
        merged = merge_frame_results([{"error": "eval:Error"}, READY_FRAME])

        assert merged["errors"] == ["frame0:eval:Error"]
        assert merged["allFailed"] is False
        assert merged["interactiveCandidateCount"] == 1

    def test_all_failed_gives_error_probe(self):
        """Should produce an error probe when every frame failed."""
        probe = build_readiness_probe(merge_frame_results([{"error": "eval:Error"}]))

        assert probe.error == "frame0:eval:Error"
        assert probe.guard_state == GuardState.PENDING


def _page(url, readiness, child=None):
    page = FakePage(url, handlers={"readiness-probe": readiness, "location-replace": {"ok": True}})
    if child is not None:
        page.main_frame.add_child(child)
    return page


class TestReadinessProber:
    """Test ReadinessProber."""

    def test_scan_merges_child_frames(self, clock, timeouts):
        """Should count upload controls found only inside an iframe."""
        child = FakeFrame({"readiness-probe": READY_FRAME}, url="https://embed")
        page = _page(DOUYIN.upload_url, {"url": DOUYIN.upload_url, "bodyTextLen": 20}, child)

        probe = ReadinessProber(page, timeouts, clock=clock).scan(DOUYIN)

        assert probe.guard_state == GuardState.READY
        assert probe.url == DOUYIN.upload_url
        assert probe.frame_count == 1
        assert child.called("readiness-probe")[0]["surfaceSelectors"] == list(DOUYIN.surface_selectors)

    def test_ready_immediately(self, clock, timeouts):
        """Should return without waiting when the page is ready."""
        page = _page(DOUYIN.upload_url, READY_FRAME)

        probe = ReadinessProber(page, timeouts, clock=clock).wait_for_upload_ready(DOUYIN)

        assert probe.ready_kind == ReadyKind.STRONG
        assert clock.now == 0
        assert page.gotos == []

    def test_navigates_when_off_target(self, clock, timeouts):
        """Should navigate to the upload URL first when the page is elsewhere."""
        page = _page("https://creator.douyin.com/creator-micro/home", READY_FRAME)

        ReadinessProber(page, timeouts, clock=clock).wait_for_upload_ready(DOUYIN)

        assert page.gotos == [DOUYIN.upload_url]

    def test_blocked_raises(self, clock, timeouts):
        """Should raise TargetPageBlockedError on a blocked marker."""
        page = _page(DOUYIN.upload_url, {**READY_FRAME, "blockedHit": "访问过于频繁"})

        with pytest.raises(TargetPageBlockedError, match="访问过于频繁"):
            ReadinessProber(page, timeouts, clock=clock).wait_for_upload_ready(DOUYIN)

    def test_login_raises(self, clock, timeouts):
        """Should raise LoginRequiredError on a login marker."""
        page = _page(DOUYIN.upload_url, {"url": DOUYIN.upload_url, "bodyTextLen": 50, "loginHit": "扫码登录"})

        with pytest.raises(LoginRequiredError):
            ReadinessProber(page, timeouts, clock=clock).wait_for_upload_ready(DOUYIN)

    def test_not_ready_raises_after_deadline(self, clock, timeouts):
        """Should raise TargetPageNotReadyError once the ready window passes."""
        page = _page(BILIBILI.upload_url, {"url": BILIBILI.upload_url, "bodyTextLen": 500})

        with pytest.raises(TargetPageNotReadyError) as exc_info:
            ReadinessProber(page, timeouts, clock=clock).wait_for_upload_ready(BILIBILI)

        assert exc_info.value.code.value == "TARGET_PAGE_NOT_READY"
        assert timeouts.ready_s <= clock.now <= timeouts.ready_s + timeouts.poll_interval_s

    def test_ready_on_wrong_path_keeps_waiting(self, clock, timeouts):
        """Should not accept a ready surface on a URL outside the upload paths."""
        elsewhere = {**READY_FRAME, "url": "https://creator.douyin.com/creator-micro/data"}
        page = _page(DOUYIN.upload_url, elsewhere)

        with pytest.raises(TargetPageNotReadyError):
            ReadinessProber(page, timeouts, clock=clock).wait_for_upload_ready(DOUYIN)

    def test_self_heals_once_on_weak_ready(self, clock, timeouts):
        """Should replace and reload once, then accept the healed page."""
        healed = []

        def readiness(params):
            if healed:
                return {**READY_FRAME, "url": WECHAT.upload_url}
            return {"url": WECHAT.upload_url, "bodyTextLen": 12}

        def replace(params):
            healed.append(params["url"])
            return {"ok": True}

        page = _page(WECHAT.upload_url, readiness)
        page.handlers["location-replace"] = replace
        prober = ReadinessProber(page, timeouts, clock=clock)

        probe = prober.wait_for_upload_ready(WECHAT)

        assert probe.guard_state == GuardState.READY
        assert healed == [WECHAT.upload_url]
        assert page.reloads == 1
        assert "self_heal" in prober.trail.render()

    def test_self_heal_runs_at_most_once(self, clock, timeouts):
        """Should give up without a second heal and continue for lenient destinations."""
        page = _page(WECHAT.upload_url, {"url": WECHAT.upload_url, "bodyTextLen": 12})
        prober = ReadinessProber(page, timeouts, clock=clock)

        probe = prober.wait_for_upload_ready(WECHAT)

        assert probe.ready_kind == ReadyKind.WEAK_EMPTY
        assert len(page.called("location-replace")) == 1
        assert page.reloads == 1
        limit = timeouts.ready_s + timeouts.self_heal_window_s + 2 * timeouts.poll_interval_s
        assert clock.now <= limit

    def test_no_self_heal_when_disabled(self, clock, timeouts):
        """Should not self-heal destinations that do not opt in."""
        page = _page(BILIBILI.upload_url, {"url": BILIBILI.upload_url, "bodyTextLen": 0})

        with pytest.raises(TargetPageNotReadyError):
            ReadinessProber(page, timeouts, clock=clock).wait_for_upload_ready(BILIBILI)

        assert page.called("location-replace") == []

    def test_surface_brief(self, clock, timeouts):
        """Should report a surface marker within the short window."""
        page = _page(WECHAT.upload_url, {"url": WECHAT.upload_url, "bodyTextLen": 80, "surfaceHit": "拖拽"})

        assert ReadinessProber(page, timeouts, clock=clock).wait_for_surface_brief(WECHAT)

    def test_surface_brief_times_out(self, clock, timeouts):
        """Should return False after the short window without raising."""
        page = _page(WECHAT.upload_url, {"url": WECHAT.upload_url, "bodyTextLen": 80})

        assert not ReadinessProber(page, timeouts, clock=clock).wait_for_surface_brief(WECHAT)
        assert clock.now <= timeouts.quick_surface_s + timeouts.poll_interval_s


class TestEnsureUploadContext:
    """Test ReadinessProber.ensure_upload_context."""

    def test_on_target_does_not_navigate(self, clock, timeouts):
        """Should leave a page already on the upload path alone."""
        page = _page(DOUYIN.upload_url, READY_FRAME)

        ReadinessProber(page, timeouts, clock=clock).ensure_upload_context(DOUYIN)

        assert page.gotos == []

    def test_navigation_failure_raises(self, clock, timeouts):
        """Should raise TargetPageNotReadyError when the redirect fails."""
        page = _page("https://www.douyin.com/", READY_FRAME)

        def broken_goto(url, **kwargs):
            raise RuntimeError("net::ERR_CONNECTION_RESET")

        page.goto = broken_goto
        prober = ReadinessProber(page, timeouts, clock=clock)

        with pytest.raises(TargetPageNotReadyError) as exc_info:
            prober.ensure_upload_context(DOUYIN)

        assert exc_info.value.details["expected_url"] == DOUYIN.upload_url
        assert [e.outcome for e in prober.trail.for_stage("guard")] == ["off_target"]
