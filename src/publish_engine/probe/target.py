"""
Target prober and page selector.

Picks the tab that is the upload page among everything open in the browser context.
Scoring is a pure function of the URLs; selection breaks ties with page state so a
stale background tab never wins over the live foreground tab at the same URL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .. import config
from ..browser.page_scripts import PAGE_PROBE
from ..browser.script_runner import run_json
from ..config import Timeouts
from ..errors import TargetPageNotFoundError
from ..models import DiagnosticTrail, PageProbe, TargetDescriptor
from ..utils.timing import CancelToken, Clock, Deadline, SystemClock, poll_until

logger = logging.getLogger(__name__)

SCORE_EXACT = 100
SCORE_CONTAINS_URL = 90
SCORE_CONTAINS_HOST = 70
SCORE_ANY_HTTP = 10


def _normalize(url: str) -> str:
    return (url or "").strip().rstrip("/")


def score_url_match(url: str, expected_url: str, expected_host: str = "") -> int:
    """Match score of ``url`` against the expected destination.

    >>> score_url_match("https://a.com/up", "https://a.com/up", "a.com")
    100
    >>> score_url_match("https://b.com/", "https://a.com/up", "a.com")
    10
    """
    current = _normalize(url)
    expected = _normalize(expected_url)
    if not current:
        return 0
    if expected and current == expected:
        return SCORE_EXACT
    if expected and expected in current:
        return SCORE_CONTAINS_URL
    if expected_host and expected_host in current:
        return SCORE_CONTAINS_HOST
    if current.startswith(("http://", "https://")):
        return SCORE_ANY_HTTP
    return 0


def build_page_probe(index: int, data: dict[str, Any], descriptor: TargetDescriptor) -> PageProbe:
    url = str(data.get("url") or "")
    return PageProbe(
        index=index,
        url=url,
        match_score=score_url_match(url, descriptor.expected_url, descriptor.expected_host),
        exact_match=bool(url) and _normalize(url) == _normalize(descriptor.expected_url),
        ready_complete=data.get("readyState") == "complete",
        visible=bool(data.get("visible")),
        focused=bool(data.get("focused")),
        body_text_len=int(data.get("bodyTextLen") or 0),
        title=str(data.get("title") or ""),
        excerpt=str(data.get("excerpt") or ""),
    )


def select_best_page(probes: list[PageProbe]) -> PageProbe | None:
    """Highest ``selection_key`` wins; the lowest page index breaks exact ties."""
    if not probes:
        return None
    return max(probes, key=lambda p: p.selection_key)


def is_acceptable(probe: PageProbe | None, descriptor: TargetDescriptor, min_score: int) -> bool:
    if probe is None:
        return False
    if descriptor.strict and descriptor.expected_host:
        return probe.match_score >= min_score
    return probe.match_score > 0


@dataclass
class TargetSelection:
    page: Any
    probe: PageProbe
    probes: list[PageProbe]
    trail: DiagnosticTrail = field(default_factory=DiagnosticTrail)

    @property
    def index(self) -> int:
        return self.probe.index


class TargetProber:
    """Finds, or creates, the page matching a ``TargetDescriptor`` in one browser context."""

    def __init__(
        self,
        context: Any,
        timeouts: Timeouts | None = None,
        clock: Clock | None = None,
        cancel: CancelToken | None = None,
        min_score: int | None = None,
    ):
        self.context = context
        self.timeouts = timeouts or Timeouts()
        self.clock = clock or SystemClock()
        self.cancel = cancel
        self.min_score = config.STRICT_TARGET_SCORE if min_score is None else min_score

    def probe_pages(self, descriptor: TargetDescriptor) -> tuple[list[Any], list[PageProbe]]:
        pages = list(self.context.pages)
        probes = []
        for idx, page in enumerate(pages):
            data = run_json(page, PAGE_PROBE)
            if data.get("error") and not data.get("url"):
                # The page may be mid-navigation; its URL is still known to Playwright.
                data["url"] = getattr(page, "url", "") or ""
            probes.append(build_page_probe(idx, data, descriptor))
        return pages, probes

    def _try_select(self, descriptor: TargetDescriptor, trail: DiagnosticTrail) -> TargetSelection | None:
        pages, probes = self.probe_pages(descriptor)
        best = select_best_page(probes)
        if not is_acceptable(best, descriptor, self.min_score):
            return None
        trail.add("target", best.url, f"selected index={best.index} score={best.match_score}")
        return TargetSelection(page=pages[best.index], probe=best, probes=probes, trail=trail)

    def _poll(self, descriptor: TargetDescriptor, trail: DiagnosticTrail, deadline: Deadline) -> TargetSelection | None:
        return poll_until(
            lambda: self._try_select(descriptor, trail),
            min(self.timeouts.navigation_settle_s, deadline.remaining()),
            self.timeouts.poll_interval_s,
            self.clock,
            self.cancel,
        )

    def _navigate(self, page: Any, url: str) -> None:
        page.goto(url, wait_until="domcontentloaded", timeout=int(self.timeouts.navigation_settle_s * 1000))

    def acquire(self, descriptor: TargetDescriptor) -> TargetSelection:
        """Select the target page, redirecting an existing tab once or opening a new one.

        Raises:
            TargetPageNotFoundError: Still no acceptable page after a page was created
        """
        deadline = Deadline(self.timeouts.target_acquire_s, self.clock)
        trail = DiagnosticTrail()
        redirected = False
        created = False

        while True:
            selection = self._poll(descriptor, trail, deadline)
            if selection is not None:
                self._bring_to_front(selection.page)
                logger.info(
                    f"[Target] Selected tab {selection.index} score={selection.probe.match_score} url={selection.probe.url}"
                )
                return selection
            if deadline.expired() or (self.cancel is not None and self.cancel.cancelled):
                break

            pages, probes = self.probe_pages(descriptor)
            if not redirected and pages:
                redirected = True
                best = select_best_page(probes)
                page = pages[best.index] if best else pages[0]
                logger.info(f"[Target] Redirecting tab {best.index if best else 0} to {descriptor.expected_url}")
                try:
                    self._navigate(page, descriptor.expected_url)
                    trail.add("target", descriptor.expected_url, "redirected")
                except Exception as e:
                    trail.add("target", descriptor.expected_url, f"redirect_failed={type(e).__name__}")
                    logger.warning(f"[Target] Redirect failed: {e}")
                continue
            if not created:
                created = True
                logger.info(f"[Target] Opening new tab at {descriptor.expected_url}")
                try:
                    page = self.context.new_page()
                    self._navigate(page, descriptor.expected_url)
                    trail.add("target", descriptor.expected_url, "created")
                except Exception as e:
                    trail.add("target", descriptor.expected_url, f"create_failed={type(e).__name__}")
                    logger.warning(f"[Target] New tab failed: {e}")
                continue
            break

        _, probes = self.probe_pages(descriptor)
        observed = [p.url for p in probes]
        raise TargetPageNotFoundError(
            f"No tab matches {descriptor.expected_url}; observed {observed}",
            {
                "expected_url": descriptor.expected_url,
                "observed_urls": observed,
                "probes": [p.to_json_dict() for p in probes],
                "trail": trail.to_json_list(),
            },
        )

    @staticmethod
    def _bring_to_front(page: Any) -> None:
        try:
            page.bring_to_front()
        except Exception as e:
            logger.debug(f"[Target] bring_to_front failed: {e}")
