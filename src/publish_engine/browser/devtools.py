"""
DevTools protocol client surface.

``DevToolsEndpoint`` covers the HTTP discovery endpoints (``/json/version``,
``/json/list``, ``/json/new``). ``CdpBridge`` wraps a Playwright CDP session for the
raw protocol calls Playwright does not expose: file chooser interception, node-handle
file assignment and trusted mouse input.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.error import URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .. import config
from ..utils.timing import CancelToken, Clock, poll_until

logger = logging.getLogger(__name__)


class DevToolsEndpoint:
    """HTTP discovery endpoints of one debugging port."""

    def __init__(self, port: int, host: str | None = None, timeout_s: float | None = None):
        self.port = int(port)
        self.host = host or config.DEBUG_HOST
        self.timeout_s = timeout_s if timeout_s is not None else config.HTTP_TIMEOUT_S

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def _read_json(self, path: str, method: str = "GET") -> Any:
        req = Request(f"{self.base_url}{path}", method=method)
        with urlopen(req, timeout=self.timeout_s) as resp:
            raw = resp.read().decode("utf-8", "replace")
        return json.loads(raw) if raw else None

    def version(self) -> dict[str, Any] | None:
        """``/json/version`` payload, or None when the port does not answer as DevTools."""
        try:
            data = self._read_json("/json/version")
        except (URLError, OSError, ValueError) as e:
            logger.debug(f"[DevTools] {self.base_url}/json/version unreachable: {e}")
            return None
        if not isinstance(data, dict) or "Browser" not in data:
            return None
        return data

    def is_reachable(self) -> bool:
        return self.version() is not None

    def list_targets(self) -> list[dict[str, Any]]:
        try:
            data = self._read_json("/json/list")
        except (URLError, OSError, ValueError) as e:
            logger.debug(f"[DevTools] {self.base_url}/json/list failed: {e}")
            return []
        return [t for t in data if isinstance(t, dict)] if isinstance(data, list) else []

    def page_targets(self) -> list[dict[str, Any]]:
        return [t for t in self.list_targets() if t.get("type") == "page"]

    def new_target(self, url: str) -> dict[str, Any] | None:
        """Open a new tab at ``url``. Current Chrome only accepts PUT here."""
        path = f"/json/new?{quote(url, safe=':/?&=%#')}"
        for method in ("PUT", "GET"):
            try:
                data = self._read_json(path, method=method)
            except (URLError, OSError, ValueError) as e:
                logger.debug(f"[DevTools] /json/new via {method} failed: {e}")
                continue
            if isinstance(data, dict):
                return data
        return None


class CdpBridge:
    """Raw CDP calls against one page."""

    def __init__(self, page: Any, session: Any | None = None):
        self.page = page
        self._session = session if session is not None else page.context.new_cdp_session(page)
        self._chooser_events: list[dict[str, Any]] = []
        self._listening = False
        self._page_enabled = False

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        result = self._session.send(method, params or {})
        return result if isinstance(result, dict) else {}

    # -- file chooser interception -------------------------------------------------

    def _on_chooser_opened(self, event: dict[str, Any]) -> None:
        self._chooser_events.append(event or {})

    def arm_file_chooser(self) -> None:
        """Start intercepting native file dialogs; clears events from earlier attempts."""
        if not self._listening:
            self._session.on("Page.fileChooserOpened", self._on_chooser_opened)
            self._listening = True
        if not self._page_enabled:
            self.send("Page.enable")
            self._page_enabled = True
        self._chooser_events.clear()
        self.send("Page.setInterceptFileChooserDialog", {"enabled": True})

    def disarm_file_chooser(self) -> None:
        try:
            self.send("Page.setInterceptFileChooserDialog", {"enabled": False})
        except Exception as e:
            logger.debug(f"[CDP] Disabling chooser interception failed: {e}")

    def wait_for_file_chooser(
        self,
        timeout_s: float,
        clock: Clock,
        cancel: CancelToken | None = None,
        interval_s: float | None = None,
    ) -> dict[str, Any] | None:
        """Block until a ``Page.fileChooserOpened`` event arrives or the wait times out."""
        if interval_s is None:
            interval_s = config.FAST_POLL_INTERVAL_MS / 1000.0

        def pending() -> dict[str, Any] | None:
            if self._chooser_events:
                return self._chooser_events.pop(0) or {"backendNodeId": 0}
            return None

        return poll_until(pending, timeout_s, interval_s, clock, cancel)

    # -- DOM -------------------------------------------------------------------------

    def query_selector_node(self, selector: str) -> int:
        """``nodeId`` of the first light-DOM match, 0 when nothing matches."""
        doc = self.send("DOM.getDocument", {"depth": 0})
        root_id = doc.get("root", {}).get("nodeId", 0)
        if not root_id:
            return 0
        result = self.send("DOM.querySelector", {"nodeId": root_id, "selector": selector})
        return int(result.get("nodeId", 0) or 0)

    def set_files_by_backend_node(self, backend_node_id: int, files: list[str]) -> None:
        self.send("DOM.setFileInputFiles", {"files": files, "backendNodeId": int(backend_node_id)})

    def set_files_by_selector(self, selector: str, files: list[str]) -> bool:
        node_id = self.query_selector_node(selector)
        if not node_id:
            return False
        self.send("DOM.setFileInputFiles", {"files": files, "nodeId": node_id})
        return True

    # -- input -----------------------------------------------------------------------

    def dispatch_mouse_click(self, x: float, y: float) -> None:
        """Trusted left click at main-frame viewport coordinates."""
        base = {"x": float(x), "y": float(y), "button": "left", "clickCount": 1}
        self.send("Input.dispatchMouseEvent", {"type": "mouseMoved", "x": float(x), "y": float(y)})
        self.send("Input.dispatchMouseEvent", {"type": "mousePressed", **base})
        self.send("Input.dispatchMouseEvent", {"type": "mouseReleased", **base})

    def detach(self) -> None:
        try:
            self._session.detach()
        except Exception as e:
            logger.debug(f"[CDP] Session detach failed: {e}")
