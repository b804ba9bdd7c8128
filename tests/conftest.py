"""
Shared test doubles.

Pages and frames dispatch ``evaluate`` calls by script template name, so each test
only declares the handlers it cares about. A template without a handler raises,
which exercises the script runner's safe-default path exactly like a broken page.
"""

from types import SimpleNamespace

import pytest

from publish_engine.browser.page_scripts import TEMPLATES
from publish_engine.config import Timeouts

TEMPLATE_BY_SOURCE = {t.source: name for name, t in TEMPLATES.items()}


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.sleeps.append(seconds)
            self.now += seconds


class FakeFrame:
    def __init__(self, handlers=None, url="about:blank", box=None):
        self.handlers = dict(handlers or {})
        self.url = url
        self.child_frames: list["FakeFrame"] = []
        self.parent_frame = None
        self.box = box or {"x": 0.0, "y": 0.0, "width": 800.0, "height": 600.0}
        self.calls: list[tuple[str, dict]] = []

    def add_child(self, child: "FakeFrame") -> "FakeFrame":
        child.parent_frame = self
        self.child_frames.append(child)
        return child

    def frame_element(self):
        return SimpleNamespace(bounding_box=lambda: self.box)

    def evaluate(self, expression, arg=None):
        name = TEMPLATE_BY_SOURCE.get(expression, expression)
        self.calls.append((name, arg))
        handler = self.handlers.get(name)
        if handler is None:
            raise RuntimeError(f"no handler for {name}")
        result = handler(arg) if callable(handler) else handler
        if isinstance(result, Exception):
            raise result
        return result

    def called(self, name: str) -> list[dict]:
        return [arg for n, arg in self.calls if n == name]


class FakeKeyboard:
    def __init__(self):
        self.events: list[tuple[str, str]] = []

    def type(self, text, delay=0):
        self.events.append(("type", text))

    def press(self, key):
        self.events.append(("press", key))


class FakePage:
    def __init__(
        self,
        url="about:blank",
        handlers=None,
        ready_state="complete",
        visible=True,
        focused=False,
        body_text_len=100,
        title="",
    ):
        self.main_frame = FakeFrame(handlers, url=url)
        self.ready_state = ready_state
        self.visible = visible
        self.focused = focused
        self.body_text_len = body_text_len
        self.title = title
        self.keyboard = FakeKeyboard()
        self.gotos: list[str] = []
        self.reloads = 0
        self.waited: list[float] = []
        self.fronted = False
        self.main_frame.handlers.setdefault("page-probe", self._page_probe)

    def _page_probe(self, _params):
        return {
            "url": self.url,
            "title": self.title,
            "readyState": self.ready_state,
            "visible": self.visible,
            "focused": self.focused,
            "bodyTextLen": self.body_text_len,
            "excerpt": "",
        }

    @property
    def url(self) -> str:
        return self.main_frame.url

    @property
    def handlers(self) -> dict:
        return self.main_frame.handlers

    def evaluate(self, expression, arg=None):
        return self.main_frame.evaluate(expression, arg)

    def called(self, name: str) -> list[dict]:
        return self.main_frame.called(name)

    def goto(self, url, **kwargs):
        self.gotos.append(url)
        self.main_frame.url = url

    def reload(self, **kwargs):
        self.reloads += 1

    def wait_for_load_state(self, *args, **kwargs):
        return None

    def wait_for_timeout(self, ms):
        self.waited.append(ms)

    def bring_to_front(self):
        self.fronted = True


class FakeContext:
    def __init__(self, pages=None, page_factory=None):
        self.pages = list(pages or [])
        self.page_factory = page_factory or (lambda: FakePage())

    def new_page(self):
        page = self.page_factory()
        self.pages.append(page)
        return page


class FakeBridge:
    """Stands in for ``CdpBridge``; chooser events are queued by the test or a page handler."""

    def __init__(self, set_by_selector=True, arm_error=None):
        self.pending: list[dict] = []
        self.set_by_selector = set_by_selector
        self.arm_error = arm_error
        self.calls: list[tuple] = []
        self.on_mouse_click = None
        self.intervals: list = []

    def arm_file_chooser(self):
        if self.arm_error is not None:
            raise self.arm_error
        self.calls.append(("arm",))

    def disarm_file_chooser(self):
        self.calls.append(("disarm",))

    def open_chooser(self, backend_node_id=42):
        self.pending.append({"backendNodeId": backend_node_id})

    def wait_for_file_chooser(self, timeout_s, clock, cancel=None, interval_s=None):
        self.calls.append(("wait", timeout_s))
        self.intervals.append(interval_s)
        if self.pending:
            return self.pending.pop(0)
        clock.sleep(timeout_s)
        return None

    def set_files_by_backend_node(self, backend_node_id, files):
        self.calls.append(("set_backend", backend_node_id, tuple(files)))

    def set_files_by_selector(self, selector, files):
        self.calls.append(("set_selector", selector, tuple(files)))
        if callable(self.set_by_selector):
            return self.set_by_selector(selector)
        return self.set_by_selector

    def dispatch_mouse_click(self, x, y):
        self.calls.append(("mouse", x, y))
        if self.on_mouse_click is not None:
            self.on_mouse_click(x, y)

    def detach(self):
        self.calls.append(("detach",))

    def named(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timeouts():
    return Timeouts()


@pytest.fixture
def bridge():
    return FakeBridge()
