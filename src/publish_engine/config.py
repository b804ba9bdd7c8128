"""
Publish Engine - Configuration Module
Centralized configuration from environment variables.

Every tuned constant below was calibrated against a specific destination and may be
stale for new ones. They are read once at import time; components also accept a
``Timeouts`` instance so callers and tests can override them per attempt.
"""

import os
from dataclasses import dataclass
from pathlib import Path


def _get_int(env_names: list[str], fallback: int, minimum: int = 0) -> int:
    for name in env_names:
        value = os.environ.get(name, "").strip()
        if value:
            try:
                return max(minimum, int(value))
            except Exception:
                continue
    return fallback


def _get_float(env_names: list[str], fallback: float, minimum: float = 0.0) -> float:
    for name in env_names:
        value = os.environ.get(name, "").strip()
        if value:
            try:
                return max(minimum, float(value))
            except Exception:
                continue
    return fallback


def _get_bool(name: str, fallback: bool) -> bool:
    value = os.environ.get(name, "").strip().lower()
    if not value:
        return fallback
    return value in ("1", "true", "yes", "on")


# Paths
PROFILES_DIR = Path(
    os.environ.get("PUBLISH_PROFILES_DIR", str(Path.home() / ".multi-publisher" / "profiles"))
)
CHROME_BIN: str | None = os.environ.get("PUBLISH_CHROME_BIN") or None
LOG_FILE: str | None = os.environ.get("PUBLISH_LOG_FILE") or None

# Remote debugging endpoint
DEBUG_HOST = os.environ.get("PUBLISH_DEBUG_HOST", "127.0.0.1")
PORT_RANGE_START = _get_int(["PUBLISH_PORT_RANGE_START"], 9300, minimum=1024)
PORT_RANGE_END = _get_int(["PUBLISH_PORT_RANGE_END"], 9400, minimum=1025)
HTTP_TIMEOUT_S = _get_float(["PUBLISH_HTTP_TIMEOUT_S"], 2.0, minimum=0.1)
LAUNCH_HEADLESS = _get_bool("PUBLISH_HEADLESS", False)

# Polling
FAST_POLL_INTERVAL_MS = _get_int(["PUBLISH_FAST_POLL_INTERVAL_MS"], 200, minimum=20)
QUICK_SURFACE_WAIT_S = _get_float(["PUBLISH_QUICK_SURFACE_WAIT_S"], 2.0)
FAST_SIGNAL_TIMEOUT_S = _get_float(["PUBLISH_FAST_SIGNAL_TIMEOUT_S"], 2.0)
SLOW_SIGNAL_TIMEOUT_S = _get_float(["PUBLISH_SLOW_SIGNAL_TIMEOUT_S"], 6.0)
CHOOSER_EVENT_TIMEOUT_S = _get_float(["PUBLISH_CHOOSER_EVENT_TIMEOUT_S"], 3.0)
READY_TIMEOUT_S = _get_float(["PUBLISH_READY_TIMEOUT_S"], 15.0)
SELF_HEAL_WINDOW_S = _get_float(["PUBLISH_SELF_HEAL_WINDOW_S"], 8.0)
TARGET_ACQUIRE_TIMEOUT_S = _get_float(["PUBLISH_TARGET_ACQUIRE_TIMEOUT_S"], 15.0)
NAVIGATION_SETTLE_S = _get_float(["PUBLISH_NAVIGATION_SETTLE_S"], 5.0)
CHROME_READY_TIMEOUT_S = _get_float(["PUBLISH_CHROME_READY_TIMEOUT_S"], 20.0)
AUTOMATION_TIMEOUT_S = _get_float(["PUBLISH_AUTOMATION_TIMEOUT_S"], 90.0)
CLICK_ROUNDS_BUDGET_S = _get_float(["PUBLISH_CLICK_ROUNDS_BUDGET_S"], 12.0)

# Target selection
STRICT_TARGET_SCORE = _get_int(["PUBLISH_STRICT_TARGET_SCORE"], 70)

# DOM traversal bounds
MAX_FRAME_DEPTH = _get_int(["PUBLISH_MAX_FRAME_DEPTH"], 3)
MAX_FRAMES = _get_int(["PUBLISH_MAX_FRAMES"], 24, minimum=1)
MAX_SHADOW_DEPTH = _get_int(["PUBLISH_MAX_SHADOW_DEPTH"], 4)
MAX_CLICKABLE_ANCESTOR_WALK = _get_int(["PUBLISH_MAX_CLICKABLE_ANCESTOR_WALK"], 6)
GEOMETRY_MAX_ELEMENTS = _get_int(["PUBLISH_GEOMETRY_MAX_ELEMENTS"], 1500, minimum=50)
GEOMETRY_TOP_N = _get_int(["PUBLISH_GEOMETRY_TOP_N"], 3, minimum=1)

# Drag-and-drop payloads are base64 encoded into the page
DRAG_DROP_MAX_BYTES = _get_int(["PUBLISH_DRAG_DROP_MAX_BYTES"], 64 * 1024 * 1024)


@dataclass(frozen=True)
class Timeouts:
    """Per-attempt wait budgets in seconds."""

    poll_interval_s: float = FAST_POLL_INTERVAL_MS / 1000.0
    quick_surface_s: float = QUICK_SURFACE_WAIT_S
    fast_signal_s: float = FAST_SIGNAL_TIMEOUT_S
    slow_signal_s: float = SLOW_SIGNAL_TIMEOUT_S
    chooser_event_s: float = CHOOSER_EVENT_TIMEOUT_S
    ready_s: float = READY_TIMEOUT_S
    self_heal_window_s: float = SELF_HEAL_WINDOW_S
    target_acquire_s: float = TARGET_ACQUIRE_TIMEOUT_S
    navigation_settle_s: float = NAVIGATION_SETTLE_S
    chrome_ready_s: float = CHROME_READY_TIMEOUT_S
    automation_s: float = AUTOMATION_TIMEOUT_S
    click_rounds_budget_s: float = CLICK_ROUNDS_BUDGET_S


@dataclass(frozen=True)
class ScanLimits:
    """Bounds for frame and shadow-root traversal."""

    max_frame_depth: int = MAX_FRAME_DEPTH
    max_frames: int = MAX_FRAMES
    max_shadow_depth: int = MAX_SHADOW_DEPTH
    max_ancestor_walk: int = MAX_CLICKABLE_ANCESTOR_WALK
    geometry_max_elements: int = GEOMETRY_MAX_ELEMENTS
    geometry_top_n: int = GEOMETRY_TOP_N
