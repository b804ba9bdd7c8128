"""Frame tree traversal with fixed depth and count bounds."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

MAIN_FRAME_PATH = "main"


@dataclass(frozen=True)
class FrameRef:
    frame: Any
    path: str
    depth: int

    @property
    def is_main(self) -> bool:
        return self.depth == 0


def iter_frames(page: Any, max_depth: int, max_frames: int) -> list[FrameRef]:
    """Breadth-first list of ``page``'s frames, main frame first.

    Frames deeper than ``max_depth`` or beyond ``max_frames`` are skipped. A detached
    frame only drops its own subtree.
    """
    refs: list[FrameRef] = []
    queue: deque[FrameRef] = deque([FrameRef(page.main_frame, MAIN_FRAME_PATH, 0)])
    while queue and len(refs) < max_frames:
        ref = queue.popleft()
        refs.append(ref)
        if ref.depth >= max_depth:
            continue
        try:
            children = list(ref.frame.child_frames)
        except Exception as e:
            logger.debug(f"[Frames] child_frames failed at {ref.path}: {e}")
            continue
        for idx, child in enumerate(children):
            queue.append(FrameRef(child, f"{ref.path}/{idx}", ref.depth + 1))
    return refs


def find_frame(page: Any, path: str, max_depth: int, max_frames: int) -> Any | None:
    for ref in iter_frames(page, max_depth, max_frames):
        if ref.path == path:
            return ref.frame
    return None


def frame_offset(frame: Any) -> tuple[float, float]:
    """Top-left of ``frame`` in main-frame viewport coordinates."""
    if getattr(frame, "parent_frame", None) is None:
        return 0.0, 0.0
    try:
        box = frame.frame_element().bounding_box()
    except Exception as e:
        logger.debug(f"[Frames] frame_element bounding box failed: {e}")
        return 0.0, 0.0
    if not box:
        return 0.0, 0.0
    return float(box.get("x", 0.0)), float(box.get("y", 0.0))
