"""Title, description and tag filling once an upload has started."""

from __future__ import annotations

import logging
from typing import Any

from ..browser.page_scripts import FILL_EDITABLE, FILL_INPUT, FOCUS_FIELD
from ..browser.script_runner import run_json
from ..destinations import DestinationConfig
from ..errors import FieldFillError
from ..models import FillSummary, PublishRequest

logger = logging.getLogger(__name__)


def fill_text_field(
    page: Any,
    value: str,
    selectors: tuple[str, ...],
    editable_selector: str | None,
    editable_index: int = 0,
) -> str:
    """Fill one text field; returns a marker.

    Markers: ``input:<selector>``, ``editable``, ``skipped_empty``, ``not_found``
    or ``error``.
    """
    if not value.strip():
        return "skipped_empty"

    if selectors:
        result = run_json(page, FILL_INPUT, {"selectors": list(selectors), "value": value})
        if result.get("marker"):
            return result["marker"]
        if result.get("error"):
            return "error"

    if editable_selector:
        result = run_json(
            page,
            FILL_EDITABLE,
            {"selector": editable_selector, "value": value, "index": editable_index},
        )
        if result.get("filled"):
            return "editable"
        if result.get("error"):
            return "error"
    return "not_found"


def add_tags(page: Any, tags: tuple[str, ...], selectors: tuple[str, ...]) -> int:
    """Type each tag into the tag input followed by Enter; returns tags added."""
    added = 0
    for tag in tags:
        text = tag.strip()
        if not text:
            continue
        focus = run_json(page, FOCUS_FIELD, {"selectors": list(selectors)})
        if not focus.get("focused"):
            logger.debug(f"[Fill] No focusable tag input ({focus.get('error', 'not_found')})")
            break
        try:
            page.keyboard.type(text, delay=20)
            page.keyboard.press("Enter")
        except Exception as e:
            logger.warning(f"[Fill] Typing tag '{text}' failed: {e}")
            break
        added += 1
        page.wait_for_timeout(150)
    return added


def fill_basic_fields(page: Any, request: PublishRequest, cfg: DestinationConfig) -> FillSummary:
    """Fill title, description and tags.

    Raises:
        FieldFillError: Neither title nor description found a field and the
            destination treats that as an error
    """
    title_marker = fill_text_field(page, request.title, cfg.title_selectors, cfg.title_editable_selector)

    # Title and description may share the same contenteditable selector.
    desc_index = 1 if (
        title_marker == "editable" and cfg.description_editable_selector == cfg.title_editable_selector
    ) else 0
    description_marker = fill_text_field(
        page,
        request.description,
        cfg.description_selectors,
        cfg.description_editable_selector,
        desc_index,
    )

    tags = tuple(t for t in request.tags if t.strip())
    tags_added = add_tags(page, tags, cfg.tag_selectors) if tags and cfg.tag_selectors else 0
    summary = FillSummary(title_marker, description_marker, tags_added, len(tags))
    logger.info(
        f"{cfg.tag} [Fill] title={title_marker} desc={description_marker} tags={tags_added}/{len(tags)}"
    )

    if not summary.title_ok and not summary.description_ok:
        both_empty = title_marker == "skipped_empty" and description_marker == "skipped_empty"
        if cfg.fill_failure_is_error and not both_empty:
            raise FieldFillError(
                f"{cfg.name_en}: neither title nor description field could be filled",
                {"title": title_marker, "description": description_marker},
            )
        logger.warning(f"{cfg.tag} [Fill] Title and description not filled")

    if summary.tags_total and summary.tags_added < summary.tags_total:
        logger.warning(f"{cfg.tag} [Fill] Tags partially filled: {tags_added}/{len(tags)}")
    return summary
