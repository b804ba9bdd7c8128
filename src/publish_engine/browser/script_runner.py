"""
Script execution capability.

Anything with Playwright's ``evaluate(expression, arg)`` signature (a ``Page``, a
``Frame``, or a test fake) can run a template. Results are never trusted blindly:
a thrown evaluation, a non-object result or a field of the wrong type is replaced by
the template's default object with an ``error`` marker, so one bad poll tick never
aborts the caller's loop.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .page_scripts import ScriptTemplate

logger = logging.getLogger(__name__)


class ScriptRunner(Protocol):
    def evaluate(self, expression: str, arg: Any = None) -> Any: ...


def _compatible(default: Any, value: Any) -> bool:
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, (int, float)):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if isinstance(default, str):
        return isinstance(value, str)
    if isinstance(default, list):
        return isinstance(value, list)
    if isinstance(default, dict):
        return isinstance(value, dict)
    return True


def coerce_result(template: ScriptTemplate, raw: Any) -> dict[str, Any]:
    """Validate ``raw`` against the template's default schema."""
    result = dict(template.defaults)
    if not isinstance(raw, dict):
        result["error"] = f"malformed:{type(raw).__name__}"
        return result

    bad_keys = []
    for key, value in raw.items():
        if key in template.defaults and not _compatible(template.defaults[key], value):
            bad_keys.append(key)
            continue
        result[key] = value
    if bad_keys:
        result["error"] = "schema:" + ",".join(sorted(bad_keys))
    return result


def run_json(
    target: ScriptRunner, template: ScriptTemplate, params: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Evaluate ``template`` in ``target`` and return a schema-conforming dict."""
    try:
        raw = target.evaluate(template.source, params or {})
    except Exception as e:
        logger.debug(f"[Script] {template.key} failed: {e}")
        result = dict(template.defaults)
        result["error"] = f"eval:{type(e).__name__}"
        return result

    result = coerce_result(template, raw)
    if "error" in result:
        logger.debug(f"[Script] {template.key} returned {result['error']}")
    return result
