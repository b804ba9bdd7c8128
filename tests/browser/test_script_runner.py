"""
Tests for publish_engine.browser.script_runner and page_scripts modules.
"""

from unittest.mock import MagicMock

from publish_engine.browser.page_scripts import (
    SELECTOR_COUNT,
    TEMPLATES,
    UPLOAD_SIGNAL,
)
from publish_engine.browser.script_runner import coerce_result, run_json


class TestTemplates:
    """Test template registry."""

    def test_sources_are_functions(self):
        """Should wrap every body as a single-argument arrow function."""
        for template in TEMPLATES.values():
            assert template.source.startswith("(params) => {")
            assert template.source.rstrip().endswith("}")

    def test_sources_are_unique(self):
        """Should produce a distinct source per template."""
        sources = {t.source for t in TEMPLATES.values()}

        assert len(sources) == len(TEMPLATES)

    def test_key(self):
        """Should version the template key."""
        assert SELECTOR_COUNT.key == "selector-count@v1"


class TestCoerceResult:
    """Test coerce_result function."""

    def test_valid_result_passes(self):
        """Should return the page result unchanged when it matches the schema."""
        result = coerce_result(SELECTOR_COUNT, {"count": 2, "visibleCount": 1})

        assert result == {"count": 2, "visibleCount": 1}

    def test_missing_keys_use_defaults(self):
        """Should fill missing keys from defaults."""
        assert coerce_result(SELECTOR_COUNT, {"count": 3})["visibleCount"] == 0

    def test_non_dict_is_malformed(self):
        """Should replace non-object results with defaults and an error."""
        result = coerce_result(UPLOAD_SIGNAL, None)

        assert result["signal"] == ""
        assert result["error"] == "malformed:NoneType"

    def test_wrong_types_rejected(self):
        """Should reject wrongly typed fields and keep their defaults."""
        result = coerce_result(SELECTOR_COUNT, {"count": "3", "visibleCount": True})

        assert result["count"] == 0
        assert result["visibleCount"] == 0
        assert result["error"] == "schema:count,visibleCount"

    def test_float_accepted_for_int(self):
        """Should accept JS numbers that arrive as floats."""
        assert coerce_result(SELECTOR_COUNT, {"count": 2.0})["count"] == 2.0


class TestRunJson:
    """Test run_json function."""

    def test_passes_source_and_params(self):
        """Should evaluate the template source with the given params."""
        target = MagicMock()
        target.evaluate.return_value = {"signal": "progress:[role='progressbar']"}

        result = run_json(target, UPLOAD_SIGNAL, {"generic": True})

        target.evaluate.assert_called_once_with(UPLOAD_SIGNAL.source, {"generic": True})
        assert result["signal"] == "progress:[role='progressbar']"

    def test_exception_returns_defaults(self):
        """Should turn evaluation errors into defaults with an error marker."""
        target = MagicMock()
        target.evaluate.side_effect = TimeoutError("frame detached")

        result = run_json(target, SELECTOR_COUNT)

        assert result["count"] == 0
        assert result["error"] == "eval:TimeoutError"

    def test_empty_params_default(self):
        """Should pass an empty object when no params are given."""
        target = MagicMock()
        target.evaluate.return_value = {}

        run_json(target, SELECTOR_COUNT)

        target.evaluate.assert_called_once_with(SELECTOR_COUNT.source, {})
