"""
Tests for publish_engine.models module.
"""

from pathlib import Path

from publish_engine.models import (
    AcquisitionMode,
    DiagnosticTrail,
    FillSummary,
    GeometryCandidate,
    OutcomeStatus,
    PageProbe,
    PublishOutcome,
    ReadinessProbe,
    ReadyKind,
    Session,
    UploadAttemptReport,
    marker_status,
)


class TestSession:
    """Test Session dataclass."""

    def test_endpoint_url(self):
        """Should build the HTTP endpoint from host and port."""
        session = Session(9333, AcquisitionMode.REUSED, Path("/tmp/p"))

        assert session.endpoint_url == "http://127.0.0.1:9333"


class TestPageProbe:
    """Test PageProbe selection key."""

    def test_score_dominates(self):
        """Should rank by score before any other property."""
        low = PageProbe(0, "a", 70, ready_complete=True, visible=True, focused=True, body_text_len=10)
        high = PageProbe(1, "b", 90)

        assert high.selection_key > low.selection_key

    def test_lower_index_wins_tie(self):
        """Should prefer the lower page index when everything else ties."""
        first = PageProbe(0, "a", 100, exact_match=True)
        second = PageProbe(3, "a", 100, exact_match=True)

        assert max([second, first], key=lambda p: p.selection_key) is first


class TestDiagnosticTrail:
    """Test DiagnosticTrail class."""

    def test_render_keeps_order(self):
        """Should render entries in insertion order."""
        trail = DiagnosticTrail()
        trail.add("A", "input[type='file']", "count=0")
        trail.add("B", "", "files_set")

        assert trail.render() == "A:input[type='file'] count=0 | B files_set"
        assert len(trail) == 2

    def test_for_stage(self):
        """Should filter by stage."""
        trail = DiagnosticTrail()
        trail.add("A", "x", "miss")
        trail.add("B", "y", "hit")

        assert [e.subject for e in trail.for_stage("B")] == ["y"]

    def test_extend(self):
        """Should append another trail's entries."""
        trail = DiagnosticTrail()
        other = DiagnosticTrail()
        other.add("D", "round1", "pointer")

        trail.extend(other)

        assert trail.to_json_list()[0]["stage"] == "D"


class TestFillSummary:
    """Test FillSummary and marker helpers."""

    def test_render(self):
        """Should render ok, skip and miss statuses."""
        summary = FillSummary("input:input[placeholder*='标题']", "skipped_empty", 1, 2)

        assert summary.render() == "fill=title:ok,desc:skip,tags:1/2"

    def test_editable_is_success(self):
        """Should count editable fills as success."""
        assert FillSummary("editable", "not_found").title_ok
        assert marker_status("not_found") == "miss"
        assert marker_status("error") == "miss"


class TestReadiness:
    """Test readiness value types."""

    def test_weak_kinds(self):
        """Should flag only the weak kinds."""
        assert ReadyKind.WEAK_EMPTY.is_weak
        assert ReadyKind.WEAK_NO_INTERACTIVE.is_weak
        assert not ReadyKind.STRONG.is_weak
        assert not ReadyKind.NONE.is_weak

    def test_error_default(self):
        """Should carry an error marker on failed probes."""
        probe = ReadinessProbe.error_default("")

        assert probe.error == "probe_failed"
        assert "error=probe_failed" in probe.summary()


class TestGeometryCandidate:
    """Test GeometryCandidate."""

    def test_dedup_key_rounds(self):
        """Should treat sub-pixel differences as the same point."""
        a = GeometryCandidate(10.2, 20.4, 50, "main", "main")
        b = GeometryCandidate(9.8, 19.6, 40, "main", "main")

        assert a.dedup_key == b.dedup_key


class TestPublishOutcome:
    """Test PublishOutcome serialization."""

    def test_to_json_dict(self):
        """Should include upload report and fill summary when present."""
        trail = DiagnosticTrail()
        trail.add("B", "input[type='file']", "files_set")
        report = UploadAttemptReport("url:/post", "B", "input[type='file']", True, trail, 1200)
        outcome = PublishOutcome(
            OutcomeStatus.PUBLISHED,
            "url:/post;fill=title:ok,desc:ok,tags:0/0",
            report=report,
            fill=FillSummary("editable", "editable"),
            elapsed_ms=3000,
        )

        data = outcome.to_json_dict()

        assert outcome.ok
        assert data["status"] == "published"
        assert data["upload"]["strategy"] == "B"
        assert data["upload"]["trail"][0]["outcome"] == "files_set"
        assert data["fill"] == "fill=title:ok,desc:ok,tags:0/0"

    def test_failed_not_ok(self):
        """Should not report failures as ok."""
        assert not PublishOutcome(OutcomeStatus.FAILED, "x").ok
