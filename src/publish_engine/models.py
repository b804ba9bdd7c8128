from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class AcquisitionMode(str, Enum):
    REUSED = "reused"
    LAUNCHED_NEW = "launched_new"


@dataclass(frozen=True)
class Session:
    """
    A debuggable browser endpoint owned by one publish attempt.
    Never mutated; re-discovery that moves the port produces a new Session.
    """

    endpoint_port: int
    acquisition_mode: AcquisitionMode
    profile_dir: Path
    host: str = "127.0.0.1"
    pid: int | None = None

    @property
    def endpoint_url(self) -> str:
        return f"http://{self.host}:{self.endpoint_port}"


@dataclass(frozen=True)
class TargetDescriptor:
    expected_url: str
    expected_host: str = ""
    strict: bool = True

    @classmethod
    def for_destination(cls, cfg: Any, strict: bool = True) -> TargetDescriptor:
        return cls(expected_url=cfg.upload_url, expected_host=cfg.target_host, strict=strict)


@dataclass(frozen=True)
class PageProbe:
    """Per-tab snapshot taken on every selection tick."""

    index: int
    url: str
    match_score: int
    exact_match: bool = False
    ready_complete: bool = False
    visible: bool = False
    focused: bool = False
    body_text_len: int = 0
    title: str = ""
    excerpt: str = ""

    @property
    def selection_key(self) -> tuple[int, int, int, int, int, int, int]:
        # Lowest page index wins ties, hence the negation.
        return (
            self.match_score,
            int(self.exact_match),
            int(self.ready_complete),
            int(self.visible),
            int(self.focused),
            int(self.body_text_len > 0),
            -self.index,
        )

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "url": self.url,
            "score": self.match_score,
            "exact": self.exact_match,
            "ready": self.ready_complete,
            "visible": self.visible,
            "focused": self.focused,
            "body_text_len": self.body_text_len,
            "title": self.title,
        }


class GuardState(str, Enum):
    """Readiness classification, listed from highest to lowest priority."""

    BLOCKED = "blocked"
    LOGIN_REQUIRED = "login_required"
    INIT_PENDING = "init_pending"
    READY = "ready"
    PENDING = "pending"


class ReadyKind(str, Enum):
    STRONG = "strong"
    WEAK_EMPTY = "weak_empty"
    WEAK_NO_INTERACTIVE = "weak_no_interactive"
    NONE = "none"

    @property
    def is_weak(self) -> bool:
        return self in (ReadyKind.WEAK_EMPTY, ReadyKind.WEAK_NO_INTERACTIVE)


@dataclass(frozen=True)
class ReadinessProbe:
    title: str = ""
    url: str = ""
    body_text_len: int = 0
    file_input_count: int = 0
    hidden_file_input_count: int = 0
    surface_match_count: int = 0
    blocked_hit: str = ""
    init_hit: str = ""
    login_hit: str = ""
    surface_hit: str = ""
    anchor_hit: bool = False
    interactive_candidate_count: int = 0
    frame_count: int = 0
    shadow_root_count: int = 0
    guard_state: GuardState = GuardState.PENDING
    ready_kind: ReadyKind = ReadyKind.NONE
    error: str = ""

    @classmethod
    def error_default(cls, error: str) -> ReadinessProbe:
        return cls(error=error or "probe_failed")

    def summary(self) -> str:
        parts = [
            f"guard={self.guard_state.value}",
            f"kind={self.ready_kind.value}",
            f"inputs={self.file_input_count}/{self.hidden_file_input_count}",
            f"surface={self.surface_match_count}",
            f"interactive={self.interactive_candidate_count}",
            f"frames={self.frame_count}",
            f"shadow={self.shadow_root_count}",
            f"text_len={self.body_text_len}",
        ]
        for name in ("blocked_hit", "login_hit", "init_hit", "surface_hit"):
            value = getattr(self, name)
            if value:
                parts.append(f"{name}={value}")
        if self.error:
            parts.append(f"error={self.error}")
        return " ".join(parts)


@dataclass(frozen=True)
class DiagnosticEntry:
    stage: str
    subject: str
    outcome: str
    duration_ms: int = 0

    def render(self) -> str:
        head = f"{self.stage}:{self.subject}" if self.subject else self.stage
        return f"{head} {self.outcome}"


@dataclass
class DiagnosticTrail:
    """Append-only, ordered record of every step tried during one attempt."""

    entries: list[DiagnosticEntry] = field(default_factory=list)

    def add(self, stage: str, subject: str, outcome: str, duration_ms: int = 0) -> DiagnosticEntry:
        entry = DiagnosticEntry(stage, subject, outcome, int(duration_ms))
        self.entries.append(entry)
        return entry

    def extend(self, other: DiagnosticTrail) -> None:
        self.entries.extend(other.entries)

    def for_stage(self, stage: str) -> list[DiagnosticEntry]:
        return [e for e in self.entries if e.stage == stage]

    def render(self, sep: str = " | ") -> str:
        return sep.join(e.render() for e in self.entries)

    def to_json_list(self) -> list[dict[str, Any]]:
        return [
            {
                "stage": e.stage,
                "subject": e.subject,
                "outcome": e.outcome,
                "duration_ms": e.duration_ms,
            }
            for e in self.entries
        ]

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class UploadAttemptReport:
    signal: str
    strategy: str
    selector: str
    fast_path: bool
    trail: DiagnosticTrail
    elapsed_ms: int


@dataclass(frozen=True)
class ClickChooserResult:
    opened: bool
    marker: str
    technique: str
    rounds: int
    files_set: bool
    trail: DiagnosticTrail
    elapsed_ms: int


@dataclass(frozen=True)
class GeometryCandidate:
    x: float
    y: float
    score: float
    dom_context: str
    frame_context: str
    reason_tags: tuple[str, ...] = ()

    @property
    def dedup_key(self) -> tuple[int, int, str, str]:
        return (round(self.x), round(self.y), self.dom_context, self.frame_context)

    def describe(self) -> str:
        tags = ",".join(self.reason_tags) or "-"
        return f"({self.x:.0f},{self.y:.0f}) score={self.score:.1f} ctx={self.frame_context}/{self.dom_context} [{tags}]"


@dataclass(frozen=True)
class FillSummary:
    title_marker: str
    description_marker: str
    tags_added: int = 0
    tags_total: int = 0

    @property
    def title_ok(self) -> bool:
        return is_fill_success(self.title_marker)

    @property
    def description_ok(self) -> bool:
        return is_fill_success(self.description_marker)

    def render(self) -> str:
        return (
            f"fill=title:{marker_status(self.title_marker)},"
            f"desc:{marker_status(self.description_marker)},"
            f"tags:{self.tags_added}/{self.tags_total}"
        )


def is_fill_success(marker: str) -> bool:
    return marker.startswith("input:") or marker.startswith("editable")


def marker_status(marker: str) -> str:
    if is_fill_success(marker):
        return "ok"
    if marker == "skipped_empty":
        return "skip"
    return "miss"


@dataclass(frozen=True)
class PublishRequest:
    file_path: Path
    title: str = ""
    description: str = ""
    tags: tuple[str, ...] = ()


class OutcomeStatus(str, Enum):
    PUBLISHED = "published"
    TIMEOUT = "timeout"
    FAILED = "failed"


@dataclass(frozen=True)
class PublishOutcome:
    status: OutcomeStatus
    message: str
    error_code: str | None = None
    hint: str | None = None
    report: UploadAttemptReport | None = None
    fill: FillSummary | None = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.PUBLISHED

    def to_json_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "message": self.message,
            "error_code": self.error_code,
            "hint": self.hint,
            "elapsed_ms": self.elapsed_ms,
        }
        if self.report is not None:
            data["upload"] = {
                "signal": self.report.signal,
                "strategy": self.report.strategy,
                "selector": self.report.selector,
                "fast_path": self.report.fast_path,
                "trail": self.report.trail.to_json_list(),
                "elapsed_ms": self.report.elapsed_ms,
            }
        if self.fill is not None:
            data["fill"] = self.fill.render()
        return data
