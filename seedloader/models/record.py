"""Commit result and run report models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import datetime

from .pipeline import RunStatus


@dataclass(frozen=True)
class CommitRow:
    """One row reported back by a commit collaborator."""
    success: bool
    id: Optional[str] = None
    created: bool = False
    index: Optional[int] = None  # Position within the submitted batch
    external_id: Optional[str] = None  # Value of the strategy's external id field
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "id": self.id,
            "created": self.created,
            "index": self.index,
            "external_id": self.external_id,
            "errors": list(self.errors),
        }


@dataclass
class CommitResponse:
    """Result of committing one batch."""
    rows: List[CommitRow] = field(default_factory=list)


@dataclass(frozen=True)
class CommitOutcome:
    """A record the platform accepted."""
    index: int
    business_key: str
    platform_id: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "index": self.index,
            "business_key": self.business_key,
            "platform_id": self.platform_id,
        }


@dataclass(frozen=True)
class CommitFailure:
    """A record the platform rejected (or never reported on)."""
    index: int
    business_key: str
    messages: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "index": self.index,
            "business_key": self.business_key,
            "messages": list(self.messages),
        }


@dataclass
class BatchResult:
    """Reconciled outcome of committing a step's records."""
    created: List[CommitOutcome] = field(default_factory=list)
    updated: List[CommitOutcome] = field(default_factory=list)
    failures: List[CommitFailure] = field(default_factory=list)

    @property
    def identifier_map(self) -> Dict[str, str]:
        """Business key -> platform id for every committed record."""
        result: Dict[str, str] = {}
        for outcome in self.created + self.updated:
            result.setdefault(outcome.business_key, outcome.platform_id)
        return result

    @property
    def ok_count(self) -> int:
        return len(self.created) + len(self.updated)

    @property
    def attempted(self) -> int:
        return len(self.created) + len(self.updated) + len(self.failures)

    def extend(self, other: "BatchResult") -> None:
        """Append another batch's outcome."""
        self.created.extend(other.created)
        self.updated.extend(other.updated)
        self.failures.extend(other.failures)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "created": [o.to_dict() for o in self.created],
            "updated": [o.to_dict() for o in self.updated],
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass(frozen=True)
class StepReport:
    """What happened in a single step."""
    entity_type: str
    data_source: str
    data_key: Optional[str] = None
    mode: str = "direct"
    generator: Optional[str] = None
    config_file: Optional[str] = None
    attempted: int = 0
    ok: int = 0
    errors: int = 0
    elapsed_ms: int = 0
    dry_run: bool = False
    failures: List[CommitFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "object": self.entity_type,
            "dataFile": self.data_source,
            "dataKey": self.data_key,
            "mode": self.mode,
            "generator": self.generator,
            "configFile": self.config_file,
            "attempted": self.attempted,
            "ok": self.ok,
            "errors": self.errors,
            "elapsedMs": self.elapsed_ms,
            "dryRun": self.dry_run,
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class RunReport:
    """A complete load run: step reports plus totals."""
    env: str = "dev"
    dry_run: bool = False
    status: RunStatus = RunStatus.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    steps: List[StepReport] = field(default_factory=list)
    fatal_error: Optional[Dict[str, Any]] = None
    total_elapsed_ms: int = 0
    _finalized: bool = field(default=False, init=False, repr=False)

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def attempted(self) -> int:
        return sum(s.attempted for s in self.steps)

    @property
    def ok(self) -> int:
        return sum(s.ok for s in self.steps)

    @property
    def errors(self) -> int:
        return sum(s.errors for s in self.steps)

    def add_step(self, step: StepReport) -> None:
        """Append a step report; reports are append-only until finalized."""
        if self._finalized:
            raise RuntimeError("Run report is finalized; no further steps may be added")
        self.steps.append(step)

    def record_fatal(
        self,
        message: str,
        entity_type: Optional[str] = None,
        business_key: Optional[str] = None
    ) -> None:
        """Record the error that aborted the run."""
        if self._finalized:
            raise RuntimeError("Run report is finalized")
        self.fatal_error = {
            "object": entity_type,
            "business_key": business_key,
            "message": message,
        }

    def finalize(self, finished_at: datetime, status: RunStatus) -> None:
        """Close the report and compute the total elapsed time."""
        if self._finalized:
            return
        self.finished_at = finished_at
        self.status = status
        if self.started_at:
            self.total_elapsed_ms = int((finished_at - self.started_at).total_seconds() * 1000)
        self._finalized = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "env": self.env,
            "dryRun": self.dry_run,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "steps": [s.to_dict() for s in self.steps],
            "totals": {
                "attempted": self.attempted,
                "ok": self.ok,
                "errors": self.errors,
            },
            "totalElapsedMs": self.total_elapsed_ms,
            "fatalError": self.fatal_error,
        }
