"""
dualroot run reporting.

TerminalReport guarantees that every run ends with exactly one outcome:
whatever escapes the guarded block is turned into an error outcome, and a
block that ends without recording anything counts as an abnormal
termination. RunReport keeps a JSON audit record of the run.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from dualroot.core.errors import DualRootError
from dualroot.core.logging import get_logger
from dualroot.core.models import OutcomeKind, RunMode

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130

ABNORMAL_TERMINATION = "Terminated abnormally"


@dataclass(frozen=True)
class RunOutcome:
    """The single terminal result of a run."""

    kind: OutcomeKind
    message: str
    exit_code: int
    error: BaseException | None = None

    @property
    def is_error(self) -> bool:
        return self.kind is OutcomeKind.ERROR

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind.name,
            "message": self.message,
            "exit_code": self.exit_code,
        }
        if self.error is not None:
            data["error_type"] = type(self.error).__name__
            if isinstance(self.error, DualRootError):
                data["category"] = self.error.category.value
                data["disk_modified"] = self.error.disk_modified
        return data


@dataclass
class RunReport:
    """Audit record of one run."""

    mode: RunMode
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: datetime | None = None
    root_partition: str | None = None
    geometry: dict[str, Any] = field(default_factory=dict)
    plan: dict[str, Any] = field(default_factory=dict)
    steps: list[dict[str, Any]] = field(default_factory=list)
    outcome: dict[str, Any] = field(default_factory=dict)

    def add_step(self, name: str, **details: Any) -> None:
        self.steps.append(
            {"step": name, "timestamp": datetime.now().isoformat(), **details}
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "mode": self.mode.value,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": (
                (self.ended_at - self.started_at).total_seconds()
                if self.ended_at
                else None
            ),
            "root_partition": self.root_partition,
            "geometry": self.geometry,
            "plan": self.plan,
            "steps": self.steps,
            "outcome": self.outcome,
        }

    def save(self, path: Path) -> None:
        """Save report to file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


class TerminalReport:
    """
    Scoped guard around a run.

    The outcome defaults to an abnormal termination unless the block
    records one deliberately. Exceptions leaving the block are converted
    into an outcome and do not propagate.
    """

    def __init__(self, report: RunReport | None = None, report_path: Path | None = None) -> None:
        self.report = report
        self.report_path = report_path
        self.outcome: RunOutcome | None = None

    def _record(self, outcome: RunOutcome) -> RunOutcome:
        if self.outcome is not None:
            raise RuntimeError(
                f"Outcome already recorded ({self.outcome.kind.name}: {self.outcome.message})"
            )
        self.outcome = outcome
        return outcome

    def succeed(self, message: str) -> RunOutcome:
        return self._record(RunOutcome(OutcomeKind.SUCCESS, message, EXIT_OK))

    def inform(self, message: str) -> RunOutcome:
        return self._record(RunOutcome(OutcomeKind.INFO, message, EXIT_OK))

    def fail(
        self,
        message: str,
        exit_code: int = EXIT_ERROR,
        error: BaseException | None = None,
    ) -> RunOutcome:
        return self._record(RunOutcome(OutcomeKind.ERROR, message, exit_code, error))

    def __enter__(self) -> TerminalReport:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        if self.outcome is None:
            outcome = self._outcome_for(exc_val)
        else:
            outcome = self.outcome
            if exc_val is not None:
                logger.error(
                    "Exception after outcome was recorded",
                    outcome=outcome.kind.name,
                    exc_info=exc_val,
                )

        log_method = logger.error if outcome.is_error else logger.info
        log_method("Run finished", outcome=outcome.kind.name, message=outcome.message)

        self._save_report(outcome)
        return True

    @property
    def final_outcome(self) -> RunOutcome:
        """The recorded outcome; only available once the guarded block has exited."""
        if self.outcome is None:
            raise RuntimeError("No outcome recorded yet")
        return self.outcome

    def _outcome_for(self, exc_val: BaseException | None) -> RunOutcome:
        if exc_val is None:
            return self.fail(ABNORMAL_TERMINATION)
        if isinstance(exc_val, DualRootError) and exc_val.informational:
            return self.inform(str(exc_val))
        if isinstance(exc_val, DualRootError):
            return self.fail(str(exc_val), error=exc_val)
        if isinstance(exc_val, KeyboardInterrupt):
            return self.fail(
                f"{ABNORMAL_TERMINATION}: interrupted",
                exit_code=EXIT_INTERRUPTED,
                error=exc_val,
            )
        logger.error("Unexpected failure", exc_info=exc_val)
        return self.fail(f"{ABNORMAL_TERMINATION}: {exc_val}", error=exc_val)

    def _save_report(self, outcome: RunOutcome) -> None:
        if self.report is None:
            return
        self.report.ended_at = datetime.now()
        self.report.outcome = outcome.to_dict()
        if self.report_path is None:
            return
        try:
            self.report.save(self.report_path)
        except OSError as e:
            logger.warning("Could not write run report", path=str(self.report_path), error=str(e))
