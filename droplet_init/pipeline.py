from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .state_store import is_step_completed, mark_step_completed, unmark_step_completed, utc_now

logger = logging.getLogger(__name__)


class FatalStepError(RuntimeError):
    """A hard dependency of the run failed; the pipeline stops."""


class StepOutcome(str, Enum):
    SUCCESS = "success"
    SOFT_FAILURE = "soft_failure"
    HARD_FAILURE = "hard_failure"
    SKIPPED = "skipped"


class Step(Protocol):
    """A single best-effort step."""

    step_id: str

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        ...


@dataclass
class StepResult:
    step_id: str
    outcome: StepOutcome
    messages: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"step_id": self.step_id, "outcome": self.outcome.value, "messages": list(self.messages)}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "StepResult":
        return cls(step_id=d["step_id"], outcome=StepOutcome(d["outcome"]), messages=list(d.get("messages") or []))


@dataclass
class RunReport:
    started_at: str
    finished_at: Optional[str] = None
    steps: List[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.outcome != StepOutcome.HARD_FAILURE for r in self.steps)

    def outcome_of(self, step_id: str) -> Optional[StepOutcome]:
        for r in self.steps:
            if r.step_id == step_id:
                return r.outcome
        return None

    def failed_steps(self) -> List[str]:
        return [r.step_id for r in self.steps if r.outcome in {StepOutcome.SOFT_FAILURE, StepOutcome.HARD_FAILURE}]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "ok": self.ok,
            "steps": [r.to_dict() for r in self.steps],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RunReport":
        return cls(
            started_at=d.get("started_at") or "",
            finished_at=d.get("finished_at"),
            steps=[StepResult.from_dict(s) for s in d.get("steps") or []],
        )


def note_soft_failure(state: Dict[str, Any], message: str) -> None:
    """Record a non-fatal problem inside the currently running step."""

    logger.warning("Non-fatal: %s", message)
    exe = state.setdefault("execution", {})
    exe.setdefault("step_notes", []).append(message)


def note(state: Dict[str, Any], message: str) -> None:
    """Record an informational message on the current step's result."""

    logger.info("%s", message)
    exe = state.setdefault("execution", {})
    exe.setdefault("step_infos", []).append(message)


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    report: RunReport
    ran_steps: List[str]
    skipped_steps: List[str]


def run_pipeline(
    *,
    state: Dict[str, Any],
    steps: Sequence[Step],
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
) -> PipelineResult:
    """Run steps in order, turning each into a StepResult.

    - FatalStepError stops the run (hard_failure).
    - Any other exception is logged and the run continues (soft_failure).
    - note_soft_failure() inside a step also yields soft_failure.
    - Steps that succeeded before are skipped unless force, or unless the
      step sets always_run.
    """

    report = RunReport(started_at=utc_now())
    ran: List[str] = []
    skipped: List[str] = []

    started = start_at is None

    for step in steps:
        if not started:
            if step.step_id == start_at:
                started = True
            else:
                continue

        exe = state.setdefault("execution", {})
        exe["current_step"] = step.step_id
        exe["step_notes"] = []
        exe["step_infos"] = []

        always = bool(getattr(step, "always_run", False))
        if (not force) and (not always) and is_step_completed(state, step.step_id):
            logger.info("Skipping step %s (already completed)", step.step_id)
            skipped.append(step.step_id)
            report.steps.append(StepResult(step.step_id, StepOutcome.SKIPPED, ["already completed"]))
        else:
            logger.info("Running step %s", step.step_id)
            state, step_result = _run_step(step, state)
            report.steps.append(step_result)
            ran.append(step.step_id)

            if step_result.outcome == StepOutcome.SUCCESS:
                mark_step_completed(state, step.step_id)
            else:
                unmark_step_completed(state, step.step_id)

            logger.info("Step %s: %s", step.step_id, step_result.outcome.value)
            if step_result.outcome == StepOutcome.HARD_FAILURE:
                logger.error("Aborting run after %s", step.step_id)
                break

        if stop_after is not None and step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    exe = state.setdefault("execution", {})
    exe["current_step"] = None
    exe.pop("step_notes", None)
    exe.pop("step_infos", None)
    report.finished_at = utc_now()
    return PipelineResult(state=state, report=report, ran_steps=ran, skipped_steps=skipped)


def _run_step(step: Step, state: Dict[str, Any]) -> tuple[Dict[str, Any], StepResult]:
    try:
        state = step.run(state)
    except FatalStepError as e:
        logger.exception("Step %s failed fatally", step.step_id)
        _record_error(state, step.step_id, e)
        return state, StepResult(step.step_id, StepOutcome.HARD_FAILURE, _messages(state) + [str(e)])
    except Exception as e:
        logger.exception("Step %s failed (continuing)", step.step_id)
        _record_error(state, step.step_id, e)
        return state, StepResult(step.step_id, StepOutcome.SOFT_FAILURE, _messages(state) + [str(e)])

    notes = (state.get("execution") or {}).get("step_notes") or []
    outcome = StepOutcome.SOFT_FAILURE if notes else StepOutcome.SUCCESS
    return state, StepResult(step.step_id, outcome, _messages(state))


def _messages(state: Dict[str, Any]) -> List[str]:
    exe = state.get("execution") or {}
    return list(exe.get("step_infos") or []) + list(exe.get("step_notes") or [])


def _record_error(state: Dict[str, Any], step_id: str, e: BaseException) -> None:
    state.setdefault("execution", {}).setdefault("errors", []).append(
        {"step": step_id, "error": str(e), "at": utc_now()}
    )
