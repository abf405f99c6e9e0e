"""Pipeline orchestrator: discover once, fan out analyzers, rank survivors.

A run moves through three states, fresh every time:

- ``DISCOVERING``: gather research data (unless given) and run discovery.
  Whatever list comes back, possibly empty, moves the run on.
- ``ANALYZING``: every candidate is analyzed concurrently, and every stage
  of a candidate runs concurrently.  A candidate's fate is decided once all of
  its stages have settled: a failed *required* stage drops the candidate, a
  failed optional stage just leaves its field empty.  Candidates never affect
  each other.
- ``RANKED``: survivors, in the order their analysis finished, are stably
  sorted by recommendation (STRONG_BUY, BUY, WATCH, PASS, then anything else).

Only a failure of the discovery step itself aborts the run, as
``PipelineFailure``.  Stage errors never do; anything else escaping analysis
is a bug and is reported the same way.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from dealscout.analyzers import STAGES, AnalysisStage, run_stage
from dealscout.config import get_settings
from dealscout.discovery import discover
from dealscout.errors import AnalysisError, PipelineFailure
from dealscout.gatherer import gather_research_data
from dealscout.llm import LLMClient
from dealscout.models import AcquisitionThesis, Candidate, FounderProfile, PipelineResult

log = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], None]
Gatherer = Callable[[], Awaitable[str]]

# Stages every composite thesis needs a record from.
_THESIS_CORE = frozenset({"financials", "portfolio_fit"})


class RunState(str, Enum):
    DISCOVERING = "DISCOVERING"
    ANALYZING = "ANALYZING"
    RANKED = "RANKED"


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PipelineVariant:
    """Which analyzers run per candidate, and which of them must succeed."""
    name: str
    stages: tuple[str, ...]
    required: frozenset[str]
    description: str = ""

    def __post_init__(self) -> None:
        unknown = [s for s in self.stages if s not in STAGES]
        if unknown:
            raise ValueError(f"Unknown stages in variant {self.name!r}: {unknown}")
        if not self.required <= set(self.stages):
            raise ValueError(f"Variant {self.name!r} requires stages it does not run")
        if not _THESIS_CORE <= self.required:
            raise ValueError(f"Variant {self.name!r} must require financials and portfolio_fit")

    def optional(self) -> tuple[str, ...]:
        return tuple(s for s in self.stages if s not in self.required)


VARIANTS: dict[str, PipelineVariant] = {
    "full": PipelineVariant(
        name="full",
        stages=("financials", "portfolio_fit", "sauce", "founder"),
        required=frozenset({"financials", "portfolio_fit", "sauce", "founder"}),
        description="All four analyzers, all required.",
    ),
    "sauce": PipelineVariant(
        name="sauce",
        stages=("financials", "portfolio_fit", "sauce"),
        required=frozenset({"financials", "portfolio_fit", "sauce"}),
        description="Financials, portfolio fit and sauce; founder is a placeholder.",
    ),
    "founder": PipelineVariant(
        name="founder",
        stages=("financials", "portfolio_fit", "founder"),
        required=frozenset({"financials", "portfolio_fit", "founder"}),
        description="Financials, portfolio fit and founder research; no sauce score.",
    ),
}


def get_variant(name: str) -> PipelineVariant:
    try:
        return VARIANTS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown pipeline variant {name!r}; choose from {sorted(VARIANTS)}") from None


def configured_variant() -> PipelineVariant:
    """The variant named by ``SCOUT_PIPELINE_VARIANT``.

    A bad setting is a ``PipelineFailure`` so callers still get a failure response.
    """
    name = get_settings().pipeline_variant
    try:
        return get_variant(name)
    except ValueError as exc:
        raise PipelineFailure(f"Invalid SCOUT_PIPELINE_VARIANT: {exc}") from exc


# ---------------------------------------------------------------------------
# Per-candidate fan-out / fan-in
# ---------------------------------------------------------------------------


@dataclass
class CandidateOutcome:
    """Settled results of every stage for one candidate."""
    candidate: Candidate
    records: dict[str, Any] = field(default_factory=dict)
    failures: dict[str, AnalysisError] = field(default_factory=dict)

    def failed_required(self, variant: PipelineVariant) -> list[str]:
        return [s for s in variant.stages if s in self.failures and s in variant.required]


async def analyze_candidate(
    client: LLMClient,
    candidate: Candidate,
    stages: list[AnalysisStage],
    semaphore: asyncio.Semaphore | None = None,
) -> CandidateOutcome:
    """Run *stages* concurrently for one candidate and wait for all to settle."""
    async def _run(stage: AnalysisStage):
        if semaphore is None:
            return await run_stage(stage, client, candidate)
        async with semaphore:
            return await run_stage(stage, client, candidate)

    results = await asyncio.gather(*(_run(s) for s in stages), return_exceptions=True)

    outcome = CandidateOutcome(candidate=candidate)
    for stage, result in zip(stages, results):
        if isinstance(result, AnalysisError):
            outcome.failures[stage.name] = result
        elif isinstance(result, BaseException):
            raise result
        else:
            outcome.records[stage.name] = result
    return outcome


def build_thesis(outcome: CandidateOutcome, variant: PipelineVariant) -> AcquisitionThesis | None:
    """Merge a candidate's records, or return None if a required stage failed."""
    if outcome.failed_required(variant):
        return None
    records = outcome.records
    candidate = outcome.candidate
    return AcquisitionThesis(
        target=candidate,
        financials=records["financials"],
        portfolio_fit=records["portfolio_fit"],
        founder=records.get("founder") or FounderProfile.placeholder(candidate),
        sauce=records.get("sauce"),
    )


def rank_theses(theses: list[AcquisitionThesis]) -> list[AcquisitionThesis]:
    """Stable sort by recommendation priority; unknown recommendations go last."""
    return sorted(theses, key=lambda t: t.rank)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ScoutPipeline:
    """Runs discovery, per-candidate analysis, and ranking.

    The client is shared by every stage call and never reconfigured during a
    run.  ``state`` reflects the current run only.
    """

    def __init__(
        self,
        client: LLMClient,
        variant: PipelineVariant | None = None,
        gatherer: Gatherer | None = None,
        max_concurrency: int | None = None,
        data_source: str | None = None,
        on_event: EventCallback | None = None,
    ):
        settings = get_settings()
        self.client = client
        self.variant = variant or configured_variant()
        self.gatherer = gatherer or gather_research_data
        self.max_concurrency = max_concurrency if max_concurrency is not None else settings.max_concurrency
        self.data_source = data_source or settings.data_source
        self.on_event = on_event
        self.state: RunState | None = None

    def _emit(self, event: dict[str, Any]) -> None:
        if self.on_event is not None:
            self.on_event(event)

    def _enter(self, state: RunState) -> None:
        self.state = state
        log.info("Pipeline state: %s", state.value)
        self._emit({"type": "state", "state": state.value})

    async def run(self, research_blob: str | None = None, timeout: float | None = None) -> PipelineResult:
        """Run the pipeline once; ``timeout`` (seconds) bounds the whole run."""
        if not timeout:
            return await self._run(research_blob)
        try:
            return await asyncio.wait_for(self._run(research_blob), timeout)
        except asyncio.TimeoutError as exc:
            raise PipelineFailure(f"Pipeline did not finish within {timeout:.0f}s") from exc

    async def _run(self, research_blob: str | None) -> PipelineResult:
        self._enter(RunState.DISCOVERING)
        try:
            if research_blob is None:
                research_blob = await self.gatherer()
            candidates = await discover(self.client, research_blob, self.data_source)
        except Exception as exc:
            log.exception("Discovery failed")
            raise PipelineFailure(f"Discovery failed: {exc}") from exc
        self._emit({"type": "discovered", "count": len(candidates)})

        self._enter(RunState.ANALYZING)
        try:
            theses = await self._analyze_all(candidates)
        except Exception as exc:
            log.exception("Analysis failed unexpectedly")
            raise PipelineFailure(f"Analysis failed: {exc}") from exc

        self._enter(RunState.RANKED)
        ranked = rank_theses(theses)
        log.info("Pipeline complete: %d/%d targets analyzed", len(ranked), len(candidates))
        return PipelineResult(
            targets_found=len(candidates),
            analysis_complete=len(ranked),
            acquisition_theses=ranked,
            timestamp=datetime.now(UTC).isoformat(),
            data_source=self.data_source,
            variant=self.variant.name,
        )

    async def _analyze_all(self, candidates: list[Candidate]) -> list[AcquisitionThesis]:
        stages = [STAGES[name] for name in self.variant.stages]
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency > 0 else None
        tasks = [
            asyncio.create_task(analyze_candidate(self.client, c, stages, semaphore))
            for c in candidates
        ]

        theses: list[AcquisitionThesis] = []
        try:
            for next_done in asyncio.as_completed(tasks):
                outcome = await next_done
                thesis = self._settle(outcome)
                if thesis is not None:
                    theses.append(thesis)
        finally:
            for task in tasks:
                task.cancel()
        return theses

    def _settle(self, outcome: CandidateOutcome) -> AcquisitionThesis | None:
        candidate = outcome.candidate
        failed = outcome.failed_required(self.variant)
        for name, err in outcome.failures.items():
            level = logging.WARNING if name in failed else logging.INFO
            log.log(level, "Stage %s failed for %s (%s): %s", name, candidate.id, candidate.company_name, err)
        if failed:
            log.warning("Dropping target %s (%s): required stages failed: %s",
                        candidate.id, candidate.company_name, ", ".join(failed))
        thesis = build_thesis(outcome, self.variant)
        self._emit({
            "type": "candidate",
            "id": candidate.id,
            "name": candidate.company_name,
            "ok": thesis is not None,
            "failedStages": sorted(outcome.failures),
        })
        return thesis


async def run_pipeline(
    client: LLMClient,
    research_blob: str | None = None,
    *,
    variant: PipelineVariant | None = None,
    gatherer: Gatherer | None = None,
    timeout: float | None = None,
    on_event: EventCallback | None = None,
) -> PipelineResult:
    """Convenience wrapper: build a ``ScoutPipeline`` and run it once."""
    pipeline = ScoutPipeline(client, variant=variant, gatherer=gatherer, on_event=on_event)
    return await pipeline.run(research_blob, timeout=timeout)


async def run_with_deadline(
    client: LLMClient,
    research_blob: str | None = None,
    *,
    variant: PipelineVariant | None = None,
    gatherer: Gatherer | None = None,
    timeout: float | None = None,
    on_event: EventCallback | None = None,
) -> PipelineResult:
    """Like ``run_pipeline`` but bounded by ``SCOUT_RUN_TIMEOUT`` unless *timeout* is given."""
    if timeout is None:
        timeout = get_settings().run_timeout_seconds
    return await run_pipeline(
        client, research_blob, variant=variant, gatherer=gatherer, timeout=timeout, on_event=on_event,
    )
