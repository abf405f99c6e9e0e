"""Per-candidate analysis stages.

Architecture
------------
Every discovered candidate is analyzed by up to four independent stages,
each a single LLM call with its own role prompt and output contract:

- **Financials**: current MRR/ARR, margin and churn estimates, 12- and
  36-month projections, profitability and data-confidence scores.
- **Portfolio fit**: fit against the sibling portfolio businesses, synergies,
  integration complexity, and the STRONG_BUY / BUY / WATCH / PASS
  recommendation used for ranking.
- **Sauce**: the differentiator rubric: four weighted sub-scores.  The
  ``total`` is recomputed here (30/25/25/20, half-up to one decimal) and the
  model's own arithmetic is discarded.
- **Founder**: founder background, prior exits, openness to selling, best
  approach angle, and red flags.

A stage serializes the candidate into the user message, calls the generator,
extracts one JSON object, stamps ``targetId`` and validates it into the
stage's record model.  Generator errors become ``GenerationFailed``; anything
wrong with the payload becomes ``InvalidPayload``.  Nothing is retried here.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable

from pydantic import ValidationError

from dealscout.errors import ExtractError, GenerationFailed, InvalidPayload
from dealscout.extractor import extract
from dealscout.llm import LLMClient
from dealscout.models import (
    Candidate,
    FinancialAnalysis,
    FounderProfile,
    PortfolioFitAnalysis,
    SauceScore,
    RecordModel,
)

log = logging.getLogger(__name__)

PORTFOLIO = (
    "Idea Browser (startup idea validation, $150k+/mo)",
    "LCA (design agency for AI companies, $700k+/mo)",
    "Boring Marketing (marketing agency, $200k+/mo)",
    "Boring Ads (advertising productized service)",
    "Ready4Remodel (renovation/real estate community)",
    "Other AI-native businesses",
)

SAUCE_WEIGHTS: dict[str, Decimal] = {
    "community_strength": Decimal("0.30"),
    "unique_positioning": Decimal("0.25"),
    "founder_authenticity": Decimal("0.25"),
    "distribution_moat": Decimal("0.20"),
}

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

FINANCIALS_PROMPT = """\
You are the financial analyst on an acquisition team that buys indie and \
bootstrapped SaaS and digital businesses.

Project real revenue and growth potential for the business you are given. \
The numbers usually come from public social posts, so confidence varies; say so.

Assess:
- Current revenue (MRR and ARR)
- Growth rate and trajectory
- Gross margin (SaaS is typically 70-90%, services 40-60%)
- Churn, stated or inferred
- Revenue potential once our playbook is applied: community features, \
better pricing and upsells, cross-promotion with the portfolio, leaner \
operations.  Typical uplift is 20-50%.
- How confident you are in these numbers

Projection windows: 12 months is a conservative estimate, 36 months is \
aggressive but realistic.

Scores are integers from 1 to 10.  Margin and churn are percentages.

Respond with ONLY valid JSON:
{
  "currentMRR": <number>,
  "currentARR": <number>,
  "estimatedGrossMargin": <percent>,
  "estimatedChurn": <percent>,
  "growthTrajectory": "<e.g. 8% MoM, steady>",
  "revenueProjection12Months": <number>,
  "revenueProjection36Months": <number>,
  "profitabilityScore": <1-10>,
  "cashFlowHealth": "<one sentence>",
  "dataConfidence": <1-10>,
  "analysis": "<2-4 sentences explaining the projections>"
}
"""

PORTFOLIO_FIT_PROMPT = """\
You are checking how well an acquisition target fits our portfolio.

PORTFOLIO:
""" + "\n".join(f"- {p}" for p in PORTFOLIO) + """

A good fit:
- Runs a community-based business model
- Can cross-promote with existing portfolio companies and shares their audience
- Uses AI or could use it
- Serves the creator economy or developers
- Has a founder open to collaboration
- Can be bundled with other portfolio products

Assess how well it fits, which specific synergies exist, whether \
cross-promotion would work, how hard integration would be (technical debt, \
culture clash), whether it could merge into an existing portfolio company, \
and the revenue upside after acquisition.

Be opinionated and finish with a recommendation:
- STRONG_BUY: clear fit, profitable, easy to integrate, act now
- BUY: good fit with manageable risks
- WATCH: interesting but not yet convincing
- PASS: poor fit or too risky

Respond with ONLY valid JSON:
{
  "cultureFitScore": <1-10>,
  "synergiesWithPortfolio": ["<specific synergy>", "..."],
  "potentialCrossPromo": ["<specific cross-promotion>", "..."],
  "integrationComplexity": "<Easy|Medium|Hard>",
  "canMergeWithExisting": "<portfolio company or null>",
  "estimatedRevenueUpsideAfterAcquisition": <number>,
  "recommendation": "<STRONG_BUY|BUY|WATCH|PASS>",
  "reasoning": "<2-3 sentences>"
}
"""

SAUCE_PROMPT = """\
You are scoring "the sauce" of a small internet business: the differentiator \
that cannot be easily copied.  Unfair advantages, unique insight, authentic \
community, and consistent value delivery are what make people choose it over \
alternatives.

Score each criterion from 1 to 10:

1. communityStrength (30%): engagement rate rather than follower count, \
organic growth, retention, fanatic users who evangelize, user-generated content.
2. uniquePositioning (25%): category of one or crowded space, unique \
format, how hard it is to replicate, brand distinctiveness.
3. founderAuthenticity (25%): builds in public, shares metrics openly, gives \
away know-how, trusted by the community, personal brand strength.
4. distributionMoat (20%): owned audience, organic reach, network effects, \
platform independence, content and SEO moat.

total is the weighted average of the four scores, rounded to one decimal.

Respond with ONLY valid JSON:
{
  "communityStrength": <1-10>,
  "uniquePositioning": <1-10>,
  "founderAuthenticity": <1-10>,
  "distributionMoat": <1-10>,
  "total": <weighted average>,
  "reasoning": "<2-3 sentences>"
}
"""

FOUNDER_PROMPT = """\
You are researching the founder behind an acquisition target so we know how \
to approach them.

Work from the business profile you are given and what is publicly known \
about the founder:
- Background: career, skills, how long they have run this business
- Previous exits and other businesses they run
- Public profile: Twitter/X bio, Indie Hackers profile, newsletter
- Acquisition openness from 1 to 10.  Signals: burnout posts, moving on to a \
new project, "would sell" comments, many side projects, a stalled growth curve.
- Motivation: why they might want to sell or partner
- The best angle for a first approach
- Red flags: legal issues, public disputes, inflated revenue claims, \
dependence on the founder personally

If you cannot verify something, say so in context instead of inventing it.

Respond with ONLY valid JSON:
{
  "founderName": "<name>",
  "founderBackground": "<2-3 sentences>",
  "previousExits": ["<exit>", "..."],
  "otherBusinesses": ["<business>", "..."],
  "publicProfile": "<bio or handle summary>",
  "acquisitionOpenness": <1-10>,
  "motivation": "<why they might sell or partner>",
  "bestApproachAngle": "<specific opener>",
  "redFlags": ["<red flag>", "..."],
  "context": "<what is verified vs inferred>"
}
"""


# ---------------------------------------------------------------------------
# Stage definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalysisStage:
    """One LLM-backed analyzer: prompt, output contract, and validation hooks."""
    name: str
    label: str
    thesis_field: str
    prompt: str
    preamble: str
    max_tokens: int
    record: type[RecordModel]
    prepare: Callable[[dict[str, Any], Candidate], None] | None = None
    post_validate: Callable[[Any], Any] | None = None

    def user_message(self, candidate: Candidate) -> str:
        return f"{self.preamble}:\n\n{json.dumps(candidate.to_dict(), indent=2)}"


def weighted_sauce_total(
    community_strength: float,
    unique_positioning: float,
    founder_authenticity: float,
    distribution_moat: float,
) -> float:
    """Weighted 30/25/25/20 average, rounded half-up to one decimal."""
    scores = {
        "community_strength": community_strength,
        "unique_positioning": unique_positioning,
        "founder_authenticity": founder_authenticity,
        "distribution_moat": distribution_moat,
    }
    total = sum(Decimal(str(scores[k])) * w for k, w in SAUCE_WEIGHTS.items())
    return float(total.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _recompute_sauce_total(score: SauceScore) -> SauceScore:
    total = weighted_sauce_total(
        score.community_strength, score.unique_positioning,
        score.founder_authenticity, score.distribution_moat,
    )
    if total != score.total:
        log.debug("Sauce total for %s corrected from %s to %s", score.target_id, score.total, total)
    return score.model_copy(update={"total": total})


def _founder_defaults(raw: dict[str, Any], candidate: Candidate) -> None:
    if not raw.get("founderName"):
        raw["founderName"] = candidate.founder_name


FINANCIALS = AnalysisStage(
    name="financials",
    label="Financials",
    thesis_field="financials",
    prompt=FINANCIALS_PROMPT,
    preamble="Analyze the financials for this business",
    max_tokens=3000,
    record=FinancialAnalysis,
)

PORTFOLIO_FIT = AnalysisStage(
    name="portfolio_fit",
    label="Portfolio Fit",
    thesis_field="portfolio_fit",
    prompt=PORTFOLIO_FIT_PROMPT,
    preamble="Analyze portfolio fit for this acquisition",
    max_tokens=3000,
    record=PortfolioFitAnalysis,
)

SAUCE = AnalysisStage(
    name="sauce",
    label="Sauce",
    thesis_field="sauce",
    prompt=SAUCE_PROMPT,
    preamble='Score "the sauce" for this business',
    max_tokens=2000,
    record=SauceScore,
    post_validate=_recompute_sauce_total,
)

FOUNDER = AnalysisStage(
    name="founder",
    label="Founder",
    thesis_field="founder",
    prompt=FOUNDER_PROMPT,
    preamble="Research the founder of this business",
    max_tokens=2000,
    record=FounderProfile,
    prepare=_founder_defaults,
)

# Registry in fan-out order: {name: stage}
STAGES: dict[str, AnalysisStage] = {s.name: s for s in (FINANCIALS, PORTFOLIO_FIT, SAUCE, FOUNDER)}


# ---------------------------------------------------------------------------
# Running a stage
# ---------------------------------------------------------------------------


async def run_stage(stage: AnalysisStage, client: LLMClient, candidate: Candidate) -> Any:
    """Run one analyzer for one candidate and return its validated record."""
    try:
        text = await client.generate(stage.prompt, stage.user_message(candidate), stage.max_tokens)
    except Exception as exc:
        raise GenerationFailed(
            f"{stage.label} generation failed for {candidate.id}: {exc}",
            stage=stage.name, target_id=candidate.id,
        ) from exc

    try:
        raw = extract(text, "object")
        raw.pop("target_id", None)
        raw["targetId"] = candidate.id
        if stage.prepare is not None:
            stage.prepare(raw, candidate)
        record = stage.record.model_validate(raw)
    except (ExtractError, ValidationError) as exc:
        log.warning("%s returned an invalid payload for %s: %s", stage.label, candidate.id, exc)
        log.debug("Raw %s response: %s", stage.name, text[:500])
        raise InvalidPayload(
            f"{stage.label} returned an invalid payload for {candidate.id}: {exc}",
            stage=stage.name, target_id=candidate.id,
        ) from exc

    if stage.post_validate is not None:
        record = stage.post_validate(record)
    return record


async def analyze_financials(client: LLMClient, candidate: Candidate) -> FinancialAnalysis:
    return await run_stage(FINANCIALS, client, candidate)


async def analyze_portfolio_fit(client: LLMClient, candidate: Candidate) -> PortfolioFitAnalysis:
    return await run_stage(PORTFOLIO_FIT, client, candidate)


async def score_sauce(client: LLMClient, candidate: Candidate) -> SauceScore:
    return await run_stage(SAUCE, client, candidate)


async def research_founder(client: LLMClient, candidate: Candidate) -> FounderProfile:
    return await run_stage(FOUNDER, client, candidate)
