"""Record types for candidates, analysis results, and composite theses.

Every model validates model-produced JSON before anything downstream reads
it: text fields are coerced to strings, numbers are parsed from strings like
``"$15,000"``, scores are clamped to their scale, and enumerations are
normalized.  Records serialize with camelCase keys (``by_alias=True``).
"""
from __future__ import annotations

import logging
import math
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

log = logging.getLogger(__name__)

RECOMMENDATION_ORDER: dict[str, int] = {
    "STRONG_BUY": 1,
    "BUY": 2,
    "WATCH": 3,
    "PASS": 4,
}
UNKNOWN_RECOMMENDATION_RANK = 99

VALID_COMPLEXITIES = ("Easy", "Medium", "Hard")

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_SUFFIXES = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def parse_number(value: Any) -> float:
    """Parse model-provided numbers like ``18000``, ``"$18,000"``, or ``"1.2M"``.

    Raises ValueError when no finite number can be found.
    """
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, (int, float)):
        return _finite(float(value), value)
    text = str(value or "").replace(",", "").replace("$", "").strip().lower()
    m = _NUMBER_RE.search(text)
    if not m:
        raise ValueError(f"not a number: {value!r}")
    number = float(m.group())
    suffix = text[m.end():m.end() + 1]
    return _finite(number * _SUFFIXES.get(suffix, 1), value)


def _finite(number: float, raw: Any) -> float:
    # json.loads accepts NaN and Infinity literals.
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {raw!r}")
    return number


def clamp_score(value: Any, lo: float, hi: float, field: str) -> float:
    number = parse_number(value)
    if number < lo or number > hi:
        log.warning("Clamping %s=%r into [%s, %s]", field, value, lo, hi)
        number = max(lo, min(hi, number))
    return number


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return str(value).strip()


def as_text_list(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [str(value).strip()]


def normalize_recommendation(value: Any) -> str:
    return re.sub(r"[\s-]+", "_", as_text(value)).upper()


class RecordModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Candidate
# ---------------------------------------------------------------------------


class Candidate(RecordModel):
    """A discovered acquisition target.  Immutable once discovery returns it."""
    model_config = ConfigDict(frozen=True)

    id: str
    company_name: str = ""
    founder_name: str = ""
    founder_handle: str | None = None
    platform: str = ""
    revenue_estimate: float = 0.0
    mrr_estimate: float = 0.0
    growth_rate: str = ""
    business_model: str = ""
    url: str = ""
    description: str = ""
    why_interesting: str = ""
    discovered_date: str = ""
    discovery_source: str = ""
    data_source: str = ""

    @field_validator(
        "id", "company_name", "founder_name", "platform", "growth_rate", "business_model",
        "url", "description", "why_interesting", "discovered_date", "discovery_source",
        "data_source", mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> str:
        return as_text(v)

    @field_validator("founder_handle", mode="before")
    @classmethod
    def _handle(cls, v: Any) -> str | None:
        return as_text(v) or None

    @field_validator("revenue_estimate", "mrr_estimate", mode="before")
    @classmethod
    def _estimate(cls, v: Any) -> float:
        try:
            return parse_number(v)
        except ValueError:
            return 0.0


# ---------------------------------------------------------------------------
# Analysis records
# ---------------------------------------------------------------------------


class FinancialAnalysis(RecordModel):
    target_id: str
    current_mrr: float = Field(alias="currentMRR")
    current_arr: float = Field(alias="currentARR")
    estimated_gross_margin: float = 0.0
    estimated_churn: float = 0.0
    growth_trajectory: str = ""
    revenue_projection_12_months: float = Field(0.0, alias="revenueProjection12Months")
    revenue_projection_36_months: float = Field(0.0, alias="revenueProjection36Months")
    profitability_score: float
    cash_flow_health: str = ""
    data_confidence: float
    analysis: str = ""

    @field_validator("current_mrr", "current_arr", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> float:
        return parse_number(v)

    @field_validator("revenue_projection_12_months", "revenue_projection_36_months", mode="before")
    @classmethod
    def _projection(cls, v: Any) -> float:
        try:
            return parse_number(v)
        except ValueError:
            return 0.0

    @field_validator("estimated_gross_margin", "estimated_churn", mode="before")
    @classmethod
    def _percent(cls, v: Any, info) -> float:
        try:
            return clamp_score(v, 0, 100, info.field_name)
        except ValueError:
            return 0.0

    @field_validator("profitability_score", "data_confidence", mode="before")
    @classmethod
    def _score(cls, v: Any, info) -> float:
        return clamp_score(v, 1, 10, info.field_name)

    @field_validator("target_id", "growth_trajectory", "cash_flow_health", "analysis", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return as_text(v)


class PortfolioFitAnalysis(RecordModel):
    target_id: str
    culture_fit_score: float
    synergies_with_portfolio: list[str] = []
    potential_cross_promo: list[str] = []
    integration_complexity: str = "Medium"
    can_merge_with_existing: str | None = None
    estimated_revenue_upside_after_acquisition: float = 0.0
    recommendation: str = ""
    reasoning: str = ""

    @field_validator("culture_fit_score", mode="before")
    @classmethod
    def _score(cls, v: Any) -> float:
        return clamp_score(v, 1, 10, "cultureFitScore")

    @field_validator("synergies_with_portfolio", "potential_cross_promo", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return as_text_list(v)

    @field_validator("integration_complexity", mode="before")
    @classmethod
    def _complexity(cls, v: Any) -> str:
        text = as_text(v).capitalize()
        if text not in VALID_COMPLEXITIES:
            log.warning("Unrecognized integration complexity %r, defaulting to Medium", v)
            return "Medium"
        return text

    @field_validator("can_merge_with_existing", mode="before")
    @classmethod
    def _merge(cls, v: Any) -> str | None:
        return as_text(v) or None

    @field_validator("estimated_revenue_upside_after_acquisition", mode="before")
    @classmethod
    def _upside(cls, v: Any) -> float:
        try:
            return parse_number(v)
        except ValueError:
            return 0.0

    @field_validator("recommendation", mode="before")
    @classmethod
    def _recommendation(cls, v: Any) -> str:
        rec = normalize_recommendation(v)
        if rec and rec not in RECOMMENDATION_ORDER:
            log.warning("Unrecognized recommendation %r, ranking it last", v)
        return rec

    @field_validator("target_id", "reasoning", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return as_text(v)


class SauceScore(RecordModel):
    """Differentiator ("the sauce") scores.  ``total`` is always recomputed."""
    target_id: str
    community_strength: float
    unique_positioning: float
    founder_authenticity: float
    distribution_moat: float
    total: float = 0.0
    reasoning: str = ""

    @field_validator(
        "community_strength", "unique_positioning", "founder_authenticity",
        "distribution_moat", mode="before",
    )
    @classmethod
    def _score(cls, v: Any, info) -> float:
        return clamp_score(v, 1, 10, info.field_name)

    @field_validator("total", mode="before")
    @classmethod
    def _total(cls, v: Any) -> float:
        try:
            return parse_number(v)
        except ValueError:
            return 0.0

    @field_validator("target_id", "reasoning", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return as_text(v)


class FounderProfile(RecordModel):
    target_id: str
    founder_name: str = ""
    founder_background: str = ""
    previous_exits: list[str] = []
    other_businesses: list[str] = []
    public_profile: str = ""
    acquisition_openness: float
    motivation: str = ""
    best_approach_angle: str = ""
    red_flags: list[str] = []
    context: str | None = None

    @field_validator("acquisition_openness", mode="before")
    @classmethod
    def _score(cls, v: Any) -> float:
        return clamp_score(v, 1, 10, "acquisitionOpenness")

    @field_validator("previous_exits", "other_businesses", "red_flags", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return as_text_list(v)

    @field_validator(
        "target_id", "founder_name", "founder_background", "public_profile",
        "motivation", "best_approach_angle", mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> str:
        return as_text(v)

    @field_validator("context", mode="before")
    @classmethod
    def _context(cls, v: Any) -> str | None:
        return as_text(v) or None

    @classmethod
    def placeholder(cls, candidate: Candidate) -> FounderProfile:
        """Stand-in profile for variants that do not run founder research."""
        return cls(
            target_id=candidate.id,
            founder_name=candidate.founder_name,
            founder_background="To be analyzed",
            public_profile=candidate.founder_handle or "N/A",
            acquisition_openness=5,
            motivation="To be analyzed",
            best_approach_angle="To be analyzed",
            red_flags=[],
        )


# ---------------------------------------------------------------------------
# Composite records
# ---------------------------------------------------------------------------


class AcquisitionThesis(RecordModel):
    target: Candidate
    financials: FinancialAnalysis
    portfolio_fit: PortfolioFitAnalysis
    founder: FounderProfile
    sauce: SauceScore | None = None

    @property
    def recommendation(self) -> str:
        return self.portfolio_fit.recommendation

    @property
    def rank(self) -> int:
        return RECOMMENDATION_ORDER.get(self.recommendation, UNKNOWN_RECOMMENDATION_RANK)


class PipelineResult(RecordModel):
    targets_found: int
    analysis_complete: int
    acquisition_theses: list[AcquisitionThesis]
    timestamp: str
    data_source: str
    variant: str
