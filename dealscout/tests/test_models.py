"""Tests for record validation, coercion and serialization."""
from __future__ import annotations

import json
import logging

import pytest
from pydantic import ValidationError

from dealscout.models import (
    AcquisitionThesis,
    Candidate,
    FinancialAnalysis,
    FounderProfile,
    PortfolioFitAnalysis,
    SauceScore,
    UNKNOWN_RECOMMENDATION_RANK,
    clamp_score,
    normalize_recommendation,
    parse_number,
)
from dealscout.tests.fakes import financials_reply, fit_reply, founder_reply, sauce_reply, target


def _candidate(**extra) -> Candidate:
    return Candidate.model_validate(target("t-1", "TaskFlow", **extra))


def _thesis(recommendation: str = "BUY", with_sauce: bool = True) -> AcquisitionThesis:
    cand = _candidate()
    return AcquisitionThesis(
        target=cand,
        financials=FinancialAnalysis.model_validate({**json.loads(financials_reply()), "targetId": cand.id}),
        portfolio_fit=PortfolioFitAnalysis.model_validate(
            {**json.loads(fit_reply(recommendation)), "targetId": cand.id}
        ),
        founder=FounderProfile.model_validate({**json.loads(founder_reply()), "targetId": cand.id}),
        sauce=SauceScore.model_validate({**json.loads(sauce_reply()), "targetId": cand.id}) if with_sauce else None,
    )


class TestParseNumber:
    @pytest.mark.parametrize("raw,expected", [
        (18000, 18000.0),
        (1.5, 1.5),
        ("$18,000", 18000.0),
        ("15k", 15000.0),
        ("$1.2M ARR", 1_200_000.0),
        ("about 12 per month", 12.0),
    ])
    def test_parses(self, raw, expected):
        assert parse_number(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["unknown", "", None, True, float("nan"), float("inf")])
    def test_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_number(raw)


class TestClampScore:
    def test_in_range_untouched(self):
        assert clamp_score(7, 1, 10, "x") == 7

    def test_clamps_high_and_low_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dealscout.models"):
            assert clamp_score(15, 1, 10, "x") == 10
            assert clamp_score("0", 1, 10, "x") == 1
        assert "Clamping" in caplog.text


class TestCandidate:
    def test_camel_case_round_trip_keys(self):
        data = _candidate().to_dict()
        assert data["companyName"] == "TaskFlow"
        assert data["founderHandle"] == "@taskflow"
        assert "company_name" not in data

    def test_is_frozen(self):
        cand = _candidate()
        with pytest.raises(ValidationError):
            cand.company_name = "Other"

    def test_requires_id(self):
        with pytest.raises(ValidationError):
            Candidate.model_validate({"companyName": "NoId"})

    def test_lenient_estimates(self):
        cand = _candidate(revenueEstimate="$180k", mrrEstimate="unknown")
        assert cand.revenue_estimate == 180000.0
        assert cand.mrr_estimate == 0.0

    def test_empty_handle_is_none(self):
        assert _candidate(founderHandle="").founder_handle is None


class TestFinancialAnalysis:
    def test_aliases(self):
        rec = FinancialAnalysis.model_validate({**json.loads(financials_reply()), "targetId": "t"})
        dumped = rec.to_dict()
        assert dumped["currentMRR"] == 15000
        assert dumped["currentARR"] == 180000
        assert dumped["revenueProjection12Months"] == 250000

    def test_missing_mrr_is_invalid(self):
        data = json.loads(financials_reply())
        del data["currentMRR"]
        with pytest.raises(ValidationError):
            FinancialAnalysis.model_validate({**data, "targetId": "t"})

    def test_unparseable_mrr_is_invalid(self):
        with pytest.raises(ValidationError):
            FinancialAnalysis.model_validate(
                {**json.loads(financials_reply(currentMRR="n/a")), "targetId": "t"}
            )

    def test_scores_clamped(self):
        rec = FinancialAnalysis.model_validate(
            {**json.loads(financials_reply(profitabilityScore=12, estimatedChurn=140)), "targetId": "t"}
        )
        assert rec.profitability_score == 10
        assert rec.estimated_churn == 100


class TestPortfolioFit:
    def test_recommendation_normalized(self):
        rec = PortfolioFitAnalysis.model_validate(
            {**json.loads(fit_reply("strong buy")), "targetId": "t"}
        )
        assert rec.recommendation == "STRONG_BUY"

    def test_unknown_recommendation_kept(self):
        rec = PortfolioFitAnalysis.model_validate({**json.loads(fit_reply("Maybe")), "targetId": "t"})
        assert rec.recommendation == "MAYBE"

    def test_complexity_normalized(self):
        rec = PortfolioFitAnalysis.model_validate(
            {**json.loads(fit_reply(integrationComplexity="hard")), "targetId": "t"}
        )
        assert rec.integration_complexity == "Hard"

    def test_unknown_complexity_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dealscout.models"):
            rec = PortfolioFitAnalysis.model_validate(
                {**json.loads(fit_reply(integrationComplexity="Trivial")), "targetId": "t"}
            )
        assert rec.integration_complexity == "Medium"
        assert "Medium" in caplog.text

    def test_string_synergies_become_list(self):
        rec = PortfolioFitAnalysis.model_validate(
            {**json.loads(fit_reply(synergiesWithPortfolio="Shared audience")), "targetId": "t"}
        )
        assert rec.synergies_with_portfolio == ["Shared audience"]


class TestSauceScore:
    def test_missing_sub_score_is_invalid(self):
        data = json.loads(sauce_reply())
        del data["distributionMoat"]
        with pytest.raises(ValidationError):
            SauceScore.model_validate({**data, "targetId": "t"})


class TestFounderProfile:
    def test_placeholder(self):
        cand = _candidate()
        profile = FounderProfile.placeholder(cand)
        assert profile.target_id == cand.id
        assert profile.founder_name == cand.founder_name
        assert profile.founder_background == "To be analyzed"
        assert profile.public_profile == "@taskflow"
        assert profile.acquisition_openness == 5
        assert profile.red_flags == []

    def test_placeholder_without_handle(self):
        profile = FounderProfile.placeholder(_candidate(founderHandle=None))
        assert profile.public_profile == "N/A"


class TestAcquisitionThesis:
    def test_rank_follows_recommendation(self):
        assert _thesis("STRONG_BUY").rank < _thesis("BUY").rank < _thesis("WATCH").rank < _thesis("PASS").rank

    def test_unknown_recommendation_ranks_last(self):
        assert _thesis("HOLD").rank == UNKNOWN_RECOMMENDATION_RANK

    def test_serializes_and_parses_back(self):
        data = _thesis().to_dict()
        assert set(data) == {"target", "financials", "portfolioFit", "founder", "sauce"}
        again = AcquisitionThesis.model_validate(data)
        assert again.target.id == "t-1"
        assert again.sauce is not None

    def test_sauce_optional(self):
        assert _thesis(with_sauce=False).to_dict()["sauce"] is None


def test_normalize_recommendation():
    assert normalize_recommendation(" strong-buy ") == "STRONG_BUY"
