"""Tests for the four analysis stages."""
from __future__ import annotations

import json

import pytest

from dealscout.analyzers import (
    FINANCIALS,
    FOUNDER,
    PORTFOLIO_FIT,
    SAUCE,
    STAGES,
    analyze_financials,
    analyze_portfolio_fit,
    research_founder,
    run_stage,
    score_sauce,
    weighted_sauce_total,
)
from dealscout.errors import AnalysisError, GenerationFailed, InvalidPayload, LLMCallError
from dealscout.models import Candidate, FinancialAnalysis, FounderProfile, PortfolioFitAnalysis, SauceScore
from dealscout.tests.fakes import (
    FakeGenerator,
    candidate_in,
    financials_reply,
    fit_reply,
    founder_reply,
    sauce_reply,
    stage_replies,
    target,
)


@pytest.fixture()
def candidate() -> Candidate:
    return Candidate.model_validate(target("target-abc", "TaskFlow"))


class TestWeightedSauceTotal:
    def test_reference_example(self):
        # 0.30*8 + 0.25*6 + 0.25*9 + 0.20*5 = 7.15 -> 7.2
        assert weighted_sauce_total(8, 6, 9, 5) == 7.2

    def test_all_tens(self):
        assert weighted_sauce_total(10, 10, 10, 10) == 10.0

    def test_rounds_half_up(self):
        # 0.30*1 + 0.25*2 + 0.25*1 + 0.20*1 = 1.25
        assert weighted_sauce_total(1, 2, 1, 1) == 1.3


class TestStageRegistry:
    def test_fan_out_order(self):
        assert list(STAGES) == ["financials", "portfolio_fit", "sauce", "founder"]

    def test_token_budgets(self):
        assert FINANCIALS.max_tokens == 3000
        assert PORTFOLIO_FIT.max_tokens == 3000
        assert SAUCE.max_tokens == 2000
        assert FOUNDER.max_tokens == 2000

    def test_user_message_embeds_candidate(self, candidate):
        message = FINANCIALS.user_message(candidate)
        assert message.startswith("Analyze the financials for this business:\n\n")
        assert candidate_in(message)["companyName"] == "TaskFlow"


class TestRunStage:
    @pytest.mark.asyncio
    async def test_financials(self, candidate):
        gen = FakeGenerator(stage_replies())
        rec = await analyze_financials(gen, candidate)
        assert isinstance(rec, FinancialAnalysis)
        assert rec.current_arr == 180000
        assert gen.calls["financials"] == 1

    @pytest.mark.asyncio
    async def test_target_id_stamped_over_model_value(self, candidate):
        gen = FakeGenerator(stage_replies(portfolio_fit=fit_reply(targetId="made-up")))
        rec = await analyze_portfolio_fit(gen, candidate)
        assert isinstance(rec, PortfolioFitAnalysis)
        assert rec.target_id == "target-abc"

    @pytest.mark.asyncio
    async def test_fenced_response_accepted(self, candidate):
        gen = FakeGenerator(stage_replies(financials="```json\n" + financials_reply() + "\n```"))
        rec = await run_stage(FINANCIALS, gen, candidate)
        assert rec.profitability_score == 8

    @pytest.mark.asyncio
    async def test_sauce_total_recomputed(self, candidate):
        gen = FakeGenerator(stage_replies(sauce=sauce_reply(total=99)))
        rec = await score_sauce(gen, candidate)
        assert isinstance(rec, SauceScore)
        assert rec.total == 7.2

    @pytest.mark.asyncio
    async def test_founder_name_defaults_to_candidate(self, candidate):
        gen = FakeGenerator(stage_replies(founder=founder_reply()))
        rec = await research_founder(gen, candidate)
        assert isinstance(rec, FounderProfile)
        assert rec.founder_name == "TaskFlow Founder"

    @pytest.mark.asyncio
    async def test_founder_name_from_model_kept(self, candidate):
        gen = FakeGenerator(stage_replies(founder=founder_reply(founderName="Jane Doe")))
        rec = await research_founder(gen, candidate)
        assert rec.founder_name == "Jane Doe"

    @pytest.mark.asyncio
    async def test_generation_failure(self, candidate):
        gen = FakeGenerator(stage_replies(financials=LLMCallError("boom")))
        with pytest.raises(GenerationFailed) as excinfo:
            await run_stage(FINANCIALS, gen, candidate)
        assert excinfo.value.stage == "financials"
        assert excinfo.value.target_id == "target-abc"
        assert isinstance(excinfo.value, AnalysisError)

    @pytest.mark.asyncio
    async def test_prose_response_is_invalid(self, candidate):
        gen = FakeGenerator(stage_replies(sauce="I am unable to score this business."))
        with pytest.raises(InvalidPayload) as excinfo:
            await run_stage(SAUCE, gen, candidate)
        assert excinfo.value.stage == "sauce"

    @pytest.mark.asyncio
    async def test_missing_required_field_is_invalid(self, candidate):
        data = json.loads(financials_reply())
        del data["currentMRR"]
        gen = FakeGenerator(stage_replies(financials=json.dumps(data)))
        with pytest.raises(InvalidPayload):
            await run_stage(FINANCIALS, gen, candidate)

    @pytest.mark.asyncio
    async def test_nan_score_is_invalid(self, candidate):
        gen = FakeGenerator(stage_replies(sauce=sauce_reply(communityStrength=float("nan"))))
        assert "NaN" in gen.replies["sauce"]
        with pytest.raises(InvalidPayload):
            await run_stage(SAUCE, gen, candidate)

    @pytest.mark.asyncio
    async def test_nan_culture_fit_is_invalid(self, candidate):
        gen = FakeGenerator(stage_replies(portfolio_fit=fit_reply(cultureFitScore=float("nan"))))
        with pytest.raises(InvalidPayload):
            await run_stage(PORTFOLIO_FIT, gen, candidate)

    @pytest.mark.asyncio
    async def test_sends_stage_prompt_and_budget(self, candidate):
        seen = {}

        class Recorder:
            async def generate(self, system, user, max_tokens=4000):
                seen.update(system=system, user=user, max_tokens=max_tokens)
                return sauce_reply()

        await run_stage(SAUCE, Recorder(), candidate)
        assert seen["system"] == SAUCE.prompt
        assert seen["max_tokens"] == 2000
        assert candidate_in(seen["user"])["id"] == "target-abc"
