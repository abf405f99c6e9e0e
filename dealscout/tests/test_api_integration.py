"""Integration tests for the FastAPI endpoints.

The pipeline itself is replaced with canned payloads; these tests cover the
HTTP contract only.
"""
from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from dealscout.llm import LLMClient
from dealscout.tests.fakes import FakeGenerator, stage_replies

SUCCESS = {
    "success": True,
    "targetsFound": 2,
    "analysisComplete": 1,
    "acquisitionTheses": [],
    "timestamp": "2025-01-15T00:00:00+00:00",
    "dataSource": "Real-time (Perplexity + Firecrawl)",
    "variant": "full",
}

FAILURE = {
    "success": False,
    "error": "Failed to run agent pipeline",
    "details": "Discovery failed: ANTHROPIC_API_KEY is required",
}


@pytest.fixture()
def client():
    from dealscout.app import app

    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture()
def theses() -> list[dict]:
    """Real theses produced by the pipeline against a scripted generator."""
    import asyncio

    from dealscout import services

    payload = asyncio.run(services.run_scout("full", client=FakeGenerator(stage_replies()), research_blob="blob"))
    assert payload["success"]
    return payload["acquisitionTheses"]


def _sse_events(body: str) -> list[dict]:
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


class TestStatic:
    def test_dashboard(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "Deal Scout" in resp.text

    def test_static_asset(self, client):
        assert client.get("/static/style.css").status_code == 200


class TestRunScout:
    def test_post_success(self, client):
        with patch("dealscout.services.run_scout", AsyncMock(return_value=SUCCESS)) as run:
            resp = client.post("/api/run-scout")
        assert resp.status_code == 200
        assert resp.json() == SUCCESS
        run.assert_awaited_once_with(None)

    def test_post_with_variant(self, client):
        with patch("dealscout.services.run_scout", AsyncMock(return_value=SUCCESS)) as run:
            resp = client.post("/api/run-scout", json={"variant": "Sauce"})
        assert resp.status_code == 200
        run.assert_awaited_once_with("sauce")

    def test_get_success(self, client):
        with patch("dealscout.services.run_scout", AsyncMock(return_value=SUCCESS)) as run:
            resp = client.get("/api/run-scout", params={"variant": "founder"})
        assert resp.status_code == 200
        run.assert_awaited_once_with("founder")

    def test_failure_is_500_with_payload(self, client):
        with patch("dealscout.services.run_scout", AsyncMock(return_value=FAILURE)):
            resp = client.post("/api/run-scout")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to run agent pipeline"

    def test_unknown_variant_rejected(self, client):
        with patch("dealscout.services.run_scout", AsyncMock(return_value=SUCCESS)) as run:
            assert client.post("/api/run-scout", json={"variant": "turbo"}).status_code == 422
            assert client.get("/api/run-scout", params={"variant": "turbo"}).status_code == 422
        run.assert_not_awaited()

    def test_end_to_end_with_scripted_generator(self, client):
        gen = FakeGenerator(stage_replies())
        with patch("dealscout.services.get_client", return_value=gen), \
             patch("dealscout.pipeline.gather_research_data", AsyncMock(return_value="blob")):
            resp = client.post("/api/run-scout", json={"variant": "full"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["targetsFound"] == 2
        assert body["analysisComplete"] == 2
        thesis = body["acquisitionTheses"][0]
        assert set(thesis) == {"target", "financials", "portfolioFit", "founder", "sauce"}
        assert thesis["financials"]["currentMRR"] == 15000
        assert thesis["sauce"]["total"] == 7.2


class TestStream:
    def test_progress_then_complete(self, client):
        async def fake_run(variant, on_event=None):
            on_event({"type": "state", "state": "DISCOVERING"})
            on_event({"type": "discovered", "count": 2})
            return SUCCESS

        with patch("dealscout.services.run_scout", side_effect=fake_run):
            resp = client.post("/api/run-scout/stream", json={"variant": "full"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        events = _sse_events(resp.text)
        assert [e["type"] for e in events] == ["state", "discovered", "complete"]
        assert events[-1]["result"] == SUCCESS

    def test_failure_still_completes(self, client):
        async def fake_run(variant, on_event=None):
            return FAILURE

        with patch("dealscout.services.run_scout", side_effect=fake_run):
            resp = client.post("/api/run-scout/stream")
        events = _sse_events(resp.text)
        assert events == [{"type": "complete", "result": FAILURE}]

    def test_bad_configured_variant_still_completes(self, client, monkeypatch):
        from dealscout.config import get_settings

        monkeypatch.setenv("SCOUT_PIPELINE_VARIANT", "turbo")
        get_settings.cache_clear()
        with patch("dealscout.services.get_client", return_value=FakeGenerator(stage_replies())):
            resp = client.post("/api/run-scout/stream")
        events = _sse_events(resp.text)
        assert events[-1]["type"] == "complete"
        assert events[-1]["result"]["success"] is False
        assert "SCOUT_PIPELINE_VARIANT" in events[-1]["result"]["details"]


class TestExport:
    def test_csv(self, client, theses):
        resp = client.post("/api/export/csv", json=theses)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        disposition = resp.headers["content-disposition"]
        assert 'filename="acquisition-targets-' in disposition and disposition.endswith('.csv"')
        lines = resp.text.strip().splitlines()
        assert lines[0].startswith("Rank,Company Name,Founder Name")
        assert len(lines) == 3

    def test_xlsx(self, client, theses):
        resp = client.post("/api/export/xlsx", json=theses)
        assert resp.status_code == 200
        assert resp.headers["content-disposition"].endswith('.xlsx"')
        assert resp.content[:2] == b"PK"

    def test_invalid_thesis_rejected(self, client):
        resp = client.post("/api/export/csv", json=[{"target": {"companyName": "no id"}}])
        assert resp.status_code == 422

    def test_empty_list(self, client):
        resp = client.post("/api/export/csv", json=[])
        assert resp.status_code == 200
        assert resp.text.startswith("Rank,")


class TestMeta:
    def test_stages(self, client):
        resp = client.get("/api/stages")
        assert resp.status_code == 200
        body = resp.json()
        assert [s["name"] for s in body["stages"]] == ["financials", "portfolio_fit", "sauce", "founder"]
        assert body["stages"][0]["maxTokens"] == 3000
        variants = {v["name"]: v for v in body["variants"]}
        assert variants["full"]["default"] is True
        assert variants["sauce"]["stages"] == ["financials", "portfolio_fit", "sauce"]

    def test_health(self, client):
        fake = MagicMock(spec=LLMClient)
        fake.provider = "anthropic"
        fake.model = "claude-sonnet-4-5-20250929"
        fake.configured = False
        with patch("dealscout.services.get_client", return_value=fake):
            resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "ok": True,
            "provider": "anthropic",
            "model": "claude-sonnet-4-5-20250929",
            "llmConfigured": False,
            "defaultVariant": "full",
        }
