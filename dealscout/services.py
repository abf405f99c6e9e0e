"""Shared business logic for the Deal Scout API, CLI and MCP server."""
from __future__ import annotations

import logging
import traceback
from functools import lru_cache
from typing import Any

from dealscout.analyzers import STAGES
from dealscout.config import get_settings
from dealscout.errors import PipelineFailure
from dealscout.llm import LLMClient
from dealscout.models import AcquisitionThesis
from dealscout.pipeline import EventCallback, VARIANTS, get_variant, run_with_deadline

log = logging.getLogger(__name__)

FAILURE_MESSAGE = "Failed to run agent pipeline"


@lru_cache(maxsize=1)
def get_client() -> LLMClient:
    """One generator client per process, shared by every run."""
    return LLMClient()


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


def failure_payload(exc: BaseException) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": False,
        "error": FAILURE_MESSAGE,
        "details": str(exc),
    }
    if not get_settings().is_production:
        payload["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return payload


async def run_scout(
    variant: str | None = None,
    client: LLMClient | None = None,
    research_blob: str | None = None,
    on_event: EventCallback | None = None,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Run the pipeline once and return the response payload.

    Never raises for pipeline failures; those become ``{"success": False, ...}``.
    An unknown *variant* name raises ValueError before anything runs.
    """
    chosen = get_variant(variant) if variant else None
    try:
        result = await run_with_deadline(
            client or get_client(),
            research_blob,
            variant=chosen,
            timeout=timeout,
            on_event=on_event,
        )
    except PipelineFailure as exc:
        log.error("Scout run failed: %s", exc)
        return failure_payload(exc)
    return {"success": True, **result.to_dict()}


# ---------------------------------------------------------------------------
# Catalog & exports
# ---------------------------------------------------------------------------


def stage_catalog() -> dict[str, Any]:
    settings = get_settings()
    return {
        "stages": [
            {"name": s.name, "label": s.label, "field": s.thesis_field, "maxTokens": s.max_tokens}
            for s in STAGES.values()
        ],
        "variants": [
            {
                "name": v.name,
                "stages": list(v.stages),
                "required": [s for s in v.stages if s in v.required],
                "description": v.description,
                "default": v.name == settings.pipeline_variant.strip().lower(),
            }
            for v in VARIANTS.values()
        ],
    }


def parse_theses(items: list[dict[str, Any]]) -> list[AcquisitionThesis]:
    """Validate theses posted back by a client (camelCase, as returned by ``run_scout``)."""
    return [AcquisitionThesis.model_validate(item) for item in items]
