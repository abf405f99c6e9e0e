"""Candidate discovery: one LLM pass that turns a research blob into targets.

Discovery gates the whole run, so it degrades instead of failing: a bad
response yields an empty list and the run reports zero targets.  Only a
generator that could not be reached at all propagates, so callers can tell
"found nothing" apart from "pipeline broke".
"""
from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from pydantic import ValidationError

from dealscout.config import get_settings
from dealscout.errors import ExtractError, LLMCallError, LLMUnavailableError
from dealscout.extractor import extract
from dealscout.llm import LLMClient
from dealscout.models import Candidate

log = logging.getLogger(__name__)

DISCOVERY_MAX_TOKENS = 8000

SCOUT_PROMPT = """\
You are the deal scout for a holding company that acquires small internet \
businesses.  Find acquisition targets in the research data you are given.

WHAT WE ARE LOOKING FOR:
- Indie businesses doing $50k-$5M annual revenue
- Solo founders or small teams (1-5 people)
- Profitable or breakeven, not burning cash
- Community-based or content-based businesses
- Founders who might sell or partner
- Real revenue today, growing or at least stable

RED FLAGS:
- Founder clearly not interested in selling
- Burning money, heavy overhead
- One-trick pony with no moat
- Declining revenue
- Toxic community or brand
- VC-backed (we want bootstrapped)
- Over $5M ARR (too big for our ticket size)

Name where each target was found: Indie Hackers revenue posts, Twitter/X \
year-in-review posts, Product Hunt launches, Substack sponsorship data, \
Discord communities, Gumroad sales.

Return between 5 and 10 targets when the data supports it.

Respond with ONLY a JSON array, no markdown and no text before or after it:
[
  {
    "companyName": "<name>",
    "founderName": "<name>",
    "founderHandle": "<@handle>",
    "platform": "<Indie Hackers|Twitter|Product Hunt|...>",
    "revenueEstimate": <annual revenue>,
    "mrrEstimate": <monthly recurring revenue>,
    "growthRate": "<e.g. 12% MoM>",
    "businessModel": "<e.g. SaaS Subscription>",
    "url": "<https://...>",
    "description": "<what they do in 1-2 sentences>",
    "whyInteresting": "<why this is a good acquisition target>",
    "discoverySource": "<where the signal came from>"
  }
]
"""


def new_candidate_id() -> str:
    return f"target-{uuid.uuid4().hex[:12]}"


def build_candidates(items: list, data_source: str) -> list[Candidate]:
    """Backfill identity and provenance, validate, and freeze each element."""
    now = datetime.now(UTC).isoformat()
    candidates: list[Candidate] = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            log.warning("Skipping discovery element %d: expected an object, got %s", idx, type(item).__name__)
            continue
        data = dict(item)
        if not data.get("id"):
            data["id"] = new_candidate_id()
        if not data.get("discoveredDate"):
            data["discoveredDate"] = now
        data["dataSource"] = data_source
        try:
            candidates.append(Candidate.model_validate(data))
        except ValidationError as exc:
            log.warning("Skipping discovery element %d: %s", idx, exc)
    return candidates


async def discover(client: LLMClient, research_blob: str, data_source: str | None = None) -> list[Candidate]:
    """Find acquisition targets in *research_blob*.

    Returns an empty list on any generation or parse failure except
    ``LLMUnavailableError``, which propagates.
    """
    data_source = data_source or get_settings().data_source
    message = f"Find acquisition targets in this real-time data:\n\n{research_blob}"

    try:
        response = await client.generate(SCOUT_PROMPT, message, DISCOVERY_MAX_TOKENS)
    except LLMUnavailableError:
        raise
    except LLMCallError as exc:
        log.error("Scout generation failed, returning no targets: %s", exc)
        return []

    try:
        items = extract(response, "array")
    except ExtractError as exc:
        log.error("Failed to parse Scout response: %s", exc)
        log.error("Raw response (first 500 chars): %s", response[:500])
        return []

    candidates = build_candidates(items, data_source)
    log.info("Scout found %d targets", len(candidates))
    return candidates
