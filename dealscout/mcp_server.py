"""MCP server exposing the Deal Scout pipeline as tools for AI agents."""
from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from dealscout import services
from dealscout.config import get_settings
from dealscout.export import to_csv
from dealscout.models import RECOMMENDATION_ORDER
from dealscout.pipeline import VARIANTS

log = logging.getLogger(__name__)


mcp = FastMCP(
    "Deal Scout",
    instructions=(
        "Deal Scout finds small internet businesses worth acquiring. "
        "Read dealscout://overview first, call list_stages() to see the analyzers and "
        "variants, then run_scout(variant) to get ranked acquisition theses. "
        "Pass the returned acquisitionTheses to export_csv() for a spreadsheet."
    ),
    json_response=True,
)


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("dealscout://overview")
def dealscout_overview() -> str:
    """Overview of Deal Scout: pipeline, variants, and recommendation scale."""
    settings = get_settings()
    return json.dumps({
        "system": "Deal Scout: acquisition scouting for a holding company of small internet businesses",
        "pipeline": [
            "1. DISCOVERING: gather live research data and extract candidate businesses.",
            "2. ANALYZING: run every analyzer of the variant concurrently for every candidate.",
            "3. RANKED: sort surviving theses by recommendation.",
        ],
        "variants": {v.name: v.description for v in VARIANTS.values()},
        "default_variant": settings.pipeline_variant,
        "recommendations": list(RECOMMENDATION_ORDER),
        "sauce_total": "0.30*communityStrength + 0.25*uniquePositioning + 0.25*founderAuthenticity + 0.20*distributionMoat",
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def run_scout(variant: str = "") -> dict:
    """Run the scout pipeline once and return ranked acquisition theses.

    variant: "full", "sauce" or "founder"; empty uses the configured default.
    Takes a few minutes. On failure returns {"success": false, "error", "details"}.
    """
    try:
        return await services.run_scout(variant or None)
    except ValueError as exc:
        return {"success": False, "error": str(exc)}


@mcp.tool()
def list_stages() -> dict:
    """List analysis stages (name, label, token budget) and pipeline variants."""
    return services.stage_catalog()


@mcp.tool()
def export_csv(theses: list[dict[str, Any]]) -> dict:
    """Render acquisition theses (as returned by run_scout) as CSV text."""
    try:
        parsed = services.parse_theses(theses)
    except ValidationError as exc:
        return {"error": f"Invalid thesis payload: {exc.error_count()} error(s)"}
    return {"rows": len(parsed), "csv": to_csv(parsed)}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Deal Scout MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
