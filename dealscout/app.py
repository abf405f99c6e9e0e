"""FastAPI app for Deal Scout: pipeline runs with SSE progress, plus exports and the dashboard."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

from dealscout import services
from dealscout.config import get_settings
from dealscout.export import export_filename, to_csv, to_xlsx
from dealscout.pipeline import get_variant
from dealscout.schemas import (
    ErrorResponse,
    HealthOut,
    RunScoutRequest,
    RunScoutResponse,
    StageCatalogOut,
)

log = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

app = FastAPI(
    title="Deal Scout",
    version="0.1.0",
    description=(
        "Acquisition scouting API. Discovers small internet businesses from live "
        "research data, analyzes each with several LLM stages, and returns ranked "
        "acquisition theses. No authentication required."
    ),
    openapi_tags=[
        {"name": "Pipeline", "description": "Run the scout pipeline. Requires an LLM API key."},
        {"name": "Export", "description": "Download theses as CSV or XLSX."},
        {"name": "Meta", "description": "Stage catalog and health."},
    ],
)

STATIC_DIR = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_variant(name: str | None) -> str | None:
    if not name:
        return None
    try:
        return get_variant(name).name
    except ValueError as exc:
        raise HTTPException(422, str(exc)) from None


def _run_response(payload: dict[str, Any]) -> JSONResponse:
    return JSONResponse(payload, status_code=200 if payload.get("success") else 500)


def _sse(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


def _parse_theses_or_422(items: list[dict[str, Any]]):
    try:
        return services.parse_theses(items)
    except ValidationError as exc:
        raise HTTPException(422, f"Invalid thesis payload: {exc.error_count()} error(s)") from None


def _download(content: str | bytes, media_type: str, extension: str) -> Response:
    filename = export_filename(extension)
    return Response(
        content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Routes: Static
# ---------------------------------------------------------------------------


@app.get("/", response_class=HTMLResponse)
async def root():
    html_path = STATIC_DIR / "index.html"
    if not html_path.exists():
        return HTMLResponse("<h1>Deal Scout</h1><p>index.html not found</p>", status_code=500)
    return HTMLResponse(html_path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Routes: Pipeline
# ---------------------------------------------------------------------------


@app.post("/api/run-scout/stream", tags=["Pipeline"], summary="Run the pipeline (SSE progress stream)")
async def run_scout_stream(body: RunScoutRequest | None = None):
    variant = (body or RunScoutRequest()).variant

    async def stream():
        queue: asyncio.Queue = asyncio.Queue()
        done = object()
        task = asyncio.create_task(services.run_scout(variant, on_event=queue.put_nowait))
        task.add_done_callback(lambda _: queue.put_nowait(done))
        try:
            while (event := await queue.get()) is not done:
                yield _sse(event)
            yield _sse({"type": "complete", "result": task.result()})
        finally:
            if not task.done():
                task.cancel()

    return StreamingResponse(stream(), media_type="text/event-stream")


@app.post("/api/run-scout", tags=["Pipeline"], summary="Run the full scout pipeline",
          responses={200: {"model": RunScoutResponse}, 500: {"model": ErrorResponse}})
async def run_scout_post(body: RunScoutRequest | None = None):
    payload = await services.run_scout((body or RunScoutRequest()).variant)
    return _run_response(payload)


@app.get("/api/run-scout", tags=["Pipeline"], summary="Run the full scout pipeline",
         responses={200: {"model": RunScoutResponse}, 500: {"model": ErrorResponse}})
async def run_scout_get(variant: str | None = Query(None, description="full, sauce or founder")):
    payload = await services.run_scout(_resolve_variant(variant))
    return _run_response(payload)


# ---------------------------------------------------------------------------
# Routes: Export
# ---------------------------------------------------------------------------


@app.post("/api/export/csv", tags=["Export"], summary="Export theses as CSV")
async def export_csv(body: list[dict[str, Any]]):
    theses = _parse_theses_or_422(body)
    return _download(to_csv(theses), "text/csv; charset=utf-8", "csv")


@app.post("/api/export/xlsx", tags=["Export"], summary="Export theses as an Excel workbook")
async def export_xlsx(body: list[dict[str, Any]]):
    theses = _parse_theses_or_422(body)
    return _download(to_xlsx(theses), XLSX_MEDIA_TYPE, "xlsx")


# ---------------------------------------------------------------------------
# Routes: Meta
# ---------------------------------------------------------------------------


@app.get("/api/stages", response_model=StageCatalogOut, tags=["Meta"],
         summary="List analysis stages and pipeline variants")
async def list_stages():
    return services.stage_catalog()


@app.get("/api/health", response_model=HealthOut, tags=["Meta"], summary="Liveness and LLM configuration")
async def health():
    client = services.get_client()
    return HealthOut(
        ok=True,
        provider=client.provider,
        model=client.model,
        llm_configured=client.configured,
        default_variant=get_settings().pipeline_variant,
    )


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main(host: str = "127.0.0.1", port: int = 8001, reload: bool = False):
    import uvicorn
    uvicorn.run("dealscout.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
