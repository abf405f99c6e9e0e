"""Typer command-line interface for running the pipeline and starting its servers."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from dealscout import services
from dealscout.export import to_csv, to_xlsx
from dealscout.pipeline import VARIANTS

app = typer.Typer(help="Deal Scout: find and analyze small internet businesses to acquire")
console = Console()

_REC_STYLES = {"STRONG_BUY": "bold green", "BUY": "green", "WATCH": "yellow", "PASS": "red"}


def _configure_logging(*, verbose: int, json_output: bool) -> None:
    if verbose <= 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    handlers: list[logging.Handler]
    if json_output:
        handlers = [logging.StreamHandler()]
        fmt = "%(levelname)s: %(message)s"
    else:
        handlers = [RichHandler(console=console, show_time=False, show_path=False, markup=False)]
        fmt = "%(message)s"

    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)


def _money(value: Any) -> str:
    try:
        return f"${float(value):,.0f}"
    except (TypeError, ValueError):
        return "-"


def _render_theses(payload: dict[str, Any]) -> None:
    table = Table(show_header=True, header_style="bold cyan", box=ROUNDED)
    table.add_column("#", justify="right")
    table.add_column("Company", style="bold")
    table.add_column("Founder")
    table.add_column("ARR", justify="right")
    table.add_column("Recommendation")
    table.add_column("Fit", justify="right")
    table.add_column("Sauce", justify="right")
    table.add_column("Openness", justify="right")

    for idx, thesis in enumerate(payload["acquisitionTheses"], start=1):
        target, fit = thesis["target"], thesis["portfolioFit"]
        rec = fit.get("recommendation") or "-"
        sauce = thesis.get("sauce")
        table.add_row(
            str(idx),
            target.get("companyName") or "-",
            target.get("founderHandle") or target.get("founderName") or "-",
            _money(thesis["financials"].get("currentARR")),
            f"[{_REC_STYLES.get(rec, 'dim')}]{rec}[/]",
            f"{fit.get('cultureFitScore', 0):g}",
            f"{sauce['total']:g}" if sauce else "-",
            f"{thesis['founder'].get('acquisitionOpenness', 0):g}",
        )

    title = (
        f"{payload['analysisComplete']}/{payload['targetsFound']} targets analyzed "
        f"· variant {payload['variant']}"
    )
    console.print(Panel(table, title=title, border_style="cyan"))
    console.print(f"[dim]{payload['dataSource']} · {payload['timestamp']}[/dim]")


def _progress(event: dict[str, Any]) -> None:
    kind = event.get("type")
    if kind == "state":
        console.print(f"[cyan]→[/cyan] {event['state']}")
    elif kind == "discovered":
        console.print(f"[cyan]→[/cyan] discovered {event['count']} targets")
    elif kind == "candidate":
        mark = "[green]✓[/green]" if event["ok"] else "[red]✗[/red]"
        failed = f" (failed: {', '.join(event['failedStages'])})" if event["failedStages"] else ""
        console.print(f"  {mark} {event['name'] or event['id']}{failed}")


@app.command("run")
def run(
    variant: str = typer.Option(
        "", "--variant", help=f"Pipeline variant: {', '.join(VARIANTS)}. Defaults to SCOUT_PIPELINE_VARIANT.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the raw JSON payload."),
    csv_path: Path | None = typer.Option(None, "--csv", help="Also write the theses to this CSV file."),
    xlsx_path: Path | None = typer.Option(None, "--xlsx", help="Also write the theses to this XLSX file."),
    verbose: int = typer.Option(0, "-v", "--verbose", count=True, help="Increase log verbosity."),
) -> None:
    """Run the scout pipeline once."""
    _configure_logging(verbose=verbose, json_output=json_output)
    if variant and variant.strip().lower() not in VARIANTS:
        raise typer.BadParameter(f"choose from {', '.join(VARIANTS)}", param_hint="--variant")

    payload = asyncio.run(services.run_scout(variant or None, on_event=None if json_output else _progress))

    if json_output:
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    elif payload["success"]:
        _render_theses(payload)
    else:
        console.print(Panel(payload["details"], title=payload["error"], border_style="red"))

    if not payload["success"]:
        raise typer.Exit(code=1)

    if csv_path or xlsx_path:
        theses = services.parse_theses(payload["acquisitionTheses"])
        if csv_path:
            csv_path.write_text(to_csv(theses), encoding="utf-8", newline="")
            console.print(f"[green]✓[/green] wrote {csv_path}")
        if xlsx_path:
            xlsx_path.write_bytes(to_xlsx(theses))
            console.print(f"[green]✓[/green] wrote {xlsx_path}")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8001, "--port"),
    reload: bool = typer.Option(False, "--reload"),
    verbose: int = typer.Option(1, "-v", "--verbose", count=True),
) -> None:
    """Serve the HTTP API and dashboard."""
    _configure_logging(verbose=verbose, json_output=False)
    from dealscout.app import main as serve_app
    serve_app(host=host, port=port, reload=reload)


@app.command("mcp")
def mcp_command() -> None:
    """Run the MCP server over stdio."""
    from dealscout.mcp_server import main as serve_mcp
    serve_mcp()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
