"""CSV and XLSX export of ranked acquisition theses."""
from __future__ import annotations

import csv
import io
from datetime import UTC, datetime
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

from dealscout.models import AcquisitionThesis

EXPORT_COLUMNS = [
    "Rank",
    "Company Name",
    "Founder Name",
    "Founder Handle",
    "Platform",
    "Current ARR",
    "Current MRR",
    "Growth Rate",
    "Growth Trajectory",
    "Profitability Score",
    "Recommendation",
    "Culture Fit Score",
    "Acquisition Openness",
    "Estimated Revenue Upside",
    "Integration Complexity",
    "Sauce Score",
    "Community Strength",
    "Unique Positioning",
    "Founder Authenticity",
    "Distribution Moat",
    "Sauce Reasoning",
    "URL",
    "Description",
    "Why Interesting",
    "Strategic Reasoning",
    "Synergies",
    "Discovered Date",
]


def _num(value: float | None) -> int | float | str:
    if value is None:
        return ""
    return int(value) if float(value).is_integer() else value


def thesis_row(rank: int, thesis: AcquisitionThesis) -> dict[str, Any]:
    target, fin, fit, founder, sauce = (
        thesis.target, thesis.financials, thesis.portfolio_fit, thesis.founder, thesis.sauce,
    )
    return {
        "Rank": rank,
        "Company Name": target.company_name,
        "Founder Name": founder.founder_name or target.founder_name,
        "Founder Handle": target.founder_handle or "",
        "Platform": target.platform,
        "Current ARR": _num(fin.current_arr),
        "Current MRR": _num(fin.current_mrr),
        "Growth Rate": target.growth_rate,
        "Growth Trajectory": fin.growth_trajectory,
        "Profitability Score": _num(fin.profitability_score),
        "Recommendation": fit.recommendation,
        "Culture Fit Score": _num(fit.culture_fit_score),
        "Acquisition Openness": _num(founder.acquisition_openness),
        "Estimated Revenue Upside": _num(fit.estimated_revenue_upside_after_acquisition),
        "Integration Complexity": fit.integration_complexity,
        "Sauce Score": _num(sauce.total) if sauce else "",
        "Community Strength": _num(sauce.community_strength) if sauce else "",
        "Unique Positioning": _num(sauce.unique_positioning) if sauce else "",
        "Founder Authenticity": _num(sauce.founder_authenticity) if sauce else "",
        "Distribution Moat": _num(sauce.distribution_moat) if sauce else "",
        "Sauce Reasoning": sauce.reasoning if sauce else "",
        "URL": target.url,
        "Description": target.description,
        "Why Interesting": target.why_interesting,
        "Strategic Reasoning": fit.reasoning,
        "Synergies": "; ".join(fit.synergies_with_portfolio),
        "Discovered Date": target.discovered_date,
    }


def export_rows(theses: list[AcquisitionThesis]) -> list[dict[str, Any]]:
    return [thesis_row(idx + 1, t) for idx, t in enumerate(theses)]


def export_filename(extension: str, today: datetime | None = None) -> str:
    day = (today or datetime.now(UTC)).strftime("%Y-%m-%d")
    return f"acquisition-targets-{day}.{extension}"


def to_csv(theses: list[AcquisitionThesis]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for row in export_rows(theses):
        writer.writerow(row)
    return buf.getvalue()


def to_xlsx(theses: list[AcquisitionThesis], sheet_name: str = "Acquisition Targets") -> bytes:
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = sheet_name
    worksheet.append(EXPORT_COLUMNS)
    for row in export_rows(theses):
        worksheet.append([row[c] for c in EXPORT_COLUMNS])

    worksheet.freeze_panes = "A2"
    worksheet.auto_filter.ref = worksheet.dimensions
    header_fill = PatternFill(fill_type="solid", fgColor="1F4E78")
    header_font = Font(color="FFFFFF", bold=True)
    for cell in worksheet[1]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

    for col_cells in worksheet.columns:
        values = [str(cell.value) if cell.value is not None else "" for cell in col_cells]
        width = min(90, max(12, max(len(value) for value in values) + 2))
        worksheet.column_dimensions[col_cells[0].column_letter].width = width

    buf = io.BytesIO()
    workbook.save(buf)
    return buf.getvalue()
