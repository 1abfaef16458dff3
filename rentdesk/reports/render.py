import os
from dataclasses import dataclass

from jinja2 import Environment, FileSystemLoader, select_autoescape

from rentdesk.reports.details import ReportDetails
from rentdesk.reports.summary import SummaryReportData
from rentdesk.utils.formatters import format_currency

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
TEMPLATE_DIR = os.path.join(BASE_DIR, "templates")
MONTHLY_TEMPLATE = "monthly_report.html"

env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
env.filters["currency"] = format_currency


@dataclass
class RenderedReport:
    subject: str
    html: str


def monthly_subject(period_label: str) -> str:
    return f"Monthly Report: {period_label}"


def render_monthly_report(
    period_label: str,
    summary: SummaryReportData,
    details: ReportDetails,
) -> RenderedReport:
    """Render the monthly email body; group totals are listed largest first."""
    groups = sorted(
        details.rent_collected_by_group.items(),
        key=lambda item: item[1],
        reverse=True,
    )
    html = env.get_template(MONTHLY_TEMPLATE).render(
        period_label=period_label,
        summary=summary,
        groups=groups,
        delinquencies=details.period_delinquencies,
        expired=details.expired_leases,
        expiring=details.expiring_soon,
        vacancies=details.vacancy_rows,
    )
    return RenderedReport(subject=monthly_subject(period_label), html=html)
