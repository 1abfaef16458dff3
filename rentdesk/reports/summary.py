"""
Portfolio KPIs for a reporting period.

Counts leases created and ended in the period, sums rent collected in it and
computes occupancy from the leases still running at period end.
"""
import math
from dataclasses import dataclass
from typing import Dict, Type

from pydantic import BaseModel, ConfigDict, Field

from rentdesk.core.exceptions import TemplateNotFoundError
from rentdesk.models.documents import LandlordSnapshot
from rentdesk.reports.period import PeriodRange
from rentdesk.services.landlord_store import LandlordStore, load_snapshot
from rentdesk.utils.date_helper import is_in_range_inclusive
from rentdesk.utils.formatters import to_number

SUMMARY_REPORT_ID = "summary-report"


class SummaryReportData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    period: str
    total_rent_collected: float = Field(alias="totalRentCollected")
    new_leases: int = Field(alias="newLeases")
    ended_leases: int = Field(alias="endedLeases")
    occupancy_rate: int = Field(alias="occupancyRate")


@dataclass(frozen=True)
class ReportTemplate:
    id: str
    name: str
    description: str
    schema: Type[BaseModel]

    def validate(self, data: dict) -> BaseModel:
        return self.schema.model_validate(data)

    def subject(self, period_label: str) -> str:
        return f"{self.name}: {period_label}"


REPORT_TEMPLATES: Dict[str, ReportTemplate] = {
    SUMMARY_REPORT_ID: ReportTemplate(
        id=SUMMARY_REPORT_ID,
        name="Summary Report",
        description="Sends a summary report of key statistics for the period.",
        schema=SummaryReportData,
    ),
}


def get_report_template(template_id: str) -> ReportTemplate:
    try:
        return REPORT_TEMPLATES[template_id]
    except KeyError:
        raise TemplateNotFoundError(f"Template not found for {template_id}") from None


def js_round(value: float) -> int:
    """Half rounds up, as the dashboard rounds percentages."""
    return int(math.floor(value + 0.5))


def summarize(snapshot: LandlordSnapshot, period: PeriodRange) -> SummaryReportData:
    start, end = period.start, period.end
    leases = snapshot.leases

    new_leases = sum(1 for l in leases if is_in_range_inclusive(l.created_at, start, end))
    ended_leases = sum(
        1 for l in leases
        if l.lease_end_date and is_in_range_inclusive(l.lease_end_date, start, end)
    )
    total_rent_collected = sum(
        to_number(p.actual_rent_paid)
        for p in snapshot.payments
        if is_in_range_inclusive(p.payment_date, start, end)
    )

    active_leases = [l for l in leases if l.is_active_at(end)]
    total_units = len(snapshot.inventory)
    occupancy_rate = js_round(len(active_leases) / total_units * 100) if total_units > 0 else 0

    template = get_report_template(SUMMARY_REPORT_ID)
    return template.validate({
        "period": period.label,
        "totalRentCollected": total_rent_collected,
        "newLeases": new_leases,
        "endedLeases": ended_leases,
        "occupancyRate": occupancy_rate,
    })


async def get_summary_report_data(
    store: LandlordStore, landlord_id: str, period: PeriodRange
) -> SummaryReportData:
    snapshot = await load_snapshot(store, landlord_id)
    return summarize(snapshot, period)
