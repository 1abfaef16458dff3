"""
Detailed monthly breakdowns: collections per property group, delinquencies,
lease expirations, vacancies and the payments CSV attached to the email.
"""
import math
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from rentdesk.models.documents import InventoryUnit, LandlordSnapshot, Lease, DEFAULT_GROUP
from rentdesk.reports.period import PeriodRange
from rentdesk.services.landlord_store import LandlordStore, load_snapshot
from rentdesk.utils.date_helper import ensure_utc, sort_key_or_epoch, utc_now
from rentdesk.utils.formatters import js_number, to_number

EXPIRING_WINDOW_DAYS = 30
NO_END_DATE_DAYS = 99999
SECONDS_PER_DAY = 86400

CSV_HEADERS = ["Unit Number", "Tenant Name", "Expected Rent", "Actual Rent", "Rental Period", "Comments"]
COMMENT_SEPARATOR = " | "
_NEWLINES = re.compile(r"\r\n|\r|\n")


@dataclass
class Delinquency:
    unit_number: str
    tenant_name: str
    expected_rent: float


@dataclass
class LeaseExpiration:
    unit_number: str
    tenant_name: str
    rent_amount: float
    end_date: Optional[datetime]
    days_left: Optional[int]


@dataclass
class VacancyRow:
    unit_number: str
    group_name: str
    last_rent: Optional[float] = None


@dataclass
class CsvExport:
    filename: str
    content: str


@dataclass
class ReportDetails:
    rent_collected_by_group: Dict[str, float] = field(default_factory=dict)
    period_delinquencies: List[Delinquency] = field(default_factory=list)
    expired_leases: List[LeaseExpiration] = field(default_factory=list)
    expiring_soon: List[LeaseExpiration] = field(default_factory=list)
    vacancy_rows: List[VacancyRow] = field(default_factory=list)
    csv: Optional[CsvExport] = None


class _UnitIndex:
    def __init__(self, inventory: List[InventoryUnit]):
        self._units: Dict[str, InventoryUnit] = {}
        for unit in inventory:
            # first match wins, as a linear scan would
            if unit.id is not None:
                self._units.setdefault(unit.id, unit)

    def group_name(self, unit_id: Optional[str]) -> str:
        unit = self._units.get(unit_id) if unit_id else None
        return unit.group if unit else DEFAULT_GROUP

    def unit_number(self, unit_id: Optional[str]) -> str:
        unit = self._units.get(unit_id) if unit_id else None
        return (unit.unit_number or "") if unit else ""


def days_until_end(lease: Lease, now: datetime) -> Optional[int]:
    """
    Whole days until the lease ends, rounded up; negative once it has ended.

    Open-ended leases report NO_END_DATE_DAYS. An end date that cannot be
    parsed gives None, which falls in neither the expired nor expiring list.
    """
    if not lease.lease_end_date:
        return NO_END_DATE_DAYS
    end = lease.end_date
    if end is None:
        return None
    return math.ceil((end - now).total_seconds() / SECONDS_PER_DAY)


def csv_quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def build_payments_csv(
    active_leases: List[Lease],
    month_payments_by_unit: Dict[Optional[str], dict],
    units: _UnitIndex,
    rental_period_key: str,
) -> CsvExport:
    rows = [",".join(CSV_HEADERS)]
    for lease in active_leases:
        paid = month_payments_by_unit.get(lease.unit_id)
        actual = js_number(paid["sum"]) if paid else ""
        comments = _NEWLINES.sub(" ", COMMENT_SEPARATOR.join(paid["comments"])) if paid else ""
        rows.append(",".join([
            units.unit_number(lease.unit_id),
            lease.tenant_name or "",
            js_number(lease.rent_amount),
            actual,
            rental_period_key,
            csv_quote(comments),
        ]))
    return CsvExport(filename=f"payments-{rental_period_key}.csv", content="\n".join(rows))


def build_details(
    snapshot: LandlordSnapshot,
    period: PeriodRange,
    now: Optional[datetime] = None,
) -> ReportDetails:
    """
    Second pass over the landlord snapshot.

    ``period`` drives collections, delinquencies and the CSV. Expirations use
    the wall clock (``now``) instead, so the email shows what is overdue or
    expiring on the day it is sent.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    units = _UnitIndex(snapshot.inventory)
    key = period.rental_period_key

    active_at_end = [l for l in snapshot.leases if l.is_active_at(period.end)]
    month_payments = [
        p for p in snapshot.payments
        if p.rental_period == key and p.is_rent_payment
    ]

    rent_by_group: Dict[str, float] = {}
    for payment in month_payments:
        group = units.group_name(payment.unit_id)
        rent_by_group[group] = rent_by_group.get(group, 0) + to_number(payment.actual_rent_paid)

    paid_unit_ids = {p.unit_id for p in month_payments}
    delinquencies = [
        Delinquency(
            unit_number=units.unit_number(l.unit_id),
            tenant_name=l.tenant_name or "",
            expected_rent=to_number(l.rent_amount),
        )
        for l in active_at_end
        if l.unit_id not in paid_unit_ids
    ]

    active_now = [l for l in snapshot.leases if l.is_marked_active]
    expirations = [
        LeaseExpiration(
            unit_number=units.unit_number(l.unit_id),
            tenant_name=l.tenant_name or "",
            rent_amount=to_number(l.rent_amount),
            end_date=l.end_date,
            days_left=days_until_end(l, now),
        )
        for l in active_now
    ]
    dated = [e for e in expirations if e.days_left is not None]
    expired = sorted((e for e in dated if e.days_left < 0), key=lambda e: e.days_left)
    expiring = sorted(
        (e for e in dated if 0 <= e.days_left <= EXPIRING_WINDOW_DAYS),
        key=lambda e: e.days_left,
    )

    occupied_unit_ids = {l.unit_id for l in active_now}
    payments_by_unit = defaultdict(list)
    for payment in snapshot.payments:
        if payment.unit_id:
            payments_by_unit[payment.unit_id].append(payment)

    vacancies = []
    for unit in snapshot.inventory:
        if unit.id in occupied_unit_ids:
            continue
        history = sorted(
            payments_by_unit.get(unit.id, []),
            key=lambda p: sort_key_or_epoch(p.payment_date),
            reverse=True,
        )
        latest = history[0] if history else None
        last_rent = (
            to_number(latest.actual_rent_paid)
            if latest is not None and latest.actual_rent_paid is not None
            else None
        )
        vacancies.append(VacancyRow(unit_number=unit.unit_number or "", group_name=unit.group, last_rent=last_rent))

    month_payments_by_unit: Dict[Optional[str], dict] = {}
    for payment in month_payments:
        entry = month_payments_by_unit.setdefault(payment.unit_id, {"sum": 0, "comments": []})
        entry["sum"] += to_number(payment.actual_rent_paid)
        if payment.comments:
            entry["comments"].append(str(payment.comments))

    return ReportDetails(
        rent_collected_by_group=rent_by_group,
        period_delinquencies=delinquencies,
        expired_leases=expired,
        expiring_soon=expiring,
        vacancy_rows=vacancies,
        csv=build_payments_csv(active_at_end, month_payments_by_unit, units, key),
    )


async def build_monthly_report(
    store: LandlordStore,
    landlord_id: str,
    period: PeriodRange,
    now: Optional[datetime] = None,
) -> ReportDetails:
    snapshot = await load_snapshot(store, landlord_id)
    return build_details(snapshot, period, now=now)
