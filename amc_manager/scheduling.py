"""Service-date and renewal-status derivation for AMC contracts.

Every function takes ``today`` explicitly. Nothing here is persisted: the
dashboard derives these fields from a fresh snapshot of records on each
render.
"""
from __future__ import annotations

from calendar import monthrange
from datetime import date, timedelta
from typing import Iterable, Mapping, Optional

from .models import (
    AMC_TYPES,
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_PROPOSED,
    TIER_MONTHLY,
    TIER_WEEKLY,
    Contract,
    ContractView,
    DashboardMetrics,
    RenewalAlert,
)

DEFAULT_RENEWAL_WINDOW_DAYS = 7
DEFAULT_URGENT_DAYS = 3


def add_months(base: date, months: int) -> date:
    """Return ``base`` shifted by ``months`` while clamping the day to the target month."""

    if not isinstance(base, date):
        raise TypeError("base must be a date instance")
    try:
        months = int(months)
    except (TypeError, ValueError):
        raise TypeError("months must be an integer") from None

    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, monthrange(year, month)[1])
    return date(year, month, day)


def contract_end_date(start: date) -> date:
    """One year after ``start``, clamped like :func:`add_months`.

    A 29 February start ends on 28 February of the next year rather than
    rolling over to 1 March, so a contract never ends outside its
    anniversary month.
    """

    return add_months(start, 12)


def effective_status(status: str, end_date: Optional[date], today: date) -> str:
    if status == STATUS_ACTIVE and end_date is not None and end_date < today:
        return STATUS_EXPIRED
    return status


def days_remaining(end_date: date, today: date) -> int:
    return (end_date - today).days


def _day_in_month(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, monthrange(year, month)[1]))


def _next_weekly(start_date: date, reference: date, rollover: bool) -> date:
    delta = (start_date.weekday() - reference.weekday()) % 7
    if delta == 0 and rollover:
        delta = 7
    return reference + timedelta(days=delta)


def _next_monthly(start_date: date, reference: date, rollover: bool) -> date:
    candidate = _day_in_month(reference.year, reference.month, start_date.day)
    if candidate < reference or (candidate == reference and rollover):
        following = add_months(date(reference.year, reference.month, 1), 1)
        candidate = _day_in_month(following.year, following.month, start_date.day)
    return candidate


def next_service_date(
    amc_type: str,
    start_date: date,
    today: date,
    *,
    end_date: Optional[date] = None,
    last_serviced: Optional[date] = None,
) -> Optional[date]:
    """Return the next scheduled visit for a tier A (weekly) or B (monthly) contract.

    Weekly visits fall on the weekday of ``start_date`` and monthly visits on its
    day of the month, clamped to shorter months. A visit due today stays due
    until one is logged for today, after which it rolls to the next cadence.
    Contracts that have not started yet are first visited on their start date.
    Tier C and visits past ``end_date`` yield ``None``.
    """

    reference = max(today, start_date)
    rollover = reference == today and last_serviced == today
    if amc_type == TIER_WEEKLY:
        candidate = _next_weekly(start_date, reference, rollover)
    elif amc_type == TIER_MONTHLY:
        candidate = _next_monthly(start_date, reference, rollover)
    else:
        return None
    if end_date is not None and candidate > end_date:
        return None
    return candidate


def derive_contract(
    contract: Contract, today: date, last_serviced: Optional[date] = None
) -> ContractView:
    status = effective_status(contract.status, contract.amc_end_date, today)
    next_date = None
    if status == STATUS_ACTIVE:
        next_date = next_service_date(
            contract.amc_type,
            contract.amc_start_date,
            today,
            end_date=contract.amc_end_date,
            last_serviced=last_serviced,
        )
    return ContractView(
        contract=contract,
        status=status,
        next_service_date=next_date,
        last_service_date=last_serviced,
        days_remaining=days_remaining(contract.amc_end_date, today),
    )


def derive_contracts(
    contracts: Iterable[Contract],
    today: date,
    last_serviced: Optional[Mapping[int, date]] = None,
) -> list[ContractView]:
    lookup = last_serviced or {}
    return [
        derive_contract(contract, today, lookup.get(contract.contract_id))
        for contract in contracts
    ]


def renewal_alerts(
    views: Iterable[ContractView],
    today: date,
    window_days: int = DEFAULT_RENEWAL_WINDOW_DAYS,
    urgent_days: int = DEFAULT_URGENT_DAYS,
) -> list[RenewalAlert]:
    """Active contracts ending within ``window_days``, most urgent first."""

    alerts = []
    for view in views:
        if view.status != STATUS_ACTIVE:
            continue
        remaining = days_remaining(view.contract.amc_end_date, today)
        if 0 <= remaining <= window_days:
            alerts.append(
                RenewalAlert(view=view, days_remaining=remaining, urgent=remaining <= urgent_days)
            )
    alerts.sort(key=lambda alert: (alert.days_remaining, alert.view.contract.company_name.lower()))
    return alerts


def todays_services(views: Iterable[ContractView], today: date) -> list[ContractView]:
    return [view for view in views if view.next_service_date == today]


def dashboard_metrics(views: Iterable[ContractView], today: date) -> DashboardMetrics:
    views = list(views)
    tier_counts = {tier: 0 for tier in AMC_TYPES}
    for view in views:
        tier_counts[view.contract.amc_type] = tier_counts.get(view.contract.amc_type, 0) + 1
    return DashboardMetrics(
        active=sum(1 for view in views if view.status == STATUS_ACTIVE),
        proposed=sum(1 for view in views if view.status == STATUS_PROPOSED),
        expired=sum(1 for view in views if view.status == STATUS_EXPIRED),
        todays_services=len(todays_services(views, today)),
        tier_counts=tier_counts,
    )
