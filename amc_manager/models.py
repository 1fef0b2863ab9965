"""Contract records and the AMC plan catalogue."""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Optional

STATUS_PROPOSED = "proposed"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_SUSPENDED = "suspended"
STATUS_CANCELLED = "cancelled"

CONTRACT_STATUSES = [
    STATUS_PROPOSED,
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_SUSPENDED,
    STATUS_CANCELLED,
]

# Expired is derived from the end date, so the form never offers it.
FORM_STATUS_OPTIONS = [
    STATUS_PROPOSED,
    STATUS_ACTIVE,
    STATUS_SUSPENDED,
    STATUS_CANCELLED,
]

ALLOWED_TRANSITIONS = {
    STATUS_PROPOSED: {STATUS_ACTIVE, STATUS_CANCELLED},
    STATUS_ACTIVE: {STATUS_EXPIRED, STATUS_SUSPENDED, STATUS_CANCELLED},
    STATUS_SUSPENDED: {STATUS_ACTIVE, STATUS_CANCELLED},
    STATUS_EXPIRED: {STATUS_ACTIVE},
    STATUS_CANCELLED: set(),
}

TIER_WEEKLY = "A"
TIER_MONTHLY = "B"
TIER_ON_DEMAND = "C"

AMC_PLANS = OrderedDict(
    [
        (
            TIER_WEEKLY,
            {
                "label": "Type A - Premium (Weekly Service)",
                "short_name": "Premium",
                "cadence": "Weekly Service",
                "title": "TYPE A (Premium Plan) - Weekly Service",
                "frequency": "Weekly Service Visits",
                "services": [
                    "CCTV camera system weekly testing camp recording, time and date, power supply, hard disk as well as camera system",
                    "CCTV camera system backup when required",
                    "Unlimited breakdown service calls in CCTV camera system",
                    "Software upgrade online monitoring monitoring report in CCTV camera system",
                    "Hard disk health as well as other information in CCTV camera system",
                    "1st Priority service call attendance",
                ],
            },
        ),
        (
            TIER_MONTHLY,
            {
                "label": "Type B - Standard (Monthly Service)",
                "short_name": "Standard",
                "cadence": "Monthly Service",
                "title": "TYPE B (Standard Plan) - Monthly Service",
                "frequency": "Monthly Service Visits",
                "services": [
                    "Camera system monthly testing camp recording time and date power supply hard disk as well as camera system",
                    "CCTV camera system backup when required",
                    "Unlimited breakdown service calls in CCTV camera system",
                    "Software upgrade online monitoring monitoring report in CCTV camera system",
                    "Hard disk health as well as other information in CCTV camera system",
                    "2nd Priority service call attendance",
                ],
            },
        ),
        (
            TIER_ON_DEMAND,
            {
                "label": "Type C - Basic (On-Demand)",
                "short_name": "Basic",
                "cadence": "On-Demand",
                "title": "TYPE C (Basic Plan) - On-Demand Service",
                "frequency": "On-Demand Service Only",
                "services": [
                    "CCTV camera system backup when required",
                    "Unlimited breakdown service calls in CCTV camera system",
                    "Software upgrade online support in CCTV camera system",
                    "Hard disk health as well as other information in CCTV camera system",
                    "3rd Priority service call attendance",
                ],
            },
        ),
    ]
)

AMC_TYPES = list(AMC_PLANS.keys())


@dataclass(frozen=True)
class Invoice:
    number: str
    date: date
    amount: float


@dataclass
class Contract:
    """A customer together with the terms of their maintenance contract."""

    company_name: str
    owner_name: str
    city: str
    address: str
    phone_number: str
    amc_start_date: date
    amc_end_date: date
    amc_type: str = TIER_WEEKLY
    amc_amount: float = 0.0
    product_description: str = ""
    invoice: Optional[Invoice] = None
    status: str = STATUS_PROPOSED
    contract_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[str] = None

    @property
    def plan(self) -> dict:
        return AMC_PLANS[self.amc_type]

    def with_changes(self, **changes) -> "Contract":
        return replace(self, **changes)


@dataclass(frozen=True)
class ServiceVisit:
    contract_id: int
    visit_date: date
    notes: str = ""
    logged_by: Optional[int] = None
    visit_id: Optional[int] = None


@dataclass(frozen=True)
class ContractView:
    """A contract with the fields derived for the current day."""

    contract: Contract
    status: str
    next_service_date: Optional[date]
    last_service_date: Optional[date]
    days_remaining: int

    @property
    def contract_id(self) -> Optional[int]:
        return self.contract.contract_id


@dataclass(frozen=True)
class RenewalAlert:
    view: ContractView
    days_remaining: int
    urgent: bool


@dataclass(frozen=True)
class DashboardMetrics:
    active: int
    proposed: int
    expired: int
    todays_services: int
    tier_counts: dict = field(default_factory=dict)
