"""Validation for the contract form and status changes."""
from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Mapping, Optional

import pandas as pd

from .errors import InvalidTransitionError, ValidationError
from .models import (
    ALLOWED_TRANSITIONS,
    AMC_TYPES,
    CONTRACT_STATUSES,
    STATUS_PROPOSED,
    Contract,
    Invoice,
)
from .scheduling import contract_end_date

PHONE_DIGITS = 10

REQUIRED_TEXT_FIELDS = {
    "company_name": "Company name is required",
    "owner_name": "Owner name is required",
    "city": "City is required",
    "address": "Address is required",
}


def clean_text(value) -> Optional[str]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    value = str(value).strip()
    return value or None


def parse_amount(value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
        return round(amount, 2) if math.isfinite(amount) else None
    text = clean_text(value)
    if not text:
        return None
    normalized = re.sub(r"[^0-9.\-]", "", text)
    if normalized in {"", ".", "-", "-."}:
        return None
    try:
        amount = float(normalized)
    except ValueError:
        return None
    if not math.isfinite(amount):
        return None
    return round(amount, 2)


def ensure_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date()
    text = clean_text(value)
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    parsed = pd.to_datetime(text, errors="coerce", dayfirst=True)
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.date()


def phone_digits(value) -> str:
    return re.sub(r"\D", "", clean_text(value) or "")


def validate_contract_form(data: Mapping[str, Any]) -> dict[str, str]:
    """Return a ``{field: message}`` mapping; an empty mapping means the form is valid."""

    errors: dict[str, str] = {}
    for key, message in REQUIRED_TEXT_FIELDS.items():
        if not clean_text(data.get(key)):
            errors[key] = message

    if not clean_text(data.get("phone_number")):
        errors["phone_number"] = "Phone number is required"
    elif len(phone_digits(data.get("phone_number"))) != PHONE_DIGITS:
        errors["phone_number"] = "Please enter a valid 10-digit phone number"

    if ensure_date(data.get("amc_start_date")) is None:
        errors["amc_start_date"] = "AMC start date is required"

    amount = parse_amount(data.get("amc_amount"))
    if amount is None or amount <= 0:
        errors["amc_amount"] = "AMC amount must be greater than 0"

    if data.get("amc_type") not in AMC_TYPES:
        errors["amc_type"] = "Choose AMC type A, B or C"

    status = data.get("status") or STATUS_PROPOSED
    if status not in CONTRACT_STATUSES:
        errors["status"] = f"Unknown status: {status}"
    elif status != STATUS_PROPOSED:
        if not clean_text(data.get("invoice_number")):
            errors["invoice_number"] = "Invoice number is required"
        if ensure_date(data.get("invoice_date")) is None:
            errors["invoice_date"] = "Invoice date is required"
        invoice_amount = parse_amount(data.get("invoice_amount"))
        if invoice_amount is None or invoice_amount <= 0:
            errors["invoice_amount"] = "Invoice amount must be greater than 0"
    return errors


def build_contract(data: Mapping[str, Any], *, contract_id: Optional[int] = None) -> Contract:
    """Validate form ``data`` and turn it into a :class:`Contract`.

    The end date is always recomputed from the start date, and proposed
    contracts never carry invoice details.
    """

    errors = validate_contract_form(data)
    if errors:
        raise ValidationError(errors)

    start = ensure_date(data["amc_start_date"])
    status = data.get("status") or STATUS_PROPOSED
    invoice = None
    if status != STATUS_PROPOSED:
        invoice = Invoice(
            number=clean_text(data.get("invoice_number")),
            date=ensure_date(data.get("invoice_date")),
            amount=parse_amount(data.get("invoice_amount")),
        )
    return Contract(
        contract_id=contract_id,
        company_name=clean_text(data.get("company_name")),
        owner_name=clean_text(data.get("owner_name")),
        city=clean_text(data.get("city")),
        address=clean_text(data.get("address")),
        phone_number=clean_text(data.get("phone_number")),
        amc_start_date=start,
        amc_end_date=contract_end_date(start),
        amc_type=data["amc_type"],
        amc_amount=parse_amount(data.get("amc_amount")),
        product_description=clean_text(data.get("product_description")) or "",
        invoice=invoice,
        status=status,
    )


def check_transition(current: str, requested: str) -> None:
    if current == requested:
        return
    if requested not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(current, requested)
