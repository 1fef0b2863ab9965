from datetime import date

import pytest

from amc_manager.errors import InvalidTransitionError, ValidationError
from amc_manager.validation import (
    build_contract,
    check_transition,
    clean_text,
    ensure_date,
    parse_amount,
    validate_contract_form,
)


def _form(**overrides):
    data = {
        "company_name": "Acme Traders",
        "owner_name": "Ravi Kumar",
        "city": "Pune",
        "address": "12 MG Road",
        "phone_number": "9876543210",
        "amc_start_date": date(2024, 4, 1),
        "amc_type": "B",
        "amc_amount": 15000,
        "product_description": "4 cameras",
        "status": "active",
        "invoice_number": "INV-77",
        "invoice_date": date(2024, 4, 1),
        "invoice_amount": 15000,
    }
    data.update(overrides)
    return data


def test_valid_form_has_no_errors():
    assert validate_contract_form(_form()) == {}


def test_required_fields_are_reported():
    errors = validate_contract_form(
        _form(company_name="  ", owner_name=None, city="", address="", phone_number="", amc_start_date=None)
    )
    assert errors["company_name"] == "Company name is required"
    assert errors["owner_name"] == "Owner name is required"
    assert errors["city"] == "City is required"
    assert errors["address"] == "Address is required"
    assert errors["phone_number"] == "Phone number is required"
    assert errors["amc_start_date"] == "AMC start date is required"


@pytest.mark.parametrize("phone", ["12345", "98765432101", "phone"])
def test_phone_must_have_ten_digits(phone):
    errors = validate_contract_form(_form(phone_number=phone))
    assert errors["phone_number"] == "Please enter a valid 10-digit phone number"


def test_phone_separators_are_ignored():
    assert "phone_number" not in validate_contract_form(_form(phone_number="98765-43210"))


def test_amount_must_be_positive():
    assert validate_contract_form(_form(amc_amount=0))["amc_amount"] == "AMC amount must be greater than 0"
    assert "amc_amount" in validate_contract_form(_form(amc_amount="abc"))


def test_unknown_tier_and_status_rejected():
    errors = validate_contract_form(_form(amc_type="D", status="archived"))
    assert errors["amc_type"] == "Choose AMC type A, B or C"
    assert errors["status"] == "Unknown status: archived"


def test_invoice_required_unless_proposed():
    blank_invoice = {"invoice_number": "", "invoice_date": None, "invoice_amount": 0}
    errors = validate_contract_form(_form(**blank_invoice))
    assert errors == {
        "invoice_number": "Invoice number is required",
        "invoice_date": "Invoice date is required",
        "invoice_amount": "Invoice amount must be greater than 0",
    }
    assert validate_contract_form(_form(status="proposed", **blank_invoice)) == {}


def test_build_contract_computes_end_date_and_invoice():
    contract = build_contract(_form(amc_start_date="2024-02-29"), contract_id=9)
    assert contract.contract_id == 9
    assert contract.amc_start_date == date(2024, 2, 29)
    assert contract.amc_end_date == date(2025, 2, 28)
    assert contract.invoice.number == "INV-77"
    assert contract.invoice.amount == 15000.0


def test_build_contract_drops_invoice_for_proposals():
    contract = build_contract(_form(status="proposed"))
    assert contract.status == "proposed"
    assert contract.invoice is None


def test_build_contract_raises_with_field_errors():
    with pytest.raises(ValidationError) as excinfo:
        build_contract(_form(city="", amc_amount=-5))
    assert set(excinfo.value.errors) == {"city", "amc_amount"}
    assert "City is required" in str(excinfo.value)


@pytest.mark.parametrize(
    "current, requested",
    [
        ("proposed", "active"),
        ("proposed", "cancelled"),
        ("active", "suspended"),
        ("suspended", "active"),
        ("expired", "active"),
        ("cancelled", "cancelled"),
    ],
)
def test_allowed_transitions(current, requested):
    check_transition(current, requested)


@pytest.mark.parametrize(
    "current, requested",
    [
        ("cancelled", "active"),
        ("expired", "proposed"),
        ("active", "proposed"),
        ("suspended", "expired"),
    ],
)
def test_blocked_transitions(current, requested):
    with pytest.raises(InvalidTransitionError):
        check_transition(current, requested)


def test_parsing_helpers():
    assert clean_text("  hi ") == "hi"
    assert clean_text("   ") is None
    assert parse_amount("₹ 1,250.50") == 1250.5
    assert parse_amount("") is None
    assert ensure_date("2024-05-06") == date(2024, 5, 6)
    assert ensure_date("06/05/2024") == date(2024, 5, 6)
    assert ensure_date("not a date") is None
