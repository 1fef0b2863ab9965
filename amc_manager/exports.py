"""Tabular views of contracts for display and Excel download."""
from __future__ import annotations

import io
from typing import Iterable

import pandas as pd

from .models import AMC_PLANS, ContractView

DATE_FMT = "%d-%m-%Y"

EXPORT_COLUMNS = [
    "ID",
    "Company",
    "Owner",
    "City",
    "Phone",
    "AMC type",
    "Start date",
    "End date",
    "Days remaining",
    "Amount",
    "Status",
    "Next service",
    "Last service",
    "Invoice number",
    "Invoice date",
    "Invoice amount",
]


def _fmt(value) -> str:
    return value.strftime(DATE_FMT) if value else ""


def contracts_frame(views: Iterable[ContractView]) -> pd.DataFrame:
    rows = []
    for view in views:
        contract = view.contract
        invoice = contract.invoice
        rows.append(
            {
                "ID": contract.contract_id,
                "Company": contract.company_name,
                "Owner": contract.owner_name,
                "City": contract.city,
                "Phone": contract.phone_number,
                "AMC type": f"{contract.amc_type} ({AMC_PLANS[contract.amc_type]['short_name']})",
                "Start date": _fmt(contract.amc_start_date),
                "End date": _fmt(contract.amc_end_date),
                "Days remaining": view.days_remaining,
                "Amount": contract.amc_amount,
                "Status": view.status.title(),
                "Next service": _fmt(view.next_service_date),
                "Last service": _fmt(view.last_service_date),
                "Invoice number": invoice.number if invoice else "",
                "Invoice date": _fmt(invoice.date) if invoice else "",
                "Invoice amount": invoice.amount if invoice else None,
            }
        )
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_contracts_excel(views: Iterable[ContractView], sheet_name: str = "Contracts") -> bytes:
    frame = contracts_frame(views)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name=sheet_name[:31] or "Contracts", index=False)
    buffer.seek(0)
    return buffer.getvalue()
