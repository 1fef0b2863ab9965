"""AMC proposal assembly and PDF rendering."""
from __future__ import annotations

import html
import io
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    ListFlowable,
    ListItem,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from .config import CompanyProfile
from .models import AMC_PLANS, Contract

DEFAULT_VALID_DAYS = 30
CONTRACT_DURATION_LABEL = "12 Months"
PAYMENT_MODES = "Bank Transfer / Cheque / Cash"

TERMS_AND_CONDITIONS = [
    "Payment terms: 100% advance payment required before service commencement.",
    "Service will be provided during business hours (9 AM to 6 PM).",
    "Emergency breakdown services available 24/7 for Type A customers.",
    "Customer must provide safe and easy access to the equipment.",
    "Replacement parts, if required, will be charged separately.",
    "This contract is non-transferable and valid for the specified duration only.",
    "Any modifications to this agreement must be in writing and signed by both parties.",
]


@dataclass(frozen=True)
class ProposalDocument:
    number: str
    issued_on: date
    valid_until: date
    company: CompanyProfile
    contract: Contract
    plan_title: str
    plan_frequency: str
    services: tuple[str, ...]
    terms: tuple[str, ...] = tuple(TERMS_AND_CONDITIONS)
    duration_label: str = CONTRACT_DURATION_LABEL

    @property
    def system_details(self) -> Optional[str]:
        return self.contract.product_description or None


def proposal_number(issued_at: datetime) -> str:
    return f"PROP-{int(issued_at.timestamp() * 1000)}"


def build_proposal(
    contract: Contract,
    company: CompanyProfile,
    issued_at: Optional[datetime] = None,
    *,
    valid_days: int = DEFAULT_VALID_DAYS,
) -> ProposalDocument:
    issued_at = issued_at or datetime.now()
    plan = AMC_PLANS[contract.amc_type]
    return ProposalDocument(
        number=proposal_number(issued_at),
        issued_on=issued_at.date(),
        valid_until=issued_at.date() + timedelta(days=valid_days),
        company=company,
        contract=contract,
        plan_title=plan["title"],
        plan_frequency=plan["frequency"],
        services=tuple(plan["services"]),
    )


def format_proposal_date(value: Optional[date]) -> str:
    return value.strftime("%d-%m-%Y") if value else "-"


def format_proposal_amount(amount: float, currency_prefix: str = "Rs.") -> str:
    prefix = currency_prefix.strip()
    return f"{prefix} {amount:,.2f}" if prefix else f"{amount:,.2f}"


def _esc(value: object) -> str:
    return html.escape(str(value or ""))


def render_proposal_pdf(document: ProposalDocument, *, currency_prefix: str = "Rs.") -> bytes:
    """Lay the proposal out on A4 pages and return the PDF bytes."""

    # The built-in Helvetica font has no rupee glyph, hence the text prefix.
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=f"AMC Proposal {document.number}",
        author=document.company.name,
    )
    styles = getSampleStyleSheet()
    styles.add(
        ParagraphStyle(
            name="CompanyTitle",
            parent=styles["Title"],
            textColor=colors.HexColor("#1d4ed8"),
            fontSize=20,
            leading=24,
        )
    )
    styles.add(
        ParagraphStyle(
            name="Centered",
            parent=styles["Normal"],
            alignment=TA_CENTER,
            textColor=colors.HexColor("#475569"),
            fontSize=9,
        )
    )
    styles.add(ParagraphStyle(name="BodySmall", parent=styles["Normal"], fontSize=10, leading=13))
    styles.add(
        ParagraphStyle(
            name="Amount",
            parent=styles["Normal"],
            fontSize=16,
            leading=20,
            textColor=colors.HexColor("#1d4ed8"),
        )
    )

    company = document.company
    contract = document.contract
    body = styles["BodySmall"]
    story: list[object] = []

    story.append(Paragraph(_esc(company.name), styles["CompanyTitle"]))
    story.append(Paragraph(_esc(company.tagline), styles["Centered"]))
    story.append(Paragraph(f"Email: {_esc(company.email)} | Phone: {_esc(company.phone)}", styles["Centered"]))
    story.append(Paragraph(f"Address: {_esc(company.address)}", styles["Centered"]))
    story.append(Spacer(1, 10))

    proposal_block = [
        Paragraph("<b>AMC PROPOSAL</b>", styles["Heading3"]),
        Paragraph(f"<b>Proposal No:</b> {_esc(document.number)}", body),
        Paragraph(f"<b>Date:</b> {format_proposal_date(document.issued_on)}", body),
        Paragraph(f"<b>Valid Until:</b> {format_proposal_date(document.valid_until)}", body),
    ]
    customer_block = [
        Paragraph("<b>Customer Details:</b>", styles["Heading3"]),
        Paragraph(f"<b>Company:</b> {_esc(contract.company_name)}", body),
        Paragraph(f"<b>Contact Person:</b> {_esc(contract.owner_name)}", body),
        Paragraph(f"<b>Address:</b> {_esc(contract.address)}", body),
        Paragraph(f"<b>City:</b> {_esc(contract.city)}", body),
        Paragraph(f"<b>Phone:</b> {_esc(contract.phone_number)}", body),
    ]
    story.append(_two_column(doc, proposal_block, customer_block, shade_right=True))
    story.append(Spacer(1, 10))

    if document.system_details:
        story.append(Paragraph("System Details:", styles["Heading3"]))
        story.append(Paragraph(_esc(document.system_details), body))
        story.append(Spacer(1, 8))

    story.append(Paragraph("Proposed AMC Plan", styles["Heading3"]))
    story.append(Paragraph(f"<b>{_esc(document.plan_title)}</b>", styles["Heading4"]))
    story.append(Paragraph(_esc(document.plan_frequency), styles["Centered"]))
    story.append(Paragraph("<b>Services Included:</b>", body))
    story.append(
        ListFlowable(
            [ListItem(Paragraph(_esc(service), body), leftIndent=12) for service in document.services],
            bulletType="bullet",
            start="•",
        )
    )
    story.append(Spacer(1, 10))

    duration_block = [
        Paragraph("Contract Duration", styles["Heading3"]),
        Paragraph(f"<b>Start Date:</b> {format_proposal_date(contract.amc_start_date)}", body),
        Paragraph(f"<b>End Date:</b> {format_proposal_date(contract.amc_end_date)}", body),
        Paragraph(f"<b>Duration:</b> {_esc(document.duration_label)}", body),
    ]
    investment_block = [
        Paragraph("Investment Details", styles["Heading3"]),
        Paragraph("<b>Total AMC Amount:</b>", body),
        Paragraph(
            _esc(format_proposal_amount(contract.amc_amount, currency_prefix)),
            styles["Amount"],
        ),
        Paragraph("(Including all taxes)", styles["Centered"]),
    ]
    story.append(_two_column(doc, duration_block, investment_block, shade_right=True))
    story.append(Spacer(1, 10))

    story.append(Paragraph("Terms &amp; Conditions", styles["Heading3"]))
    story.append(
        ListFlowable(
            [ListItem(Paragraph(_esc(term), body)) for term in document.terms],
            bulletType="1",
        )
    )
    story.append(Spacer(1, 10))

    story.append(Paragraph("Payment Information", styles["Heading3"]))
    story.append(Paragraph(f"<b>Payment Mode:</b> {PAYMENT_MODES}", body))
    story.append(Paragraph(f"<b>Bank Details:</b> {_esc(company.bank_details)}", body))
    story.append(Paragraph(f"<b>GST No:</b> {_esc(company.gst_number)}", body))
    story.append(Spacer(1, 24))

    customer_sign = [
        Paragraph("<b>Customer Acceptance</b>", body),
        Spacer(1, 28),
        Paragraph("Signature ____________________", body),
        Paragraph(f"<b>Name:</b> {_esc(contract.owner_name)}", body),
        Paragraph("<b>Date:</b> _____________", body),
    ]
    company_sign = [
        Paragraph("<b>Authorized Signatory</b>", body),
        Spacer(1, 28),
        Paragraph("Signature ____________________", body),
        Paragraph("<b>Name:</b> Authorized Person", body),
        Paragraph(f"<b>Title:</b> {_esc(company.signatory_title)}", body),
        Paragraph(f"<b>{_esc(company.name)}</b>", body),
    ]
    story.append(_two_column(doc, customer_sign, company_sign))
    story.append(Spacer(1, 16))

    story.append(
        Paragraph(
            f"Thank you for choosing {_esc(company.name)} for your CCTV maintenance needs.",
            styles["Centered"],
        )
    )
    story.append(
        Paragraph(
            f"For any queries, please contact us at {_esc(company.email)} or {_esc(company.phone)}",
            styles["Centered"],
        )
    )

    doc.build(story)
    buffer.seek(0)
    return buffer.getvalue()


def _two_column(doc, left: list, right: list, *, shade_right: bool = False) -> Table:
    table = Table([[left, right]], colWidths=[doc.width * 0.5, doc.width * 0.5])
    commands = [
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LEFTPADDING", (0, 0), (-1, -1), 6),
        ("RIGHTPADDING", (0, 0), (-1, -1), 6),
    ]
    if shade_right:
        commands.append(("BACKGROUND", (1, 0), (1, 0), colors.HexColor("#f1f5f9")))
    table.setStyle(TableStyle(commands))
    return table
