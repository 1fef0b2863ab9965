import logging
import os
import time
from datetime import date, datetime
from typing import Iterable, Optional

import pandas as pd
import streamlit as st
from dotenv import load_dotenv

from amc_manager.config import AppConfig, load_config
from amc_manager.errors import AmcError, ValidationError
from amc_manager.exports import contracts_frame, export_contracts_excel
from amc_manager.models import (
    AMC_PLANS,
    AMC_TYPES,
    CONTRACT_STATUSES,
    FORM_STATUS_OPTIONS,
    STATUS_PROPOSED,
    Contract,
    ContractView,
    Invoice,
    RenewalAlert,
)
from amc_manager.proposals import build_proposal, format_proposal_date, render_proposal_pdf
from amc_manager.repositories import ContractRepository, Database, UserRepository
from amc_manager.scheduling import (
    contract_end_date,
    dashboard_metrics,
    derive_contracts,
    renewal_alerts,
    todays_services,
)
from amc_manager.security import AccountLockoutService, PasswordService, authenticate
from amc_manager.validation import build_contract, clean_text, ensure_date, parse_amount

# ---------- Config ----------
load_dotenv()
CONFIG: AppConfig = load_config()
DATE_FMT = "%d-%m-%Y"

logging.basicConfig(
    level=getattr(logging, CONFIG.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("amc_manager.app")

PAGES = ["Dashboard", "Add Contract", "Contracts", "Proposal"]

STATUS_BADGES = {
    "active": "🟢 Active",
    "proposed": "🔵 Proposed",
    "expired": "🔴 Expired",
    "suspended": "🟡 Suspended",
    "cancelled": "⚪ Cancelled",
}

TIER_BADGES = {
    "A": "🟦 Type A",
    "B": "🟩 Type B",
    "C": "🟪 Type C",
}


# ---------- Services ----------
class Services:
    """Bundle of repositories and security helpers shared across pages."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.db = Database.from_config(config)
        self.passwords = PasswordService.default()
        self.db.init_schema(self.passwords)
        self.contracts = ContractRepository(self.db)
        self.users = UserRepository(self.db)
        self.lockout = AccountLockoutService(config, self.users)


@st.cache_resource
def get_services() -> Services:
    return Services(CONFIG)


# ---------- Helpers ----------
def format_money(value, symbol: Optional[str] = None) -> Optional[str]:
    amount = parse_amount(value)
    if amount is None:
        return None
    symbol = (CONFIG.currency_symbol if symbol is None else symbol).strip()
    if symbol:
        return f"{symbol}{amount:,.2f}"
    return f"{amount:,.2f}"


def fmt_date(value) -> str:
    parsed = ensure_date(value)
    return parsed.strftime(DATE_FMT) if parsed else "-"


def status_badge(status: str) -> str:
    return STATUS_BADGES.get(status, status.title())


def alert_label(alert: RenewalAlert) -> str:
    if alert.days_remaining == 0:
        return "🚨 Expires today"
    suffix = "day" if alert.days_remaining == 1 else "days"
    prefix = "🚨 Urgent" if alert.urgent else "⏳ Expiring soon"
    return f"{prefix}: {alert.days_remaining} {suffix} left"


def filter_contract_views(
    views: Iterable[ContractView],
    search: str = "",
    status: str = "all",
    amc_type: str = "all",
) -> list[ContractView]:
    """Match ``search`` against company, owner and city, then apply the dropdown filters."""

    needle = (search or "").strip().lower()
    matches = []
    for view in views:
        contract = view.contract
        if needle and not any(
            needle in (value or "").lower()
            for value in (contract.company_name, contract.owner_name, contract.city)
        ):
            continue
        if status != "all" and view.status != status:
            continue
        if amc_type != "all" and contract.amc_type != amc_type:
            continue
        matches.append(view)
    return matches


def contract_form_defaults(contract: Optional[Contract] = None) -> dict[str, object]:
    if contract is None:
        return {
            "company_name": "",
            "owner_name": "",
            "city": "",
            "address": "",
            "phone_number": "",
            "amc_start_date": None,
            "amc_type": AMC_TYPES[0],
            "amc_amount": 0.0,
            "product_description": "",
            "status": STATUS_PROPOSED,
            "invoice_number": "",
            "invoice_date": None,
            "invoice_amount": 0.0,
        }
    invoice = contract.invoice
    return {
        "company_name": contract.company_name,
        "owner_name": contract.owner_name,
        "city": contract.city,
        "address": contract.address,
        "phone_number": contract.phone_number,
        "amc_start_date": contract.amc_start_date,
        "amc_type": contract.amc_type,
        "amc_amount": float(contract.amc_amount),
        "product_description": contract.product_description,
        "status": contract.status,
        "invoice_number": invoice.number if invoice else "",
        "invoice_date": invoice.date if invoice else None,
        "invoice_amount": float(invoice.amount) if invoice else 0.0,
    }


def load_contract_views(services: Services, user: Optional[dict], today: date) -> list[ContractView]:
    contracts = services.contracts.list_contracts(user)
    last_visits = services.contracts.last_service_dates((c.contract_id for c in contracts), as_of=today)
    return derive_contracts(contracts, today, last_visits)


def _safe_rerun():
    try:
        st.rerun()
    except AttributeError:
        st.experimental_rerun()


def _guard_double_submit(action_key: str, submitted: bool, *, cooldown_seconds: float = 3.0) -> bool:
    if not submitted:
        return False
    state_key = f"submit_guard_{action_key}"
    last_submit = st.session_state.get(state_key)
    now = time.time()
    if isinstance(last_submit, (int, float)) and now - last_submit < cooldown_seconds:
        st.warning("That was just submitted. Please wait a moment before trying again.")
        return False
    st.session_state[state_key] = now
    return True


def _go_to(page: str, contract_id: Optional[int] = None) -> None:
    # The sidebar radio owns "nav_page"; it picks this up on the next run.
    st.session_state.pending_page = page
    if contract_id is not None:
        st.session_state.selected_contract_id = contract_id


def _streamlit_runtime_active() -> bool:
    """Return True when running inside a Streamlit runtime."""

    try:
        from streamlit.runtime.scriptrunner import get_script_run_ctx
    except ImportError:
        return False
    return get_script_run_ctx() is not None


def _bootstrap_streamlit_app() -> None:
    """Launch the Streamlit app when executed via ``python app.py``."""

    from streamlit.web import bootstrap

    flag_options: dict[str, object] = {"server.headless": True}
    port_env = os.getenv("PORT")
    if port_env and port_env.isdigit():
        flag_options["server.port"] = int(port_env)
    bootstrap.run(os.path.abspath(__file__), False, [], flag_options)


# ---------- Auth ----------
def login_box(services: Services) -> bool:
    if st.session_state.get("user"):
        user = st.session_state.user
        st.sidebar.success(f"Logged in as {user['username']} ({user['role']})")
        return True
    with st.form("login_form"):
        st.markdown("### AMC Management System")
        st.caption("Sign in to manage maintenance contracts.")
        username = st.text_input("Username")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Login", use_container_width=True)
    if submitted:
        user, error = authenticate(
            username,
            password,
            users=services.users,
            lockout=services.lockout,
            passwords=services.passwords,
        )
        if user:
            st.session_state.user = user
            st.session_state.pending_page = "Dashboard"
            _safe_rerun()
        else:
            st.error(error)
    st.stop()
    return False


def _sign_out() -> None:
    for key in ("user", "selected_contract_id", "editing_contract_id", "proposal_issued_at"):
        st.session_state.pop(key, None)
    st.session_state.pending_page = "Dashboard"


# ---------- Pages ----------
def dashboard_page(services: Services, views: list[ContractView], today: date) -> None:
    user = st.session_state.user or {}
    st.subheader("📊 AMC Management System")
    st.caption(f"Welcome back, {user.get('display_name') or user.get('username', '')}")

    metrics = dashboard_metrics(views, today)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Active AMCs", metrics.active, help="Currently active contracts")
    col2.metric("Proposed AMCs", metrics.proposed, help="Pending proposals")
    col3.metric("Expired AMCs", metrics.expired, help="Require renewal")
    col4.metric("Today's Services", metrics.todays_services, help="Scheduled for today")

    left, right = st.columns(2)
    with left:
        st.markdown("#### 📅 Today's Scheduled Services")
        due_today = todays_services(views, today)
        if not due_today:
            st.caption("No services scheduled for today")
        for view in due_today:
            contract = view.contract
            with st.container(border=True):
                st.markdown(f"**{contract.company_name}**")
                st.caption(f"{contract.owner_name} • Type {contract.amc_type} • {contract.city}")
                clicked = st.button("Mark serviced", key=f"dash_serviced_{contract.contract_id}")
                if _guard_double_submit(f"dash_serviced_{contract.contract_id}", clicked):
                    services.contracts.log_service_visit(
                        contract.contract_id, today, "Scheduled visit", user.get("user_id")
                    )
                    st.success(f"Service logged for {contract.company_name}.")
                    _safe_rerun()

    with right:
        st.markdown(f"#### ⏰ Renewal Alerts (Next {CONFIG.renewal_window_days} Days)")
        alerts = renewal_alerts(
            views,
            today,
            window_days=CONFIG.renewal_window_days,
            urgent_days=CONFIG.urgent_days,
        )
        if not alerts:
            st.caption(f"No contracts expiring in the next {CONFIG.renewal_window_days} days")
        for alert in alerts:
            contract = alert.view.contract
            with st.container(border=True):
                st.markdown(f"**{contract.company_name}** - {alert_label(alert)}")
                st.caption(f"{contract.owner_name} • Expires {fmt_date(contract.amc_end_date)}")

    st.markdown("#### AMC Distribution")
    tier_cols = st.columns(len(AMC_TYPES))
    for col, tier in zip(tier_cols, AMC_TYPES):
        plan = AMC_PLANS[tier]
        col.metric(f"Type {tier} ({plan['short_name']})", metrics.tier_counts.get(tier, 0), help=plan["cadence"])


def contract_form(services: Services, *, contract: Optional[Contract] = None, key_prefix: str = "new") -> None:
    defaults = contract_form_defaults(contract)
    is_editing = contract is not None
    st.subheader("✏️ Edit Contract" if is_editing else "➕ Add New Contract")

    st.markdown("##### Customer Information")
    c1, c2 = st.columns(2)
    company_name = c1.text_input("Company Name *", value=defaults["company_name"], key=f"{key_prefix}_company")
    owner_name = c2.text_input("Owner Name *", value=defaults["owner_name"], key=f"{key_prefix}_owner")
    city = c1.text_input("City *", value=defaults["city"], key=f"{key_prefix}_city")
    phone_number = c2.text_input("Phone Number *", value=defaults["phone_number"], key=f"{key_prefix}_phone")
    address = st.text_area("Address *", value=defaults["address"], key=f"{key_prefix}_address")

    st.markdown("##### AMC Details")
    d1, d2 = st.columns(2)
    start_date = d1.date_input(
        "AMC Start Date *",
        value=defaults["amc_start_date"],
        format="DD/MM/YYYY",
        key=f"{key_prefix}_start",
    )
    end_preview = contract_end_date(start_date) if start_date else None
    d2.text_input(
        "AMC End Date (Auto-calculated)",
        value=fmt_date(end_preview) if end_preview else "",
        disabled=True,
        key=f"{key_prefix}_end_{start_date}",
    )
    amc_type = d1.selectbox(
        "AMC Type",
        AMC_TYPES,
        index=AMC_TYPES.index(defaults["amc_type"]),
        format_func=lambda tier: AMC_PLANS[tier]["label"],
        key=f"{key_prefix}_type",
    )
    amc_amount = d2.number_input(
        "AMC Amount *", min_value=0.0, step=500.0, value=defaults["amc_amount"], key=f"{key_prefix}_amount"
    )
    product_description = st.text_area(
        "Product Description",
        value=defaults["product_description"],
        placeholder="Cameras, DVR/NVR, storage and other installed equipment",
        key=f"{key_prefix}_description",
    )
    status_options = list(FORM_STATUS_OPTIONS)
    if defaults["status"] not in status_options:
        status_options.append(defaults["status"])
    status = d1.selectbox(
        "Status",
        status_options,
        index=status_options.index(defaults["status"]),
        format_func=str.title,
        key=f"{key_prefix}_status",
    )

    optional = " (Optional)" if status == STATUS_PROPOSED else " *"
    st.markdown("##### Invoice Details")
    i1, i2, i3 = st.columns(3)
    invoice_number = i1.text_input(
        f"Invoice Number{optional}", value=defaults["invoice_number"], key=f"{key_prefix}_inv_no"
    )
    invoice_date = i2.date_input(
        f"Invoice Date{optional}",
        value=defaults["invoice_date"],
        format="DD/MM/YYYY",
        key=f"{key_prefix}_inv_date",
    )
    invoice_amount = i3.number_input(
        f"Invoice Amount{optional}",
        min_value=0.0,
        step=500.0,
        value=defaults["invoice_amount"],
        key=f"{key_prefix}_inv_amount",
    )

    b1, b2 = st.columns((0.2, 0.8))
    submitted = b1.button("Update Customer" if is_editing else "Add Customer", type="primary", key=f"{key_prefix}_submit")
    if b2.button("Cancel", key=f"{key_prefix}_cancel"):
        st.session_state.pop("editing_contract_id", None)
        _go_to("Contracts" if is_editing else "Dashboard")
        _safe_rerun()

    if not _guard_double_submit(f"contract_form_{key_prefix}", submitted):
        return
    payload = {
        "company_name": company_name,
        "owner_name": owner_name,
        "city": city,
        "address": address,
        "phone_number": phone_number,
        "amc_start_date": start_date,
        "amc_type": amc_type,
        "amc_amount": amc_amount,
        "product_description": product_description,
        "status": status,
        "invoice_number": invoice_number,
        "invoice_date": invoice_date,
        "invoice_amount": invoice_amount,
    }
    user = st.session_state.user or {}
    try:
        record = build_contract(payload, contract_id=contract.contract_id if contract else None)
        if is_editing:
            services.contracts.update(record)
            st.session_state.pop("editing_contract_id", None)
            st.success("Customer updated successfully")
        else:
            services.contracts.create(record, user.get("user_id"))
            st.success("Customer added successfully")
    except ValidationError as exc:
        for message in exc.errors.values():
            st.error(message)
        return
    except AmcError as exc:
        st.error(str(exc))
        return
    _go_to("Contracts")
    _safe_rerun()


def _render_contract_actions(services: Services, view: ContractView, today: date) -> None:
    contract = view.contract
    cid = contract.contract_id
    user = st.session_state.user or {}
    a1, a2, a3, a4 = st.columns(4)
    if a1.button("✏️ Edit", key=f"edit_{cid}"):
        st.session_state.editing_contract_id = cid
        _safe_rerun()
    if a2.button("📄 Proposal", key=f"proposal_{cid}"):
        st.session_state.pop("proposal_issued_at", None)
        _go_to("Proposal", cid)
        _safe_rerun()
    with a3.popover("🛠 Log service"):
        visit_date = st.date_input(
            "Visit date", value=today, max_value=today, key=f"visit_date_{cid}", format="DD/MM/YYYY"
        )
        notes = st.text_input("Notes", key=f"visit_notes_{cid}")
        saved = st.button("Save visit", key=f"visit_save_{cid}")
        if _guard_double_submit(f"visit_save_{cid}", saved):
            services.contracts.log_service_visit(cid, visit_date, clean_text(notes) or "", user.get("user_id"))
            st.success("Service visit logged.")
            _safe_rerun()
    with a4.popover("🗑 Delete"):
        st.warning(f"Are you sure you want to delete {contract.company_name}?")
        if st.button("Yes, delete", key=f"delete_{cid}", type="primary"):
            try:
                services.contracts.delete(cid)
            except AmcError as exc:
                st.error(str(exc))
            else:
                st.success("Customer deleted successfully")
                _safe_rerun()

    if view.status in {"active", "expired"}:
        with st.expander("🔁 Renew contract"):
            new_start = st.date_input(
                "New start date",
                value=max(contract.amc_end_date, today) if view.status == "expired" else contract.amc_end_date,
                key=f"renew_start_{cid}",
                format="DD/MM/YYYY",
            )
            r1, r2, r3 = st.columns(3)
            renew_amount = r1.number_input(
                "AMC amount", min_value=0.0, value=float(contract.amc_amount), key=f"renew_amount_{cid}"
            )
            inv_no = r2.text_input("Invoice number", key=f"renew_inv_{cid}")
            inv_date = r3.date_input("Invoice date", value=today, key=f"renew_inv_date_{cid}", format="DD/MM/YYYY")
            if st.button("Renew", key=f"renew_{cid}"):
                invoice = None
                if clean_text(inv_no):
                    invoice = Invoice(number=clean_text(inv_no), date=inv_date, amount=float(renew_amount))
                try:
                    services.contracts.renew(cid, new_start, invoice=invoice, amount=float(renew_amount))
                except ValidationError as exc:
                    for message in exc.errors.values():
                        st.error(message)
                except AmcError as exc:
                    st.error(str(exc))
                else:
                    st.success(f"{contract.company_name} renewed until {fmt_date(contract_end_date(new_start))}.")
                    _safe_rerun()


def contracts_page(services: Services, views: list[ContractView], today: date) -> None:
    editing_id = st.session_state.get("editing_contract_id")
    if editing_id is not None:
        try:
            contract = services.contracts.get(editing_id)
        except AmcError as exc:
            st.error(str(exc))
            st.session_state.pop("editing_contract_id", None)
        else:
            contract_form(services, contract=contract, key_prefix=f"edit_{editing_id}")
            return

    st.subheader("👥 Customer Management")
    f1, f2, f3 = st.columns((0.5, 0.25, 0.25))
    search = f1.text_input("Search", placeholder="Search by company, owner, or city...", key="contracts_search")
    status_filter = f2.selectbox(
        "Status", ["all", *CONTRACT_STATUSES], format_func=str.title, key="contracts_status_filter"
    )
    type_filter = f3.selectbox(
        "AMC type",
        ["all", *AMC_TYPES],
        format_func=lambda value: "All Types" if value == "all" else f"Type {value}",
        key="contracts_type_filter",
    )
    filtered = filter_contract_views(views, search, status_filter, type_filter)
    st.caption(f"Customers ({len(filtered)})")

    if filtered:
        st.download_button(
            "⬇️ Export to Excel",
            data=export_contracts_excel(filtered),
            file_name=f"amc_contracts_{today:%Y%m%d}.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
        table = contracts_frame(filtered)
        table["Amount"] = table["Amount"].apply(format_money)
        table["Invoice amount"] = table["Invoice amount"].apply(lambda v: format_money(v) if pd.notna(v) else "")
        st.dataframe(table, use_container_width=True, hide_index=True)
    else:
        st.info("No customers match the current filters.")

    for view in filtered:
        contract = view.contract
        title = f"{contract.company_name} - {status_badge(view.status)} • {TIER_BADGES.get(contract.amc_type, contract.amc_type)}"
        with st.expander(title):
            info1, info2 = st.columns(2)
            info1.markdown(
                f"**Owner:** {contract.owner_name}  \n"
                f"**Phone:** {contract.phone_number}  \n"
                f"**City:** {contract.city}  \n"
                f"**Address:** {contract.address}"
            )
            next_service = fmt_date(view.next_service_date) if view.next_service_date else "-"
            info2.markdown(
                f"**AMC period:** {fmt_date(contract.amc_start_date)} → {fmt_date(contract.amc_end_date)}  \n"
                f"**Amount:** {format_money(contract.amc_amount)}  \n"
                f"**Next service:** {next_service}  \n"
                f"**Last service:** {fmt_date(view.last_service_date) if view.last_service_date else '-'}"
            )
            if contract.product_description:
                st.caption(contract.product_description)
            visits = services.contracts.list_service_visits(contract.contract_id)
            if visits:
                st.dataframe(
                    pd.DataFrame(
                        [{"Date": fmt_date(v.visit_date), "Notes": v.notes} for v in visits[:10]]
                    ),
                    hide_index=True,
                    use_container_width=True,
                )
            _render_contract_actions(services, view, today)


def proposal_page(services: Services) -> None:
    contract_id = st.session_state.get("selected_contract_id")
    if contract_id is None:
        st.info("Choose a customer on the Contracts page to generate a proposal.")
        return
    try:
        contract = services.contracts.get(contract_id)
    except AmcError as exc:
        st.error(str(exc))
        return

    # Keep the proposal number stable across reruns of this page.
    issued_at = st.session_state.setdefault("proposal_issued_at", datetime.now())
    document = build_proposal(contract, CONFIG.company, issued_at, valid_days=CONFIG.proposal_valid_days)

    if st.button("⬅️ Back to Customers"):
        _go_to("Contracts")
        _safe_rerun()

    company = document.company
    st.markdown(f"## {company.name}")
    st.caption(f"{company.tagline} • {company.email} • {company.phone}")
    left, right = st.columns(2)
    left.markdown(
        f"**AMC PROPOSAL**  \n"
        f"Proposal No: {document.number}  \n"
        f"Date: {format_proposal_date(document.issued_on)}  \n"
        f"Valid Until: {format_proposal_date(document.valid_until)}"
    )
    right.markdown(
        f"**Company:** {contract.company_name}  \n"
        f"**Contact Person:** {contract.owner_name}  \n"
        f"**Address:** {contract.address}, {contract.city}  \n"
        f"**Phone:** {contract.phone_number}"
    )
    if document.system_details:
        st.markdown(f"**System Details:** {document.system_details}")
    st.markdown(f"#### {document.plan_title}")
    st.caption(document.plan_frequency)
    st.markdown("\n".join(f"- {service}" for service in document.services))
    st.markdown(
        f"**Contract Duration:** {fmt_date(contract.amc_start_date)} → {fmt_date(contract.amc_end_date)} "
        f"({document.duration_label})  \n"
        f"**Total AMC Amount:** {format_money(contract.amc_amount)} (Including all taxes)"
    )
    st.markdown("**Terms & Conditions**")
    st.markdown("\n".join(f"{idx}. {term}" for idx, term in enumerate(document.terms, start=1)))

    pdf_bytes = render_proposal_pdf(document)
    st.download_button(
        "⬇️ Download PDF",
        data=pdf_bytes,
        file_name=f"{document.number}.pdf",
        mime="application/pdf",
        type="primary",
    )


def main():
    st.set_page_config(page_title="AMC Manager", page_icon="📹", layout="wide")
    services = get_services()
    st.session_state.setdefault("user", None)
    st.session_state.setdefault("nav_page", PAGES[0])
    pending_page = st.session_state.pop("pending_page", None)
    if pending_page in PAGES:
        st.session_state.nav_page = pending_page
    login_box(services)

    with st.sidebar:
        st.markdown("### Navigation")
        st.radio("Navigate", PAGES, key="nav_page")
        st.divider()
        if st.button("Sign Out", use_container_width=True):
            _sign_out()
            _safe_rerun()

    today = date.today()
    page = st.session_state.nav_page
    try:
        if page == "Dashboard":
            views = load_contract_views(services, st.session_state.user, today)
            dashboard_page(services, views, today)
        elif page == "Add Contract":
            contract_form(services)
        elif page == "Contracts":
            views = load_contract_views(services, st.session_state.user, today)
            contracts_page(services, views, today)
        elif page == "Proposal":
            proposal_page(services)
    except AmcError as exc:
        logger.exception("Unhandled application error on %s", page)
        st.error(str(exc))


if __name__ == "__main__":
    if _streamlit_runtime_active():
        main()
    else:
        _bootstrap_streamlit_app()
