from datetime import date, timedelta

from amc_manager.scheduling import (
    add_months,
    contract_end_date,
    dashboard_metrics,
    derive_contract,
    derive_contracts,
    effective_status,
    next_service_date,
    renewal_alerts,
    todays_services,
)


def test_add_months_clamps_to_short_months():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)
    assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)


def test_contract_end_date_is_one_year_later():
    assert contract_end_date(date(2024, 3, 15)) == date(2025, 3, 15)
    assert contract_end_date(date(2024, 2, 29)) == date(2025, 2, 28)


def test_weekly_service_falls_on_start_weekday():
    start = date(2024, 1, 1)  # Monday
    assert next_service_date("A", start, date(2024, 1, 3)) == date(2024, 1, 8)
    assert next_service_date("A", start, date(2024, 1, 8)) == date(2024, 1, 8)


def test_weekly_service_rolls_over_once_logged_today():
    start = date(2024, 1, 1)
    today = date(2024, 1, 8)
    assert next_service_date("A", start, today, last_serviced=today) == date(2024, 1, 15)
    # A visit logged on an earlier day does not move today's slot.
    assert next_service_date("A", start, today, last_serviced=date(2024, 1, 5)) == today


def test_monthly_service_clamps_day_of_month():
    start = date(2024, 1, 31)
    assert next_service_date("B", start, date(2024, 2, 10)) == date(2024, 2, 29)
    assert next_service_date("B", start, date(2024, 3, 1)) == date(2024, 3, 31)
    assert next_service_date("B", start, date(2024, 4, 30)) == date(2024, 4, 30)


def test_monthly_service_moves_to_next_month_after_visit():
    start = date(2024, 1, 15)
    today = date(2024, 3, 15)
    assert next_service_date("B", start, today) == today
    assert next_service_date("B", start, today, last_serviced=today) == date(2024, 4, 15)
    assert next_service_date("B", start, date(2024, 3, 16)) == date(2024, 4, 15)


def test_on_demand_tier_has_no_schedule():
    assert next_service_date("C", date(2024, 1, 1), date(2024, 2, 1)) is None


def test_future_start_is_first_visit():
    start = date(2024, 5, 8)
    assert next_service_date("A", start, date(2024, 5, 1)) == start
    assert next_service_date("B", start, date(2024, 5, 1)) == start


def test_no_visit_after_end_date():
    start = date(2024, 1, 15)
    end = contract_end_date(start)
    today = date(2025, 1, 15)
    assert next_service_date("B", start, today, end_date=end) == today
    assert next_service_date("B", start, today, end_date=end, last_serviced=today) is None


def test_effective_status_expires_active_contracts():
    today = date(2024, 6, 1)
    assert effective_status("active", today - timedelta(days=1), today) == "expired"
    assert effective_status("active", today, today) == "active"
    assert effective_status("suspended", today - timedelta(days=1), today) == "suspended"
    assert effective_status("proposed", today - timedelta(days=1), today) == "proposed"


def test_derive_contract_only_schedules_active(make_contract):
    today = date(2024, 3, 4)
    active = derive_contract(make_contract(contract_id=1, amc_start_date=date(2024, 1, 1)), today)
    assert active.status == "active"
    assert active.next_service_date == date(2024, 3, 4)
    assert active.days_remaining == (date(2025, 1, 1) - today).days

    proposed = derive_contract(make_contract(contract_id=2, status="proposed"), today)
    assert proposed.next_service_date is None

    lapsed = derive_contract(make_contract(contract_id=3, amc_start_date=date(2022, 1, 1)), today)
    assert lapsed.status == "expired"
    assert lapsed.next_service_date is None
    assert lapsed.days_remaining < 0


def test_derive_contracts_uses_last_visit_lookup(make_contract):
    today = date(2024, 1, 8)
    contracts = [
        make_contract(contract_id=1, amc_start_date=date(2024, 1, 1)),
        make_contract(contract_id=2, amc_start_date=date(2024, 1, 1), company_name="Beta"),
    ]
    views = derive_contracts(contracts, today, {1: today})
    assert views[0].next_service_date == date(2024, 1, 15)
    assert views[0].last_service_date == today
    assert views[1].next_service_date == today
    assert todays_services(views, today) == [views[1]]


def test_renewal_alerts_window_and_ordering(make_contract):
    today = date(2024, 6, 1)

    def ending_in(days, name, **extra):
        end = today + timedelta(days=days)
        return make_contract(
            company_name=name,
            amc_start_date=add_months(end, -12),
            amc_end_date=end,
            **extra,
        )

    contracts = [
        ending_in(7, "Zeta"),
        ending_in(3, "beta"),
        ending_in(3, "Alpha"),
        ending_in(0, "Today Co"),
        ending_in(8, "Too Far"),
        ending_in(-1, "Lapsed"),
        ending_in(2, "Suspended Co", status="suspended"),
    ]
    views = derive_contracts(contracts, today)
    alerts = renewal_alerts(views, today)

    assert [alert.view.contract.company_name for alert in alerts] == [
        "Today Co",
        "Alpha",
        "beta",
        "Zeta",
    ]
    assert [alert.urgent for alert in alerts] == [True, True, True, False]
    assert [alert.days_remaining for alert in alerts] == [0, 3, 3, 7]


def test_dashboard_metrics_counts_by_status_and_tier(make_contract):
    today = date(2024, 1, 8)
    contracts = [
        make_contract(contract_id=1, amc_start_date=date(2024, 1, 1), amc_type="A"),
        make_contract(contract_id=2, amc_start_date=date(2023, 12, 8), amc_type="B"),
        make_contract(contract_id=3, status="proposed", amc_type="C"),
        make_contract(contract_id=4, amc_start_date=date(2022, 1, 1), amc_type="A"),
    ]
    metrics = dashboard_metrics(derive_contracts(contracts, today), today)
    assert metrics.active == 2
    assert metrics.proposed == 1
    assert metrics.expired == 1
    assert metrics.todays_services == 2
    assert metrics.tier_counts == {"A": 2, "B": 1, "C": 1}
