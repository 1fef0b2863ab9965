import importlib.util
import os
from datetime import date
from pathlib import Path

import pytest

from amc_manager.config import AppConfig
from amc_manager.models import Contract, Invoice
from amc_manager.repositories import ContractRepository, Database, UserRepository
from amc_manager.scheduling import contract_end_date
from amc_manager.security import PasswordService


@pytest.fixture(scope="session")
def app_module(tmp_path_factory):
    data_dir = tmp_path_factory.mktemp("app-data")
    os.environ.setdefault("AMC_DATA_DIR", str(data_dir))
    os.environ.setdefault("AMC_DB_URL", f"sqlite:///{data_dir / 'app.db'}")
    repo_root = Path(__file__).resolve().parents[1]
    app_path = repo_root / "app.py"
    spec = importlib.util.spec_from_file_location("app_for_tests", app_path)
    module = importlib.util.module_from_spec(spec)
    module._streamlit_runtime_active = lambda: False
    module._bootstrap_streamlit_app = lambda: None
    loader = spec.loader
    if loader is None:
        raise RuntimeError("Unable to load app module for tests")
    loader.exec_module(module)
    return module


def build_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        data_dir=tmp_path,
        db_url=f"sqlite:///{tmp_path / 'test.db'}",
        login_max_attempts=3,
        login_lockout_minutes=1,
    )


@pytest.fixture()
def config(tmp_path):
    return build_config(tmp_path)


@pytest.fixture()
def passwords():
    return PasswordService(iterations=1_000)


@pytest.fixture()
def db(config, passwords, monkeypatch):
    monkeypatch.setenv("ADMIN_USER", "test_admin")
    monkeypatch.setenv("ADMIN_PASS", "secret123")
    database = Database.from_config(config)
    database.init_schema(passwords)
    return database


@pytest.fixture()
def repo(db):
    return ContractRepository(db)


@pytest.fixture()
def users(db):
    return UserRepository(db)


@pytest.fixture()
def make_contract():
    def _make(**overrides):
        start = overrides.pop("amc_start_date", date(2024, 1, 15))
        status = overrides.pop("status", "active")
        invoice = overrides.pop("invoice", None)
        if invoice is None and status != "proposed":
            invoice = Invoice(number="INV-001", date=start, amount=12000.0)
        fields = {
            "company_name": "Acme Traders",
            "owner_name": "Ravi Kumar",
            "city": "Pune",
            "address": "12 MG Road",
            "phone_number": "9876543210",
            "amc_start_date": start,
            "amc_end_date": contract_end_date(start),
            "amc_type": "A",
            "amc_amount": 12000.0,
            "product_description": "8 cameras, 1 NVR",
            "invoice": invoice,
            "status": status,
        }
        fields.update(overrides)
        return Contract(**fields)

    return _make
