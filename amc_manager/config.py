"""Application configuration helpers."""
from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

APP_STORAGE_SUBDIR = "amc-manager"


@dataclass(frozen=True)
class CompanyProfile:
    """Identity of the service business printed on proposals."""

    name: str = "MAX Digital & Services"
    tagline: str = "CCTV Installation & Maintenance Services"
    email: str = "info@maxdigitalservices.com"
    phone: str = "+91 9876543210"
    address: str = "123 Technology Street, Digital City, Tech State - 123456"
    bank_details: str = "MAX Digital Services, Account No: 1234567890, IFSC: BANK0001234"
    gst_number: str = "29ABCDE1234F1Z5"
    signatory_title: str = "Director"


@dataclass(frozen=True)
class AppConfig:
    """Hold runtime configuration options for the application."""

    data_dir: Path
    db_url: str
    login_max_attempts: int = 5
    login_lockout_minutes: int = 15
    renewal_window_days: int = 7
    urgent_days: int = 3
    proposal_valid_days: int = 30
    currency_symbol: str = "₹"
    log_level: str = "INFO"
    company: CompanyProfile = field(default_factory=CompanyProfile)

    @property
    def db_is_sqlite(self) -> bool:
        return self.db_url.startswith("sqlite:")


def get_storage_dir() -> Path:
    """Return the default writable directory for application data."""

    if sys.platform.startswith("win"):
        base_dir = Path(os.getenv("APPDATA", Path.home()))
    elif sys.platform == "darwin":
        base_dir = Path.home() / "Library" / "Application Support"
    else:
        base_dir = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base_dir / APP_STORAGE_SUBDIR


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_text(name: str, default: str) -> str:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip() or default


def load_company_profile() -> CompanyProfile:
    defaults = CompanyProfile()
    return CompanyProfile(
        name=_env_text("AMC_COMPANY_NAME", defaults.name),
        tagline=_env_text("AMC_COMPANY_TAGLINE", defaults.tagline),
        email=_env_text("AMC_COMPANY_EMAIL", defaults.email),
        phone=_env_text("AMC_COMPANY_PHONE", defaults.phone),
        address=_env_text("AMC_COMPANY_ADDRESS", defaults.address),
        bank_details=_env_text("AMC_COMPANY_BANK_DETAILS", defaults.bank_details),
        gst_number=_env_text("AMC_COMPANY_GST", defaults.gst_number),
        signatory_title=_env_text("AMC_COMPANY_SIGNATORY_TITLE", defaults.signatory_title),
    )


def load_config() -> AppConfig:
    """Load settings from environment variables with sane defaults."""

    data_dir = Path(
        os.environ.get("AMC_DATA_DIR") or os.environ.get("APP_STORAGE_DIR") or get_storage_dir()
    ).expanduser()
    data_dir.mkdir(parents=True, exist_ok=True)

    db_url = os.environ.get("AMC_DB_URL")
    if not db_url:
        db_path = data_dir / "amc_manager.db"
        db_url = f"sqlite:///{db_path}" if os.name != "nt" else f"sqlite:///{db_path.as_posix()}"

    return AppConfig(
        data_dir=data_dir,
        db_url=db_url,
        login_max_attempts=_env_int("AMC_LOGIN_MAX_ATTEMPTS", 5),
        login_lockout_minutes=_env_int("AMC_LOGIN_LOCKOUT_MINUTES", 15),
        renewal_window_days=_env_int("AMC_RENEWAL_WINDOW_DAYS", 7),
        urgent_days=_env_int("AMC_URGENT_DAYS", 3),
        proposal_valid_days=_env_int("AMC_PROPOSAL_VALID_DAYS", 30),
        currency_symbol=_env_text("APP_CURRENCY_SYMBOL", "₹"),
        log_level=_env_text("AMC_LOG_LEVEL", "INFO").upper(),
        company=load_company_profile(),
    )
