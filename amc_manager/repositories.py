"""Database abstractions using SQLite."""
from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional

import pandas as pd

from .config import AppConfig
from .errors import ContractNotFoundError, ValidationError
from .models import (
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_PROPOSED,
    Contract,
    Invoice,
    ServiceVisit,
)
from .scheduling import contract_end_date
from .validation import check_transition, ensure_date

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    pass_hash TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'staff',
    display_name TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE TABLE IF NOT EXISTS login_events (
    event_id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL,
    success INTEGER NOT NULL,
    occurred_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE TABLE IF NOT EXISTS contracts (
    contract_id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_by INTEGER REFERENCES users(user_id) ON DELETE SET NULL,
    company_name TEXT NOT NULL,
    owner_name TEXT NOT NULL,
    city TEXT NOT NULL,
    address TEXT NOT NULL,
    phone_number TEXT NOT NULL,
    amc_start_date TEXT NOT NULL,
    amc_end_date TEXT NOT NULL,
    amc_type TEXT NOT NULL CHECK (amc_type IN ('A', 'B', 'C')),
    amc_amount REAL NOT NULL,
    product_description TEXT,
    invoice_number TEXT,
    invoice_date TEXT,
    invoice_amount REAL,
    status TEXT NOT NULL DEFAULT 'proposed',
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_contracts_created_by ON contracts(created_by);
CREATE TABLE IF NOT EXISTS service_visits (
    visit_id INTEGER PRIMARY KEY AUTOINCREMENT,
    contract_id INTEGER NOT NULL REFERENCES contracts(contract_id) ON DELETE CASCADE,
    visit_date TEXT NOT NULL,
    notes TEXT,
    logged_by INTEGER REFERENCES users(user_id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_service_visits_contract ON service_visits(contract_id);
"""

CONTRACT_COLUMNS = (
    "contract_id",
    "created_by",
    "company_name",
    "owner_name",
    "city",
    "address",
    "phone_number",
    "amc_start_date",
    "amc_end_date",
    "amc_type",
    "amc_amount",
    "product_description",
    "invoice_number",
    "invoice_date",
    "invoice_amount",
    "status",
    "created_at",
)


@dataclass
class Database:
    config: AppConfig
    db_path: Path

    @classmethod
    def from_config(cls, config: AppConfig) -> "Database":
        if not config.db_url.startswith("sqlite://"):
            raise ValueError("Only SQLite URLs are supported in the bundled runtime.")
        path_str = config.db_url.split("sqlite:///")[-1]
        db_path = Path(path_str).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return cls(config=config, db_path=db_path)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def begin(self) -> Iterator[sqlite3.Connection]:
        with self.connect() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def fetch_df(self, query: str, params: Optional[tuple] = None) -> pd.DataFrame:
        with self.connect() as conn:
            return pd.read_sql_query(query, conn, params=params)

    def init_schema(self, password_hasher=None) -> None:
        """Create tables and bootstrap the admin account when no users exist."""

        with self.begin() as conn:
            conn.executescript(SCHEMA_SQL)
            count = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
            if count == 0 and password_hasher is not None:
                admin_user = os.getenv("ADMIN_USER", "admin")
                admin_pass = os.getenv("ADMIN_PASS", "admin123")
                conn.execute(
                    "INSERT INTO users (username, pass_hash, role) VALUES (?, ?, 'admin')",
                    (admin_user, password_hasher.hash(admin_pass)),
                )
                logger.info("Bootstrapped admin account %s", admin_user)


def _to_iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _row_to_contract(row: Mapping) -> Contract:
    invoice = None
    if row["invoice_number"] and row["invoice_date"]:
        invoice = Invoice(
            number=row["invoice_number"],
            date=ensure_date(row["invoice_date"]),
            amount=float(row["invoice_amount"] or 0),
        )
    return Contract(
        contract_id=int(row["contract_id"]),
        created_by=row["created_by"],
        company_name=row["company_name"],
        owner_name=row["owner_name"],
        city=row["city"],
        address=row["address"],
        phone_number=row["phone_number"],
        amc_start_date=ensure_date(row["amc_start_date"]),
        amc_end_date=ensure_date(row["amc_end_date"]),
        amc_type=row["amc_type"],
        amc_amount=float(row["amc_amount"]),
        product_description=row["product_description"] or "",
        invoice=invoice,
        status=row["status"],
        created_at=row["created_at"],
    )


def _contract_params(contract: Contract) -> dict[str, object]:
    invoice = contract.invoice if contract.status != STATUS_PROPOSED else None
    return {
        "company_name": contract.company_name,
        "owner_name": contract.owner_name,
        "city": contract.city,
        "address": contract.address,
        "phone_number": contract.phone_number,
        "amc_start_date": _to_iso(contract.amc_start_date),
        "amc_end_date": _to_iso(contract_end_date(contract.amc_start_date)),
        "amc_type": contract.amc_type,
        "amc_amount": contract.amc_amount,
        "product_description": contract.product_description or None,
        "invoice_number": invoice.number if invoice else None,
        "invoice_date": _to_iso(invoice.date) if invoice else None,
        "invoice_amount": invoice.amount if invoice else None,
        "status": contract.status,
    }


def is_admin(user: Optional[Mapping]) -> bool:
    return bool(user) and user.get("role") == "admin"


class ContractRepository:
    """Encapsulate CRUD logic for contracts and their service visits."""

    def __init__(self, db: Database):
        self._db = db

    def list_contracts(self, user: Optional[Mapping] = None) -> list[Contract]:
        """Return contracts newest first; staff users only see their own records."""

        query = f"SELECT {', '.join(CONTRACT_COLUMNS)} FROM contracts"
        params: tuple = ()
        if user is not None and not is_admin(user):
            query += " WHERE created_by = ?"
            params = (user.get("user_id"),)
        query += " ORDER BY datetime(created_at) DESC, contract_id DESC"
        with self._db.connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_contract(row) for row in rows]

    def get(self, contract_id: int) -> Contract:
        with self._db.connect() as conn:
            row = conn.execute(
                f"SELECT {', '.join(CONTRACT_COLUMNS)} FROM contracts WHERE contract_id=?",
                (contract_id,),
            ).fetchone()
        if row is None:
            raise ContractNotFoundError(contract_id)
        return _row_to_contract(row)

    def create(self, contract: Contract, user_id: Optional[int] = None) -> Contract:
        params = _contract_params(contract)
        params["created_by"] = user_id
        columns = ", ".join(params)
        placeholders = ", ".join(f":{key}" for key in params)
        with self._db.begin() as conn:
            cur = conn.execute(
                f"INSERT INTO contracts ({columns}) VALUES ({placeholders})",
                params,
            )
            contract_id = cur.lastrowid
        logger.info("Created contract #%s for %s", contract_id, contract.company_name)
        return self.get(contract_id)

    def update(self, contract: Contract) -> Contract:
        if contract.contract_id is None:
            raise ValueError("contract_id is required to update a contract")
        existing = self.get(contract.contract_id)
        check_transition(existing.status, contract.status)
        params = _contract_params(contract)
        assignments = ", ".join(f"{key}=:{key}" for key in params)
        params["contract_id"] = contract.contract_id
        with self._db.begin() as conn:
            conn.execute(
                f"UPDATE contracts SET {assignments}, updated_at=datetime('now') "
                "WHERE contract_id=:contract_id",
                params,
            )
        logger.info(
            "Updated contract #%s (%s -> %s)", contract.contract_id, existing.status, contract.status
        )
        return self.get(contract.contract_id)

    def delete(self, contract_id: int) -> None:
        with self._db.begin() as conn:
            conn.execute("DELETE FROM service_visits WHERE contract_id=?", (contract_id,))
            cur = conn.execute("DELETE FROM contracts WHERE contract_id=?", (contract_id,))
            if cur.rowcount == 0:
                raise ContractNotFoundError(contract_id)
        logger.info("Deleted contract #%s", contract_id)

    def renew(
        self,
        contract_id: int,
        new_start: Optional[date] = None,
        *,
        invoice: Optional[Invoice] = None,
        amount: Optional[float] = None,
    ) -> Contract:
        """Start a fresh one-year window and mark the contract active.

        The new window starts where the previous one ended unless ``new_start``
        is given. The existing invoice is kept when no new one is supplied.
        """

        existing = self.get(contract_id)
        if existing.status not in {STATUS_ACTIVE, STATUS_EXPIRED}:
            raise ValidationError(
                {"status": f"Only active or expired contracts can be renewed (status: {existing.status})"}
            )
        invoice = invoice or existing.invoice
        if invoice is None:
            raise ValidationError({"invoice_number": "Invoice details are required to renew"})
        start = new_start or existing.amc_end_date
        renewed = existing.with_changes(
            amc_start_date=start,
            amc_end_date=contract_end_date(start),
            amc_amount=amount if amount is not None else existing.amc_amount,
            invoice=invoice,
            status=STATUS_ACTIVE,
        )
        logger.info("Renewing contract #%s from %s", contract_id, start)
        return self.update(renewed)

    def log_service_visit(
        self,
        contract_id: int,
        visit_date: date,
        notes: str = "",
        logged_by: Optional[int] = None,
    ) -> ServiceVisit:
        self.get(contract_id)
        with self._db.begin() as conn:
            cur = conn.execute(
                "INSERT INTO service_visits (contract_id, visit_date, notes, logged_by) VALUES (?, ?, ?, ?)",
                (contract_id, visit_date.isoformat(), notes or None, logged_by),
            )
            visit_id = cur.lastrowid
        logger.info("Logged service visit for contract #%s on %s", contract_id, visit_date)
        return ServiceVisit(
            visit_id=visit_id,
            contract_id=contract_id,
            visit_date=visit_date,
            notes=notes or "",
            logged_by=logged_by,
        )

    def list_service_visits(self, contract_id: int) -> list[ServiceVisit]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT visit_id, contract_id, visit_date, notes, logged_by
                FROM service_visits
                WHERE contract_id=?
                ORDER BY date(visit_date) DESC, visit_id DESC
                """,
                (contract_id,),
            ).fetchall()
        return [
            ServiceVisit(
                visit_id=row["visit_id"],
                contract_id=row["contract_id"],
                visit_date=ensure_date(row["visit_date"]),
                notes=row["notes"] or "",
                logged_by=row["logged_by"],
            )
            for row in rows
        ]

    def last_service_dates(
        self,
        contract_ids: Optional[Iterable[int]] = None,
        *,
        as_of: Optional[date] = None,
    ) -> dict[int, date]:
        """Latest visit per contract, ignoring visits dated after ``as_of``."""

        conditions: list[str] = []
        params: tuple = ()
        if contract_ids is not None:
            ids = tuple(int(cid) for cid in contract_ids)
            if not ids:
                return {}
            conditions.append(f"contract_id IN ({', '.join('?' for _ in ids)})")
            params += ids
        if as_of is not None:
            conditions.append("date(visit_date) <= ?")
            params += (as_of.isoformat(),)
        query = "SELECT contract_id, MAX(date(visit_date)) AS last_visit FROM service_visits"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " GROUP BY contract_id"
        with self._db.connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return {int(row["contract_id"]): ensure_date(row["last_visit"]) for row in rows}


class UserRepository:
    """Accounts that may sign in, plus the failed-login trail used for lockout."""

    def __init__(self, db: Database):
        self._db = db

    def fetch_by_username(self, username: str) -> Optional[dict]:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT user_id, username, role, pass_hash, display_name FROM users WHERE username=?",
                (username,),
            ).fetchone()
        return dict(row) if row else None

    def create_user(
        self, username: str, pass_hash: str, role: str = "staff", display_name: Optional[str] = None
    ) -> int:
        with self._db.begin() as conn:
            cur = conn.execute(
                "INSERT INTO users (username, pass_hash, role, display_name) VALUES (?, ?, ?, ?)",
                (username, pass_hash, role, display_name),
            )
            user_id = int(cur.lastrowid)
        logger.info("Created %s account %s", role, username)
        return user_id

    def update_password_hash(self, user_id: int, new_hash: str) -> None:
        with self._db.begin() as conn:
            conn.execute("UPDATE users SET pass_hash=? WHERE user_id=?", (new_hash, user_id))

    def record_login(self, username: str, success: bool, *, keep_minutes: int) -> None:
        """Store one login attempt and prune the trail in the same transaction.

        Events older than ``keep_minutes`` are dropped for every user; a
        successful login also wipes that user's remaining failures.
        """

        window = f"-{int(keep_minutes)} minutes"
        with self._db.begin() as conn:
            conn.execute(
                "INSERT INTO login_events (username, success, occurred_at) VALUES (?, ?, datetime('now'))",
                (username, int(success)),
            )
            conn.execute("DELETE FROM login_events WHERE occurred_at < datetime('now', ?)", (window,))
            if success:
                conn.execute("DELETE FROM login_events WHERE username=?", (username,))

    def recent_failures(self, username: str, minutes: int) -> list[datetime]:
        """Failed attempts inside the last ``minutes`` (UTC), newest first."""

        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT occurred_at FROM login_events
                WHERE username=? AND success=0 AND occurred_at >= datetime('now', ?)
                ORDER BY occurred_at DESC, event_id DESC
                """,
                (username, f"-{int(minutes)} minutes"),
            ).fetchall()
        return [datetime.fromisoformat(row["occurred_at"]) for row in rows]
