"""Staff sign-in: password hashes and throttling of repeated failures."""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import NamedTuple, Optional

from .config import AppConfig
from .repositories import UserRepository

logger = logging.getLogger(__name__)

HASH_SCHEME = "pbkdf2"


class _StoredHash(NamedTuple):
    algorithm: str
    iterations: int
    salt: bytes
    digest: bytes


def _parse_hash(stored_hash: Optional[str]) -> Optional[_StoredHash]:
    """Split ``pbkdf2$<algo>$<iterations>$<salt>$<digest>``; ``None`` if malformed."""

    parts = (stored_hash or "").split("$")
    if len(parts) != 5 or parts[0] != HASH_SCHEME:
        return None
    try:
        return _StoredHash(
            algorithm=parts[1],
            iterations=int(parts[2]),
            salt=base64.b64decode(parts[3]),
            digest=base64.b64decode(parts[4]),
        )
    except (ValueError, TypeError):
        return None


@dataclass
class PasswordService:
    iterations: int = 120_000
    algorithm: str = "sha256"

    @classmethod
    def default(cls) -> "PasswordService":
        return cls()

    def _derive(self, password: str, salt: bytes, algorithm: str, iterations: int) -> bytes:
        return hashlib.pbkdf2_hmac(algorithm, password.encode("utf-8"), salt, iterations)

    def hash(self, password: str) -> str:
        salt = os.urandom(16)
        digest = self._derive(password, salt, self.algorithm, self.iterations)
        return "$".join(
            [
                HASH_SCHEME,
                self.algorithm,
                str(self.iterations),
                base64.b64encode(salt).decode("ascii"),
                base64.b64encode(digest).decode("ascii"),
            ]
        )

    def verify(self, password: str, stored_hash: Optional[str]) -> bool:
        parsed = _parse_hash(stored_hash)
        if parsed is None:
            return False
        derived = self._derive(password, parsed.salt, parsed.algorithm, parsed.iterations)
        return hmac.compare_digest(derived, parsed.digest)

    def needs_update(self, stored_hash: str) -> bool:
        """True when the hash was made with other settings and should be rehashed at next login."""

        parsed = _parse_hash(stored_hash)
        return parsed is None or (parsed.algorithm, parsed.iterations) != (self.algorithm, self.iterations)


@dataclass
class AccountLockoutService:
    """Lock a username once it hits ``login_max_attempts`` failures inside the lockout window."""

    config: AppConfig
    users: UserRepository

    def locked_until(self, username: str) -> Optional[datetime]:
        failures = self.users.recent_failures(username, self.config.login_lockout_minutes)
        if len(failures) < self.config.login_max_attempts:
            return None
        return failures[0] + timedelta(minutes=self.config.login_lockout_minutes)

    def is_locked(self, username: str) -> bool:
        return self.locked_until(username) is not None

    def record_attempt(self, username: str, success: bool) -> None:
        self.users.record_login(username, success, keep_minutes=self.config.login_lockout_minutes)
        if not success:
            logger.warning("Failed login attempt for %s", username)

    def lockout_message(self, username: str) -> str:
        until = self.locked_until(username)
        if until is None:
            return "Too many failed attempts. Please try again later."
        return f"Account locked due to repeated failures. Try again after {until:%Y-%m-%d %H:%M} UTC."


def authenticate(
    username: str,
    password: str,
    *,
    users: UserRepository,
    lockout: AccountLockoutService,
    passwords: PasswordService,
) -> tuple[Optional[dict], Optional[str]]:
    """Return ``(user, None)`` on success or ``(None, error message)``."""

    username = (username or "").strip()
    if not username or not password:
        return None, "Enter both username and password."
    if lockout.is_locked(username):
        return None, lockout.lockout_message(username)
    record = users.fetch_by_username(username)
    if record is None or not passwords.verify(password, record["pass_hash"]):
        lockout.record_attempt(username, False)
        return None, "Invalid credentials"
    lockout.record_attempt(username, True)
    if passwords.needs_update(record["pass_hash"]):
        users.update_password_hash(record["user_id"], passwords.hash(password))
    user = {key: value for key, value in record.items() if key != "pass_hash"}
    logger.info("User %s signed in", username)
    return user, None
