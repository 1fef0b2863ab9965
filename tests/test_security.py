import hashlib
from datetime import timedelta

from amc_manager.security import AccountLockoutService, PasswordService, authenticate


def test_password_service_round_trip():
    service = PasswordService(iterations=1_000)
    stored = service.hash("Secret123!")
    assert stored.startswith("pbkdf2$sha256$1000$")
    assert service.verify("Secret123!", stored)
    assert not service.verify("wrong", stored)
    assert not service.needs_update(stored)


def test_password_service_flags_outdated_hashes():
    stored = PasswordService(iterations=1_000).hash("Secret123!")
    assert PasswordService(iterations=2_000).needs_update(stored)

    legacy_hash = hashlib.sha256(b"Secret123!").hexdigest()
    assert not PasswordService.default().verify("Secret123!", legacy_hash)
    assert PasswordService.default().needs_update(legacy_hash)


def _login(config, users, passwords, username, password):
    lockout = AccountLockoutService(config, users)
    return authenticate(username, password, users=users, lockout=lockout, passwords=passwords)


def test_authenticate_returns_user_without_hash(config, users, passwords):
    user, error = _login(config, users, passwords, "test_admin", "secret123")
    assert error is None
    assert user["username"] == "test_admin"
    assert user["role"] == "admin"
    assert "pass_hash" not in user


def test_authenticate_rejects_bad_credentials(config, users, passwords):
    assert _login(config, users, passwords, "test_admin", "nope") == (None, "Invalid credentials")
    assert _login(config, users, passwords, "ghost", "secret123") == (None, "Invalid credentials")
    assert _login(config, users, passwords, "  ", "") == (None, "Enter both username and password.")


def test_authenticate_upgrades_outdated_hash(config, users, passwords):
    weaker = PasswordService(iterations=500)
    user_id = users.create_user("staffer", weaker.hash("pw12345"), display_name="Staff Member")
    user, error = _login(config, users, passwords, "staffer", "pw12345")
    assert error is None
    assert user["user_id"] == user_id
    assert user["display_name"] == "Staff Member"
    assert not passwords.needs_update(users.fetch_by_username("staffer")["pass_hash"])


def test_account_lockout_after_repeated_failures(config, users, passwords):
    lockout = AccountLockoutService(config, users)
    for _ in range(config.login_max_attempts - 1):
        _login(config, users, passwords, "test_admin", "bad")
    assert lockout.locked_until("test_admin") is None

    _login(config, users, passwords, "test_admin", "bad")
    newest_failure = users.recent_failures("test_admin", config.login_lockout_minutes)[0]
    assert lockout.is_locked("test_admin")
    assert lockout.locked_until("test_admin") == newest_failure + timedelta(minutes=config.login_lockout_minutes)

    user, error = _login(config, users, passwords, "test_admin", "secret123")
    assert user is None
    assert error.startswith("Account locked due to repeated failures")


def test_successful_login_clears_failures(config, users, passwords):
    lockout = AccountLockoutService(config, users)
    _login(config, users, passwords, "test_admin", "bad")
    assert len(users.recent_failures("test_admin", config.login_lockout_minutes)) == 1
    _login(config, users, passwords, "test_admin", "secret123")
    assert users.recent_failures("test_admin", config.login_lockout_minutes) == []
    assert not lockout.is_locked("test_admin")


def test_record_login_keeps_failures_per_user(config, users):
    users.record_login("alice", False, keep_minutes=config.login_lockout_minutes)
    users.record_login("alice", False, keep_minutes=config.login_lockout_minutes)
    users.record_login("bob", False, keep_minutes=config.login_lockout_minutes)
    users.record_login("bob", True, keep_minutes=config.login_lockout_minutes)

    alice_failures = users.recent_failures("alice", config.login_lockout_minutes)
    assert len(alice_failures) == 2
    assert alice_failures[0] >= alice_failures[1]
    assert users.recent_failures("bob", config.login_lockout_minutes) == []


def test_malformed_hash_is_rejected():
    service = PasswordService(iterations=1_000)
    assert not service.verify("pw", "pbkdf2$sha256$many$salt$digest")
    assert not service.verify("pw", None)
    assert service.needs_update("pbkdf2$sha256$1000$onlyfour")
