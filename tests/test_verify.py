import threading
from datetime import timedelta

import pytest

from otpgate.database import Database
from otpgate.dependencies import build_services
from otpgate.errors import InvalidRequest, PersistenceError, VerifyFailed
from otpgate.schemas.otp import INVALID_OR_EXPIRED, OtpPurpose


def _issue(services, email, purpose, subject_id=None):
    services.request_handler.issue(email, purpose, subject_id)
    return services.store.find_active(email, purpose)


def test_email_change_scenario(services, clock):
    account_id = services.accounts.create_account("old@example.com")
    record = _issue(services, "user@example.com", OtpPurpose.EMAIL_CHANGE, account_id)
    assert record.expires_at == clock() + timedelta(minutes=10)

    result = services.verify_handler.verify("user@example.com", record.code, "email_change")

    assert result.valid is True
    assert result.purpose is OtpPurpose.EMAIL_CHANGE
    assert result.email == "user@example.com"
    assert result.verified_at == clock()
    assert result.action_result == {"success": True, "message": "Email updated successfully"}
    assert services.accounts.get_account_email(account_id) == "user@example.com"
    assert services.store.list_recent(status="used")[0].id == record.id

    again = services.verify_handler.verify("user@example.com", record.code, "email_change")
    assert again.valid is False
    assert again.reason == INVALID_OR_EXPIRED


def test_code_is_single_use(services):
    record = _issue(services, "user@example.com", OtpPurpose.PASSWORD_RESET)

    first = services.verify_handler.verify("user@example.com", record.code, "password_reset")
    second = services.verify_handler.verify("user@example.com", record.code, "password_reset")

    assert first.valid is True
    assert first.action_result is None
    assert second.valid is False
    assert second.reason == INVALID_OR_EXPIRED


def test_code_valid_just_before_expiry(services, clock):
    record = _issue(services, "user@example.com", OtpPurpose.SIGNUP_VERIFICATION)
    clock.advance(minutes=9, seconds=59)

    result = services.verify_handler.verify("user@example.com", record.code, "signup_verification")

    assert result.valid is True


def test_code_rejected_after_expiry(services, clock):
    record = _issue(services, "user@example.com", OtpPurpose.SIGNUP_VERIFICATION)
    clock.advance(minutes=10, seconds=1)

    result = services.verify_handler.verify("user@example.com", record.code, "signup_verification")

    assert result.valid is False
    assert result.reason == INVALID_OR_EXPIRED


def test_code_is_scoped_to_purpose(services):
    record = _issue(services, "user@example.com", OtpPurpose.EMAIL_CHANGE)

    wrong = services.verify_handler.verify("user@example.com", record.code, "password_reset")
    right = services.verify_handler.verify("user@example.com", record.code, "email_change")

    assert wrong.valid is False
    assert wrong.reason == INVALID_OR_EXPIRED
    assert right.valid is True


def test_failures_are_undifferentiated(services, clock):
    record = _issue(services, "user@example.com", OtpPurpose.EMAIL_CHANGE)
    wrong_code = "000000" if record.code != "000000" else "111111"

    outcomes = [
        services.verify_handler.verify("user@example.com", wrong_code, "email_change"),
        services.verify_handler.verify("nobody@example.com", record.code, "email_change"),
    ]
    clock.advance(minutes=11)
    outcomes.append(services.verify_handler.verify("user@example.com", record.code, "email_change"))

    assert {(outcome.valid, outcome.reason) for outcome in outcomes} == {(False, INVALID_OR_EXPIRED)}


def test_email_match_is_case_insensitive(services):
    record = _issue(services, "user@example.com", OtpPurpose.PASSWORD_RESET)

    result = services.verify_handler.verify("  USER@example.COM", record.code, "password_reset")

    assert result.valid is True


@pytest.mark.parametrize(
    "email, code, purpose",
    [
        (None, "123456", "email_change"),
        ("user@example.com", None, "email_change"),
        ("user@example.com", "123456", None),
        ("user@example.com", "123456", "unknown"),
    ],
)
def test_missing_fields_are_rejected(services, email, code, purpose):
    with pytest.raises(InvalidRequest):
        services.verify_handler.verify(email, code, purpose)


def test_side_effect_failure_still_spends_code(services):
    record = _issue(services, "user@example.com", OtpPurpose.EMAIL_CHANGE, "missing-account")

    result = services.verify_handler.verify("user@example.com", record.code, "email_change")

    assert result.valid is True
    assert result.action_result == {"error": "Failed to update email"}
    assert services.store.find_valid("user@example.com", record.code, OtpPurpose.EMAIL_CHANGE) is None


def test_email_change_without_subject_has_no_side_effect(services):
    record = _issue(services, "user@example.com", OtpPurpose.EMAIL_CHANGE)

    result = services.verify_handler.verify("user@example.com", record.code, "email_change")

    assert result.valid is True
    assert result.action_result is None


def test_lost_race_looks_like_invalid_code(services, monkeypatch):
    record = _issue(services, "user@example.com", OtpPurpose.EMAIL_CHANGE)
    stale = services.store.find_valid("user@example.com", record.code, OtpPurpose.EMAIL_CHANGE)
    assert services.store.mark_used(stale.id) is True

    monkeypatch.setattr(services.store, "find_valid", lambda *args, **kwargs: stale)
    result = services.verify_handler.verify("user@example.com", record.code, "email_change")

    assert result.valid is False
    assert result.reason == INVALID_OR_EXPIRED


def test_concurrent_verifications_have_one_winner(tmp_path, settings, email_sender, clock, monkeypatch):
    database = Database(f"sqlite:///{tmp_path / 'otp.db'}")
    database.init_db()
    services = build_services(settings, database, email_sender, clock)
    record = _issue(services, "user@example.com", OtpPurpose.PASSWORD_RESET)

    barrier = threading.Barrier(2)
    original_find_valid = services.store.find_valid

    def find_then_wait(*args, **kwargs):
        found = original_find_valid(*args, **kwargs)
        barrier.wait(timeout=5)
        return found

    monkeypatch.setattr(services.store, "find_valid", find_then_wait)

    results = []

    def attempt():
        results.append(
            services.verify_handler.verify("user@example.com", record.code, "password_reset")
        )

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    database.dispose()

    assert sorted(result.valid for result in results) == [False, True]
    loser = next(result for result in results if not result.valid)
    assert loser.reason == INVALID_OR_EXPIRED


def test_persistence_failure_is_reported(services, monkeypatch):
    def broken_find(*args, **kwargs):
        raise PersistenceError("Database operation failed")

    monkeypatch.setattr(services.store, "find_valid", broken_find)

    with pytest.raises(VerifyFailed):
        services.verify_handler.verify("user@example.com", "123456", "email_change")
