import logging
from typing import Any, Optional

from otpgate.errors import InvalidRequest, PersistenceError, VerifyFailed
from otpgate.schemas.otp import OtpPurpose, OtpRecord, VerifyResult
from otpgate.services.accounts import AccountStore
from otpgate.services.issue import parse_purpose
from otpgate.services.otp import OtpStore, normalize_email

LOGGER = logging.getLogger(__name__)


class VerifyHandler:
    def __init__(self, store: OtpStore, accounts: AccountStore) -> None:
        self._store = store
        self._accounts = accounts

    def verify(self, email: Optional[str], code: Optional[str], purpose) -> VerifyResult:
        if not email or not email.strip() or not code or not code.strip() or not purpose:
            raise InvalidRequest("Email, OTP code, and type are required")
        otp_purpose = parse_purpose(purpose)
        subject_email = normalize_email(email)

        now = self._store.now()
        try:
            record = self._store.find_valid(subject_email, code.strip(), otp_purpose)
            # A lost race on mark_used looks exactly like a missing record.
            if record is None or not self._store.mark_used(record.id, now):
                LOGGER.info("OTP rejected purpose=%s", otp_purpose.value)
                return VerifyResult.rejected()
        except PersistenceError as exc:
            LOGGER.error("Failed to verify OTP purpose=%s", otp_purpose.value)
            raise VerifyFailed("Failed to verify OTP") from exc

        action_result = self._apply_side_effect(record)
        LOGGER.info("OTP verified id=%s purpose=%s", record.id, otp_purpose.value)
        return VerifyResult(
            valid=True,
            purpose=otp_purpose,
            email=subject_email,
            action_result=action_result,
            verified_at=now,
        )

    def _apply_side_effect(self, record: OtpRecord) -> Optional[dict[str, Any]]:
        match record.purpose:
            case OtpPurpose.EMAIL_CHANGE:
                if not record.subject_id:
                    return None
                return self._change_email(record)
            case OtpPurpose.PASSWORD_RESET | OtpPurpose.SIGNUP_VERIFICATION:
                # The caller performs its own authenticated follow-up.
                return None
        raise ValueError(f"Unsupported OTP purpose: {record.purpose!r}")

    def _change_email(self, record: OtpRecord) -> dict[str, Any]:
        try:
            self._accounts.set_email(record.subject_id, record.email)
        except (ValueError, PersistenceError) as exc:
            LOGGER.error(
                "Failed to update email for account=%s: %s", record.subject_id, exc
            )
            return {"error": "Failed to update email"}
        return {"success": True, "message": "Email updated successfully"}
