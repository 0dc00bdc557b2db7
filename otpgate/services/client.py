import logging
from typing import Optional

from otpgate.errors import OtpError, PersistenceError
from otpgate.schemas.otp import (
    INVALID_OR_EXPIRED,
    IssueOtpResponse,
    OtpPurpose,
    OtpStatus,
    VerifyOtpResponse,
)
from otpgate.services.codes import clean_input, format_for_display, validate_format
from otpgate.services.issue import RequestHandler, parse_purpose
from otpgate.services.otp import OtpStore
from otpgate.services.rate_limit import RateLimiter
from otpgate.services.verify import VerifyHandler

LOGGER = logging.getLogger(__name__)

__all__ = [
    "OtpClient",
    "clean_input",
    "format_for_display",
    "validate_format",
]


class OtpClient:
    """Caller-facing entry points for the OTP flows.

    Handler errors never escape from ``request_otp`` and ``verify_otp``; they are
    folded into a failure response the UI can show directly.
    """

    def __init__(
        self,
        request_handler: RequestHandler,
        verify_handler: VerifyHandler,
        rate_limiter: RateLimiter,
        store: OtpStore,
    ) -> None:
        self._request_handler = request_handler
        self._verify_handler = verify_handler
        self._rate_limiter = rate_limiter
        self._store = store

    def request_otp(
        self, email: str, purpose, subject_id: Optional[str] = None
    ) -> IssueOtpResponse:
        try:
            result = self._request_handler.issue(email, purpose, subject_id)
        except OtpError as exc:
            LOGGER.warning("OTP request failed: %s", exc)
            return IssueOtpResponse(
                success=False,
                message="Failed to send OTP. Please try again.",
                error=str(exc),
            )
        return IssueOtpResponse(
            success=True,
            message="OTP sent successfully",
            expires_at=result.expires_at,
        )

    def verify_otp(self, email: str, code: str, purpose) -> VerifyOtpResponse:
        try:
            result = self._verify_handler.verify(email, code, purpose)
        except OtpError as exc:
            LOGGER.warning("OTP verification failed: %s", exc)
            return VerifyOtpResponse(
                valid=False,
                message="Failed to verify OTP. Please try again.",
                error=str(exc),
            )
        if not result.valid:
            return VerifyOtpResponse(
                valid=False,
                message="Invalid or expired OTP code",
                error=INVALID_OR_EXPIRED,
            )
        return VerifyOtpResponse(
            valid=True,
            message="OTP verified successfully",
            type=result.purpose,
            email=result.email,
            action_result=result.action_result,
            verified_at=result.verified_at,
        )

    def check_rate_limit(self, email: str, purpose=OtpPurpose.EMAIL_CHANGE) -> bool:
        """Advisory pre-flight check; the issue path enforces the limit itself."""
        return self._rate_limiter.allow_issue(email, parse_purpose(purpose))

    def get_status(self, email: str, purpose) -> OtpStatus:
        otp_purpose = parse_purpose(purpose)
        since = self._store.now() - self._rate_limiter.window
        try:
            active = self._store.find_active(email, otp_purpose)
            attempts = self._store.count_since(email, otp_purpose, since)
        except PersistenceError:
            LOGGER.error("Failed to read OTP status purpose=%s", otp_purpose.value)
            return OtpStatus(has_valid_otp=False, attempts_in_last_hour=0)
        return OtpStatus(
            has_valid_otp=active is not None,
            attempts_in_last_hour=attempts,
            expires_at=active.expires_at if active else None,
        )

    def cleanup_expired(self) -> int:
        try:
            deleted = self._store.delete_expired()
        except PersistenceError:
            LOGGER.error("Failed to clean up expired OTPs")
            return 0
        LOGGER.info("Cleaned up %s expired OTP records", deleted)
        return deleted
