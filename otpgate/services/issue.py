import logging
from typing import Optional

from otpgate.config import Settings
from otpgate.errors import (
    DeliveryError,
    InvalidRequest,
    IssueFailed,
    PersistenceError,
    RateLimited,
)
from otpgate.schemas.otp import IssueResult, OtpPurpose
from otpgate.services.codes import generate_code
from otpgate.services.email import render_otp_email
from otpgate.services.otp import OtpStore, normalize_email
from otpgate.services.rate_limit import RateLimiter

LOGGER = logging.getLogger(__name__)


def parse_purpose(raw_purpose) -> OtpPurpose:
    if not raw_purpose:
        raise InvalidRequest("OTP type is required")
    try:
        return OtpPurpose(raw_purpose)
    except ValueError as exc:
        raise InvalidRequest(f"Unsupported OTP type: {raw_purpose}") from exc


class RequestHandler:
    """Issues a code: generate, persist, render, dispatch.

    A record that was persisted but whose email failed to go out stays valid
    and keeps its rate-limit slot; the caller only sees the failure.

    The rate check and the insert are separate steps, so concurrent requests
    for one (email, purpose) pair can briefly exceed the limit.
    """

    def __init__(
        self,
        store: OtpStore,
        rate_limiter: RateLimiter,
        email_sender,
        settings: Settings,
    ) -> None:
        self._store = store
        self._rate_limiter = rate_limiter
        self._email_sender = email_sender
        self._settings = settings

    def issue(
        self, email: Optional[str], purpose, subject_id: Optional[str] = None
    ) -> IssueResult:
        if not email or not email.strip() or not purpose:
            raise InvalidRequest("Email and type are required")
        otp_purpose = parse_purpose(purpose)
        recipient = normalize_email(email)

        if not self._rate_limiter.allow_issue(recipient, otp_purpose):
            LOGGER.info("OTP issue rate limited purpose=%s", otp_purpose.value)
            raise RateLimited("Too many OTP requests. Please try again later.")

        code = generate_code()
        try:
            record = self._store.create(recipient, otp_purpose, code, subject_id)
        except PersistenceError as exc:
            LOGGER.error("Failed to store OTP purpose=%s", otp_purpose.value)
            raise IssueFailed("Failed to store OTP") from exc

        message = render_otp_email(
            code,
            otp_purpose,
            recipient,
            self._settings.otp_ttl_minutes,
            self._settings.otp_sender_name,
        )
        try:
            self._email_sender.send(
                recipient, message.subject, message.html_body, message.tags
            )
        except DeliveryError as exc:
            LOGGER.error(
                "Failed to deliver OTP id=%s purpose=%s: %s",
                record.id,
                otp_purpose.value,
                exc,
            )
            raise IssueFailed("Failed to send OTP email") from exc

        LOGGER.info("OTP issued id=%s purpose=%s", record.id, otp_purpose.value)
        return IssueResult(
            email=record.email, purpose=otp_purpose, expires_at=record.expires_at
        )
