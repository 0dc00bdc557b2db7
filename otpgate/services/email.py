from __future__ import annotations

import html
import http.client
import json
import logging
from dataclasses import dataclass
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from otpgate.config import Settings
from otpgate.errors import DeliveryError
from otpgate.schemas.otp import OtpPurpose

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OtpMessage:
    subject: str
    html_body: str
    tags: list[str]


def _purpose_copy(purpose: OtpPurpose) -> tuple[str, str]:
    match purpose:
        case OtpPurpose.EMAIL_CHANGE:
            return (
                "Email Change Verification",
                "You requested to change your email address. Please use the"
                " verification code below to confirm this change.",
            )
        case OtpPurpose.PASSWORD_RESET:
            return (
                "Password Reset",
                "You requested to reset your password. Please use the"
                " verification code below to proceed.",
            )
        case OtpPurpose.SIGNUP_VERIFICATION:
            return (
                "Account Verification",
                "Welcome! Please use the verification code below to verify your"
                " email address and complete your account setup.",
            )
    raise ValueError(f"Unsupported OTP purpose: {purpose!r}")


def render_otp_email(
    code: str, purpose: OtpPurpose, email: str, ttl_minutes: int, sender_name: str
) -> OtpMessage:
    purpose = OtpPurpose(purpose)
    label, description = _purpose_copy(purpose)
    subject = f"{label} - Your OTP Code"
    safe_email = html.escape(email)
    safe_sender = html.escape(sender_name)
    body = f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{html.escape(subject)}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1>{label}</h1>
    <p>Hello,</p>
    <p>{description}</p>
    <div style="background: #fef3c7; border: 2px solid #f59e0b; padding: 20px; text-align: center;">
      <p style="margin: 0;">Your verification code</p>
      <div style="font-size: 32px; font-weight: bold; letter-spacing: 8px; font-family: monospace;">{code}</div>
    </div>
    <ul>
      <li><strong>Valid for:</strong> {ttl_minutes} minutes only</li>
      <li><strong>One-time use:</strong> the code expires after verification</li>
      <li><strong>Email:</strong> {safe_email}</li>
    </ul>
    <p>Never share this code with anyone. {safe_sender} will never ask for it by phone or email.</p>
    <p>If you did not request this code, you can ignore this email.</p>
  </div>
</body>
</html>
"""
    return OtpMessage(
        subject=subject,
        html_body=body,
        tags=["otp", "verification", purpose.value],
    )


class BrevoEmailSender:
    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.brevo_api_key
        self._api_url = settings.brevo_api_url
        self._sender_email = settings.otp_email_sender
        self._sender_name = settings.otp_sender_name
        self._timeout = settings.email_timeout_seconds

    def send(self, to: str, subject: str, html_body: str, tags: list[str]) -> None:
        if not self._api_key:
            raise DeliveryError("Email service not configured")
        if not self._sender_email:
            raise DeliveryError("OTP email sender is not configured")

        payload = json.dumps(
            {
                "sender": {"name": self._sender_name, "email": self._sender_email},
                "to": [{"email": to}],
                "subject": subject,
                "htmlContent": html_body,
                "tags": tags,
            }
        ).encode("utf-8")
        request = Request(
            self._api_url,
            data=payload,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "api-key": self._api_key,
            },
            method="POST",
        )
        try:
            with urlopen(request, timeout=self._timeout) as response:
                response.read()
        except HTTPError as exc:
            error_body = exc.read().decode("utf-8", errors="replace")
            LOGGER.error("Brevo API error status=%s: %s", exc.code, error_body)
            raise DeliveryError("Failed to send OTP email") from exc
        except (URLError, OSError, http.client.HTTPException) as exc:
            LOGGER.error("Brevo API unreachable: %s", exc)
            raise DeliveryError("Failed to reach email API") from exc
