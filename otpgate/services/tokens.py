from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from otpgate.config import Settings


class TokenError(ValueError):
    pass


@dataclass(frozen=True)
class AdminTokenData:
    subject: str
    token_type: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_admin_token(settings: Settings, subject: str) -> str:
    if not settings.jwt_secret:
        raise TokenError("JWT secret is not configured")
    now = _utcnow()
    expires_at = now + timedelta(minutes=settings.admin_token_expire_minutes)
    payload = {
        "sub": subject,
        "type": "admin",
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(settings: Settings, token: str) -> AdminTokenData:
    if not token:
        raise TokenError("Token is missing")
    if not settings.jwt_secret:
        raise TokenError("JWT secret is not configured")
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError("Invalid token") from exc
    subject = payload.get("sub")
    if not subject:
        raise TokenError("Token subject is missing")
    return AdminTokenData(subject=str(subject), token_type=str(payload.get("type", "")))
