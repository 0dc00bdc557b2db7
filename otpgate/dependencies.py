from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from fastapi import Header, HTTPException, Request, status

from otpgate.config import Settings
from otpgate.database import Database, utcnow
from otpgate.services.accounts import AccountStore
from otpgate.services.client import OtpClient
from otpgate.services.issue import RequestHandler
from otpgate.services.otp import OtpStore
from otpgate.services.rate_limit import RateLimiter
from otpgate.services.tokens import AdminTokenData, TokenError, decode_token
from otpgate.services.verify import VerifyHandler


@dataclass(frozen=True)
class OtpServices:
    settings: Settings
    database: Database
    store: OtpStore
    accounts: AccountStore
    rate_limiter: RateLimiter
    request_handler: RequestHandler
    verify_handler: VerifyHandler
    client: OtpClient


def build_services(
    settings: Settings,
    database: Database,
    email_sender,
    clock: Callable[[], datetime] = utcnow,
) -> OtpServices:
    store = OtpStore(database, settings, clock=clock)
    accounts = AccountStore(database, clock=clock)
    rate_limiter = RateLimiter(store, settings)
    request_handler = RequestHandler(store, rate_limiter, email_sender, settings)
    verify_handler = VerifyHandler(store, accounts)
    return OtpServices(
        settings=settings,
        database=database,
        store=store,
        accounts=accounts,
        rate_limiter=rate_limiter,
        request_handler=request_handler,
        verify_handler=verify_handler,
        client=OtpClient(request_handler, verify_handler, rate_limiter, store),
    )


def get_services(request: Request) -> OtpServices:
    return request.app.state.services


def require_admin(
    request: Request, authorization: str | None = Header(default=None)
) -> AdminTokenData:
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
        )
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header",
        )
    services = get_services(request)
    try:
        token_data = decode_token(services.settings, token)
    except TokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    if token_data.token_type != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return token_data
