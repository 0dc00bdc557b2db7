import logging
from datetime import timedelta
from typing import Optional

from otpgate.config import Settings
from otpgate.errors import PersistenceError
from otpgate.schemas.otp import OtpPurpose
from otpgate.services.otp import OtpStore

LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limit on how many codes one (email, purpose) pair may receive.

    The count is recomputed from the stored OTP history on every check, so there
    is no separate counter to keep in sync or lose on restart.

    When the history lookup fails the limiter fails open and allows the issue:
    a datastore hiccup must not lock a legitimate user out of their account.
    """

    def __init__(self, store: OtpStore, settings: Settings) -> None:
        self._store = store
        self._max_requests = settings.rate_limit_max_requests
        self._window = timedelta(seconds=settings.rate_limit_window_seconds)

    @property
    def window(self) -> timedelta:
        return self._window

    def remaining(self, email: str, purpose: OtpPurpose) -> Optional[int]:
        since = self._store.now() - self._window
        try:
            issued = self._store.count_since(email, purpose, since)
        except PersistenceError:
            LOGGER.warning(
                "Rate limit lookup failed for purpose=%s; allowing issue",
                OtpPurpose(purpose).value,
            )
            return None
        return max(0, self._max_requests - issued)

    def allow_issue(self, email: str, purpose: OtpPurpose) -> bool:
        remaining = self.remaining(email, purpose)
        if remaining is None:
            return True
        return remaining > 0
