from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select

from otpgate.database import Database, utcnow
from otpgate.models.account import AccountEntry
from otpgate.services.otp import normalize_email


class AccountStore:
    def __init__(
        self, database: Database, clock: Callable[[], datetime] = utcnow
    ) -> None:
        self._database = database
        self._clock = clock

    def create_account(self, email: str) -> str:
        key = normalize_email(email)
        now = self._clock()
        with self._database.session_scope() as session:
            existing = session.execute(
                select(AccountEntry).where(AccountEntry.email == key)
            ).scalar_one_or_none()
            if existing:
                raise ValueError("Email already in use")
            entry = AccountEntry(email=key, created_at=now, updated_at=now)
            session.add(entry)
            session.flush()
            return entry.id

    def get_account_email(self, account_id: str) -> Optional[str]:
        with self._database.session_scope() as session:
            entry = session.get(AccountEntry, account_id)
            if entry is None:
                return None
            return entry.email

    def set_email(self, account_id: str, new_email: str) -> None:
        key = normalize_email(new_email)
        with self._database.session_scope() as session:
            entry = session.get(AccountEntry, account_id)
            if entry is None:
                raise ValueError("Account not found")
            if entry.email == key:
                return
            existing = session.execute(
                select(AccountEntry).where(AccountEntry.email == key)
            ).scalar_one_or_none()
            if existing and existing.id != account_id:
                raise ValueError("Email already in use")
            entry.email = key
            entry.updated_at = self._clock()
            session.flush()
