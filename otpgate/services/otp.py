from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, func, or_, select, update

from otpgate.config import Settings
from otpgate.database import Database, as_utc, utcnow
from otpgate.models.otp import OtpEntry
from otpgate.schemas.otp import OtpPurpose, OtpRecord, OtpStatsResponse

OTP_STATUSES = ("active", "used", "expired")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _to_record(entry: OtpEntry) -> OtpRecord:
    return OtpRecord(
        id=entry.id,
        email=entry.email,
        code=entry.code,
        purpose=OtpPurpose(entry.purpose),
        subject_id=entry.subject_id,
        created_at=as_utc(entry.created_at),
        expires_at=as_utc(entry.expires_at),
        used=bool(entry.used),
        verified_at=as_utc(entry.verified_at),
    )


class OtpStore:
    def __init__(
        self,
        database: Database,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._database = database
        self._ttl = timedelta(seconds=settings.otp_ttl_seconds)
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def create(
        self,
        email: str,
        purpose: OtpPurpose,
        code: str,
        subject_id: Optional[str] = None,
    ) -> OtpRecord:
        now = self._clock()
        entry = OtpEntry(
            email=normalize_email(email),
            code=code,
            purpose=OtpPurpose(purpose).value,
            subject_id=subject_id,
            created_at=now,
            expires_at=now + self._ttl,
            used=False,
            verified_at=None,
        )
        with self._database.session_scope() as session:
            session.add(entry)
            session.flush()
            return _to_record(entry)

    def find_valid(
        self, email: str, code: str, purpose: OtpPurpose
    ) -> Optional[OtpRecord]:
        now = self._clock()
        with self._database.session_scope() as session:
            entry = session.execute(
                select(OtpEntry)
                .where(
                    OtpEntry.email == normalize_email(email),
                    OtpEntry.code == code,
                    OtpEntry.purpose == OtpPurpose(purpose).value,
                    OtpEntry.used.is_(False),
                    OtpEntry.expires_at > now,
                )
                .order_by(OtpEntry.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            if entry is None:
                return None
            return _to_record(entry)

    def find_active(self, email: str, purpose: OtpPurpose) -> Optional[OtpRecord]:
        now = self._clock()
        with self._database.session_scope() as session:
            entry = session.execute(
                select(OtpEntry)
                .where(
                    OtpEntry.email == normalize_email(email),
                    OtpEntry.purpose == OtpPurpose(purpose).value,
                    OtpEntry.used.is_(False),
                    OtpEntry.expires_at > now,
                )
                .order_by(OtpEntry.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            if entry is None:
                return None
            return _to_record(entry)

    def mark_used(self, record_id: str, at: Optional[datetime] = None) -> bool:
        verified_at = at or self._clock()
        with self._database.session_scope() as session:
            result = session.execute(
                update(OtpEntry)
                .where(OtpEntry.id == record_id, OtpEntry.used.is_(False))
                .values(used=True, verified_at=verified_at)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def count_since(self, email: str, purpose: OtpPurpose, since: datetime) -> int:
        with self._database.session_scope() as session:
            return session.execute(
                select(func.count(OtpEntry.id)).where(
                    OtpEntry.email == normalize_email(email),
                    OtpEntry.purpose == OtpPurpose(purpose).value,
                    OtpEntry.created_at >= since,
                )
            ).scalar_one()

    def delete_expired(self) -> int:
        now = self._clock()
        with self._database.session_scope() as session:
            result = session.execute(
                delete(OtpEntry)
                .where(OtpEntry.expires_at < now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    def delete(self, record_id: str) -> bool:
        with self._database.session_scope() as session:
            result = session.execute(
                delete(OtpEntry)
                .where(OtpEntry.id == record_id)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def list_recent(
        self,
        limit: int = 100,
        purpose: Optional[OtpPurpose] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[OtpRecord]:
        if status is not None and status not in OTP_STATUSES:
            raise ValueError(f"Unknown OTP status '{status}'")
        now = self._clock()
        conditions = []
        if purpose is not None:
            conditions.append(OtpEntry.purpose == OtpPurpose(purpose).value)
        if status == "active":
            conditions.extend([OtpEntry.used.is_(False), OtpEntry.expires_at > now])
        elif status == "used":
            conditions.append(OtpEntry.used.is_(True))
        elif status == "expired":
            conditions.extend([OtpEntry.used.is_(False), OtpEntry.expires_at <= now])
        if search:
            term = search.strip()
            conditions.append(
                or_(
                    OtpEntry.email.contains(term.lower(), autoescape=True),
                    OtpEntry.code.contains(term, autoescape=True),
                )
            )

        with self._database.session_scope() as session:
            entries = session.execute(
                select(OtpEntry)
                .where(*conditions)
                .order_by(OtpEntry.created_at.desc())
                .limit(limit)
            ).scalars().all()
            return [_to_record(entry) for entry in entries]

    def stats(self) -> OtpStatsResponse:
        now = self._clock()
        with self._database.session_scope() as session:
            total = session.execute(select(func.count(OtpEntry.id))).scalar_one()
            used = session.execute(
                select(func.count(OtpEntry.id)).where(OtpEntry.used.is_(True))
            ).scalar_one()
            active = session.execute(
                select(func.count(OtpEntry.id)).where(
                    OtpEntry.used.is_(False), OtpEntry.expires_at > now
                )
            ).scalar_one()
        return OtpStatsResponse(
            total=total,
            active=active,
            used=used,
            expired=total - used - active,
        )
