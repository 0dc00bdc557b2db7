import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, String

from otpgate.database import Base


class OtpEntry(Base):
    __tablename__ = "email_otps"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False)
    code = Column(String(10), nullable=False)
    purpose = Column(String(32), nullable=False)
    subject_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_email_otps_lookup", "email", "purpose", "code", "used", "expires_at"),
        Index("ix_email_otps_window", "email", "purpose", "created_at"),
        Index("ix_email_otps_expires_at", "expires_at"),
    )
