from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

INVALID_OR_EXPIRED = "invalid_or_expired"


class OtpPurpose(str, Enum):
    EMAIL_CHANGE = "email_change"
    PASSWORD_RESET = "password_reset"
    SIGNUP_VERIFICATION = "signup_verification"


@dataclass(frozen=True)
class OtpRecord:
    id: str
    email: str
    code: str
    purpose: OtpPurpose
    subject_id: Optional[str]
    created_at: datetime
    expires_at: datetime
    used: bool
    verified_at: Optional[datetime]

    def status(self, now: datetime) -> str:
        if self.used:
            return "used"
        if now >= self.expires_at:
            return "expired"
        return "active"


@dataclass(frozen=True)
class IssueResult:
    email: str
    purpose: OtpPurpose
    expires_at: datetime


@dataclass(frozen=True)
class VerifyResult:
    valid: bool
    reason: Optional[str] = None
    purpose: Optional[OtpPurpose] = None
    email: Optional[str] = None
    action_result: Optional[dict[str, Any]] = None
    verified_at: Optional[datetime] = None

    @classmethod
    def rejected(cls) -> "VerifyResult":
        return cls(valid=False, reason=INVALID_OR_EXPIRED)


@dataclass(frozen=True)
class OtpStatus:
    has_valid_otp: bool
    attempts_in_last_hour: int
    expires_at: Optional[datetime] = None


class IssueOtpRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)
    type: Optional[str] = None
    user_id: Optional[str] = Field(default=None, max_length=64)


class IssueOtpResponse(BaseModel):
    success: bool
    message: str
    expires_at: Optional[datetime] = None
    error: Optional[str] = None


class VerifyOtpRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)
    otp_code: Optional[str] = Field(default=None, max_length=32)
    type: Optional[str] = None


class VerifyOtpResponse(BaseModel):
    valid: bool
    message: str
    type: Optional[OtpPurpose] = None
    email: Optional[str] = None
    action_result: Optional[dict[str, Any]] = None
    verified_at: Optional[datetime] = None
    error: Optional[str] = None


class RateLimitResponse(BaseModel):
    allowed: bool
    remaining: Optional[int] = None


class OtpStatusResponse(BaseModel):
    has_valid_otp: bool
    attempts_in_last_hour: int
    expires_at: Optional[datetime] = None


class OtpRecordResponse(BaseModel):
    id: str
    email: str
    otp_code: str
    type: OtpPurpose
    user_id: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    is_used: bool
    verified_at: Optional[datetime] = None
    status: Literal["active", "used", "expired"]


class OtpStatsResponse(BaseModel):
    total: int
    active: int
    used: int
    expired: int


class CleanupResponse(BaseModel):
    deleted: int
