from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from otpgate.dependencies import OtpServices, get_services, require_admin
from otpgate.errors import InvalidRequest, PersistenceError
from otpgate.schemas.otp import (
    CleanupResponse,
    OtpRecord,
    OtpRecordResponse,
    OtpStatsResponse,
)
from otpgate.services.issue import parse_purpose

router = APIRouter(
    prefix="/admin/otp", tags=["admin"], dependencies=[Depends(require_admin)]
)


def _to_response(record: OtpRecord, services: OtpServices) -> OtpRecordResponse:
    return OtpRecordResponse(
        id=record.id,
        email=record.email,
        otp_code=record.code,
        type=record.purpose,
        user_id=record.subject_id,
        created_at=record.created_at,
        expires_at=record.expires_at,
        is_used=record.used,
        verified_at=record.verified_at,
        status=record.status(services.store.now()),
    )


def _storage_unavailable(exc: PersistenceError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
    )


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_expired(services: OtpServices = Depends(get_services)) -> CleanupResponse:
    try:
        deleted = services.store.delete_expired()
    except PersistenceError as exc:
        raise _storage_unavailable(exc) from exc
    return CleanupResponse(deleted=deleted)


@router.get("", response_model=list[OtpRecordResponse])
def list_otps(
    limit: int = Query(default=100, ge=1, le=500),
    type: Optional[str] = Query(default=None),
    status_filter: Optional[Literal["active", "used", "expired"]] = Query(
        default=None, alias="status"
    ),
    search: Optional[str] = Query(default=None, max_length=255),
    services: OtpServices = Depends(get_services),
) -> list[OtpRecordResponse]:
    try:
        purpose = parse_purpose(type) if type else None
    except InvalidRequest as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    try:
        records = services.store.list_recent(
            limit=limit, purpose=purpose, status=status_filter, search=search
        )
    except PersistenceError as exc:
        raise _storage_unavailable(exc) from exc
    return [_to_response(record, services) for record in records]


@router.get("/stats", response_model=OtpStatsResponse)
def otp_stats(services: OtpServices = Depends(get_services)) -> OtpStatsResponse:
    try:
        return services.store.stats()
    except PersistenceError as exc:
        raise _storage_unavailable(exc) from exc


@router.delete("/{record_id}")
def delete_otp(record_id: str, services: OtpServices = Depends(get_services)) -> dict:
    try:
        deleted = services.store.delete(record_id)
    except PersistenceError as exc:
        raise _storage_unavailable(exc) from exc
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="OTP record not found")
    return {"deleted": True}
