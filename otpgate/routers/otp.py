from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from otpgate.dependencies import OtpServices, get_services
from otpgate.errors import InvalidRequest, IssueFailed, RateLimited, VerifyFailed
from otpgate.schemas.otp import (
    INVALID_OR_EXPIRED,
    IssueOtpRequest,
    IssueOtpResponse,
    OtpStatusResponse,
    RateLimitResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from otpgate.services.issue import parse_purpose

router = APIRouter(tags=["otp"])


def _issue_failure(status_code: int, message: str, error: str) -> JSONResponse:
    body = IssueOtpResponse(success=False, message=message, error=error)
    return JSONResponse(
        status_code=status_code, content=body.model_dump(mode="json", exclude_none=True)
    )


def _verify_failure(status_code: int, message: str, error: str) -> JSONResponse:
    body = VerifyOtpResponse(valid=False, message=message, error=error)
    return JSONResponse(
        status_code=status_code, content=body.model_dump(mode="json", exclude_none=True)
    )


@router.post("/send-otp", response_model=IssueOtpResponse, response_model_exclude_none=True)
def send_otp(
    payload: IssueOtpRequest, services: OtpServices = Depends(get_services)
):
    try:
        result = services.request_handler.issue(
            payload.email, payload.type, payload.user_id
        )
    except InvalidRequest as exc:
        return _issue_failure(status.HTTP_400_BAD_REQUEST, str(exc), str(exc))
    except RateLimited as exc:
        return _issue_failure(
            status.HTTP_429_TOO_MANY_REQUESTS, str(exc), "rate_limited"
        )
    except IssueFailed as exc:
        return _issue_failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to send OTP", str(exc)
        )
    return IssueOtpResponse(
        success=True,
        message="OTP sent successfully",
        expires_at=result.expires_at,
    )


@router.post("/verify-otp", response_model=VerifyOtpResponse, response_model_exclude_none=True)
def verify_otp(
    payload: VerifyOtpRequest, services: OtpServices = Depends(get_services)
):
    try:
        result = services.verify_handler.verify(
            payload.email, payload.otp_code, payload.type
        )
    except InvalidRequest as exc:
        return _verify_failure(status.HTTP_400_BAD_REQUEST, str(exc), str(exc))
    except VerifyFailed as exc:
        return _verify_failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to verify OTP", str(exc)
        )
    if not result.valid:
        return _verify_failure(
            status.HTTP_400_BAD_REQUEST, "Invalid or expired OTP code", INVALID_OR_EXPIRED
        )
    return VerifyOtpResponse(
        valid=True,
        message="OTP verified successfully",
        type=result.purpose,
        email=result.email,
        action_result=result.action_result,
        verified_at=result.verified_at,
    )


@router.get("/otp/rate-limit", response_model=RateLimitResponse, response_model_exclude_none=True)
def check_rate_limit(
    email: str = Query(min_length=3, max_length=255),
    type: str = Query(default="email_change"),
    services: OtpServices = Depends(get_services),
) -> RateLimitResponse:
    try:
        purpose = parse_purpose(type)
    except InvalidRequest as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    remaining = services.rate_limiter.remaining(email, purpose)
    return RateLimitResponse(
        allowed=remaining is None or remaining > 0,
        remaining=remaining,
    )


@router.get("/otp/status", response_model=OtpStatusResponse, response_model_exclude_none=True)
def get_otp_status(
    email: str = Query(min_length=3, max_length=255),
    type: str = Query(...),
    services: OtpServices = Depends(get_services),
) -> OtpStatusResponse:
    try:
        otp_status = services.client.get_status(email, type)
    except InvalidRequest as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return OtpStatusResponse(
        has_valid_otp=otp_status.has_valid_otp,
        attempts_in_last_hour=otp_status.attempts_in_last_hour,
        expires_at=otp_status.expires_at,
    )
