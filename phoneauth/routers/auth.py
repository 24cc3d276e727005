from typing import Optional

from fastapi import APIRouter, Body, Depends

from phoneauth.config import Settings
from phoneauth.deps import RequestContext, get_orchestrator, get_request_context, get_settings
from phoneauth.schemas.auth import (
    InitiateOtpRequest,
    InitiateOtpResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    TokenPairResponse,
    UserResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from phoneauth.services.sessions import SessionOrchestrator

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/initiate-otp", response_model=InitiateOtpResponse, response_model_exclude_none=True
)
def initiate_otp(
    payload: InitiateOtpRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> InitiateOtpResponse:
    challenge = orchestrator.initiate(payload.phone_number)
    # Delivery over SMS/WhatsApp happens outside this service.
    return InitiateOtpResponse(
        message="OTP sent successfully",
        expires_in_seconds=challenge.expires_in,
        otp=challenge.code if settings.otp_debug else None,
    )


@router.post("/verify-otp", response_model=VerifyOtpResponse, response_model_exclude_none=True)
def verify_otp(
    payload: VerifyOtpRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> VerifyOtpResponse:
    session = orchestrator.verify(payload.phone_number, payload.otp)
    tokens = session.tokens
    return VerifyOtpResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
        user=UserResponse(
            phone_number=session.user.phone_number,
            name=session.user.name or None,
        ),
    )


@router.post("/refresh", response_model=TokenPairResponse)
def refresh_tokens(
    payload: RefreshRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> TokenPairResponse:
    tokens = orchestrator.refresh(payload.refresh_token)
    return TokenPairResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    payload: Optional[LogoutRequest] = Body(default=None),
    context: RequestContext = Depends(get_request_context),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    refresh_token = payload.refresh_token if payload else None
    orchestrator.logout(context.user_id, refresh_token)
    return MessageResponse(message="Logged out successfully")
