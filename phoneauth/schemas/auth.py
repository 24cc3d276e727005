from typing import Optional

from pydantic import BaseModel, Field


class InitiateOtpRequest(BaseModel):
    phone_number: str = Field(max_length=32)


class InitiateOtpResponse(BaseModel):
    message: str
    expires_in_seconds: int
    otp: Optional[str] = None


class VerifyOtpRequest(BaseModel):
    phone_number: str = Field(max_length=32)
    otp: str = Field(max_length=16)


class UserResponse(BaseModel):
    phone_number: str
    name: Optional[str] = None


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class VerifyOtpResponse(TokenPairResponse):
    user: UserResponse


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = Field(default=None, max_length=4096)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(default=None, max_length=4096)


class MessageResponse(BaseModel):
    message: str


class MeResponse(BaseModel):
    phone: str
