from enum import Enum


class ConfigError(RuntimeError):
    pass


class AuthServiceError(Exception):
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(AuthServiceError):
    status_code = 400
    default_code = "INVALID_REQUEST"


class AuthenticationError(AuthServiceError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class NotFoundError(AuthServiceError):
    # Never rendered as 404; the API boundary reports absent records as 401.
    status_code = 401
    default_code = "NOT_FOUND"


class InfrastructureError(AuthServiceError):
    status_code = 500
    default_code = "INTERNAL_ERROR"


class StoreError(InfrastructureError):
    pass


class ConditionFailedError(StoreError):
    """A conditional write or delete found the record in an unexpected state."""


class OtpFailure(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"
    MISMATCH = "mismatch"


class OtpVerificationError(AuthenticationError):
    default_code = "INVALID_OTP"

    def __init__(self, failure: OtpFailure) -> None:
        super().__init__("Invalid or expired OTP")
        self.failure = failure


class TokenError(AuthenticationError):
    default_code = "INVALID_TOKEN"
