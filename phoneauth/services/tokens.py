from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Callable
import uuid

import jwt

from phoneauth.config import HMAC_ALGORITHMS, MIN_SECRET_BYTES
from phoneauth.errors import ConfigError, InfrastructureError, TokenError

LOGGER = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"
TOKEN_TYPES = (ACCESS, REFRESH)
REQUIRED_CLAIMS = ["exp", "iat", "sub", "jti"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_identifier() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    phone: str
    token_type: str
    jti: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedPair:
    access_token: str
    refresh_token: str
    family_id: str
    access_claims: TokenClaims
    refresh_claims: TokenClaims
    expires_in: int
    token_type: str = "Bearer"


class TokenIssuer:
    def __init__(
        self,
        secret: str,
        *,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ConfigError(f"Signing secret must be at least {MIN_SECRET_BYTES} bytes")
        if algorithm not in HMAC_ALGORITHMS:
            raise ConfigError(f"Unsupported signing algorithm: {algorithm}")
        self._secret = secret
        self._algorithm = algorithm
        self._access_ttl = timedelta(seconds=access_ttl_seconds)
        self._refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self._clock = clock

    @property
    def access_ttl_seconds(self) -> int:
        return int(self._access_ttl.total_seconds())

    def issue_pair(self, subject: str) -> IssuedPair:
        return self.issue_pair_with_family(subject, "")

    def issue_pair_with_family(self, subject: str, family_id: str) -> IssuedPair:
        family_id = family_id or new_identifier()
        now = self._clock()
        access_claims = TokenClaims(
            subject=subject,
            phone=subject,
            token_type=ACCESS,
            jti=new_identifier(),
            issued_at=now,
            expires_at=now + self._access_ttl,
        )
        refresh_claims = TokenClaims(
            subject=subject,
            phone=subject,
            token_type=REFRESH,
            jti=new_identifier(),
            issued_at=now,
            expires_at=now + self._refresh_ttl,
        )
        return IssuedPair(
            access_token=self._sign(access_claims),
            refresh_token=self._sign(refresh_claims),
            family_id=family_id,
            access_claims=access_claims,
            refresh_claims=refresh_claims,
            expires_in=self.access_ttl_seconds,
        )

    def verify(self, token: str, expected_type: str | None = None) -> TokenClaims:
        if not token:
            raise TokenError("Token is missing")
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise TokenError("Invalid token") from exc
        # Reject "none" and any algorithm other than the configured HMAC one
        # before the signature is even looked at.
        if header.get("alg") != self._algorithm:
            raise TokenError("Unexpected signing algorithm")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenError("Token has expired", code="TOKEN_EXPIRED") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenError("Invalid token") from exc

        token_type = payload.get("type")
        if token_type not in TOKEN_TYPES:
            raise TokenError("Invalid token")
        if expected_type is not None and token_type != expected_type:
            raise TokenError("Invalid token type", code="INVALID_TOKEN_TYPE")
        subject = payload["sub"]
        if not isinstance(subject, str) or not subject:
            raise TokenError("Token subject is missing")
        return TokenClaims(
            subject=subject,
            phone=payload.get("phone") or subject,
            token_type=token_type,
            jti=str(payload["jti"]),
            issued_at=datetime.fromtimestamp(int(payload["iat"]), timezone.utc),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), timezone.utc),
        )

    def _sign(self, claims: TokenClaims) -> str:
        payload = {
            "sub": claims.subject,
            "phone": claims.phone,
            "type": claims.token_type,
            "jti": claims.jti,
            "iat": int(claims.issued_at.timestamp()),
            "exp": int(claims.expires_at.timestamp()),
        }
        try:
            return jwt.encode(payload, self._secret, algorithm=self._algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            LOGGER.error("Failed to sign %s token: %s", claims.token_type, exc)
            raise InfrastructureError(
                "Failed to generate tokens", code="TOKEN_GENERATION_FAILED"
            ) from exc
