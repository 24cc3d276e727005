"""Session lifecycle: OTP login, refresh-token rotation and logout.

A lineage moves Unauthenticated -> OTPIssued -> Authenticated -> Refreshed*
and ends Revoked or Expired. All state lives in the record store; this class
only sequences the OTP manager, token issuer, user directory and ledger.
"""
from dataclasses import dataclass
import logging

from phoneauth.errors import (
    InfrastructureError,
    NotFoundError,
    OtpVerificationError,
    TokenError,
    ValidationError,
)
from phoneauth.services.ledger import RefreshTokenLedger, RefreshTokenRecord
from phoneauth.services.otp import OtpManager
from phoneauth.services.phone import mask_phone, normalize_phone
from phoneauth.services.tokens import ACCESS, REFRESH, IssuedPair, TokenClaims, TokenIssuer
from phoneauth.services.users import User, UserDirectory

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OtpChallenge:
    phone: str
    code: str
    expires_in: int


@dataclass(frozen=True)
class VerifiedSession:
    tokens: IssuedPair
    user: User
    user_existed: bool


class SessionOrchestrator:
    def __init__(
        self,
        otp_manager: OtpManager,
        token_issuer: TokenIssuer,
        ledger: RefreshTokenLedger,
        users: UserDirectory,
        *,
        otp_length: int,
        otp_ttl_seconds: int,
        revoke_family_on_reuse: bool = True,
        refresh_require_record: bool = False,
    ) -> None:
        self._otp = otp_manager
        self._tokens = token_issuer
        self._ledger = ledger
        self._users = users
        self._otp_length = otp_length
        self._otp_ttl_seconds = otp_ttl_seconds
        self._revoke_family_on_reuse = revoke_family_on_reuse
        self._refresh_require_record = refresh_require_record

    def initiate(self, phone_number: str | None) -> OtpChallenge:
        phone = normalize_phone(phone_number)
        try:
            code = self._otp.issue(phone)
        except InfrastructureError as exc:
            LOGGER.error("Failed to generate OTP phone=%s error=%s", mask_phone(phone), exc)
            raise InfrastructureError(
                "Failed to generate OTP", code="OTP_GENERATION_FAILED"
            ) from exc
        return OtpChallenge(phone=phone, code=code, expires_in=self._otp_ttl_seconds)

    def verify(self, phone_number: str | None, otp: str | None) -> VerifiedSession:
        phone = normalize_phone(phone_number)
        code = self._clean_otp(otp)
        try:
            self._otp.verify(phone, code)
        except OtpVerificationError as exc:
            LOGGER.warning(
                "OTP verification failed phone=%s reason=%s",
                mask_phone(phone),
                exc.failure.value,
            )
            raise

        try:
            user, existed = self._users.get_or_create(phone)
        except InfrastructureError as exc:
            LOGGER.error("Failed to get or create user phone=%s", mask_phone(phone))
            raise InfrastructureError(
                "Failed to create user", code="USER_CREATION_FAILED"
            ) from exc

        tokens = self._tokens.issue_pair(phone)
        self._record_refresh_token(tokens, phone)
        return VerifiedSession(tokens=tokens, user=user, user_existed=existed)

    def refresh(self, refresh_token: str | None) -> IssuedPair:
        if not refresh_token or not refresh_token.strip():
            raise ValidationError("Refresh token is required", code="MISSING_TOKEN")
        claims = self._tokens.verify(refresh_token.strip(), expected_type=REFRESH)

        if self._ledger.is_revoked(claims.jti):
            self._reject_reuse(claims)

        try:
            record = self._ledger.fetch(claims.jti)
        except NotFoundError:
            record = None

        if record is not None:
            if not self._ledger.revoke(claims.jti):
                # Another request rotated this token first.
                self._reject_reuse(claims, record.family_id)
            family_id = record.family_id
        else:
            if self._refresh_require_record:
                LOGGER.warning("Refresh token record missing jti=%s", claims.jti)
                raise TokenError("Invalid refresh token")
            LOGGER.warning(
                "Refresh token record missing, starting a new family jti=%s", claims.jti
            )
            self._ledger.mark_revoked(claims.jti, claims.expires_at)
            family_id = ""

        tokens = self._tokens.issue_pair_with_family(claims.subject, family_id)
        self._record_refresh_token(tokens, claims.subject)
        return tokens

    def logout(self, subject: str, refresh_token: str | None = None) -> bool:
        """Revoke ``refresh_token`` if it belongs to ``subject``.

        Returns True when a refresh token was revoked. Anything unusable in the
        payload is ignored; logout itself is scoped to the access token.
        """
        if not refresh_token:
            return False
        try:
            claims = self._tokens.verify(refresh_token, expected_type=REFRESH)
        except TokenError as exc:
            LOGGER.info("Ignoring unusable refresh token on logout: %s", exc.message)
            return False
        if claims.subject != subject:
            LOGGER.warning(
                "Refresh token subject mismatch on logout phone=%s", mask_phone(subject)
            )
            return False
        try:
            try:
                self._ledger.revoke(claims.jti)
            except NotFoundError:
                self._ledger.mark_revoked(claims.jti, claims.expires_at)
        except InfrastructureError as exc:
            LOGGER.error("Failed to revoke refresh token on logout jti=%s error=%s", claims.jti, exc)
            return False
        LOGGER.info("Logged out phone=%s jti=%s", mask_phone(subject), claims.jti)
        return True

    def authenticate(self, access_token: str) -> TokenClaims:
        return self._tokens.verify(access_token, expected_type=ACCESS)

    def revoke_family(self, family_id: str) -> int:
        return self._ledger.revoke_family(family_id)

    def _reject_reuse(self, claims: TokenClaims, family_id: str | None = None) -> None:
        LOGGER.warning(
            "Revoked refresh token presented phone=%s jti=%s",
            mask_phone(claims.subject),
            claims.jti,
        )
        if self._revoke_family_on_reuse:
            if family_id is None:
                try:
                    family_id = self._ledger.fetch(claims.jti).family_id
                except NotFoundError:
                    family_id = ""
            if family_id:
                self._ledger.revoke_family(family_id)
        raise TokenError("Refresh token has been revoked", code="TOKEN_REVOKED")

    def _record_refresh_token(self, tokens: IssuedPair, phone: str) -> None:
        claims = tokens.refresh_claims
        record = RefreshTokenRecord(
            jti=claims.jti,
            user_id=phone,
            phone=phone,
            family_id=tokens.family_id,
            created_at=claims.issued_at,
            expires_at=claims.expires_at,
        )
        try:
            self._ledger.persist(record)
        except InfrastructureError:
            # The signed pair stays valid until expiry even without its ledger entry.
            LOGGER.exception("Failed to store refresh token jti=%s", claims.jti)

    def _clean_otp(self, otp: str | None) -> str:
        code = (otp or "").strip()
        if len(code) != self._otp_length or not (code.isascii() and code.isdigit()):
            raise ValidationError("Invalid OTP format", code="INVALID_OTP")
        return code
