from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
import logging
import secrets
import string
from typing import Callable

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from phoneauth.errors import (
    ConditionFailedError,
    InfrastructureError,
    OtpFailure,
    OtpVerificationError,
)
from phoneauth.services.phone import mask_phone
from phoneauth.store.base import Item, RecordStore, otp_key

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OtpRecord:
    otp_hash: str
    phone: str
    attempts: int
    created_at: datetime
    expires_at: datetime

    def to_item(self) -> Item:
        return Item(
            pk=otp_key(self.phone),
            attributes={
                "otp_hash": self.otp_hash,
                "phone": self.phone,
                "attempts": self.attempts,
                "created_at": self.created_at.isoformat(),
                "expires_at": self.expires_at.isoformat(),
            },
            ttl=int(self.expires_at.timestamp()),
        )

    @classmethod
    def from_item(cls, item: Item) -> "OtpRecord":
        attributes = item.attributes
        return cls(
            otp_hash=attributes["otp_hash"],
            phone=attributes["phone"],
            attempts=int(attributes.get("attempts", 0)),
            created_at=datetime.fromisoformat(attributes["created_at"]),
            expires_at=datetime.fromisoformat(attributes["expires_at"]),
        )

    @property
    def condition(self) -> dict:
        return {"otp_hash": self.otp_hash, "attempts": self.attempts}


class OtpManager:
    def __init__(
        self,
        store: RecordStore,
        *,
        code_length: int,
        ttl_seconds: int,
        max_attempts: int,
        debug: bool = False,
        hasher: PasswordHasher | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._code_length = code_length
        self._ttl_seconds = ttl_seconds
        self._max_attempts = max_attempts
        self._debug = debug
        self._hasher = hasher or PasswordHasher()
        self._clock = clock

    def issue(self, phone: str) -> str:
        now = self._clock()
        code = self._generate_code()
        record = OtpRecord(
            otp_hash=self._hasher.hash(code),
            phone=phone,
            attempts=0,
            created_at=now,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
        )
        self._store.put(record.to_item())
        if self._debug:
            LOGGER.info("OTP generated phone=%s otp=%s", phone, code)
        else:
            LOGGER.info("OTP generated phone=%s", mask_phone(phone))
        return code

    def verify(self, phone: str, candidate: str) -> None:
        """Consume the pending OTP for ``phone`` or raise ``OtpVerificationError``."""
        key = otp_key(phone)
        item = self._store.get(key)
        if item is None:
            raise OtpVerificationError(OtpFailure.NOT_FOUND)
        record = OtpRecord.from_item(item)

        if self._clock() >= record.expires_at:
            self._store.delete(key)
            raise OtpVerificationError(OtpFailure.EXPIRED)
        if record.attempts >= self._max_attempts:
            self._store.delete(key)
            raise OtpVerificationError(OtpFailure.ATTEMPTS_EXCEEDED)

        if not self._matches(record.otp_hash, candidate):
            self._record_failed_attempt(record)
            raise OtpVerificationError(OtpFailure.MISMATCH)

        # Conditional on the state we just read so two concurrent verifications
        # cannot both consume the same code.
        try:
            self._store.delete(key, expected=record.condition)
        except ConditionFailedError as exc:
            raise OtpVerificationError(OtpFailure.NOT_FOUND) from exc

    def _record_failed_attempt(self, record: OtpRecord) -> None:
        attempts = record.attempts + 1
        try:
            if attempts >= self._max_attempts:
                self._store.delete(otp_key(record.phone), expected=record.condition)
                LOGGER.warning(
                    "OTP attempts exhausted phone=%s", mask_phone(record.phone)
                )
            else:
                self._store.put(
                    replace(record, attempts=attempts).to_item(),
                    expected=record.condition,
                )
        except ConditionFailedError:
            LOGGER.info(
                "OTP record changed during verification phone=%s",
                mask_phone(record.phone),
            )

    def _matches(self, otp_hash: str, candidate: str) -> bool:
        try:
            return self._hasher.verify(otp_hash, candidate)
        except VerificationError:
            return False
        except InvalidHashError as exc:
            raise InfrastructureError("Stored OTP hash is unreadable") from exc

    def _generate_code(self) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(self._code_length))
