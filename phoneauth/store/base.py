"""Key-value record store contract shared by the SQL and DynamoDB backends.

Records are addressed by a partition key and a sort key. A record may carry a
``ttl`` (Unix seconds); the backend removes it some time after that instant,
but reads never hide expired records, so callers compare expiry themselves.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

METADATA_SK = "METADATA"

USER_PREFIX = "USER#"
OTP_PREFIX = "OTP#"
REFRESH_TOKEN_PREFIX = "REFRESH_TOKEN#"
REVOKED_TOKEN_PREFIX = "REVOKED_TOKEN#"
REFRESH_FAMILY_PREFIX = "REFRESH_FAMILY#"


def user_key(phone: str) -> str:
    return f"{USER_PREFIX}{phone}"


def otp_key(phone: str) -> str:
    return f"{OTP_PREFIX}{phone}"


def refresh_token_key(jti: str) -> str:
    return f"{REFRESH_TOKEN_PREFIX}{jti}"


def revoked_token_key(jti: str) -> str:
    return f"{REVOKED_TOKEN_PREFIX}{jti}"


def refresh_family_key(family_id: str) -> str:
    return f"{REFRESH_FAMILY_PREFIX}{family_id}"


@dataclass(frozen=True)
class Item:
    pk: str
    sk: str = METADATA_SK
    attributes: dict[str, Any] = field(default_factory=dict)
    ttl: int | None = None


class RecordStore(ABC):
    @abstractmethod
    def get(self, pk: str, sk: str = METADATA_SK) -> Item | None:
        """Return the record or ``None`` when absent."""

    @abstractmethod
    def put(
        self,
        item: Item,
        *,
        if_not_exists: bool = False,
        expected: Mapping[str, Any] | None = None,
    ) -> None:
        """Create or replace a record.

        ``if_not_exists`` fails when a record already exists under the key.
        ``expected`` fails unless a record exists and each listed attribute
        currently holds the given value. Both raise ``ConditionFailedError``.
        """

    @abstractmethod
    def put_many(self, items: Iterable[Item]) -> None:
        """Write several records as one all-or-nothing operation."""

    @abstractmethod
    def delete(
        self,
        pk: str,
        sk: str = METADATA_SK,
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> None:
        """Delete a record. Deleting an absent record is a no-op unless
        ``expected`` is given, in which case it raises ``ConditionFailedError``."""

    @abstractmethod
    def query(self, pk: str) -> list[Item]:
        """Return every record in a partition, ordered by sort key."""

    def close(self) -> None:
        return None
