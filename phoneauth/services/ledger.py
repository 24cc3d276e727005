"""Server-side bookkeeping for refresh tokens.

Each refresh token gets a metadata record keyed by its JTI, a revocation
marker once revoked, and an entry in its rotation family's index partition
so a whole lineage can be revoked with one partition query.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
import logging
from typing import Callable

from phoneauth.errors import AuthServiceError, ConditionFailedError, NotFoundError
from phoneauth.store.base import (
    Item,
    RecordStore,
    refresh_family_key,
    refresh_token_key,
    revoked_token_key,
)

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RefreshTokenRecord:
    jti: str
    user_id: str
    phone: str
    family_id: str
    created_at: datetime
    expires_at: datetime
    revoked: bool = False

    @property
    def ttl(self) -> int:
        return int(self.expires_at.timestamp())

    def to_item(self) -> Item:
        return Item(
            pk=refresh_token_key(self.jti),
            attributes={
                "jti": self.jti,
                "user_id": self.user_id,
                "phone": self.phone,
                "family_id": self.family_id,
                "revoked": self.revoked,
                "created_at": self.created_at.isoformat(),
                "expires_at": self.expires_at.isoformat(),
            },
            ttl=self.ttl,
        )

    def family_item(self) -> Item:
        return Item(
            pk=refresh_family_key(self.family_id),
            sk=self.jti,
            attributes={
                "jti": self.jti,
                "family_id": self.family_id,
                "expires_at": self.expires_at.isoformat(),
            },
            ttl=self.ttl,
        )

    @classmethod
    def from_item(cls, item: Item) -> "RefreshTokenRecord":
        attributes = item.attributes
        return cls(
            jti=attributes["jti"],
            user_id=attributes["user_id"],
            phone=attributes["phone"],
            family_id=attributes.get("family_id", ""),
            created_at=datetime.fromisoformat(attributes["created_at"]),
            expires_at=datetime.fromisoformat(attributes["expires_at"]),
            revoked=bool(attributes.get("revoked", False)),
        )


class RefreshTokenLedger:
    def __init__(
        self, store: RecordStore, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self._store = store
        self._clock = clock

    def persist(self, record: RefreshTokenRecord) -> None:
        items = [record.to_item()]
        if record.family_id:
            items.append(record.family_item())
        self._store.put_many(items)

    def fetch(self, jti: str) -> RefreshTokenRecord:
        item = self._store.get(refresh_token_key(jti))
        if item is None:
            raise NotFoundError("Refresh token not found")
        return RefreshTokenRecord.from_item(item)

    def revoke(self, jti: str) -> bool:
        """Revoke a stored refresh token.

        Returns False when the token was already revoked. Raises
        ``NotFoundError`` when no record exists for ``jti``.
        """
        record = self.fetch(jti)
        newly_revoked = False
        if not record.revoked:
            try:
                self._store.put(
                    replace(record, revoked=True).to_item(),
                    expected={"revoked": False},
                )
                newly_revoked = True
            except ConditionFailedError:
                LOGGER.info("Refresh token already revoked concurrently jti=%s", jti)
        self.mark_revoked(jti, record.expires_at)
        return newly_revoked

    def mark_revoked(self, jti: str, expires_at: datetime) -> None:
        self._store.put(
            Item(
                pk=revoked_token_key(jti),
                attributes={
                    "jti": jti,
                    "revoked_at": self._clock().isoformat(),
                    "expires_at": expires_at.isoformat(),
                },
                ttl=int(expires_at.timestamp()),
            )
        )

    def is_revoked(self, jti: str) -> bool:
        return self._store.get(revoked_token_key(jti)) is not None

    def list_family(self, family_id: str) -> list[str]:
        if not family_id:
            return []
        return [item.sk for item in self._store.query(refresh_family_key(family_id))]

    def revoke_family(self, family_id: str) -> int:
        revoked = 0
        for jti in self.list_family(family_id):
            try:
                if self.revoke(jti):
                    revoked += 1
            except AuthServiceError as exc:
                LOGGER.error(
                    "Failed to revoke family member family_id=%s jti=%s error=%s",
                    family_id,
                    jti,
                    exc,
                )
        LOGGER.info("Revoked refresh token family family_id=%s count=%d", family_id, revoked)
        return revoked
