from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Callable

from phoneauth.errors import ConditionFailedError, StoreError
from phoneauth.services.phone import mask_phone
from phoneauth.store.base import Item, RecordStore, user_key

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class User:
    phone_number: str
    name: str
    created_at: datetime
    updated_at: datetime

    def to_item(self) -> Item:
        return Item(
            pk=user_key(self.phone_number),
            attributes={
                "phone_number": self.phone_number,
                "name": self.name,
                "created_at": self.created_at.isoformat(),
                "updated_at": self.updated_at.isoformat(),
            },
        )

    @classmethod
    def from_item(cls, item: Item) -> "User":
        attributes = item.attributes
        return cls(
            phone_number=attributes["phone_number"],
            name=attributes.get("name") or "",
            created_at=datetime.fromisoformat(attributes["created_at"]),
            updated_at=datetime.fromisoformat(attributes["updated_at"]),
        )


class UserDirectory:
    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    def get(self, phone_number: str) -> User | None:
        item = self._store.get(user_key(phone_number))
        if item is None:
            return None
        return User.from_item(item)

    def get_or_create(self, phone_number: str) -> tuple[User, bool]:
        """Return the user for ``phone_number`` and whether it already existed."""
        existing = self.get(phone_number)
        if existing is not None:
            return existing, True

        now = self._clock()
        user = User(phone_number=phone_number, name="", created_at=now, updated_at=now)
        try:
            self._store.put(user.to_item(), if_not_exists=True)
        except ConditionFailedError:
            # Lost a race with a concurrent first login for the same phone.
            existing = self.get(phone_number)
            if existing is None:
                raise StoreError("User record vanished after conflicting create")
            return existing, True
        LOGGER.info("Created user phone=%s", mask_phone(phone_number))
        return user, False
