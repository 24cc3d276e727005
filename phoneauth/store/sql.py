from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from phoneauth.database import Database
from phoneauth.errors import ConditionFailedError, StoreError
from phoneauth.models.record import RecordEntry
from phoneauth.store.base import METADATA_SK, Item, RecordStore

LOGGER = logging.getLogger(__name__)


def _to_item(entry: RecordEntry | None) -> Item | None:
    if entry is None:
        return None
    return Item(
        pk=entry.pk,
        sk=entry.sk,
        attributes=dict(entry.attributes or {}),
        ttl=entry.ttl,
    )


def _check_expected(entry: RecordEntry | None, expected: Mapping[str, Any]) -> None:
    if entry is None:
        raise ConditionFailedError("Record does not exist")
    attributes = entry.attributes or {}
    for name, value in expected.items():
        if attributes.get(name) != value:
            raise ConditionFailedError(f"Attribute {name!r} does not match")


class SqlRecordStore(RecordStore):
    """Record store over a single SQLAlchemy table.

    The database has no native TTL, so every write first deletes rows whose
    ``ttl`` has passed.
    """

    def __init__(self, database: Database, clock: Callable[[], float] = time.time) -> None:
        self._database = database
        self._clock = clock

    @classmethod
    def from_url(cls, url: str) -> "SqlRecordStore":
        database = Database(url)
        database.create_all()
        return cls(database)

    @contextmanager
    def _scope(self):
        try:
            with self._database.session_scope() as session:
                yield session
        except IntegrityError as exc:
            raise ConditionFailedError("Record already exists") from exc
        except SQLAlchemyError as exc:
            LOGGER.error("Record store operation failed: %s", exc)
            raise StoreError("Record store unavailable") from exc

    def _purge_expired(self, session) -> None:
        now = int(self._clock())
        session.execute(
            delete(RecordEntry).where(RecordEntry.ttl.is_not(None), RecordEntry.ttl <= now)
        )

    @staticmethod
    def _locked_entry(session, pk: str, sk: str) -> RecordEntry | None:
        result = session.execute(
            select(RecordEntry)
            .where(RecordEntry.pk == pk, RecordEntry.sk == sk)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    def get(self, pk: str, sk: str = METADATA_SK) -> Item | None:
        with self._scope() as session:
            return _to_item(session.get(RecordEntry, (pk, sk)))

    def put(
        self,
        item: Item,
        *,
        if_not_exists: bool = False,
        expected: Mapping[str, Any] | None = None,
    ) -> None:
        with self._scope() as session:
            self._purge_expired(session)
            entry = self._locked_entry(session, item.pk, item.sk)
            if if_not_exists and entry is not None:
                raise ConditionFailedError("Record already exists")
            if expected is not None:
                _check_expected(entry, expected)
            if entry is None:
                session.add(
                    RecordEntry(
                        pk=item.pk,
                        sk=item.sk,
                        attributes=dict(item.attributes),
                        ttl=item.ttl,
                    )
                )
            else:
                entry.attributes = dict(item.attributes)
                entry.ttl = item.ttl

    def put_many(self, items: Iterable[Item]) -> None:
        with self._scope() as session:
            self._purge_expired(session)
            for item in items:
                session.merge(
                    RecordEntry(
                        pk=item.pk,
                        sk=item.sk,
                        attributes=dict(item.attributes),
                        ttl=item.ttl,
                    )
                )

    def delete(
        self,
        pk: str,
        sk: str = METADATA_SK,
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> None:
        with self._scope() as session:
            entry = self._locked_entry(session, pk, sk)
            if expected is not None:
                _check_expected(entry, expected)
            if entry is not None:
                session.delete(entry)

    def query(self, pk: str) -> list[Item]:
        with self._scope() as session:
            result = session.execute(
                select(RecordEntry).where(RecordEntry.pk == pk).order_by(RecordEntry.sk)
            )
            return [_to_item(entry) for entry in result.scalars().all()]

    def close(self) -> None:
        self._database.dispose()
