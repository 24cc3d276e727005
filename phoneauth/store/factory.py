import logging

from phoneauth.config import Settings
from phoneauth.store.base import RecordStore

LOGGER = logging.getLogger(__name__)


def build_store(settings: Settings) -> RecordStore:
    if settings.store_backend == "sql":
        from phoneauth.store.sql import SqlRecordStore

        LOGGER.info("Using SQL record store")
        return SqlRecordStore.from_url(settings.database_url)

    from phoneauth.store.dynamodb import DynamoRecordStore

    store = DynamoRecordStore.from_settings(settings)
    if settings.dynamodb_endpoint:
        # Local DynamoDB starts empty; managed tables are provisioned out of band.
        store.ensure_table()
    return store
