from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Mapping

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from phoneauth.errors import ConditionFailedError, StoreError
from phoneauth.store.base import METADATA_SK, Item, RecordStore

LOGGER = logging.getLogger(__name__)

PK_ATTR = "PK"
SK_ATTR = "SK"
TTL_ATTR = "TTL"
_KEY_ATTRS = {PK_ATTR, SK_ATTR, TTL_ATTR}

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, list):
        return [_plain(element) for element in value]
    if isinstance(value, dict):
        return {key: _plain(element) for key, element in value.items()}
    return value


def _key(pk: str, sk: str) -> dict:
    return {PK_ATTR: {"S": pk}, SK_ATTR: {"S": sk}}


def _serialize_item(item: Item) -> dict:
    wire = {name: _serializer.serialize(value) for name, value in item.attributes.items()}
    wire.update(_key(item.pk, item.sk))
    if item.ttl is not None:
        wire[TTL_ATTR] = {"N": str(int(item.ttl))}
    return wire


def _deserialize_item(wire: Mapping[str, Any]) -> Item:
    values = {name: _plain(_deserializer.deserialize(value)) for name, value in wire.items()}
    return Item(
        pk=values[PK_ATTR],
        sk=values[SK_ATTR],
        attributes={k: v for k, v in values.items() if k not in _KEY_ATTRS},
        ttl=values.get(TTL_ATTR),
    )


def _condition(
    if_not_exists: bool, expected: Mapping[str, Any] | None
) -> dict[str, Any]:
    if if_not_exists:
        return {"ConditionExpression": f"attribute_not_exists({PK_ATTR})"}
    if expected is None:
        return {}
    clauses = [f"attribute_exists({PK_ATTR})"]
    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    for index, (name, value) in enumerate(expected.items()):
        clauses.append(f"#c{index} = :c{index}")
        names[f"#c{index}"] = name
        values[f":c{index}"] = _serializer.serialize(value)
    condition: dict[str, Any] = {"ConditionExpression": " AND ".join(clauses)}
    if names:
        condition["ExpressionAttributeNames"] = names
        condition["ExpressionAttributeValues"] = values
    return condition


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class DynamoRecordStore(RecordStore):
    """Record store over one DynamoDB table with a ``PK``/``SK`` string key
    schema and ``TTL`` as the table's time-to-live attribute."""

    def __init__(self, table_name: str, client=None) -> None:
        self.table_name = table_name
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "DynamoRecordStore":
        config = Config(
            connect_timeout=settings.dynamodb_connect_timeout,
            read_timeout=settings.dynamodb_read_timeout,
            retries={"total_max_attempts": 1},
        )
        client = boto3.client(
            "dynamodb",
            region_name=settings.dynamodb_region,
            endpoint_url=settings.dynamodb_endpoint or None,
            config=config,
        )
        LOGGER.info(
            "DynamoDB client initialized table=%s endpoint=%s",
            settings.dynamodb_table_name,
            settings.dynamodb_endpoint or "default",
        )
        return cls(settings.dynamodb_table_name, client=client)

    def _call(self, operation: str, **kwargs):
        try:
            return getattr(self._client, operation)(TableName=self.table_name, **kwargs)
        except ClientError as exc:
            if _error_code(exc) == "ConditionalCheckFailedException":
                raise ConditionFailedError("Condition not satisfied") from exc
            LOGGER.error("DynamoDB %s failed: %s", operation, exc)
            raise StoreError("Record store unavailable") from exc
        except BotoCoreError as exc:
            LOGGER.error("DynamoDB %s failed: %s", operation, exc)
            raise StoreError("Record store unavailable") from exc

    def get(self, pk: str, sk: str = METADATA_SK) -> Item | None:
        response = self._call("get_item", Key=_key(pk, sk), ConsistentRead=True)
        wire = response.get("Item")
        if not wire:
            return None
        return _deserialize_item(wire)

    def put(
        self,
        item: Item,
        *,
        if_not_exists: bool = False,
        expected: Mapping[str, Any] | None = None,
    ) -> None:
        self._call(
            "put_item",
            Item=_serialize_item(item),
            **_condition(if_not_exists, expected),
        )

    def put_many(self, items: Iterable[Item]) -> None:
        actions = [
            {"Put": {"TableName": self.table_name, "Item": _serialize_item(item)}}
            for item in items
        ]
        if not actions:
            return
        try:
            self._client.transact_write_items(TransactItems=actions)
        except ClientError as exc:
            LOGGER.error("DynamoDB transact_write_items failed: %s", exc)
            if _error_code(exc) == "TransactionCanceledException":
                reasons = exc.response.get("CancellationReasons") or []
                if any(r.get("Code") == "ConditionalCheckFailed" for r in reasons):
                    raise ConditionFailedError("Condition not satisfied") from exc
            raise StoreError("Record store unavailable") from exc
        except BotoCoreError as exc:
            LOGGER.error("DynamoDB transact_write_items failed: %s", exc)
            raise StoreError("Record store unavailable") from exc

    def delete(
        self,
        pk: str,
        sk: str = METADATA_SK,
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> None:
        self._call("delete_item", Key=_key(pk, sk), **_condition(False, expected))

    def query(self, pk: str) -> list[Item]:
        items: list[Item] = []
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": f"{PK_ATTR} = :pk",
            "ExpressionAttributeValues": {":pk": {"S": pk}},
            "ConsistentRead": True,
        }
        while True:
            response = self._call("query", **kwargs)
            items.extend(_deserialize_item(wire) for wire in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def ensure_table(self) -> bool:
        """Create the table with TTL enabled if it does not exist yet.

        Returns True when the table was created.
        """
        try:
            self._client.describe_table(TableName=self.table_name)
            return False
        except ClientError as exc:
            if _error_code(exc) != "ResourceNotFoundException":
                LOGGER.error("DynamoDB describe_table failed: %s", exc)
                raise StoreError("Record store unavailable") from exc
        except BotoCoreError as exc:
            LOGGER.error("DynamoDB describe_table failed: %s", exc)
            raise StoreError("Record store unavailable") from exc
        LOGGER.info("Creating DynamoDB table %s", self.table_name)
        self._call(
            "create_table",
            AttributeDefinitions=[
                {"AttributeName": PK_ATTR, "AttributeType": "S"},
                {"AttributeName": SK_ATTR, "AttributeType": "S"},
            ],
            KeySchema=[
                {"AttributeName": PK_ATTR, "KeyType": "HASH"},
                {"AttributeName": SK_ATTR, "KeyType": "RANGE"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        self._client.get_waiter("table_exists").wait(TableName=self.table_name)
        self._call(
            "update_time_to_live",
            TimeToLiveSpecification={"Enabled": True, "AttributeName": TTL_ATTR},
        )
        return True
