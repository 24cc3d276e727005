import json
import logging

from phoneauth.config import Settings
from phoneauth.logging_config import JSONFormatter, RequestIdFilter, request_id_var
from phoneauth.store.factory import build_store
from phoneauth.store.sql import SqlRecordStore


def _record(message="hello", **extra):
    record = logging.LogRecord("phoneauth.test", logging.INFO, __file__, 10, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extras():
    payload = json.loads(JSONFormatter().format(_record(status_code=200)))

    assert payload["message"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "phoneauth.test"
    assert payload["service"] == "phoneauth"
    assert payload["status_code"] == 200


def test_request_id_filter_reads_context():
    token = request_id_var.set("req-42")
    try:
        record = _record()
        RequestIdFilter().filter(record)
    finally:
        request_id_var.reset(token)

    assert record.request_id == "req-42"


def test_request_id_filter_defaults_outside_request():
    record = _record()

    RequestIdFilter().filter(record)

    assert record.request_id == "-"


def test_build_store_selects_sql_backend():
    settings = Settings(jwt_secret="x" * 32, store_backend="sql", database_url="sqlite://")

    store = build_store(settings)

    assert isinstance(store, SqlRecordStore)
    store.close()
