"""Tests for OTP issuance and single-use verification."""

import pytest

from phoneauth.errors import OtpFailure, OtpVerificationError
from phoneauth.services.otp import OtpManager, OtpRecord
from phoneauth.store.base import otp_key

PHONE = "+15551234567"


def _wrong(code: str) -> str:
    return "".join(str((int(digit) + 1) % 10) for digit in code)


def _failure(otp_manager, phone, candidate) -> OtpFailure:
    with pytest.raises(OtpVerificationError) as exc_info:
        otp_manager.verify(phone, candidate)
    return exc_info.value.failure


class TestIssue:
    def test_code_is_numeric_of_configured_length(self, otp_manager):
        code = otp_manager.issue(PHONE)

        assert len(code) == 6
        assert code.isdigit()

    def test_plaintext_is_not_stored(self, otp_manager, store):
        code = otp_manager.issue(PHONE)

        item = store.get(otp_key(PHONE))
        assert code not in item.attributes.values()
        assert item.attributes["otp_hash"].startswith("$argon2")
        assert item.attributes["attempts"] == 0

    def test_record_ttl_matches_expiry(self, otp_manager, store, clock):
        otp_manager.issue(PHONE)

        record = OtpRecord.from_item(store.get(otp_key(PHONE)))
        assert (record.expires_at - clock()).total_seconds() == 600
        assert store.get(otp_key(PHONE)).ttl == int(record.expires_at.timestamp())

    def test_codes_vary(self, otp_manager):
        codes = {otp_manager.issue(PHONE) for _ in range(5)}
        assert len(codes) > 1


class TestVerify:
    def test_correct_code_succeeds_exactly_once(self, otp_manager, store):
        code = otp_manager.issue(PHONE)

        otp_manager.verify(PHONE, code)

        assert store.get(otp_key(PHONE)) is None
        assert _failure(otp_manager, PHONE, code) is OtpFailure.NOT_FOUND

    def test_unknown_phone_is_not_found(self, otp_manager):
        assert _failure(otp_manager, "+15550000000", "123456") is OtpFailure.NOT_FOUND

    def test_new_code_invalidates_previous(self, otp_manager, monkeypatch):
        codes = iter(["111111", "222222"])
        monkeypatch.setattr(otp_manager, "_generate_code", lambda: next(codes))
        first = otp_manager.issue(PHONE)
        second = otp_manager.issue(PHONE)

        assert _failure(otp_manager, PHONE, first) is OtpFailure.MISMATCH
        otp_manager.verify(PHONE, second)

    def test_mismatch_increments_attempts(self, otp_manager, store):
        code = otp_manager.issue(PHONE)

        assert _failure(otp_manager, PHONE, _wrong(code)) is OtpFailure.MISMATCH

        assert store.get(otp_key(PHONE)).attributes["attempts"] == 1

    def test_max_attempts_deletes_record(self, otp_manager, store):
        code = otp_manager.issue(PHONE)

        for _ in range(5):
            assert _failure(otp_manager, PHONE, _wrong(code)) is OtpFailure.MISMATCH

        assert store.get(otp_key(PHONE)) is None
        assert _failure(otp_manager, PHONE, code) is OtpFailure.NOT_FOUND

    def test_record_at_attempt_limit_is_rejected_and_deleted(self, otp_manager, store):
        code = otp_manager.issue(PHONE)
        item = store.get(otp_key(PHONE))
        item.attributes["attempts"] = 5
        store.put(item)

        assert _failure(otp_manager, PHONE, code) is OtpFailure.ATTEMPTS_EXCEEDED
        assert store.get(otp_key(PHONE)) is None

    def test_expired_code_is_rejected_and_deleted(self, otp_manager, store, clock):
        code = otp_manager.issue(PHONE)
        clock.advance(601)

        assert _failure(otp_manager, PHONE, code) is OtpFailure.EXPIRED
        assert store.get(otp_key(PHONE)) is None

    def test_consume_fails_when_record_changed_after_read(self, store, otp_hasher, clock):
        class RacingStore:
            """Lets another request bump the attempt counter between read and delete."""

            def __init__(self, inner):
                self.inner = inner

            def __getattr__(self, name):
                return getattr(self.inner, name)

            def delete(self, pk, sk="METADATA", *, expected=None):
                if expected is not None:
                    item = self.inner.get(pk)
                    item.attributes["attempts"] += 1
                    self.inner.put(item)
                return self.inner.delete(pk, sk, expected=expected)

        manager = OtpManager(
            RacingStore(store),
            code_length=6,
            ttl_seconds=600,
            max_attempts=5,
            hasher=otp_hasher,
            clock=clock,
        )
        code = manager.issue(PHONE)

        assert _failure(manager, PHONE, code) is OtpFailure.NOT_FOUND
        assert store.get(otp_key(PHONE)) is not None
