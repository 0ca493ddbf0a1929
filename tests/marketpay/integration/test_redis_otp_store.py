from datetime import UTC, datetime, timedelta

import fakeredis
import pytest

from marketpay.withdrawal.otp import OTPOutcome, OTPRecord
from marketpay.withdrawal.otp_store import RedisOTPStore


@pytest.fixture()
def client():
    return fakeredis.FakeRedis()


@pytest.fixture()
def store(client):
    return RedisOTPStore(client)


@pytest.fixture()
def record():
    return OTPRecord.issue("user-001", 750, expiry_minutes=10)


def test_record_is_stored_under_prefixed_key_with_ttl(client, store, record):
    store.save(record, ttl_seconds=600)

    key = f"withdrawal_otp:{record.otp_id}"
    assert client.exists(key)
    assert 0 < client.ttl(key) <= 600
    assert store.get(record.otp_id) == record


def test_valid_code_is_consumed(store, record):
    store.save(record, ttl_seconds=600)

    first = store.validate(record.otp_id, record.code, max_attempts=3)
    second = store.validate(record.otp_id, record.code, max_attempts=3)

    assert first.outcome == OTPOutcome.VALID
    assert first.record == record
    assert second.outcome == OTPOutcome.INVALID
    assert store.get(record.otp_id) is None


def test_check_without_consuming(store, record):
    store.save(record, ttl_seconds=600)

    assert store.validate(record.otp_id, record.code, max_attempts=3, consume=False).is_valid
    assert store.get(record.otp_id) is not None


def test_wrong_guesses_are_counted_then_lock_out(store, record):
    store.save(record, ttl_seconds=600)
    wrong = "000000" if record.code != "000000" else "999999"

    first = store.validate(record.otp_id, wrong, max_attempts=3)
    assert first.message == "Invalid OTP code. 2 attempt(s) remaining"
    assert store.get(record.otp_id).attempts == 1

    store.validate(record.otp_id, wrong, max_attempts=3)
    locked = store.validate(record.otp_id, wrong, max_attempts=3)

    assert locked.outcome == OTPOutcome.MAX_ATTEMPTS_EXCEEDED
    assert store.get(record.otp_id) is None


def test_expired_record_is_removed(client):
    issued_at = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    record = OTPRecord.issue("user-001", 750, expiry_minutes=10, now=issued_at)
    store = RedisOTPStore(client, clock=lambda: issued_at + timedelta(minutes=11))
    store.save(record, ttl_seconds=600)

    check = store.validate(record.otp_id, record.code, max_attempts=3)

    assert check.outcome == OTPOutcome.EXPIRED
    assert store.get(record.otp_id) is None
