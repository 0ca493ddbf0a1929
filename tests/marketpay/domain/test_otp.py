"""Tests for OTP issue and the guess evaluation rules."""

import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

from marketpay.withdrawal.otp import OTPOutcome, OTPRecord, OTPStore, evaluate
from marketpay.withdrawal.otp_store import InMemoryOTPStore

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


def _record(code="123456", attempts=0, minutes=10):
    record = OTPRecord.issue("user-001", 1000, expiry_minutes=minutes, now=NOW)
    return OTPRecord(
        otp_id=record.otp_id,
        user_id=record.user_id,
        amount=record.amount,
        code=code,
        created_at=record.created_at,
        expires_at=record.expires_at,
        attempts=attempts,
    )


class FrozenClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class TestOTPRecord:
    def test_issue_makes_six_digit_code(self):
        record = OTPRecord.issue("user-001", 250.5, expiry_minutes=10, now=NOW)
        assert len(record.code) == 6
        assert record.code.isdigit()
        assert record.expires_at == NOW + timedelta(minutes=10)
        assert record.attempts == 0

    def test_json_round_trip_keeps_timestamps(self):
        record = _record()
        assert OTPRecord.from_json(record.to_json()) == record

    def test_store_key_prefix(self):
        assert OTPStore.key("abc") == "withdrawal_otp:abc"


class TestEvaluate:
    def test_missing_record_is_invalid(self):
        decision = evaluate(None, "123456", 3, NOW)
        assert decision.check.outcome == OTPOutcome.INVALID
        assert decision.check.message == "OTP expired or invalid"

    def test_correct_code_is_valid_and_consumed(self):
        decision = evaluate(_record(), "123456", 3, NOW)
        assert decision.check.is_valid
        assert decision.delete is True

    def test_correct_code_without_consume_keeps_record(self):
        decision = evaluate(_record(), "123456", 3, NOW, consume=False)
        assert decision.check.is_valid
        assert decision.delete is False
        assert decision.updated is None

    def test_wrong_code_counts_attempt(self):
        decision = evaluate(_record(), "000000", 3, NOW)
        assert decision.check.outcome == OTPOutcome.INVALID
        assert decision.check.message == "Invalid OTP code. 2 attempt(s) remaining"
        assert decision.updated.attempts == 1

    def test_last_wrong_guess_locks_out(self):
        decision = evaluate(_record(attempts=2), "000000", 3, NOW)
        assert decision.check.outcome == OTPOutcome.MAX_ATTEMPTS_EXCEEDED
        assert decision.delete is True

    def test_locked_record_rejects_correct_code(self):
        decision = evaluate(_record(attempts=3), "123456", 3, NOW)
        assert decision.check.outcome == OTPOutcome.MAX_ATTEMPTS_EXCEEDED

    def test_expired_record_rejects_correct_code(self):
        decision = evaluate(_record(), "123456", 3, NOW + timedelta(minutes=10))
        assert decision.check.outcome == OTPOutcome.EXPIRED
        assert decision.check.message == "OTP expired"
        assert decision.delete is True


class TestInMemoryOTPStore:
    def test_code_is_single_use(self):
        store = InMemoryOTPStore(clock=FrozenClock(NOW))
        record = _record()
        store.save(record, ttl_seconds=600)

        assert store.validate(record.otp_id, "123456", 3).is_valid
        second = store.validate(record.otp_id, "123456", 3)
        assert second.outcome == OTPOutcome.INVALID

    def test_lockout_after_max_attempts(self):
        store = InMemoryOTPStore(clock=FrozenClock(NOW))
        record = _record()
        store.save(record, ttl_seconds=600)

        outcomes = [store.validate(record.otp_id, "999999", 3).outcome for _ in range(3)]
        assert outcomes == [OTPOutcome.INVALID, OTPOutcome.INVALID, OTPOutcome.MAX_ATTEMPTS_EXCEEDED]
        assert not store.validate(record.otp_id, "123456", 3).is_valid

    def test_expiry_with_advancing_clock(self):
        clock = FrozenClock(NOW)
        store = InMemoryOTPStore(clock=clock)
        record = _record()
        store.save(record, ttl_seconds=3600)

        clock.advance(minutes=11)
        check = store.validate(record.otp_id, "123456", 3)
        assert check.outcome == OTPOutcome.EXPIRED
        assert store.get(record.otp_id) is None

    def test_ttl_evicts_record(self):
        clock = FrozenClock(NOW)
        store = InMemoryOTPStore(clock=clock)
        record = _record()
        store.save(record, ttl_seconds=60)

        clock.advance(seconds=61)
        assert store.get(record.otp_id) is None

    def test_non_consuming_check_keeps_code_usable(self):
        store = InMemoryOTPStore(clock=FrozenClock(NOW))
        record = _record()
        store.save(record, ttl_seconds=600)

        assert store.validate(record.otp_id, "123456", 3, consume=False).is_valid
        assert store.validate(record.otp_id, "123456", 3).is_valid

    def test_concurrent_wrong_guesses_lock_out_once(self):
        store = InMemoryOTPStore(clock=FrozenClock(NOW))
        record = _record()
        store.save(record, ttl_seconds=600)
        start = threading.Barrier(20)

        def guess(_):
            start.wait()
            return store.validate(record.otp_id, "999999", 3).outcome

        with ThreadPoolExecutor(max_workers=20) as pool:
            outcomes = Counter(pool.map(guess, range(20)))

        assert outcomes[OTPOutcome.MAX_ATTEMPTS_EXCEEDED] == 1
        assert outcomes[OTPOutcome.INVALID] == 19
        assert store.get(record.otp_id) is None
