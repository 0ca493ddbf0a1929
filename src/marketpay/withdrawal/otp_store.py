"""OTP store implementations and the store registry.

``InMemoryOTPStore`` serves tests and single-process development. In
production ``OTP_STORE=redis`` selects ``RedisOTPStore``, which uses a
WATCH/MULTI transaction so guesses from several API workers against one
record are applied one at a time.
"""

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import redis
import structlog

from marketpay.config import otp_store_backend, redis_url
from marketpay.withdrawal.otp import OTPCheck, OTPRecord, OTPStore, evaluate

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryOTPStore(OTPStore):
    """Dictionary-backed store; entries vanish once their TTL passes."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[OTPRecord, datetime]] = {}

    def save(self, record: OTPRecord, ttl_seconds: int) -> None:
        with self._lock:
            self._put(record, ttl_seconds)

    def _put(self, record: OTPRecord, ttl_seconds: int) -> None:
        self._entries[self.key(record.otp_id)] = (record, self._clock() + timedelta(seconds=ttl_seconds))

    def _live(self, key: str) -> OTPRecord | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        record, evict_at = entry
        if self._clock() >= evict_at:
            del self._entries[key]
            return None
        return record

    def get(self, otp_id: str) -> OTPRecord | None:
        with self._lock:
            return self._live(self.key(otp_id))

    def delete(self, otp_id: str) -> None:
        with self._lock:
            self._entries.pop(self.key(otp_id), None)

    def validate(self, otp_id: str, code: str, max_attempts: int, consume: bool = True) -> OTPCheck:
        key = self.key(otp_id)
        with self._lock:
            now = self._clock()
            decision = evaluate(self._live(key), code, max_attempts, now, consume=consume)
            if decision.delete:
                self._entries.pop(key, None)
            elif decision.updated is not None:
                self._put(decision.updated, decision.updated.seconds_left(now))
            return decision.check

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisOTPStore(OTPStore):
    """Redis-backed store with per-key optimistic transactions."""

    def __init__(self, client: redis.Redis, clock: Callable[[], datetime] = _utcnow) -> None:
        self._redis = client
        self._clock = clock

    @classmethod
    def from_url(cls, url: str) -> "RedisOTPStore":
        return cls(redis.Redis.from_url(url))

    def save(self, record: OTPRecord, ttl_seconds: int) -> None:
        self._redis.set(self.key(record.otp_id), record.to_json(), ex=ttl_seconds)

    def get(self, otp_id: str) -> OTPRecord | None:
        raw = self._redis.get(self.key(otp_id))
        return OTPRecord.from_json(raw) if raw else None

    def delete(self, otp_id: str) -> None:
        self._redis.delete(self.key(otp_id))

    def validate(self, otp_id: str, code: str, max_attempts: int, consume: bool = True) -> OTPCheck:
        key = self.key(otp_id)
        with self._redis.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key)
                    raw = pipe.get(key)
                    now = self._clock()
                    decision = evaluate(
                        OTPRecord.from_json(raw) if raw else None,
                        code,
                        max_attempts,
                        now,
                        consume=consume,
                    )
                    if not decision.delete and decision.updated is None:
                        pipe.unwatch()
                        return decision.check

                    pipe.multi()
                    if decision.delete:
                        pipe.delete(key)
                    else:
                        pipe.set(key, decision.updated.to_json(), ex=decision.updated.seconds_left(now))
                    pipe.execute()
                    return decision.check
                except redis.WatchError:
                    logger.debug("OTP record changed during validation, retrying", otp_id=otp_id)


_store: OTPStore | None = None


def get_otp_store() -> OTPStore:
    """Return the configured OTP store (singleton)."""
    global _store
    if _store is None:
        if otp_store_backend() == "redis":
            _store = RedisOTPStore.from_url(redis_url())
        else:
            _store = InMemoryOTPStore()
    return _store


def set_otp_store(store: OTPStore) -> None:
    global _store
    _store = store


def reset_otp_store() -> None:
    global _store
    _store = None
