"""One-time passcodes that guard withdrawals.

A code is six random digits, lives for ``OTP_EXPIRY_MINUTES`` and allows
``OTP_MAX_ATTEMPTS`` wrong guesses. Records are kept in an ``OTPStore``
under ``withdrawal_otp:<otp_id>``. Each store applies ``evaluate()``
atomically per record, so concurrent guesses cannot both see the same
attempt count.
"""

import hmac
import json
import secrets
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from uuid import uuid4

KEY_PREFIX = "withdrawal_otp:"
CODE_LENGTH = 6


class OTPOutcome(Enum):
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"
    MAX_ATTEMPTS_EXCEEDED = "max_attempts_exceeded"


@dataclass(frozen=True)
class OTPRecord:
    otp_id: str
    user_id: str
    amount: float
    code: str
    created_at: datetime
    expires_at: datetime
    attempts: int = 0

    @classmethod
    def issue(cls, user_id, amount: float, expiry_minutes: int, now: datetime | None = None) -> "OTPRecord":
        now = now or datetime.now(UTC)
        return cls(
            otp_id=uuid4().hex,
            user_id=str(user_id),
            amount=round(float(amount), 2),
            code=f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}",
            created_at=now,
            expires_at=now + timedelta(minutes=expiry_minutes),
        )

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def seconds_left(self, now: datetime) -> int:
        return max(int((self.expires_at - now).total_seconds()), 1)

    def to_json(self) -> str:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["expires_at"] = self.expires_at.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "OTPRecord":
        data = json.loads(raw)
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        data["expires_at"] = datetime.fromisoformat(data["expires_at"])
        return cls(**data)


@dataclass(frozen=True)
class OTPCheck:
    """Result of checking a code against a stored record."""

    outcome: OTPOutcome
    message: str
    record: OTPRecord | None = None

    @property
    def is_valid(self) -> bool:
        return self.outcome == OTPOutcome.VALID


@dataclass(frozen=True)
class _Decision:
    check: OTPCheck
    delete: bool = False
    updated: OTPRecord | None = None


def evaluate(record: OTPRecord | None, code: str, max_attempts: int, now: datetime, consume: bool = True) -> _Decision:
    """Decide the outcome of one guess and what must happen to the stored record."""
    if record is None:
        return _Decision(OTPCheck(OTPOutcome.INVALID, "OTP expired or invalid"))

    if record.is_expired(now):
        return _Decision(OTPCheck(OTPOutcome.EXPIRED, "OTP expired"), delete=True)

    if record.attempts >= max_attempts:
        return _Decision(OTPCheck(OTPOutcome.MAX_ATTEMPTS_EXCEEDED, "Maximum OTP attempts exceeded"), delete=True)

    if not hmac.compare_digest(record.code, str(code or "")):
        attempts = record.attempts + 1
        if attempts >= max_attempts:
            return _Decision(
                OTPCheck(OTPOutcome.MAX_ATTEMPTS_EXCEEDED, "Maximum OTP attempts exceeded"),
                delete=True,
            )
        remaining = max_attempts - attempts
        return _Decision(
            OTPCheck(OTPOutcome.INVALID, f"Invalid OTP code. {remaining} attempt(s) remaining"),
            updated=replace(record, attempts=attempts),
        )

    return _Decision(OTPCheck(OTPOutcome.VALID, "OTP verified", record=record), delete=consume)


class OTPStore(ABC):
    """Keeps OTP records and applies guesses to them atomically."""

    @staticmethod
    def key(otp_id: str) -> str:
        return f"{KEY_PREFIX}{otp_id}"

    @abstractmethod
    def save(self, record: OTPRecord, ttl_seconds: int) -> None: ...

    @abstractmethod
    def get(self, otp_id: str) -> OTPRecord | None: ...

    @abstractmethod
    def delete(self, otp_id: str) -> None: ...

    @abstractmethod
    def validate(self, otp_id: str, code: str, max_attempts: int, consume: bool = True) -> OTPCheck:
        """Check ``code`` and update the record in one atomic step.

        With ``consume=False`` a correct code leaves the record in place;
        wrong codes still count against the attempt limit.
        """
        ...
