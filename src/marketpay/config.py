"""Typed accessors for the business settings in ``domain.toml`` ``[custom]``.

Protean exposes each ``[custom]`` key as an attribute on the domain object.
Values substituted from the environment arrive as strings, so every accessor
casts explicitly.
"""

from marketpay.domain import marketpay


def _setting(name: str, default):
    return getattr(marketpay, name, default)


def default_currency() -> str:
    return str(_setting("DEFAULT_CURRENCY", "NGN")).upper()


def commission_rate() -> float:
    """Fraction of an order payment withheld by the platform."""
    return float(_setting("COMMISSION_RATE", 0.20))


def withdrawal_fee() -> float:
    """Flat fee debited alongside every completed withdrawal."""
    return float(_setting("WITHDRAWAL_FEE", 0.0))


def otp_expiry_minutes() -> int:
    return int(_setting("OTP_EXPIRY_MINUTES", 10))


def otp_max_attempts() -> int:
    return int(_setting("OTP_MAX_ATTEMPTS", 3))


def otp_store_backend() -> str:
    return str(_setting("OTP_STORE", "memory")).lower()


def redis_url() -> str:
    return str(_setting("REDIS_URL", "redis://localhost:6379/1"))


def gateway_timeout() -> float:
    """Seconds allowed for any single outbound gateway call."""
    return float(_setting("GATEWAY_TIMEOUT_SECONDS", 10))


def gateway_setting(name: str) -> str:
    value = _setting(name, None)
    if value is None:
        raise KeyError(f"Gateway setting {name} is not configured")
    return str(value)
