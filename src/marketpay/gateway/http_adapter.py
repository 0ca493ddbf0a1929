"""Shared plumbing for gateways reached over HTTP.

Each call runs through one ``httpx.Client`` configured with an explicit
timeout. Transport failures, timeouts, non-2xx answers and unparseable
bodies all come back as an error string so adapters can turn them into
failure results instead of raising into the orchestrator.
"""

import hashlib
import hmac
from typing import Any

import httpx
import structlog

from marketpay.config import gateway_timeout
from marketpay.gateway.port import PaymentGateway

logger = structlog.get_logger(__name__)


def hmac_hexdigest(secret: str, payload: bytes, digestmod=hashlib.sha512) -> str:
    return hmac.new(secret.encode("utf-8"), payload, digestmod).hexdigest()


def signatures_match(expected: str, received: str | None) -> bool:
    if not received:
        return False
    return hmac.compare_digest(expected, received.strip())


def to_minor_units(amount: float) -> int:
    return int(round(float(amount) * 100))


def from_minor_units(amount: Any) -> float | None:
    if amount is None:
        return None
    return round(float(amount) / 100, 2)


class HttpGateway(PaymentGateway):
    """Base class for adapters that talk JSON (or forms) over HTTPS."""

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else gateway_timeout()
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers or {},
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> tuple[dict[str, Any], str | None]:
        """Perform a call; returns ``(body, error)`` with ``error`` None on success."""
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("Gateway call timed out", gateway=self.name, path=path, timeout=self.timeout)
            return {}, f"{self.name} did not respond within {self.timeout:g}s"
        except httpx.HTTPStatusError as exc:
            body = self._safe_json(exc.response)
            message = body.get("message") or body.get("error") or exc.response.reason_phrase
            if isinstance(message, dict):
                message = message.get("message", str(message))
            logger.warning(
                "Gateway call rejected",
                gateway=self.name,
                path=path,
                status_code=exc.response.status_code,
            )
            return body, f"{self.name} rejected the request ({exc.response.status_code}): {message}"
        except httpx.HTTPError as exc:
            logger.warning("Gateway unreachable", gateway=self.name, path=path, error=str(exc))
            return {}, f"{self.name} is unreachable: {exc}"

        try:
            body = response.json()
        except ValueError:
            return {}, f"{self.name} returned a malformed response"
        if not isinstance(body, dict):
            return {}, f"{self.name} returned a malformed response"
        return body, None

    @staticmethod
    def _safe_json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
