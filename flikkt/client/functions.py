"""
Functions Client - Invokes the backend's named functions over HTTP.

Every call returns a FunctionResponse; HTTP and transport failures land in
FunctionResponse.error instead of being raised, so callers can surface them
as a short title plus an actionable message.
"""

from dataclasses import dataclass
from typing import Any

import httpx
from structlog import get_logger

from flikkt.client.rate_limiter import RateLimiter
from flikkt.exceptions import RateLimitExceededError

logger = get_logger(__name__)

RATE_LIMIT_TITLE = "Rate limit exceeded"


@dataclass(frozen=True)
class FunctionError:
    """Error half of a FunctionResponse. status_code is None when no request was sent."""

    status_code: int | None
    message: str
    title: str = "Request failed"
    payload: Any = None

    @property
    def rate_limited(self) -> bool:
        """True for a server-side 429 or a local rate-limiter denial."""
        return self.status_code == 429 or self.title == RATE_LIMIT_TITLE


@dataclass(frozen=True)
class FunctionResponse:
    data: Any
    error: FunctionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error", "details"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


class FunctionsClient:
    """Async HTTP client for the function routes, gated by a RateLimiter."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        rate_limiter: RateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.rate_limiter = rate_limiter or RateLimiter()
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    def set_access_token(self, access_token: str | None) -> None:
        self.access_token = access_token

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def invoke(self, function_name: str, body: dict[str, Any] | None = None) -> FunctionResponse:
        """POST to a function route if the rate limiter allows it."""
        if not self.rate_limiter.can_execute(function_name):
            denial = RateLimitExceededError(
                function_name, self.rate_limiter.get_reset_time(function_name)
            )
            return FunctionResponse(
                data=None,
                error=FunctionError(status_code=None, message=str(denial), title=RATE_LIMIT_TITLE),
            )

        logger.info("function_invoked", function_name=function_name)
        response = await self._request("POST", f"/{function_name}", json=body or {})
        if response.ok:
            logger.info(
                "function_completed",
                function_name=function_name,
                remaining_calls=self.rate_limiter.get_remaining_calls(function_name),
            )
        return response

    async def fetch_subscription(self) -> FunctionResponse:
        """Read the locally stored subscriber row; not rate limited."""
        return await self._request("GET", "/subscription")

    async def _request(self, method: str, path: str, **kwargs: Any) -> FunctionResponse:
        try:
            response = await self._client.request(
                method, f"{self.base_url}{path}", headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as exc:
            logger.error("function_transport_failed", path=path, error=str(exc))
            return FunctionResponse(
                data=None, error=FunctionError(status_code=None, message=str(exc))
            )

        try:
            payload = response.json()
        except ValueError:
            payload = response.text or None

        if response.is_error:
            logger.warning("function_failed", path=path, status_code=response.status_code)
            return FunctionResponse(
                data=None,
                error=FunctionError(
                    status_code=response.status_code,
                    message=_error_message(payload, response.reason_phrase),
                    payload=payload,
                ),
            )

        return FunctionResponse(data=payload)

    async def close(self) -> None:
        await self._client.aclose()
