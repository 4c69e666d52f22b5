"""HTTP client for the backend's edge functions gateway."""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx

from bodyscan_api.core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EdgeFunctionResponse:
    """Outcome of one function invocation: either ``data`` or ``error``."""

    data: Any = None
    error: dict[str, Any] | None = None

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return str(self.error.get("message") or "Unknown error")


class EdgeFunctionClient:
    """Client for invoking functions under ``/functions/v1/<name>``."""

    FUNCTIONS_PATH = "/functions/v1"

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 60.0) -> None:
        """
        Initialize the edge functions client.

        Args:
            base_url: Gateway base URL (e.g., "http://localhost:54321")
            api_key: Key sent as bearer token and ``apikey`` header
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {}
            if self.api_key:
                headers = {
                    "Authorization": f"Bearer {self.api_key}",
                    "apikey": self.api_key,
                }
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def invoke(
        self,
        name: str,
        body: dict[str, Any] | None = None,
        *,
        content: bytes | None = None,
        method: str = "POST",
        params: dict[str, Any] | None = None,
    ) -> EdgeFunctionResponse:
        """
        Invoke an edge function.

        Service-level failures are returned in ``error`` rather than raised.

        Args:
            name: Function name (e.g., "scan-estimate")
            body: JSON body to send
            content: Pre-serialized JSON bytes, sent verbatim instead of ``body``
            method: HTTP method
            params: Query string parameters

        Returns:
            EdgeFunctionResponse with parsed JSON data or an error dict
        """
        client = await self._get_client()
        path = f"{self.FUNCTIONS_PATH}/{name}"

        request_kwargs: dict[str, Any] = {"params": params}
        if content is not None:
            request_kwargs["content"] = content
            request_kwargs["headers"] = {"Content-Type": "application/json"}
        elif body is not None:
            request_kwargs["json"] = body

        logger.debug(f"Invoking edge function {name} ({method})")

        try:
            response = await client.request(method, path, **request_kwargs)
        except httpx.RequestError as e:
            logger.warning(f"Edge function {name} transport error: {e}")
            return EdgeFunctionResponse(error={"message": str(e), "status": None})

        if response.is_error:
            message = self._error_message(response)
            logger.warning(f"Edge function {name} returned {response.status_code}: {message}")
            return EdgeFunctionResponse(
                error={"message": message, "status": response.status_code}
            )

        if not response.content or not response.content.strip():
            return EdgeFunctionResponse()

        try:
            data = response.json()
        except ValueError as e:
            return EdgeFunctionResponse(
                error={
                    "message": f"Invalid JSON response from {name}: {e}",
                    "status": response.status_code,
                }
            )

        return EdgeFunctionResponse(data=data)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract an error message from a failed response."""
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            for key in ("error", "message", "msg"):
                value = payload.get(key)
                if isinstance(value, dict) and value.get("message"):
                    return str(value["message"])
                if value:
                    return str(value)

        return response.reason_phrase or f"HTTP {response.status_code}"


@lru_cache
def get_edge_function_client() -> EdgeFunctionClient:
    """
    Get a cached edge functions client instance.

    Returns:
        EdgeFunctionClient configured from settings
    """
    settings = get_settings()
    return EdgeFunctionClient(
        base_url=settings.edge_functions_url,
        api_key=settings.edge_functions_api_key,
        timeout=settings.edge_function_timeout,
    )
