"""
Authenticated request primitive for the upstream bookings API
Retry/backoff is not done here; callers decide how to degrade
"""
import logging
from typing import Any, Optional

import httpx

from ..config import API_TIMEOUT_SECONDS, BOOKINGS_API_URL
from ..errors import AuthError, TransportError, ValidationError

logger = logging.getLogger(__name__)


class ApiClient:
    """Thin async wrapper around httpx with bearer auth and error mapping"""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = BOOKINGS_API_URL,
        timeout: float = API_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._token = token
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy create the shared AsyncClient"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """
        Send a request and return the decoded body.

        Raises:
            AuthError: on 401/403 or when no token is set
            ValidationError: on 400/422
            TransportError: on any other failure, including timeouts
        """
        if not self._token:
            raise AuthError("Not authenticated")

        url = endpoint.lstrip("/")
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = await self._get_client().request(
                method.upper(), url, params=params, json=json, headers=self._headers()
            )
        except httpx.TimeoutException as e:
            logger.warning(f"⏰ {method.upper()} {url} timed out after {self.timeout}s")
            raise TransportError(f"Request timeout after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ {method.upper()} {url} failed: {e}")
            raise TransportError(f"Request failed: {e}") from e

        body = self._decode(response)

        if response.status_code in (401, 403):
            logger.warning(f"🔒 {method.upper()} {url} rejected: HTTP {response.status_code}")
            raise AuthError(_message_from(body) or "Authentication failed")
        if response.status_code in (400, 422):
            errors = body.get("errors") if isinstance(body, dict) else None
            raise ValidationError(
                _message_from(body) or "Request payload rejected", errors=errors or []
            )
        if response.is_error:
            logger.error(f"❌ {method.upper()} {url} failed: HTTP {response.status_code}")
            raise TransportError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        return body

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            return response.json()
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, json: Any = None) -> Any:
        return await self.request("POST", endpoint, json=json)

    async def put(self, endpoint: str, json: Any = None) -> Any:
        return await self.request("PUT", endpoint, json=json)

    async def delete(self, endpoint: str) -> Any:
        return await self.request("DELETE", endpoint)


def _message_from(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if isinstance(message, str):
            return message
    return None


def unwrap(body: Any) -> Any:
    """Strip the backend envelope {success, message, data} if present"""
    if isinstance(body, dict) and "data" in body and ("success" in body or "message" in body):
        return body["data"]
    return body
