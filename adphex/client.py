"""HTTP client for the Adphex API.

Wraps the three endpoints the chat engine talks to:

- ``POST /api/chat``: streamed NDJSON events (see ``adphex.streaming``)
- ``GET /api/accounts``: known accounts for the account selection flow
- ``POST /api/assign-account``: move documents' transactions to an account

Every failure is raised as an ``AdphexError`` subclass carrying the
server's ``error`` message when it sent one.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, Field

from adphex.chat.models import Account, AssignmentResult
from adphex.exceptions import (
    AccountsError,
    AssignmentError,
    ConfigurationError,
    TransportError,
    ValidationError,
)
from adphex.settings import get_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator, Sequence

    from adphex.chat.models import Message, NewAccount

logger = logging.getLogger(__name__)

_CONNECT_TIMEOUT = 10.0


class AdphexClientConfig(BaseModel):
    """Configuration for the Adphex client."""

    base_url: str = Field(..., description="Adphex web app base URL")
    token: str = Field(default="", description="Bearer token (empty = anonymous)")
    user_id: str = Field(default="default-user", description="User ID for chat requests")
    timeout: float = Field(default=30.0, description="Timeout for JSON endpoints in seconds")
    stream_timeout: float = Field(
        default=300.0, description="Read timeout for the chat stream in seconds"
    )


def _error_detail(response: httpx.Response, default: str) -> str:
    """Extract the ``error`` field from a JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


class AdphexClient:
    """Async client for the Adphex API.

    Usage::

        async with AdphexClient() as client:
            async with client.stream_chat(messages) as chunks:
                async for event in decode_stream(chunks):
                    ...
    """

    def __init__(
        self,
        config: AdphexClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Optional configuration (uses settings if not provided)
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``
        """
        self.config = config or self._config_from_settings()
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @staticmethod
    def _config_from_settings() -> AdphexClientConfig:
        settings = get_settings()
        if not settings.api_base_url.strip():
            raise ConfigurationError("ADPHEX_URL (api_base_url) is not set")
        return AdphexClientConfig(
            base_url=settings.api_base_url,
            token=settings.api_token.get_secret_value(),
            user_id=settings.user_id,
            timeout=settings.request_timeout,
            stream_timeout=settings.stream_timeout,
        )

    async def __aenter__(self) -> AdphexClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the shared httpx.AsyncClient."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.timeout,
                headers=self._headers(),
                transport=self._transport,
            )
        return self._http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    async def close(self) -> None:
        """Close the shared HTTP client and release connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # -------------------------------------------------------------------------
    # Chat stream
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def stream_chat(
        self,
        messages: Sequence[Message],
        user_id: str | None = None,
    ) -> AsyncGenerator[AsyncIterator[bytes], None]:
        """Open the chat stream for a conversation.

        The status is checked before anything is yielded, so a non-2xx
        response raises ``TransportError`` without a stream ever opening.

        Args:
            messages: Conversation history including the new user message.
            user_id: Overrides the configured user ID.

        Yields:
            The response body as an async iterator of byte chunks.

        Raises:
            TransportError: On connection failure, timeout, or non-2xx status.
        """
        client = self._get_http_client()
        payload = {
            "messages": [message.to_wire() for message in messages],
            "userId": user_id or self.config.user_id,
        }
        request = client.build_request(
            "POST",
            "/api/chat",
            json=payload,
            timeout=httpx.Timeout(self.config.stream_timeout, connect=_CONNECT_TIMEOUT),
        )

        try:
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out connecting to {request.url}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Connection failed: {type(e).__name__}") from e

        try:
            if not response.is_success:
                await response.aread()
                detail = _error_detail(response, "Failed to get response")
                logger.warning("Chat request failed: HTTP %s: %s", response.status_code, detail)
                raise TransportError(detail, status_code=response.status_code)
            yield self._iter_body(response)
        finally:
            await response.aclose()

    async def _iter_body(self, response: httpx.Response) -> AsyncGenerator[bytes, None]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Response stalled for more than {self.config.stream_timeout:g}s"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Connection lost: {type(e).__name__}") from e

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def list_accounts(self) -> list[Account]:
        """Fetch the user's accounts.

        Raises:
            AccountsError: On connection failure or non-2xx status.
        """
        body = await self._request_json("GET", "/api/accounts", error_cls=AccountsError)
        raw_accounts: Any = body.get("accounts") if isinstance(body, dict) else None
        if not isinstance(raw_accounts, list):
            raise AccountsError("Malformed accounts response")
        return [Account.model_validate(account) for account in raw_accounts]

    async def assign_account(
        self,
        document_ids: Sequence[str],
        *,
        account_id: str | None = None,
        new_account: NewAccount | None = None,
    ) -> AssignmentResult:
        """Assign documents (and their transactions) to an account.

        Exactly one of ``account_id`` and ``new_account`` must be given.

        Raises:
            ValidationError: Invalid arguments (no request is made).
            AssignmentError: On connection failure or non-2xx status.
        """
        if not document_ids:
            raise ValidationError("document_ids must not be empty")
        if (account_id is None) == (new_account is None):
            raise ValidationError("Provide exactly one of account_id or new_account")

        payload: dict[str, Any] = {"document_ids": list(document_ids)}
        if account_id is not None:
            payload["account_id"] = account_id
        if new_account is not None:
            payload["new_account"] = new_account.model_dump(exclude_none=True)

        body = await self._request_json(
            "POST", "/api/assign-account", json=payload, error_cls=AssignmentError
        )
        return AssignmentResult.model_validate(body)

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[AccountsError] | type[AssignmentError],
        json: dict[str, Any] | None = None,
    ) -> Any:
        client = self._get_http_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise error_cls(f"Timeout after {self.config.timeout:g}s") from e
        except httpx.HTTPError as e:
            raise error_cls(f"Connection failed: {type(e).__name__}") from e

        if not response.is_success:
            detail = _error_detail(response, f"HTTP {response.status_code}")
            logger.warning("%s %s failed: HTTP %s: %s", method, path, response.status_code, detail)
            if error_cls is AssignmentError:
                raise AssignmentError(detail, status_code=response.status_code)
            raise error_cls(detail)

        try:
            return response.json()
        except ValueError as e:
            raise error_cls(f"Invalid JSON response: {e}") from e
