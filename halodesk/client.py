"""
HTTP client for the local HaloDesk router.

The router only ever listens on the loopback interface. ``RouterClient``
keeps one ``httpx.AsyncClient`` for its lifetime and wraps every httpx
failure in ``RouterTransportError`` so callers deal with a single error
taxonomy.
"""

from __future__ import annotations

import contextlib
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import RouterResponseError, RouterTransportError, require_router_port
from .frames import FrameStream
from .models import ModelsResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .frames import Frame
    from .models import ChatRequest

logger = logging.getLogger("halodesk.client")

CHAT_PATH = "/v1/chat"
HEALTH_PATH = "/health"
MODELS_PATH = "/v1/models"
DEFAULT_TIMEOUT_SECONDS = 120.0


def describe_error_body(status: int, body: str) -> tuple[str, str | None]:
    """Turn a failed response body into ``(message, code)``.

    Prefers the JSON ``error`` field (with ``code`` appended when present),
    then the raw text, then a generic message carrying the status.
    """
    text = (body or "").strip()
    try:
        data = json.loads(text) if text else None
    except ValueError:
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        code = data.get("code")
        code = str(code) if code not in (None, "") else None
        if isinstance(error, dict):
            error = error.get("message") or error.get("detail")
        if isinstance(error, str) and error.strip():
            message = error.strip()
            return (f"{message} ({code})" if code else message), code
    if text:
        return text, None
    return f"Request failed (HTTP {status})", None


def _empty_response_message(status: int) -> str:
    return f"Request failed (HTTP {status}): empty response"


def _has_no_body(response: httpx.Response) -> bool:
    return response.status_code == 204 or response.headers.get("content-length") == "0"


async def _require_text(response: httpx.Response) -> AsyncIterator[str]:
    """Yield the decoded body, raising if the stream ends without a single byte."""
    received = False
    async for text in response.aiter_text():
        received = received or bool(text)
        yield text
    if not received:
        message = _empty_response_message(response.status_code)
        logger.warning("[HaloDesk Client] Chat response ended with no body.")
        raise RouterResponseError(message, status=response.status_code)


class RouterClient:
    """Async client for ``/v1/chat``, ``/health`` and ``/v1/models``."""

    def __init__(
        self,
        port: int,
        host: str = "127.0.0.1",
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.port = require_router_port(port)
        self.host = host
        display_host = f"[{host}]" if ":" in host else host
        self.base_url = f"http://{display_host}:{self.port}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=5.0),
            transport=transport,
        )

    async def __aenter__(self) -> RouterClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @contextlib.asynccontextmanager
    async def open_chat_stream(self, request: ChatRequest) -> AsyncIterator[AsyncIterator[Frame]]:
        """POST a chat request and yield an async iterator of decoded frames.

        The HTTP response is released when the ``async with`` block exits,
        whether the frames were consumed to the end or abandoned early.
        """
        try:
            async with self._client.stream(
                "POST",
                CHAT_PATH,
                json=request.to_dict(),
                headers={"Accept": "text/event-stream"},
            ) as response:
                if not response.is_success or _has_no_body(response):
                    body = await response.aread()
                    message, code = describe_error_body(
                        response.status_code, body.decode("utf-8", errors="replace")
                    )
                    if response.is_success:
                        message = _empty_response_message(response.status_code)
                    logger.warning(
                        "[HaloDesk Client] Chat request rejected with HTTP %s: %s",
                        response.status_code,
                        message,
                    )
                    raise RouterResponseError(message, status=response.status_code, code=code)

                logger.debug("[HaloDesk Client] Streaming chat response from %s", self.base_url)
                yield FrameStream(_require_text(response)).__aiter__()
        except httpx.HTTPError as exc:
            raise RouterTransportError(self._describe_transport_error(exc)) from exc

    async def health(self) -> dict[str, Any]:
        """Return the router's ``/health`` document."""
        return await self._get_json(HEALTH_PATH)

    async def list_models(self) -> ModelsResponse:
        return ModelsResponse.from_dict(await self._get_json(MODELS_PATH))

    async def _get_json(self, path: str) -> dict[str, Any]:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            raise RouterTransportError(self._describe_transport_error(exc)) from exc
        if not response.is_success:
            message, code = describe_error_body(response.status_code, response.text)
            raise RouterResponseError(message, status=response.status_code, code=code)
        try:
            data = response.json()
        except ValueError as exc:
            raise RouterResponseError(
                f"Router returned invalid JSON for {path}", status=response.status_code
            ) from exc
        if not isinstance(data, dict):
            raise RouterResponseError(
                f"Router returned unexpected JSON for {path}", status=response.status_code
            )
        return data

    def _describe_transport_error(self, exc: httpx.HTTPError) -> str:
        detail = str(exc) or type(exc).__name__
        if isinstance(exc, httpx.ConnectError):
            return f"Cannot connect to router at {self.base_url}: {detail}"
        if isinstance(exc, httpx.TimeoutException):
            return f"Router request timed out: {detail}"
        return f"Router connection error: {detail}"

    def __repr__(self) -> str:
        return f"RouterClient(base_url={self.base_url!r})"
