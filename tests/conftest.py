"""
Shared fixtures: in-memory OS capabilities and a fake router.

The fake router is a FastAPI app served through ``httpx.ASGITransport``, so
the real ``RouterClient`` code path (request serialisation, status handling,
event-stream decoding) runs without opening a socket.
"""

import json
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict

from halodesk.capabilities import DesktopCapabilities
from halodesk.client import RouterClient
from halodesk.exceptions import CaptureError
from halodesk.models import AppConfig, ImageData, ModelInfo
from halodesk.session import SessionOrchestrator

ROUTER_PORT = 7878


def sse(event: str | None, data: Any) -> str:
    """Render one event-stream frame the way the router does."""
    lines = []
    if event is not None:
        lines.append(f"event: {event}")
    payload = data if isinstance(data, str) else json.dumps(data)
    lines.append(f"data: {payload}")
    return "\n".join(lines) + "\n\n"


# ========================================================================
# Capabilities
# ========================================================================


class FakeConfigStore:
    def __init__(self, config: AppConfig | None = None) -> None:
        self.config = config or AppConfig()
        self.saved: list[AppConfig] = []

    def get_config(self) -> AppConfig:
        return self.config

    def set_config(self, config: AppConfig) -> None:
        self.config = config
        self.saved.append(config)


class FakeKeyStore:
    def __init__(self, key: str = "sk-test") -> None:
        self.key = key

    def has_provider_key(self) -> bool:
        return bool(self.key.strip())

    def set_provider_key(self, key: str) -> None:
        self.key = key


class FakeClipboard:
    def __init__(self, text: str | None = None) -> None:
        self.text = text
        self.writes: list[str] = []

    def read_text(self) -> str | None:
        return self.text

    def write_text(self, text: str) -> None:
        self.text = text
        self.writes.append(text)


class FakeScreen:
    def __init__(self, image: ImageData | None = None, error: CaptureError | None = None) -> None:
        self.image = image or ImageData(mime="image/png", base64="iVBORw0KGgo=")
        self.error = error
        self.calls = 0

    def capture_primary_display(self) -> ImageData:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.image


@pytest.fixture
def capabilities() -> DesktopCapabilities:
    return DesktopCapabilities(
        config=FakeConfigStore(),
        keys=FakeKeyStore(),
        clipboard=FakeClipboard(),
        screen=FakeScreen(),
    )


# ========================================================================
# Fake router
# ========================================================================


class MessageBody(BaseModel):
    role: str
    content: str


class ImageBody(BaseModel):
    mime: str
    base64: str


class ChatBody(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    preset_id: str | None
    messages: list[MessageBody]
    image: ImageBody | None
    model_override: str | None
    stream: bool


class FakeRouter:
    """Scriptable stand-in for the HaloDesk router."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.chunks: list[str] = []
        self.error: tuple[int, Any] | None = None
        self.app = self._build_app()

    def reply(self, *chunks: str) -> None:
        """Stream these raw text chunks for the next chat requests."""
        self.chunks = list(chunks)
        self.error = None

    def fail(self, status: int, body: Any) -> None:
        """Answer chat requests with *status* and a JSON (dict) or text (str) body."""
        self.error = (status, body)

    def _build_app(self) -> FastAPI:
        app = FastAPI()

        @app.post("/v1/chat")
        async def chat(body: ChatBody):
            self.requests.append(body.model_dump())
            if self.error is not None:
                status, payload = self.error
                if isinstance(payload, str):
                    return PlainTextResponse(payload, status_code=status)
                return JSONResponse(payload, status_code=status)

            chunks = list(self.chunks)

            async def stream():
                for chunk in chunks:
                    yield chunk

            return StreamingResponse(stream(), media_type="text/event-stream")

        @app.get("/health")
        async def health():
            return {"status": "ok", "version": "1.0.0", "uptime_ms": 42}

        @app.get("/v1/models")
        async def models():
            config = AppConfig()
            return {
                "text_default": config.text_default_model,
                "vision_default": config.vision_default_model,
                "models": [model.to_dict() for model in config.models]
                + [ModelInfo(id="openrouter:meta/llama", label="Llama").to_dict()],
            }

        return app


@pytest.fixture
def router() -> FakeRouter:
    return FakeRouter()


@pytest_asyncio.fixture
async def client(router: FakeRouter):
    router_client = RouterClient(ROUTER_PORT, transport=httpx.ASGITransport(app=router.app))
    yield router_client
    await router_client.aclose()


@pytest.fixture
def session(client: RouterClient, capabilities: DesktopCapabilities) -> SessionOrchestrator:
    return SessionOrchestrator(client, capabilities)
