"""
Session orchestration: user intent in, streamed router output folded into state.

One ``SessionOrchestrator`` exists per application session. It owns a single
``SessionState`` record and exposes the three user actions (``send``,
``regenerate``, ``refine``). Each action builds a message list and issues a
request; frames are applied to the state as they arrive.

Overlapping actions are allowed. Every issued request gets a monotonically
increasing token and only the newest token may touch the state, so a
superseded stream that resolves late cannot corrupt the latest response.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from .conversation import (
    PRESETS,
    build_messages,
    build_refine_messages,
    default_preset,
    find_preset,
)
from .exceptions import (
    CaptureError,
    PreconditionError,
    RouterResponseError,
    RouterTransportError,
)
from .models import ChatRequest

if TYPE_CHECKING:
    from .capabilities import DesktopCapabilities
    from .client import RouterClient
    from .frames import Frame
    from .models import ImageData, Message, Preset

logger = logging.getLogger("halodesk.session")

GENERIC_STREAM_ERROR = "The provider reported an error while generating the response."
EVENT_DELTA = "delta"
EVENT_META = "meta"
EVENT_DONE = "done"


class Phase(enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    ERROR = "error"


@dataclass
class SessionState:
    """Everything the overlay renders."""

    preset_id: str = field(default_factory=lambda: default_preset().id)
    last_user_text: str = ""
    output_text: str = ""
    active_model: str = ""
    phase: Phase = Phase.IDLE
    error_message: str = ""
    notice: str = ""
    image: ImageData | None = None
    request_token: int = 0

    @property
    def is_streaming(self) -> bool:
        return self.phase is Phase.STREAMING


def _payload_str(data: Any, key: str) -> str | None:
    if not isinstance(data, dict):
        return None
    value = data.get(key)
    return value if isinstance(value, str) else None


def apply_frame(state: SessionState, frame: Frame) -> bool:
    """Fold one decoded frame into *state*. Returns ``True`` if anything changed."""
    if frame.event == EVENT_DELTA:
        text = _payload_str(frame.data, "text")
        if not text:
            return False
        state.output_text += text
        return True

    if frame.event == EVENT_META:
        parts = [
            value.strip()
            for value in (_payload_str(frame.data, "provider"), _payload_str(frame.data, "model"))
            if value and value.strip()
        ]
        if not parts:
            return False
        state.active_model = " ".join(parts)
        return True

    if frame.event == EVENT_DONE:
        error = frame.data.get("error") if isinstance(frame.data, dict) else None
        finish_reason = _payload_str(frame.data, "finish_reason")
        if error:
            state.error_message = str(error)
        elif finish_reason == "error":
            state.error_message = GENERIC_STREAM_ERROR
        else:
            return False
        state.phase = Phase.ERROR
        return True

    logger.debug("[HaloDesk Session] Ignoring unknown event '%s'.", frame.event)
    return False


class SessionOrchestrator:
    """Owns ``SessionState`` and drives requests against the router."""

    def __init__(
        self,
        client: RouterClient,
        capabilities: DesktopCapabilities,
        *,
        presets: tuple[Preset, ...] = PRESETS,
        on_change: Callable[[SessionState], None] | None = None,
    ) -> None:
        self.client = client
        self.capabilities = capabilities
        self.presets = presets
        self.on_change = on_change
        self.state = SessionState(preset_id=default_preset(presets).id)
        self._next_token = 0

    # -- helpers -----------------------------------------------------------

    @property
    def preset(self) -> Preset:
        return find_preset(self.state.preset_id, self.presets)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)

    def _set_notice(self, message: str) -> None:
        self.state.notice = message
        self._notify()

    def _is_current(self, token: int) -> bool:
        return token == self.state.request_token

    def _check_ready(self) -> None:
        """Raise ``PreconditionError`` unless a key and a default model are configured."""
        if not self.capabilities.keys.has_provider_key():
            raise PreconditionError("Provider key missing. Set it in Settings.")
        config = self.capabilities.config.get_config()
        if not config.default_model_for(self.state.image is not None):
            kind = "Vision" if self.state.image is not None else "Text"
            raise PreconditionError(f"{kind} default model not set. Choose one in Settings.")

    # -- presets, images and clipboard --------------------------------------

    def select_preset(self, preset_id: str) -> Preset:
        preset = find_preset(preset_id, self.presets)
        self.state.preset_id = preset.id
        self._notify()
        return preset

    def attach_image(self, image: ImageData) -> None:
        self.state.image = image
        self._notify()

    def clear_image(self) -> None:
        self.state.image = None
        self._notify()

    def capture_screen(self) -> ImageData | None:
        """Capture the primary display and hold it for the next requests."""
        try:
            image = self.capabilities.screen.capture_primary_display()
        except CaptureError as exc:
            logger.warning("[HaloDesk Session] Screen capture failed (%s): %s", exc.kind, exc)
            self._set_notice(f"Screen capture failed ({exc.kind}): {exc}")
            return None
        self.state.image = image
        self._set_notice("Screenshot attached.")
        return image

    def read_clipboard(self) -> str | None:
        return self.capabilities.clipboard.read_text()

    def copy_output(self) -> bool:
        if not self.state.output_text:
            return False
        self.capabilities.clipboard.write_text(self.state.output_text)
        self._set_notice("Response copied.")
        return True

    # -- user actions ------------------------------------------------------

    async def send(self, prompt_text: str) -> int | None:
        """Send a fresh prompt. Returns the request token, or ``None`` if rejected."""
        try:
            if not prompt_text.strip():
                raise PreconditionError("Type a prompt first.")
            self._check_ready()
        except PreconditionError as exc:
            logger.info("[HaloDesk Session] Send rejected: %s", exc)
            self._set_notice(str(exc))
            return None

        self.state.last_user_text = prompt_text
        messages = build_messages(self.preset, prompt_text)
        return await self._issue(messages, self.state.image)

    async def regenerate(self) -> int | None:
        """Re-send the last submitted prompt (not whatever is in the prompt box now)."""
        if not self.state.last_user_text:
            return None
        try:
            self._check_ready()
        except PreconditionError as exc:
            self._set_notice(str(exc))
            return None
        messages = build_messages(self.preset, self.state.last_user_text)
        return await self._issue(messages, self.state.image)

    async def refine(self, instruction: str, draft_text: str = "") -> int | None:
        """Ask for an adjusted version of the current output.

        The conversation is the original prompt (or *draft_text* when nothing
        was sent yet), the current output as the assistant turn, then
        *instruction* as a new user turn.
        """
        instruction = instruction.strip()
        if not self.state.output_text or not instruction:
            return None
        try:
            self._check_ready()
        except PreconditionError as exc:
            self._set_notice(str(exc))
            return None
        base_text = self.state.last_user_text or draft_text.strip()
        messages = build_refine_messages(
            self.preset, base_text, self.state.output_text, instruction
        )
        return await self._issue(messages, self.state.image)

    # -- request lifecycle ---------------------------------------------------

    def _begin(self) -> int:
        self._next_token += 1
        token = self._next_token
        state = self.state
        state.request_token = token
        state.phase = Phase.STREAMING
        state.error_message = ""
        state.active_model = ""
        state.output_text = ""
        state.notice = ""
        self._notify()
        return token

    async def _issue(self, messages: list[Message], image: ImageData | None) -> int:
        token = self._begin()
        request = ChatRequest(
            preset_id=self.state.preset_id,
            messages=tuple(messages),
            image=image,
            model_override=None,
            stream=True,
        )
        logger.info(
            "[HaloDesk Session] Request #%d: %d message(s), image=%s, preset=%s",
            token,
            len(messages),
            image is not None,
            request.preset_id,
        )

        try:
            async with self.client.open_chat_stream(request) as frames:
                async for frame in frames:
                    if not self._is_current(token):
                        logger.info(
                            "[HaloDesk Session] Request #%d superseded by #%d; closing its stream.",
                            token,
                            self.state.request_token,
                        )
                        break
                    if apply_frame(self.state, frame):
                        self._notify()
        except RouterResponseError as exc:
            if self._is_current(token):
                self.state.error_message = str(exc)
                self.state.phase = Phase.ERROR
        except RouterTransportError as exc:
            logger.warning("[HaloDesk Session] Request #%d failed: %s", token, exc)
            if self._is_current(token):
                self.state.error_message = str(exc)
                self.state.phase = Phase.IDLE
        finally:
            if self._is_current(token):
                if self.state.phase is Phase.STREAMING:
                    self.state.phase = Phase.IDLE
                self._notify()

        if self._is_current(token):
            logger.info(
                "[HaloDesk Session] Request #%d finished: phase=%s, %d chars%s",
                token,
                self.state.phase.value,
                len(self.state.output_text),
                f", error={self.state.error_message!r}" if self.state.error_message else "",
            )
        return token
