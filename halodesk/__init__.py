"""
HaloDesk: a desktop overlay that streams answers from a local HaloDesk router.

The overlay sends prompts (optionally with a screenshot) to the router on the
loopback interface and renders the event-stream response as it arrives.
"""

from .client import RouterClient
from .conversation import PRESETS, REFINE_INSTRUCTIONS, build_messages, build_refine_messages
from .exceptions import (
    CaptureError,
    ConfigError,
    HaloDeskError,
    PreconditionError,
    RouterResponseError,
    RouterTransportError,
)
from .frames import Frame, FrameDecoder, FrameStream, decode_frames, iter_frames
from .models import AppConfig, ChatRequest, ImageData, Message, Preset
from .session import Phase, SessionOrchestrator, SessionState, apply_frame

__all__ = [
    "AppConfig",
    "CaptureError",
    "ChatRequest",
    "ConfigError",
    "Frame",
    "FrameDecoder",
    "FrameStream",
    "HaloDeskError",
    "ImageData",
    "Message",
    "PRESETS",
    "Phase",
    "PreconditionError",
    "Preset",
    "REFINE_INSTRUCTIONS",
    "RouterClient",
    "RouterResponseError",
    "RouterTransportError",
    "SessionOrchestrator",
    "SessionState",
    "apply_frame",
    "build_messages",
    "build_refine_messages",
    "decode_frames",
    "iter_frames",
]
