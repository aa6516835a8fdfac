"""Plain data types exchanged between the overlay, the session and the router."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
VALID_ROLES = (ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT)

DEFAULT_TEXT_MODEL = "openrouter:openai/gpt-4o-mini"
DEFAULT_VISION_MODEL = "openrouter:openai/gpt-4o-mini-vision"


@dataclass(frozen=True)
class Message:
    """One conversation turn as sent to the router."""

    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in VALID_ROLES:
            raise ValueError(f"Unsupported message role: {self.role!r}")

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ImageData:
    """A base64-encoded image attached to a request."""

    mime: str
    base64: str

    def to_dict(self) -> dict[str, str]:
        return {"mime": self.mime, "base64": self.base64}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageData:
        return cls(mime=str(data.get("mime", "image/png")), base64=str(data.get("base64", "")))


@dataclass(frozen=True)
class Preset:
    """A named system prompt the user can pick in the overlay."""

    id: str
    name: str
    system_prompt: str = ""


@dataclass(frozen=True)
class ChatRequest:
    """Body of ``POST /v1/chat``."""

    preset_id: str | None
    messages: tuple[Message, ...]
    image: ImageData | None = None
    model_override: str | None = None
    stream: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Wire representation with the router's snake_case keys."""
        return {
            "preset_id": self.preset_id,
            "messages": [message.to_dict() for message in self.messages],
            "image": self.image.to_dict() if self.image is not None else None,
            "model_override": self.model_override,
            "stream": self.stream,
        }


@dataclass(frozen=True)
class ModelInfo:
    id: str
    label: str
    capability: str = "text"

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "label": self.label, "capability": self.capability}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelInfo:
        model_id = str(data.get("id", ""))
        return cls(
            id=model_id,
            label=str(data.get("label") or model_id),
            capability=str(data.get("capability", "text")),
        )


def _default_models() -> list[ModelInfo]:
    return [
        ModelInfo(id=DEFAULT_TEXT_MODEL, label="GPT-4o mini", capability="text"),
        ModelInfo(id=DEFAULT_VISION_MODEL, label="GPT-4o mini (vision)", capability="vision"),
    ]


@dataclass
class AppConfig:
    """User-editable router configuration shared with the router process."""

    text_default_model: str = DEFAULT_TEXT_MODEL
    vision_default_model: str = DEFAULT_VISION_MODEL
    fallback_model: str = DEFAULT_TEXT_MODEL
    models: list[ModelInfo] = field(default_factory=_default_models)

    def default_model_for(self, has_image: bool) -> str:
        """Model the router will resolve for a request without an override."""
        model = self.vision_default_model if has_image else self.text_default_model
        return model.strip()

    def to_dict(self) -> dict[str, Any]:
        """Persistable config representation."""
        return {
            "text_default_model": self.text_default_model,
            "vision_default_model": self.vision_default_model,
            "fallback_model": self.fallback_model,
            "models": [model.to_dict() for model in self.models],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        """Load config, keeping defaults for missing keys."""
        defaults = cls()
        raw_models = data.get("models")
        models = (
            [ModelInfo.from_dict(item) for item in raw_models if isinstance(item, dict)]
            if isinstance(raw_models, list)
            else defaults.models
        )
        return cls(
            text_default_model=str(data.get("text_default_model", defaults.text_default_model)),
            vision_default_model=str(
                data.get("vision_default_model", defaults.vision_default_model)
            ),
            fallback_model=str(data.get("fallback_model", defaults.fallback_model)),
            models=models,
        )


@dataclass(frozen=True)
class ModelsResponse:
    """Body of ``GET /v1/models``."""

    text_default: str
    vision_default: str
    models: tuple[ModelInfo, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelsResponse:
        return cls(
            text_default=str(data.get("text_default", "")),
            vision_default=str(data.get("vision_default", "")),
            models=tuple(
                ModelInfo.from_dict(item)
                for item in data.get("models") or []
                if isinstance(item, dict)
            ),
        )
