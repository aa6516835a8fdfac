"""Preset catalog and the pure builders that turn user intent into router messages."""

from __future__ import annotations

from .models import ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_USER, Message, Preset

PRESETS: tuple[Preset, ...] = (
    Preset(
        id="general",
        name="General",
        system_prompt=(
            "You are a fast desktop assistant. Answer directly and concisely. "
            "Use Markdown only when it improves readability."
        ),
    ),
    Preset(
        id="explain",
        name="Explain",
        system_prompt=(
            "Explain what the user is looking at or asking about in plain language. "
            "If a screenshot is attached, ground the explanation in what is visible."
        ),
    ),
    Preset(
        id="code",
        name="Code",
        system_prompt=(
            "You are a senior software engineer. Prefer working code over prose, "
            "point out bugs explicitly, and keep explanations short."
        ),
    ),
    Preset(
        id="write",
        name="Write",
        system_prompt=(
            "Rewrite or draft text for the user. Preserve their meaning and voice, "
            "fix grammar, and return only the finished text."
        ),
    ),
    Preset(id="raw", name="No preset", system_prompt=""),
)

REFINE_INSTRUCTIONS: dict[str, str] = {
    "Shorter": "Make the previous answer shorter while keeping the key points.",
    "Longer": "Expand the previous answer with more detail and examples.",
    "More formal": "Rewrite the previous answer in a more formal tone.",
    "More casual": "Rewrite the previous answer in a more casual tone.",
    "Bullet points": "Reformat the previous answer as concise bullet points.",
    "Fix grammar": "Fix grammar and spelling in the previous answer without changing its meaning.",
}


def default_preset(presets: tuple[Preset, ...] = PRESETS) -> Preset:
    if not presets:
        raise ValueError("Preset catalog is empty")
    return presets[0]


def find_preset(preset_id: str | None, presets: tuple[Preset, ...] = PRESETS) -> Preset:
    """Look up a preset by id, falling back to the first catalog entry."""
    for preset in presets:
        if preset.id == preset_id:
            return preset
    return default_preset(presets)


def build_messages(preset: Preset, user_text: str) -> list[Message]:
    """Base conversation: optional system prompt, then the user's prompt."""
    messages: list[Message] = []
    if preset.system_prompt.strip():
        messages.append(Message(role=ROLE_SYSTEM, content=preset.system_prompt))
    messages.append(Message(role=ROLE_USER, content=user_text))
    return messages


def build_refine_messages(
    preset: Preset, user_text: str, prior_output: str, instruction: str
) -> list[Message]:
    """Base conversation extended by the previous answer and a follow-up instruction."""
    messages = build_messages(preset, user_text)
    messages.append(Message(role=ROLE_ASSISTANT, content=prior_output))
    messages.append(Message(role=ROLE_USER, content=instruction))
    return messages


def resolve_refine_instruction(choice: str) -> str:
    """Map a refine label ("Shorter", ...) to its instruction; free text passes through."""
    return REFINE_INSTRUCTIONS.get(choice.strip(), choice.strip())
