"""
OS capability interfaces used by the session and the overlay.

The session never touches the clipboard, the screen, the keychain or the
config file directly; it goes through these protocols. The default
implementations are thin wrappers over ``keyring``, ``pyperclip`` and
``mss`` and are swapped for in-memory fakes in tests.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import keyring
import keyring.errors
import mss
import mss.tools
import pyperclip
from mss.exception import ScreenShotError

from .config import load_or_init, save_config
from .exceptions import (
    CAPTURE_NO_DISPLAY,
    CAPTURE_OTHER,
    CAPTURE_PERMISSION,
    CaptureError,
    ConfigError,
)
from .models import ImageData

if TYPE_CHECKING:
    from pathlib import Path

    from .config import Settings
    from .models import AppConfig

logger = logging.getLogger("halodesk.capabilities")

KEYRING_SERVICE = "HaloRouter"
KEYRING_USERNAME = "openrouter"


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class ConfigStore(Protocol):
    def get_config(self) -> AppConfig: ...

    def set_config(self, config: AppConfig) -> None: ...


@runtime_checkable
class KeyStore(Protocol):
    def has_provider_key(self) -> bool: ...

    def set_provider_key(self, key: str) -> None: ...


@runtime_checkable
class Clipboard(Protocol):
    def read_text(self) -> str | None: ...

    def write_text(self, text: str) -> None: ...


@runtime_checkable
class ScreenCapture(Protocol):
    def capture_primary_display(self) -> ImageData: ...


@dataclass
class DesktopCapabilities:
    """Everything the session needs from the host OS, in one injectable bundle."""

    config: ConfigStore
    keys: KeyStore
    clipboard: Clipboard
    screen: ScreenCapture


# ---------------------------------------------------------------------------
# Default implementations
# ---------------------------------------------------------------------------


class JsonConfigStore:
    """App config kept in a JSON file, cached after the first read."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._config: AppConfig | None = None

    def get_config(self) -> AppConfig:
        if self._config is None:
            self._config = load_or_init(self.path)
        return self._config

    def set_config(self, config: AppConfig) -> None:
        save_config(self.path, config)
        self._config = config

    def __repr__(self) -> str:
        return f"JsonConfigStore(path={self.path!r})"


class KeyringKeyStore:
    """Provider API key kept in the OS keychain via ``keyring``."""

    def __init__(self, service: str = KEYRING_SERVICE, username: str = KEYRING_USERNAME) -> None:
        self.service = service
        self.username = username

    def has_provider_key(self) -> bool:
        try:
            key = keyring.get_password(self.service, self.username)
        except keyring.errors.KeyringError:
            logger.warning("[HaloDesk Keys] Keyring lookup failed.", exc_info=True)
            return False
        return bool(key and key.strip())

    def set_provider_key(self, key: str) -> None:
        key = key.strip()
        if not key:
            raise ConfigError("Provider key must not be empty")
        try:
            keyring.set_password(self.service, self.username, key)
        except keyring.errors.KeyringError as exc:
            raise ConfigError(f"Could not store provider key: {exc}") from exc
        logger.info("[HaloDesk Keys] Provider key stored for service '%s'.", self.service)


class PyperclipClipboard:
    def read_text(self) -> str | None:
        try:
            text = pyperclip.paste()
        except pyperclip.PyperclipException:
            logger.warning("[HaloDesk Clipboard] Clipboard read failed.", exc_info=True)
            return None
        return text or None

    def write_text(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException:
            logger.warning("[HaloDesk Clipboard] Clipboard write failed.", exc_info=True)


def classify_capture_failure(message: str) -> str:
    """Bucket a capture failure message into permission / no_display / other."""
    lowered = message.lower()
    if any(word in lowered for word in ("permission", "denied", "not permitted", "access")):
        return CAPTURE_PERMISSION
    if any(word in lowered for word in ("display", "no screens", "no monitor")):
        return CAPTURE_NO_DISPLAY
    return CAPTURE_OTHER


class MssScreenCapture:
    """Captures the primary monitor as a base64 PNG using ``mss``."""

    def capture_primary_display(self) -> ImageData:
        try:
            with mss.mss() as sct:
                # monitors[0] is the union of all screens; [1] is the primary one.
                if len(sct.monitors) < 2:
                    raise CaptureError("No screens found", kind=CAPTURE_NO_DISPLAY)
                shot = sct.grab(sct.monitors[1])
                png = mss.tools.to_png(shot.rgb, shot.size)
        except ScreenShotError as exc:
            message = str(exc) or "Screen capture failed"
            raise CaptureError(message, kind=classify_capture_failure(message)) from exc
        if not png:
            raise CaptureError("Screen capture returned no image data", kind=CAPTURE_OTHER)
        return ImageData(mime="image/png", base64=base64.b64encode(png).decode("ascii"))


def default_capabilities(settings: Settings) -> DesktopCapabilities:
    return DesktopCapabilities(
        config=JsonConfigStore(settings.config_path),
        keys=KeyringKeyStore(),
        clipboard=PyperclipClipboard(),
        screen=MssScreenCapture(),
    )
