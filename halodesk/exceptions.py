"""
Exception hierarchy for HaloDesk.

Every failure that can reach the user is a ``HaloDeskError``. The session
orchestrator turns these into ``notice`` / ``error_message`` values; the CLI
turns them into a red message and a non-zero exit code.
"""

from __future__ import annotations

CAPTURE_PERMISSION = "permission"
CAPTURE_NO_DISPLAY = "no_display"
CAPTURE_OTHER = "other"


class HaloDeskError(Exception):
    """Base class for all HaloDesk errors."""


class ConfigError(HaloDeskError):
    """Settings or the persisted app config could not be used."""


class PreconditionError(HaloDeskError):
    """A user action was rejected before any network call was made."""


class RouterTransportError(HaloDeskError):
    """The local router could not be reached or the connection broke mid-stream."""


class RouterResponseError(HaloDeskError):
    """The router answered, but with a non-success status or an empty body."""

    def __init__(self, message: str, status: int, code: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


class CaptureError(HaloDeskError):
    """Screen capture failed.

    ``kind`` is one of ``"permission"``, ``"no_display"`` or ``"other"``.
    """

    def __init__(self, message: str, kind: str = CAPTURE_OTHER) -> None:
        super().__init__(message)
        self.kind = kind


def require_router_port(port: int | None) -> int:
    """Return *port* if it is a usable TCP port, else raise ``ConfigError``."""
    if port is None or not 0 < int(port) < 65536:
        raise ConfigError(
            f"Router port {port!r} is not valid. Set HALODESK_ROUTER_PORT to the port "
            "the HaloDesk router is listening on."
        )
    return int(port)
