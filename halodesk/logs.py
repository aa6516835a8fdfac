import logging
import sys
from pathlib import Path

logger = logging.getLogger("halodesk")

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def resolve_log_level(level: str | int, fallback: int = logging.INFO) -> int:
    """Accept ``"debug"``, ``"20"`` or ``20``; anything else falls back with a warning."""
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        if level.isdigit():
            return int(level)
        resolved = logging.getLevelName(level.upper())
        if isinstance(resolved, int):
            return resolved
    logger.warning(
        "[HaloDesk Logging] Unsupported log level '%s'; falling back to %s.",
        level,
        logging.getLevelName(fallback),
    )
    return fallback


def configure_logging(
    log_path: Path | None = None,
    level: str | int = "info",
    *,
    stderr: bool = False,
) -> logging.Logger:
    """Attach HaloDesk's handlers to the ``halodesk`` logger.

    Calling this again replaces the handlers it installed previously, so the
    CLI and the overlay can both call it without duplicating output.
    """
    resolved = resolve_log_level(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    for handler in list(logger.handlers):
        if getattr(handler, "_halodesk", False):
            logger.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = []
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    if stderr:
        handlers.append(logging.StreamHandler(sys.stderr))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._halodesk = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    logger.setLevel(resolved)
    return logger
