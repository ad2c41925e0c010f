import logging
import uuid
from datetime import datetime, timezone

from .config import LOG_LEVEL


def configure_logging(level: str | None = None):
    """Install a basic stream handler for handlers and local runs."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def utc_now_iso() -> str:
    """Return the current UTC time in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()


def short_uuid(length: int = 8) -> str:
    """Return the first `length` hex chars of a random UUID.

    Example: "3f9c2a1b"
    """
    return uuid.uuid4().hex[:length]


def chunked(items: list, size: int) -> list[list]:
    """Split items into consecutive chunks of at most `size`."""
    return [items[i:i + size] for i in range(0, len(items), size)]
