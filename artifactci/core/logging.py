"""
Tagged logging context.

Request handlers push short tags ("bulk", "resolve", ...) onto a stack held in
a ContextVar. Every asyncio task copies the current context when it is
created, so tags follow the call chain across awaits and fan-out without
being passed around by hand.

Usage:
    logger = logging.getLogger(__name__)

    async with log_context("bulk"):
        logger.info("token issued")   # -> "[bulk] token issued"
"""

import logging
from contextlib import asynccontextmanager, contextmanager
from contextvars import ContextVar
from typing import AsyncIterator, Iterator, Tuple

_tags: ContextVar[Tuple[str, ...]] = ContextVar("artifactci_log_tags", default=())

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(tag_prefix)s%(message)s"


def current_tags() -> Tuple[str, ...]:
    return _tags.get()


@contextmanager
def tagged(tag: str) -> Iterator[Tuple[str, ...]]:
    token = _tags.set(_tags.get() + (tag,))
    try:
        yield _tags.get()
    finally:
        _tags.reset(token)


@asynccontextmanager
async def log_context(tag: str) -> AsyncIterator[Tuple[str, ...]]:
    with tagged(tag) as tags:
        yield tags


class TagFilter(logging.Filter):
    """Adds ``tags`` and ``tag_prefix`` attributes to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        tags = _tags.get()
        record.tags = list(tags)
        record.tag_prefix = "".join(f"[{t}]" for t in tags) + " " if tags else ""
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install the tag filter on the root handler. Safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = next((h for h in root.handlers if getattr(h, "_artifactci", False)), None)
    if handler is None:
        handler = logging.StreamHandler()
        handler._artifactci = True
        handler.addFilter(TagFilter())
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
