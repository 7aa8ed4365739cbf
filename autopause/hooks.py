"""Listener registration table for the tracked media element."""

import logging

from autopause.host.base import MediaElement, MediaHandler
from autopause.models import MediaEvent

logger = logging.getLogger(__name__)


class ListenerTable:
    """Maps media events to handlers and binds them to one element at a time.

    All handlers are attached and detached together so a switch never leaves
    half the listeners on a stale element.
    """

    def __init__(self, handlers: dict[MediaEvent, MediaHandler]) -> None:
        self.handlers = dict(handlers)
        self.bound: MediaElement | None = None

    def bind(self, media: MediaElement) -> None:
        if self.bound is media:
            return
        self.unbind()
        for event, handler in self.handlers.items():
            media.add_listener(event, handler)
        self.bound = media

    def unbind(self) -> None:
        media = self.bound
        if media is None:
            return
        self.bound = None
        for event, handler in self.handlers.items():
            try:
                media.remove_listener(event, handler)
            except Exception:
                logger.debug("Failed to remove %s listener", event.value, exc_info=True)
