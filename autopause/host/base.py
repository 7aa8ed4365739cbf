"""Host environment interface.

The tracker never touches a page directly. Everything it needs from the
environment (routes, geometry, media elements, timers, change notifications)
comes through these classes, so the same state machine runs against a real
browser or an in-memory fake.
"""

import abc
import logging
from collections.abc import Callable

from autopause.models import MediaEvent, NavigationEvent, Rect, StructuralChange

logger = logging.getLogger(__name__)

MediaHandler = Callable[[], None]
NavigationHandler = Callable[[NavigationEvent], None]
StructureHandler = Callable[[list[StructuralChange]], None]


class Cancellable(abc.ABC):
    """A timer or subscription that can be torn down."""

    @abc.abstractmethod
    def cancel(self) -> None:
        ...


class MediaElement(abc.ABC):
    """A playable media element. Identity is object identity."""

    @property
    @abc.abstractmethod
    def current_time(self) -> float:
        """Playback position in seconds. May be NaN while loading."""
        ...

    @property
    @abc.abstractmethod
    def duration(self) -> float:
        """Duration in seconds. NaN or 0 when unknown."""
        ...

    @abc.abstractmethod
    def add_listener(self, event: MediaEvent, handler: MediaHandler) -> None:
        ...

    @abc.abstractmethod
    def remove_listener(self, event: MediaEvent, handler: MediaHandler) -> None:
        ...

    @abc.abstractmethod
    def pause(self) -> None:
        ...

    @abc.abstractmethod
    def mute(self) -> None:
        ...


class Renderer(abc.ABC):
    """A feed entry that may contain a media element."""

    @abc.abstractmethod
    def bounding_rect(self) -> Rect:
        ...

    @abc.abstractmethod
    def media(self) -> MediaElement | None:
        ...


class HostEnvironment(abc.ABC):
    """Base class for everything the tracker consumes from the page."""

    # --- routing ---

    @abc.abstractmethod
    def current_route(self) -> str:
        ...

    @abc.abstractmethod
    def is_tracked_route(self) -> bool:
        """Whether the current route is one where tracking applies."""
        ...

    @abc.abstractmethod
    def add_navigation_listener(self, handler: NavigationHandler) -> Cancellable:
        ...

    @abc.abstractmethod
    def on_ready(self, callback: Callable[[], None]) -> None:
        """Run callback once the document is ready (immediately if it already is)."""
        ...

    # --- structure and geometry ---

    @abc.abstractmethod
    def observe_structure(
        self, handler: StructureHandler, attribute_filter: list[str],
    ) -> Cancellable:
        """Watch the feed's scope root for child and filtered attribute changes."""
        ...

    @abc.abstractmethod
    def marked_active_renderer(self) -> Renderer | None:
        ...

    @abc.abstractmethod
    def candidate_renderers(self) -> list[Renderer]:
        ...

    @abc.abstractmethod
    def viewport_height(self) -> float:
        ...

    # --- time ---

    @abc.abstractmethod
    def now(self) -> float:
        """Monotonic clock in seconds."""
        ...

    @abc.abstractmethod
    def set_interval(self, seconds: float, callback: Callable[[], None]) -> Cancellable:
        ...

    @abc.abstractmethod
    def set_timeout(self, seconds: float, callback: Callable[[], None]) -> Cancellable:
        ...
