"""Observation scheduler: decides when to look for the active video.

Two producers feed the same idempotent consumer, ``refresh_active``:

  - change notifications (navigation events, structural mutations)
  - timers (a steady poll while in the feed, plus a short fast poll burst
    right after startup)

Calling ``refresh_active`` when nothing changed does nothing, so overlapping
producers are harmless.
"""

import logging
from collections.abc import Callable

from autopause.config import Config
from autopause.host.base import Cancellable, HostEnvironment
from autopause.models import ChangeKind, NavigationEvent, StructuralChange
from autopause.selector import select_active
from autopause.tracker import SessionTracker

logger = logging.getLogger(__name__)


class ObservationScheduler:
    """Owns the observers and timers for the feed view."""

    def __init__(self, host: HostEnvironment, tracker: SessionTracker, config: Config) -> None:
        self.host = host
        self.tracker = tracker
        self.config = config
        self.structure_observer: Cancellable | None = None
        self.active_poll: Cancellable | None = None
        self.boot_poll: Cancellable | None = None
        self.boot_deadline: Cancellable | None = None
        self.navigation_listener: Cancellable | None = None

    def _guarded(self, label: str, fn: Callable[..., None], *args) -> None:
        """Run a top-level callback, logging instead of propagating errors."""
        try:
            fn(*args)
        except Exception:
            logger.exception("%s error", label)

    # --- startup ---

    def bootstrap(self) -> None:
        """Subscribe to navigation and, if already in the feed, start observing."""
        self._guarded("Bootstrap", self._bootstrap)
        self.host.on_ready(
            lambda: self._guarded("dom-ready", self.on_route_change, NavigationEvent.DOM_READY.value),
        )

    def _bootstrap(self) -> None:
        self.navigation_listener = self.host.add_navigation_listener(self._on_navigation)

        logger.info("Bootstrap start. route=%s", self.host.current_route())
        if self.host.is_tracked_route():
            self.tracker.note_route(self.host.current_route())
            self.start_observers()
            self._start_boot_poll()
        else:
            self.stop_observers()

    def _start_boot_poll(self) -> None:
        polling = self.config.polling
        self.boot_poll = self.host.set_interval(
            polling.boot_interval, lambda: self._guarded("Boot poll", self.refresh_active, "bootstrap"),
        )
        self.boot_deadline = self.host.set_timeout(polling.boot_window, self._end_boot_poll)

    def _end_boot_poll(self) -> None:
        if self.boot_poll is not None:
            self.boot_poll.cancel()
            self.boot_poll = None

    def shutdown(self) -> None:
        """Tear down every subscription and timer and drop the tracked video."""
        self._end_boot_poll()
        if self.boot_deadline is not None:
            self.boot_deadline.cancel()
            self.boot_deadline = None
        self.stop_observers()
        if self.navigation_listener is not None:
            self.navigation_listener.cancel()
            self.navigation_listener = None
        self.tracker.detach("shutdown")

    # --- navigation ---

    def _on_navigation(self, event: NavigationEvent) -> None:
        self._guarded("Route change", self.on_route_change, event.value)

    def on_route_change(self, tag: str) -> None:
        route = self.host.current_route()
        logger.info("Route change event: %s route=%s", tag, route)
        if not self.host.is_tracked_route():
            self.stop_observers()
            self.tracker.detach("route-away")
            self.tracker.note_route(None)
            return

        # A reused element gets its reset from loadedmetadata or the sample-time route check
        if self.tracker.route != route:
            self.tracker.note_route(route)
        self.start_observers()
        self.refresh_active("route-change")

    # --- observers ---

    def start_observers(self) -> None:
        if self.structure_observer is not None:
            return

        self.structure_observer = self.host.observe_structure(
            self._on_structure_change, [self.config.page.active_attribute],
        )
        if self.active_poll is None:
            self.active_poll = self.host.set_interval(
                self.config.polling.active_interval,
                lambda: self._guarded("Poll", self.refresh_active, "poll"),
            )
        logger.info("Feed observers started.")

    def stop_observers(self) -> None:
        if self.structure_observer is not None:
            self.structure_observer.cancel()
            self.structure_observer = None
        if self.active_poll is not None:
            self.active_poll.cancel()
            self.active_poll = None
        logger.info("Feed observers stopped.")

    def _on_structure_change(self, changes: list[StructuralChange]) -> None:
        marker = self.config.page.active_attribute
        for change in changes:
            if change.kind == ChangeKind.ATTRIBUTES and change.attribute_name == marker:
                self._guarded("Structure change", self.refresh_active, "attr-change")
                return
            if change.kind == ChangeKind.CHILD_LIST and (change.added or change.removed):
                self._guarded("Structure change", self.refresh_active, "childlist-change")
                return

    # --- consumer ---

    def refresh_active(self, reason: str) -> None:
        """Find the active video and hand it to the tracker."""
        if not self.host.is_tracked_route():
            self.tracker.detach("left-feed")
            return

        selection = select_active(self.host)
        if selection is None:
            logger.debug("No active video found yet (reason: %s)", reason)
            return

        self.tracker.offer(selection.media, selection.renderer, self.host.current_route())
