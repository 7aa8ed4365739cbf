"""Shared test fixtures for autopause tests."""

import itertools

import pytest

from autopause.config import Config
from autopause.host.base import Cancellable, HostEnvironment, MediaElement, Renderer
from autopause.models import MediaEvent, NavigationEvent, Rect, StopMode
from autopause.scheduler import ObservationScheduler
from autopause.tracker import SessionTracker


class FakeMedia(MediaElement):
    def __init__(self, position: float = 0.0, duration: float = 10.0):
        self.position = position
        self.length = duration
        self.listeners: dict[MediaEvent, list] = {}
        self.pause_calls = 0
        self.mute_calls = 0
        self.removed = 0
        self.pause_error: Exception | None = None
        self.mute_error: Exception | None = None

    @property
    def current_time(self) -> float:
        return self.position

    @property
    def duration(self) -> float:
        return self.length

    def add_listener(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners[event].remove(handler)
        self.removed += 1

    def listener_count(self) -> int:
        return sum(len(v) for v in self.listeners.values())

    def emit(self, event: MediaEvent):
        for handler in list(self.listeners.get(event, [])):
            handler()

    def sample(self, position: float, duration: float | None = None):
        """Move the playhead and fire a timeupdate."""
        self.position = position
        if duration is not None:
            self.length = duration
        self.emit(MediaEvent.TIME_UPDATE)

    def seek(self, position: float):
        self.position = position
        self.emit(MediaEvent.SEEKING)

    def pause(self):
        self.pause_calls += 1
        if self.pause_error:
            raise self.pause_error

    def mute(self):
        self.mute_calls += 1
        if self.mute_error:
            raise self.mute_error


class FakeRenderer(Renderer):
    def __init__(self, top: float, bottom: float, media: FakeMedia | None = None):
        self.rect = Rect(top=top, bottom=bottom)
        self._media = media

    def bounding_rect(self):
        return self.rect

    def media(self):
        return self._media


class FakeHandle(Cancellable):
    def __init__(self, on_cancel=None):
        self.cancelled = False
        self._on_cancel = on_cancel

    def cancel(self):
        self.cancelled = True
        if self._on_cancel:
            self._on_cancel()


class FakeTimer(FakeHandle):
    def __init__(self, due: float, seq: int, callback, interval: float | None):
        super().__init__()
        self.due = due
        self.seq = seq
        self.callback = callback
        self.interval = interval


class FakeHost(HostEnvironment):
    """In-memory page with a virtual clock."""

    def __init__(self, route: str = "/shorts/abc"):
        self.route = route
        self.clock = 0.0
        self.ready = True
        self.active: Renderer | None = None
        self.candidates: list[Renderer] = []
        self.height = 800.0
        self.timers: list[FakeTimer] = []
        self.navigation_handlers: list = []
        self.structure_handlers: list = []
        self.structure_filters: list[list[str]] = []
        self.ready_callbacks: list = []
        self._seq = itertools.count()

    def current_route(self):
        return self.route

    def is_tracked_route(self):
        return self.route.startswith("/shorts")

    def add_navigation_listener(self, handler):
        self.navigation_handlers.append(handler)
        return FakeHandle(lambda: self.navigation_handlers.remove(handler))

    def on_ready(self, callback):
        if self.ready:
            callback()
        else:
            self.ready_callbacks.append(callback)

    def observe_structure(self, handler, attribute_filter):
        self.structure_handlers.append(handler)
        self.structure_filters.append(attribute_filter)
        return FakeHandle(lambda: self.structure_handlers.remove(handler))

    def marked_active_renderer(self):
        return self.active

    def candidate_renderers(self):
        return list(self.candidates)

    def viewport_height(self):
        return self.height

    def now(self):
        return self.clock

    def set_interval(self, seconds, callback):
        timer = FakeTimer(self.clock + seconds, next(self._seq), callback, seconds)
        self.timers.append(timer)
        return timer

    def set_timeout(self, seconds, callback):
        timer = FakeTimer(self.clock + seconds, next(self._seq), callback, None)
        self.timers.append(timer)
        return timer

    # --- test drivers ---

    def pending_timers(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float):
        """Move the clock forward, firing timers in due order."""
        target = self.clock + seconds + 1e-9
        while True:
            due = [t for t in self.timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.clock = max(self.clock, timer.due)
            if timer.interval is None:
                timer.cancelled = True
            else:
                timer.due += timer.interval
            timer.callback()
        self.clock = target

    def navigate(self, route: str, event: NavigationEvent = NavigationEvent.NAVIGATE_FINISH):
        self.route = route
        for handler in list(self.navigation_handlers):
            handler(event)

    def mutate(self, changes):
        for handler in list(self.structure_handlers):
            handler(changes)

    def make_ready(self):
        self.ready = True
        callbacks, self.ready_callbacks = self.ready_callbacks, []
        for callback in callbacks:
            callback()


@pytest.fixture()
def host():
    return FakeHost()


@pytest.fixture()
def loops_config():
    return Config(mode=StopMode.LOOPS, loops_limit=3)


@pytest.fixture()
def seconds_config():
    return Config(mode=StopMode.SECONDS, seconds_limit=25)


@pytest.fixture()
def tracker(host, loops_config):
    return SessionTracker(host, loops_config)


@pytest.fixture()
def seconds_tracker(host, seconds_config):
    return SessionTracker(host, seconds_config)


@pytest.fixture()
def feed(host):
    """Two stacked renderers; the first fills the viewport."""
    first = FakeRenderer(0, 800, FakeMedia())
    second = FakeRenderer(800, 1600, FakeMedia())
    host.candidates = [first, second]
    return first, second


@pytest.fixture()
def scheduler(host, tracker, loops_config):
    return ObservationScheduler(host, tracker, loops_config)


@pytest.fixture()
def make_media():
    return FakeMedia


@pytest.fixture()
def make_renderer():
    return FakeRenderer
