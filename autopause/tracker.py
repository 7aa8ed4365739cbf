"""Session state machine for the tracked video.

Owns the current media element, its TrackingSession and the navigation
route it was seen under. Decides when to attach, reset in place, detach and
fire the stop action.
"""

import logging
import math

from autopause.config import Config
from autopause.cycles import CycleDetector
from autopause.hooks import ListenerTable
from autopause.host.base import HostEnvironment, MediaElement, Renderer
from autopause.models import MediaEvent, StopMode, TrackerState, TrackingSession

logger = logging.getLogger(__name__)


def _finite(value: float) -> float:
    """Return value, or 0.0 for NaN / infinity / None."""
    if value is None or not math.isfinite(value):
        return 0.0
    return value


class SessionTracker:
    """Tracks one media element at a time and enforces the stop limit."""

    def __init__(
        self,
        host: HostEnvironment,
        config: Config,
        detector: CycleDetector | None = None,
    ) -> None:
        self.host = host
        self.config = config
        self.detector = detector or CycleDetector(config.cycles)
        self.media: MediaElement | None = None
        self.renderer: Renderer | None = None
        self.session: TrackingSession | None = None
        self.route: str | None = None
        self._hooks = ListenerTable({
            MediaEvent.TIME_UPDATE: self._on_time_update,
            MediaEvent.ENDED: self._on_ended,
            MediaEvent.SEEKING: self._on_seeking,
            MediaEvent.PAUSE: self._on_pause,
            MediaEvent.PLAYING: self._on_playing,
            MediaEvent.LOADED_METADATA: self._on_loaded_metadata,
        })

    @property
    def state(self) -> TrackerState:
        if self.session is None:
            return TrackerState.IDLE
        if self.session.stopped:
            return TrackerState.STOPPED
        return TrackerState.TRACKING

    # --- lifecycle ---

    def offer(self, media: MediaElement, renderer: Renderer | None, route: str) -> None:
        """Accept the selector's pick for the given route.

        Same element and same route is a no-op. Same element under a new route
        resets in place. A different element replaces the current one.
        """
        if media is self.media:
            if route != self.route:
                self.route = route
                self.reset("route-changed-same-item")
            return

        self.route = route
        logger.info("New active video detected. route=%s", route)
        self.attach(media, renderer)

    def attach(self, media: MediaElement, renderer: Renderer | None = None) -> None:
        self.detach("switch")
        self.media = media
        self.renderer = renderer
        self._hooks.bind(media)
        self.reset("attach")
        logger.info(
            "Attached to video. mode=%s %s", self.config.mode.value, self.config.describe_limit(),
        )

    def reset(self, reason: str) -> None:
        """Zero the counters for the current element without switching to another one."""
        if self.media is None:
            return
        position = _finite(self.media.current_time)
        self.session = TrackingSession(last_position=position, reset_at=self.host.now())
        logger.info("State reset (%s). t=%.2fs route=%s", reason, position, self.route)

    def detach(self, reason: str) -> None:
        if self.media is None:
            return
        self._hooks.unbind()
        logger.info("Detached from video (reason: %s). Final state: %s", reason, self.session)
        self.media = None
        self.renderer = None
        self.session = None

    def note_route(self, route: str | None) -> None:
        """Record a route reported by the navigation collaborator."""
        self.route = route

    # --- stop action ---

    def stop(self, reason: str) -> None:
        """Pause the tracked element once per session, muting it if pause fails."""
        media, session = self.media, self.session
        if media is None or session is None or session.stopped:
            return
        session.stopped = True
        try:
            media.pause()
            logger.info("Paused video. reason=%s", reason)
        except Exception as e:
            logger.warning("pause() failed; muting as fallback. reason=%s err=%s", reason, e)
            try:
                media.mute()
            except Exception:
                logger.warning("mute() failed as well. reason=%s", reason, exc_info=True)

    def _loops_limit_reached(self) -> bool:
        return (
            self.config.mode == StopMode.LOOPS
            and self.session is not None
            and self.session.cycle_count >= self.config.limit
        )

    # --- media event handlers ---

    def _live_session(self) -> TrackingSession | None:
        if self.media is None or self.session is None or self.session.stopped:
            return None
        return self.session

    def _on_loaded_metadata(self) -> None:
        # New media loaded into the same element
        self.reset("loadedmetadata")

    def _on_playing(self) -> None:
        if self.media is None or self.session is None:
            return
        logger.debug(
            "Video playing. t=%.2fs dur=%.2fs",
            _finite(self.media.current_time), _finite(self.media.duration),
        )

    def _on_pause(self) -> None:
        if self.media is None or self.session is None:
            return
        logger.debug("Video paused. paused_by_stop=%s", self.session.stopped)

    def _on_ended(self) -> None:
        session = self._live_session()
        if session is None:
            return
        self.detector.on_ended(session)
        if self._loops_limit_reached():
            self.stop("loops-ended")

    def _on_seeking(self) -> None:
        session = self._live_session()
        if session is None:
            return
        position = _finite(self.media.current_time)
        if self.detector.on_seek(session, position) and self._loops_limit_reached():
            self.stop("loops-seeking")

    def _on_time_update(self) -> None:
        session = self._live_session()
        if session is None:
            return

        media = self.media
        position = _finite(media.current_time)
        duration = _finite(media.duration)

        # Same element kept across a route change and the other hooks missed it
        route = self.host.current_route()
        if route != self.route and self.host.is_tracked_route():
            self.route = route
            self.reset("route-changed-during-playback")
            session = self.session

        wrapped = self.detector.on_sample(session, position, self.host.now())
        if wrapped and self._loops_limit_reached():
            self.stop("loops-wrap")
            return

        if self.config.mode == StopMode.SECONDS:
            baseline = 0.0 if wrapped else session.last_position
            session.accumulated_seconds += max(0.0, position - baseline)
            if wrapped and duration > 0:
                session.accumulated_seconds += max(0.0, duration - session.last_position)

            if session.accumulated_seconds >= self.config.limit:
                logger.info(
                    "Seconds limit reached: %.2f >= %g",
                    session.accumulated_seconds, self.config.limit,
                )
                self.stop("seconds")
                return

        if duration > 0:
            session.near_end = duration - position < self.config.cycles.near_end_seconds

        session.last_position = position
