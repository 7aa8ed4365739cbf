"""Loop detection for media that restarts without a reliable end event.

Three signals count a completed cycle, each on its own:

  1. The element reports ``ended``.
  2. A seek lands near the start after the position was well past it.
  3. A routine position sample is lower than the previous one (a wrap),
     unless the session was reset moments ago and the baseline is stale.

A single real loop can trip more than one of these. That over-count is
left as is; tightening it would change when the limit is reached.
"""

import logging

from autopause.config import CycleConfig
from autopause.models import TrackingSession

logger = logging.getLogger(__name__)


class CycleDetector:
    """Applies the loop heuristics to a TrackingSession."""

    def __init__(self, config: CycleConfig | None = None) -> None:
        self.config = config or CycleConfig()

    def on_ended(self, session: TrackingSession) -> bool:
        session.cycle_count += 1
        logger.debug("Loop detected via ended. loops=%d", session.cycle_count)
        return True

    def on_seek(self, session: TrackingSession, position: float) -> bool:
        """Count a cycle if the seek jumped back to the start."""
        cfg = self.config
        if position < cfg.seek_start_max and session.last_position > cfg.min_prior_position:
            session.cycle_count += 1
            logger.debug("Loop detected via seek to start. loops=%d", session.cycle_count)
            return True
        return False

    def in_reset_grace(self, session: TrackingSession, now: float) -> bool:
        return now - session.reset_at < self.config.reset_grace_seconds

    def is_wrap(self, session: TrackingSession, position: float, now: float) -> bool:
        cfg = self.config
        if self.in_reset_grace(session, now):
            return False
        return (
            session.last_position > cfg.min_prior_position
            and position + cfg.wrap_tolerance < session.last_position
        )

    def on_sample(self, session: TrackingSession, position: float, now: float) -> bool:
        """Count a cycle if this sample wrapped around. Returns whether it did."""
        if not self.is_wrap(session, position, now):
            return False
        session.cycle_count += 1
        logger.debug(
            "Loop detected via wrap. last=%.2fs now=%.2fs loops=%d",
            session.last_position, position, session.cycle_count,
        )
        return True
