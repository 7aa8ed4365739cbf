"""Pick the feed entry the user is currently watching."""

import logging
from typing import NamedTuple

from autopause.host.base import HostEnvironment, MediaElement, Renderer
from autopause.models import Rect

logger = logging.getLogger(__name__)


class Selection(NamedTuple):
    renderer: Renderer
    media: MediaElement


def viewport_score(rect: Rect, viewport_height: float) -> float:
    """Visible height of rect, minus how far its clamped center sits from the viewport center."""
    viewport_center = viewport_height / 2
    center = min(max(viewport_center, rect.top), rect.bottom)
    overlap = max(0.0, min(rect.bottom, viewport_height) - max(rect.top, 0.0))
    return overlap - abs(center - viewport_center)


def find_active_renderer(host: HostEnvironment) -> Renderer | None:
    """Return the renderer carrying the active marker, else the best-placed candidate.

    Ties keep the first candidate in document order. Returns None when there
    are no candidates at all.
    """
    active = host.marked_active_renderer()
    if active is not None:
        return active

    candidates = host.candidate_renderers()
    if not candidates:
        return None

    viewport_height = host.viewport_height()
    best: Renderer | None = None
    best_score = float("-inf")
    for renderer in candidates:
        score = viewport_score(renderer.bounding_rect(), viewport_height)
        if score > best_score:
            best_score = score
            best = renderer
    return best


def select_active(host: HostEnvironment) -> Selection | None:
    """Resolve the active renderer and its media element, or None if not determinable yet."""
    renderer = find_active_renderer(host)
    if renderer is None:
        return None
    media = renderer.media()
    if media is None:
        return None
    return Selection(renderer, media)
