"""Pydantic models for autopause."""

from enum import Enum

from pydantic import BaseModel


class StopMode(str, Enum):
    SECONDS = "seconds"
    LOOPS = "loops"


class TrackerState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    STOPPED = "stopped"


class MediaEvent(str, Enum):
    """Per-item playback callbacks, named after the DOM media events."""
    TIME_UPDATE = "timeupdate"
    ENDED = "ended"
    SEEKING = "seeking"
    PAUSE = "pause"
    PLAYING = "playing"
    LOADED_METADATA = "loadedmetadata"


class NavigationEvent(str, Enum):
    NAVIGATE_START = "yt-navigate-start"
    NAVIGATE_FINISH = "yt-navigate-finish"
    PAGE_DATA_UPDATED = "yt-page-data-updated"
    POPSTATE = "popstate"
    DOM_READY = "dom-ready"


class ChangeKind(str, Enum):
    ATTRIBUTES = "attributes"
    CHILD_LIST = "childList"


class StructuralChange(BaseModel):
    """One mutation record from the structural observer."""
    kind: ChangeKind
    attribute_name: str | None = None
    added: int = 0
    removed: int = 0


class Rect(BaseModel):
    top: float
    bottom: float
    left: float = 0.0
    right: float = 0.0

    @property
    def height(self) -> float:
        return self.bottom - self.top


class TrackingSession(BaseModel):
    """Mutable counters for the item currently being tracked.

    Created on attach, zeroed on reset-in-place, dropped on detach.
    """
    accumulated_seconds: float = 0.0
    cycle_count: int = 0
    last_position: float = 0.0
    stopped: bool = False
    near_end: bool = False
    reset_at: float = 0.0
