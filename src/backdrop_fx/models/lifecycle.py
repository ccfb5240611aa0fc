"""
Lifecycle State Models
======================

Discrete states and outcomes for the effect lifecycle manager.

State machine:
    IDLE → ATTACHING → ATTACHED(config) → DETACHING → IDLE

    IDLE is also reachable from any state on teardown, on the track ending,
    or when a request is abandoned.
"""

from enum import Enum


class EffectState(str, Enum):
    """Lifecycle state of the effect on a track."""

    IDLE = "IDLE"
    ATTACHING = "ATTACHING"
    ATTACHED = "ATTACHED"
    DETACHING = "DETACHING"


class TrackReadyState(str, Enum):
    """Hardware-backed readiness of a capture track."""

    LIVE = "live"
    ENDED = "ended"


class AttachOutcome(str, Enum):
    """
    How an attach/detach request finished.

    Attributes:
        ATTACHED: The requested pipeline is now on the track
        DETACHED: The track is back to pass-through
        SUPERSEDED: A newer request took over; this one was a no-op
        TRACK_ENDED: The track ended before or during the switch
    """

    ATTACHED = "ATTACHED"
    DETACHED = "DETACHED"
    SUPERSEDED = "SUPERSEDED"
    TRACK_ENDED = "TRACK_ENDED"
