"""
Nielsen Bridge — Playback State Machine

Enforces the playback lifecycle: IDLE → PLAYING ⇄ STOPPED → ENDED.
Every side effect the orchestrator produces (playhead timer, stop/end
reports) is gated on a transition accepted here, so duplicate player
events never produce duplicate tracking calls.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from enum import Enum
from typing import Deque, Dict, List, Set

logger = logging.getLogger("nielsen.state")


class PlaybackState(str, Enum):
    """Playback session lifecycle states."""
    IDLE = "idle"          # Attached, nothing played yet
    PLAYING = "playing"    # Playhead advancing
    STOPPED = "stopped"    # Paused or stalled
    ENDED = "ended"        # Session finished (replay allowed)


# Legal state transitions
_TRANSITIONS: Dict[PlaybackState, Set[PlaybackState]] = {
    PlaybackState.IDLE:    {PlaybackState.PLAYING, PlaybackState.STOPPED},
    PlaybackState.PLAYING: {PlaybackState.STOPPED, PlaybackState.ENDED},
    PlaybackState.STOPPED: {PlaybackState.PLAYING, PlaybackState.ENDED},
    PlaybackState.ENDED:   {PlaybackState.IDLE, PlaybackState.PLAYING},
}

HISTORY_MAX = 50


class PlaybackStateMachine:
    """
    Tracks playback state and rejects illegal or repeated transitions.

    Usage:
        sm = PlaybackStateMachine()
        sm.on_play()    # True  (IDLE → PLAYING)
        sm.on_play()    # False (already PLAYING)
        sm.on_end()     # True  (PLAYING → ENDED)
    """

    def __init__(self) -> None:
        self._state = PlaybackState.IDLE
        self._history: Deque[Dict] = deque(maxlen=HISTORY_MAX)

    @property
    def current_state(self) -> PlaybackState:
        return self._state

    @property
    def history(self) -> List[Dict]:
        return list(self._history)

    def transition_to(self, target: PlaybackState) -> bool:
        """
        Attempt a transition. Returns False (state unchanged) when the
        target is not reachable from the current state, including itself.
        """
        if target not in _TRANSITIONS.get(self._state, set()):
            logger.debug(f"Rejected transition: {self._state.value} → {target.value}")
            return False

        prev = self._state
        self._state = target
        self._history.append({
            "from": prev.value,
            "to": target.value,
            "timestamp": time.time(),
        })
        logger.debug(f"STATE: {prev.value} → {target.value}")
        return True

    def on_play(self) -> bool:
        return self.transition_to(PlaybackState.PLAYING)

    def on_stop(self) -> bool:
        return self.transition_to(PlaybackState.STOPPED)

    def on_end(self) -> bool:
        return self.transition_to(PlaybackState.ENDED)
