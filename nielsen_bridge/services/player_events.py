"""
Nielsen Bridge — Player Event Wrapper

Remembers every handler registered on a player so they can all be
removed in one call when the session is destroyed.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Tuple

from ..core.models import PlayerEvent

logger = logging.getLogger("nielsen.session")


class PlayerEventWrapper:
    def __init__(self, player: Any) -> None:
        self._player = player
        self._handlers: List[Tuple[PlayerEvent, Callable[[Any], None]]] = []

    def add(self, event: PlayerEvent, handler: Callable[[Any], None]) -> None:
        self._player.on(event, handler)
        self._handlers.append((event, handler))

    def clear(self) -> None:
        for event, handler in self._handlers:
            try:
                self._player.off(event, handler)
            except Exception as e:
                logger.debug(f"Could not unsubscribe {event.value}: {e}")
        self._handlers.clear()

    @property
    def count(self) -> int:
        return len(self._handlers)
