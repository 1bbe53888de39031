"""
Nielsen Bridge — Remote Player & SDK

When the player and the Nielsen browser SDK live in a web page, the page
relays both over a WebSocket:

  page → server   player events with a state snapshot, SDK readiness
  server → page   `load_sdk` requests and `ggpm` calls to replay on the
                  page's Nielsen instance

`RemotePlayer` mirrors the page's player so the orchestrator can read
position/duration synchronously; `RemoteSdkBundle` hands out instances whose
`ggPM` calls are queued for the socket writer.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from ..core.models import (
    Ad,
    AdEventData,
    ErrorEventData,
    PlayerEvent,
    PlayerEventData,
    SourceConfig,
)

logger = logging.getLogger("nielsen.remote")


# ---------------------------------------------------------------------------
# Player mirror
# ---------------------------------------------------------------------------

class RemotePlayer:
    """Player protocol implementation fed by page messages."""

    def __init__(self) -> None:
        self._listeners: Dict[PlayerEvent, List[Callable[[Any], None]]] = {}
        self._current_time: float = 0.0
        self._duration: float = 0.0
        self._live = False
        self._source: Optional[SourceConfig] = None

    # ---- Player protocol ----

    def get_current_time(self) -> float:
        return self._current_time

    def get_duration(self) -> float:
        return self._duration

    def is_live(self) -> bool:
        return self._live

    def get_source(self) -> Optional[SourceConfig]:
        return self._source

    def on(self, event: PlayerEvent, handler: Callable[[Any], None]) -> None:
        self._listeners.setdefault(event, []).append(handler)

    def off(self, event: PlayerEvent, handler: Callable[[Any], None]) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    # ---- Page → mirror ----

    def update_state(self, state: Optional[Dict[str, Any]]) -> None:
        if not state:
            return
        if "current_time" in state:
            self._current_time = float(state["current_time"] or 0)
        if "duration" in state:
            self._duration = float(state["duration"] or 0)
        if "is_live" in state:
            self._live = bool(state["is_live"])
        if "source" in state:
            self._source = SourceConfig.from_dict(state["source"])

    def emit(self, payload: PlayerEventData) -> None:
        for handler in list(self._listeners.get(payload.type, [])):
            handler(payload)

    def handle_message(self, message: Dict[str, Any]) -> None:
        """Apply a `player_event` message: refresh state, then dispatch."""
        self.update_state(message.get("state"))

        try:
            event = PlayerEvent(message.get("event", ""))
        except ValueError:
            logger.debug(f"Ignoring unknown player event {message.get('event')!r}")
            return

        timestamp = message.get("timestamp")
        extra = {"timestamp": float(timestamp)} if timestamp is not None else {}

        if event == PlayerEvent.AD_STARTED:
            ad = message.get("ad")
            payload: PlayerEventData = AdEventData(
                type=event, ad=Ad.from_dict(ad) if ad else None, **extra
            )
        elif event == PlayerEvent.ERROR:
            payload = ErrorEventData(
                type=event,
                code=int(message.get("code") or 0),
                name=str(message.get("name") or ""),
                data=message.get("data") or {},
                **extra,
            )
        else:
            payload = PlayerEventData(type=event, **extra)

        self.emit(payload)


# ---------------------------------------------------------------------------
# SDK relay
# ---------------------------------------------------------------------------

class RemoteSdkInstance:
    """SdkInstance whose calls are replayed by the page's Nielsen instance."""

    def __init__(self, outbox: Any, instance_name: str) -> None:
        self._outbox = outbox
        self.instance_name = instance_name
        self._ready = False
        self.error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self._ready

    def mark_ready(self) -> None:
        self._ready = True

    def mark_failed(self, message: str) -> None:
        self.error = message or "Nielsen SDK failed to load on the page."

    def ggPM(self, verb: str, arg: Any) -> None:  # noqa: N802 - vendor name
        self._outbox.put_nowait({
            "type": "ggpm",
            "instance": self.instance_name,
            "verb": verb,
            "arg": arg,
        })


class RemoteSdkBundle:
    """SdkBundle backed by the page; `nls_q` asks the page to load the SDK."""

    def __init__(self, outbox: Any) -> None:
        self._outbox = outbox
        self._instances: Dict[str, RemoteSdkInstance] = {}

    def get(self, instance_name: str) -> Optional[RemoteSdkInstance]:
        instance = self._instances.get(instance_name)
        if instance is not None and instance.ready:
            return instance
        return None

    def nls_q(self, app_id: str, instance_name: str, options: Dict[str, str]) -> RemoteSdkInstance:
        instance = RemoteSdkInstance(self._outbox, instance_name)
        self._instances[instance_name] = instance
        self._outbox.put_nowait({
            "type": "load_sdk",
            "app_id": app_id,
            "instance_name": instance_name,
            "options": options,
        })
        return instance

    def mark_ready(self, instance_name: str) -> None:
        instance = self._instances.get(instance_name)
        if instance is not None:
            instance.mark_ready()

    def mark_failed(self, instance_name: str, message: str) -> None:
        instance = self._instances.get(instance_name)
        if instance is not None:
            instance.mark_failed(message)


# ---------------------------------------------------------------------------
# Unload signal
# ---------------------------------------------------------------------------

class ManualUnloadHook:
    """UnloadHook fired explicitly, e.g. when the page's socket closes."""

    def __init__(self) -> None:
        self._callbacks: List[Callable[[], None]] = []

    def register(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def unregister(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @property
    def registered(self) -> int:
        return len(self._callbacks)

    def fire(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception as e:
                logger.error(f"Unload callback failed: {e}")
