"""
Test doubles for the bridge: a scriptable player, a recording SDK, and a
virtual clock that drives the session's timer tasks without wall-clock waits.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from nielsen_bridge.core.models import PlayerEvent, PlayerEventData, SourceConfig


async def settle(rounds: int = 10) -> None:
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class VirtualClock:
    """Drop-in for `asyncio.sleep`; time only moves on `advance()`."""

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self._sleepers: List[Tuple[float, int, asyncio.Future]] = []

    async def sleep(self, delay: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self._seq += 1
        self._sleepers.append((self.now + delay, self._seq, fut))
        await fut

    @property
    def pending(self) -> int:
        return sum(1 for _, _, fut in self._sleepers if not fut.done())

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            await settle()
            self._sleepers = [s for s in self._sleepers if not s[2].done()]
            due = sorted(s for s in self._sleepers if s[0] <= target)
            if not due:
                break
            entry = due[0]
            self._sleepers.remove(entry)
            self.now = entry[0]
            entry[2].set_result(None)
        self.now = target
        await settle()


class FakePlayer:
    """Player protocol double; tests set its state and fire events."""

    def __init__(
        self,
        current_time: float = 0.0,
        duration: float = 100,
        live: bool = False,
        source: Optional[SourceConfig] = None,
    ) -> None:
        self.current_time = current_time
        self.duration = duration
        self.live = live
        self.source = source
        self._listeners: Dict[PlayerEvent, List[Callable[[Any], None]]] = {}

    def get_current_time(self) -> float:
        return self.current_time

    def get_duration(self) -> float:
        return self.duration

    def is_live(self) -> bool:
        return self.live

    def get_source(self) -> Optional[SourceConfig]:
        return self.source

    def on(self, event: PlayerEvent, handler: Callable[[Any], None]) -> None:
        self._listeners.setdefault(event, []).append(handler)

    def off(self, event: PlayerEvent, handler: Callable[[Any], None]) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self) -> int:
        return sum(len(h) for h in self._listeners.values())

    def fire(self, event: PlayerEvent, payload: Optional[PlayerEventData] = None) -> None:
        payload = payload or PlayerEventData(type=event)
        for handler in list(self._listeners.get(event, [])):
            handler(payload)


class FakeSdkInstance:
    """Records every `ggPM` call as (verb, arg)."""

    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.error: Optional[str] = None
        self.calls: List[Tuple[str, Any]] = []

    def ggPM(self, verb: str, arg: Any) -> None:  # noqa: N802
        self.calls.append((verb, arg))

    def args(self, verb: str) -> List[Any]:
        return [arg for v, arg in self.calls if v == verb]

    def verbs(self) -> List[str]:
        return [v for v, _ in self.calls]


class FakeSdkBundle:
    """SdkBundle double whose `nls_q` hands out FakeSdkInstances."""

    def __init__(self, ready: bool = True) -> None:
        self._ready = ready
        self.instances: Dict[str, FakeSdkInstance] = {}
        self.queued: List[Tuple[str, str, Dict[str, str]]] = []
        self.pending: Optional[FakeSdkInstance] = None

    def get(self, instance_name: str) -> Optional[FakeSdkInstance]:
        return self.instances.get(instance_name)

    def nls_q(self, app_id: str, instance_name: str, options: Dict[str, str]) -> FakeSdkInstance:
        self.queued.append((app_id, instance_name, options))
        instance = FakeSdkInstance(ready=self._ready)
        self.pending = instance
        return instance
