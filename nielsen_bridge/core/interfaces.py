"""
Nielsen Bridge — Collaborator Interfaces

Protocol definitions for everything the orchestrator talks to but does
not own:
  1. Player     — the media engine emitting lifecycle events
  2. Transport  — the four-verb tracking sink
  3. SDK        — the vendor bundle/instance produced by bootstrap
  4. Unload     — the process-wide "page is closing" signal

The orchestrator only ever reaches these through the protocols — never
through a well-known global.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from .models import NielsenMetadata, PlayerEvent, SourceConfig


# ═══════════════════════════════════════════════════════════════════════════
# Player
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class Player(Protocol):
    """The subset of a player API the bridge reads and subscribes to."""

    def get_current_time(self) -> float:
        """Current playback position in seconds."""
        ...

    def get_duration(self) -> float:
        """Duration of the current item in seconds."""
        ...

    def is_live(self) -> bool:
        ...

    def get_source(self) -> Optional[SourceConfig]:
        ...

    def on(self, event: PlayerEvent, handler: Callable[[Any], None]) -> None:
        ...

    def off(self, event: PlayerEvent, handler: Callable[[Any], None]) -> None:
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Transport
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class Transport(Protocol):
    """Forwards already-built tracking calls to the vendor."""

    def load_metadata(self, metadata: NielsenMetadata) -> None:
        ...

    def set_playhead_position(self, playhead: int) -> None:
        ...

    def stop_tracking(self, playhead: int) -> None:
        ...

    def end_tracking(self, playhead: int) -> None:
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Vendor SDK
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class SdkInstance(Protocol):
    """A named Nielsen SDK instance (one per `instance_name`)."""

    @property
    def ready(self) -> bool:
        """True once the instance accepts `ggPM` calls."""
        ...

    def ggPM(self, verb: str, arg: Any) -> None:  # noqa: N802 - vendor name
        ...


@runtime_checkable
class SdkBundle(Protocol):
    """
    Registry of SDK instances keyed by instance name. A bundle whose
    static queue snippet loaded also exposes
    `nls_q(app_id, instance_name, options) -> SdkInstance`.
    """

    def get(self, instance_name: str) -> Optional[SdkInstance]:
        ...


NlsQ = Callable[[str, str, Dict[str, str]], SdkInstance]


# ═══════════════════════════════════════════════════════════════════════════
# Unload signal
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class UnloadHook(Protocol):
    """Process-wide finalization signal (page unload, socket close, exit)."""

    def register(self, callback: Callable[[], None]) -> None:
        ...

    def unregister(self, callback: Callable[[], None]) -> None:
        ...
