"""
Nielsen Bridge — Measurements Session

================================================================================
PLAYER EVENTS → NIELSEN SESSION TRACKING
================================================================================

`NielsenMeasurements` is the bridge between one player and one Nielsen
SDK instance:

  1. BOOTSTRAP: construction schedules the SDK load as a task. Only on
     success is the transport created and the unload finalizer registered.
     On failure `on_error` is called and every tracking call becomes a
     silent no-op for the rest of the session.

  2. ATTACH: `attach_to(player, metadata)` binds the player (and optional
     preloaded content metadata) and subscribes the event handlers.

  3. EVENTS: every handler first asks the PlaybackStateMachine for a
     transition; side effects only happen when it is accepted, so repeated
     player events never produce repeated start/stop/end reports.

  4. TIMERS: the session owns two tasks:
       • playhead timer: ticks every 1 s, reports only changed positions
       • stall watchdog: one-shot, ends the session after a 30 s stall
     Both are cancelled on every path that ends their validity.

Handlers run synchronously on the event loop; the only suspension points
are the bootstrap task and the two timer tasks.
================================================================================
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import math
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.config import MeasurementsConfig, tracking_cfg
from ..core.errors import PlayerNotAttachedError, TransportNotReadyError
from ..core.interfaces import SdkBundle, Transport, UnloadHook
from ..core.models import (
    Ad,
    AdEventData,
    ErrorEventData,
    NielsenMetadata,
    PlayerEvent,
    SessionTelemetry,
)
from ..core.state_machine import PlaybackState, PlaybackStateMachine
from ..processing.metadata_builder import MetadataBuilder
from .player_events import PlayerEventWrapper
from .sdk_loader import load_sdk
from .tracker import MeasurementsTracker

logger = logging.getLogger("nielsen.session")


class AtexitUnloadHook:
    """Default unload signal for a standalone process: interpreter exit."""

    def register(self, callback: Callable[[], None]) -> None:
        atexit.register(callback)

    def unregister(self, callback: Callable[[], None]) -> None:
        atexit.unregister(callback)


class NielsenMeasurements:
    """
    Lifecycle:
        measurements = NielsenMeasurements(config, bundle)   # inside a running loop
        measurements.attach_to(player, {"assetId": "vid-1", "subbrand": "c05"})
        await measurements.ready()    # optional: wait for the SDK
        # ... player events drive tracking ...
        # player "destroy" (or the unload hook) finalizes the session
    """

    def __init__(
        self,
        config: MeasurementsConfig,
        bundle: Optional[SdkBundle],
        unload_hook: Optional[UnloadHook] = None,
        session_id: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.telemetry = SessionTelemetry(session_id=self.session_id)

        self._bundle = bundle
        self._unload_hook: UnloadHook = unload_hook or AtexitUnloadHook()
        self._sleep = sleep

        self._state_machine = PlaybackStateMachine()
        self._handlers: Optional[PlayerEventWrapper] = None
        self._player: Any = None
        # Content metadata pre-loaded when attaching to a player
        self._content_metadata: Optional[NielsenMetadata] = None

        # Set once, only after a successful bootstrap
        self._tracker: Optional[Transport] = None
        self._unload_registered = False
        self._destroyed = False
        # Set by the unload finalizer so a following destroy does not report end again
        self._end_reported = False

        self._last_playhead: int = -1
        self._playhead_task: Optional[asyncio.Task] = None
        self._stall_task: Optional[asyncio.Task] = None

        self._bootstrap_task = asyncio.get_running_loop().create_task(
            self._bootstrap(), name=f"sdk-{self.session_id}"
        )
        logger.info(f"[{self.session_id}] Measurements created (instance={config.instance_name})")

    # ── Accessors ───────────────────────────────────────────────────────

    @property
    def player(self) -> Any:
        if self._player is None:
            raise PlayerNotAttachedError(
                "Player is not initialized. Attach it via `attach_to` before using the integration."
            )
        return self._player

    @property
    def tracker(self) -> Transport:
        if self._tracker is None:
            raise TransportNotReadyError(
                f"Nielsen SDK instance \"{self.config.instance_name}\" is not initialized."
            )
        return self._tracker

    @property
    def current_state(self) -> PlaybackState:
        return self._state_machine.current_state

    @property
    def is_ready(self) -> bool:
        return self._tracker is not None

    async def ready(self) -> bool:
        """Wait for the bootstrap attempt; True when tracking is live."""
        try:
            await self._bootstrap_task
        except asyncio.CancelledError:
            # Bootstrap abandoned by destroy(); our own cancellation propagates
            if not self._bootstrap_task.cancelled():
                raise
        return self._tracker is not None

    def status(self) -> Dict[str, Any]:
        self.telemetry.state = self._state_machine.current_state.value
        self.telemetry.sdk_ready = self._tracker is not None
        return self.telemetry.to_dict()

    # ── Bootstrap ───────────────────────────────────────────────────────

    async def _bootstrap(self) -> None:
        try:
            instance = await load_sdk(self.config, self._bundle, sleep=self._sleep)
        except Exception as e:
            logger.error(f"[{self.session_id}] Nielsen SDK unavailable — tracking disabled: {e}")
            self._notify_error(e)
            return

        if self._destroyed:
            logger.info(f"[{self.session_id}] SDK ready after destroy — ignoring")
            return

        self._tracker = MeasurementsTracker(instance, self.config.instance_name)
        self._unload_hook.register(self._on_unload)
        self._unload_registered = True
        logger.info(f"[{self.session_id}] Tracking ready")

    def _notify_error(self, error: Exception) -> None:
        if self.config.on_error is None:
            return
        try:
            self.config.on_error(error)
        except Exception as e:
            logger.error(f"[{self.session_id}] on_error callback failed: {e}")

    # ── Attachment ──────────────────────────────────────────────────────

    def attach_to(self, player: Any, preloaded_content_metadata: Optional[NielsenMetadata] = None) -> None:
        """Bind a player instance and subscribe to its lifecycle events."""
        if self._handlers is not None:
            self._handlers.clear()
        # Timers armed for the previous player must not read the new one
        self._stop_playhead_timer()
        self._clear_stall_watchdog()

        self._player = player
        if preloaded_content_metadata:
            self._content_metadata = dict(preloaded_content_metadata)

        self._handlers = PlayerEventWrapper(player)
        self._register_player_events()
        logger.info(f"[{self.session_id}] Attached to player ({self._handlers.count} handlers)")

    def _register_player_events(self) -> None:
        add = self._handlers.add

        add(PlayerEvent.SOURCE_LOADED, self._on_source_loaded)
        add(PlayerEvent.SOURCE_UNLOADED, self._on_source_unloaded)
        add(PlayerEvent.PLAYING, self._on_play)
        add(PlayerEvent.PAUSED, self._on_stop)
        add(PlayerEvent.AD_BREAK_FINISHED, self._on_ad_break_finished)
        add(PlayerEvent.AD_STARTED, self._on_ad_started)
        add(PlayerEvent.AD_FINISHED, self._on_ad_finished)
        add(PlayerEvent.PLAYBACK_FINISHED, self._on_playback_finished)
        add(PlayerEvent.DESTROY, self._on_destroy)
        add(PlayerEvent.STALL_STARTED, self._on_stall)
        add(PlayerEvent.STALL_ENDED, self._on_stall_ended)
        add(PlayerEvent.ERROR, self._on_error)

    # ── Playhead timer ──────────────────────────────────────────────────

    def _position(self) -> int:
        return math.floor(self.player.get_current_time())

    def _update_playhead(self) -> None:
        current = self._position()
        if current != self._last_playhead:
            self._last_playhead = current
            self.telemetry.last_playhead = current
            self._send("set_playhead_position", current)

    def _start_playhead_timer(self) -> None:
        if self._playhead_task is not None:
            return
        self._update_playhead()
        self._playhead_task = asyncio.get_running_loop().create_task(
            self._playhead_worker(), name=f"playhead-{self.session_id}"
        )

    async def _playhead_worker(self) -> None:
        while True:
            await self._sleep(tracking_cfg.playhead_interval)
            try:
                self._update_playhead()
            except Exception as e:
                logger.error(f"[{self.session_id}] Playhead update failed: {e}")

    def _stop_playhead_timer(self) -> None:
        if self._playhead_task is not None:
            self._playhead_task.cancel()
            self._playhead_task = None

    # ── Stall watchdog ──────────────────────────────────────────────────

    def _arm_stall_watchdog(self) -> None:
        self._clear_stall_watchdog()
        self._stall_task = asyncio.get_running_loop().create_task(
            self._stall_watchdog(), name=f"stall-{self.session_id}"
        )

    async def _stall_watchdog(self) -> None:
        await self._sleep(tracking_cfg.max_stall_duration)
        self._stall_task = None
        self._stop_playhead_timer()
        try:
            pos = self._position()
        except PlayerNotAttachedError:
            return
        logger.warning(f"[{self.session_id}] Stall over limit, ending session")
        self._report_end(pos)
        # Best-effort: the session is finalized whether or not ENDED is reachable
        self._state_machine.on_end()

    def _clear_stall_watchdog(self) -> None:
        if self._stall_task is not None:
            self._stall_task.cancel()
            self._stall_task = None

    # ── Transport ───────────────────────────────────────────────────────

    def _send(self, verb: str, arg: Any) -> None:
        """Forward one tracking call. No-op until bootstrap succeeds; never raises."""
        if self._tracker is None:
            return
        try:
            getattr(self._tracker, verb)(arg)
        except Exception as e:
            logger.error(f"[{self.session_id}] Transport {verb} failed: {e}")
            return

        if verb == "set_playhead_position":
            self.telemetry.playhead_updates += 1
        elif verb == "load_metadata":
            self.telemetry.metadata_loads += 1
        elif verb == "stop_tracking":
            self.telemetry.stops += 1
        elif verb == "end_tracking":
            self.telemetry.ends += 1

    def _report_stop(self, pos: int) -> None:
        self._send("stop_tracking", pos)

    def _report_end(self, pos: int) -> None:
        self._send("end_tracking", pos)

    # ── Metadata ────────────────────────────────────────────────────────

    def _strategy(self, name: str) -> Optional[Callable[..., NielsenMetadata]]:
        return getattr(self.config.metadata_builder, name, None)

    def _build_content_metadata(self) -> NielsenMetadata:
        override = self._strategy("build_content_metadata")
        if override is not None:
            return override(self.player)
        return (
            MetadataBuilder({"type": "content", **(self._content_metadata or {})})
            .with_content(self.player)
            .build()
        )

    def _build_ad_metadata(self, ad: Any) -> NielsenMetadata:
        override = self._strategy("build_ad_metadata")
        if override is not None:
            return override(ad, self.player)
        return (
            MetadataBuilder({"type": "ad", **(self._content_metadata or {})})
            .with_length(self.player.get_duration())
            .with_ad(ad)
            .build()
        )

    def _load_metadata_for_content(self) -> bool:
        try:
            metadata = self._build_content_metadata()
        except Exception as e:
            self.telemetry.metadata_errors += 1
            logger.error(f"[{self.session_id}] Could not create content metadata: {e}")
            return False
        self._send("load_metadata", metadata)
        return True

    # ── Player event handlers ───────────────────────────────────────────

    def _on_source_loaded(self, event: Any = None) -> None:
        self._load_metadata_for_content()

    def _on_source_unloaded(self, event: Any = None) -> None:
        # Unloading the source finalizes exactly like playback finishing
        self._on_playback_finished(event)

    def _on_play(self, event: Any = None) -> None:
        if self._state_machine.current_state == PlaybackState.ENDED:
            # Replay / loop: no new source-loaded event will arrive
            self._load_metadata_for_content()
        if self._state_machine.on_play():
            self._end_reported = False
            self._clear_stall_watchdog()
            self._start_playhead_timer()

    def _on_stop(self, event: Any = None) -> None:
        if self._state_machine.on_stop():
            self._stop_playhead_timer()
            self._report_stop(self._position())

    def _on_ad_break_finished(self, event: Any = None) -> None:
        self._load_metadata_for_content()
        self._start_playhead_timer()

    def _on_ad_started(self, event: Optional[AdEventData] = None) -> None:
        ad = getattr(event, "ad", None) or Ad()
        try:
            metadata = self._build_ad_metadata(ad)
        except Exception as e:
            self.telemetry.metadata_errors += 1
            logger.error(f"[{self.session_id}] Could not create ad metadata: {e}")
            return
        self._send("load_metadata", metadata)
        self._start_playhead_timer()

    def _on_ad_finished(self, event: Any = None) -> None:
        self._report_stop(self._position())

    def _on_playback_finished(self, event: Any = None) -> None:
        if self._state_machine.on_end():
            self._stop_playhead_timer()
            self._clear_stall_watchdog()
            if not self._end_reported:
                self._report_end(self._position())

    def _on_stall(self, event: Any = None) -> None:
        if self._state_machine.on_stop():
            self._stop_playhead_timer()
            self._arm_stall_watchdog()

    def _on_stall_ended(self, event: Any = None) -> None:
        if self._state_machine.on_play():
            self._end_reported = False
            self._clear_stall_watchdog()
            self._start_playhead_timer()

    def _on_error(self, event: Optional[ErrorEventData] = None) -> None:
        self.telemetry.player_errors += 1
        if not isinstance(event, ErrorEventData):
            logger.error(f"[{self.session_id}] Player Error")
            return
        logger.error(f"[{self.session_id}] Player Error {event.code} {event.name}: {event.data}")

    def _on_destroy(self, event: Any = None) -> None:
        self._on_playback_finished(event)
        self._stop_playhead_timer()
        self._clear_stall_watchdog()
        if self._handlers is not None:
            self._handlers.clear()
        if self._unload_registered:
            self._unload_hook.unregister(self._on_unload)
            self._unload_registered = False
        if not self._bootstrap_task.done():
            self._bootstrap_task.cancel()
        self._destroyed = True
        logger.info(f"[{self.session_id}] Destroyed — {self.status()}")

    def _on_unload(self) -> None:
        """Page/process is closing: report end without touching the state machine."""
        self._stop_playhead_timer()
        self._clear_stall_watchdog()
        if self._player is None or self._end_reported:
            return
        try:
            self._report_end(self._position())
            self._end_reported = True
        except Exception as e:
            logger.error(f"[{self.session_id}] Unload finalization failed: {e}")

    # ── Public lifecycle ────────────────────────────────────────────────

    def unload(self) -> None:
        """Fire the unload finalization directly (e.g. on socket close)."""
        self._on_unload()

    def destroy(self) -> None:
        """Same as the player emitting its destroy event."""
        if not self._destroyed:
            self._on_destroy()
