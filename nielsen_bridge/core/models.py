"""
Nielsen Bridge — Data Models

Dataclasses for the player-side descriptors the bridge consumes
(sources, ads, event payloads) and for the per-session telemetry it keeps.
Metadata records themselves are plain dicts keyed by Nielsen wire names.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Dict, Optional

# A Nielsen metadata record: wire field name → value
NielsenMetadata = Dict[str, Any]


# ---------------------------------------------------------------------------
# Player events
# ---------------------------------------------------------------------------

class PlayerEvent(str, Enum):
    """Player events the bridge subscribes to."""
    SOURCE_LOADED = "sourceloaded"
    SOURCE_UNLOADED = "sourceunloaded"
    PLAYING = "playing"
    PAUSED = "paused"
    AD_BREAK_FINISHED = "adbreakfinished"
    AD_STARTED = "adstarted"
    AD_FINISHED = "adfinished"
    PLAYBACK_FINISHED = "playbackfinished"
    STALL_STARTED = "stallstarted"
    STALL_ENDED = "stallended"
    ERROR = "error"
    DESTROY = "destroy"


# ---------------------------------------------------------------------------
# Source + ad descriptors
# ---------------------------------------------------------------------------

@dataclass
class SourceConfig:
    """The loaded source as advertised by the player."""
    title: Optional[str] = None
    dash: Optional[str] = None       # primary manifest
    hls: Optional[str] = None        # fallback manifest
    progressive: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SourceConfig"]:
        if not data:
            return None
        return cls(
            title=data.get("title"),
            dash=data.get("dash"),
            hls=data.get("hls"),
            progressive=data.get("progressive"),
        )


@dataclass
class AdData:
    """Descriptive VAST data attached to an ad."""
    ad_title: Optional[str] = None
    ad_description: Optional[str] = None


@dataclass
class Ad:
    """
    A single inserted ad. `duration` is only set for linear ads.
    """
    id: Optional[str] = None
    media_file_url: Optional[str] = None
    duration: Optional[float] = None
    data: Optional[AdData] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ad":
        ad_data = data.get("data") or None
        return cls(
            id=data.get("id"),
            media_file_url=data.get("mediaFileUrl") or data.get("media_file_url"),
            duration=data.get("duration"),
            data=AdData(
                ad_title=ad_data.get("adTitle"),
                ad_description=ad_data.get("adDescription"),
            ) if ad_data else None,
        )


# ---------------------------------------------------------------------------
# Event payloads
# ---------------------------------------------------------------------------

@dataclass
class PlayerEventData:
    type: PlayerEvent
    timestamp: float = field(default_factory=time.time)


@dataclass
class AdEventData(PlayerEventData):
    ad: Optional[Ad] = None


@dataclass
class ErrorEventData(PlayerEventData):
    code: int = 0
    name: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Metadata override strategy
# ---------------------------------------------------------------------------

@dataclass
class MetadataStrategy:
    """
    Optional overrides for metadata construction. A missing callable
    falls back to the default `MetadataBuilder` path.
    """
    build_content_metadata: Optional[Callable[[Any], NielsenMetadata]] = None
    build_ad_metadata: Optional[Callable[[Ad, Any], NielsenMetadata]] = None


# ---------------------------------------------------------------------------
# Session telemetry
# ---------------------------------------------------------------------------

@dataclass
class SessionTelemetry:
    """Per-session counters — never crashes the session."""
    session_id: str = ""
    state: str = "idle"
    sdk_ready: bool = False
    metadata_loads: int = 0
    metadata_errors: int = 0
    playhead_updates: int = 0
    last_playhead: int = -1
    stops: int = 0
    ends: int = 0
    player_errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
