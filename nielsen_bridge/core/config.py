"""
Nielsen Bridge — Configuration

Centralised settings from environment variables.
All tracking constants live here — zero magic numbers in other files.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Optional

from dotenv import load_dotenv

if TYPE_CHECKING:
    from .models import MetadataStrategy

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))
    cors_origins: tuple[str, ...] = (
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    )


# ---------------------------------------------------------------------------
# Nielsen SDK defaults
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SDKConfig:
    """Process-wide Nielsen SDK defaults (overridable per session)."""
    app_id: str = os.getenv("NIELSEN_APP_ID", "")
    instance_name: str = os.getenv("NIELSEN_INSTANCE_NAME", "nielsen-bridge")
    optout: bool = _env_flag("NIELSEN_OPTOUT", False)
    enable_fpid: bool = _env_flag("NIELSEN_ENABLE_FPID", True)
    debug: bool = _env_flag("NIELSEN_DEBUG", False)
    timeout_ms: int = int(os.getenv("NIELSEN_TIMEOUT_MS", "5000"))

    @property
    def has_app_id(self) -> bool:
        return bool(self.app_id)


# ---------------------------------------------------------------------------
# Tracking tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrackingConfig:
    # Playhead polling cadence (seconds)
    playhead_interval: float = 1.0
    # Stall longer than this ends the session (seconds)
    max_stall_duration: float = 30.0
    # Reported length for live streams (seconds)
    live_stream_length: int = 86400
    # Ceiling for the serialized metadata query string (bytes)
    max_metadata_bytes: int = 2048
    # SDK readiness poll cadence (seconds)
    sdk_poll_interval: float = 0.1


# ---------------------------------------------------------------------------
# Per-session configuration
# ---------------------------------------------------------------------------

@dataclass
class MeasurementsConfig:
    """
    Options for one `NielsenMeasurements` instance.

    `on_error` receives setup/runtime failures (SDK load failure or timeout).
    `metadata_builder` may override how content and ad metadata are built.
    """
    app_id: str
    instance_name: str
    options: Dict[str, str] = field(default_factory=dict)
    # Disables all tracking on the Nielsen side (user consent)
    optout: bool = False
    enable_fpid: bool = True
    # Turns on Nielsen console diagnostics
    debug: bool = False
    on_error: Optional[Callable[[Exception], None]] = None
    timeout_ms: int = 5000
    metadata_builder: Optional["MetadataStrategy"] = None

    def __post_init__(self) -> None:
        if not self.app_id:
            raise ValueError("Nielsen appId is required")
        if not self.instance_name:
            raise ValueError("Nielsen instanceName is required")

    @classmethod
    def from_env(cls, **overrides) -> "MeasurementsConfig":
        """Build a config from `sdk_cfg`, letting keyword arguments win."""
        values = dict(
            app_id=sdk_cfg.app_id,
            instance_name=sdk_cfg.instance_name,
            optout=sdk_cfg.optout,
            enable_fpid=sdk_cfg.enable_fpid,
            debug=sdk_cfg.debug,
            timeout_ms=sdk_cfg.timeout_ms,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

server_cfg = ServerConfig()
sdk_cfg = SDKConfig()
tracking_cfg = TrackingConfig()
