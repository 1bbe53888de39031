"""
Nielsen Bridge — Measurements Tracker

Implements the Transport protocol on top of a ready Nielsen SDK instance.
Owns no state beyond the instance it was handed after bootstrap.
"""

from __future__ import annotations

import logging
from typing import Any

from ..core.interfaces import SdkInstance
from ..core.models import NielsenMetadata

logger = logging.getLogger("nielsen.tracker")


class MeasurementsTracker:
    """Sends the four Nielsen tracking verbs through `ggPM`."""

    def __init__(self, sdk_instance: SdkInstance, instance_name: str = "") -> None:
        self._sdk = sdk_instance
        self.instance_name = instance_name

    def _ggpm(self, verb: str, arg: Any) -> None:
        self._sdk.ggPM(verb, arg)

    def load_metadata(self, metadata: NielsenMetadata) -> None:
        logger.debug(f"Loading metadata: {metadata}")
        self._ggpm("loadMetadata", metadata)

    def set_playhead_position(self, playhead: int) -> None:
        logger.debug(f"Setting playhead position: {playhead}")
        self._ggpm("setPlayheadPosition", playhead)

    def stop_tracking(self, playhead: int) -> None:
        logger.debug(f"Stopping tracking at playhead: {playhead}")
        self._ggpm("stop", playhead)

    def end_tracking(self, playhead: int) -> None:
        logger.debug(f"Ending tracking at playhead: {playhead}")
        self._ggpm("end", playhead)
