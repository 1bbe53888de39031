"""
Nielsen Bridge — Session Registry

Maps session_id → NielsenMeasurements. Single event loop, no locking.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..core.config import MeasurementsConfig
from ..core.interfaces import SdkBundle, UnloadHook
from .measurements import NielsenMeasurements

logger = logging.getLogger("nielsen.registry")


class MeasurementsRegistry:
    """Maps session_id → NielsenMeasurements."""

    def __init__(self) -> None:
        self._sessions: Dict[str, NielsenMeasurements] = {}

    def create(
        self,
        session_id: str,
        config: MeasurementsConfig,
        bundle: Optional[SdkBundle],
        unload_hook: Optional[UnloadHook] = None,
    ) -> NielsenMeasurements:
        measurements = NielsenMeasurements(
            config,
            bundle,
            unload_hook=unload_hook,
            session_id=session_id,
        )
        self._sessions[session_id] = measurements
        logger.info(f"MeasurementsRegistry: created {session_id} (total: {len(self._sessions)})")
        return measurements

    def close(self, session_id: str) -> Optional[Dict[str, Any]]:
        measurements = self._sessions.pop(session_id, None)
        if measurements is None:
            return None
        measurements.destroy()
        logger.info(f"MeasurementsRegistry: removed {session_id} (total: {len(self._sessions)})")
        return measurements.status()

    def close_all(self) -> None:
        for sid in list(self._sessions.keys()):
            self.close(sid)

    def get(self, session_id: str) -> Optional[NielsenMeasurements]:
        return self._sessions.get(session_id)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    @property
    def all_sessions(self) -> Dict[str, NielsenMeasurements]:
        return dict(self._sessions)
