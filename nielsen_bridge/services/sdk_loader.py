"""
Nielsen Bridge — SDK Loader

Asynchronous bootstrap of a named Nielsen SDK instance:

  1. Reuse an instance already registered in the bundle under the name.
  2. Otherwise queue a new one through the bundle's `nls_q` static queue
     entry point, with the consent/debug options folded in.
  3. Poll the instance until it reports ready, bounded by `timeout_ms`.

Any failure surfaces as SdkLoadError; callers decide how to degrade.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from ..core.config import MeasurementsConfig, tracking_cfg
from ..core.errors import SdkLoadError
from ..core.interfaces import NlsQ, SdkBundle, SdkInstance

logger = logging.getLogger("nielsen.sdk")


def build_sdk_options(config: MeasurementsConfig) -> Dict[str, str]:
    """User options plus the string-encoded consent and debug flags."""
    options: Dict[str, str] = {
        **config.options,
        "optout": "true" if config.optout else "false",
        "enableFpid": "true" if config.enable_fpid else "false",
    }
    if config.debug:
        options["nol_sdkDebug"] = "debug"
    return options


async def _wait_until_ready(
    instance: SdkInstance,
    poll_interval: float,
    sleep: Callable[[float], Awaitable[None]],
) -> None:
    while not getattr(instance, "ready", False):
        error = getattr(instance, "error", None)
        if error:
            raise SdkLoadError(f"Failed to initialize Nielsen SDK: {error}")
        await sleep(poll_interval)


async def load_sdk(
    config: MeasurementsConfig,
    bundle: Optional[SdkBundle],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> SdkInstance:
    """
    Load (or reuse) the SDK instance named by `config.instance_name`.

    Raises SdkLoadError when the bundle is missing, the queue snippet is
    unusable, `nls_q` fails, or readiness is not reached within the timeout.
    """
    name = config.instance_name

    if bundle is None:
        raise SdkLoadError("Nielsen SDK bundle is not available in this environment.")

    existing = bundle.get(name)
    if existing is not None:
        logger.info(f"Reusing Nielsen SDK instance \"{name}\"")
        return existing

    nls_q: Optional[NlsQ] = getattr(bundle, "nls_q", None)
    if not callable(nls_q):
        raise SdkLoadError(
            "Failed to initialize Nielsen SDK: Nielsen Static Queue Snippet did not load properly."
        )

    try:
        instance = nls_q(config.app_id, name, build_sdk_options(config))
    except Exception as e:
        raise SdkLoadError(f"Failed to initialize Nielsen SDK: {e}") from e

    try:
        await asyncio.wait_for(
            _wait_until_ready(instance, tracking_cfg.sdk_poll_interval, sleep),
            timeout=config.timeout_ms / 1000,
        )
    except asyncio.TimeoutError as e:
        raise SdkLoadError("Nielsen SDK load timeout.") from e

    logger.info(f"Nielsen SDK instance \"{name}\" initialized successfully.")
    return instance
