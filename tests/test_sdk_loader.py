"""Tests for the SDK bootstrap and the ggPM transport built on it."""

import asyncio

import pytest

from nielsen_bridge.core.config import MeasurementsConfig
from nielsen_bridge.core.errors import SdkLoadError
from nielsen_bridge.services.sdk_loader import build_sdk_options, load_sdk
from nielsen_bridge.services.tracker import MeasurementsTracker

from doubles import FakeSdkBundle, FakeSdkInstance


def make_config(**overrides) -> MeasurementsConfig:
    values = dict(app_id="TEST-APP-ID", instance_name="TEST-INSTANCE")
    values.update(overrides)
    return MeasurementsConfig(**values)


class BareBundle:
    """A bundle whose static queue snippet never loaded."""

    def get(self, instance_name):
        return None


# ── Config ────────────────────────────────────────────────────────────

def test_config_requires_app_id_and_instance_name():
    with pytest.raises(ValueError):
        MeasurementsConfig(app_id="", instance_name="x")
    with pytest.raises(ValueError):
        MeasurementsConfig(app_id="x", instance_name="")


def test_default_options():
    assert build_sdk_options(make_config()) == {"optout": "false", "enableFpid": "true"}


def test_options_fold_in_flags():
    config = make_config(options={"nol_device": "browser"}, optout=True, enable_fpid=False, debug=True)
    assert build_sdk_options(config) == {
        "nol_device": "browser",
        "optout": "true",
        "enableFpid": "false",
        "nol_sdkDebug": "debug",
    }


# ── Loading ───────────────────────────────────────────────────────────

async def test_ready_instance_is_returned():
    bundle = FakeSdkBundle()
    instance = await load_sdk(make_config(debug=True), bundle)
    assert instance is bundle.pending
    app_id, name, options = bundle.queued[0]
    assert (app_id, name) == ("TEST-APP-ID", "TEST-INSTANCE")
    assert options["nol_sdkDebug"] == "debug"


async def test_existing_instance_is_reused():
    bundle = FakeSdkBundle()
    existing = FakeSdkInstance()
    bundle.instances["TEST-INSTANCE"] = existing
    assert await load_sdk(make_config(), bundle) is existing
    assert bundle.queued == []


async def test_missing_bundle_fails():
    with pytest.raises(SdkLoadError):
        await load_sdk(make_config(), None)


async def test_missing_queue_snippet_fails():
    with pytest.raises(SdkLoadError, match="Static Queue Snippet"):
        await load_sdk(make_config(), BareBundle())


async def test_nls_q_failure_is_wrapped():
    class BrokenBundle(BareBundle):
        def nls_q(self, app_id, instance_name, options):
            raise RuntimeError("boom")

    with pytest.raises(SdkLoadError, match="boom"):
        await load_sdk(make_config(), BrokenBundle())


async def test_times_out_when_never_ready():
    bundle = FakeSdkBundle(ready=False)
    with pytest.raises(SdkLoadError, match="timeout"):
        await load_sdk(make_config(timeout_ms=50), bundle)


async def test_waits_for_readiness():
    bundle = FakeSdkBundle(ready=False)
    loop = asyncio.get_running_loop()
    loop.call_later(0.15, lambda: setattr(bundle.pending, "ready", True))
    instance = await load_sdk(make_config(timeout_ms=2000), bundle)
    assert instance.ready


async def test_reported_failure_stops_polling():
    bundle = FakeSdkBundle(ready=False)
    loop = asyncio.get_running_loop()
    loop.call_later(0.05, lambda: setattr(bundle.pending, "error", "blocked by client"))
    with pytest.raises(SdkLoadError, match="blocked by client"):
        await load_sdk(make_config(timeout_ms=2000), bundle)


# ── Transport ─────────────────────────────────────────────────────────

def test_tracker_forwards_the_four_verbs():
    sdk = FakeSdkInstance()
    tracker = MeasurementsTracker(sdk, "TEST-INSTANCE")

    tracker.load_metadata({"type": "content"})
    tracker.set_playhead_position(12)
    tracker.stop_tracking(13)
    tracker.end_tracking(14)

    assert sdk.calls == [
        ("loadMetadata", {"type": "content"}),
        ("setPlayheadPosition", 12),
        ("stop", 13),
        ("end", 14),
    ]
