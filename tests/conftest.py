"""Shared pytest fixtures for the Nielsen bridge tests."""

import logging

import pytest

from nielsen_bridge.core.config import MeasurementsConfig
from nielsen_bridge.core.models import SourceConfig
from nielsen_bridge.services.measurements import NielsenMeasurements
from nielsen_bridge.services.remote import ManualUnloadHook

from doubles import FakePlayer, FakeSdkBundle, VirtualClock


@pytest.fixture(autouse=True)
def _log_levels():
    logging.getLogger("asyncio").setLevel(logging.ERROR)
    yield


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def sdk_bundle():
    return FakeSdkBundle()


@pytest.fixture
def unload_hook():
    return ManualUnloadHook()


@pytest.fixture
def player():
    return FakePlayer(
        current_time=0,
        duration=100,
        source=SourceConfig(dash="test.mpd", title="Asset Title"),
    )


@pytest.fixture
def config():
    return MeasurementsConfig(app_id="TEST-APP-ID", instance_name="TEST-INSTANCE")


@pytest.fixture
async def measurements(config, sdk_bundle, unload_hook, clock, player):
    """A bootstrapped session attached to `player`."""
    m = NielsenMeasurements(config, sdk_bundle, unload_hook=unload_hook, sleep=clock.sleep)
    m.attach_to(player, {"subbrand": "my-subbrand", "assetId": "my-asset"})
    assert await m.ready()
    yield m
    m.destroy()


@pytest.fixture
def sdk(measurements, sdk_bundle):
    """The SDK instance the session is reporting to."""
    return sdk_bundle.pending
