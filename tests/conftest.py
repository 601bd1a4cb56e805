"""Conftest."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from pyrobocam.coordinator import NegotiationCoordinator
from pyrobocam.tracker import SessionStateTracker

from .common import AUTH_KEY, BROKER_PATH, FakeBroker, FakeChannel, FakePeerFactory


@pytest_asyncio.fixture
async def broker() -> AsyncIterator[FakeBroker]:
    """Run a signaling broker on a local port."""
    fake = FakeBroker()
    app = web.Application()
    app.router.add_get(BROKER_PATH, fake.handler)
    async with TestServer(app) as server:
        fake.url = str(server.make_url(BROKER_PATH).with_query(auth_key=AUTH_KEY))
        yield fake


@pytest.fixture
def peer_factory() -> FakePeerFactory:
    """Fake peer session factory."""
    return FakePeerFactory()


@pytest.fixture
def channel() -> FakeChannel:
    """In-memory signaling channel."""
    return FakeChannel()


@pytest_asyncio.fixture
async def coordinator(
    channel: FakeChannel, peer_factory: FakePeerFactory
) -> AsyncIterator[NegotiationCoordinator]:
    """Coordinator wired to the fake channel and peer factory."""
    coordinator = NegotiationCoordinator(channel, peer_factory=peer_factory)
    yield coordinator
    await coordinator.close()


@pytest.fixture
def tracker(coordinator: NegotiationCoordinator) -> SessionStateTracker:
    """Tracker observing the coordinator."""
    tracker = SessionStateTracker()
    tracker.attach(coordinator)
    return tracker
