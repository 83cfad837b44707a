"""Shared pytest fixtures for all test modules."""
import sys
from pathlib import Path

import pytest

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from archipelago.constants import WorldSettings
from archipelago.graphics.resource_cache import ResourceCache
from archipelago.world.factory import LandmassFactory
from archipelago.world.store import MemoryStorage, WorldStore
from archipelago.world.streamer import ChunkStreamer


class FakeScene:
    """Records inserted objects so tests can inspect what is on screen."""

    def __init__(self):
        self.objects = []
        self.inserts = 0
        self.removes = 0

    def insert(self, obj):
        assert obj not in self.objects, "object inserted twice"
        self.objects.append(obj)
        self.inserts += 1

    def remove(self, obj):
        if obj in self.objects:
            self.objects.remove(obj)
        self.removes += 1

    def owned_by(self, owner_id):
        return [o for o in self.objects if o.owner_id == owner_id]

    def of_kind(self, kind):
        return [o for o in self.objects if o.kind == kind]


class FakeLoader:
    """Texture loader whose fetches complete only when the test says so."""

    def __init__(self):
        self.requests = []
        self.pending = {}

    def fetch(self, ref, on_loaded, on_failed):
        self.requests.append(ref)
        self.pending.setdefault(ref, []).append((on_loaded, on_failed))

    def complete(self, ref, texture=None):
        texture = texture if texture is not None else FakeTexture(ref)
        for on_loaded, _ in self.pending.pop(ref, []):
            on_loaded(texture)
        return texture

    def fail(self, ref, exc=None):
        for _, on_failed in self.pending.pop(ref, []):
            on_failed(exc or OSError(f"cannot fetch {ref}"))


class FakeTexture:
    def __init__(self, ref):
        self.ref = ref
        self.deleted = False

    def delete(self):
        self.deleted = True


@pytest.fixture
def settings():
    return WorldSettings()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    world = WorldStore(storage)
    world.load()
    return world


@pytest.fixture
def scene():
    return FakeScene()


@pytest.fixture
def loader():
    return FakeLoader()


@pytest.fixture
def cache():
    return ResourceCache()


@pytest.fixture
def factory(scene, cache, loader):
    return LandmassFactory(scene, cache, texture_loader=loader)


@pytest.fixture
def streamer(store, factory, cache, settings):
    world = ChunkStreamer(store, factory, cache, settings)
    world.FAR_DISPATCH_DELAY_SECONDS = 0.0
    yield world
    world.shutdown()


def settle(streamer, position, max_ticks=200):
    """Tick at ``position`` until nothing is queued or generating."""
    for _ in range(max_ticks):
        streamer.on_observer_moved(position)
        assert streamer.wait_for_generation(timeout=5.0)
        if not streamer.queued_regions():
            streamer.on_observer_moved(position)
            return
    raise AssertionError("streamer did not settle")
