"""Tests for the bounded resource stores."""
import pytest

from archipelago.generation.geometry import FrozenGeometryError, plane
from archipelago.generation.shapes import ShapeSynthesizer
from archipelago.graphics.resource_cache import ResourceCache, ResourceStore, billboard_key

from conftest import FakeLoader, FakeTexture


class TestResourceStore:
    def test_get_or_create_memoizes(self):
        store = ResourceStore("t", ceiling=4)
        calls = []
        first = store.get_or_create("a", lambda: calls.append(1) or object())
        second = store.get_or_create("a", lambda: calls.append(1) or object())
        assert first is second
        assert len(calls) == 1
        assert store.hits == 1 and store.misses == 1

    def test_no_eviction_on_insert(self):
        store = ResourceStore("t", ceiling=2)
        for i in range(5):
            store.get_or_create(i, object)
        assert len(store) == 5

    def test_prune_below_ceiling_is_noop(self):
        store = ResourceStore("t", ceiling=3, retain=1)
        for i in range(3):
            store.get_or_create(i, object)
        assert store.prune() == 0
        assert len(store) == 3

    def test_prune_evicts_least_recently_used(self):
        disposed = []
        store = ResourceStore("t", ceiling=3, retain=2, dispose=disposed.append)
        values = {i: store.get_or_create(i, object) for i in range(4)}
        store.get(0)  # 0 becomes most recent
        assert store.prune() == 2
        assert set(store.keys()) == {3, 0}
        assert disposed == [values[1], values[2]]

    def test_referenced_entries_survive(self):
        store = ResourceStore("t", ceiling=2, retain=0)
        for i in range(4):
            store.get_or_create(i, object)
        store.acquire(1)
        store.prune()
        assert store.keys() == [1]
        store.release(1)
        assert store.ref_count(1) == 0

    def test_dispose_failure_does_not_stop_prune(self):
        def explode(_):
            raise RuntimeError("gpu gone")

        store = ResourceStore("t", ceiling=1, retain=0, dispose=explode)
        store.get_or_create("a", object)
        store.get_or_create("b", object)
        assert store.prune() == 2
        assert len(store) == 0


class TestTerrainCache:
    def test_instances_share_template_but_not_buffers(self):
        cache = ResourceCache()
        synth = ShapeSynthesizer()
        build = lambda: synth.generate("Snow_jagged_7", "Snow", 7)

        template = cache.terrain_template("Snow_jagged_7", build)
        a = cache.terrain_instance("Snow_jagged_7", build)
        b = cache.terrain_instance("Snow_jagged_7", build)

        assert cache.terrain_template("Snow_jagged_7", build) is template
        assert template.frozen
        assert a.positions is not b.positions
        a.set_vertex(0, 99.0, 99.0, 99.0)
        assert b.vertex(0) != (99.0, 99.0, 99.0)
        assert template.vertex(0) != (99.0, 99.0, 99.0)
        assert len(cache.terrain) == 1

    def test_template_cannot_be_mutated(self):
        cache = ResourceCache()
        template = cache.terrain_template("k", lambda: plane(1.0, 1.0))
        with pytest.raises(FrozenGeometryError):
            template.set_vertex(0, 0.0, 0.0, 0.0)

    def test_bounded_growth(self):
        cache = ResourceCache(terrain_ceiling=10, billboard_ceiling=4)
        for i in range(25):
            cache.terrain_template(f"k{i}", lambda: plane(1.0, 1.0))
        for i in range(9):
            cache.billboard_geometry(1.0 + i, 1.0)
        evicted = cache.prune()
        assert len(cache.terrain) <= 10
        assert len(cache.billboards) <= 4
        assert evicted["terrain"] == 20
        assert evicted["billboard"] == 7

    def test_evicted_geometry_is_disposed(self):
        cache = ResourceCache(terrain_ceiling=1)
        first = cache.terrain_template("a", lambda: plane(1.0, 1.0))
        cache.terrain_template("b", lambda: plane(1.0, 1.0))
        cache.terrain_template("c", lambda: plane(1.0, 1.0))
        cache.prune()
        assert "a" not in cache.terrain
        assert len(first.positions) == 0


class TestBillboards:
    def test_rounded_to_half_units(self):
        assert billboard_key(7.26, 4.74) == (7.5, 4.5)
        cache = ResourceCache()
        assert cache.billboard_geometry(7.3, 4.6) is cache.billboard_geometry(7.4, 4.55)

    def test_acquired_billboards_survive_prune(self):
        cache = ResourceCache(billboard_ceiling=1)
        key, live = cache.acquire_billboard(6.0, 4.0)
        cache.billboard_geometry(9.0, 6.0)
        cache.billboard_geometry(12.0, 8.0)
        cache.prune()
        assert key in cache.billboards
        assert live.vertex_count == 4

        cache.release_billboard(key)
        cache.billboard_geometry(3.0, 2.0)
        cache.prune()
        assert key not in cache.billboards
        assert live.vertex_count == 0


class TestTextures:
    def test_single_fetch_for_concurrent_requests(self):
        cache = ResourceCache()
        loader = FakeLoader()
        received = []
        assert cache.acquire_texture("img", loader, received.append)
        assert cache.acquire_texture("img", loader, received.append)
        assert loader.requests == ["img"]
        texture = loader.complete("img")
        assert received == [texture, texture]
        assert cache.textures.ref_count("img") == 2

    def test_cached_texture_is_delivered_immediately(self):
        cache = ResourceCache()
        loader = FakeLoader()
        cache.acquire_texture("img", loader, lambda t: None)
        texture = loader.complete("img")
        received = []
        cache.acquire_texture("img", loader, received.append)
        assert received == [texture]
        assert loader.requests == ["img"]

    def test_failed_texture_is_not_retried(self):
        cache = ResourceCache()
        loader = FakeLoader()
        assert cache.acquire_texture("bad", loader, lambda t: None)
        loader.fail("bad")
        assert cache.texture_failed("bad")
        assert not cache.acquire_texture("bad", loader, lambda t: None)
        assert loader.requests == ["bad"]

    def test_referenced_textures_survive_prune(self):
        cache = ResourceCache(texture_ceiling=10, texture_retain_fraction=0.3)
        loader = FakeLoader()
        for i in range(15):
            cache.acquire_texture(f"t{i}", loader, lambda t: None)
            loader.complete(f"t{i}")
        for i in range(13):
            cache.release_texture(f"t{i}")
        cache.prune()
        keys = set(cache.textures.keys())
        assert {"t13", "t14"} <= keys
        assert len(keys) == 3

    def test_evicted_textures_are_deleted(self):
        cache = ResourceCache(texture_ceiling=1, texture_retain_fraction=0.0)
        loader = FakeLoader()
        textures = []
        for ref in ("a", "b"):
            cache.acquire_texture(ref, loader, lambda t: None)
            textures.append(loader.complete(ref, FakeTexture(ref)))
            cache.release_texture(ref)
        cache.prune()
        assert all(t.deleted for t in textures)

    def test_disposal_is_announced_before_delete(self):
        announced = []
        cache = ResourceCache(
            texture_ceiling=1,
            texture_retain_fraction=0.0,
            on_texture_disposed=lambda t: announced.append((t.ref, t.deleted)),
        )
        loader = FakeLoader()
        for ref in ("a", "b"):
            cache.acquire_texture(ref, loader, lambda t: None)
            loader.complete(ref, FakeTexture(ref))
            cache.release_texture(ref)
        cache.prune()
        assert announced == [("a", False), ("b", False)]
