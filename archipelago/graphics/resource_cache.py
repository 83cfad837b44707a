from __future__ import annotations

import logging
import math
import threading
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Protocol, TypeVar

from archipelago.constants import (
    BILLBOARD_CACHE_CEILING,
    TERRAIN_CACHE_CEILING,
    TEXTURE_CACHE_CEILING,
    TEXTURE_RETAIN_FRACTION,
)
from archipelago.generation.geometry import MeshGeometry, plane

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TextureLoader(Protocol):
    def fetch(
        self,
        ref: str,
        on_loaded: Callable[[Any], None],
        on_failed: Callable[[BaseException], None],
    ) -> None: ...


class ResourceStore(Generic[K, V]):
    """Keyed memo store with least-recently-used eviction.

    Eviction never happens on insert; ``prune()`` is called from outside. Entries
    with a positive reference count are skipped by eviction.
    """

    def __init__(
        self,
        name: str,
        ceiling: int,
        retain: int | None = None,
        dispose: Callable[[V], None] | None = None,
    ) -> None:
        self.name = name
        self.ceiling = ceiling
        self.retain = ceiling if retain is None else max(0, min(retain, ceiling))
        self._dispose = dispose
        self._entries: OrderedDict[K, V] = OrderedDict()
        self._refs: dict[K, int] = {}
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[K]:
        with self._lock:
            return list(self._entries.keys())

    def get(self, key: K) -> V | None:
        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
                self.hits += 1
            return value

    def put(self, key: K, value: V) -> V:
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                self._entries.move_to_end(key)
                return existing
            self._entries[key] = value
            return value

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V:
        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return value
            self.misses += 1
            value = factory()
            self._entries[key] = value
            return value

    def acquire(self, key: K) -> None:
        with self._lock:
            self._refs[key] = self._refs.get(key, 0) + 1

    def release(self, key: K) -> None:
        with self._lock:
            count = self._refs.get(key, 0) - 1
            if count > 0:
                self._refs[key] = count
            else:
                self._refs.pop(key, None)

    def ref_count(self, key: K) -> int:
        return self._refs.get(key, 0)

    def _evict(self, key: K) -> None:
        value = self._entries.pop(key)
        self.evictions += 1
        if self._dispose is not None:
            try:
                self._dispose(value)
            except Exception:
                logger.exception("Failed to release %s cache entry %r", self.name, key)

    def prune(self) -> int:
        with self._lock:
            if len(self._entries) <= self.ceiling:
                return 0
            evicted = 0
            for key in list(self._entries.keys()):
                if len(self._entries) <= self.retain:
                    break
                if self._refs.get(key, 0) > 0:
                    continue
                self._evict(key)
                evicted += 1
            return evicted

    def clear(self) -> None:
        with self._lock:
            for key in list(self._entries.keys()):
                self._evict(key)
            self._refs.clear()


def _delete_texture(texture: Any) -> None:
    delete = getattr(texture, "delete", None)
    if delete is not None:
        delete()


def billboard_key(width: float, height: float) -> tuple[float, float]:
    return round(width * 2.0) / 2.0, round(height * 2.0) / 2.0


class ResourceCache:
    """Terrain templates, billboard planes and textures shared across landmasses."""

    def __init__(
        self,
        terrain_ceiling: int = TERRAIN_CACHE_CEILING,
        billboard_ceiling: int = BILLBOARD_CACHE_CEILING,
        texture_ceiling: int = TEXTURE_CACHE_CEILING,
        texture_retain_fraction: float = TEXTURE_RETAIN_FRACTION,
        on_texture_disposed: Callable[[Any], None] | None = None,
    ) -> None:
        self.on_texture_disposed = on_texture_disposed
        self.terrain: ResourceStore[str, MeshGeometry] = ResourceStore(
            "terrain", terrain_ceiling, terrain_ceiling // 2, dispose=MeshGeometry.dispose
        )
        self.billboards: ResourceStore[tuple[float, float], MeshGeometry] = ResourceStore(
            "billboard", billboard_ceiling, billboard_ceiling // 2, dispose=MeshGeometry.dispose
        )
        self.textures: ResourceStore[str, Any] = ResourceStore(
            "texture",
            texture_ceiling,
            int(math.floor(texture_ceiling * texture_retain_fraction)),
            dispose=self._dispose_texture,
        )
        self._texture_waiters: dict[str, list[Callable[[Any], None]]] = {}
        self._failed_textures: set[str] = set()

    def _dispose_texture(self, texture: Any) -> None:
        if self.on_texture_disposed is not None:
            self.on_texture_disposed(texture)
        _delete_texture(texture)

    def terrain_template(self, key: str, build: Callable[[], MeshGeometry]) -> MeshGeometry:
        """The shared, frozen template for ``key``. Never mutate it; use ``terrain_instance``."""
        return self.terrain.get_or_create(key, lambda: build().freeze())

    def terrain_instance(self, key: str, build: Callable[[], MeshGeometry]) -> MeshGeometry:
        """An owned, mutable copy of the template for ``key``."""
        return self.terrain_template(key, build).clone()

    def billboard_geometry(self, width: float, height: float) -> MeshGeometry:
        key = billboard_key(width, height)
        return self.billboards.get_or_create(key, lambda: plane(key[0], key[1]).freeze())

    def acquire_billboard(self, width: float, height: float) -> tuple[tuple[float, float], MeshGeometry]:
        """Shared plane for a live billboard. Pinned against pruning until ``release_billboard(key)``."""
        key = billboard_key(width, height)
        self.billboards.acquire(key)
        return key, self.billboard_geometry(width, height)

    def release_billboard(self, key: tuple[float, float]) -> None:
        self.billboards.release(key)

    def acquire_texture(self, ref: str, loader: TextureLoader, on_ready: Callable[[Any], None]) -> bool:
        """Take a reference on ``ref`` and call ``on_ready(texture)`` once it is available.

        Returns False when the image already failed to load; failed refs are not retried.
        Every True return must be balanced by ``release_texture``.
        """
        if ref in self._failed_textures:
            return False
        self.textures.acquire(ref)
        texture = self.textures.get(ref)
        if texture is not None:
            on_ready(texture)
            return True

        waiters = self._texture_waiters.get(ref)
        if waiters is not None:
            waiters.append(on_ready)
            return True

        self._texture_waiters[ref] = [on_ready]
        loader.fetch(
            ref,
            lambda tex, r=ref: self._on_texture_loaded(r, tex),
            lambda exc, r=ref: self._on_texture_failed(r, exc),
        )
        return True

    def release_texture(self, ref: str) -> None:
        self.textures.release(ref)

    def _on_texture_loaded(self, ref: str, texture: Any) -> None:
        texture = self.textures.put(ref, texture)
        for on_ready in self._texture_waiters.pop(ref, []):
            on_ready(texture)

    def _on_texture_failed(self, ref: str, exc: BaseException) -> None:
        logger.error("Failed to load texture %s: %s", ref, exc)
        self._failed_textures.add(ref)
        self._texture_waiters.pop(ref, None)

    def texture_failed(self, ref: str) -> bool:
        return ref in self._failed_textures

    def prune(self) -> dict[str, int]:
        evicted = {
            "terrain": self.terrain.prune(),
            "billboard": self.billboards.prune(),
            "texture": self.textures.prune(),
        }
        if any(evicted.values()):
            logger.info(
                "Pruned caches: terrain=%d billboard=%d texture=%d",
                evicted["terrain"],
                evicted["billboard"],
                evicted["texture"],
            )
        return evicted

    def sizes(self) -> dict[str, int]:
        return {"terrain": len(self.terrain), "billboard": len(self.billboards), "texture": len(self.textures)}

    def dispose(self) -> None:
        self.terrain.clear()
        self.billboards.clear()
        self.textures.clear()
        self._texture_waiters.clear()
