from __future__ import annotations

import logging
import math
import time
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import nullcontext
from enum import Enum
from queue import Empty, Queue
from typing import Callable

from archipelago.biomes.registry import get_biome_definition
from archipelago.constants import (
    AD_INTERACTION_COOLDOWN_SECONDS,
    AD_INTERACTION_DISTANCE,
    NAME_PROMPT_DISTANCE,
    RegionKey,
    Vec3,
    WorldSettings,
)
from archipelago.debug.profiler import RuntimeProfiler
from archipelago.graphics.resource_cache import ResourceCache
from archipelago.graphics.scene import LandmassVisual, SceneObject
from archipelago.world.factory import HIGH_DETAIL, LOW_DETAIL_TIER, LandmassFactory
from archipelago.world.regions import chebyshev, generate_region, placeholder_specs, regions_within
from archipelago.world.store import LandmassRecord, WorldStore, region_of

logger = logging.getLogger(__name__)


class RegionState(Enum):
    UNKNOWN = "unknown"
    QUEUED = "queued"
    GENERATING = "generating"
    GENERATED = "generated"
    FAILED = "failed"


class DetailTier(Enum):
    NOT_VISIBLE = "not_visible"
    LOW = LOW_DETAIL_TIER
    HIGH = HIGH_DETAIL


GenerationResult = tuple[RegionKey, bool, "Future[list[LandmassRecord]]"]


class ChunkStreamer:
    """Decides which regions exist around the observer and keeps the scene in step.

    Only the thread calling ``on_observer_moved`` touches the store and the scene;
    the generation worker returns records through ``_completed``.
    """

    NEAR_DISPATCH_DELAY_SECONDS = 0.0
    FAR_DISPATCH_DELAY_SECONDS = 0.1
    PRUNE_INTERVAL_TICKS = 50
    GENERATION_WORKERS = 1
    AD_PROXIMITY_REGION_RADIUS = 1
    MAX_GENERATION_ATTEMPTS = 3

    def __init__(
        self,
        store: WorldStore,
        factory: LandmassFactory,
        cache: ResourceCache,
        settings: WorldSettings | None = None,
        profiler: RuntimeProfiler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.factory = factory
        self.cache = cache
        self.settings = settings or WorldSettings()
        self.profiler = profiler
        self.clock = clock

        self._queue: list[RegionKey] = []
        self._queued: set[RegionKey] = set()
        self._in_flight: tuple[RegionKey, Future[list[LandmassRecord]]] | None = None
        self._pending_dispatch: tuple[RegionKey, float] | None = None
        self._completed: Queue[GenerationResult] = Queue()
        self._failures: dict[RegionKey, int] = {}
        self._executor = ThreadPoolExecutor(max_workers=self.GENERATION_WORKERS, thread_name_prefix="regiongen")

        self._center: RegionKey | None = None
        self._high_set: set[RegionKey] = set()
        self._low_set: set[RegionKey] = set()
        self._region_detail: dict[RegionKey, DetailTier] = {}
        self._placeholders: dict[RegionKey, list[SceneObject]] = {}
        self._naming_declined: set[str] = set()
        self._ticks = 0
        self.stats = {
            "regions_generated": 0,
            "duplicates_discarded": 0,
            "generation_failures": 0,
            "regions_cancelled": 0,
            "cache_evictions": 0,
        }

    def _profile(self, name: str):
        if self.profiler is None:
            return nullcontext()
        return self.profiler.section(name)

    def _count(self, name: str, amount: int = 1) -> None:
        self.stats[name] += amount
        if self.profiler is not None:
            self.profiler.increment(f"streamer.{name}", amount)

    def _distance_key(self, region: RegionKey) -> tuple[int, int, RegionKey]:
        center = self._center or (0, 0)
        return chebyshev(region, center), abs(region[0] - center[0]) + abs(region[1] - center[1]), region

    def _queue_order(self, region: RegionKey) -> tuple[int, tuple[int, int, RegionKey]]:
        # regions that failed before wait behind everything that has not
        return self._failures.get(region, 0), self._distance_key(region)

    def _abandoned(self, region: RegionKey) -> bool:
        return self._failures.get(region, 0) >= self.MAX_GENERATION_ATTEMPTS

    def region_state(self, region: RegionKey) -> RegionState:
        if self.store.is_generated(region):
            return RegionState.GENERATED
        if self._in_flight is not None and self._in_flight[0] == region:
            return RegionState.GENERATING
        if region in self._queued:
            return RegionState.QUEUED
        if self._abandoned(region):
            return RegionState.FAILED
        return RegionState.UNKNOWN

    def detail_tier(self, region: RegionKey) -> DetailTier:
        return self._region_detail.get(region, DetailTier.NOT_VISIBLE)

    def queued_regions(self) -> list[RegionKey]:
        return list(self._queue)

    def on_observer_moved(self, position: Vec3) -> set[str]:
        """One streaming tick. Returns the ids of every landmass currently displayed."""
        self._ticks += 1
        now = self.clock()
        x, _, z = position
        center = region_of(x, z, self.settings.region_size)

        with self._profile("streamer.compute_sets"):
            self._center = center
            self._high_set = regions_within(center, self.settings.high_detail_distance)
            self._low_set = regions_within(center, self.settings.low_detail_distance)

        with self._profile("streamer.apply_completed"):
            self._drain_completed()

        with self._profile("streamer.queue"):
            self._cancel_outside_requests()
            self._queue_missing_regions()

        with self._profile("streamer.visuals"):
            self._sync_placeholders()
            self._sync_visuals()

        with self._profile("streamer.dispatch"):
            self._dispatch_next(now)

        if self._ticks % self.PRUNE_INTERVAL_TICKS == 0:
            with self._profile("streamer.prune"):
                evicted = self.cache.prune()
                self._count("cache_evictions", sum(evicted.values()))

        with self._profile("streamer.save"):
            self.store.save_if_due(now)

        return self.visible_landmass_ids()

    def _cancel_outside_requests(self) -> None:
        stale = [region for region in self._queue if region not in self._low_set]
        if not stale:
            return
        for region in stale:
            self._queued.discard(region)
        self._queue = [region for region in self._queue if region in self._queued]
        if self._pending_dispatch is not None and self._pending_dispatch[0] not in self._queued:
            self._pending_dispatch = None
        self._count("regions_cancelled", len(stale))
        logger.debug("Dropped %d queued regions that left view", len(stale))

    def _queue_missing_regions(self) -> None:
        in_flight = self._in_flight[0] if self._in_flight is not None else None
        for region in self._low_set:
            if region in self._queued or region == in_flight or self.store.is_generated(region) or self._abandoned(region):
                continue
            self._queued.add(region)
            self._queue.append(region)
        self._queue.sort(key=self._queue_order)

    def _sync_placeholders(self) -> None:
        for region in list(self._placeholders):
            if region not in self._low_set or self.store.is_generated(region):
                self._remove_placeholders(region)

        for region in self._low_set - self._high_set:
            if region in self._placeholders or self.store.is_generated(region):
                continue
            self._placeholders[region] = [
                self.factory.show_placeholder(spec) for spec in placeholder_specs(region, self.settings)
            ]

    def _remove_placeholders(self, region: RegionKey) -> None:
        for obj in self._placeholders.pop(region, []):
            self.factory.hide_placeholder(obj)

    def _sync_visuals(self) -> None:
        for region in list(self._region_detail):
            if region not in self._low_set:
                self._unload_region(region)

        for region in self._low_set:
            if not self.store.is_generated(region):
                continue
            tier = DetailTier.HIGH if region in self._high_set else DetailTier.LOW
            if self._region_detail.get(region) is tier:
                continue
            self._remove_placeholders(region)
            for record in self.store.records_in_region(region):
                self.factory.materialize(record, tier.value)
            self._region_detail[region] = tier

    def _unload_region(self, region: RegionKey) -> None:
        for record in self.store.records_in_region(region):
            self.factory.dematerialize(record)
        self._region_detail.pop(region, None)

    def _dispatch_next(self, now: float) -> None:
        if self._in_flight is not None or not self._queue:
            return
        region = self._queue[0]
        near = chebyshev(region, self._center or region) <= self.settings.high_detail_distance
        if self._pending_dispatch is None or self._pending_dispatch[0] != region:
            delay = self.NEAR_DISPATCH_DELAY_SECONDS if near else self.FAR_DISPATCH_DELAY_SECONDS
            self._pending_dispatch = (region, now + delay)
        if now < self._pending_dispatch[1]:
            return

        self._pending_dispatch = None
        self._queue.pop(0)
        self._queued.discard(region)
        future = self._executor.submit(self._generate, region, near)
        self._in_flight = (region, future)
        future.add_done_callback(lambda f, r=region, n=near: self._on_region_generated(r, n, f))

    def _generate(self, region: RegionKey, high_detail: bool) -> list[LandmassRecord]:
        records = generate_region(region, self.settings, high_detail)
        if high_detail:
            for record in records:
                if get_biome_definition(record.biome, self.factory.biomes) is not None:
                    self.factory.warm_terrain(record.biome, record.size)
        return records

    def _on_region_generated(self, region: RegionKey, high_detail: bool, future: Future[list[LandmassRecord]]) -> None:
        self._completed.put((region, high_detail, future))

    def _drain_completed(self) -> int:
        applied = 0
        while True:
            try:
                item = self._completed.get_nowait()
            except Empty:
                break
            if self._apply_completed(item):
                applied += 1
        return applied

    def _apply_completed(self, item: GenerationResult) -> bool:
        region, _, future = item
        if self._in_flight is not None and self._in_flight[1] is future:
            self._in_flight = None
        if future.cancelled():
            return False
        try:
            records = future.result()
        except Exception:
            self._count("generation_failures")
            attempts = self._failures.get(region, 0) + 1
            self._failures[region] = attempts
            if attempts >= self.MAX_GENERATION_ATTEMPTS:
                logger.exception("Generation failed for region %s, giving up after %d attempts", region, attempts)
            else:
                logger.exception("Generation failed for region %s (attempt %d), will retry", region, attempts)
            return False
        return self._apply_region(region, records)

    def _apply_region(self, region: RegionKey, records: list[LandmassRecord]) -> bool:
        if self.store.is_generated(region):
            self._count("duplicates_discarded")
            logger.debug("Discarding duplicate generation for region %s", region)
            return False
        for record in records:
            self.store.add_landmass(record)
        self.store.add_generated_region(region)
        self._failures.pop(region, None)
        self._remove_placeholders(region)
        self._count("regions_generated")
        logger.debug("Generated region %s with %d landmasses", region, len(records))
        return True

    def prime_regions(self, position: Vec3) -> None:
        """Generate the high-detail neighbourhood of ``position`` synchronously."""
        x, _, z = position
        center = region_of(x, z, self.settings.region_size)
        for region in sorted(regions_within(center, self.settings.high_detail_distance)):
            if self.store.is_generated(region):
                continue
            self._apply_region(region, self._generate(region, True))
        self.on_observer_moved(position)

    def wait_for_generation(self, timeout: float = 5.0) -> bool:
        """Block until the in-flight region (if any) is applied. Returns False on timeout."""
        if self._in_flight is None:
            return True
        deadline = time.monotonic() + timeout
        while self._in_flight is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            try:
                item = self._completed.get(timeout=remaining)
            except Empty:
                return False
            self._apply_completed(item)
        self._drain_completed()
        self._sync_placeholders()
        self._sync_visuals()
        return True

    def visible_landmass_ids(self) -> set[str]:
        ids: set[str] = set()
        for region in self._region_detail:
            for record in self.store.records_in_region(region):
                if record.visual is not None:
                    ids.add(record.id)
        return ids

    def materialized_object_for(self, landmass_id: str) -> LandmassVisual | None:
        record = self.store.get(landmass_id)
        if record is None:
            return None
        return record.visual

    def placeholders_for(self, region: RegionKey) -> list[SceneObject]:
        return list(self._placeholders.get(region, ()))

    def name_nearby_landmasses(self, position: Vec3, namer: Callable[[str], str | None]) -> list[str]:
        """Offer unnamed landmasses close to the observer to ``namer``; returns ids that got a name."""
        x, _, z = position
        named: list[str] = []
        for region in list(self._region_detail):
            for record in self.store.records_in_region(region):
                if record.name is not None:
                    continue
                shore_distance = math.hypot(record.x - x, record.z - z) - record.size
                if shore_distance >= NAME_PROMPT_DISTANCE:
                    self._naming_declined.discard(record.id)
                    continue
                if record.id in self._naming_declined:
                    continue
                name = namer(record.biome)
                if name is None or not name.strip():
                    self._naming_declined.add(record.id)
                    continue
                record.name = name.strip()
                self.store.mark_dirty()
                named.append(record.id)
                logger.info("Named landmass %s '%s'", record.id, record.name)
        return named

    def check_ad_proximity(self, position: Vec3, visit: Callable[[str], bool], now: float | None = None) -> bool:
        """Offer nearby active ads to ``visit``; each ad is offered at most once per cooldown."""
        now = time.time() if now is None else now
        x, _, z = position
        center = region_of(x, z, self.settings.region_size)
        interacted = False
        for region in sorted(regions_within(center, self.AD_PROXIMITY_REGION_RADIUS)):
            for record in self.store.records_in_region(region):
                ad = record.decoration
                if ad is None or not ad.active:
                    continue
                if math.hypot(record.x - x, record.z - z) >= AD_INTERACTION_DISTANCE:
                    continue
                if ad.last_interaction is not None and now - ad.last_interaction <= AD_INTERACTION_COOLDOWN_SECONDS:
                    continue
                logger.info("Passing %s ad %s", ad.tier.name, record.id)
                if visit(ad.target_url):
                    interacted = True
                ad.last_interaction = now
                self.store.mark_dirty()
        return interacted

    def diagnostics_snapshot(self) -> dict[str, int]:
        cache_sizes = self.cache.sizes()
        return {
            "generated_regions": len(self.store.generated_regions),
            "landmasses": len(self.store),
            "queued_regions": len(self._queue),
            "in_flight": 0 if self._in_flight is None else 1,
            "ready_queue": self._completed.qsize(),
            "high_detail_regions": sum(1 for t in self._region_detail.values() if t is DetailTier.HIGH),
            "low_detail_regions": sum(1 for t in self._region_detail.values() if t is DetailTier.LOW),
            "placeholders": sum(len(objs) for objs in self._placeholders.values()),
            "failed_regions": sum(1 for region in self._failures if self._abandoned(region)),
            "terrain_cache": cache_sizes["terrain"],
            "billboard_cache": cache_sizes["billboard"],
            "texture_cache": cache_sizes["texture"],
            **self.stats,
        }

    def shutdown(self) -> None:
        self._queue.clear()
        self._queued.clear()
        self._pending_dispatch = None
        if self._in_flight is not None:
            self._in_flight[1].cancel()
            self._in_flight = None
        self._executor.shutdown(wait=False, cancel_futures=True)
        for region in list(self._region_detail):
            self._unload_region(region)
        for region in list(self._placeholders):
            self._remove_placeholders(region)
        self.store.flush()
        self.cache.dispose()
