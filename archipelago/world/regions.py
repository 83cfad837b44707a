"""Region content: which landmasses a region holds, derived only from its key and the settings."""

import math
from dataclasses import dataclass

from archipelago.constants import RegionKey, WorldSettings
from archipelago.generation.seeded_random import CoarseSeededRandom, SeededRandom, region_seed, string_hash
from archipelago.world.store import AdDecoration, LandmassRecord, region_to_str


@dataclass(frozen=True)
class PlaceholderSpec:
    key: str
    x: float
    z: float
    size: float
    biome: str


def chebyshev(a: RegionKey, b: RegionKey) -> int:
    return max(abs(a[0] - b[0]), abs(a[1] - b[1]))


def regions_within(center: RegionKey, radius: int) -> set[RegionKey]:
    cx, cz = center
    return {(cx + dx, cz + dz) for dx in range(-radius, radius + 1) for dz in range(-radius, radius + 1)}


def is_starting_area(region: RegionKey, settings: WorldSettings) -> bool:
    rx, rz = region
    return math.sqrt(rx * rx + rz * rz) <= settings.starting_area_radius


def generate_region(region: RegionKey, settings: WorldSettings, high_detail: bool = True) -> list[LandmassRecord]:
    """Landmass records for ``region``; the same inputs always yield the same records."""
    rx, rz = region
    seed = region_seed(region, settings.world_seed)
    rng = SeededRandom(seed) if high_detail else CoarseSeededRandom(seed)
    size = settings.region_size
    starting = is_starting_area(region, settings)

    lo, hi = settings.islands_per_region if high_detail else settings.low_detail_island_range()
    count = int(math.floor(rng(lo, hi + 0.99)))

    tiers = sorted(settings.ad_rank_tiers, key=lambda t: t.rank, reverse=True)
    ad_chance = settings.ad_spawn_chance
    if starting:
        ad_chance *= settings.starting_area_ad_boost
    min_ad_spacing_sq = (size / 3.0) ** 2

    ad_positions: list[tuple[float, float]] = []
    records: list[LandmassRecord] = []
    for i in range(count):
        x = rx * size + rng(0, size, f"posX_{i}")
        z = rz * size + rng(0, size, f"posZ_{i}")
        island_size = rng(settings.island_size_range[0], settings.island_size_range[1], f"size_{i}")
        biome_index = min(len(settings.biome_names) - 1, int(math.floor(rng(0, len(settings.biome_names), f"biome_{i}"))))
        biome = settings.biome_names[biome_index]

        can_be_ad = len(ad_positions) < settings.max_ads_per_region
        if can_be_ad:
            for ax, az in ad_positions:
                if (x - ax) ** 2 + (z - az) ** 2 < min_ad_spacing_sq:
                    can_be_ad = False
                    break

        if can_be_ad and rng(0, 1, f"adRoll_{i}") < ad_chance:
            if starting:
                # Premium Plus is never handed out near spawn.
                tier_index = min(len(tiers) - 1, int(math.floor(rng(0, len(tiers), f"adTier_{i}") * 0.7 + 1)))
            else:
                tier_index = min(len(tiers) - 1, int(math.floor(rng(0, len(tiers), f"adTier_{i}"))))
            tier = tiers[tier_index]
            island_size *= tier.size_boost
            first, second = settings.ad_biome_names
            biome = first if rng(0, 1, f"adBiomeType_{i}") < 0.5 else second
            image_index = 1 + min(5, int(math.floor(rng(0, 6, f"adImage_{i}"))))
            decoration = AdDecoration(
                image_ref=settings.ad_image_template.format(index=image_index),
                target_url=settings.ad_url_template.format(index=image_index, tier=tier.name),
                rank=tier.rank,
            )
            ad_positions.append((x, z))
            records.append(
                LandmassRecord(
                    id=f"ad_island_{rx}_{rz}_{i}_rank{tier.rank}",
                    x=x,
                    z=z,
                    biome=biome,
                    size=island_size,
                    region=region,
                    decoration=decoration,
                )
            )
        else:
            records.append(
                LandmassRecord(id=f"island_{rx}_{rz}_{i}", x=x, z=z, biome=biome, size=island_size, region=region)
            )
    return records


def placeholder_specs(region: RegionKey, settings: WorldSettings) -> list[PlaceholderSpec]:
    """One to three stand-in cones for a region whose content is not generated yet."""
    rx, rz = region
    key = region_to_str(region)
    h = string_hash(f"placeholder_{settings.world_seed}{key}")
    count = 1 + h % 3
    size = settings.region_size
    lo, hi = settings.island_size_range
    specs = []
    for i in range(count):
        x = rx * size + ((rx + i) % size) * 0.7
        z = rz * size + ((rz + i) % size) * 0.7
        biome = settings.biome_names[abs(rx + rz + i) % len(settings.biome_names)]
        island_size = lo + ((h >> (4 * i)) % 100) / 100.0 * (hi - lo)
        specs.append(PlaceholderSpec(f"placeholder_{key}_{i}", x, z, island_size, biome))
    return specs
