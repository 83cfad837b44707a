import math
from dataclasses import dataclass, field, replace

Vec3 = tuple[float, float, float]
RegionKey = tuple[int, int]

TICKS_PER_SECOND = 60
REGION_SIZE = 100
HIGH_DETAIL_DISTANCE = 1
LOW_DETAIL_DISTANCE = 2

STORAGE_KEY_DATA = "islandData"
STORAGE_KEY_REGIONS = "generatedChunks"
SAVE_INTERVAL_SECONDS = 5.0

ISLANDS_PER_REGION = (3, 6)
ISLAND_SIZE_RANGE = (5.0, 10.0)

NAME_PROMPT_DISTANCE = 3.0
AD_INTERACTION_DISTANCE = 5.0
AD_INTERACTION_COOLDOWN_SECONDS = 10.0

MAX_ADS_PER_REGION = 1
AD_SPAWN_CHANCE = 0.15
STARTING_AREA_AD_BOOST = 2.0
STARTING_AREA_RADIUS = 2
AD_IMAGE_TEMPLATE = "https://picsum.photos/seed/{index}/300/200"
AD_URL_TEMPLATE = "https://example.com/ad/{index}_tier_{tier}"

TERRAIN_CACHE_CEILING = 50
BILLBOARD_CACHE_CEILING = 20
TEXTURE_CACHE_CEILING = 30
TEXTURE_RETAIN_FRACTION = 0.3

BOAT_SPEED = 30.0
BOAT_REVERSE_SPEED = 6.0
BOAT_TURN_SPEED = math.radians(100.0)


@dataclass(frozen=True)
class AdTier:
    rank: int
    size_boost: float
    name: str


# Highest rank first.
AD_RANK_TIERS: tuple[AdTier, ...] = (
    AdTier(10, 1.7, "Premium Plus"),
    AdTier(8, 1.6, "Premium"),
    AdTier(6, 1.5, "Plus"),
    AdTier(4, 1.4, "Standard"),
    AdTier(2, 1.3, "Basic"),
)


def tier_for_rank(rank: int, tiers: tuple[AdTier, ...] = AD_RANK_TIERS) -> AdTier:
    """Return the highest tier whose rank does not exceed ``rank``."""
    ordered = sorted(tiers, key=lambda t: t.rank, reverse=True)
    for tier in ordered:
        if tier.rank <= rank:
            return tier
    return ordered[-1]


@dataclass(frozen=True)
class WorldSettings:
    region_size: float = REGION_SIZE
    high_detail_distance: int = HIGH_DETAIL_DISTANCE
    low_detail_distance: int = LOW_DETAIL_DISTANCE
    islands_per_region: tuple[int, int] = ISLANDS_PER_REGION
    island_size_range: tuple[float, float] = ISLAND_SIZE_RANGE
    biome_names: tuple[str, ...] = ("Jungle", "Desert", "Snow", "Volcano", "Forest", "Swamp")
    ad_biome_names: tuple[str, str] = ("Desert", "Volcano")
    ad_spawn_chance: float = AD_SPAWN_CHANCE
    starting_area_ad_boost: float = STARTING_AREA_AD_BOOST
    starting_area_radius: float = STARTING_AREA_RADIUS
    max_ads_per_region: int = MAX_ADS_PER_REGION
    ad_rank_tiers: tuple[AdTier, ...] = field(default=AD_RANK_TIERS)
    ad_image_template: str = AD_IMAGE_TEMPLATE
    ad_url_template: str = AD_URL_TEMPLATE
    world_seed: str = ""

    def __post_init__(self) -> None:
        if self.low_detail_distance < self.high_detail_distance:
            raise ValueError(
                f"low_detail_distance ({self.low_detail_distance}) must be >= "
                f"high_detail_distance ({self.high_detail_distance})"
            )
        if len(self.ad_rank_tiers) < 5:
            raise ValueError("at least 5 ad rank tiers are required")
        if not self.biome_names:
            raise ValueError("biome_names must not be empty")

    def low_detail_island_range(self) -> tuple[int, int]:
        lo, hi = self.islands_per_region
        return max(1, lo - 1), max(2, hi - 2)

    def with_overrides(self, **changes) -> "WorldSettings":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
