from archipelago.biomes.registry import (
    BIOMES,
    BiomeDefinition,
    archetype_for_biome,
    get_biome_color,
    get_biome_definition,
    load_biome_definitions,
)

__all__ = [
    "BIOMES",
    "BiomeDefinition",
    "archetype_for_biome",
    "get_biome_color",
    "get_biome_definition",
    "load_biome_definitions",
]
