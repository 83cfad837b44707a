from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from archipelago.biomes.registry import BiomeDefinition, get_biome_color, get_biome_definition
from archipelago.generation.geometry import MeshGeometry, cylinder
from archipelago.generation.seeded_random import SeededRandom
from archipelago.generation.shapes import ShapeSynthesizer, content_key, fallback_cone, size_bucket
from archipelago.graphics.resource_cache import ResourceCache, TextureLoader
from archipelago.graphics.scene import (
    BILLBOARD,
    LOW_DETAIL,
    PEDESTAL,
    PILLAR,
    PLACEHOLDER,
    TERRAIN,
    LandmassVisual,
    Scene,
    SceneObject,
    flat_colors,
)
from archipelago.world.regions import PlaceholderSpec
from archipelago.world.store import LandmassRecord

logger = logging.getLogger(__name__)

HIGH_DETAIL = "high"
LOW_DETAIL_TIER = "low"


@dataclass(frozen=True)
class AdVisuals:
    rank: int
    color: tuple[float, float, float]
    billboard_scale: float
    opacity: float
    height_multiplier: float
    pedestal: bool
    pillar_count: int
    texture_brightness: float


def _hex(value: int) -> tuple[float, float, float]:
    return ((value >> 16) & 0xFF) / 255.0, ((value >> 8) & 0xFF) / 255.0, (value & 0xFF) / 255.0


def ad_color(rank: int) -> tuple[float, float, float]:
    if rank >= 9:
        return _hex(0xFFD700)
    if rank >= 7:
        return _hex(0xC0C0C0)
    if rank >= 5:
        return _hex(0xE5C100)
    if rank >= 3:
        return _hex(0xFFFF00)
    return _hex(0xFFA500)


def ad_visuals(rank: int) -> AdVisuals:
    """Everything about an ad's look follows from its rank."""
    return AdVisuals(
        rank=rank,
        color=ad_color(rank),
        billboard_scale=1.0 + rank / 20.0,
        opacity=min(0.7 + rank / 30.0, 0.95),
        height_multiplier=1.3 + rank / 50.0,
        pedestal=rank >= 3,
        pillar_count=min(4, rank // 2) if rank >= 7 else 0,
        texture_brightness=1.0 + rank / 30.0,
    )


def _scale_color(color: tuple[float, float, float], factor: float) -> tuple[float, float, float]:
    return tuple(max(0.0, min(1.0, c * factor)) for c in color)  # type: ignore[return-value]


def _mix(a: tuple[float, float, float], b: tuple[float, float, float], t: float) -> tuple[float, float, float]:
    return tuple(x + (y - x) * t for x, y in zip(a, b))  # type: ignore[return-value]


def shaded_colors(
    geometry: MeshGeometry,
    color: tuple[float, float, float],
    rng: SeededRandom | None = None,
) -> list[float]:
    """Per-vertex RGB: base colour darkened on steep faces, with optional seeded jitter."""
    colors: list[float] = []
    normals = geometry.normals
    for i in range(geometry.vertex_count):
        ny = normals[3 * i + 1] if len(normals) > 3 * i + 1 else 1.0
        shade = 0.55 + 0.45 * max(0.0, ny)
        if rng is not None:
            shade *= rng(0.92, 1.08, f"tint_{i}")
        colors.extend(_scale_color(color, shade))
    return colors


class LandmassFactory:
    def __init__(
        self,
        scene: Scene,
        cache: ResourceCache,
        synthesizer: ShapeSynthesizer | None = None,
        texture_loader: TextureLoader | None = None,
        biomes: dict[str, BiomeDefinition] | None = None,
    ) -> None:
        self.scene = scene
        self.cache = cache
        self.synthesizer = synthesizer or ShapeSynthesizer(biomes)
        self.texture_loader = texture_loader
        self.biomes = biomes
        self.materialized = 0
        self.skipped = 0
        self.fallbacks = 0

    def terrain_key(self, biome: str, size: float) -> tuple[str, int]:
        bucket = size_bucket(size)
        return content_key(biome, self.synthesizer.archetype_for(biome), bucket), bucket

    def warm_terrain(self, biome: str, size: float) -> MeshGeometry:
        """Build (or touch) the shared template for a landmass; safe off the main thread."""
        key, bucket = self.terrain_key(biome, size)
        return self.cache.terrain_template(key, lambda: self.synthesizer.generate(key, biome, bucket))

    def materialize(self, record: LandmassRecord, detail: str = HIGH_DETAIL) -> LandmassVisual | None:
        current = record.visual
        if current is not None:
            if current.detail == detail:
                return current
            self.dematerialize(record)

        biome = get_biome_definition(record.biome, self.biomes)
        if biome is None:
            self.skipped += 1
            logger.warning("Unknown biome '%s' for landmass %s, not materializing", record.biome, record.id)
            return None

        visual = LandmassVisual(record_id=record.id, detail=detail)
        record.visual = visual
        if detail == HIGH_DETAIL:
            self._add(visual, self._terrain_object(record, biome))
            if record.decoration is not None:
                self._add_decorations(record, visual)
        else:
            self._add(visual, self._low_detail_object(record, biome))
        self.materialized += 1
        return visual

    def dematerialize(self, record: LandmassRecord) -> bool:
        visual: LandmassVisual | None = record.visual
        if visual is None:
            return False
        for obj in visual.objects:
            self.scene.remove(obj)
            if obj.kind in (TERRAIN, LOW_DETAIL, PEDESTAL):
                obj.geometry.dispose()
        visual.objects.clear()
        visual.billboard = None
        if visual.billboard_key is not None:
            self.cache.release_billboard(visual.billboard_key)
            visual.billboard_key = None
        if visual.texture_ref is not None:
            self.cache.release_texture(visual.texture_ref)
            visual.texture_ref = None
        visual.disposed = True
        record.visual = None
        return True

    def _add(self, visual: LandmassVisual, obj: SceneObject) -> SceneObject:
        visual.objects.append(obj)
        self.scene.insert(obj)
        return obj

    def _terrain_object(self, record: LandmassRecord, biome: BiomeDefinition) -> SceneObject:
        key, bucket = self.terrain_key(biome.name, record.size)
        geometry = self.cache.terrain_instance(key, lambda: self.synthesizer.generate(key, biome.name, bucket))

        rng = SeededRandom(record.id)
        yaw = rng(0.0, math.tau, "yaw")
        base = record.size / bucket
        stretch = base * rng(0.9, 1.1, "stretch")
        cos_y, sin_y = math.cos(yaw), math.sin(yaw)
        for i in range(geometry.vertex_count):
            x, y, z = geometry.vertex(i)
            geometry.set_vertex(
                i,
                (x * cos_y - z * sin_y) * stretch,
                y * base,
                (x * sin_y + z * cos_y) * stretch,
            )
        geometry.finalize()
        if geometry.bounding_sphere is None or not geometry.bounding_sphere.is_valid():
            self.fallbacks += 1
            logger.error("Invalid bounds for landmass %s, using fallback cone", record.id)
            geometry = fallback_cone(record.size)

        color = biome.color
        if record.decoration is not None:
            color = _mix(color, ad_color(record.decoration.rank), 0.2 + record.decoration.rank / 50.0)
        return SceneObject(TERRAIN, record.id, record.position, geometry, shaded_colors(geometry, color, rng))

    def _low_detail_object(self, record: LandmassRecord, biome: BiomeDefinition) -> SceneObject:
        geometry = cylinder(0.0, record.size, record.size * 0.6, 6, 1)
        geometry.finalize()
        color = biome.color
        if record.decoration is not None:
            color = ad_color(record.decoration.rank)
        return SceneObject(LOW_DETAIL, record.id, record.position, geometry, shaded_colors(geometry, color))

    def _add_decorations(self, record: LandmassRecord, visual: LandmassVisual) -> None:
        decoration = record.decoration
        look = ad_visuals(decoration.rank)
        size = record.size

        visual.billboard_key, geometry = self.cache.acquire_billboard(
            size * 1.2 * look.billboard_scale,
            size * 0.8 * look.billboard_scale,
        )
        billboard = SceneObject(
            BILLBOARD,
            record.id,
            (record.x, size * look.height_multiplier, record.z),
            geometry,
            flat_colors(geometry, look.color),
            opacity=look.opacity,
            double_sided=True,
        )
        visual.billboard = self._add(visual, billboard)

        if decoration.image_ref and self.texture_loader is not None:
            acquired = self.cache.acquire_texture(
                decoration.image_ref,
                self.texture_loader,
                lambda texture, v=visual, b=look: self._apply_texture(v, texture, b),
            )
            if acquired:
                visual.texture_ref = decoration.image_ref

        if look.pedestal:
            pedestal = cylinder(
                size * 0.25 * (1 + decoration.rank / 40.0),
                size * 0.4,
                size * (0.4 + decoration.rank / 50.0),
                min(12, 8 + decoration.rank // 3),
            )
            pedestal.finalize()
            self._add(
                visual,
                SceneObject(PEDESTAL, record.id, (record.x, size * 0.3, record.z), pedestal, shaded_colors(pedestal, look.color)),
            )

        if look.pillar_count:
            pillar = cylinder(size * 0.05, size * 0.08, size * 0.8, 6, 1)
            pillar.finalize()
            colors = shaded_colors(pillar, look.color)
            for i in range(look.pillar_count):
                angle = i / look.pillar_count * math.tau
                position = (record.x + math.cos(angle) * size * 0.7, size * 0.4, record.z + math.sin(angle) * size * 0.7)
                self._add(visual, SceneObject(PILLAR, record.id, position, pillar, colors))

    def _apply_texture(self, visual: LandmassVisual, texture: Any, look: AdVisuals) -> None:
        old = visual.billboard
        if visual.disposed or old is None:
            return
        textured = SceneObject(
            BILLBOARD,
            old.owner_id,
            old.position,
            old.geometry,
            flat_colors(old.geometry, _scale_color((1.0, 1.0, 1.0), look.texture_brightness)),
            texture=texture,
            opacity=1.0,
            double_sided=True,
        )
        self.scene.remove(old)
        visual.objects[visual.objects.index(old)] = textured
        visual.billboard = textured
        self.scene.insert(textured)

    def show_placeholder(self, spec: PlaceholderSpec) -> SceneObject:
        geometry = cylinder(0.0, spec.size, spec.size * 0.6, 6, 1)
        geometry.finalize()
        color = get_biome_color(spec.biome, self.biomes)
        obj = SceneObject(PLACEHOLDER, spec.key, (spec.x, 0.0, spec.z), geometry, shaded_colors(geometry, color))
        self.scene.insert(obj)
        return obj

    def hide_placeholder(self, obj: SceneObject) -> None:
        self.scene.remove(obj)
        obj.geometry.dispose()
