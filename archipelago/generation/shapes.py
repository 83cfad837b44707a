import logging
import math

from archipelago.biomes import archetype_for_biome
from archipelago.biomes.registry import BiomeDefinition
from archipelago.generation.geometry import MeshGeometry, cylinder, hemisphere
from archipelago.generation.seeded_random import SeededRandom

logger = logging.getLogger(__name__)


def size_bucket(size: float) -> int:
    return max(1, int(round(size)))


def content_key(biome: str, archetype: str, bucket: int) -> str:
    return f"{biome}_{archetype}_{bucket}"


def _ring_cell(i: int, segments: int, rows: int, top_cap: bool) -> tuple[int, int] | None:
    """Map a ``cylinder()`` vertex index to its (row, column); cap centres map to None.

    The seam column and the cap rings repeat side vertices, so perturbations keyed
    by this cell keep coincident vertices together.
    """
    stride = segments + 1
    side = stride * (rows + 1)
    if i < side:
        row, seg = divmod(i, stride)
        return row, seg % segments
    i -= side
    if top_cap:
        if i == 0:
            return None
        if i <= stride:
            return 0, (i - 1) % segments
        i -= stride + 1
    if i == 0:
        return None
    return rows, (i - 1) % segments


def fallback_cone(size: float) -> MeshGeometry:
    geometry = cylinder(0.0, size, size * 0.8, 8, 1)
    geometry.finalize()
    return geometry


class ShapeSynthesizer:
    MAX_RADIAL_SEGMENTS = 12
    MAX_HEIGHT_SEGMENTS = 4

    def __init__(self, biomes: dict[str, BiomeDefinition] | None = None) -> None:
        self.biomes = biomes
        self.repairs = 0
        self.fallbacks = 0
        self._builders = {
            "jagged": self._jagged_mountain,
            "smooth_hill": self._smooth_hill,
            "mesa": self._mesa,
            "crater": self._crater,
            "archipelago": self._archipelago,
        }

    def archetype_for(self, biome: str) -> str:
        return archetype_for_biome(biome, self.biomes)

    def _radial(self, value: float, floor: int = 6) -> int:
        return min(self.MAX_RADIAL_SEGMENTS, max(floor, int(math.floor(value))))

    def _rows(self, value: float, floor: int = 2) -> int:
        return min(self.MAX_HEIGHT_SEGMENTS, max(floor, int(math.floor(value))))

    def generate(self, seed: str, biome: str, bucket: int) -> MeshGeometry:
        """Build the terrain mesh for ``(biome, bucket)`` with all randomness drawn from ``seed``."""
        size = float(max(1, bucket))
        archetype = self.archetype_for(biome)
        builder = self._builders.get(archetype)
        rng = SeededRandom(seed)
        if builder is None:
            geometry = cylinder(0.0, size, size * 0.8, 6)
        else:
            geometry = builder(size, rng)

        repaired = geometry.repair_non_finite()
        if repaired:
            self.repairs += 1
            logger.warning("Repaired %d non-finite vertices in %s terrain (seed=%s)", repaired, archetype, seed)
        geometry.finalize()
        if geometry.bounding_sphere is None or not geometry.bounding_sphere.is_valid():
            self.fallbacks += 1
            logger.error("Invalid bounds for %s terrain (seed=%s), using fallback cone", archetype, seed)
            return fallback_cone(size)
        return geometry

    def _jagged_mountain(self, size: float, rng: SeededRandom) -> MeshGeometry:
        height = size * rng(0.8, 1.0, "height")
        segments = self._radial(size, 6)
        rows = self._rows(size / 4.0, 2)
        geometry = cylinder(0.0, size, height, segments, rows, capped=True)

        for i in range(geometry.vertex_count):
            cell = _ring_cell(i, segments, rows, top_cap=False)
            if cell is None:
                continue
            row, seg = cell
            # Apex row stays pinned; only every other cell is pushed out.
            if row == 0 or (row + seg) % 2:
                continue
            x, y, z = geometry.vertex(i)
            height_factor = (y + height / 2.0) / height
            radius = math.hypot(x, z)
            angle = math.atan2(z, x)
            noise = rng(0.8, 1.2, f"jag_{row}_{seg}") * size * 0.15 * height_factor
            new_radius = radius + noise
            geometry.set_vertex(i, math.cos(angle) * new_radius, y, math.sin(angle) * new_radius)
        return geometry

    def _smooth_hill(self, size: float, rng: SeededRandom) -> MeshGeometry:
        segments = self._radial(size, 6)
        rows = max(4, min(6, int(size / 3)))
        geometry = hemisphere(size * 0.7, segments, rows)
        squash = rng(0.75, 0.95, "squash")
        for i in range(geometry.vertex_count):
            x, y, z = geometry.vertex(i)
            geometry.set_vertex(i, x, y * squash, z)
        return geometry

    def _mesa(self, size: float, rng: SeededRandom) -> MeshGeometry:
        height = size * rng(0.6, 0.8, "height")
        top_radius = size * rng(0.45, 0.55, "top")
        return cylinder(top_radius, size, height, self._radial(size, 6), 1)

    def _crater(self, size: float, rng: SeededRandom) -> MeshGeometry:
        height = size * rng(0.8, 1.2, "height")
        crater_radius = size * rng(0.2, 0.4, "crater")
        crater_depth = height * rng(0.15, 0.3, "depth")
        segments = self._radial(size * 1.2, 8)
        rows = self._rows(size / 2.5, 2)
        geometry = cylinder(crater_radius, size, height, segments, rows, capped=True)
        top = height / 2.0

        for i in range(geometry.vertex_count):
            x, y, z = geometry.vertex(i)
            cell = _ring_cell(i, segments, rows, top_cap=True)
            dist = math.hypot(x, z)
            if y > top - 1e-3 and dist < crater_radius * 0.9:
                y -= crater_depth * (1.0 - dist / crater_radius)
            if cell is not None and y < top - 1e-3 and dist > 1e-9:
                height_factor = (y + top) / height
                noise = rng(0.9, 1.1, f"rim_{cell[0]}_{cell[1]}") * size * 0.05 * height_factor
                angle = math.atan2(z, x)
                x = math.cos(angle) * (dist + noise)
                z = math.sin(angle) * (dist + noise)
            geometry.set_vertex(i, x, y, z)
        return geometry

    def _archipelago(self, size: float, rng: SeededRandom) -> MeshGeometry:
        height = size * rng(0.6, 0.8, "height")
        segments = self._radial(size, 8)
        rows = self._rows(size / 4.0, 2)
        geometry = cylinder(size * 0.3, size, height, segments, rows, capped=True)
        bottom = -height / 2.0

        for i in range(geometry.vertex_count):
            x, y, z = geometry.vertex(i)
            if abs(y - bottom) < 1e-3:
                continue
            dist = math.hypot(x, z)
            cell = _ring_cell(i, segments, rows, top_cap=True)
            if cell is None or y <= -height / 4.0 or dist < 1e-9:
                continue
            salt = f"{cell[0]}_{cell[1]}"
            angle = math.atan2(z, x)
            wave = math.sin(angle * 3.0) * math.cos(angle * 2.0) * rng(0.8, 1.2, f"wave_{salt}")
            y += size * 0.15 * wave * (1.0 - dist / size)
            new_radius = dist + rng(0.9, 1.1, f"spread_{salt}") * size * 0.1 * wave
            geometry.set_vertex(i, x / dist * new_radius, y, z / dist * new_radius)
        return geometry
