"""Tests for terrain shape synthesis and mesh primitives."""
import math

import pytest

from archipelago.biomes.registry import DEFAULT_BIOMES
from archipelago.generation.geometry import FrozenGeometryError, cylinder, hemisphere, plane
from archipelago.generation.shapes import ShapeSynthesizer, _ring_cell, content_key, fallback_cone, size_bucket


BIOME_NAMES = sorted(DEFAULT_BIOMES)


class TestPrimitives:
    def test_cylinder_counts(self):
        geometry = cylinder(1.0, 2.0, 3.0, 8, 2)
        # 3 rows of 9 side vertices plus two caps of centre + 9 ring vertices.
        assert geometry.vertex_count == 27 + 10 + 10
        assert len(geometry.indices) % 3 == 0
        assert max(geometry.indices) < geometry.vertex_count

    def test_cone_has_no_top_cap(self):
        geometry = cylinder(0.0, 2.0, 3.0, 8, 1)
        assert geometry.vertex_count == 18 + 10

    def test_hemisphere_sits_on_equator(self):
        geometry = hemisphere(4.0, 8, 4)
        ys = geometry.positions[1::3]
        assert min(ys) == pytest.approx(0.0, abs=1e-9)
        assert max(ys) == pytest.approx(4.0)

    def test_plane_is_finalized(self):
        geometry = plane(2.0, 1.0)
        assert geometry.bounding_sphere.is_valid()
        assert geometry.bounding_sphere.radius == pytest.approx(math.hypot(1.0, 0.5))

    def test_frozen_geometry_rejects_mutation(self):
        geometry = plane(1.0, 1.0).freeze()
        with pytest.raises(FrozenGeometryError):
            geometry.set_vertex(0, 1.0, 1.0, 1.0)
        clone = geometry.clone()
        clone.set_vertex(0, 1.0, 1.0, 1.0)
        assert geometry.vertex(0) != clone.vertex(0)

    def test_repair_non_finite(self):
        geometry = cylinder(0.0, 1.0, 1.0, 6)
        geometry.set_vertex(3, float("nan"), 0.0, float("inf"))
        assert geometry.repair_non_finite() == 1
        assert geometry.vertex(3) == (0.0, 0.0, 0.0)

    def test_bounding_sphere_flags_nan(self):
        geometry = cylinder(0.0, 1.0, 1.0, 6)
        geometry.set_vertex(0, float("nan"), 0.0, 0.0)
        assert not geometry.compute_bounding_sphere().is_valid()


class TestRingCell:
    def test_seam_column_maps_to_first_column(self):
        segments, rows = 8, 2
        stride = segments + 1
        assert _ring_cell(0, segments, rows, top_cap=True) == (0, 0)
        assert _ring_cell(segments, segments, rows, top_cap=True) == (0, 0)
        assert _ring_cell(stride + segments, segments, rows, top_cap=True) == (1, 0)

    def test_caps(self):
        segments, rows = 8, 2
        side = (segments + 1) * (rows + 1)
        assert _ring_cell(side, segments, rows, top_cap=True) is None
        assert _ring_cell(side + 1, segments, rows, top_cap=True) == (0, 0)
        bottom_centre = side + segments + 2
        assert _ring_cell(bottom_centre, segments, rows, top_cap=True) is None
        assert _ring_cell(bottom_centre + 3, segments, rows, top_cap=True) == (rows, 2)


class TestShapeSynthesizer:
    def test_keys(self):
        assert size_bucket(7.4) == 7
        assert size_bucket(0.2) == 1
        assert content_key("Snow", "jagged", 7) == "Snow_jagged_7"

    def test_archetype_mapping(self):
        synth = ShapeSynthesizer()
        assert synth.archetype_for("Snow") == "jagged"
        assert synth.archetype_for("Forest") == "smooth_hill"
        assert synth.archetype_for("Jungle") == "smooth_hill"
        assert synth.archetype_for("Desert") == "mesa"
        assert synth.archetype_for("Volcano") == "crater"
        assert synth.archetype_for("Swamp") == "archipelago"
        assert synth.archetype_for("Atlantis") == "smooth_hill"

    @pytest.mark.parametrize("biome", BIOME_NAMES)
    def test_deterministic(self, biome):
        """Two independent synthesizers produce identical vertex arrays."""
        key = content_key(biome, ShapeSynthesizer().archetype_for(biome), 8)
        a = ShapeSynthesizer().generate(key, biome, 8)
        b = ShapeSynthesizer().generate(key, biome, 8)
        assert list(a.positions) == list(b.positions)
        assert list(a.indices) == list(b.indices)

    def test_different_seeds_differ(self):
        synth = ShapeSynthesizer()
        a = synth.generate("one", "Volcano", 8)
        b = synth.generate("two", "Volcano", 8)
        assert list(a.positions) != list(b.positions)

    def test_no_nan_across_parameter_space(self):
        synth = ShapeSynthesizer()
        for biome in BIOME_NAMES + ["Unknown"]:
            for bucket in range(1, 19):
                for seed in ("a", "0_0", "ad_island_1_1_0_rank8", "zz" * 10):
                    geometry = synth.generate(seed + biome, biome, bucket)
                    sphere = geometry.bounding_sphere
                    assert sphere is not None
                    assert math.isfinite(sphere.radius) and sphere.radius >= 0.0
                    assert all(math.isfinite(c) for c in geometry.positions)
                    assert len(geometry.normals) == len(geometry.positions)
        assert synth.fallbacks == 0

    def test_segment_counts_are_capped(self):
        synth = ShapeSynthesizer()
        small = synth.generate("s", "Volcano", 30)
        large = synth.generate("s", "Volcano", 300)
        assert small.vertex_count == large.vertex_count

    def test_coincident_seam_vertices_stay_together(self):
        """Perturbation is keyed by ring cell, so the duplicated seam column does not crack."""
        synth = ShapeSynthesizer()
        geometry = synth.generate("seam", "Snow", 12)
        segments = ShapeSynthesizer.MAX_RADIAL_SEGMENTS
        stride = segments + 1
        rows = 3
        for row in range(rows + 1):
            first = geometry.vertex(row * stride)
            last = geometry.vertex(row * stride + segments)
            for a, b in zip(first, last):
                assert a == pytest.approx(b, abs=1e-9)

    def test_fallback_cone_is_valid(self):
        cone = fallback_cone(6.0)
        assert cone.bounding_sphere.is_valid()
        assert cone.vertex_count > 0
