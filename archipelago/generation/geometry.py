from __future__ import annotations

import math
from dataclasses import dataclass, field


class FrozenGeometryError(RuntimeError):
    pass


@dataclass
class BoundingSphere:
    center: tuple[float, float, float]
    radius: float

    def is_valid(self) -> bool:
        return math.isfinite(self.radius) and self.radius >= 0.0 and all(math.isfinite(c) for c in self.center)


@dataclass
class MeshGeometry:
    """Indexed triangle mesh kept as flat float/int sequences.

    Shared cache templates are frozen: their buffers become tuples and every
    mutating method raises. ``clone()`` always returns a mutable copy.
    """

    positions: list[float]
    indices: list[int]
    normals: list[float] = field(default_factory=list)
    uvs: list[float] = field(default_factory=list)
    bounding_sphere: BoundingSphere | None = None
    frozen: bool = False

    @property
    def vertex_count(self) -> int:
        return len(self.positions) // 3

    def clone(self) -> MeshGeometry:
        sphere = None
        if self.bounding_sphere is not None:
            sphere = BoundingSphere(self.bounding_sphere.center, self.bounding_sphere.radius)
        return MeshGeometry(
            positions=list(self.positions),
            indices=list(self.indices),
            normals=list(self.normals),
            uvs=list(self.uvs),
            bounding_sphere=sphere,
        )

    def freeze(self) -> MeshGeometry:
        self.positions = tuple(self.positions)  # type: ignore[assignment]
        self.indices = tuple(self.indices)  # type: ignore[assignment]
        self.normals = tuple(self.normals)  # type: ignore[assignment]
        self.uvs = tuple(self.uvs)  # type: ignore[assignment]
        self.frozen = True
        return self

    def dispose(self) -> None:
        self.positions = ()  # type: ignore[assignment]
        self.indices = ()  # type: ignore[assignment]
        self.normals = ()  # type: ignore[assignment]
        self.uvs = ()  # type: ignore[assignment]
        self.bounding_sphere = None

    def _check_mutable(self) -> None:
        if self.frozen:
            raise FrozenGeometryError("geometry is a shared template; clone() it before mutating")

    def vertex(self, i: int) -> tuple[float, float, float]:
        p = self.positions
        return p[3 * i], p[3 * i + 1], p[3 * i + 2]

    def set_vertex(self, i: int, x: float, y: float, z: float) -> None:
        self._check_mutable()
        self.positions[3 * i] = x
        self.positions[3 * i + 1] = y
        self.positions[3 * i + 2] = z

    def translated(self, dx: float, dy: float, dz: float) -> list[float]:
        out: list[float] = []
        p = self.positions
        for i in range(0, len(p), 3):
            out.extend((p[i] + dx, p[i + 1] + dy, p[i + 2] + dz))
        return out

    def repair_non_finite(self) -> int:
        """Zero out vertices with NaN/Inf components. Returns how many were repaired."""
        self._check_mutable()
        repaired = 0
        for i in range(self.vertex_count):
            x, y, z = self.vertex(i)
            if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(z)):
                self.set_vertex(i, 0.0, 0.0, 0.0)
                repaired += 1
        return repaired

    def compute_vertex_normals(self) -> None:
        self._check_mutable()
        count = self.vertex_count
        acc = [0.0] * (count * 3)
        idx = self.indices
        for t in range(0, len(idx) - 2, 3):
            a, b, c = idx[t], idx[t + 1], idx[t + 2]
            ax, ay, az = self.vertex(a)
            bx, by, bz = self.vertex(b)
            cx, cy, cz = self.vertex(c)
            ux, uy, uz = bx - ax, by - ay, bz - az
            vx, vy, vz = cx - ax, cy - ay, cz - az
            nx = uy * vz - uz * vy
            ny = uz * vx - ux * vz
            nz = ux * vy - uy * vx
            for v in (a, b, c):
                acc[3 * v] += nx
                acc[3 * v + 1] += ny
                acc[3 * v + 2] += nz

        normals: list[float] = []
        for i in range(count):
            nx, ny, nz = acc[3 * i], acc[3 * i + 1], acc[3 * i + 2]
            length = math.sqrt(nx * nx + ny * ny + nz * nz)
            if length > 1e-12 and math.isfinite(length):
                normals.extend((nx / length, ny / length, nz / length))
            else:
                # Degenerate fan apex or cap centre.
                normals.extend((0.0, 1.0, 0.0))
        self.normals = normals

    def compute_bounding_sphere(self) -> BoundingSphere:
        self._check_mutable()
        count = self.vertex_count
        if count == 0:
            self.bounding_sphere = BoundingSphere((0.0, 0.0, 0.0), 0.0)
            return self.bounding_sphere

        p = self.positions
        if not all(math.isfinite(c) for c in p):
            self.bounding_sphere = BoundingSphere((0.0, 0.0, 0.0), float("nan"))
            return self.bounding_sphere
        min_x = min(p[0::3])
        max_x = max(p[0::3])
        min_y = min(p[1::3])
        max_y = max(p[1::3])
        min_z = min(p[2::3])
        max_z = max(p[2::3])
        cx = (min_x + max_x) * 0.5
        cy = (min_y + max_y) * 0.5
        cz = (min_z + max_z) * 0.5
        max_sq = 0.0
        for i in range(0, len(p), 3):
            dx = p[i] - cx
            dy = p[i + 1] - cy
            dz = p[i + 2] - cz
            max_sq = max(max_sq, dx * dx + dy * dy + dz * dz)
        self.bounding_sphere = BoundingSphere((cx, cy, cz), math.sqrt(max_sq))
        return self.bounding_sphere

    def finalize(self) -> None:
        self.compute_vertex_normals()
        self.compute_bounding_sphere()


def cylinder(
    radius_top: float,
    radius_bottom: float,
    height: float,
    radial_segments: int,
    height_segments: int = 1,
    capped: bool = True,
) -> MeshGeometry:
    """Cone/frustum centred on the origin, axis along +Y, rows top to bottom."""
    radial_segments = max(3, int(radial_segments))
    height_segments = max(1, int(height_segments))
    half = height / 2.0
    positions: list[float] = []
    uvs: list[float] = []
    indices: list[int] = []

    for row in range(height_segments + 1):
        v = row / height_segments
        radius = v * (radius_bottom - radius_top) + radius_top
        y = half - v * height
        for seg in range(radial_segments + 1):
            u = seg / radial_segments
            theta = u * math.tau
            positions.extend((radius * math.sin(theta), y, radius * math.cos(theta)))
            uvs.extend((u, 1.0 - v))

    stride = radial_segments + 1
    for row in range(height_segments):
        for seg in range(radial_segments):
            a = row * stride + seg
            b = (row + 1) * stride + seg
            c = (row + 1) * stride + seg + 1
            d = row * stride + seg + 1
            if radius_top > 0.0 or row > 0:
                indices.extend((a, b, d))
            indices.extend((b, c, d))

    if capped:
        for top, radius, y in ((True, radius_top, half), (False, radius_bottom, -half)):
            if radius <= 0.0:
                continue
            centre = len(positions) // 3
            positions.extend((0.0, y, 0.0))
            uvs.extend((0.5, 0.5))
            ring_start = centre + 1
            for seg in range(radial_segments + 1):
                theta = seg / radial_segments * math.tau
                positions.extend((radius * math.sin(theta), y, radius * math.cos(theta)))
                uvs.extend((0.5 + 0.5 * math.sin(theta), 0.5 + 0.5 * math.cos(theta)))
            for seg in range(radial_segments):
                if top:
                    indices.extend((ring_start + seg, ring_start + seg + 1, centre))
                else:
                    indices.extend((ring_start + seg + 1, ring_start + seg, centre))

    return MeshGeometry(positions=positions, indices=indices, uvs=uvs)


def hemisphere(radius: float, width_segments: int, height_segments: int) -> MeshGeometry:
    """Upper half of a UV sphere; rows run from the pole down to the equator at y=0."""
    width_segments = max(3, int(width_segments))
    height_segments = max(2, int(height_segments))
    positions: list[float] = []
    uvs: list[float] = []
    indices: list[int] = []

    for row in range(height_segments + 1):
        v = row / height_segments
        phi = v * (math.pi / 2.0)
        ring = radius * math.sin(phi)
        y = radius * math.cos(phi)
        for seg in range(width_segments + 1):
            u = seg / width_segments
            theta = u * math.tau
            positions.extend((-ring * math.cos(theta), y, ring * math.sin(theta)))
            uvs.extend((u, 1.0 - v))

    stride = width_segments + 1
    for row in range(height_segments):
        for seg in range(width_segments):
            a = row * stride + seg + 1
            b = row * stride + seg
            c = (row + 1) * stride + seg
            d = (row + 1) * stride + seg + 1
            if row > 0:
                indices.extend((a, b, d))
            indices.extend((b, c, d))

    return MeshGeometry(positions=positions, indices=indices, uvs=uvs)


def plane(width: float, height: float) -> MeshGeometry:
    """Single quad in the XY plane facing +Z."""
    hw = width / 2.0
    hh = height / 2.0
    geometry = MeshGeometry(
        positions=[-hw, hh, 0.0, hw, hh, 0.0, -hw, -hh, 0.0, hw, -hh, 0.0],
        indices=[0, 2, 1, 2, 3, 1],
        uvs=[0.0, 1.0, 1.0, 1.0, 0.0, 0.0, 1.0, 0.0],
    )
    geometry.finalize()
    return geometry
