from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from archipelago.constants import Vec3
from archipelago.generation.geometry import MeshGeometry

TERRAIN = "terrain"
LOW_DETAIL = "low_detail"
PLACEHOLDER = "placeholder"
BILLBOARD = "billboard"
PEDESTAL = "pedestal"
PILLAR = "pillar"


@dataclass(eq=False)
class SceneObject:
    """One drawable: geometry in local space placed at ``position``.

    ``colors`` holds one RGB triple per vertex. Identity equality, so two
    objects sharing a billboard template are still distinct in the scene.
    """

    kind: str
    owner_id: str
    position: Vec3
    geometry: MeshGeometry
    colors: list[float]
    texture: Any = None
    opacity: float = 1.0
    double_sided: bool = False

    def world_positions(self) -> list[float]:
        x, y, z = self.position
        return self.geometry.translated(x, y, z)


class Scene(Protocol):
    def insert(self, obj: SceneObject) -> None: ...

    def remove(self, obj: SceneObject) -> None: ...


@dataclass(eq=False)
class LandmassVisual:
    record_id: str
    detail: str
    objects: list[SceneObject] = field(default_factory=list)
    billboard: SceneObject | None = None
    billboard_key: tuple[float, float] | None = None
    texture_ref: str | None = None
    disposed: bool = False

    @property
    def terrain(self) -> SceneObject | None:
        for obj in self.objects:
            if obj.kind in (TERRAIN, LOW_DETAIL):
                return obj
        return None


def flat_colors(geometry: MeshGeometry, color: tuple[float, float, float]) -> list[float]:
    return list(color) * geometry.vertex_count
