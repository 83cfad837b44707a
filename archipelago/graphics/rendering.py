from __future__ import annotations

import math
import urllib.request
from concurrent.futures import Future, ThreadPoolExecutor
from io import BytesIO
from pathlib import Path
from queue import Empty, Queue
from typing import Any, Callable

import pyglet
from pyglet import gl
from pyglet.math import Mat4, Vec3

from archipelago.graphics.scene import SceneObject

SKY_COLOR = (0.52, 0.80, 0.92, 1.0)


def setup_gl() -> None:
    gl.glClearColor(*SKY_COLOR)
    gl.glEnable(gl.GL_BLEND)
    gl.glBlendFunc(gl.GL_SRC_ALPHA, gl.GL_ONE_MINUS_SRC_ALPHA)


def set_3d(window: pyglet.window.Window, rotation: tuple[float, float], position: tuple[float, float, float]) -> None:
    width, height = window.get_framebuffer_size()
    gl.glEnable(gl.GL_DEPTH_TEST)
    gl.glViewport(0, 0, width, height)

    window.projection = Mat4.perspective_projection(width / float(height), z_near=0.5, z_far=600.0, fov=65.0)

    yaw_deg, pitch_deg = rotation
    px, py, pz = position
    yaw = Mat4.from_rotation(math.radians(yaw_deg), Vec3(0.0, 1.0, 0.0))
    pitch = Mat4.from_rotation(math.radians(-pitch_deg), Vec3(1.0, 0.0, 0.0))
    translate = Mat4.from_translation(Vec3(-px, -py, -pz))
    window.view = pitch @ yaw @ translate


def set_2d(window: pyglet.window.Window) -> None:
    width, height = window.get_framebuffer_size()
    gl.glDisable(gl.GL_DEPTH_TEST)
    gl.glViewport(0, 0, width, height)
    window.projection = Mat4.orthogonal_projection(0.0, float(width), 0.0, float(height), -1.0, 1.0)
    window.view = Mat4()


class RenderedMesh:
    def __init__(self, parts: list[pyglet.graphics.vertexdomain.VertexList]) -> None:
        self.parts = parts

    def delete(self) -> None:
        for part in self.parts:
            part.delete()


def _triangles(obj: SceneObject) -> tuple[list[float], list[int]]:
    positions = obj.world_positions()
    indices = list(obj.geometry.indices)
    if obj.double_sided:
        for t in range(0, len(indices) - 2, 3):
            indices.extend((indices[t], indices[t + 2], indices[t + 1]))
    flat: list[float] = []
    for i in indices:
        flat.extend(positions[3 * i : 3 * i + 3])
    return flat, indices


class PygletScene:
    """Scene collaborator that uploads each inserted object into one pyglet batch."""

    def __init__(self, batch: pyglet.graphics.Batch | None = None) -> None:
        self.batch = batch or pyglet.graphics.Batch()
        self.shader = pyglet.graphics.get_default_shader()
        self.group = pyglet.graphics.ShaderGroup(program=self.shader)
        self._texture_groups: dict[int, pyglet.graphics.TextureGroup] = {}
        self._meshes: dict[int, RenderedMesh] = {}

    def __len__(self) -> int:
        return len(self._meshes)

    def _texture_group(self, texture: pyglet.image.Texture) -> pyglet.graphics.TextureGroup:
        group = self._texture_groups.get(texture.id)
        if group is None:
            group = pyglet.graphics.TextureGroup(texture, parent=self.group)
            self._texture_groups[texture.id] = group
        return group

    def forget_texture(self, texture: pyglet.image.Texture) -> None:
        """Drop the draw group of a texture the resource cache is about to delete."""
        self._texture_groups.pop(texture.id, None)

    def insert(self, obj: SceneObject) -> None:
        if id(obj) in self._meshes:
            return
        vertices, indices = _triangles(obj)
        if not vertices:
            return
        count = len(vertices) // 3

        if obj.texture is not None:
            # Default shader adds vertex colour to the texel, so textured quads carry zero colour.
            uvs = obj.geometry.uvs
            tex_coords: list[float] = []
            for i in indices:
                tex_coords.extend((uvs[2 * i], uvs[2 * i + 1], 0.0))
            part = self.shader.vertex_list(
                count,
                gl.GL_TRIANGLES,
                batch=self.batch,
                group=self._texture_group(obj.texture),
                position=("f/static", vertices),
                colors=("f/static", [0.0, 0.0, 0.0, 0.0] * count),
                tex_coords=("f/static", tex_coords),
            )
        else:
            colors: list[float] = []
            rgb = obj.colors
            for i in indices:
                colors.extend((rgb[3 * i], rgb[3 * i + 1], rgb[3 * i + 2], obj.opacity))
            part = self.shader.vertex_list(
                count,
                gl.GL_TRIANGLES,
                batch=self.batch,
                group=self.group,
                position=("f/static", vertices),
                colors=("f/static", colors),
            )
        self._meshes[id(obj)] = RenderedMesh([part])

    def remove(self, obj: SceneObject) -> None:
        mesh = self._meshes.pop(id(obj), None)
        if mesh is not None:
            mesh.delete()

    def clear(self) -> None:
        for mesh in self._meshes.values():
            mesh.delete()
        self._meshes.clear()


class PygletTextureLoader:
    """Reads image bytes on a worker thread; ``poll()`` decodes them into textures on the GL thread."""

    FETCH_WORKERS = 2
    FETCH_TIMEOUT_SECONDS = 10.0

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=self.FETCH_WORKERS, thread_name_prefix="texfetch")
        self._completed: Queue[tuple[str, Future[bytes], Callable[[Any], None], Callable[[BaseException], None]]] = Queue()

    def _read(self, ref: str) -> bytes:
        if ref.startswith(("http://", "https://")):
            with urllib.request.urlopen(ref, timeout=self.FETCH_TIMEOUT_SECONDS) as response:
                return response.read()
        return Path(ref).read_bytes()

    def fetch(self, ref: str, on_loaded: Callable[[Any], None], on_failed: Callable[[BaseException], None]) -> None:
        future = self._executor.submit(self._read, ref)
        future.add_done_callback(lambda f, r=ref: self._completed.put((r, f, on_loaded, on_failed)))

    def poll(self, limit: int = 2) -> int:
        handled = 0
        while handled < limit:
            try:
                ref, future, on_loaded, on_failed = self._completed.get_nowait()
            except Empty:
                break
            handled += 1
            if future.cancelled():
                continue
            try:
                data = future.result()
                name = Path(ref).name
                if not Path(name).suffix:
                    name += ".jpg"
                image = pyglet.image.load(name, file=BytesIO(data))
                texture = image.get_texture()
            except Exception as exc:
                on_failed(exc)
                continue
            on_loaded(texture)
        return handled

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
