import logging
import math
import time
import webbrowser
from pathlib import Path

import pyglet
from pyglet import gl
from pyglet.window import key

from archipelago.biomes import load_biome_definitions
from archipelago.constants import BOAT_REVERSE_SPEED, BOAT_SPEED, BOAT_TURN_SPEED, TICKS_PER_SECOND, WorldSettings
from archipelago.debug.profiler import RuntimeProfiler
from archipelago.generation.seeded_random import string_hash
from archipelago.generation.shapes import ShapeSynthesizer
from archipelago.graphics.rendering import PygletScene, PygletTextureLoader, set_2d, set_3d
from archipelago.graphics.resource_cache import ResourceCache
from archipelago.world.factory import LandmassFactory
from archipelago.world.store import JsonFileStorage, WorldStore, region_of
from archipelago.world.streamer import ChunkStreamer

logger = logging.getLogger(__name__)

NAME_PREFIXES = ("Kor", "Ama", "Vel", "Tor", "Isa", "Mar", "Sel", "Ond")
NAME_SUFFIXES = ("via", "ros", "enne", "oki", "ath", "uma", "is", "ora")


class GameWindow(pyglet.window.Window):
    STREAM_UPDATE_INTERVAL_SECONDS = 1.0 / 20.0
    CAMERA_DISTANCE = 12.0
    CAMERA_HEIGHT = 5.0
    CAMERA_PITCH = -15.0

    def __init__(self, settings: WorldSettings, save_path: Path, open_ads: bool = False):
        super().__init__(width=1280, height=720, caption="Archipelago", resizable=True)
        self.settings = settings
        self.open_ads = open_ads
        self.profiler = RuntimeProfiler(enabled=True, slow_frame_ms=25.0, max_slow_frames=500)
        self.profiler.clear_previous_reports("profiling")

        biomes = load_biome_definitions()
        self.store = WorldStore(JsonFileStorage(save_path))
        self.store.load()
        self.scene = PygletScene()
        self.cache = ResourceCache(on_texture_disposed=self.scene.forget_texture)
        self.texture_loader = PygletTextureLoader()
        self.factory = LandmassFactory(
            self.scene,
            self.cache,
            ShapeSynthesizer(biomes),
            texture_loader=self.texture_loader,
            biomes=biomes,
        )
        self.streamer = ChunkStreamer(self.store, self.factory, self.cache, settings, profiler=self.profiler)

        self.position = (settings.region_size / 2.0, 0.0, settings.region_size / 2.0)
        self.heading = 0.0
        self._stream_timer = 0.0
        self._names_given = 0
        self.streamer.prime_regions(self.position)

        self.keys = key.KeyStateHandler()
        self.push_handlers(self.keys)
        pyglet.clock.schedule_interval(self.update, 1.0 / TICKS_PER_SECOND)

        self.ui_batch = pyglet.graphics.Batch()
        self.label = pyglet.text.Label(
            "",
            x=10,
            y=self.height - 10,
            anchor_x="left",
            anchor_y="top",
            color=(255, 255, 255, 255),
            batch=self.ui_batch,
        )

    def forward_vector(self) -> tuple[float, float]:
        return math.cos(math.radians(self.heading - 90.0)), math.sin(math.radians(self.heading - 90.0))

    def suggest_name(self, biome: str) -> str:
        h = string_hash(f"{self.settings.world_seed}{biome}{self._names_given}")
        self._names_given += 1
        return NAME_PREFIXES[h % len(NAME_PREFIXES)] + NAME_SUFFIXES[(h // 7) % len(NAME_SUFFIXES)]

    def visit_ad(self, url: str) -> bool:
        logger.debug("Ad link %s (open_ads=%s)", url, self.open_ads)
        if not self.open_ads:
            return False
        return webbrowser.open(url, new=2)

    def update(self, dt: float) -> None:
        dt = min(dt, 0.25)
        x, _, z = self.position
        self.profiler.begin_frame("update", {"region": list(region_of(x, z, self.settings.region_size))})
        try:
            with self.profiler.section("update.boat"):
                turn = int(self.keys[key.D]) - int(self.keys[key.A])
                self.heading += math.degrees(BOAT_TURN_SPEED) * turn * dt
                throttle = 0.0
                if self.keys[key.W]:
                    throttle = BOAT_SPEED
                elif self.keys[key.S]:
                    throttle = -BOAT_REVERSE_SPEED
                fx, fz = self.forward_vector()
                self.position = (x + fx * throttle * dt, 0.0, z + fz * throttle * dt)

            with self.profiler.section("update.textures"):
                self.texture_loader.poll()

            self._stream_timer += dt
            if self._stream_timer >= self.STREAM_UPDATE_INTERVAL_SECONDS:
                self._stream_timer = 0.0
                with self.profiler.section("update.stream"):
                    self.streamer.on_observer_moved(self.position)
                with self.profiler.section("update.interactions"):
                    self.streamer.name_nearby_landmasses(self.position, self.suggest_name)
                    self.streamer.check_ad_proximity(self.position, self.visit_ad, time.time())

            snapshot = self.streamer.diagnostics_snapshot()
            self.profiler.sample(snapshot)
            px, _, pz = self.position
            self.label.text = (
                f"Pos: ({px:.1f}, {pz:.1f})  Regions: {snapshot['generated_regions']}  "
                f"Islands: {snapshot['landmasses']}  Queued: {snapshot['queued_regions']}"
                f"{self._nearest_name_text()}"
            )
        finally:
            self.profiler.end_frame(extra_context=self.streamer.diagnostics_snapshot())

    def _nearest_name_text(self) -> str:
        x, _, z = self.position
        best = None
        best_distance = float("inf")
        for landmass_id in self.streamer.visible_landmass_ids():
            record = self.store.get(landmass_id)
            if record is None or record.name is None:
                continue
            distance = math.hypot(record.x - x, record.z - z)
            if distance < best_distance:
                best, best_distance = record, distance
        if best is None:
            return ""
        return f"  Nearest: {best.name} ({best_distance:.0f}m)"

    def camera(self) -> tuple[tuple[float, float], tuple[float, float, float]]:
        x, _, z = self.position
        fx, fz = self.forward_vector()
        eye = (x - fx * self.CAMERA_DISTANCE, self.CAMERA_HEIGHT, z - fz * self.CAMERA_DISTANCE)
        return (self.heading, self.CAMERA_PITCH), eye

    def on_resize(self, width, height):
        super().on_resize(width, height)
        self.label.y = height - 10

    def on_draw(self):
        self.profiler.begin_frame("draw")
        try:
            with self.profiler.section("draw.clear"):
                self.clear()
            with self.profiler.section("draw.set_3d"):
                rotation, eye = self.camera()
                set_3d(self, rotation, eye)
                gl.glDisable(gl.GL_CULL_FACE)
            with self.profiler.section("draw.scene_batch"):
                self.scene.batch.draw()
            with self.profiler.section("draw.ui_batch"):
                set_2d(self)
                self.ui_batch.draw()
        finally:
            self.profiler.end_frame()

    def on_close(self):
        report_paths = self.profiler.write_report()
        if report_paths is not None:
            txt_path, json_path = report_paths
            print(f"[profiler] wrote streaming report: {txt_path}")
            print(f"[profiler] wrote streaming report: {json_path}")
        self.streamer.shutdown()
        self.texture_loader.shutdown()
        self.scene.clear()
        super().on_close()
