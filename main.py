import argparse
from pathlib import Path

import pyglet

from archipelago.constants import WorldSettings
from archipelago.debug.logging_setup import setup_logging
from archipelago.game.window import GameWindow
from archipelago.graphics.rendering import setup_gl


def run(settings: WorldSettings, save_path: Path, open_ads: bool = False) -> None:
    window = GameWindow(settings, save_path, open_ads=open_ads)
    setup_gl()
    pyglet.app.run()


def main() -> None:
    parser = argparse.ArgumentParser(description="Sail an endless, persistent archipelago")
    parser.add_argument("--seed", default="", help="World seed (same seed => same islands)")
    parser.add_argument("--save-path", type=Path, default=Path("saves/world.json"), help="Where the world is persisted")
    parser.add_argument("--high-detail", type=int, default=None, help="Full-detail radius in regions")
    parser.add_argument("--low-detail", type=int, default=None, help="Low-detail radius in regions")
    parser.add_argument("--open-ads", action="store_true", help="Open advertisement links in the browser")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    args = parser.parse_args()

    setup_logging(args.log_level)
    try:
        settings = WorldSettings().with_overrides(
            world_seed=args.seed,
            high_detail_distance=args.high_detail,
            low_detail_distance=args.low_detail,
        )
    except ValueError as exc:
        parser.error(str(exc))
    run(settings, args.save_path, open_ads=args.open_ads)


if __name__ == "__main__":
    main()
