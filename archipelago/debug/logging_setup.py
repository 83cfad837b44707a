import logging
import sys
from pathlib import Path


def setup_logging(level: str = "INFO", log_dir: str | Path = "logs") -> Path:
    """Send log records to stdout and to ``logs/archipelago.log``; returns the log file path."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "archipelago.log"

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s:%(lineno)d | %(message)s",
        datefmt="%H:%M:%S",
        handlers=[
            logging.FileHandler(log_file, mode="w", encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    # pyglet is chatty at debug level.
    logging.getLogger("pyglet").setLevel(logging.WARNING)
    return log_file
