from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from archipelago.constants import (
    REGION_SIZE,
    SAVE_INTERVAL_SECONDS,
    STORAGE_KEY_DATA,
    STORAGE_KEY_REGIONS,
    AdTier,
    RegionKey,
    tier_for_rank,
)

logger = logging.getLogger(__name__)


def region_of(x: float, z: float, region_size: float = REGION_SIZE) -> RegionKey:
    return math.floor(x / region_size), math.floor(z / region_size)


def region_to_str(region: RegionKey) -> str:
    return f"{region[0]}_{region[1]}"


def region_from_str(text: str) -> RegionKey:
    rx, rz = text.split("_")
    return int(rx), int(rz)


@dataclass
class AdDecoration:
    image_ref: str
    target_url: str
    rank: int = 1
    active: bool = True
    last_interaction: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "image": self.image_ref,
            "url": self.target_url,
            "active": self.active,
            "adRank": self.rank,
            "lastInteractionTime": self.last_interaction,
        }

    @property
    def tier(self) -> AdTier:
        return tier_for_rank(self.rank)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdDecoration:
        rank = int(data.get("adRank") or 1)
        last = data.get("lastInteractionTime")
        return cls(
            image_ref=str(data.get("image", "")),
            target_url=str(data.get("url", "")),
            rank=max(1, min(10, rank)),
            active=bool(data.get("active", True)),
            last_interaction=None if last is None else float(last),
        )


@dataclass(eq=False)
class LandmassRecord:
    id: str
    x: float
    z: float
    biome: str
    size: float
    region: RegionKey
    name: str | None = None
    decoration: AdDecoration | None = None
    # Runtime handles, never persisted.
    visual: Any = field(default=None, repr=False)
    label: Any = field(default=None, repr=False)

    @property
    def position(self) -> tuple[float, float, float]:
        return self.x, 0.0, self.z

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "pos": {"x": self.x, "y": 0, "z": self.z},
            "biome": self.biome,
            "size": self.size,
            "name": self.name,
            "chunk": region_to_str(self.region),
        }
        if self.decoration is not None:
            data["outdoor"] = self.decoration.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LandmassRecord:
        pos = data["pos"]
        outdoor = data.get("outdoor")
        name = data.get("name")
        return cls(
            id=str(data["id"]),
            x=float(pos["x"]),
            z=float(pos["z"]),
            biome=str(data["biome"]),
            size=float(data["size"]),
            region=region_from_str(str(data["chunk"])),
            name=None if name is None else str(name),
            decoration=None if outdoor is None else AdDecoration.from_dict(outdoor),
        )


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryStorage:
    def __init__(self, items: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(items or {})
        self.writes = 0

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value
        self.writes += 1


class JsonFileStorage:
    """Key/value text entries kept together in one JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Could not read save file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.error("Save file %s is not a JSON object, ignoring it", self.path)
            return {}
        return data

    def get_item(self, key: str) -> str | None:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(self.path)


class WorldStore:
    """Authoritative landmass records and the append-only set of generated regions."""

    def __init__(self, storage: KeyValueStorage, save_interval: float = SAVE_INTERVAL_SECONDS) -> None:
        self.storage = storage
        self.save_interval = save_interval
        self.records: dict[str, LandmassRecord] = {}
        self.generated_regions: set[RegionKey] = set()
        self._by_region: dict[RegionKey, list[str]] = {}
        self.dirty = False
        self._last_save: float | None = None
        self.saves = 0

    def __len__(self) -> int:
        return len(self.records)

    def _index(self, record: LandmassRecord) -> None:
        ids = self._by_region.setdefault(record.region, [])
        if record.id not in ids:
            ids.append(record.id)

    def load(self) -> None:
        self.records = {}
        self._by_region = {}
        try:
            raw = self.storage.get_item(STORAGE_KEY_DATA)
            if raw:
                parsed = json.loads(raw)
                if not isinstance(parsed, list):
                    raise ValueError(f"{STORAGE_KEY_DATA} must be a list")
                records = [LandmassRecord.from_dict(item) for item in parsed]
                for record in records:
                    if record.id in self.records:
                        logger.warning("Skipping repeated landmass id %s in region %s", record.id, record.region)
                        continue
                    self.records[record.id] = record
                    self._index(record)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.error("Error loading landmass records, starting empty: %s", exc)
            self.records = {}
            self._by_region = {}

        try:
            raw = self.storage.get_item(STORAGE_KEY_REGIONS)
            regions: set[RegionKey] = set()
            if raw:
                parsed = json.loads(raw)
                if not isinstance(parsed, list):
                    raise ValueError(f"{STORAGE_KEY_REGIONS} must be a list")
                regions = {region_from_str(str(key)) for key in parsed}
            self.generated_regions = regions
        except (TypeError, ValueError) as exc:
            logger.error("Error loading generated regions, starting empty: %s", exc)
            self.generated_regions = set()

        self.dirty = False
        logger.info("Loaded %d landmasses in %d regions", len(self.records), len(self.generated_regions))

    def save(self, now: float | None = None) -> bool:
        data = [record.to_dict() for record in self.records.values()]
        regions = sorted(self.generated_regions)
        try:
            self.storage.set_item(STORAGE_KEY_DATA, json.dumps(data))
            self.storage.set_item(STORAGE_KEY_REGIONS, json.dumps([region_to_str(r) for r in regions]))
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Error saving world data: %s", exc)
            return False
        self.dirty = False
        self.saves += 1
        if now is not None:
            self._last_save = now
        return True

    def mark_dirty(self) -> None:
        self.dirty = True

    def save_if_due(self, now: float) -> bool:
        if not self.dirty:
            return False
        if self._last_save is not None and now - self._last_save < self.save_interval:
            return False
        return self.save(now)

    def flush(self) -> bool:
        if not self.dirty:
            return False
        return self.save()

    def get(self, landmass_id: str) -> LandmassRecord | None:
        return self.records.get(landmass_id)

    def add_landmass(self, record: LandmassRecord) -> bool:
        if record.id in self.records:
            return False
        self.records[record.id] = record
        self._index(record)
        self.dirty = True
        return True

    def add_generated_region(self, region: RegionKey) -> bool:
        if region in self.generated_regions:
            return False
        self.generated_regions.add(region)
        self.dirty = True
        return True

    def is_generated(self, region: RegionKey) -> bool:
        return region in self.generated_regions

    def records_in_region(self, region: RegionKey) -> list[LandmassRecord]:
        return [self.records[i] for i in self._by_region.get(region, ()) if i in self.records]

    def reset(self) -> None:
        self.records = {}
        self._by_region = {}
        self.generated_regions = set()
        self.dirty = True
