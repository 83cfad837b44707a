from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class BiomeDefinition:
    name: str
    color: tuple[float, float, float]
    archetype: str


PROJECT_ROOT = Path(__file__).resolve().parents[2]
BIOMES_DIR = PROJECT_ROOT / "Biomes"

ARCHETYPES = ("jagged", "smooth_hill", "mesa", "crater", "archipelago")
DEFAULT_ARCHETYPE = "smooth_hill"
FALLBACK_COLOR = (0.0, 1.0, 0.0)


def _hex_color(value: int) -> tuple[float, float, float]:
    return ((value >> 16) & 0xFF) / 255.0, ((value >> 8) & 0xFF) / 255.0, (value & 0xFF) / 255.0


DEFAULT_BIOMES: dict[str, BiomeDefinition] = {
    "Jungle": BiomeDefinition("Jungle", _hex_color(0x228B22), "smooth_hill"),
    "Desert": BiomeDefinition("Desert", _hex_color(0xC2B280), "mesa"),
    "Snow": BiomeDefinition("Snow", _hex_color(0xFFFFFF), "jagged"),
    "Volcano": BiomeDefinition("Volcano", _hex_color(0x8B0000), "crater"),
    "Forest": BiomeDefinition("Forest", _hex_color(0x2E5A1C), "smooth_hill"),
    "Swamp": BiomeDefinition("Swamp", _hex_color(0x4A5D23), "archipelago"),
}


def _parse_color(value: str) -> tuple[float, float, float]:
    value = value.strip()
    if value.startswith("#"):
        return _hex_color(int(value[1:], 16))
    if value.lower().startswith("0x"):
        return _hex_color(int(value, 16))

    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 3:
        raise ValueError("color must be a hex code or have 3 comma-separated components")

    raw = [float(p) for p in parts]
    if any(c > 1.0 for c in raw):
        raw = [c / 255.0 for c in raw]

    return tuple(max(0.0, min(1.0, c)) for c in raw)  # type: ignore[return-value]


def _load_biome_file(path: Path) -> BiomeDefinition:
    data: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip().lower()] = value.strip()

    name = data.get("name", path.stem)
    archetype = data.get("archetype", DEFAULT_ARCHETYPE).lower()
    if archetype not in ARCHETYPES:
        raise ValueError(f"{path.name}: unknown archetype '{archetype}'")
    color = _parse_color(data.get("color", "0,255,0"))
    return BiomeDefinition(name=name, color=color, archetype=archetype)


def load_biome_definitions(directory: Path | None = None) -> dict[str, BiomeDefinition]:
    """Built-in biomes, extended or overridden by ``*.txt`` files in ``directory``."""
    definitions = dict(DEFAULT_BIOMES)
    directory = BIOMES_DIR if directory is None else directory
    if directory.is_dir():
        for path in sorted(directory.glob("*.txt")):
            biome = _load_biome_file(path)
            definitions[biome.name] = biome

    return definitions


BIOMES = load_biome_definitions()


def get_biome_definition(name: str, table: dict[str, BiomeDefinition] | None = None) -> BiomeDefinition | None:
    return (BIOMES if table is None else table).get(name)


def get_biome_color(name: str, table: dict[str, BiomeDefinition] | None = None) -> tuple[float, float, float]:
    biome = get_biome_definition(name, table)
    if biome is None:
        return FALLBACK_COLOR
    return biome.color


def archetype_for_biome(name: str, table: dict[str, BiomeDefinition] | None = None) -> str:
    biome = get_biome_definition(name, table)
    if biome is None:
        return DEFAULT_ARCHETYPE
    return biome.archetype
