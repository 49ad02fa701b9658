from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .common import normalize_locality_key
from .types import Locality

DEFAULT_SEED_PATH = Path("data") / "seed_localities.json"

logger = logging.getLogger(__name__)


def slugify_locality(name: str | None) -> str | None:
    slug = re.sub(r"[\W_]+", "-", (name or "").lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or None


@dataclass(frozen=True)
class SeedLocalities:
    """Curated region -> localities list, each with the detail-page slug to use."""

    by_region: dict[str, tuple[Locality, ...]] = field(default_factory=dict)

    def __len__(self) -> int:
        return sum(len(items) for items in self.by_region.values())

    def regions(self) -> list[str]:
        return sorted(self.by_region)

    def for_region(self, code: str) -> tuple[Locality, ...]:
        return self.by_region.get(code.upper(), ())

    def all(self) -> list[Locality]:
        return [loc for code in self.regions() for loc in self.by_region[code]]

    def keys_for(self, code: str) -> list[str]:
        keys: list[str] = []
        for loc in self.for_region(code):
            key = normalize_locality_key(loc.name)
            if key and key not in keys:
                keys.append(key)
        return keys

    def names_for(self, code: str) -> dict[str, str]:
        names: dict[str, str] = {}
        for loc in self.for_region(code):
            names.setdefault(normalize_locality_key(loc.name), loc.name)
        return names

    def slugs_for(self, code: str) -> dict[str, str]:
        slugs: dict[str, str] = {}
        for loc in self.for_region(code):
            if loc.slug:
                slugs.setdefault(normalize_locality_key(loc.name), loc.slug)
        return slugs

    @classmethod
    def from_mapping(cls, payload: dict) -> "SeedLocalities":
        by_region: dict[str, tuple[Locality, ...]] = {}
        for code, entries in payload.items():
            region = str(code).upper().strip()
            if not re.fullmatch(r"[A-Z]{2}", region) or not isinstance(entries, list):
                continue
            items: list[Locality] = []
            for entry in entries:
                if not isinstance(entry, dict) or not entry.get("city"):
                    continue
                name = str(entry["city"]).strip()
                items.append(Locality(region=region, name=name, slug=entry.get("slug") or slugify_locality(name)))
            if items:
                by_region[region] = tuple(items)
        return cls(by_region=by_region)

    def to_mapping(self) -> dict[str, list[dict[str, str]]]:
        return {
            code: [{"city": loc.name, "slug": loc.slug or ""} for loc in self.by_region[code]]
            for code in self.regions()
        }


def load_seed_localities(path: Path = DEFAULT_SEED_PATH) -> SeedLocalities:
    if not path.exists():
        logger.warning("seed locality file %s not found, continuing without seeds", path)
        return SeedLocalities()
    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError as err:
        logger.warning("seed locality file %s is not valid JSON: %s", path, err)
        return SeedLocalities()
    if not isinstance(payload, dict):
        return SeedLocalities()
    return SeedLocalities.from_mapping(payload)
