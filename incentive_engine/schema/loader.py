"""Field-map loader: YAML serialization and deserialization.

Provides round-trip save/load so the mapping table can be reviewed,
version-controlled, and edited as a human-readable YAML file.
"""

from pathlib import Path

import yaml

from .field_maps import FIELD_MAP_VERSION, FieldMap, build_default_field_maps


def save_field_maps(maps: dict[str, FieldMap], path: str | Path) -> None:
    """Serialize a mapping table to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "version": FIELD_MAP_VERSION,
        "sources": [m.to_dict() for m in maps.values()],
    }
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False,
                  allow_unicode=True, width=120)


def load_field_maps(path: str | Path) -> dict[str, FieldMap]:
    """Deserialize a mapping table from a YAML file.

    Sources listed in the file replace the built-in entry of the same name;
    sources not listed keep their built-in mapping.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    maps = build_default_field_maps()
    for entry in data.get("sources", []):
        fm = FieldMap.from_dict(entry)
        maps[fm.source] = fm
    return maps
