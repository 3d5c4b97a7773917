"""Curated prompt presets for the single-image edit mode.

Presets live in ``nbstudio/data/presets.json`` so that the catalogue can be
extended without code changes.  Each entry has an ``id``, a display
``label``, a ``category``, the ``prompt`` sent to Gemini, and a
``requires_secondary_image`` flag for presets that combine two people.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

PRESETS_PATH: Path = Path(__file__).resolve().parent.parent / "data" / "presets.json"


@dataclass(frozen=True)
class PromptPreset:
    id: str
    label: str
    category: str
    prompt: str
    requires_secondary_image: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "category": self.category,
            "prompt": self.prompt,
            "requires_secondary_image": self.requires_secondary_image,
        }


def _parse_presets(raw: dict) -> tuple[PromptPreset, ...]:
    presets = []
    for entry in raw.get("presets", []):
        presets.append(
            PromptPreset(
                id=entry["id"],
                label=entry["label"],
                category=entry.get("category", "creative"),
                prompt=entry["prompt"],
                requires_secondary_image=bool(entry.get("requires_secondary_image", False)),
            )
        )
    return tuple(presets)


@lru_cache(maxsize=None)
def load_presets(path: Path = PRESETS_PATH) -> tuple[PromptPreset, ...]:
    """Load the preset catalogue.

    Args:
        path: Location of the presets JSON file.

    Returns:
        Presets in file order.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid JSON or an entry lacks a
            required key.
    """
    with open(path, encoding="utf-8") as handle:
        try:
            raw = json.load(handle)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid presets file {path}: {e}") from e

    try:
        presets = _parse_presets(raw)
    except KeyError as e:
        raise ValueError(f"Preset entry in {path} is missing key {e}") from e

    logger.debug("Loaded %d prompt presets from %s", len(presets), path)
    return presets


def get_preset(preset_id: str) -> PromptPreset:
    """Return the preset with ``preset_id``.

    Raises:
        KeyError: If no preset has that id.
    """
    for preset in load_presets():
        if preset.id == preset_id:
            return preset
    raise KeyError(f"Unknown preset: {preset_id!r}")
