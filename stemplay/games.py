"""Mini-game catalog and subject-key helpers."""
from functools import lru_cache
from typing import Optional

import yaml
from thefuzz import process

from stemplay.config import get_settings
from stemplay.errors import ValidationError

SUGGESTION_THRESHOLD = 70  # fuzzy match threshold (0-100)


@lru_cache
def load_catalog(path: Optional[str] = None) -> dict[str, dict]:
    """Load the game catalog from YAML, keyed by slug."""
    path = path or get_settings().games_file
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    catalog = {}
    for slug, info in (data.get("games") or {}).items():
        info = info or {}
        catalog[slug.lower()] = {
            "slug": slug.lower(),
            "title": info.get("title", slug),
            "multiplier": float(info.get("multiplier", 1)),
            "levels": int(info.get("levels", 0)),
        }
    return catalog


def _normalize_ref(ref: str) -> str:
    normalized = ref.strip().lower()
    if normalized.startswith("game:"):
        normalized = normalized[len("game:"):]
    return normalized


def suggest_slug(slug: str, catalog: dict[str, dict]) -> Optional[str]:
    """Closest known slug to a misspelled one, if close enough."""
    if not catalog:
        return None
    match = process.extractOne(slug, list(catalog))
    if match and match[1] >= SUGGESTION_THRESHOLD:
        return match[0]
    return None


def resolve_game_ref(ref: str, catalog: Optional[dict[str, dict]] = None) -> str:
    """
    Normalize a submitted game ref into its leaderboard subject key.

    ``"circuitsnap"``, ``"game:circuitsnap"`` -> ``"game:circuitsnap"``;
    ``"mathtrail-lv3"`` -> ``"game:mathtrail-lv3"``. The slug before the
    first ``-`` must be a known game.
    """
    catalog = catalog if catalog is not None else load_catalog()
    normalized = _normalize_ref(ref)
    if not normalized:
        raise ValidationError("Game ref cannot be empty")

    slug = normalized.split("-", 1)[0]
    if slug not in catalog:
        hint = suggest_slug(slug, catalog)
        msg = f"Unknown game '{slug}'"
        if hint:
            msg += f"; did you mean '{hint}'?"
        raise ValidationError(msg)
    return f"game:{normalized}"


def quiz_subject_key(quiz_id: str) -> str:
    ref = str(quiz_id)
    return ref if ref.startswith("quiz:") else f"quiz:{ref}"


def multiplier_for(ref: str, catalog: Optional[dict[str, dict]] = None) -> float:
    """Points multiplier of the game a ref belongs to; 1.0 for unknown games."""
    catalog = catalog if catalog is not None else load_catalog()
    game = catalog.get(_normalize_ref(ref).split("-", 1)[0])
    return game["multiplier"] if game else 1.0
