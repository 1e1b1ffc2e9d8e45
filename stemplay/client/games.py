"""Best-effort reporting of mini-game scores.

A failed save never interrupts play: the outcome only says whether the score
reached the leaderboard.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from stemplay.errors import StemPlayError
from stemplay.games import multiplier_for
from stemplay.scoring import game_points

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GameScoreOutcome:
    points: int
    saved: bool
    error: Optional[str] = None


async def report_game_score(
    api,
    ref: str,
    raw_score: float,
    multiplier: Optional[float] = None,
    meta: Optional[dict] = None,
) -> GameScoreOutcome:
    """Score a finished game and try to save it. Without an explicit
    ``multiplier`` the game catalog's one is used."""
    if multiplier is None:
        multiplier = multiplier_for(ref)
    points = game_points(raw_score, multiplier)
    try:
        await api.submit_score("game", ref, points, meta)
    except StemPlayError as e:
        logger.warning(f"Score for {ref} not saved: {e.message}")
        return GameScoreOutcome(points=points, saved=False, error=e.message)
    return GameScoreOutcome(points=points, saved=True)
