from fastapi import APIRouter
from stemplay.games import load_catalog

router = APIRouter(prefix="/api/games", tags=["games"])


@router.get("")
def list_games():
    """Known mini-games with their points multiplier and level count."""
    return {"games": list(load_catalog().values())}
