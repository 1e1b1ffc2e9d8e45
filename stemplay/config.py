import os
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    db_path: str = "./data/stemplay.db"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    # Scoring / leaderboard
    base_points: int = 100
    leaderboard_top_n: int = 20
    games_file: str = os.path.join(os.path.dirname(__file__), "games.yaml")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
