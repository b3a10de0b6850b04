# settings.py - runtime configuration for the Next Watch backend
import os
import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
GROQ_MODEL = "llama3-8b-8192"

# Ranking constants
LIKED_GENRE_WEIGHT = 0.5
DISLIKED_GENRE_WEIGHT = 0.3
CANDIDATE_POOL_FACTOR = 2
POPULAR_MIN_VOTES = 100


def _env_float(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Credentials, timeouts and ranking weights.

    Passed explicitly to the recommender, the reason generator and the TMDB
    client instead of being looked up globally.
    """
    textgen_credential: Optional[str] = None
    textgen_timeout: float = 5.0
    textgen_url: str = GROQ_URL
    textgen_model: str = GROQ_MODEL
    metadata_credential: str = ""
    metadata_timeout: float = 10.0
    database: str = "nextwatch.db"
    liked_genre_weight: float = LIKED_GENRE_WEIGHT
    disliked_genre_weight: float = DISLIKED_GENRE_WEIGHT
    candidate_pool_factor: int = CANDIDATE_POOL_FACTOR
    popular_min_votes: int = POPULAR_MIN_VOTES
    cors_origins: Tuple[str, ...] = field(default=("http://localhost:3000",))
    kafka_bootstrap: Optional[str] = None

    @classmethod
    def from_env(cls):
        origins = os.getenv("NEXTWATCH_CORS_ORIGINS", "http://localhost:3000")
        return cls(
            textgen_credential=os.getenv("GROQ_API_KEY") or None,
            textgen_timeout=_env_float("GROQ_TIMEOUT", 5.0),
            textgen_url=os.getenv("GROQ_API_URL", GROQ_URL),
            textgen_model=os.getenv("GROQ_MODEL", GROQ_MODEL),
            metadata_credential=os.getenv("TMDB_API_KEY", ""),
            metadata_timeout=_env_float("TMDB_TIMEOUT", 10.0),
            database=os.getenv("NEXTWATCH_DATABASE", "nextwatch.db"),
            liked_genre_weight=_env_float("NEXTWATCH_LIKED_WEIGHT", LIKED_GENRE_WEIGHT),
            disliked_genre_weight=_env_float("NEXTWATCH_DISLIKED_WEIGHT", DISLIKED_GENRE_WEIGHT),
            candidate_pool_factor=_env_int("NEXTWATCH_POOL_FACTOR", CANDIDATE_POOL_FACTOR),
            popular_min_votes=_env_int("NEXTWATCH_POPULAR_MIN_VOTES", POPULAR_MIN_VOTES),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            kafka_bootstrap=os.getenv("KAFKA_BOOTSTRAP_SERVERS") or None,
        )
