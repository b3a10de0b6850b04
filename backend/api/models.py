# models.py - plain data records shared by the store, recommender and API
from dataclasses import dataclass, field, replace
from typing import List, Optional

POSTER_BASE = "https://image.tmdb.org/t/p/w500"
BACKDROP_BASE = "https://image.tmdb.org/t/p/w1280"

MEDIA_TYPES = ("movie", "show")
RATINGS = ("liked", "disliked")


def normalize_genres(genres) -> List[str]:
    """Return an ordered, de-duplicated list of genre names.

    Accepts a list of strings or a list of TMDB-style ``{"name": ...}`` dicts.
    Blank and non-string entries are dropped.
    """
    if not genres:
        return []
    out = []
    seen = set()
    for g in genres:
        if isinstance(g, dict):
            g = g.get("name")
        if not isinstance(g, str):
            continue
        name = g.strip()
        if name and name not in seen:
            seen.add(name)
            out.append(name)
    return out


def normalize_vote_average(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    v = min(max(v, 0.0), 10.0)
    return round(v, 1)


def normalize_vote_count(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        v = int(value)
    except (TypeError, ValueError):
        return None
    return max(v, 0)


@dataclass(frozen=True)
class Movie:
    id: int
    tmdb_id: int
    title: str
    media_type: str = "movie"
    overview: str = ""
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    vote_average: Optional[float] = None
    vote_count: Optional[int] = None
    release_date: Optional[str] = None
    runtime: Optional[int] = None
    status: Optional[str] = None

    @property
    def poster_url(self):
        return f"{POSTER_BASE}{self.poster_path}" if self.poster_path else None

    @property
    def backdrop_url(self):
        return f"{BACKDROP_BASE}{self.backdrop_path}" if self.backdrop_path else None

    def to_dict(self):
        return {
            "id": self.id,
            "tmdb_id": self.tmdb_id,
            "type": self.media_type,
            "title": self.title,
            "overview": self.overview,
            "poster_path": self.poster_path,
            "backdrop_path": self.backdrop_path,
            "poster_url": self.poster_url,
            "backdrop_url": self.backdrop_url,
            "genres": list(self.genres),
            "vote_average": self.vote_average,
            "vote_count": self.vote_count,
            "release_date": self.release_date,
            "runtime": self.runtime,
            "status": self.status,
        }


@dataclass(frozen=True)
class Preference:
    user_id: str
    movie: Movie
    rating: str
    watched: bool = True
    updated_at: float = 0.0

    @property
    def movie_id(self):
        return self.movie.id


@dataclass(frozen=True)
class RecommendationCandidate:
    """A ranked movie for one request; the stored Movie is never modified."""
    movie: Movie
    score: float
    reason: str = ""

    def with_reason(self, reason):
        return replace(self, reason=reason)

    def to_dict(self):
        data = self.movie.to_dict()
        data["recommendation_score"] = round(self.score, 4)
        data["recommendation_reason"] = self.reason
        return data
