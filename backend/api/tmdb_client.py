# tmdb_client.py - TMDB metadata lookups and catalog import
import time
import logging
from typing import Dict, List, Optional

import requests

import store
from settings import Settings

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"

MAX_RETRIES = 3
INITIAL_DELAY = 1.0  # seconds

# TMDB calls shows "tv"; the catalog calls them "show"
TMDB_MEDIA_PATHS = {"movie": "movie", "show": "tv", "tv": "tv"}


def catalog_media_type(tmdb_media_type):
    return "show" if tmdb_media_type in ("tv", "show") else "movie"


def listing_results(listing) -> List[Dict]:
    """Dict entries of a listing's ``results``; anything else is dropped."""
    results = listing.get("results") if isinstance(listing, dict) else None
    if not isinstance(results, list):
        return []
    return [r for r in results if isinstance(r, dict)]


def normalize(data: Dict, media_type: str = "movie", genre_map: Dict[int, str] = None) -> Dict:
    """Map a TMDB movie/show payload onto catalog columns.

    Title falls back from ``title`` to ``name``, release date from
    ``release_date`` to ``first_air_date``, and ``genres`` is flattened from
    ``[{"id": .., "name": ..}]`` to a list of names. List endpoints only carry
    ``genre_ids``; those are resolved through ``genre_map`` when given.
    """
    genres = [g.get("name") for g in (data.get("genres") or []) if isinstance(g, dict)]
    if not genres and genre_map:
        genres = [genre_map[i] for i in (data.get("genre_ids") or []) if i in genre_map]
    runtime = data.get("runtime")
    if runtime is None and data.get("episode_run_time"):
        runtime = data["episode_run_time"][0]
    return {
        "tmdb_id": data.get("id"),
        "media_type": catalog_media_type(media_type),
        "title": data.get("title") or data.get("name") or "",
        "overview": data.get("overview") or "",
        "poster_path": data.get("poster_path"),
        "backdrop_path": data.get("backdrop_path"),
        "genres": genres,
        "vote_average": data.get("vote_average"),
        "vote_count": data.get("vote_count"),
        "release_date": data.get("release_date") or data.get("first_air_date") or None,
        "runtime": runtime,
        "status": data.get("status"),
    }


class TmdbClient:
    """Thin TMDB v3 client. Failures are logged and returned as empty results."""

    def __init__(self, settings: Settings = None, session: requests.Session = None,
                 base_url: str = TMDB_BASE_URL):
        self.settings = settings or Settings()
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self._genre_map = None

    def _get(self, path: str, params: Dict = None) -> Optional[Dict]:
        url = f"{self.base_url}{path}"
        query = dict(params or {})
        query["api_key"] = self.settings.metadata_credential

        for attempt in range(MAX_RETRIES):
            try:
                resp = self.session.get(url, params=query, timeout=self.settings.metadata_timeout)

                if resp.status_code == 429:
                    wait_time = INITIAL_DELAY * (2 ** attempt)
                    logger.warning("TMDB rate limit hit on %s, waiting %ss...", path, wait_time)
                    time.sleep(wait_time)
                    continue

                if resp.ok:
                    return resp.json()

                logger.error("TMDB API error for %s: status=%s body=%s", path, resp.status_code, resp.text[:200])
                return None

            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                if attempt < MAX_RETRIES - 1:
                    wait_time = INITIAL_DELAY * (2 ** attempt)
                    logger.warning("TMDB connection error on %s, retrying in %ss (%s/%s)",
                                   path, wait_time, attempt + 1, MAX_RETRIES)
                    time.sleep(wait_time)
                else:
                    logger.error("TMDB request to %s failed after %s tries: %s", path, MAX_RETRIES, e)
            except (requests.exceptions.RequestException, ValueError) as e:
                logger.error("TMDB request error for %s: %s", path, e)
                return None

        return None

    def _get_listing(self, path: str, params: Dict) -> Dict:
        data = self._get(path, params)
        if not isinstance(data, dict):
            if data is not None:
                logger.warning("Unexpected TMDB payload for %s: %s", path, type(data).__name__)
            return {}
        return data

    def search(self, query: str, page: int = 1) -> Dict:
        return self._get_listing("/search/multi", {"query": query, "page": page})

    def popular_movies(self, page: int = 1) -> Dict:
        return self._get_listing("/movie/popular", {"page": page})

    def popular_shows(self, page: int = 1) -> Dict:
        return self._get_listing("/tv/popular", {"page": page})

    def details(self, tmdb_id: int, media_type: str = "movie") -> Optional[Dict]:
        path = TMDB_MEDIA_PATHS.get(media_type, "movie")
        return self._get(f"/{path}/{tmdb_id}")

    def genre_map(self) -> Dict[int, str]:
        """TMDB genre id -> name for movies and shows, fetched once per client."""
        if self._genre_map is None:
            mapping = {}
            for path in ("/genre/movie/list", "/genre/tv/list"):
                data = self._get(path) or {}
                for g in data.get("genres") or []:
                    if isinstance(g, dict) and g.get("id") is not None and g.get("name"):
                        mapping[g["id"]] = g["name"]
            if not mapping:
                # failed lookups are not cached
                return mapping
            self._genre_map = mapping
        return self._genre_map

    def import_movie(self, data: Dict, media_type: str = "movie", genre_map: Dict[int, str] = None):
        """Store (or refresh) a TMDB payload in the catalog; needs an app context."""
        return store.upsert_movie(normalize(data, media_type, genre_map))

    def import_search_results(self, query: str, page: int = 1):
        """Search TMDB and import every movie/show hit; people are skipped."""
        hits = [
            r for r in listing_results(self.search(query, page))
            if r.get("media_type") in ("movie", "tv") and r.get("id") is not None
        ]
        if not hits:
            return []
        genres = self.genre_map()
        movies = []
        for r in hits:
            try:
                movies.append(self.import_movie(r, r["media_type"], genres))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping TMDB result %r: %s", r.get("id"), e)
        return movies
