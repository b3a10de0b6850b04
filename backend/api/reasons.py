# reasons.py - short "why this title" text for each recommendation
import logging

import requests

from settings import Settings

logger = logging.getLogger(__name__)

FALLBACK_REASON = "Popular choice among viewers"


def format_rating(rating):
    # 8.0 -> "8", 8.5 -> "8.5"
    return f"{float(rating):g}"


def top_genres(movie, count=2):
    return " & ".join((movie.genres or [])[:count])


def default_reason(movie):
    """Rule-based reason from the movie's rating and first two genres."""
    rating = movie.vote_average
    genres = top_genres(movie)

    if rating is not None and rating >= 8:
        return f"Highly rated {genres} with {format_rating(rating)}★ rating"
    if rating is not None and rating >= 7:
        return f"Popular {genres} with great reviews"
    if genres:
        return f"Trending {genres} you might enjoy"
    return FALLBACK_REASON


def build_prompt(movie, liked_movies):
    liked_titles = ", ".join(m.title for m in liked_movies[:3])
    movie_genres = ", ".join(movie.genres or [])
    return (
        f"Based on the user liking {liked_titles}, generate a short (10-15 words) "
        f"recommendation reason for '{movie.title}' ({movie_genres}). "
        f"Start with 'Because you liked...' or 'Since you enjoyed...'"
    )


def extract_completion_text(data):
    """First choice's message content, stripped; '' for any malformed payload."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""
    return content.strip() if isinstance(content, str) else ""


class ReasonGenerator:
    """Asks a chat-completion provider for a reason, falling back to ``default_reason``."""

    def __init__(self, settings=None):
        self.settings = settings or Settings()

    @property
    def enabled(self):
        return bool(self.settings.textgen_credential)

    def reason_for(self, movie, user_id=None, liked_movies=None):
        """Never raises; any provider failure yields the default reason.

        ``liked_movies`` should be ordered most recent first.
        """
        liked_movies = liked_movies or []
        if user_id is None or not self.enabled or not liked_movies:
            return default_reason(movie)

        reason = self._generate(movie, liked_movies)
        return reason or default_reason(movie)

    def annotate(self, candidates, user_id=None, liked_movies=None):
        return [c.with_reason(self.reason_for(c.movie, user_id, liked_movies)) for c in candidates]

    def _generate(self, movie, liked_movies):
        payload = {
            "model": self.settings.textgen_model,
            "messages": [{"role": "user", "content": build_prompt(movie, liked_movies)}],
            "max_tokens": 50,
            "temperature": 0.7,
        }
        headers = {
            "Authorization": f"Bearer {self.settings.textgen_credential}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(
                self.settings.textgen_url, json=payload, headers=headers,
                timeout=self.settings.textgen_timeout,
            )
            if not resp.ok:
                logger.warning("Reason generation for movie %s failed with status %s", movie.id, resp.status_code)
                return ""
            text = extract_completion_text(resp.json())
            if not text:
                logger.warning("Reason generation for movie %s returned no text", movie.id)
            return text
        except requests.exceptions.RequestException as e:
            logger.error("Reason generation request error for movie %s: %s", movie.id, e)
        except ValueError as e:
            logger.error("Reason generation returned invalid JSON for movie %s: %s", movie.id, e)
        return ""
