# recommender.py - genre-affinity ranking over a user's liked/disliked history
import logging
from collections import Counter

from models import RecommendationCandidate
from settings import Settings

logger = logging.getLogger(__name__)


def popularity_key(movie):
    """Sort key for (vote_average desc, vote_count desc); nulls rank last.

    Meant for ``sorted(..., reverse=True)``, which keeps ties in input order.
    """
    return (
        movie.vote_average is not None,
        movie.vote_average or 0.0,
        movie.vote_count is not None,
        movie.vote_count or 0,
    )


def rank_by_popularity(movies):
    return sorted(movies, key=popularity_key, reverse=True)


def popular_content(catalog, limit, min_votes=100):
    """Guest feed: best rated titles with more than ``min_votes`` votes."""
    eligible = [m for m in catalog if m.vote_count is not None and m.vote_count > min_votes]
    return [
        RecommendationCandidate(movie=m, score=m.vote_average or 0.0)
        for m in rank_by_popularity(eligible)[:limit]
    ]


def genre_counts(movies):
    counts = Counter()
    for movie in movies:
        counts.update(movie.genres or [])
    return counts


def score_movie(movie, liked_genres, disliked_genres, liked_weight=0.5, disliked_weight=0.3):
    score = movie.vote_average or 0.0
    for genre in movie.genres or []:
        if genre in liked_genres:
            score += liked_genres[genre] * liked_weight
        if genre in disliked_genres:
            score -= disliked_genres[genre] * disliked_weight
    return score


def recommend(user_id, catalog, preferences, limit=20, settings=None):
    """Rank catalog movies for ``user_id`` (``None`` for a guest).

    ``preferences`` are the user's Preference rows; every preferenced movie is
    excluded from the result. Candidates come back without a reason.
    """
    settings = settings or Settings()
    if limit <= 0:
        return []

    if user_id is None:
        return popular_content(catalog, limit, settings.popular_min_votes)

    liked = [p.movie for p in preferences if p.rating == "liked"]
    disliked = [p.movie for p in preferences if p.rating == "disliked"]
    seen = {p.movie_id for p in preferences}

    pool_size = limit * settings.candidate_pool_factor
    unseen = rank_by_popularity(m for m in catalog if m.id not in seen)[:pool_size]

    if not liked:
        return [RecommendationCandidate(movie=m, score=m.vote_average or 0.0) for m in unseen[:limit]]

    liked_genres = genre_counts(liked)
    disliked_genres = genre_counts(disliked)
    logger.debug("User %s liked genres %s, disliked genres %s", user_id, dict(liked_genres), dict(disliked_genres))

    scored = [
        RecommendationCandidate(
            movie=m,
            score=score_movie(m, liked_genres, disliked_genres,
                              settings.liked_genre_weight, settings.disliked_genre_weight),
        )
        for m in unseen
    ]
    # stable: equal scores keep the popularity order of the pool
    scored.sort(key=lambda c: c.score, reverse=True)
    return scored[:limit]
