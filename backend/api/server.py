# server.py - Next Watch recommendation API
from datetime import datetime, timezone
from functools import wraps
import os
import logging

from flask import Flask, request, jsonify, g
from flask_cors import CORS

import store
import recommender
from events import init_producer, publish_event
from reasons import ReasonGenerator
from settings import Settings
from tmdb_client import TmdbClient

logging.basicConfig(
    level=os.getenv("NEXTWATCH_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# -----------------------
# CONFIG
# -----------------------
SETTINGS = Settings.from_env()

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
# sqlite INTEGER bounds
SQLITE_MIN_INT = -2 ** 63
SQLITE_MAX_INT = 2 ** 63 - 1

app = Flask(__name__)
app.config["SETTINGS"] = SETTINGS
app.config["DATABASE"] = SETTINGS.database
CORS(app, resources={r"/*": {"origins": list(SETTINGS.cors_origins)}})
app.teardown_appcontext(store.close_connection)

init_producer(SETTINGS.kafka_bootstrap)


def get_settings():
    return app.config["SETTINGS"]


# -----------------------
# Auth helpers
# -----------------------
def current_user():
    """Resolve the caller from an ``Authorization: Bearer <token>`` header."""
    if "user" not in g:
        header = request.headers.get("Authorization", "")
        token = header[7:].strip() if header.lower().startswith("bearer ") else None
        g.user = store.get_user_by_token(token)
    return g.user


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if current_user() is None:
            return jsonify({'error': 'Authentication required'}), 401
        return view(*args, **kwargs)
    return wrapped


def in_id_range(value):
    return SQLITE_MIN_INT <= value <= SQLITE_MAX_INT


def parse_movie_id(data):
    """Return (movie_id, error_response)."""
    movie_id = data.get('movie_id')
    if isinstance(movie_id, bool):
        movie_id = None
    if isinstance(movie_id, str) and movie_id.strip().isdigit():
        movie_id = int(movie_id.strip())
    if not isinstance(movie_id, int):
        return None, (jsonify({'error': 'movie_id must be an integer'}), 400)
    if not in_id_range(movie_id):
        return None, (jsonify({'error': 'movie_id out of range'}), 400)
    if store.get_movie(movie_id) is None:
        return None, (jsonify({'error': 'Movie not found'}), 404)
    return movie_id, None


# Initialize schema at startup
try:
    with app.app_context():
        store.init_db_schema()
except Exception as e:
    logger.warning('init_db_schema failed: %s', e)


# -----------------------
# Health
# -----------------------
@app.route('/health-check', methods=['GET'])
def health_check():
    return jsonify({'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()})


# -----------------------
# Recommendations
# -----------------------
@app.route('/recommendations', methods=['GET'])
def api_recommendations():
    try:
        limit = int(request.args.get('limit', DEFAULT_LIMIT))
    except ValueError:
        return jsonify({'error': 'limit must be an integer'}), 400
    limit = max(1, min(limit, MAX_LIMIT))

    settings = get_settings()
    user = current_user()
    user_id = user['user_id'] if user else None
    preferences = store.get_preferences(user_id) if user_id else []

    # ranking finishes before any reason is requested
    pool = store.candidate_movies(user_id, limit, settings.popular_min_votes, settings.candidate_pool_factor)
    ranked = recommender.recommend(user_id, pool, preferences, limit, settings)
    liked_movies = [p.movie for p in preferences if p.rating == 'liked']
    annotated = ReasonGenerator(settings).annotate(ranked, user_id, liked_movies)

    watch_list_ids = store.get_watch_list_ids(user_id) if user_id else []
    preference_ids = [p.movie_id for p in preferences]

    publish_event('recommendations_generated', {'user_id': user_id, 'count': len(annotated)})
    return jsonify({
        'recommendations': [c.to_dict() for c in annotated],
        'watch_list_ids': watch_list_ids,
        'preference_ids': sorted(preference_ids),
        'user': {'user_id': user['user_id'], 'display_name': user['display_name']} if user else None,
    })


# -----------------------
# Preferences (liked / disliked)
# -----------------------
@app.route('/preferences', methods=['POST'])
@login_required
def api_record_preference():
    data = request.get_json(silent=True) or {}
    rating = data.get('rating')
    if rating not in ('liked', 'disliked'):
        return jsonify({'error': "rating must be 'liked' or 'disliked'"}), 400
    movie_id, error = parse_movie_id(data)
    if error:
        return error

    user_id = current_user()['user_id']
    store.record_preference(user_id, movie_id, rating)
    publish_event('preference_recorded', {'user_id': user_id, 'movie_id': movie_id, 'rating': rating})
    return jsonify({'success': True})


@app.route('/watched', methods=['GET'])
@login_required
def api_watched():
    preferences = store.get_preferences(current_user()['user_id'])
    watched = []
    for p in preferences:
        movie = p.movie.to_dict()
        movie['user_rating'] = p.rating
        watched.append(movie)
    return jsonify({'watched_movies': watched})


# -----------------------
# Watch list
# -----------------------
@app.route('/watchlist', methods=['GET'])
@login_required
def api_watch_list():
    movies = store.get_watch_list(current_user()['user_id'])
    return jsonify({'watch_list': [m.to_dict() for m in movies]})


@app.route('/watchlist', methods=['POST'])
@login_required
def api_add_to_watch_list():
    data = request.get_json(silent=True) or {}
    movie_id, error = parse_movie_id(data)
    if error:
        return error
    user_id = current_user()['user_id']
    store.add_to_watch_list(user_id, movie_id)
    publish_event('watchlist_movie_added', {'user_id': user_id, 'movie_id': movie_id})
    return jsonify({'success': True})


@app.route('/watchlist', methods=['DELETE'])
@login_required
def api_remove_from_watch_list():
    data = request.get_json(silent=True) or {}
    movie_id, error = parse_movie_id(data)
    if error:
        return error
    user_id = current_user()['user_id']
    store.remove_from_watch_list(user_id, movie_id)
    publish_event('watchlist_movie_removed', {'user_id': user_id, 'movie_id': movie_id})
    return jsonify({'success': True})


# -----------------------
# Catalog
# -----------------------
@app.route('/movies/<int:movie_id>', methods=['GET'])
def api_movie_by_id(movie_id):
    movie = store.get_movie(movie_id) if in_id_range(movie_id) else None
    if movie is None:
        return jsonify({'error': 'Movie not found'}), 404
    return jsonify(movie.to_dict())


@app.route('/search', methods=['GET'])
def api_search():
    """Search TMDB and add the hits to the catalog.

    Provider failures give an empty result set, not an error status.
    """
    query = (request.args.get('query') or '').strip()
    if not query:
        return jsonify({'error': "Missing 'query' query parameter"}), 400
    try:
        page = max(1, int(request.args.get('page', 1)))
    except ValueError:
        return jsonify({'error': 'page must be an integer'}), 400

    movies = TmdbClient(get_settings()).import_search_results(query, page)
    if movies:
        publish_event('catalog_imported', {'source': 'search', 'query': query, 'count': len(movies)})
    return jsonify({'count': len(movies), 'results': [m.to_dict() for m in movies]})


# -----------------------
# home
# -----------------------
@app.route("/")
def home():
    return {"message": "Next Watch recommendation backend running"}


if __name__ == "__main__":
    app.run(debug=True)
