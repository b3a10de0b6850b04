# store.py - SQLite persistence for the catalog, preferences and watch lists
import json
import sqlite3
import time
import logging

from flask import current_app, g

from models import (
    Movie, Preference, normalize_genres, normalize_vote_average, normalize_vote_count,
)

logger = logging.getLogger(__name__)

MOVIES_TABLE = "movies"

MOVIE_COLUMNS = (
    "tmdb_id", "media_type", "title", "overview", "poster_path", "backdrop_path",
    "genres", "vote_average", "vote_count", "release_date", "runtime", "status",
)


# -----------------------
# DB helpers
# -----------------------
def get_db():
    db = getattr(g, "_database", None)
    if db is None:
        db = g._database = sqlite3.connect(current_app.config["DATABASE"])
        db.row_factory = sqlite3.Row
        db.execute("PRAGMA foreign_keys = ON")
    return db


def close_connection(exc):
    db = g.pop("_database", None)
    if db is not None:
        db.close()


def row_to_dict(row):
    return {k: row[k] for k in row.keys()}


def init_db_schema():
    db = get_db()
    cur = db.cursor()
    # Users basic table (identities are resolved by auth_token)
    cur.execute('''
        CREATE TABLE IF NOT EXISTS users_basic (
            user_id TEXT PRIMARY KEY,
            display_name TEXT,
            auth_token TEXT UNIQUE,
            created_at REAL
        )
    ''')
    cur.execute(f'''
        CREATE TABLE IF NOT EXISTS {MOVIES_TABLE} (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            tmdb_id INTEGER NOT NULL UNIQUE,
            media_type TEXT NOT NULL DEFAULT 'movie',
            title TEXT NOT NULL,
            overview TEXT,
            poster_path TEXT,
            backdrop_path TEXT,
            genres TEXT,
            vote_average REAL,
            vote_count INTEGER,
            release_date TEXT,
            runtime INTEGER,
            status TEXT,
            created_at REAL,
            updated_at REAL
        )
    ''')
    cur.execute(f'''
        CREATE TABLE IF NOT EXISTS user_preferences (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL REFERENCES users_basic(user_id) ON DELETE CASCADE,
            movie_id INTEGER NOT NULL REFERENCES {MOVIES_TABLE}(id) ON DELETE CASCADE,
            rating TEXT NOT NULL CHECK (rating IN ('liked', 'disliked')),
            watched INTEGER NOT NULL DEFAULT 1,
            created_at REAL,
            updated_at REAL,
            UNIQUE (user_id, movie_id)
        )
    ''')
    cur.execute(f'''
        CREATE TABLE IF NOT EXISTS watch_lists (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL REFERENCES users_basic(user_id) ON DELETE CASCADE,
            movie_id INTEGER NOT NULL REFERENCES {MOVIES_TABLE}(id) ON DELETE CASCADE,
            created_at REAL,
            UNIQUE (user_id, movie_id)
        )
    ''')
    cur.execute(f"CREATE INDEX IF NOT EXISTS idx_movies_vote ON {MOVIES_TABLE} (vote_average, vote_count)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_preferences_user_rating ON user_preferences (user_id, rating)")
    db.commit()


# -----------------------
# Users
# -----------------------
def create_user(user_id, auth_token, display_name=None):
    db = get_db()
    db.execute(
        'INSERT INTO users_basic (user_id, display_name, auth_token, created_at) VALUES (?, ?, ?, ?) '
        'ON CONFLICT(user_id) DO UPDATE SET display_name=excluded.display_name, auth_token=excluded.auth_token',
        (user_id, display_name or user_id, auth_token, time.time())
    )
    db.commit()
    return get_user(user_id)


def get_user(user_id):
    row = get_db().execute('SELECT * FROM users_basic WHERE user_id = ?', (user_id,)).fetchone()
    return row_to_dict(row) if row else None


def get_user_by_token(token):
    if not token:
        return None
    row = get_db().execute('SELECT * FROM users_basic WHERE auth_token = ? LIMIT 1', (token,)).fetchone()
    return row_to_dict(row) if row else None


# -----------------------
# Catalog
# -----------------------
def row_to_movie(row, prefix=""):
    raw_genres = row[prefix + "genres"]
    try:
        genres = json.loads(raw_genres) if raw_genres else []
    except ValueError:
        logger.warning("Movie %s has unreadable genres %r", row[prefix + "id"], raw_genres)
        genres = []
    return Movie(
        id=row[prefix + "id"],
        tmdb_id=row[prefix + "tmdb_id"],
        media_type=row[prefix + "media_type"],
        title=row[prefix + "title"],
        overview=row[prefix + "overview"] or "",
        poster_path=row[prefix + "poster_path"],
        backdrop_path=row[prefix + "backdrop_path"],
        genres=normalize_genres(genres),
        vote_average=row[prefix + "vote_average"],
        vote_count=row[prefix + "vote_count"],
        release_date=row[prefix + "release_date"],
        runtime=row[prefix + "runtime"],
        status=row[prefix + "status"],
    )


def get_movie(movie_id):
    row = get_db().execute(f"SELECT * FROM {MOVIES_TABLE} WHERE id = ? LIMIT 1", (movie_id,)).fetchone()
    return row_to_movie(row) if row else None


def list_movies():
    """Whole catalog in insertion order."""
    rows = get_db().execute(f"SELECT * FROM {MOVIES_TABLE} ORDER BY id").fetchall()
    return [row_to_movie(r) for r in rows]


def candidate_movies(user_id, limit, min_votes=100, pool_factor=2):
    """Recommendation pool ordered and cut in SQL.

    Guests get titles with more than ``min_votes`` votes, at most ``limit``.
    A user gets unseen titles, at most ``limit * pool_factor``. The order
    matches ``recommender.popularity_key`` with ties broken by id.
    """
    order = ("ORDER BY vote_average IS NULL, vote_average DESC, "
             "vote_count IS NULL, vote_count DESC, id")
    if user_id is None:
        rows = get_db().execute(
            f"SELECT * FROM {MOVIES_TABLE} WHERE vote_count > ? {order} LIMIT ?",
            (min_votes, limit)
        ).fetchall()
    else:
        rows = get_db().execute(
            f"""
            SELECT * FROM {MOVIES_TABLE}
            WHERE id NOT IN (SELECT movie_id FROM user_preferences WHERE user_id = ?)
            {order} LIMIT ?
            """,
            (user_id, limit * pool_factor)
        ).fetchall()
    return [row_to_movie(r) for r in rows]


def upsert_movie(data):
    """Insert or update a movie keyed by ``tmdb_id`` and return the stored record."""
    if data.get("tmdb_id") is None:
        raise ValueError("tmdb_id is required")
    media_type = data.get("media_type") or "movie"
    if media_type not in ("movie", "show"):
        raise ValueError(f"invalid media_type: {media_type!r}")
    tmdb_id = int(data["tmdb_id"])
    if not -2 ** 63 <= tmdb_id < 2 ** 63:
        raise ValueError(f"tmdb_id out of range: {tmdb_id}")
    runtime = data.get("runtime")
    values = {
        "tmdb_id": tmdb_id,
        "media_type": media_type,
        "title": (data.get("title") or "").strip(),
        "overview": data.get("overview") or "",
        "poster_path": data.get("poster_path"),
        "backdrop_path": data.get("backdrop_path"),
        "genres": json.dumps(normalize_genres(data.get("genres"))),
        "vote_average": normalize_vote_average(data.get("vote_average")),
        "vote_count": normalize_vote_count(data.get("vote_count")),
        "release_date": data.get("release_date") or None,
        "runtime": int(runtime) if runtime not in (None, "") else None,
        "status": data.get("status"),
    }
    now = time.time()
    cols = ", ".join(MOVIE_COLUMNS)
    marks = ", ".join("?" for _ in MOVIE_COLUMNS)
    updates = ", ".join(f"{c}=excluded.{c}" for c in MOVIE_COLUMNS if c != "tmdb_id")
    db = get_db()
    db.execute(
        f"INSERT INTO {MOVIES_TABLE} ({cols}, created_at, updated_at) VALUES ({marks}, ?, ?) "
        f"ON CONFLICT(tmdb_id) DO UPDATE SET {updates}, updated_at=excluded.updated_at",
        tuple(values[c] for c in MOVIE_COLUMNS) + (now, now)
    )
    db.commit()
    row = db.execute(f"SELECT * FROM {MOVIES_TABLE} WHERE tmdb_id = ?", (values["tmdb_id"],)).fetchone()
    return row_to_movie(row)


# -----------------------
# Preferences
# -----------------------
def record_preference(user_id, movie_id, rating):
    if rating not in ("liked", "disliked"):
        raise ValueError(f"invalid rating: {rating!r}")
    now = time.time()
    db = get_db()
    db.execute(
        'INSERT INTO user_preferences (user_id, movie_id, rating, watched, created_at, updated_at) '
        'VALUES (?, ?, ?, 1, ?, ?) '
        'ON CONFLICT(user_id, movie_id) DO UPDATE SET rating=excluded.rating, watched=1, '
        'updated_at=excluded.updated_at',
        (user_id, movie_id, rating, now, now)
    )
    db.commit()


def get_preferences(user_id):
    """Preferences for a user with their movies, most recently updated first."""
    rows = get_db().execute(
        f'''
        SELECT p.rating AS p_rating, p.watched AS p_watched, p.updated_at AS p_updated_at,
               m.id AS m_id, m.tmdb_id AS m_tmdb_id, m.media_type AS m_media_type,
               m.title AS m_title, m.overview AS m_overview, m.poster_path AS m_poster_path,
               m.backdrop_path AS m_backdrop_path, m.genres AS m_genres,
               m.vote_average AS m_vote_average, m.vote_count AS m_vote_count,
               m.release_date AS m_release_date, m.runtime AS m_runtime, m.status AS m_status
        FROM user_preferences p JOIN {MOVIES_TABLE} m ON m.id = p.movie_id
        WHERE p.user_id = ?
        ORDER BY p.updated_at DESC, p.id DESC
        ''',
        (user_id,)
    ).fetchall()
    return [
        Preference(
            user_id=user_id,
            movie=row_to_movie(r, prefix="m_"),
            rating=r["p_rating"],
            watched=bool(r["p_watched"]),
            updated_at=r["p_updated_at"] or 0.0,
        )
        for r in rows
    ]


def get_preference_ids(user_id):
    rows = get_db().execute(
        'SELECT movie_id FROM user_preferences WHERE user_id = ? ORDER BY movie_id', (user_id,)
    ).fetchall()
    return [r[0] for r in rows]


# -----------------------
# Watch list
# -----------------------
def add_to_watch_list(user_id, movie_id):
    db = get_db()
    db.execute(
        'INSERT INTO watch_lists (user_id, movie_id, created_at) VALUES (?, ?, ?) '
        'ON CONFLICT(user_id, movie_id) DO NOTHING',
        (user_id, movie_id, time.time())
    )
    db.commit()


def remove_from_watch_list(user_id, movie_id):
    db = get_db()
    db.execute('DELETE FROM watch_lists WHERE user_id = ? AND movie_id = ?', (user_id, movie_id))
    db.commit()


def get_watch_list(user_id):
    rows = get_db().execute(
        f'''
        SELECT m.* FROM watch_lists w JOIN {MOVIES_TABLE} m ON m.id = w.movie_id
        WHERE w.user_id = ?
        ORDER BY w.created_at DESC, w.id DESC
        ''',
        (user_id,)
    ).fetchall()
    return [row_to_movie(r) for r in rows]


def get_watch_list_ids(user_id):
    rows = get_db().execute(
        'SELECT movie_id FROM watch_lists WHERE user_id = ? ORDER BY movie_id', (user_id,)
    ).fetchall()
    return [r[0] for r in rows]
