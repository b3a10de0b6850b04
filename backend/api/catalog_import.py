# catalog_import.py - fill the movies catalog from TMDB popular lists or a CSV export
import argparse
import logging

import pandas as pd

import store
from events import publish_event
from server import app, get_settings
from tmdb_client import TmdbClient, listing_results

logger = logging.getLogger(__name__)

GENRE_SEPARATOR = "|"


def import_popular(client, pages=1):
    """Import popular movies and shows, one details call per title for genre names."""
    imported = 0
    for page in range(1, pages + 1):
        for media_type, listing in (("movie", client.popular_movies(page)), ("show", client.popular_shows(page))):
            for item in listing_results(listing):
                if item.get("id") is None:
                    continue
                details = client.details(item["id"], media_type)
                try:
                    if isinstance(details, dict) and details:
                        client.import_movie(details, media_type)
                    else:
                        client.import_movie(item, media_type, client.genre_map())
                    imported += 1
                except (TypeError, ValueError) as e:
                    logger.warning("TMDB %s %r: %s, skipped", media_type, item.get("id"), e)
    logger.info("Imported %d popular titles from %d page(s)", imported, pages)
    return imported


def row_to_record(row):
    genres = row.get("genres") or ""
    if isinstance(genres, str):
        genres = genres.split(GENRE_SEPARATOR)
    media_type = row.get("media_type") or "movie"
    return {
        "tmdb_id": int(row["id"]),
        "media_type": "show" if media_type in ("tv", "show") else "movie",
        "title": row.get("title") or row.get("name") or "",
        "overview": row.get("overview") or "",
        "poster_path": row.get("poster_path"),
        "backdrop_path": row.get("backdrop_path"),
        "genres": genres,
        "vote_average": row.get("vote_average"),
        "vote_count": row.get("vote_count"),
        "release_date": row.get("release_date") or row.get("first_air_date"),
        "runtime": row.get("runtime"),
        "status": row.get("status"),
    }


def import_csv(path):
    df = pd.read_csv(path, sep=None, engine="python")  # auto-detects delim
    if "id" not in df.columns:
        raise ValueError(f"{path} has no 'id' column")
    df = df.astype(object).where(df.notna(), None)

    imported = 0
    for i, row in enumerate(df.to_dict(orient="records"), start=2):
        if row.get("id") is None:
            logger.warning("Line %d: missing id, skipped", i)
            continue
        try:
            store.upsert_movie(row_to_record(row))
            imported += 1
        except (TypeError, ValueError) as e:
            logger.warning("Line %d: %s", i, e)
    logger.info("Imported %d rows from %s", imported, path)
    return imported


def main(argv=None):
    parser = argparse.ArgumentParser(description="Import titles into the Next Watch catalog")
    parser.add_argument("--pages", type=int, default=0, help="pages of TMDB popular movies/shows to import")
    parser.add_argument("--csv", help="CSV file with TMDB-style columns")
    args = parser.parse_args(argv)
    if not args.pages and not args.csv:
        parser.error("nothing to import: pass --pages and/or --csv")

    total = 0
    with app.app_context():
        store.init_db_schema()
        if args.csv:
            total += import_csv(args.csv)
        if args.pages:
            total += import_popular(TmdbClient(get_settings()), args.pages)

    publish_event('catalog_imported', {'source': 'cli', 'count': total})
    print("Imported", total, "titles into", app.config["DATABASE"])
    return total


if __name__ == "__main__":
    main()
