"""Re-validate every stored article and submission body and report failures."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure the repository root is importable when executing from the scripts/ directory.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from models import Article, ArticleSubmission, Media
from newsdesk.body import validate_article_body


LOGGER = logging.getLogger(__name__)

_TABLES = {
    "articles": Article,
    "submissions": ArticleSubmission,
}


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Validate the stored body of every article and submission. Bodies that fail "
            "the schema, or that reference media missing from the media table, are reported."
        )
    )
    parser.add_argument(
        "--db-url",
        help="SQLAlchemy database URL. Defaults to NEWSDESK_DATABASE_URL.",
    )
    parser.add_argument(
        "--table",
        dest="tables",
        action="append",
        choices=sorted(_TABLES),
        default=None,
        help="Table(s) to check. May be supplied multiple times. Default is all of them.",
    )
    parser.add_argument(
        "--skip-media-check",
        action="store_true",
        help="Only validate the body structure, not the media references.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging output.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    db_url = args.db_url or os.getenv("NEWSDESK_DATABASE_URL")
    if not db_url:
        LOGGER.error("No database URL given; pass --db-url or set NEWSDESK_DATABASE_URL.")
        return 2

    engine = create_engine(db_url)
    session = sessionmaker(bind=engine)()
    try:
        known_media_ids = None
        if not args.skip_media_check:
            known_media_ids = {str(media_id) for (media_id,) in session.query(Media.id)}

        checked = 0
        invalid = 0
        for table in args.tables or sorted(_TABLES):
            model = _TABLES[table]
            for record in session.query(model).yield_per(200):
                checked += 1
                if validate_article_body(record.body, known_media_ids=known_media_ids) is None:
                    invalid += 1
                    LOGGER.warning("Invalid body in %s %s (%s)", table, record.id, record.headline)

        LOGGER.info("Checked %d body(ies); %d invalid.", checked, invalid)
        return 1 if invalid else 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
