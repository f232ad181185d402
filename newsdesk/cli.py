"""Command line entry points for the editorial workflow.

Examples:
  # Create the tables
  python -m newsdesk.cli --db-url postgresql://... init-db

  # Import an exported document with the images it references
  python -m newsdesk.cli import story.html --headline "..." --focus "..." \\
      --section news --writer <contributor-id> --manifest images.json

  # Move an article one slot up on the front page
  python -m newsdesk.cli front-page up <article-id>
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from models import Base

from .body import collect_media_ids, validate_article_body
from .config import NewsdeskConfig, load_config
from .frontpage import FrontPageError, ReorderPlan
from .media import ImageUpload, MediaRegistry, image_upload_from_payload
from .parsers import ParsingError
from .parsers.google_docs import GoogleDocsParser
from .persistence import ArticlePersistence, ArticlePersistenceError
from .render import render_article_body
from .submissions import (
    SubmissionError,
    SubmissionRequest,
    import_submission,
    record_import_failure,
    request_to_payload,
)
from .tasks import import_submission_task
from .uploads import HttpSignedUrlProvider, MediaUploader, UploadError, env_token_provider

LOGGER = logging.getLogger(__name__)

_NO_DATABASE_COMMANDS = {"validate-body"}


def configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _front_page_position(raw_value: str) -> int | None:
    if raw_value.strip().lower() in {"none", "off", "-"}:
        return None
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid front-page position {raw_value!r}") from exc
    if value < 0:
        raise argparse.ArgumentTypeError("front-page position must not be negative")
    return value


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage article submissions, bodies and the front page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--db-url",
        type=str,
        help="SQLAlchemy database URL (default: NEWSDESK_DATABASE_URL)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the database tables")

    contributor_parser = subparsers.add_parser("add-contributor", help="Register a contributor")
    contributor_parser.add_argument("first_name")
    contributor_parser.add_argument("last_name")
    contributor_parser.add_argument("--title", help="Staff title shown with the byline")
    contributor_parser.add_argument("--bio", help="Short biography")

    subparsers.add_parser("list-contributors", help="List contributors by name")

    edit_contributor_parser = subparsers.add_parser(
        "edit-contributor", help="Edit a contributor; a name change regenerates the slug"
    )
    edit_contributor_parser.add_argument("contributor_id")
    edit_contributor_parser.add_argument("--first-name")
    edit_contributor_parser.add_argument("--last-name")
    edit_contributor_parser.add_argument("--title")
    edit_contributor_parser.add_argument("--bio")

    list_articles_parser = subparsers.add_parser("list-articles", help="List published articles, newest first")
    list_articles_parser.add_argument("--section", help="Only articles in this section")

    edit_article_parser = subparsers.add_parser("edit-article", help="Edit a published article's metadata")
    edit_article_parser.add_argument("article_id")
    edit_article_parser.add_argument("--headline")
    edit_article_parser.add_argument("--focus")
    edit_article_parser.add_argument("--section")
    edit_article_parser.add_argument(
        "--writer",
        dest="writers",
        action="append",
        help="Contributor id of a writer; replaces the byline. May be supplied multiple times.",
    )
    edit_article_parser.add_argument("--thumbnail", help="Media id of the new thumbnail")

    import_parser = subparsers.add_parser("import", help="Import an exported document as a submission")
    import_parser.add_argument("html", type=Path, help="Exported HTML document")
    import_parser.add_argument("--headline", required=True)
    import_parser.add_argument("--focus", required=True, help="One-sentence focus of the article")
    import_parser.add_argument("--section", required=True, help="Section id (e.g. news, opinions)")
    import_parser.add_argument(
        "--writer",
        dest="writers",
        action="append",
        default=[],
        help="Contributor id of a writer. May be supplied multiple times.",
    )
    import_parser.add_argument(
        "--manifest",
        type=Path,
        help=(
            "JSON file describing the images: {\"images\": [{\"path\", \"alt\", \"contributor_id\", "
            "\"credit\", \"file_name\"}], \"thumbnail\": {...}}. Relative paths resolve against the manifest."
        ),
    )
    import_parser.add_argument("--base-url", help="Base URL for relative links in the document")
    import_parser.add_argument(
        "--enqueue",
        action="store_true",
        help="Hand the import to the Celery queue instead of running it inline",
    )

    validate_parser = subparsers.add_parser("validate-body", help="Check an article body JSON file")
    validate_parser.add_argument("path", help="Body JSON file, or - for stdin")

    render_parser = subparsers.add_parser("render", help="Render a stored article body to HTML")
    render_parser.add_argument("article_id")

    publish_parser = subparsers.add_parser("publish", help="Publish a submission as an article")
    publish_parser.add_argument("submission_id")
    publish_parser.add_argument("--featured", action="store_true", help="Publish as the featured article")

    feature_parser = subparsers.add_parser("feature", help="Feature an article, or unfeature it")
    feature_parser.add_argument("article_id")
    feature_parser.add_argument("--off", action="store_true", help="Remove the featured flag instead")

    front_page_parser = subparsers.add_parser("front-page", help="Inspect or reorder the front page")
    front_page_commands = front_page_parser.add_subparsers(dest="front_page_command", required=True)
    front_page_commands.add_parser("list", help="Show the front page in display order")
    front_page_commands.add_parser("repair", help="Close gaps in the front-page sequence")
    for name, help_text in (
        ("up", "Swap with the article above"),
        ("down", "Swap with the article below"),
        ("remove", "Take off the front page"),
        ("insert", "Put at the top of the front page"),
    ):
        command_parser = front_page_commands.add_parser(name, help=help_text)
        command_parser.add_argument("article_id")
    set_parser = front_page_commands.add_parser("set", help="Move to a position (or 'none' to remove)")
    set_parser.add_argument("article_id")
    set_parser.add_argument("position", type=_front_page_position)

    return parser


def _build_persistence(config: NewsdeskConfig) -> ArticlePersistence:
    engine = create_engine(config.db_url)
    Base.metadata.create_all(engine)  # ensure required tables exist before queries
    return ArticlePersistence(sessionmaker(bind=engine))


def _load_manifest(path: Path) -> tuple[list[ImageUpload], ImageUpload | None]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SubmissionError(f"Cannot read image manifest {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise SubmissionError(f"Image manifest {path} must be a JSON object")

    def _load(item: Any) -> ImageUpload:
        if not isinstance(item, dict) or not item.get("path"):
            raise SubmissionError(f"Image manifest entry {item!r} has no path")
        image = image_upload_from_payload(item)
        if not image.path.is_absolute():
            image.path = path.parent / image.path
        return image

    images = [_load(item) for item in payload.get("images") or []]
    thumbnail = _load(payload["thumbnail"]) if payload.get("thumbnail") else None
    return images, thumbnail


def _task_config_payload(config: NewsdeskConfig) -> dict[str, Any]:
    return {
        "request_timeout": config.timeout.request_timeout,
        "upload_timeout": config.timeout.upload_timeout,
        "signing_url": config.upload.signing_url,
        "cdn_base_url": config.upload.cdn_base_url,
        "user_agent": config.user_agent,
        "default_image_width": config.document.default_image_width,
        "default_image_height": config.document.default_image_height,
        "log_dir": str(config.log_dir),
    }


def _print_plan(plan: ReorderPlan) -> None:
    if plan.is_noop:
        print(f"No change for {plan.article_id}")
        return
    for article_id, index in plan.changes().items():
        print(f"{article_id}\t{'-' if index is None else index}")


def _cmd_init_db(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    _build_persistence(config)
    LOGGER.info("Database schema is ready")
    return 0


def _cmd_add_contributor(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    persistence = _build_persistence(config)
    print(persistence.create_contributor(args.first_name, args.last_name, title=args.title, bio=args.bio))
    return 0


def _cmd_list_contributors(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    persistence = _build_persistence(config)
    for contributor in persistence.list_contributors():
        print(f"{contributor.id}\t{contributor.slug}\t{contributor.full_name}\t{contributor.title or ''}")
    return 0


def _cmd_edit_contributor(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    persistence = _build_persistence(config)
    contributor = persistence.edit_contributor(
        args.contributor_id,
        first_name=args.first_name,
        last_name=args.last_name,
        title=args.title,
        bio=args.bio,
    )
    print(contributor.slug)
    return 0


def _cmd_list_articles(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    persistence = _build_persistence(config)
    for article in persistence.list_articles(section=args.section):
        published = article.publication_date.date().isoformat() if article.publication_date else "-"
        print(f"{article.id}\t{published}\t{article.section}\t{article.slug}\t{article.headline}")
    return 0


def _cmd_edit_article(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    persistence = _build_persistence(config)
    persistence.edit_article(
        args.article_id,
        headline=args.headline,
        focus=args.focus,
        section=args.section,
        writer_ids=args.writers,
        thumbnail_id=args.thumbnail,
    )
    return 0


def _cmd_import(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    try:
        html = args.html.read_text(encoding="utf-8")
    except OSError as exc:
        raise SubmissionError(f"Cannot read document {args.html}: {exc}") from exc

    images: list[ImageUpload] = []
    thumbnail = None
    if args.manifest is not None:
        images, thumbnail = _load_manifest(args.manifest)

    request = SubmissionRequest(
        headline=args.headline,
        focus=args.focus,
        section=args.section,
        writer_ids=list(args.writers),
        html=html,
        images=images,
        thumbnail=thumbnail,
        base_url=args.base_url or config.document.base_url,
    )

    if args.enqueue:
        job = {
            "request": request_to_payload(request),
            "db_url": config.db_url,
            "config": _task_config_payload(config),
        }
        result = import_submission_task.delay(job)
        LOGGER.info("Queued import of %r as task %s", request.headline, result.id)
        return 0

    persistence = _build_persistence(config)
    signer = HttpSignedUrlProvider(
        config.upload.signing_url,
        env_token_provider(),
        timeout=config.timeout.request_timeout,
    )
    parser = GoogleDocsParser(
        default_image_width=config.document.default_image_width,
        default_image_height=config.document.default_image_height,
    )
    try:
        with MediaUploader(config, signer) as uploader:
            submission_id = import_submission(request, MediaRegistry(uploader, persistence), persistence, parser)
    except (ArticlePersistenceError, SubmissionError, UploadError, ParsingError, ValueError) as exc:
        record_import_failure(config.log_dir, request, exc, status="failed")
        raise
    finally:
        signer.close()
    print(submission_id)
    return 0


def _cmd_validate_body(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    if args.path == "-":
        raw = sys.stdin.read()
    else:
        try:
            raw = Path(args.path).read_text(encoding="utf-8")
        except OSError as exc:
            LOGGER.error("Cannot read %s: %s", args.path, exc)
            return 1

    body = validate_article_body(raw)
    if body is None:
        print("invalid")
        return 1
    print(f"valid: {len(body.paragraphs)} paragraphs, {len(collect_media_ids(body))} media references")
    return 0


def _cmd_render(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    persistence = _build_persistence(config)
    body = persistence.load_body(args.article_id)
    if body is None:
        LOGGER.error("Article %s has an invalid body; nothing rendered", args.article_id)
        return 1
    print(render_article_body(body, persistence.media_for_article(args.article_id)))
    return 0


def _cmd_publish(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    persistence = _build_persistence(config)
    print(persistence.publish_submission(args.submission_id, featured=args.featured))
    return 0


def _cmd_feature(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    persistence = _build_persistence(config)
    persistence.set_featured(args.article_id, not args.off)
    return 0


def _cmd_front_page(args: argparse.Namespace, config: NewsdeskConfig) -> int:
    persistence = _build_persistence(config)
    command = args.front_page_command

    if command == "list":
        for article in persistence.front_page_articles():
            position = "*" if article.featured else str(article.front_page_index)
            print(f"{position}\t{article.id}\t{article.headline}")
        return 0
    if command == "repair":
        for article_id, index in persistence.repair_front_page().items():
            print(f"{article_id}\t{index}")
        return 0

    if command == "up":
        plan = persistence.move_up(args.article_id)
    elif command == "down":
        plan = persistence.move_down(args.article_id)
    elif command == "remove":
        plan = persistence.remove_from_front_page(args.article_id)
    elif command == "insert":
        plan = persistence.insert_at_front(args.article_id)
    else:
        plan = persistence.set_front_page_position(args.article_id, args.position)
    _print_plan(plan)
    return 0


_HANDLERS = {
    "init-db": _cmd_init_db,
    "add-contributor": _cmd_add_contributor,
    "list-contributors": _cmd_list_contributors,
    "edit-contributor": _cmd_edit_contributor,
    "list-articles": _cmd_list_articles,
    "edit-article": _cmd_edit_article,
    "import": _cmd_import,
    "validate-body": _cmd_validate_body,
    "render": _cmd_render,
    "publish": _cmd_publish,
    "feature": _cmd_feature,
    "front-page": _cmd_front_page,
}


def main(argv: Sequence[str] | None = None) -> int:
    configure_logging()
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config()
    except ValueError as exc:
        parser.error(str(exc))

    config.db_url = args.db_url or config.db_url
    if args.command not in _NO_DATABASE_COMMANDS and not config.db_url:
        parser.error("--db-url or NEWSDESK_DATABASE_URL is required")

    try:
        return _HANDLERS[args.command](args, config)
    except (ArticlePersistenceError, FrontPageError, SubmissionError, UploadError, ParsingError, ValueError) as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
