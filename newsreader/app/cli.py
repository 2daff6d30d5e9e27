from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, List, Optional

from .container import create_news_service
from .core.config import get_settings, validate_env_cli
from .core.logging import configure_logging
from .db.session import check_db_connection, create_session_factory
from .services.news_service import NewsService
from .sync.cache import Feed
from .sync.result import Error, Success


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="newsreader", description="Read cached news headlines and topic articles.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("headlines", help="Show the top headlines")
    sub.add_parser("topic", help="Show the latest articles for the configured topic")
    sub.add_parser("bookmarks", help="List bookmarked articles")

    for name, help_text in (("bookmark", "Bookmark a stored headline"), ("unbookmark", "Remove a bookmark")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("title", help="Exact article title")

    sub.add_parser("check-config", help="Validate environment configuration")
    return parser.parse_args(argv)


def _print_articles(items: List[Any]) -> None:
    for item in items:
        marker = "★ " if getattr(item, "is_bookmarked", False) else "  "
        source = getattr(item, "source_name", None) or "unknown source"
        published = getattr(item, "published_at", None) or "unknown date"
        print(f"{marker}{item.title}")
        print(f"    {source} | {published} | {item.url or '-'}")


async def _show_feed(service: NewsService, feed: Feed) -> int:
    pending = service.request_load(feed)
    if pending is not None:
        await asyncio.wrap_future(pending)
    result = service.channel(feed).value
    if isinstance(result, Success):
        _print_articles(result.data)
        return 0
    if isinstance(result, Error):
        print(f"Could not load news: {result.message}", file=sys.stderr)
    return 1


async def _set_bookmark(service: NewsService, title: str, bookmarked: bool) -> int:
    record = await service.store.find_by_title(title)
    if record is None:
        print(f"No stored article titled {title!r}", file=sys.stderr)
        return 1
    await service.bookmarks.apply_bookmark(record, bookmarked)
    print(("Bookmarked: " if bookmarked else "Removed bookmark: ") + title)
    return 0


async def _check_database(database_url: str) -> int:
    engine, _factory = create_session_factory(database_url)
    try:
        reachable = await check_db_connection(engine)
    finally:
        await engine.dispose()
    print(f"Database: {'✅ reachable' if reachable else '❌ unreachable'}")
    return 0 if reachable else 1


async def run(args: argparse.Namespace) -> int:
    service = await create_news_service()
    try:
        if args.command == "headlines":
            return await _show_feed(service, Feed.HEADLINE)
        if args.command == "topic":
            return await _show_feed(service, Feed.GENERAL)
        if args.command == "bookmarks":
            live = await service.list_bookmarked()
            rows = live.value or []
            if not rows:
                print("No bookmarks yet.")
            _print_articles(rows)
            live.close()
            return 0
        return await _set_bookmark(service, args.title, args.command == "bookmark")
    finally:
        await service.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.command == "check-config":
        validate_env_cli()
        return asyncio.run(_check_database(get_settings().database_url))
    settings = get_settings()
    configure_logging(settings.log_level, json_format=settings.log_json)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
