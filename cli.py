"""CLI entry point for anistream-hub.

Each subcommand builds one SourceManager with the installed plugins, runs a
single operation and renders the canonical result (rich tables, or JSON with
--json).
"""

import argparse
import asyncio
import json
import sys

from models.config import settings
from models.models import BestSourceOptions, ContentMode
from scrapers.loader import load_plugins
from services.source_manager import SourceManager
from ui.components import (
    anime_table,
    console,
    episodes_table,
    health_table,
    loading,
    search_page_table,
    servers_table,
    stream_table,
)
from utils.exceptions import AniStreamError
from utils.logging import configure_logging


def build_manager(plugins: list[str] | None = None) -> SourceManager:
    """SourceManager with every enabled plugin registered."""
    manager = SourceManager()
    load_plugins(manager, plugins)
    return manager


def _dump(value) -> str:
    if isinstance(value, list):
        data = [_to_data(item) for item in value]
    elif isinstance(value, dict):
        data = {key: _to_data(item) for key, item in value.items()}
    else:
        data = _to_data(value)
    return json.dumps(data, indent=2, ensure_ascii=False)


def _to_data(value):
    return value.to_dict() if hasattr(value, "to_dict") else value


async def run(args: argparse.Namespace):
    """Execute one subcommand and return its canonical result."""
    async with build_manager(args.plugins) as manager:
        if args.preferred and not manager.set_preferred_source(args.preferred):
            console.print(f"[warning]Unknown source {args.preferred!r}, keeping default order[/]")

        command = args.command
        if command == "sources":
            return manager.get_source_status()
        if command == "health":
            return await manager.check_all_health()
        if command == "best":
            options = BestSourceOptions(
                prefer_dub=args.dub,
                prefer_high_quality=args.high_quality,
                require_schedule=args.schedule,
                exclude_adult=not args.adult,
            )
            await manager.check_all_health()
            return manager.get_best_source(options)
        if command == "search":
            return await manager.search(args.query, args.page, source=args.source, mode=args.mode)
        if command == "search-all":
            return await manager.search_all(args.query, args.page, mode=args.mode)
        if command == "match":
            return await manager.find_streaming_match(args.query)
        if command == "genre":
            return await manager.get_by_genre(args.genre, args.page, source=args.source, mode=args.mode)
        if command == "trending":
            return await manager.get_trending(args.page, limit=args.limit, mode=args.mode)
        if command == "latest":
            return await manager.get_latest(args.page, limit=args.limit, mode=args.mode)
        if command == "top":
            return await manager.get_top_rated(args.page, args.limit, source=args.source, mode=args.mode)
        if command == "random":
            return await manager.get_random_anime(source=args.source, mode=args.mode)
        if command == "browse":
            return await manager.browse_anime(
                {
                    "type": args.type,
                    "genres": args.genres or [],
                    "status": args.status,
                    "year": args.year,
                    "sort": args.sort,
                    "order": args.order,
                    "page": args.page,
                    "limit": args.limit,
                    "source": args.source,
                    "mode": args.mode,
                }
            )
        if command == "details":
            return await manager.get_details(args.id, source=args.source)
        if command == "episodes":
            return await manager.get_episodes(args.id, source=args.source)
        if command == "servers":
            return await manager.get_servers(args.id, source=args.source)
        if command == "stream":
            return await manager.get_streaming_links(
                args.id, args.server, args.category, source=args.source
            )
        raise ValueError(f"Unknown command: {command}")


def render(command: str, result) -> None:
    """Print a subcommand result with rich."""
    if result is None or result == []:
        console.print("[warning]Nothing found.[/]")
    elif command in ("search", "search-all", "genre", "browse"):
        console.print(search_page_table(result))
    elif command in ("trending", "latest"):
        console.print(anime_table(result, title=command.capitalize()))
    elif command == "top":
        console.print(anime_table([entry.anime for entry in result], title="Top rated"))
    elif command in ("details", "match", "random"):
        console.print(anime_table([result], title=result.title))
        if result.description:
            console.print(result.description, style="menu.text")
        if result.genres:
            console.print("Genres: " + ", ".join(result.genres), style="menu.muted")
    elif command == "episodes":
        console.print(episodes_table(result))
    elif command == "servers":
        console.print(servers_table(result))
    elif command == "stream":
        if result.is_empty:
            console.print("[warning]Episode found, but no playable stream.[/]")
        else:
            console.print(stream_table(result))
    elif command == "health":
        console.print(health_table(result))
    elif command == "sources":
        for entry in result:
            health = entry["health"]
            console.print(
                f"{entry['priority']}. [menu.text]{entry['name']}[/] "
                f"[menu.muted]{health['status']} · cache {entry['cache']['entries']} entries[/]"
            )
    elif command == "best":
        console.print(f"[success]{result}[/]")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anistream",
        description="Search and stream anime across many unreliable sources.",
    )
    parser.add_argument("--debug", "-d", action="store_true")
    parser.add_argument("--json", action="store_true", help="Print canonical JSON")
    parser.add_argument(
        "--plugins",
        nargs="+",
        metavar="NAME",
        help="Load only these plugins (default: all except disabled ones)",
    )
    parser.add_argument("--prefer", dest="preferred", metavar="SOURCE", help="Try SOURCE first")

    content = argparse.ArgumentParser(add_help=False)
    content.add_argument(
        "--mode",
        "-m",
        choices=[mode.value for mode in ContentMode],
        default=ContentMode.SAFE.value,
        help="safe hides adult sources and mature titles (default), adult shows only them",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")

    subparsers.add_parser("sources", help="List sources in priority order")
    subparsers.add_parser("health", help="Probe every source now")

    best = subparsers.add_parser("best", help="Recommend a source from current health")
    best.add_argument("--dub", action="store_true")
    best.add_argument("--high-quality", action="store_true")
    best.add_argument("--schedule", action="store_true")
    best.add_argument("--adult", action="store_true", help="Allow adult sources")

    search = subparsers.add_parser(
        "search", parents=[content], help="Search the first source with results"
    )
    search.add_argument("query")
    search.add_argument("--page", "-p", type=int, default=1)
    search.add_argument("--source", "-s")

    search_all = subparsers.add_parser(
        "search-all", parents=[content], help="Search all healthy sources and merge"
    )
    search_all.add_argument("query")
    search_all.add_argument("--page", "-p", type=int, default=1)

    match = subparsers.add_parser("match", help="Best title match across all sources")
    match.add_argument("query")

    genre = subparsers.add_parser("genre", parents=[content], help="Anime by genre")
    genre.add_argument("genre")
    genre.add_argument("--page", "-p", type=int, default=1)
    genre.add_argument("--source", "-s")

    for name in ("trending", "latest"):
        sub = subparsers.add_parser(
            name, parents=[content], help=f"{name.capitalize()} anime from all sources"
        )
        sub.add_argument("--page", "-p", type=int, default=1)
        sub.add_argument("--limit", "-n", type=int, default=20)

    top = subparsers.add_parser("top", parents=[content], help="Top-rated chart")
    top.add_argument("--page", "-p", type=int, default=1)
    top.add_argument("--limit", "-n", type=int, default=10)
    top.add_argument("--source", "-s")

    pick = subparsers.add_parser("random", parents=[content], help="A random trending anime")
    pick.add_argument("--source", "-s")

    browse = subparsers.add_parser(
        "browse", parents=[content], help="Filter and sort trending anime"
    )
    browse.add_argument("--type", "-t", help="TV, Movie, OVA, ONA or Special")
    browse.add_argument("--genre", "-g", dest="genres", action="append", metavar="GENRE")
    browse.add_argument("--status", help="Ongoing, Completed or Upcoming")
    browse.add_argument("--year", "-y", type=int)
    browse.add_argument("--sort", choices=["rating", "year", "title", "episodes"], default="rating")
    browse.add_argument("--order", choices=["asc", "desc"], default="desc")
    browse.add_argument("--page", "-p", type=int, default=1)
    browse.add_argument("--limit", "-n", type=int, default=20)
    browse.add_argument("--source", "-s")

    for name, help_text in (
        ("details", "Anime details by id"),
        ("episodes", "Episode list by anime id"),
        ("servers", "Streaming servers by episode id"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("id")
        sub.add_argument("--source", "-s")

    stream = subparsers.add_parser("stream", help="Playable sources by episode id")
    stream.add_argument("id")
    stream.add_argument("--server")
    stream.add_argument("--category", "-c", choices=["sub", "dub"], default="sub")
    stream.add_argument("--source", "-s")

    return parser


def cli(argv: list[str] | None = None) -> int:
    """Entry point for CLI."""
    args = build_parser().parse_args(argv)
    configure_logging(args.debug or settings.logging.debug)

    try:
        with loading("Asking sources..."):
            result = asyncio.run(run(args))
    except AniStreamError as e:
        console.print(f"[error]{e}[/]")
        return 2
    except KeyboardInterrupt:
        return 130

    if args.json:
        print(_dump(result))
    else:
        render(args.command, result)
    return 0


if __name__ == "__main__":
    sys.exit(cli())
