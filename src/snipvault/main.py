#!/usr/bin/env python
"""Command line entry point for the snippet vault."""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from snipvault import __version__
from snipvault.config import config, get_config_path, save_config
from snipvault.exceptions import SnipVaultError, ValidationError
from snipvault.models.schema import Snippet
from snipvault.observability import configure_logging
from snipvault.services.snippet_service import SnippetService
from snipvault.storage.snippet_store import SnippetStore

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(prog="snipvault", description="Snippet vault")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--data-dir",
        help="Directory holding the snippet files (overrides config)",
        type=str,
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=LOG_LEVELS,
        default=config.log_level,
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Also log to stderr"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="List all snippets")
    list_cmd.add_argument("--favorites", action="store_true", help="Only favorites")

    search_cmd = commands.add_parser("search", help="Search snippets")
    search_cmd.add_argument("query", nargs="?", default="")
    search_cmd.add_argument("--tag", action="append", default=[], dest="tags")
    search_cmd.add_argument("--language", default="")

    show_cmd = commands.add_parser("show", help="Print a snippet's record")
    show_cmd.add_argument("snippet_id")

    new_cmd = commands.add_parser("new", help="Create a snippet")
    new_cmd.add_argument("title")
    new_cmd.add_argument("--body", help="Snippet body (default: read stdin)")
    new_cmd.add_argument("--tag", action="append", default=[], dest="tags")
    new_cmd.add_argument("--language", default="")
    new_cmd.add_argument("--favorite", action="store_true")

    delete_cmd = commands.add_parser("delete", help="Delete a snippet")
    delete_cmd.add_argument("snippet_id")

    commands.add_parser("stats", help="Show index and operation statistics")

    config_cmd = commands.add_parser("config", help="Show or set configuration")
    config_cmd.add_argument(
        "--set-data-dir", metavar="PATH", help="Store PATH as data_directory"
    )

    return parser.parse_args(argv)


def _format_row(snippet: Snippet) -> str:
    star = "*" if snippet.is_favorite else " "
    tags = ", ".join(snippet.tags) or "-"
    language = snippet.language or "-"
    return f"{star} {snippet.id}  {snippet.title}  [{tags}]  {language}"


def _resolve_id(service: SnippetService, prefix: str) -> str:
    """Accept a full id or an unambiguous prefix of one."""
    ids = [s.id for s in service.store.get_all() if s.id.startswith(prefix)]
    if prefix in ids:
        return prefix
    if len(ids) == 1:
        return ids[0]
    if len(ids) > 1:
        raise ValidationError(
            f"Id prefix '{prefix}' matches {len(ids)} snippets", field="snippet_id"
        )
    return prefix


def run_command(args: argparse.Namespace, service: SnippetService) -> int:
    """Run one parsed command against ``service``; returns the exit code."""
    if args.command == "list":
        snippets = service.list_snippets()
        if args.favorites:
            snippets = [s for s in snippets if s.is_favorite]
        if not snippets:
            print("No snippets found.")
        for snippet in snippets:
            print(_format_row(snippet))

    elif args.command == "search":
        results = service.search_with_filters(
            query=args.query, tags=args.tags, language=args.language
        )
        if not results:
            print("No matches.")
        for result in results:
            print(f"{result.score:>4}  {_format_row(result.snippet)}")

    elif args.command == "show":
        print(service.render_for_edit(_resolve_id(service, args.snippet_id)))

    elif args.command == "new":
        body = args.body if args.body is not None else sys.stdin.read()
        snippet = service.create_snippet(
            title=args.title,
            body=body,
            tags=args.tags,
            language=args.language,
            is_favorite=args.favorite,
        )
        print(snippet.id)

    elif args.command == "delete":
        snippet_id = _resolve_id(service, args.snippet_id)
        service.delete_snippet(snippet_id)
        print(f"Deleted {snippet_id}")

    elif args.command == "stats":
        print(json.dumps(service.stats(), indent=2))

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run the snippet vault command line."""
    args = parse_args(argv)

    log_level = getattr(logging, args.log_level)
    try:
        configure_logging(
            log_dir=config.log_dir, level=log_level, console=args.verbose
        )
    except OSError as e:
        # Fall back to console logging if the log directory is unusable
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")

    logger = logging.getLogger(__name__)

    try:
        if args.command == "config":
            if args.set_data_dir:
                path = save_config(args.set_data_dir)
                print(f"Saved data_directory to {path}")
            else:
                print(f"config file:    {get_config_path()}")
                print(f"data directory: {config.get_data_dir()}")
                print(f"log directory:  {config.log_dir}")
            return 0

        data_dir = Path(args.data_dir) if args.data_dir else config.get_data_dir()
        store = SnippetStore(data_dir=data_dir, extension=config.file_extension)
        service = SnippetService(store=store)
        for warning in store.load_warnings:
            print(f"warning: skipped {warning.path.name}", file=sys.stderr)
        return run_command(args, service)
    except SnipVaultError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
