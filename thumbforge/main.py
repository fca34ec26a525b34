"""CLI entry point for thumbforge."""

import argparse
import logging
import sys
from typing import Optional

from thumbforge.config import ContextSettings
from thumbforge.errors import ContextError
from thumbforge.service import ConversationService
from thumbforge.store import create_store


def cmd_show(service: ConversationService, args: argparse.Namespace) -> int:
    """Print the display view of the active conversation."""
    overview = service.overview(args.project, args.user)
    if overview is None:
        print("No active conversation found", file=sys.stderr)
        return 1
    print(overview.model_dump_json(indent=2))
    return 0


def cmd_context(service: ConversationService, args: argparse.Namespace) -> int:
    """Print the generation context slice."""
    for entry in service.generation_context(args.project, args.user, args.max_tokens):
        print(f"[{entry.role}] ({entry.token_count} tokens) {entry.content}")
    return 0


def cmd_archive(service: ConversationService, args: argparse.Namespace) -> int:
    """Archive the active conversation."""
    if service.archive(args.project, args.user):
        print("Conversation archived successfully")
        return 0
    print("No active conversation found", file=sys.stderr)
    return 1


def cmd_set_window(service: ConversationService, args: argparse.Namespace) -> int:
    """Change the window size of the active conversation."""
    state = service.update_settings(args.project, args.user, args.window_size)
    print(f"Window size set to {state.window_size} ({len(state.history)} interactions in window)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Thumbforge - inspect stored thumbnail edit conversations")
    parser.add_argument("--config", help="Path to config file (JSON or YAML)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_key_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("project", help="Project ID")
        sub.add_argument("user", help="User ID")

    show = subparsers.add_parser("show", help="Show the active conversation")
    add_key_args(show)
    show.set_defaults(func=cmd_show)

    context = subparsers.add_parser("context", help="Show the context slice for a generation request")
    add_key_args(context)
    context.add_argument("--max-tokens", type=int, default=None, help="Token budget (default from config)")
    context.set_defaults(func=cmd_context)

    archive = subparsers.add_parser("archive", help="Archive the active conversation")
    add_key_args(archive)
    archive.set_defaults(func=cmd_archive)

    set_window = subparsers.add_parser("set-window", help="Change the conversation window size")
    add_key_args(set_window)
    set_window.add_argument("window_size", type=int, help="Interactions to retain (1-50)")
    set_window.set_defaults(func=cmd_set_window)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = ContextSettings.load(args.config)
    except Exception as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        sys.exit(1)

    service = ConversationService(create_store(settings), settings)
    try:
        sys.exit(args.func(service, args))
    except ContextError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
