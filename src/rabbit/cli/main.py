from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from rabbit.cli.art import render_rabbit, render_stats
from rabbit.content.io import default_save_path, load_forest, save_forest
from rabbit.sim.forest import Forest, TrackDirection
from rabbit.sim.rabbit import RabbitState
from rabbit.sim.terrain import DirectoryTerrain

USAGE = "rabbit [-a] [--save-path PATH] [--root DIR] [-v] [stats|check|catch|tag string]"
COMMANDS = ("stats", "check", "catch", "tag")
TRACK_HINTS = {
    TrackDirection.ASCENDING: "Tracks lead up from here.",
    TrackDirection.DESCENDING: "Tracks lead down from here.",
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rabbit",
        usage=USAGE,
        description="Hunt the rabbits that live in your directory tree.",
    )
    parser.add_argument("-a", "--ascii", action="store_true", help="use ascii art instead of words")
    parser.add_argument("--save-path", default=None, help="Save file path (default: ~/.rabbit)")
    parser.add_argument("--root", default=None, help="Highest directory rabbits may reach (default: ~)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log rabbit activity to stderr")
    parser.add_argument("command", nargs="?", help="stats | check | catch | tag")
    parser.add_argument("arguments", nargs="*", help="tag name for the tag command")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _show(ascii_art: bool, state: RabbitState) -> None:
    if ascii_art:
        print(render_rabbit(state))


def _check(forest: Forest, ascii_art: bool) -> None:
    spotted = forest.perform_check()
    if spotted is not None:
        if spotted.tag:
            print(f"You see the {spotted.tag} rabbit!")
        else:
            print("A rabbit is here!!")
        _show(ascii_art, RabbitState.SPOTTED)
        return
    track = forest.tracks_at()
    if track is not None:
        print(TRACK_HINTS[track.direction])


def _catch(forest: Forest, ascii_art: bool) -> None:
    if not forest.is_rabbit_here():
        print("There are no rabbits here.")
        return
    if forest.perform_catch():
        print("You caught the rabbit!")
        _show(ascii_art, RabbitState.CAUGHT)
    else:
        print("The rabbit got away...")
        _show(ascii_art, RabbitState.FLEEING)


def _tag(forest: Forest, ascii_art: bool, tag: str) -> None:
    if not forest.is_rabbit_here():
        print("There are no rabbits here.")
        return
    if forest.perform_tag(tag):
        print("You successfully tagged the rabbit!")
        _show(ascii_art, RabbitState.WANDERING)
    else:
        print("The rabbit got away...")
        _show(ascii_art, RabbitState.FLEEING)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS or (args.command == "tag" and not args.arguments):
        parser.print_usage(sys.stderr)
        return 2

    _configure_logging(args.verbose)
    save_path = Path(args.save_path) if args.save_path else default_save_path()
    root = Path(args.root) if args.root else Path.home()

    try:
        forest = load_forest(save_path, DirectoryTerrain(root))
        if args.command == "stats":
            print(render_stats(forest.spotted_count, forest.caught_count, forest.killed_count))
            return 0
        if args.command == "check":
            _check(forest, args.ascii)
        elif args.command == "catch":
            _catch(forest, args.ascii)
        else:
            _tag(forest, args.ascii, " ".join(args.arguments))
        save_forest(save_path, forest)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}")
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
