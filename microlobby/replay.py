"""
replay.py — Captured Payload Replay
====================================
Feeds a directory of captured game client payloads into a MicroLobby
and logs every event it emits. The first .json file (sorted by name)
must be a first-contact lobby payload; the rest are lobby updates.

Usage:
    python -m microlobby.replay captures/ --region us
    python -m microlobby.replay captures/ --region eu --quiet --export out.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from microlobby.apps.lobby.service import MicroLobby
from microlobby.core.config import get_settings
from microlobby.core.errors import LobbyError

logger = logging.getLogger("microlobby.replay")


def load_captures(directory: Path) -> list[Path]:
    return sorted(path for path in directory.iterdir() if path.suffix == ".json")


def replay(files: list[Path], region: str, verbose: bool = True) -> MicroLobby:
    """
    Build a lobby from files[0] and ingest the rest in order.

    Raises:
        LobbyError: the first payload could not build a lobby
    """
    start = json.loads(files[0].read_text(encoding="utf-8"))
    lobby = MicroLobby(region=region, payload=start, verbose_logging=verbose)

    for path in files[1:]:
        try:
            update = json.loads(path.read_text(encoding="utf-8"))
            result = lobby.ingest_update(update)
        except (json.JSONDecodeError, LobbyError) as exc:
            logger.error(f"❌ Error parsing {path.name}: {exc}")
            continue
        for event in result.events:
            logger.info(f"📨 {path.name}: {json.dumps(event.to_wire(), default=str)}")

    return lobby


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Replay captured lobby payloads")
    parser.add_argument("directory", type=Path, help="Directory with captured .json payloads")
    parser.add_argument("--region", default="us", choices=settings.SUPPORTED_REGIONS)
    parser.add_argument("--quiet", action="store_true", help="Only log emitted events and errors")
    parser.add_argument("--export", type=Path, help="Write the final snapshot to this file")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)

    files = load_captures(args.directory)
    if not files:
        logger.error(f"No .json payloads in {args.directory}")
        return 1

    try:
        lobby = replay(files, args.region, verbose=not args.quiet)
    except LobbyError as exc:
        logger.error(f"❌ Error creating MicroLobby: {exc}")
        return 1

    if args.export:
        args.export.write_text(json.dumps(lobby.export_snapshot(), indent=2), encoding="utf-8")
        logger.info(f"💾 Snapshot written to {args.export}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
