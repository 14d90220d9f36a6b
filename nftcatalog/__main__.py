"""Module executed when running ``python -m nftcatalog``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Sequence

from .config import get_settings
from .database import Database
from .errors import NFTServiceError
from .main import open_service

logger = logging.getLogger("nftcatalog")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nftcatalog", description=__doc__)
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="create the local store tables")

    draw = commands.add_parser("draw", help="distribute a serie to the top ranked users")
    draw.add_argument("serie_id")
    draw.add_argument("--users", type=int, required=True, dest="users_number")
    draw.add_argument("--exclude", nargs="*", default=[], metavar="USER_ID")
    draw.add_argument("--strict", action="store_true", help="fail when users run out")

    listing = commands.add_parser("list", help="list NFTs by category")
    scope = listing.add_mutually_exclusive_group(required=True)
    scope.add_argument("--codes", nargs="+", metavar="CODE")
    scope.add_argument("--uncategorized", action="store_true")
    listing.add_argument("--page", type=int, default=None)
    listing.add_argument("--limit", type=int, default=None)
    listed = listing.add_mutually_exclusive_group()
    listed.add_argument("--listed", action="store_const", const=True, dest="listed")
    listed.add_argument("--unlisted", action="store_const", const=False, dest="listed")
    return parser


async def _run(args: argparse.Namespace) -> object:
    settings = get_settings()
    if args.command == "init-db":
        database = Database(settings.database_url)
        try:
            await database.create_all()
        finally:
            await database.dispose()
        return {"status": "ok"}

    async with open_service(settings) as service:
        if args.command == "draw":
            result = await service.get_nfts_distribution(
                args.serie_id, args.users_number, args.exclude, strict=args.strict
            )
            return result.assignments

        codes = None if args.uncategorized else args.codes
        if args.page is None and args.limit is None:
            nfts = await service.get_nfts_by_categories(codes, args.listed)
            return [nft.to_response() for nft in nfts]
        page = await service.get_paginated_nfts_by_categories(
            codes, 1 if args.page is None else args.page, args.limit, args.listed
        )
        return page.to_response()


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run the command and print its JSON output."""

    args = build_parser().parse_args(argv)
    logging.basicConfig(level=get_settings().log_level)
    try:
        output = asyncio.run(_run(args))
    except NFTServiceError as exc:
        logger.error("%s", exc)
        return 1
    except ValueError as exc:
        logger.error("Invalid arguments: %s", exc)
        return 2
    json.dump(output, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    sys.exit(main())
