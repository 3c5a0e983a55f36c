#!/usr/bin/env python3
"""
Combiner -- dependency-ordered script and stylesheet bundles, written to disk.

Usage:
  python main.py index.js --endpoint /scripts/
  python main.py index.js admin.js --endpoint /scripts/ --name app.js
  python main.py site.css --endpoint /css/ --out public/build
  python main.py index.js --endpoint /scripts/ --stdout
  python main.py --list

Environment variables:
  PROJECT_ROOT     Directory every filesystem root is relative to (default: .)
  COMBINER_CONFIG  Handler document, relative to PROJECT_ROOT (default: combiner.json)
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from pydantic import ValidationError

from core.combiner import Combiner
from core.config import Settings
from core.handlers import ConfigError
from core.paths import safe_join
from core.resolver import LOAD_ERRORS


def _list_handlers(combiner: Combiner) -> None:
    for handler in combiner.registry:
        roots = ", ".join(
            [str(r.directory(combiner.project_root)) for r in handler.filesystem_roots]
            + [f"network:{r.path}" for r in handler.network_roots]
        )
        print(f"  {handler.method:<6} {handler.endpoint:<20} {' '.join(handler.extensions)}")
        print(f"         roots: {roots or '(none)'}")


async def _run(combiner: Combiner, args: argparse.Namespace) -> int:
    handler = combiner.handler(args.endpoint)
    if handler is None:
        print(f"  [!] No handler configured for '{args.endpoint}'. Try --list.")
        return 2

    if args.stdout:
        result = await combiner.bundle_many(handler, args.assets, name=args.name)
        if result is None:
            print("  [!] None of the requested assets could be found.", file=sys.stderr)
            return 1
        sys.stdout.write(result.content)
        return 0

    directory = safe_join(combiner.project_root, args.out or "")
    if directory is None:
        print(f"  [!] --out '{args.out}' is outside the project root.")
        return 2
    if args.name and safe_join(directory, args.name) is None:
        print(f"  [!] --name '{args.name}' is outside the output directory.")
        return 2

    written = await combiner.write(handler, args.assets, name=args.name, directory=directory)
    if written is None:
        print("  [!] None of the requested assets could be found.")
        return 1

    print(f"  Wrote {written.uri} ({len(written.order)} assets)")
    for missing in written.missing:
        print(f"  [!] Missing: {missing}")
    return 0


def _bundle(combiner: Combiner, args: argparse.Namespace) -> int:
    try:
        return asyncio.run(_run(combiner, args))
    except asyncio.TimeoutError:
        print(f"  [!] Resolution timed out after {combiner.resolve_timeout:.1f}s.")
        return 1
    except LOAD_ERRORS as e:
        print(f"  [!] Bundle failed: {e}")
        return 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="combiner",
        description="Bundle scripts and stylesheets in @require order.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py index.js --endpoint /scripts/
  python main.py index.js admin.js --endpoint /scripts/ --name app.js
  python main.py site.css --endpoint /css/ --out public/build
  python main.py --list
        """,
    )
    parser.add_argument(
        "assets",
        nargs="*",
        metavar="ASSET",
        help="Entry assets, relative to the handler's roots",
    )
    parser.add_argument(
        "--endpoint",
        metavar="PREFIX",
        help="Handler endpoint whose roots and transforms to use, e.g. /scripts/",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Handler document (default: $COMBINER_CONFIG or combiner.json)",
    )
    parser.add_argument(
        "--project-root",
        metavar="DIR",
        help="Project root (default: $PROJECT_ROOT or the current directory)",
    )
    parser.add_argument(
        "--out",
        metavar="DIR",
        help="Output directory inside the project root (default: the project root)",
    )
    parser.add_argument(
        "--name",
        metavar="NAME",
        help="Bundle name; the output suffix goes before its extension (default: first asset)",
    )
    parser.add_argument(
        "--stdout",
        action="store_true",
        help="Print the bundle instead of writing a file",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List configured handlers and exit",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log resolution details to stderr",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    overrides = {}
    if args.config:
        overrides["combiner_config"] = args.config
    if args.project_root:
        overrides["project_root"] = args.project_root

    try:
        combiner = Combiner.from_settings(Settings(**overrides))
    except (ConfigError, ValidationError) as e:
        print(f"  [!] {e}")
        return 2

    if args.list:
        _list_handlers(combiner)
        return 0

    if not args.assets or not args.endpoint:
        parser.print_help()
        return 2

    return _bundle(combiner, args)


if __name__ == "__main__":
    sys.exit(main())
