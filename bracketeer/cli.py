#!/usr/bin/env python3
"""
bracketeer/cli.py - Command line interface for Bracketeer

Usage:
    bracketeer serve [--port PORT] [--db PATH]
    bracketeer generate <name> <name> ... [--mode random|manual] [--seed N]
    bracketeer show --server URL
"""

import argparse
import json
import logging
import random
import sys
import urllib.error
import urllib.request

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def cmd_serve(args):
    """Start the bracket server."""
    try:
        import uvicorn
    except ImportError:
        logger.error("Serving requires extra dependencies: pip install bracketeer[server]")
        return 1

    from bracketeer.config import load_config
    from scoreboard.server import app

    config = load_config()
    port = args.port or config.server.port
    db_path = args.db or config.server.db_path

    # Set config + DB path on app state so lifespan picks them up
    app.state.config = config
    app.state.db_path = db_path
    logger.info(f"Starting bracket server on port {port} (db: {db_path})")
    uvicorn.run(app, host=config.server.host, port=port, log_level="info")
    return 0


def cmd_generate(args):
    """Build a bracket from names on the command line and print it."""
    from bracketeer.bracket import BracketMode, Competitor, build_bracket

    competitors = [
        Competitor(id=f"competitor_{i + 1}", name=name)
        for i, name in enumerate(args.names)
    ]
    if len(competitors) < 2:
        logger.error("Need at least two competitors")
        return 1

    rng = random.Random(args.seed) if args.seed is not None else None
    bracket = build_bracket(competitors, BracketMode(args.mode), rng)

    if args.json:
        print(json.dumps(bracket.to_dict(), indent=2))
    else:
        print_bracket(bracket.to_dict())
    return 0


def cmd_show(args):
    """Fetch the live bracket from a running server and print it."""
    server = args.server.rstrip("/")
    try:
        with urllib.request.urlopen(f"{server}/bracket") as resp:
            data = json.loads(resp.read())
    except urllib.error.URLError as e:
        logger.error(f"Cannot reach bracket server at {server}: {e}")
        return 1

    if not data["rounds"]:
        print("\nNo bracket yet. Add at least two competitors.\n")
        return 0
    print_bracket(data)
    return 0


def print_bracket(data: dict) -> None:
    """Plain-text bracket: one block per round, winners marked with *."""

    def label(competitor, winner_ids):
        if competitor is None:
            return "-"
        mark = "*" if competitor["id"] in winner_ids else " "
        score = f" ({competitor['score']})" if competitor.get("score") is not None else ""
        return f"{mark}{competitor['name']}{score}"

    print()
    total = len(data["rounds"])
    for r, matches in enumerate(data["rounds"]):
        title = "Final" if r == total - 1 else f"Round {r + 1}"
        print(f"🏁 {title}")
        winner_ids = {w["id"] for w in data["winners"][r]}
        for i, m in enumerate(matches):
            print(f"   {i + 1:>3}. {label(m['a'], winner_ids)}  vs  {label(m['b'], winner_ids)}")
        print()

    champion = data.get("champion")
    if champion:
        print(f"🏆 Champion: {champion['name']}")
    else:
        print("🏆 Champion: undecided")
    print()


def main():
    parser = argparse.ArgumentParser(
        prog="bracketeer",
        description="Single-elimination tournament brackets",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the bracket server")
    serve_parser.add_argument("--port", "-p", type=int, default=None, help="Server port (default: from config, else 8000)")
    serve_parser.add_argument("--db", default=None, help="SQLite database path (default: from config, else bracketeer.db)")
    serve_parser.set_defaults(func=cmd_serve)

    # generate command
    gen_parser = subparsers.add_parser("generate", help="Print a bracket for the given names")
    gen_parser.add_argument("names", nargs="+", help="Competitor names")
    gen_parser.add_argument("--mode", "-m", choices=["random", "manual"], default="random", help="Bracket mode (default: random)")
    gen_parser.add_argument("--seed", "-s", type=int, default=None, help="Random seed for a repeatable draw")
    gen_parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    gen_parser.set_defaults(func=cmd_generate)

    # show command
    show_parser = subparsers.add_parser("show", help="Print the live bracket from a server")
    show_parser.add_argument("--server", default="http://localhost:8000", help="Server URL (default: http://localhost:8000)")
    show_parser.set_defaults(func=cmd_show)

    args = parser.parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
