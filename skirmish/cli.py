"""
Skirmish CLI - Command-line interface for the engine.

Usage:
    skirmish serve [--host H] [--port P]    Run the HTTP API
    skirmish validate-squad <squad_file>    Check a squad JSON file
    skirmish reach <map> <cell> <mp>        Print reachable spaces by cost
"""

import argparse
import json
import logging
import os
import sys


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Skirmish - Two-player tabletop skirmish engine",
        prog="skirmish",
    )
    parser.add_argument(
        "--data-dir",
        default=os.getenv("SKIRMISH_DATA_DIR"),
        help="Directory of rule-data JSON files (default: built-in data)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # Validate command
    validate_parser = subparsers.add_parser("validate-squad", help="Validate a squad file")
    validate_parser.add_argument("squad_file", help='JSON file with {"name", "dc_list", "cc_list"}')

    # Reach command
    reach_parser = subparsers.add_parser("reach", help="Reachable spaces on an empty map")
    reach_parser.add_argument("map_id", help="Map id")
    reach_parser.add_argument("cell", help="Start cell, e.g. a1")
    reach_parser.add_argument("mp", type=int, help="Movement points")
    reach_parser.add_argument("--size", default="1x1", help="Footprint size")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, os.getenv("SKIRMISH_LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "validate-squad":
        cmd_validate_squad(args)
    elif args.command == "reach":
        cmd_reach(args)
    else:
        parser.print_help()
        sys.exit(1)


def _load_data(args):
    from .data import StaticData
    return StaticData.from_directory(args.data_dir) if args.data_dir else StaticData.builtin()


def cmd_serve(args):
    """Run the API with uvicorn."""
    try:
        import uvicorn
    except ImportError:
        print("Error: uvicorn not installed. Install with: pip install uvicorn")
        sys.exit(1)

    if args.data_dir:
        os.environ["SKIRMISH_DATA_DIR"] = args.data_dir
    uvicorn.run("skirmish.api.app:app", host=args.host, port=args.port, reload=args.reload)


def cmd_validate_squad(args):
    """Validate a squad against the deck-building rules."""
    from .engine_core.validation import validate_squad

    try:
        with open(args.squad_file, "r", encoding="utf-8") as f:
            squad = json.load(f)
    except FileNotFoundError:
        print(f"Error: File not found: {args.squad_file}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON in {args.squad_file}: {e}")
        sys.exit(1)

    data = _load_data(args)
    result = validate_squad(squad.get("dc_list", []), squad.get("cc_list", []), data)

    print(f"Squad: {squad.get('name') or args.squad_file}")
    print(f"Deployment total: {result.dc_total}")
    print(f"Command cards: {result.cc_count} (cost {result.cc_cost})")
    if result.legal:
        print("Legal")
        return

    print("\nErrors:")
    for e in result.errors:
        print(f"  - {e}")
    sys.exit(1)


def cmd_reach(args):
    """Print reachable spaces grouped by MP cost."""
    from .engine_core.errors import EngineError
    from .engine_core.movement import MovementProfile, get_reachable_spaces
    from .engine_core.coords import coord_sort_key

    data = _load_data(args)
    try:
        geometry = data.get_map(args.map_id)
    except EngineError as e:
        print(f"Error: {e.message}")
        sys.exit(1)

    reachable = get_reachable_spaces(
        args.cell, args.mp, geometry, profile=MovementProfile(size=args.size)
    )
    if not reachable:
        print("No valid movement spaces")
        return

    by_cost: dict[int, list[str]] = {}
    for cell, cost in reachable.items():
        by_cost.setdefault(cost, []).append(cell)
    for cost in sorted(by_cost):
        cells = sorted(by_cost[cost], key=coord_sort_key)
        print(f"{cost}: {', '.join(c.upper() for c in cells)}")


if __name__ == "__main__":
    main()
