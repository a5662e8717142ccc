"""Command-line entry point.

Usage:
    tracelight tracelight.json                      # full build
    tracelight tracelight.json --files src/a.rs     # incremental build
    tracelight tracelight.json --workers 4 --verbose
"""

import argparse
import sys

from .config import ConfigError, load_config


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="tracelight",
        description="Extract items and call graphs from a Rust source tree",
    )
    parser.add_argument(
        "config",
        type=str,
        help="Path to the JSON configuration file",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--full",
        action="store_true",
        help="Re-analyse every file (default)",
    )
    mode.add_argument(
        "--files",
        type=str,
        default=None,
        help="Comma-separated changed files, relative to target_dir (incremental mode)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Worker threads for both passes (default: 1)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print progress information",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.workers < 1:
        print("ERROR: --workers must be at least 1", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ConfigError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    from .code_tree import DocumentError, build, build_incremental

    try:
        if args.files is not None:
            changed = [f.strip() for f in args.files.split(",") if f.strip()]
            result = build_incremental(config, changed,
                                       workers=args.workers, verbose=args.verbose)
        else:
            result = build(config, workers=args.workers, verbose=args.verbose)
    except (ConfigError, DocumentError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    stats = result.stats
    print(f"{stats['total_files']} files, {stats['total_items']} items, "
          f"{stats['total_tests']} tests, {stats['total_edges']} edges "
          f"({result.mode})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
