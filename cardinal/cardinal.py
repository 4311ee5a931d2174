#!/usr/bin/env python
from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import Dict, List, Optional

from cardinal.lib.abstractsketch import DEFAULT_SEED, XXHash64
from cardinal.lib.config import DEFAULT_MAX_CARDINALITY, DEFAULT_RELATIVE_STD_DEV
from cardinal.lib.errors import CardinalityError
from cardinal.lib.hyperloglog import HyperLogLog
from cardinal.lib.utils import read_lines

logger = logging.getLogger("cardinal")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_LEVEL_ENV = "CARDINAL_LOGGING"
SKETCH_SUFFIX = ".hll"


def get_logging_level(level: str) -> int:
    switcher = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    return switcher.get(level.upper(), logging.WARNING)


def configure_logging(verbose: bool = False, debug: bool = False) -> None:
    """Send library log records to stderr.

    --debug wins over --verbose; without either flag the level comes from
    the CARDINAL_LOGGING environment variable (default WARNING).
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = get_logging_level(os.environ.get(LOG_LEVEL_ENV, "WARNING"))
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.handlers = [handler]
    logger.setLevel(level)
    logger.propagate = False


def non_negative_int(value: str) -> int:
    """argparse type for zero-based indices."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative, got {number}")
    return number


def check_files_exist(filepaths: List[str]) -> None:
    """Exit with status 2 if any input file is missing."""
    for filepath in filepaths:
        if not os.path.exists(filepath):
            print(f"Error: File {filepath} does not exist", file=sys.stderr)
            sys.exit(2)


def sketch_file(filepath: str, relative_std_dev: float, max_cardinality: int,
                seed: int, column: Optional[int] = None) -> HyperLogLog:
    """Build a sketch of the distinct lines (or column values) of a file."""
    sketch = HyperLogLog(relative_std_dev, max_cardinality, hash_function=XXHash64(seed))
    lines = 0
    for chunk in read_lines(filepath, column=column):
        sketch.add_batch(chunk)
        lines += len(chunk)
    logger.info("%s: %d lines sketched into %d registers", filepath, lines, sketch.num_registers)
    return sketch


def get_sketch_path(outprefix: str, filepath: str) -> str:
    """Output path for the sketch of `filepath`."""
    basename = os.path.basename(filepath)
    if basename.endswith(".gz"):
        basename = basename[:-3]
    return f"{outprefix}_{basename}{SKETCH_SUFFIX}"


def write_results(rows: List[Dict[str, object]], columns: List[str], output=None) -> None:
    """Write result rows as tab-separated text with a header line."""
    output = output or sys.stdout
    output.write('\t'.join(columns) + '\n')
    for row in rows:
        output.write('\t'.join(str(row[col]) for col in columns) + '\n')


def run_count(args) -> int:
    check_files_exist(args.files)
    rows = []
    for filepath in args.files:
        sketch = sketch_file(filepath, args.rsd, args.max_cardinality, args.seed, args.column)
        rows.append({'file': filepath, 'estimate': sketch.estimate()})
        if args.outprefix:
            sketch_path = get_sketch_path(args.outprefix, filepath)
            sketch.write(sketch_path)
            logger.info("Wrote sketch %s", sketch_path)
    write_results(rows, ['file', 'estimate'])
    return 0


def run_merge(args) -> int:
    check_files_exist(args.sketches)
    sketches = [HyperLogLog.load(path) for path in args.sketches]
    merged = sketches[0].merge(*sketches[1:])
    merged.write(args.out)
    logger.info("Merged %d sketches into %s", len(sketches), args.out)
    write_results([{'file': args.out, 'estimate': merged.estimate()}], ['file', 'estimate'])
    return 0


def run_estimate(args) -> int:
    check_files_exist(args.sketches)
    rows = []
    for path in args.sketches:
        sketch = HyperLogLog.load(path)
        rows.append({'file': path, 'estimate': sketch.estimate(), 'registers': sketch.num_registers})
    write_results(rows, ['file', 'estimate', 'registers'])
    return 0


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    arg_parser = argparse.ArgumentParser(
        description="""Estimate the number of distinct lines in text files with HyperLogLog sketches.

        Sketches are written in a compact binary format and can be merged later to
        estimate the number of distinct lines across several files.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    arg_parser.add_argument("--verbose", action="store_true", help="Print progress information")
    arg_parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = arg_parser.add_subparsers(dest="command", required=True)

    count_parser = subparsers.add_parser("count", help="Sketch text files and print estimates")
    count_parser.add_argument("files", nargs="+", help="Plain or gzipped text files, one item per line")
    count_parser.add_argument("--rsd", type=float, default=DEFAULT_RELATIVE_STD_DEV,
                              help="Target relative standard deviation (default: %(default)s)")
    count_parser.add_argument("--max-cardinality", "-n", type=int, default=DEFAULT_MAX_CARDINALITY,
                              dest="max_cardinality",
                              help="Expected maximum number of distinct items (default: %(default)s)")
    count_parser.add_argument("--column", "-c", type=non_negative_int, default=None,
                              help="Zero-based tab-separated column to count instead of whole lines")
    count_parser.add_argument("--outprefix", "-o", "--out", type=str, default=None,
                              help="Write each sketch to <outprefix>_<file>.hll")
    count_parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Random seed for hashing")
    count_parser.set_defaults(func=run_count)

    merge_parser = subparsers.add_parser("merge", help="Merge sketch files into one")
    merge_parser.add_argument("sketches", nargs="+", help="Sketch files written by 'count'")
    merge_parser.add_argument("--out", "-o", required=True, help="Output sketch file")
    merge_parser.set_defaults(func=run_merge)

    estimate_parser = subparsers.add_parser("estimate", help="Print estimates of sketch files")
    estimate_parser.add_argument("sketches", nargs="+", help="Sketch files written by 'count' or 'merge'")
    estimate_parser.set_defaults(func=run_estimate)

    return arg_parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for cardinal."""
    args = parse_args(argv)
    configure_logging(verbose=args.verbose, debug=args.debug)
    try:
        return args.func(args)
    except CardinalityError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except UnicodeDecodeError as e:
        print(f"Error: input is not valid UTF-8 text: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
