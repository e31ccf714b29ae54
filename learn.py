"""Train a committee of decision trees and write it to a model file."""

from __future__ import annotations

import argparse
from dataclasses import replace
import logging
import sys
import time

import numpy as np

from cli import UsageParser, add_log_level, configure_logging
from committee import Committee
from dataset import load_data
from errors import ConfigError, DatasetError
from forest_io import write_forest
from forest_trainer import Forest, ForestParams, ForestTrainer

logger = logging.getLogger(__name__)

COMMITTEE_HELP = """committee type:
  1 bagging
  2 boosting (default)
  3 random forest"""


def build_parser() -> argparse.ArgumentParser:
    parser = UsageParser(
        prog="learn-forest",
        description="Train bagged, boosted or random forest committees of decision trees.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("-c", type=int, default=2, dest="committee", help=COMMITTEE_HELP)
    parser.add_argument(
        "-d", type=int, default=1000, dest="max_depth", help="maximum depth of the trees (default: 1000)"
    )
    parser.add_argument(
        "-p",
        type=float,
        default=1.0,
        dest="factor",
        help="parameter for random forests (default: 1)\n(ratio of features considered over sqrt(features))",
    )
    parser.add_argument("-t", type=int, default=100, dest="n_trees", help="number of trees (default: 100)")
    parser.add_argument(
        "-w", type=float, default=1.0, dest="neg_weight", help="weight of negative examples (default: 1)"
    )
    parser.add_argument("-o", action="store_true", dest="oob", help="report out-of-bag error after every tree")
    parser.add_argument(
        "-v", default=None, dest="oob_file", metavar="FILE", help="write per-tree out-of-bag votes to FILE (implies -o)"
    )
    parser.add_argument("-s", type=int, default=None, dest="seed", help="random seed (default: wall clock)")
    add_log_level(parser)
    parser.add_argument("data", help="training data file")
    parser.add_argument("model", help="output model file")
    return parser


def params_from_args(args: argparse.Namespace) -> ForestParams:
    params = ForestParams(
        committee=Committee.from_id(args.committee),
        max_depth=args.max_depth,
        factor=args.factor,
        n_trees=args.n_trees,
        neg_weight=args.neg_weight,
        oob=args.oob or args.oob_file is not None,
    )
    params.validate()
    return params


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        params = params_from_args(args)
    except ConfigError as e:
        print(e, file=sys.stderr)
        parser.print_help(sys.stderr)
        return 1

    seed = args.seed if args.seed is not None else int(time.time())
    print(seed)
    rng = np.random.default_rng(seed)

    try:
        dataset = load_data(args.data)
    except DatasetError as e:
        print(e, file=sys.stderr)
        return 1

    t0 = time.perf_counter()
    if args.oob_file is None:
        forest = ForestTrainer(rng, out=sys.stdout).grow_forest(Forest(params), dataset)
    else:
        try:
            sink = open(args.oob_file, "w")
        except OSError as e:
            print(f"could not open vote file: {args.oob_file} ({e})", file=sys.stderr)
            return 1
        with sink:
            forest = ForestTrainer(rng, out=sys.stdout).grow_forest(
                Forest(replace(params, oob_sink=sink)), dataset
            )
    logger.info(
        "Grew %d %s trees in %.3fs", forest.n_grown, params.committee.display_name, time.perf_counter() - t0
    )

    # A failed write is logged by write_forest and does not change the exit status.
    write_forest(forest, args.model)
    forest.release()
    return 0


if __name__ == "__main__":
    sys.exit(main())
