"""Score a data file with a trained forest, one score per line."""

from __future__ import annotations

import argparse
import sys

from cli import UsageParser, add_log_level, configure_logging
from dataset import load_data
from errors import DatasetError, ModelReadError
from forest_io import read_forest


def build_parser() -> argparse.ArgumentParser:
    parser = UsageParser(prog="classify-forest", description="Score examples with a trained forest.")
    parser.add_argument("-o", default=None, dest="output", help="write scores here instead of stdout")
    add_log_level(parser)
    parser.add_argument("model", help="model file written by learn-forest")
    parser.add_argument("data", help="data file to score")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        forest = read_forest(args.model)
        dataset = load_data(args.data)
    except (ModelReadError, DatasetError) as e:
        print(e, file=sys.stderr)
        return 1

    if dataset.n_features != forest.n_features:
        print(
            f"data has {dataset.n_features} features but the model expects {forest.n_features}",
            file=sys.stderr,
        )
        return 1

    scores = forest.classify_batch(dataset.X)
    lines = "".join("%g\n" % s for s in scores)
    if args.output is None:
        sys.stdout.write(lines)
    else:
        with open(args.output, "w") as fp:
            fp.write(lines)
    return 0


if __name__ == "__main__":
    sys.exit(main())
