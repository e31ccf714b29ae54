"""Concatenate several forest models into one."""

from __future__ import annotations

import argparse
import io
import sys
from typing import Sequence

from cli import UsageParser, add_log_level, configure_logging
from errors import ConfigError, ModelReadError
from forest_io import HEADER_SIZE, dump_forest, read_forest, write_forest
from forest_trainer import Forest, ForestParams


def combine_forests(forests: Sequence[Forest]) -> Forest:
    """Trees of all ``forests`` in order, under the header of the first one."""
    if not forests:
        raise ConfigError("No models to combine")

    first = forests[0]
    for other in forests[1:]:
        if other.committee is not first.committee:
            raise ConfigError(
                f"Cannot combine {first.committee.display_name} with {other.committee.display_name} models"
            )
        if other.n_features != first.n_features:
            raise ConfigError(
                f"Cannot combine models over {first.n_features} and {other.n_features} features"
            )

    combined = Forest(
        ForestParams(
            committee=first.committee,
            max_depth=first.params.max_depth,
            factor=first.params.factor,
            n_trees=sum(f.n_grown for f in forests),
        ),
        n_features=first.n_features,
    )
    for forest in forests:
        for tree in forest.trees:
            combined.append(tree)
    return combined


def build_parser() -> argparse.ArgumentParser:
    parser = UsageParser(prog="combine-models", description="Concatenate forest models to stdout.")
    parser.add_argument("-o", default=None, dest="output", help="write the combined model here")
    add_log_level(parser)
    parser.add_argument("models", nargs="+", help="model files written by learn-forest")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        combined = combine_forests([read_forest(path) for path in args.models])
    except (ConfigError, ModelReadError) as e:
        print(e, file=sys.stderr)
        return 1

    buf = io.StringIO()
    dump_forest(combined, buf)
    text = buf.getvalue()
    sys.stderr.write("".join(text.splitlines(keepends=True)[:HEADER_SIZE]))

    if args.output is None:
        sys.stdout.write(text)
        return 0
    return 0 if write_forest(combined, args.output) else 1


if __name__ == "__main__":
    sys.exit(main())
