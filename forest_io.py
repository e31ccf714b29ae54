"""Text model files.

A model is a five line header followed by the trees in grown order::

    committee: 3 (RandomForest)
    trees: 2
    features: 10
    maxdepth: 1000
    fpnfactor: 1.0
    tree: 3
    S 4 0.25
    L 1.0 3.45
    L 0.0 -3.45
    ...

Only the numeric committee id is authoritative; the name in parentheses is for
people reading the file.
"""

from __future__ import annotations

import logging
from typing import Callable, TextIO
import warnings

from committee import Committee
from errors import ConfigError, ModelReadError, ModelWriteError, TrailingDataWarning
from forest_trainer import Forest, ForestParams
from tree_builder import read_tree, write_tree

logger = logging.getLogger(__name__)

HEADER_SIZE = 5


def dump_forest(forest: Forest, stream: TextIO) -> None:
    stream.write(f"committee: {int(forest.committee)} ({forest.committee.display_name})\n")
    stream.write(f"trees: {forest.n_grown}\n")
    stream.write(f"features: {forest.n_features}\n")
    stream.write(f"maxdepth: {forest.params.max_depth}\n")
    stream.write(f"fpnfactor: {float(forest.params.factor)!r}\n")
    for tree in forest.trees:
        write_tree(stream, tree)


def write_forest(forest: Forest, path: str, strict: bool = False) -> bool:
    """Write ``forest`` to ``path``.

    A file that cannot be opened or written is logged and skipped, returning
    False; the forest itself is untouched. With ``strict`` the failure is raised
    as :class:`ModelWriteError` instead.
    """
    try:
        with open(path, "w") as fp:
            dump_forest(forest, fp)
    except OSError as e:
        logger.error("could not write to output file: %s (%s)", path, e)
        if strict:
            raise ModelWriteError(f"could not write to output file: {path}") from e
        return False
    return True


def _header_field(line: str, lineno: int, label: str, kind: Callable, source: str):
    tokens = line.split()
    if not tokens or tokens[0] != label:
        raise ModelReadError(
            f"{source}:{lineno}: expected '{label}' but found {line.strip()!r}"
        )
    if len(tokens) < 2:
        raise ModelReadError(f"{source}:{lineno}: missing value for '{label}'")
    try:
        return kind(tokens[1])
    except ValueError as e:
        raise ModelReadError(
            f"{source}:{lineno}: invalid value for '{label}': {tokens[1]!r}"
        ) from e


def load_forest(stream: TextIO, source: str = "<stream>") -> Forest:
    lines = stream.read().splitlines()
    if len(lines) < HEADER_SIZE:
        raise ModelReadError(f"corrupt input file: {source}: truncated header")

    fields = [
        ("committee:", int),
        ("trees:", int),
        ("features:", int),
        ("maxdepth:", int),
        ("fpnfactor:", float),
    ]
    committee_id, n_trees, n_features, max_depth, factor = (
        _header_field(lines[i], i + 1, label, kind, source)
        for i, (label, kind) in enumerate(fields)
    )

    try:
        committee = Committee.from_id(committee_id)
    except ConfigError as e:
        raise ModelReadError(f"{source}: {e}") from e
    if n_trees < 0:
        raise ModelReadError(f"{source}: negative tree count {n_trees}")

    forest = Forest(
        ForestParams(
            committee=committee,
            max_depth=max_depth,
            factor=factor,
            n_trees=n_trees,
        ),
        n_features=n_features,
    )

    tokens = iter(" ".join(lines[HEADER_SIZE:]).split())
    for i in range(n_trees):
        try:
            forest.append(read_tree(tokens))
        except ModelReadError as e:
            raise ModelReadError(f"{source}: tree {i + 1}: {e}") from e

    if next(tokens, None) is not None:
        logger.warning("garbage at the end of input file: %s", source)
        warnings.warn(f"garbage at the end of input file: {source}", TrailingDataWarning)

    return forest


def read_forest(path: str) -> Forest:
    try:
        with open(path) as fp:
            return load_forest(fp, source=path)
    except OSError as e:
        raise ModelReadError(f"could not read input file: {path}") from e
