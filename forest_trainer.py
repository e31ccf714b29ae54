from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import math
import sys
from typing import TextIO

import numpy as np

from committee import Committee
from dataset import Dataset
from errors import ConfigError, EmptyEnsembleError
from oob import OOBReport, oob_header, output_oob_votes, report_oob_error, tabulate_oob_votes
from tree_builder import ClassificationTree, TreeBuilder, TreeBuilderParams

logger = logging.getLogger(__name__)


@dataclass
class ForestParams:
    committee: Committee = Committee.BOOSTING
    max_depth: int = 1000
    factor: float = 1.0  # random forest: candidate features over sqrt(features)
    n_trees: int = 100
    neg_weight: float = 1.0

    oob: bool = False
    oob_sink: TextIO | None = None

    def validate(self) -> None:
        Committee.from_id(self.committee)
        if self.max_depth <= 0:
            raise ConfigError("Invalid tree depth")
        if not self.factor > 0:
            raise ConfigError("Invalid parameter value")
        if self.n_trees <= 0:
            raise ConfigError("Invalid number of trees")
        if not self.neg_weight > 0:
            raise ConfigError("Invalid negative class weight")


def class_weights(target: np.ndarray, neg_weight: float) -> np.ndarray:
    """Per-class base weights ``[w0, w1]``; they sum to one over the dataset."""
    target = np.asarray(target)
    c1 = float(np.sum(target == 1))
    c0 = float(target.size) - c1
    denom = neg_weight * c0 + c1
    return np.array([neg_weight / denom, 1.0 / denom], dtype=np.float64)


def features_per_node(committee: Committee, factor: float, n_features: int) -> int:
    if committee is Committee.RANDOM_FOREST:
        k = int(factor * math.sqrt(n_features))
        return min(max(k, 1), n_features)
    return n_features


class Forest:
    """An ordered, append-only committee of classification trees."""

    def __init__(self, params: ForestParams | None = None, n_features: int = 0) -> None:
        params = params or ForestParams()
        self.params = replace(params, committee=Committee(params.committee))
        self.n_features = n_features
        self.trees: list[ClassificationTree] = []

    @property
    def committee(self) -> Committee:
        return self.params.committee

    @property
    def n_grown(self) -> int:
        return len(self.trees)

    def append(self, tree: ClassificationTree) -> None:
        if self.n_grown >= self.params.n_trees:
            raise RuntimeError(f"Forest already holds {self.params.n_trees} trees")
        self.trees.append(tree)

    def classify(self, example: np.ndarray) -> float:
        """Average tree score: margins for boosting, probabilities otherwise."""
        if not self.trees:
            raise EmptyEnsembleError("Forest has no grown trees")
        example = np.asarray(example, dtype=np.float64)
        if self.committee is Committee.BOOSTING:
            total = sum(tree.classify_boost(example) for tree in self.trees)
        else:
            total = sum(tree.classify_bag(example) for tree in self.trees)
        return total / self.n_grown

    def classify_batch(self, X: np.ndarray) -> np.ndarray:
        if not self.trees:
            raise EmptyEnsembleError("Forest has no grown trees")
        X = np.asarray(X, dtype=np.float64)
        scores = np.zeros(X.shape[0], dtype=np.float64)
        for tree in self.trees:
            scores += tree.classify(X, self.committee)
        return scores / self.n_grown

    def release(self) -> None:
        for tree in self.trees:
            tree.release()
        self.trees = []


class ForestTrainer:
    """Grows a forest one round at a time.

    The generator is the only source of randomness; a bagging round makes
    exactly ``n`` bootstrap draws and a boosting round makes none, so a fixed
    seed reproduces the same forest.
    """

    def __init__(self, rng: np.random.Generator, out: TextIO | None = None) -> None:
        self.rng = rng
        self.out = out if out is not None else sys.stdout
        self.oob_reports: list[OOBReport] = []
        self.metrics: dict = {}

    def _tree_params(self, forest: Forest, n_features: int) -> TreeBuilderParams:
        return TreeBuilderParams(
            committee=forest.committee,
            max_depth=forest.params.max_depth,
            features_per_node=features_per_node(forest.committee, forest.params.factor, n_features),
        )

    def _bootstrap(self, dataset: Dataset, w: np.ndarray) -> np.ndarray:
        n = dataset.n_examples
        included = np.zeros(n, dtype=bool)
        dataset.weight[:] = 0.0

        draws = self.rng.integers(0, n, size=n)
        included[draws] = True
        # Repeated draws compound the weight of an example.
        np.add.at(dataset.weight, draws, w[dataset.target[draws]])
        return included

    def _boosting_update(self, tree: ClassificationTree, dataset: Dataset) -> None:
        preds = tree.classify(dataset.X, Committee.BOOSTING)
        dataset.weight *= np.exp(-(2 * dataset.target - 1) * preds)
        dataset.weight /= dataset.weight.sum()

    def _record_oob(self, forest: Forest, tree: ClassificationTree, dataset: Dataset, t: int) -> None:
        preds = tabulate_oob_votes(tree, dataset, forest.committee)
        self.oob_reports.append(report_oob_error(dataset, t, self.out))
        if forest.params.oob_sink is not None:
            output_oob_votes(preds, dataset, forest.params.oob_sink)

    def grow_forest(self, forest: Forest, dataset: Dataset) -> Forest:
        committee = forest.committee
        forest.n_features = dataset.n_features
        w = class_weights(dataset.target, forest.params.neg_weight)
        tree_params = self._tree_params(forest, dataset.n_features)

        self.oob_reports = []
        self.metrics = {
            "class_weights": (float(w[0]), float(w[1])),
            "features_per_node": tree_params.features_per_node,
            "split_search_time_sec": 0.0,
            "tree_metrics": [],
        }

        included = np.ones(dataset.n_examples, dtype=bool)
        if committee is Committee.BOOSTING:
            dataset.weight[:] = w[dataset.target]

        report_oob = forest.params.oob and committee.resamples
        if forest.params.oob and not committee.resamples:
            logger.warning("Boosting uses every example each round; no out-of-bag estimate")
        if report_oob:
            dataset.reset_oob_votes()
            self.out.write(oob_header() + "\n")

        for t in range(forest.params.n_trees):
            if committee.resamples:
                included = self._bootstrap(dataset, w)

            builder = TreeBuilder(
                X=dataset.X,
                target=dataset.target,
                params=tree_params,
                rng=self.rng,
            )
            tree = builder.build_tree(dataset.weight, included)

            weight_mass = float(dataset.weight.sum())
            n_included = int(np.sum(included))

            if committee is Committee.BOOSTING:
                self._boosting_update(tree, dataset)
            elif report_oob:
                self._record_oob(forest, tree, dataset, t)

            forest.append(tree)

            self.metrics["split_search_time_sec"] += builder.metrics.split_search_time_sec
            self.metrics["tree_metrics"].append(
                {
                    "tree_idx": t,
                    "n_included": n_included,
                    "weight_mass": weight_mass,
                    "weight_sum_after": float(dataset.weight.sum()),
                    "nodes_visited": builder.metrics.nodes_visited,
                    "nodes_split": builder.metrics.nodes_split,
                    "depth": builder.metrics.max_depth_reached,
                }
            )
            logger.debug(
                "tree %d/%d: %d included, %d splits, depth %d",
                t + 1,
                forest.params.n_trees,
                n_included,
                builder.metrics.nodes_split,
                builder.metrics.max_depth_reached,
            )

        return forest
