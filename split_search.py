from __future__ import annotations

from dataclasses import dataclass, field
import time

import numpy as np

from committee import Committee


@dataclass(frozen=True)
class SplitArm:
    feature: int
    threshold: float


@dataclass
class SplitSearchMetrics:
    n_rows: int = 0
    n_candidates: int = 0
    n_thresholds_scanned: int = 0
    time_spent_sec: float = 0.0
    features_tried: list[int] = field(default_factory=list)


@dataclass
class SplitSearchResult:
    arm: SplitArm | None
    gain: float
    node_P: float
    node_N: float
    metrics: SplitSearchMetrics


def node_impurity(P, N, committee: Committee):
    """Weighted impurity of a node holding positive mass ``P`` and negative mass ``N``.

    Bagging and random forests use the weighted Gini impurity ``2PN/(P+N)``.
    Boosting uses the real-AdaBoost normalizer ``2*sqrt(PN)``, so the best split
    is the one minimizing the next round's total weight.
    """
    P = np.asarray(P, dtype=np.float64)
    N = np.asarray(N, dtype=np.float64)
    if committee is Committee.BOOSTING:
        return 2.0 * np.sqrt(np.maximum(P * N, 0.0))
    total = P + N
    with np.errstate(divide="ignore", invalid="ignore"):
        gini = np.where(total > 0.0, 2.0 * P * N / total, 0.0)
    return gini


class ExactSplitSearch:
    """Exhaustive weighted threshold search for one node."""

    # Gains at or below this are treated as no improvement.
    min_gain: float = 1e-12

    def __init__(
        self,
        node_rows: np.ndarray,
        candidate_features: np.ndarray,
        X: np.ndarray,
        target: np.ndarray,
        weight: np.ndarray,
        committee: Committee,
    ) -> None:
        self.node_rows = np.asarray(node_rows, dtype=np.int64)
        self.candidate_features = np.asarray(candidate_features, dtype=np.int64)
        self.X = X
        self.committee = committee

        self.w = np.asarray(weight, dtype=np.float64)[self.node_rows]
        self.pos = np.asarray(target)[self.node_rows] == 1
        self.wpos = np.where(self.pos, self.w, 0.0)
        self.wneg = np.where(self.pos, 0.0, self.w)

    def _best_threshold(self, feature: int, parent: float, P: float, N: float):
        values = self.X[self.node_rows, feature]
        order = np.argsort(values, kind="stable")
        sorted_values = values[order]

        # Split points are between adjacent distinct values only.
        boundaries = np.nonzero(sorted_values[:-1] < sorted_values[1:])[0]
        if boundaries.size == 0:
            return None, -np.inf, 0

        P_left = np.cumsum(self.wpos[order])[boundaries]
        N_left = np.cumsum(self.wneg[order])[boundaries]
        children = node_impurity(P_left, N_left, self.committee) + node_impurity(
            P - P_left, N - N_left, self.committee
        )
        gains = parent - children

        best = int(np.argmax(gains))
        i = int(boundaries[best])
        threshold = 0.5 * (float(sorted_values[i]) + float(sorted_values[i + 1]))
        # The midpoint can round up to the right value for adjacent floats.
        if threshold >= sorted_values[i + 1]:
            threshold = float(sorted_values[i])
        return threshold, float(gains[best]), int(boundaries.size)

    def search(self) -> SplitSearchResult:
        t0 = time.perf_counter()
        P = float(self.wpos.sum())
        N = float(self.wneg.sum())
        metrics = SplitSearchMetrics(
            n_rows=int(self.node_rows.size),
            n_candidates=int(self.candidate_features.size),
        )
        parent = float(node_impurity(P, N, self.committee))

        best_arm: SplitArm | None = None
        best_gain = -np.inf
        for feature in self.candidate_features:
            metrics.features_tried.append(int(feature))
            threshold, gain, scanned = self._best_threshold(int(feature), parent, P, N)
            metrics.n_thresholds_scanned += scanned
            if threshold is None:
                continue
            if gain > best_gain:
                best_gain = gain
                best_arm = SplitArm(feature=int(feature), threshold=threshold)

        if best_arm is not None and best_gain <= self.min_gain:
            best_arm = None

        metrics.time_spent_sec = time.perf_counter() - t0
        return SplitSearchResult(
            arm=best_arm,
            gain=float(best_gain),
            node_P=P,
            node_N=N,
            metrics=metrics,
        )
