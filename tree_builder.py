from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, TextIO

import numpy as np

from committee import Committee
from errors import ModelReadError
from split_search import ExactSplitSearch, SplitSearchResult


@dataclass
class TreeNode:
    depth: int
    is_leaf: bool = True
    split_feature: int | None = None
    split_threshold: float | None = None
    gain: float = 0.0
    prob: float = 0.5
    margin: float = 0.0
    P: float = 0.0
    N: float = 0.0
    left: TreeNode | None = None
    right: TreeNode | None = None


@dataclass
class TreeBuildMetrics:
    split_search_time_sec: float = 0.0
    nodes_visited: int = 0
    nodes_split: int = 0
    max_depth_reached: int = 0
    node_metrics: list[dict] = field(default_factory=list)


@dataclass
class TreeBuilderParams:
    committee: Committee = Committee.BOOSTING
    max_depth: int = 1000
    features_per_node: int | None = None  # None means all features

    # Leaf margins use eps = margin_smoothing / n_examples.
    margin_smoothing: float = 1.0

    def __post_init__(self) -> None:
        self.committee = Committee(self.committee)
        if self.max_depth <= 0:
            raise ValueError("max_depth must be positive")
        if self.features_per_node is not None and self.features_per_node <= 0:
            raise ValueError("features_per_node must be positive")
        if self.margin_smoothing <= 0.0:
            raise ValueError("margin_smoothing must be > 0")


class ClassificationTree:
    def __init__(self, root: TreeNode) -> None:
        self.root = root

    def _leaf_for(self, x: np.ndarray) -> TreeNode:
        node = self.root
        while not node.is_leaf:
            assert node.split_feature is not None
            assert node.split_threshold is not None

            go_left = x[node.split_feature] <= node.split_threshold
            node = node.left if go_left else node.right
            assert node is not None

        return node

    def classify_bag(self, x: np.ndarray) -> float:
        """Probability in [0, 1] that ``x`` is positive."""
        return self._leaf_for(x).prob

    def classify_boost(self, x: np.ndarray) -> float:
        """Signed confidence-rated margin of ``x``."""
        return self._leaf_for(x).margin

    def classify(self, X: np.ndarray, committee: Committee) -> np.ndarray:
        """Per-example predictions: margins for boosting, probabilities otherwise."""
        X = np.asarray(X, dtype=np.float64)
        preds = np.zeros(X.shape[0], dtype=np.float64)
        if committee is Committee.BOOSTING:
            for i in range(X.shape[0]):
                preds[i] = self.classify_boost(X[i])
        else:
            for i in range(X.shape[0]):
                preds[i] = self.classify_bag(X[i])
        return preds

    def nodes(self) -> Iterator[TreeNode]:
        """Nodes in preorder."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if not node.is_leaf:
                stack.append(node.right)
                stack.append(node.left)

    @property
    def n_nodes(self) -> int:
        return sum(1 for _ in self.nodes())

    @property
    def depth(self) -> int:
        return max(node.depth for node in self.nodes())

    def release(self) -> None:
        # Iterative, so very deep trees do not hit the recursion limit on teardown.
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.left is not None:
                stack.append(node.left)
            if node.right is not None:
                stack.append(node.right)
            node.left = node.right = None


class TreeBuilder:
    def __init__(
        self,
        X: np.ndarray,
        target: np.ndarray,
        params: TreeBuilderParams,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.X = np.ascontiguousarray(np.asarray(X, dtype=np.float64))
        self.target = np.asarray(target, dtype=np.int64)
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng(0)

        self.n_samples, self.n_features = self.X.shape
        self.metrics = TreeBuildMetrics()
        self._eps = self.params.margin_smoothing / max(self.n_samples, 1)

    def _candidate_features(self) -> np.ndarray:
        k = self.params.features_per_node
        if k is None or k >= self.n_features:
            return np.arange(self.n_features, dtype=np.int64)
        return np.asarray(
            self.rng.choice(self.n_features, size=k, replace=False), dtype=np.int64
        )

    def _make_leaf_values(self, node: TreeNode) -> None:
        total = node.P + node.N
        node.prob = node.P / total if total > 0.0 else 0.5
        node.margin = 0.5 * float(np.log((node.P + self._eps) / (node.N + self._eps)))

    def _is_splittable(self, node: TreeNode, rows: np.ndarray) -> bool:
        if node.depth >= self.params.max_depth:
            return False
        if rows.size < 2:
            return False
        if node.P <= 0.0 or node.N <= 0.0:
            return False
        return True

    def _find_best_split(
        self, rows: np.ndarray, weight: np.ndarray
    ) -> SplitSearchResult:
        search = ExactSplitSearch(
            node_rows=rows,
            candidate_features=self._candidate_features(),
            X=self.X,
            target=self.target,
            weight=weight,
            committee=self.params.committee,
        )
        result = search.search()
        self.metrics.split_search_time_sec += result.metrics.time_spent_sec
        return result

    def build_tree(
        self,
        weight: np.ndarray,
        included: np.ndarray | None = None,
    ) -> ClassificationTree:
        """Grow one tree on the included examples, weighted by ``weight``."""
        weight = np.asarray(weight, dtype=np.float64)
        if included is None:
            rows = np.arange(self.n_samples, dtype=np.int64)
        else:
            rows = np.flatnonzero(np.asarray(included, dtype=bool))

        pos_mask = self.target == 1
        root = TreeNode(depth=0)
        stack = [(root, rows)]

        while stack:
            node, node_rows = stack.pop()
            self.metrics.nodes_visited += 1
            self.metrics.max_depth_reached = max(self.metrics.max_depth_reached, node.depth)

            w = weight[node_rows]
            node.P = float(w[pos_mask[node_rows]].sum())
            node.N = float(w[~pos_mask[node_rows]].sum())
            self._make_leaf_values(node)

            if not self._is_splittable(node, node_rows):
                continue

            split_result = self._find_best_split(node_rows, weight)
            self.metrics.node_metrics.append(
                {
                    "depth": node.depth,
                    "node_size": int(node_rows.size),
                    "features_tried": split_result.metrics.features_tried,
                    "gain": split_result.gain,
                }
            )
            if split_result.arm is None:
                continue

            go_left = self.X[node_rows, split_result.arm.feature] <= split_result.arm.threshold
            left_rows = node_rows[go_left]
            right_rows = node_rows[~go_left]
            if left_rows.size == 0 or right_rows.size == 0:
                continue

            node.is_leaf = False
            node.split_feature = split_result.arm.feature
            node.split_threshold = split_result.arm.threshold
            node.gain = split_result.gain

            node.left = TreeNode(depth=node.depth + 1)
            node.right = TreeNode(depth=node.depth + 1)
            self.metrics.nodes_split += 1

            stack.append((node.right, right_rows))
            stack.append((node.left, left_rows))

        return ClassificationTree(root=root)


def write_tree(stream: TextIO, tree: ClassificationTree) -> None:
    nodes = list(tree.nodes())
    stream.write(f"tree: {len(nodes)}\n")
    for node in nodes:
        if node.is_leaf:
            stream.write(f"L {float(node.prob)!r} {float(node.margin)!r}\n")
        else:
            stream.write(f"S {int(node.split_feature)} {float(node.split_threshold)!r}\n")


def _next_token(tokens: Iterator[str], what: str) -> str:
    token = next(tokens, None)
    if token is None:
        raise ModelReadError(f"unexpected end of model while reading {what}")
    return token


def _parse(kind, token: str, what: str):
    try:
        return kind(token)
    except ValueError as e:
        raise ModelReadError(f"invalid {what}: {token!r}") from e


def read_tree(tokens: Iterator[str]) -> ClassificationTree:
    """Rebuild a tree written by :func:`write_tree` from a token stream."""
    label = _next_token(tokens, "tree header")
    if label != "tree:":
        raise ModelReadError(f"expected 'tree:' but found {label!r}")
    n_nodes = _parse(int, _next_token(tokens, "node count"), "node count")
    if n_nodes <= 0:
        raise ModelReadError(f"invalid node count: {n_nodes}")

    root: TreeNode | None = None
    # Split nodes still waiting for a child, innermost last.
    pending: list[TreeNode] = []
    for _ in range(n_nodes):
        depth = 0
        parent = pending[-1] if pending else None
        if parent is not None:
            depth = parent.depth + 1
        elif root is not None:
            raise ModelReadError("tree has more nodes than its structure allows")

        kind = _next_token(tokens, "node")
        if kind == "S":
            node = TreeNode(
                depth=depth,
                is_leaf=False,
                split_feature=_parse(int, _next_token(tokens, "feature"), "feature"),
                split_threshold=_parse(float, _next_token(tokens, "threshold"), "threshold"),
            )
        elif kind == "L":
            node = TreeNode(
                depth=depth,
                prob=_parse(float, _next_token(tokens, "probability"), "probability"),
                margin=_parse(float, _next_token(tokens, "margin"), "margin"),
            )
        else:
            raise ModelReadError(f"unknown node kind: {kind!r}")

        if parent is None:
            root = node
        elif parent.left is None:
            parent.left = node
        else:
            parent.right = node
            pending.pop()

        if not node.is_leaf:
            pending.append(node)

    if root is None or pending:
        raise ModelReadError("tree ended before all split nodes had two children")
    return ClassificationTree(root=root)
