import io

import numpy as np
import pytest

from committee import Committee
from errors import ModelReadError
from split_search import ExactSplitSearch, node_impurity
from tree_builder import TreeBuilder, TreeBuilderParams, read_tree, write_tree


def _collect_tree_signature(node):
    if node.is_leaf:
        return [("L", node.depth, node.prob, node.margin)]

    signature = [("S", node.depth, int(node.split_feature), float(node.split_threshold))]
    signature.extend(_collect_tree_signature(node.left))
    signature.extend(_collect_tree_signature(node.right))
    return signature


def _build(X, y, weight=None, included=None, rng=None, **kwargs):
    y = np.asarray(y)
    if weight is None:
        weight = np.full(y.shape[0], 1.0 / y.shape[0])
    builder = TreeBuilder(X=X, target=y, params=TreeBuilderParams(**kwargs), rng=rng)
    return builder, builder.build_tree(weight, included)


def test_stump_separates_threshold_data():
    X = np.array([[0.0], [1.0], [2.0], [3.0]])
    y = np.array([0, 0, 1, 1])

    _, tree = _build(X, y, committee=Committee.BAGGING, max_depth=1)

    assert not tree.root.is_leaf
    assert tree.root.split_feature == 0
    assert tree.root.split_threshold == 1.5
    assert np.array_equal(tree.classify(X, Committee.BAGGING), [0.0, 0.0, 1.0, 1.0])


def test_boosting_leaf_margin_is_smoothed_log_ratio():
    X = np.array([[0.0], [1.0], [2.0], [3.0]])
    y = np.array([0, 0, 1, 1])

    _, tree = _build(X, y, committee=Committee.BOOSTING, max_depth=1)

    eps = 1.0 / 4
    expected = 0.5 * np.log((0.5 + eps) / eps)
    margins = tree.classify(X, Committee.BOOSTING)
    assert np.allclose(margins, [-expected, -expected, expected, expected])
    assert tree.classify_boost(np.array([2.5])) == pytest.approx(expected)


def test_max_depth_is_respected():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(200, 3))
    y = (np.sin(3 * X[:, 0]) + X[:, 1] * X[:, 2] > 0).astype(int)

    for max_depth in (1, 2, 4):
        builder, tree = _build(X, y, committee=Committee.BAGGING, max_depth=max_depth)
        assert tree.depth <= max_depth
        assert builder.metrics.max_depth_reached == tree.depth


def test_only_included_rows_are_used():
    X = np.array([[0.0], [1.0], [2.0], [3.0]])
    y = np.array([0, 0, 1, 1])
    weight = np.array([0.5, 0.5, 0.0, 0.0])

    _, tree = _build(X, y, weight=weight, included=weight > 0, committee=Committee.BAGGING)

    assert tree.root.is_leaf
    assert tree.root.prob == 0.0


def test_feature_subsampling_limits_candidates_per_split():
    rng = np.random.default_rng(4)
    X = rng.normal(size=(120, 9))
    y = (X[:, 3] - X[:, 7] > 0).astype(int)

    builder, _ = _build(
        X,
        y,
        rng=np.random.default_rng(4),
        committee=Committee.RANDOM_FOREST,
        max_depth=3,
        features_per_node=3,
    )

    assert builder.metrics.node_metrics
    for node_metrics in builder.metrics.node_metrics:
        tried = node_metrics["features_tried"]
        assert len(tried) == 3
        assert len(set(tried)) == 3


def test_same_seed_grows_same_tree():
    rng = np.random.default_rng(8)
    X = rng.normal(size=(80, 6))
    y = (X[:, 0] > 0.2).astype(int)

    _, first = _build(
        X, y, rng=np.random.default_rng(21), committee=Committee.RANDOM_FOREST, features_per_node=2
    )
    _, second = _build(
        X, y, rng=np.random.default_rng(21), committee=Committee.RANDOM_FOREST, features_per_node=2
    )

    assert _collect_tree_signature(first.root) == _collect_tree_signature(second.root)


def test_ties_pick_first_candidate_feature():
    X = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0], [3.0, 3.0]])
    y = np.array([0, 0, 1, 1])

    _, tree = _build(X, y, committee=Committee.BAGGING, max_depth=1)

    assert tree.root.split_feature == 0


def test_impurity_functions():
    assert node_impurity(0.25, 0.25, Committee.BAGGING) == pytest.approx(0.25)
    assert node_impurity(0.25, 0.25, Committee.BOOSTING) == pytest.approx(0.5)
    assert node_impurity(0.0, 0.0, Committee.BAGGING) == 0.0


def test_split_search_reports_no_arm_for_constant_feature():
    X = np.ones((6, 1))
    y = np.array([0, 1, 0, 1, 0, 1])
    search = ExactSplitSearch(
        node_rows=np.arange(6),
        candidate_features=np.array([0]),
        X=X,
        target=y,
        weight=np.full(6, 1.0 / 6),
        committee=Committee.BAGGING,
    )

    result = search.search()

    assert result.arm is None
    assert result.node_P == pytest.approx(0.5)


def test_write_read_round_trip_preserves_predictions():
    rng = np.random.default_rng(12)
    X = rng.normal(size=(150, 5))
    y = (X[:, 1] * X[:, 4] + 0.3 * rng.normal(size=150) > 0).astype(int)
    _, tree = _build(X, y, committee=Committee.BOOSTING, max_depth=5)

    buf = io.StringIO()
    write_tree(buf, tree)
    restored = read_tree(iter(buf.getvalue().split()))

    assert _collect_tree_signature(restored.root) == _collect_tree_signature(tree.root)
    probe = rng.normal(size=(40, 5))
    for committee in (Committee.BAGGING, Committee.BOOSTING):
        assert np.array_equal(restored.classify(probe, committee), tree.classify(probe, committee))


@pytest.mark.parametrize(
    "text",
    [
        "",
        "tree: 3 S 0 0.5 L 0.0 -1.0",
        "tree: 1 S 0 0.5",
        "tree: 2 L 0.0 -1.0 L 1.0 1.0",
        "tree: 1 X 0.0 1.0",
        "tree: 1 L zero 1.0",
        "forest: 1 L 0.0 1.0",
    ],
)
def test_read_tree_rejects_malformed_input(text):
    with pytest.raises(ModelReadError):
        read_tree(iter(text.split()))


def test_release_detaches_subtree():
    X = np.array([[0.0], [1.0], [2.0], [3.0]])
    y = np.array([0, 1, 0, 1])
    _, tree = _build(X, y, committee=Committee.BAGGING)
    assert tree.n_nodes > 1

    tree.release()

    assert tree.root.left is None and tree.root.right is None
