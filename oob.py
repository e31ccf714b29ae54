"""Out-of-bag bookkeeping for bagged and random forest committees.

Each bootstrap round leaves some examples out of the tree's training set. Those
examples get one vote from the new tree: +1 if it calls them positive, -1
otherwise. The cumulative votes give an ensemble-level held-out estimate of
the error rates and of the ROC-AUC after every round.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TextIO

import numpy as np

from committee import Committee
from dataset import Dataset
from tree_builder import ClassificationTree


@dataclass
class OOBReport:
    tree: int
    error: float
    neg_error: float
    pos_error: float
    auc: float

    def format_row(self) -> str:
        return "%5d  %5.2f%%  %5.2f%%  %5.2f%%   %5.2f%%" % (
            self.tree,
            100 * self.error,
            100 * self.neg_error,
            100 * self.pos_error,
            100 * self.auc,
        )


def oob_header() -> str:
    return (
        "Error rate (1-acc), on neg examples (1-spec), and on pos examples (1-sens)\n"
        + "%5s  %6s  %6s  %6s   %6s" % ("tree", "err", "negerr", "poserr", "auc")
    )


def tabulate_oob_votes(
    tree: ClassificationTree,
    dataset: Dataset,
    committee: Committee = Committee.BAGGING,
) -> np.ndarray:
    """Classify every example and add this tree's vote to the out-of-bag ones.

    Examples whose weight is zero were not drawn this round. Returns the tree's
    per-example predictions so they can also be streamed to a vote sink.
    """
    preds = tree.classify(dataset.X, committee)
    oob = dataset.weight == 0
    dataset.oobvotes[oob] += np.where(preds[oob] > 0.5, 1, -1)
    return preds


def output_oob_votes(predictions: np.ndarray, dataset: Dataset, sink: TextIO) -> None:
    # One line per tree; reports this tree's decision, not the cumulative vote.
    values = np.where(predictions > 0.5, 1, -1)
    values[dataset.weight != 0] = 0
    sink.write(" ".join(str(int(v)) for v in values))
    sink.write("\n")


def compute_oob_auc(dataset: Dataset, trees_so_far: int) -> float:
    """Area under the ROC curve of the cumulative vote as a score.

    Every rule "positive when vote >= v" for v in [-T, T] gives one
    (specificity, sensitivity) point; the rule that always says negative closes
    the curve at (1, 0). The area is the trapezoidal sum over consecutive
    thresholds. An empty class yields NaN, which is returned as is.
    """
    T = int(trees_so_far)
    rowsize = 2 * T + 1
    votes = np.asarray(dataset.oobvotes, dtype=np.int64)
    if votes.size and (votes.min() < -T or votes.max() > T):
        raise ValueError(f"OOB votes must lie in [-{T}, {T}]")

    target = np.asarray(dataset.target, dtype=np.int64)
    neg_counts = np.bincount(votes[target == 0] + T, minlength=rowsize).astype(np.float64)
    pos_counts = np.bincount(votes[target == 1] + T, minlength=rowsize).astype(np.float64)

    # Counts strictly below threshold index k, for k = 0 .. 2T.
    tn = np.concatenate(([0.0], np.cumsum(neg_counts)[:-1]))
    fn = np.concatenate(([0.0], np.cumsum(pos_counts)[:-1]))
    fp = neg_counts.sum() - tn
    tp = pos_counts.sum() - fn

    with np.errstate(divide="ignore", invalid="ignore"):
        sens = np.append(tp / (tp + fn), 0.0)
        spec = np.append(tn / (tn + fp), 1.0)

    auc = np.sum((spec[1:] - spec[:-1]) * (sens[:-1] + sens[1:]) / 2)
    return float(auc)


def oob_error_rates(dataset: Dataset, iteration: int) -> OOBReport:
    """Confusion-matrix rates of the current votes, skipping undecided examples."""
    votes = dataset.oobvotes
    decided = votes != 0
    predicted = votes[decided] > 0
    actual = dataset.target[decided] == 1

    tp = float(np.sum(predicted & actual))
    fn = float(np.sum(~predicted & actual))
    fp = float(np.sum(predicted & ~actual))
    tn = float(np.sum(~predicted & ~actual))

    with np.errstate(divide="ignore", invalid="ignore"):
        acc = np.float64(tp + tn) / np.float64(tp + tn + fp + fn)
        sens = np.float64(tp) / np.float64(tp + fn)
        spec = np.float64(tn) / np.float64(tn + fp)

    return OOBReport(
        tree=iteration + 1,
        error=float(1 - acc),
        neg_error=float(1 - spec),
        pos_error=float(1 - sens),
        auc=compute_oob_auc(dataset, iteration + 1),
    )


def report_oob_error(dataset: Dataset, iteration: int, out: TextIO) -> OOBReport:
    report = oob_error_rates(dataset, iteration)
    out.write(report.format_row() + "\n")
    return report
