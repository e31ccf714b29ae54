from __future__ import annotations

from dataclasses import dataclass, field
import logging

import numpy as np

from errors import DatasetError

logger = logging.getLogger(__name__)


@dataclass
class Dataset:
    """Labelled examples plus the per-example state mutated during training.

    ``weight`` holds the resampling multiplicity (bagging, random forest) or the
    boosting mass of each example for the current round. ``oobvotes`` is the
    cumulative out-of-bag vote of the ensemble grown so far.
    """

    X: np.ndarray
    target: np.ndarray
    weight: np.ndarray = field(init=False)
    oobvotes: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        self.X = np.ascontiguousarray(np.asarray(self.X, dtype=np.float64))
        self.target = np.asarray(self.target, dtype=np.int64)
        if self.X.ndim != 2:
            raise DatasetError("X must be a 2D array")
        if self.target.ndim != 1 or self.target.shape[0] != self.X.shape[0]:
            raise DatasetError("target must be a 1D array with the same number of rows as X")
        if not np.all((self.target == 0) | (self.target == 1)):
            raise DatasetError("target must only contain 0/1 labels")
        self.weight = np.zeros(self.n_examples, dtype=np.float64)
        self.oobvotes = np.zeros(self.n_examples, dtype=np.int64)

    @classmethod
    def from_arrays(cls, X: np.ndarray, y: np.ndarray) -> "Dataset":
        y = np.asarray(y)
        return cls(X=X, target=(y > 0).astype(np.int64))

    @property
    def n_examples(self) -> int:
        return int(self.X.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.X.shape[1])

    def class_counts(self) -> tuple[int, int]:
        n_pos = int(np.sum(self.target))
        return self.n_examples - n_pos, n_pos

    def reset_oob_votes(self) -> None:
        self.oobvotes[:] = 0


def load_data(path: str) -> Dataset:
    """Load a whitespace separated data file, one example per line.

    The first column is the label (1 positive, 0 or -1 negative), the remaining
    columns are feature values. Blank lines and ``#`` comments are skipped.
    """
    try:
        raw = np.loadtxt(path, dtype=np.float64, comments="#", ndmin=2)
    except OSError as e:
        raise DatasetError(f"could not read data file: {path}") from e
    except ValueError as e:
        raise DatasetError(f"malformed data file: {path}: {e}") from e

    if raw.size == 0:
        raise DatasetError(f"data file has no examples: {path}")
    if raw.shape[1] < 2:
        raise DatasetError(f"data file has no feature columns: {path}")

    labels = raw[:, 0]
    if not np.all(np.isin(labels, (-1.0, 0.0, 1.0))):
        raise DatasetError(f"labels must be one of -1, 0, 1: {path}")

    dataset = Dataset.from_arrays(raw[:, 1:], labels)
    n_neg, n_pos = dataset.class_counts()
    logger.info(
        "Loaded %s: %d examples (%d pos, %d neg), %d features",
        path,
        dataset.n_examples,
        n_pos,
        n_neg,
        dataset.n_features,
    )
    return dataset
