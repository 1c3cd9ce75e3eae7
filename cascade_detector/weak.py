'''
    Decision stump over a single Haar feature.
'''

from typing import NamedTuple, Sequence

import numpy as np

from .features import Feature, FeatureType
from .images import Index

POSITIVE = 1
NEGATIVE = -1


class StumpFit(NamedTuple):
    thresholds: np.ndarray
    polarities: np.ndarray
    errors: np.ndarray


def fit_stumps(values: np.ndarray, labels: np.ndarray, weights: np.ndarray) -> StumpFit:
    '''
        Best threshold and polarity for every row of an (F, N) value matrix.

        Samples are sorted by value and swept once, accumulating the weighted
        positive and negative mass below each cut. A cut is tried before the
        first value and between every pair of distinct neighbours, for
        polarity False (below is negative) and then True (below is positive).
        The first strict minimum wins. Thresholds sit halfway between the
        values around the cut so that `value < threshold` reproduces the
        partition whose error was measured.
    '''
    values = np.atleast_2d(values)
    labels = np.asarray(labels, dtype=bool)
    weights = np.asarray(weights, dtype=np.float64)
    rows, n = values.shape
    if n == 0:
        raise ValueError('Cannot fit a stump without samples')

    order = np.argsort(values, axis=1, kind='stable')
    zs = np.take_along_axis(values, order, axis=1)
    positive_ws = np.where(labels[order], weights[order], 0.)
    negative_ws = weights[order] - positive_ws

    # Running sums below each cut; cut k leaves the first k sorted samples below
    zero = np.zeros((rows, 1))
    s_plus = np.concatenate([zero, np.cumsum(positive_ws, axis=1)], axis=1)
    s_minus = np.concatenate([zero, np.cumsum(negative_ws, axis=1)], axis=1)
    t_plus = s_plus[:, -1:]
    t_minus = s_minus[:, -1:]

    errors = np.empty((rows, n + 1, 2))
    errors[:, :, 0] = s_plus + (t_minus - s_minus)
    errors[:, :, 1] = s_minus + (t_plus - s_plus)

    # Cutting after the last value mirrors the first cut with flipped polarity
    valid = np.zeros((rows, n + 1), dtype=bool)
    valid[:, 0] = True
    valid[:, 1:n] = zs[:, 1:] > zs[:, :-1]
    errors[~valid] = np.inf

    flat = errors.reshape(rows, -1)
    best = np.argmin(flat, axis=1)
    cuts = best // 2
    index = np.arange(rows)

    thresholds = zs[:, 0].copy()
    inner = cuts > 0
    below = zs[index[inner], cuts[inner] - 1]
    above = zs[index[inner], np.minimum(cuts[inner], n - 1)]
    thresholds[inner] = (below + above) / 2.
    return StumpFit(thresholds=thresholds, polarities=(best % 2 == 1),
                    errors=flat[index, best])


class WeakClassifier:
    def __init__(self, feature: Feature, threshold: float = 0., polarity: bool = False):
        self.feature = feature
        self.threshold = float(threshold)
        self.polarity = bool(polarity)

    def fit(self, values: Sequence[float], positive_count: int, negative_count: int,
            weights: Sequence[float]) -> float:
        '''
            Choose the threshold and polarity with the least weighted error.
            `values` and `weights` list the positive samples first.
        '''
        labels = np.hstack([np.ones((positive_count,), dtype=bool),
                            np.zeros((negative_count,), dtype=bool)])
        result = fit_stumps(np.asarray(values, dtype=np.float64)[None, :], labels, weights)
        self.threshold = float(result.thresholds[0])
        self.polarity = bool(result.polarities[0])
        return float(result.errors[0])

    def classify(self, value):
        below, above = (POSITIVE, NEGATIVE) if self.polarity else (NEGATIVE, POSITIVE)
        return np.where(np.asarray(value) < self.threshold, below, above)

    def evaluate(self, integral: np.ndarray, x: Index = 0, y: Index = 0,
                 mean=0., std=1.) -> np.ndarray:
        # Normalize the feature value by the window's mean and standard deviation
        value = self.feature.value(integral, x, y)
        if self.feature.type in (FeatureType.THREE_HORIZONTAL, FeatureType.THREE_VERTICAL):
            value = value + self.feature.area * mean / 3.
        std = np.asarray(std, dtype=np.float64)
        safe_std = np.where(std != 0, std, 1.)
        return value / safe_std

    def predict(self, integral: np.ndarray, x: Index = 0, y: Index = 0, mean=0., std=1.):
        return self.classify(self.evaluate(integral, x, y, mean, std))

    def scale(self, factor: float) -> 'WeakClassifier':
        # Feature values grow with the area, the geometry with the side
        return WeakClassifier(self.feature.scale(factor), self.threshold * factor**2, self.polarity)

    def __eq__(self, other):
        if not isinstance(other, WeakClassifier):
            return NotImplemented
        return (self.feature, self.threshold, self.polarity) == (other.feature, other.threshold, other.polarity)

    def __repr__(self):
        return (f'{self.__class__.__name__}(feature={self.feature!r}, '
                f'threshold={self.threshold}, polarity={self.polarity})')

    def __str__(self):
        return f'{self.feature} {self.threshold!r} {int(self.polarity)}'
