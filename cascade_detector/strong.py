'''
    Strong classifier: one cascade stage made of weighted decision stumps.
'''

from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .images import Index
from .weak import WeakClassifier


class StrongClassifier:
    def __init__(self, classifiers: Optional[Sequence[WeakClassifier]] = None,
                 weights: Optional[Sequence[float]] = None, threshold: float = 0.):
        self.classifiers: List[WeakClassifier] = list(classifiers or [])
        self.weights: List[float] = [float(w) for w in (weights or [])]
        if len(self.classifiers) != len(self.weights):
            raise ValueError(f'{len(self.classifiers)} weak classifiers but {len(self.weights)} weights')
        self.threshold = float(threshold)

    def append(self, classifier: WeakClassifier, weight: float) -> None:
        self.classifiers.append(classifier)
        self.weights.append(float(weight))

    def __len__(self) -> int:
        return len(self.classifiers)

    def __iter__(self) -> Iterator[Tuple[WeakClassifier, float]]:
        return iter(zip(self.classifiers, self.weights))

    def score(self, integral: np.ndarray, x: Index = 0, y: Index = 0, mean=0., std=1.):
        '''Weighted sum of the stump votes (+1/-1).'''
        total = 0.
        for c, w in zip(self.classifiers, self.weights):
            total = total + w * c.predict(integral, x, y, mean, std)
        if np.ndim(integral) > 2 or np.ndim(x) > 0:
            # Keep one score per sample or window even for an empty stage
            shape = np.broadcast(integral[..., 0, 0], np.asarray(x), np.asarray(y)).shape
            total = np.broadcast_to(total, shape).astype(np.float64)
        return total

    def classify(self, integral: np.ndarray, x: Index = 0, y: Index = 0, mean=0., std=1.):
        return self.score(integral, x, y, mean, std) >= self.threshold

    def calibrate_threshold(self, positives: np.ndarray, max_fnr: float) -> None:
        '''
            Lower the threshold until no more than max_fnr of the positive
            samples are rejected. Starting from the sorted score at index
            max_fnr * len(positives), the threshold steps down past every
            score equal to it, so fewer positives may be rejected.
        '''
        if len(positives) == 0:
            return
        scores = np.sort(self.score(positives))
        index = int(max_fnr * len(scores))
        if 0 <= index < len(scores):
            cut = scores[index]
            while index > 0 and scores[index] == cut:
                index -= 1
            self.threshold = float(scores[index])

    def false_positive_rate(self, negatives: np.ndarray) -> float:
        if len(negatives) == 0:
            return 0.
        return float(np.mean(self.classify(negatives)))

    def scale(self, factor: float) -> 'StrongClassifier':
        return StrongClassifier([c.scale(factor) for c in self.classifiers], self.weights, self.threshold)

    def scale_threshold(self, value: float) -> 'StrongClassifier':
        return StrongClassifier(self.classifiers, self.weights, self.threshold * value)

    def __eq__(self, other):
        if not isinstance(other, StrongClassifier):
            return NotImplemented
        return (self.classifiers, self.weights, self.threshold) == (other.classifiers, other.weights, other.threshold)

    def __repr__(self):
        return f'{self.__class__.__name__}({len(self)} weak classifiers, threshold={self.threshold})'
