'''
    Cascade of strong classifiers.

    Stages run in training order and a window is rejected by the first stage
    that rejects it. Each stage was trained only on the samples every earlier
    stage accepted, so the order is part of the model.
'''

from typing import Callable, Iterator, List, Optional, Sequence

import numpy as np

from .images import Index
from .strong import StrongClassifier


class Cascade:
    def __init__(self, size: int, stages: Optional[Sequence[StrongClassifier]] = None):
        self.size = int(size)
        self.stages: List[StrongClassifier] = list(stages or [])

    def append(self, stage: StrongClassifier) -> None:
        self.stages.append(stage)

    def __len__(self) -> int:
        return len(self.stages)

    def __iter__(self) -> Iterator[StrongClassifier]:
        return iter(self.stages)

    def classify(self, integral: np.ndarray, x: int = 0, y: int = 0, mean: float = 0., std: float = 1.) -> bool:
        for stage in self.stages:
            if not stage.classify(integral, x, y, mean, std):
                return False
        return True

    def _surviving(self, count: int, stage_accepts: Callable[[StrongClassifier, np.ndarray], np.ndarray]) -> np.ndarray:
        # Each stage only sees what every earlier stage accepted
        accepted = np.ones(count, dtype=bool)
        for stage in self.stages:
            alive = np.flatnonzero(accepted)
            if alive.size == 0:
                break
            accepted[alive[~stage_accepts(stage, alive)]] = False
        return accepted

    def classify_windows(self, integral: np.ndarray, xs: Index, ys: Index, means, stds) -> np.ndarray:
        '''Boolean mask over the windows at (xs, ys) of one integral image.'''
        xs, ys = np.asarray(xs), np.asarray(ys)
        means, stds = np.broadcast_to(means, xs.shape), np.broadcast_to(stds, xs.shape)
        return self._surviving(xs.size, lambda stage, alive: stage.classify(
            integral, xs[alive], ys[alive], means[alive], stds[alive]))

    def accepts(self, integrals: np.ndarray) -> np.ndarray:
        '''Boolean mask over a stack of sample integral images.'''
        return self._surviving(len(integrals), lambda stage, alive: stage.classify(integrals[alive]))

    def false_positive_rate(self, negatives: np.ndarray) -> float:
        if len(negatives) == 0:
            return 0.
        return float(np.mean(self.accepts(negatives)))

    def scale(self, factor: float) -> 'Cascade':
        return Cascade(int(self.size * factor), [stage.scale(factor) for stage in self.stages])

    def scale_thresholds(self, value: float) -> 'Cascade':
        return Cascade(self.size, [stage.scale_threshold(value) for stage in self.stages])

    def __eq__(self, other):
        if not isinstance(other, Cascade):
            return NotImplemented
        return (self.size, self.stages) == (other.size, other.stages)

    def __repr__(self):
        return f'{self.__class__.__name__}(size={self.size}, stages={len(self)})'
