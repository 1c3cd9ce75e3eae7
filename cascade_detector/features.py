'''
    Haar-like rectangle features.

    Four feature types are supported. Two-rectangle features return the sum
    of their second half minus the sum of their first half; three-rectangle
    features return the middle third minus both outer thirds. Halves and
    thirds are truncated, so a feature whose size is not divisible leaves
    its last pixels out. That truncated geometry is what a model is trained
    with and must not be "fixed".
'''

from enum import IntEnum
from typing import Iterable, List, NamedTuple, Sequence, Tuple

import numpy as np

from .errors import FeatureTypeInvalid
from .images import Index, rectangle_sum

# (coefficient, x, y, width, height) relative to the window
Rectangle = Tuple[int, int, int, int, int]


class FeatureType(IntEnum):
    TWO_HORIZONTAL = 0
    TWO_VERTICAL = 1
    THREE_HORIZONTAL = 2
    THREE_VERTICAL = 3


class Feature(NamedTuple):
    type: int
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def rectangle_count(self) -> int:
        return 2 if self.type in (FeatureType.TWO_HORIZONTAL, FeatureType.TWO_VERTICAL) else 3

    def rectangles(self) -> List[Rectangle]:
        x, y, w, h = self.x, self.y, self.width, self.height
        if self.type == FeatureType.TWO_HORIZONTAL:
            hw = w // 2
            return [(1, x + hw, y, hw, h), (-1, x, y, hw, h)]
        if self.type == FeatureType.TWO_VERTICAL:
            hh = h // 2
            return [(1, x, y + hh, w, hh), (-1, x, y, w, hh)]
        if self.type == FeatureType.THREE_HORIZONTAL:
            tw = w // 3
            return [(1, x + tw, y, tw, h), (-1, x, y, tw, h), (-1, x + w * 2 // 3, y, tw, h)]
        if self.type == FeatureType.THREE_VERTICAL:
            th = h // 3
            return [(1, x, y + th, w, th), (-1, x, y, w, th), (-1, x, y + h * 2 // 3, w, th)]
        raise FeatureTypeInvalid(self.type)

    def value(self, integral: np.ndarray, x: Index = 0, y: Index = 0) -> np.ndarray:
        '''
            Feature value for the window whose top-left corner is (x, y).
            `integral` is a padded integral image or a stack of them; x and y
            may be arrays of window offsets.
        '''
        result = 0.
        for coeff, rx, ry, rw, rh in self.rectangles():
            result = result + coeff * rectangle_sum(integral, x + rx, y + ry, rw, rh)
        return result

    def scale(self, factor: float) -> 'Feature':
        return Feature(self.type, int(self.x * factor), int(self.y * factor),
                       int(self.width * factor), int(self.height * factor))

    def __str__(self):
        return f'{int(self.type)} {self.width} {self.height} {self.x} {self.y}'


# Feature sizes: (min width, width step, min height, height step)
FEATURE_STEPS = {
    FeatureType.TWO_HORIZONTAL:   (4, 2, 4, 1),
    FeatureType.TWO_VERTICAL:     (4, 1, 4, 2),
    FeatureType.THREE_HORIZONTAL: (3, 3, 4, 1),
    FeatureType.THREE_VERTICAL:   (4, 1, 3, 3),
}

def create_haar_features(width: int, height: int) -> List[Feature]:
    '''All candidate features that fit a width x height window.'''
    features = []
    for feature_type in FeatureType:
        min_w, step_w, min_h, step_h = FEATURE_STEPS[feature_type]
        for h in range(min_h, height + 1, step_h):
            for w in range(min_w, width + 1, step_w):
                features.extend(Feature(int(feature_type), x, y, w, h)
                                for y in range(0, height - h + 1)
                                for x in range(0, width - w + 1))
    return features


def rectangle_table(features: Sequence[Feature]) -> np.ndarray:
    '''(F, 3, 5) array of rectangles; two-rectangle features get a zero third row.'''
    table = np.zeros((len(features), 3, 5), dtype=np.int64)
    for i, f in enumerate(features):
        for j, rectangle in enumerate(f.rectangles()):
            table[i, j] = rectangle
    return table

def feature_values(features: Iterable[Feature], integrals: np.ndarray) -> np.ndarray:
    '''
        Values of every feature on every sample of a stack of integral images,
        as an (F, N) matrix. Equivalent to Feature.value row by row.
    '''
    table = rectangle_table(list(features))
    values = np.zeros((table.shape[0], integrals.shape[0]), dtype=np.float64)
    for j in range(3):
        coeff, rx, ry, rw, rh = (table[:, j, k] for k in range(5))
        used = coeff != 0
        if not used.any():
            continue
        sums = rectangle_sum(integrals, rx[used], ry[used], rw[used], rh[used])
        values[used] += coeff[used, None] * sums.T
    return values
