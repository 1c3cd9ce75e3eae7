'''
    Raster helpers: grayscale conversion, integral images and window statistics.
'''

from typing import Tuple, Union

import numpy as np
from PIL import Image

Index = Union[int, np.ndarray]


def to_float_array(img: Image.Image) -> np.ndarray:
    return np.array(img).astype(np.float32) / 255.

def open_grayscale(path: str) -> np.ndarray:
    '''Load an image file as a 2D float array of shades in [0, 1].'''
    with Image.open(path) as img:
        return to_float_array(img.convert('L'))


# Integral Image
def to_integral(img: np.ndarray, squared: bool = False) -> np.ndarray:
    '''
        Summed-area table padded with a leading zero row and column, so that
        integral[y, x] is the sum of img[:y, :x]. Leading axes (a stack of
        samples) are kept as they are.
    '''
    values = np.asarray(img, dtype=np.float64)
    if squared:
        values = values**2
    integral = np.cumsum(np.cumsum(values, axis=-2), axis=-1)
    padding = [(0, 0)] * (integral.ndim - 2) + [(1, 0), (1, 0)]
    return np.pad(integral, padding, 'constant', constant_values=0)

def rectangle_sum(integral: np.ndarray, x: Index, y: Index, width: Index, height: Index) -> np.ndarray:
    # Any of the coordinates may be arrays; they broadcast against each other
    return (integral[..., y + height, x + width] - integral[..., y + height, x]
            - integral[..., y, x + width] + integral[..., y, x])

def window_statistics(integral: np.ndarray, squared_integral: np.ndarray,
                      xs: Index, ys: Index, size: int) -> Tuple[np.ndarray, np.ndarray]:
    '''Mean and standard deviation of the size x size windows at (xs, ys).'''
    area = float(size * size)
    means = rectangle_sum(integral, xs, ys, size, size) / area
    variances = rectangle_sum(squared_integral, xs, ys, size, size) / area - means**2
    return means, np.sqrt(np.maximum(variances, 0.))
