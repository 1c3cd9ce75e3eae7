'''
    Training sample text format and per-sample transforms.

    A sample file holds one sample per line: size * size whitespace
    separated shades in row-major order. Malformed lines are skipped.
'''

import logging
from typing import Iterable, Iterator, Optional

import numpy as np

logger = logging.getLogger(__name__)


def parse_sample(line: str, size: int) -> Optional[np.ndarray]:
    tokens = line.split()
    if len(tokens) != size * size:
        return None
    try:
        values = np.array([float(token) for token in tokens], dtype=np.float64)
    except ValueError:
        return None
    return values.reshape(size, size)

def read_samples(path: str, size: int) -> Iterator[np.ndarray]:
    '''Lazily yield the valid size x size samples of a sample file.'''
    skipped = 0
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            if not line.strip():
                continue
            sample = parse_sample(line, size)
            if sample is None:
                skipped += 1
                continue
            yield sample
    if skipped:
        logger.warning('Skipped %d malformed samples in %s', skipped, path)

def format_sample(sample: np.ndarray) -> str:
    return ' '.join(repr(float(v)) for v in np.asarray(sample).ravel())

def write_samples(path: str, samples: Iterable[np.ndarray]) -> int:
    count = 0
    with open(path, 'w', encoding='utf-8') as f:
        for sample in samples:
            f.write(format_sample(sample) + '\n')
            count += 1
    return count


# Normalize the data
def normalize_sample(sample: np.ndarray) -> np.ndarray:
    '''Zero mean, unit standard deviation; a flat sample only loses its mean.'''
    sample = np.asarray(sample, dtype=np.float64)
    mean = sample.mean()
    std = sample.std()
    if std == 0:
        std = 1.
    return (sample - mean) / std

def mirror_sample(sample: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(sample[:, ::-1])

def rotate_sample(sample: np.ndarray) -> np.ndarray:
    # 90 degrees clockwise
    return np.ascontiguousarray(np.rot90(sample, k=-1))
