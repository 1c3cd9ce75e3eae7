'''
    Text model format.

        <size> <stage count>
        <weak count> <stage threshold>
        <weight> <feature type> <w> <h> <x> <y> <weak threshold> <polarity bit>
        ...

    Floats are written with repr() so that loading gives back the same values.
    Type 1 features are bottom half minus top half; models that store top
    minus bottom load with those stumps inverted.
    Saving is not atomic: a failed save leaves a partial file behind.
'''

import logging
from typing import Iterator, List, Tuple

from .cascade import Cascade
from .config import MAX_WINDOW_SIZE, MIN_WINDOW_SIZE
from .errors import ModelCorrupt, ModelNotFound, ModelOutOfRange
from .features import Feature, FeatureType
from .strong import StrongClassifier
from .weak import WeakClassifier

logger = logging.getLogger(__name__)


def dumps(cascade: Cascade) -> str:
    lines = [f'{cascade.size} {len(cascade)}']
    for stage in cascade:
        lines.append(f'{len(stage)} {stage.threshold!r}')
        for c, weight in stage:
            f = c.feature
            lines.append(f'{weight!r} {int(f.type)} {f.width} {f.height} {f.x} {f.y} '
                         f'{c.threshold!r} {int(c.polarity)}')
    return '\n'.join(lines) + '\n'

def save(cascade: Cascade, path: str) -> None:
    with open(path, 'w', encoding='utf-8') as f:
        f.write(dumps(cascade))
    logger.info('Saved %d-stage cascade (size %d) to %s', len(cascade), cascade.size, path)


class _Tokens:
    def __init__(self, text: str):
        self._tokens: Iterator[str] = iter(text.split())

    def _next(self, what: str) -> str:
        try:
            return next(self._tokens)
        except StopIteration:
            raise ModelCorrupt(f'Unexpected end of model while reading {what}') from None

    def read_int(self, what: str, minimum: int = 0) -> int:
        token = self._next(what)
        try:
            value = int(token)
        except ValueError:
            raise ModelCorrupt(f'Invalid {what}: {token!r}') from None
        if value < minimum:
            raise ModelCorrupt(f'Invalid {what}: {value}')
        return value

    def read_float(self, what: str) -> float:
        token = self._next(what)
        try:
            return float(token)
        except ValueError:
            raise ModelCorrupt(f'Invalid {what}: {token!r}') from None

    def exhausted(self) -> bool:
        return next(self._tokens, None) is None


def _read_weak(tokens: _Tokens, size: int) -> Tuple[float, WeakClassifier]:
    weight = tokens.read_float('weak classifier weight')
    feature_type = tokens.read_int('feature type')
    if feature_type not in set(FeatureType):
        raise ModelCorrupt(f'Unknown feature type {feature_type}')
    w = tokens.read_int('feature width')
    h = tokens.read_int('feature height')
    x = tokens.read_int('feature x')
    y = tokens.read_int('feature y')
    if w <= 0 or h <= 0 or x < 0 or y < 0 or x + w > size or y + h > size:
        raise ModelCorrupt(f'Feature {w}x{h} at ({x}, {y}) does not fit a {size} pixel window')
    threshold = tokens.read_float('weak classifier threshold')
    polarity = tokens.read_int('polarity bit')
    if polarity not in (0, 1):
        raise ModelCorrupt(f'Polarity bit must be 0 or 1, got {polarity}')
    return weight, WeakClassifier(Feature(feature_type, x, y, w, h), threshold, bool(polarity))

def loads(text: str, min_size: int = MIN_WINDOW_SIZE, max_size: int = MAX_WINDOW_SIZE) -> Cascade:
    tokens = _Tokens(text)
    size = tokens.read_int('window size')
    stage_count = tokens.read_int('stage count')
    stages: List[StrongClassifier] = []
    for _ in range(stage_count):
        weak_count = tokens.read_int('weak classifier count')
        threshold = tokens.read_float('stage threshold')
        stage = StrongClassifier(threshold=threshold)
        for _ in range(weak_count):
            weight, classifier = _read_weak(tokens, size)
            stage.append(classifier, weight)
        stages.append(stage)
    if not tokens.exhausted():
        raise ModelCorrupt('Trailing data after the last stage')

    if not stages:
        raise ModelOutOfRange('Model has no stages')
    if not min_size <= size <= max_size:
        raise ModelOutOfRange(f'Window size {size} outside [{min_size}, {max_size}]')
    return Cascade(size, stages)

def load(path: str, min_size: int = MIN_WINDOW_SIZE, max_size: int = MAX_WINDOW_SIZE) -> Cascade:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ModelNotFound(f'Cannot read model file {path}: {e}') from e
    cascade = loads(text, min_size, max_size)
    logger.info('Loaded %d-stage cascade (size %d) from %s', len(cascade), cascade.size, path)
    return cascade
