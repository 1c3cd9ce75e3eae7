'''
    Held-out evaluation of a cascade.
'''

import logging
from typing import Iterable, NamedTuple, Tuple

import numpy as np
from sklearn.metrics import confusion_matrix

from .cascade import Cascade
from .images import to_integral
from .samples import normalize_sample

logger = logging.getLogger(__name__)


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.


# Define total positive, total negative, false positive, and false negative parameters
class PredictionStats(NamedTuple):
    tn: int
    fp: int
    fn: int
    tp: int

    @property
    def precision(self) -> float:
        return _ratio(self.tp, self.tp + self.fp)

    @property
    def recall(self) -> float:
        return _ratio(self.tp, self.tp + self.fn)

    @property
    def false_positive_rate(self) -> float:
        return _ratio(self.fp, self.fp + self.tn)

    @property
    def false_negative_rate(self) -> float:
        return _ratio(self.fn, self.tp + self.fn)

    def __str__(self):
        return (f'Precision {self.precision:.2f}, recall {self.recall:.2f}, '
                f'false positive rate {self.false_positive_rate:.2f}, '
                f'false negative rate {self.false_negative_rate:.2f}')


def prediction_stats(y_true: np.ndarray, y_pred: np.ndarray) -> Tuple[np.ndarray, PredictionStats]:
    c = confusion_matrix(np.asarray(y_true, dtype=int), np.asarray(y_pred, dtype=int), labels=[0, 1])
    tn, fp, fn, tp = (int(v) for v in c.ravel())
    return c, PredictionStats(tn=tn, fp=fp, fn=fn, tp=tp)


def evaluate_cascade(cascade: Cascade, positive_samples: Iterable[np.ndarray],
                     negative_samples: Iterable[np.ndarray],
                     normalize: bool = True) -> Tuple[np.ndarray, PredictionStats]:
    '''Confusion matrix and statistics of the cascade on labelled samples.'''
    xs, ys = [], []
    for label, samples in ((1, positive_samples), (0, negative_samples)):
        for sample in samples:
            sample = np.asarray(sample, dtype=np.float64)
            if sample.shape != (cascade.size, cascade.size):
                raise ValueError(f'Expected a {cascade.size}x{cascade.size} sample, got shape {sample.shape}')
            xs.append(normalize_sample(sample) if normalize else sample)
            ys.append(label)
    if not xs:
        raise ValueError('No samples to evaluate')

    ys = np.array(ys)
    predictions = cascade.accepts(to_integral(np.stack(xs))).astype(int)
    c, s = prediction_stats(ys, predictions)
    logger.info(f'{len(ys)} samples: {s}')
    return c, s


def plot_confusion_matrix(c: np.ndarray, path: str, title: str = 'Cascade') -> None:
    '''Save the normalized confusion matrix as a heatmap.'''
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt
    import seaborn as sns

    fig = plt.figure()
    sns.heatmap(c / max(c.sum(), 1), cmap='YlGnBu', annot=True, square=True, fmt='.1%',
                xticklabels=['Predicted negative', 'Predicted positive'],
                yticklabels=['Negative', 'Positive'])
    plt.title(title)
    fig.savefig(path, bbox_inches='tight')
    plt.close(fig)
    logger.info('Saved confusion matrix to %s', path)
