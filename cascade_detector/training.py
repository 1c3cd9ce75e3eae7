'''
    Cascade training.

    Every stage is a strong classifier built by discrete AdaBoost until its
    false positive rate on the current negative pool reaches the stage
    target, while its threshold keeps the false negative rate under the
    configured budget. Between stages the negative pool is refilled with
    hard negatives (samples the cascade so far still accepts) and both
    pools are pruned to what the cascade accepts.
'''

import logging
import math
from datetime import datetime
from typing import Iterable, Iterator, List, NamedTuple, Optional, Sequence

import numpy as np
from joblib import Parallel, delayed

from .cascade import Cascade
from .config import TrainingConfig
from .errors import NoTrainingData, TrainingAborted
from .features import Feature, create_haar_features, feature_values
from .images import to_integral
from .samples import mirror_sample, normalize_sample, rotate_sample
from .strong import StrongClassifier
from .weak import POSITIVE, WeakClassifier, fit_stumps

logger = logging.getLogger(__name__)

# Floor for the weighted error of a perfect stump, keeps its vote weight finite
MIN_ERROR = 1e-10
# Errors within this distance of the trivial error count as no improvement
ERROR_TOLERANCE = 1e-12


class ClassifierResult(NamedTuple):
    threshold: float
    polarity: bool
    classification_error: float
    feature: Optional[Feature]


def stage_fpr_targets(stage_count: int, target_fpr: float) -> List[float]:
    '''
        Per-stage FPR targets whose product is target_fpr. The first two
        stages get fixed, loose targets so they stay small and fast.
    '''
    if stage_count <= 0:
        raise ValueError('Cascade stage count must be greater than zero')
    if stage_count == 1:
        return [target_fpr]
    if stage_count == 2:
        return [.5, target_fpr / .5]
    fpr = (target_fpr / (.5 * .25))**(1. / (stage_count - 2))
    return [.5, .25] + [fpr] * (stage_count - 2)


# Normalize the weights
def normalize_weights(w: np.ndarray) -> np.ndarray:
    return w / w.sum()


def _best_in_chunk(features: Sequence[Feature], integrals: np.ndarray, labels: np.ndarray,
                   ws: np.ndarray) -> ClassifierResult:
    fit = fit_stumps(feature_values(features, integrals), labels, ws)
    i = int(np.argmin(fit.errors))
    return ClassifierResult(threshold=float(fit.thresholds[i]), polarity=bool(fit.polarities[i]),
                            classification_error=float(fit.errors[i]), feature=features[i])

def select_weak_classifier(features: Sequence[Feature], integrals: np.ndarray, labels: np.ndarray,
                           ws: np.ndarray, parallel: Parallel, chunk_size: int = 512) -> ClassifierResult:
    '''Stump with the least weighted error over all features; the earliest feature wins ties.'''
    chunks = [features[i:i + chunk_size] for i in range(0, len(features), chunk_size)]
    results = parallel(delayed(_best_in_chunk)(chunk, integrals, labels, ws) for chunk in chunks)

    best = ClassifierResult(threshold=0., polarity=False, classification_error=float('inf'), feature=None)
    for result in results:
        if result.classification_error < best.classification_error:
            best = result
    return best


def _candidate_features(features: Sequence[Feature], keep_probability: float,
                        rng: Optional[np.random.Generator]) -> Sequence[Feature]:
    if keep_probability >= 1. or rng is None:
        return features
    keep = rng.random(len(features)) < keep_probability
    if not keep.any():
        return features
    return [f for f, k in zip(features, keep) if k]


def boost_stage(features: Sequence[Feature], positives: np.ndarray, negatives: np.ndarray,
                target_fpr: float, max_fnr: float, max_rounds: int = 200,
                keep_probability: float = 1., rng: Optional[np.random.Generator] = None,
                parallel: Optional[Parallel] = None, chunk_size: int = 512) -> StrongClassifier:
    '''
        Build one cascade stage with AdaBoost.

        `positives` and `negatives` are stacks of normalized sample integral
        images. Rounds stop once the stage FPR is at most target_fpr (or 0).
        Running out of rounds keeps the weaker stage and logs a warning.
    '''
    if len(features) == 0:
        raise TrainingAborted('Empty feature set')
    if len(positives) == 0:
        raise TrainingAborted('Empty positive samples pool')
    if len(negatives) == 0:
        raise TrainingAborted('Empty negative samples pool')
    if parallel is None:
        parallel = Parallel(n_jobs=-1, backend='threading')

    p, n = len(positives), len(negatives)
    integrals = np.concatenate([positives, negatives])
    labels = np.hstack([np.ones((p,), dtype=bool), np.zeros((n,), dtype=bool)])

    # Initialize the weights
    ws = np.hstack([np.full((p,), 1. / (2. * p)), np.full((n,), 1. / (2. * n))])

    stage = StrongClassifier()
    stage_fpr = stage.false_positive_rate(negatives)
    start_time = datetime.now()
    t = 0
    while stage_fpr > target_fpr:
        if stage_fpr == 0:
            break
        if t == max_rounds:
            logger.warning(f'Stage stopped after {max_rounds} rounds at FPR {stage_fpr:.5f} '
                           f'(target {target_fpr:.5f})')
            break
        t += 1

        ws = normalize_weights(ws)
        trivial_error = min(ws[labels].sum(), ws[~labels].sum())

        candidates = _candidate_features(features, keep_probability, rng)
        best = select_weak_classifier(candidates, integrals, labels, ws, parallel, chunk_size)
        if best.feature is None or best.classification_error >= trivial_error - ERROR_TOLERANCE:
            raise TrainingAborted(f'No weak classifier improves on error {trivial_error:.5f} '
                                  f'in round {t}')

        classifier = WeakClassifier(best.feature, best.threshold, best.polarity)
        error = max(best.classification_error, MIN_ERROR)
        beta = error / (1. - error)

        # Shrink the weights of correctly classified samples
        correct = (classifier.predict(integrals) == POSITIVE) == labels
        ws = ws * np.where(correct, beta, 1.)

        stage.append(classifier, math.log(1. / beta))
        stage.calibrate_threshold(positives, max_fnr)
        stage_fpr = stage.false_positive_rate(negatives)

        duration = datetime.now() - start_time
        logger.info(f't={t} {duration.total_seconds():.2f}s error {best.classification_error:.5f} '
                    f'using {best.feature}, stage FPR {stage_fpr:.5f} (target {target_fpr:.5f})')
    return stage


def bootstrap_negatives(cascade: Cascade, source: Iterator[np.ndarray], pool: List[np.ndarray],
                        quota: int, rotate: bool = False) -> int:
    '''
        Top up `pool` with integral images of samples drawn from `source`
        that the cascade still accepts, until the pool holds `quota`
        samples or the source runs dry. With `rotate`, all four 90 degree
        rotations of each sample are tried. Returns the number added.
    '''
    added = 0
    if len(pool) >= quota:
        return added
    for sample in source:
        orientations = [sample]
        if rotate:
            for _ in range(3):
                orientations.append(rotate_sample(orientations[-1]))
        for oriented in orientations:
            integral = to_integral(oriented)
            if cascade.classify(integral):
                pool.append(integral)
                added += 1
                if len(pool) >= quota:
                    return added
    return added


def prune(cascade: Cascade, integrals: np.ndarray) -> np.ndarray:
    '''Keep the samples every stage of the cascade accepts.'''
    if len(integrals) == 0:
        return integrals
    return integrals[cascade.accepts(integrals)]


def _prepared(samples: Iterable[np.ndarray], size: int, normalize: bool) -> Iterator[np.ndarray]:
    for sample in samples:
        sample = np.asarray(sample, dtype=np.float64)
        if sample.shape != (size, size):
            raise ValueError(f'Expected a {size}x{size} sample, got shape {sample.shape}')
        yield normalize_sample(sample) if normalize else sample


def train_cascade(positive_samples: Iterable[np.ndarray], negative_samples: Iterable[np.ndarray],
                  config: Optional[TrainingConfig] = None) -> Cascade:
    '''
        Train a cascade on size x size samples.

        Negative samples are consumed lazily, as many as each stage needs.
        Training stops after config.stage_count stages, or earlier when no
        negative sample is left; the cascade built so far is returned.
        A TrainingAborted raised by a later stage carries the stages trained
        before it in its `cascade` attribute.
    '''
    config = config or TrainingConfig()
    config.validate()
    size = config.window_size

    positives = list(_prepared(positive_samples, size, config.normalize))
    if not positives:
        raise NoTrainingData('Empty positive samples set')
    if config.mirror_positives:
        positives.extend([mirror_sample(s) for s in positives])
    quota = config.negatives_per_stage or len(positives)
    positive_integrals = to_integral(np.stack(positives))
    negative_source = _prepared(negative_samples, size, config.normalize)

    features = create_haar_features(size, size)
    targets = stage_fpr_targets(config.stage_count, config.target_fpr)
    rng = np.random.default_rng(config.seed)
    logger.info(f'Training {config.stage_count} stages on {len(positives)} positives '
                f'with {len(features)} features (window {size})')

    cascade = Cascade(size)
    negative_pool: List[np.ndarray] = []
    total_start_time = datetime.now()
    with Parallel(n_jobs=config.n_jobs, backend='threading') as parallel:
        for k, target_fpr in enumerate(targets):
            added = bootstrap_negatives(cascade, negative_source, negative_pool, quota,
                                        config.rotate_negatives)
            logger.info(f'Stage {k + 1}/{len(targets)}: {added} hard negatives added, '
                        f'pool {len(negative_pool)}/{quota}')
            if not negative_pool:
                logger.info('No negative samples left, stopping early')
                break

            negatives = np.stack(negative_pool)
            try:
                stage = boost_stage(features, positive_integrals, negatives, target_fpr, config.max_fnr,
                                    max_rounds=config.max_rounds,
                                    keep_probability=config.feature_keep_probability, rng=rng,
                                    parallel=parallel, chunk_size=config.chunk_size)
            except TrainingAborted as e:
                if len(cascade):
                    e.cascade = cascade
                raise
            cascade.append(stage)

            # Later stages only see what the whole cascade still accepts
            negative_pool = list(prune(cascade, negatives))
            positive_integrals = prune(cascade, positive_integrals)

            total_duration = datetime.now() - total_start_time
            logger.info(f'Stage {k + 1}/{len(targets)} done in {total_duration.total_seconds():.2f}s: '
                        f'{len(stage)} weak classifiers, {len(positive_integrals)} positives and '
                        f'{len(negative_pool)} negatives remain')
    return cascade
