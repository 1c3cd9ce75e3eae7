"""Tests for stage boosting and cascade training."""

from __future__ import annotations

import logging
from unittest.mock import patch

import numpy as np
import pytest
from joblib import Parallel

from cascade_detector.cascade import Cascade
from cascade_detector.config import TrainingConfig
from cascade_detector.errors import NoTrainingData, TrainingAborted
from cascade_detector.features import Feature, create_haar_features
from cascade_detector.images import to_integral
from cascade_detector.samples import normalize_sample
from cascade_detector.strong import StrongClassifier
from cascade_detector.training import (
    boost_stage,
    bootstrap_negatives,
    normalize_weights,
    prune,
    select_weak_classifier,
    stage_fpr_targets,
    train_cascade,
)
from cascade_detector.weak import WeakClassifier


def left_bright(size: int = 4) -> np.ndarray:
    sample = np.zeros((size, size))
    sample[:, :size // 2] = 1.
    return sample

def right_bright(size: int = 4) -> np.ndarray:
    return left_bright(size)[:, ::-1].copy()

def right_brighter_cascade(size: int = 4) -> Cascade:
    """Accepts samples whose right half is brighter than the left half."""
    weak = WeakClassifier(Feature(0, 0, 0, size, size), threshold=.5, polarity=False)
    return Cascade(size, [StrongClassifier([weak], [1.], threshold=0.)])


class TestStageFprTargets:
    """Tests for the per-stage false positive rate schedule."""

    def test_single_stage(self) -> None:
        """Test one stage gets the whole target."""
        assert stage_fpr_targets(1, 0.1) == [0.1]

    def test_two_stages(self) -> None:
        """Test two stages split the target after a 0.5 first stage."""
        assert stage_fpr_targets(2, 0.1) == pytest.approx([0.5, 0.2])

    def test_many_stages(self) -> None:
        """Test the fixed first two stages and the product of all targets."""
        targets = stage_fpr_targets(5, 1e-4)
        assert targets[:2] == [0.5, 0.25]
        assert len(set(targets[2:])) == 1
        assert np.prod(targets) == pytest.approx(1e-4)

    def test_no_stages(self) -> None:
        """Test zero stages is refused."""
        with pytest.raises(ValueError):
            stage_fpr_targets(0, 0.1)


class TestSelectWeakClassifier:
    """Tests for the parallel feature search."""

    def test_chunking_does_not_change_the_winner(self, positives, negatives) -> None:
        """Test the same stump wins whatever the chunk size."""
        samples = [normalize_sample(s) for s in positives(10, size=8) + negatives(10, size=8)]
        integrals = to_integral(np.stack(samples))
        labels = np.array([True] * 10 + [False] * 10)
        ws = normalize_weights(np.ones(20))
        features = create_haar_features(8, 8)
        with Parallel(n_jobs=2, backend="threading") as parallel:
            whole = select_weak_classifier(features, integrals, labels, ws, parallel, len(features))
            chunked = select_weak_classifier(features, integrals, labels, ws, parallel, 7)
        assert whole == chunked
        assert whole.classification_error < 0.5


class TestBoostStage:
    """Tests for building one stage."""

    def test_separable_stage(self) -> None:
        """Test one perfect stump is enough and every positive survives."""
        positives = to_integral(np.stack([right_bright()] * 5))
        negatives = to_integral(np.stack([left_bright()] * 5))
        stage = boost_stage(create_haar_features(4, 4), positives, negatives, target_fpr=0.1, max_fnr=0.1)
        assert len(stage) == 1
        assert stage.false_positive_rate(negatives) == 0.
        assert stage.classify(positives).all()

    def test_no_improving_stump(self) -> None:
        """Test identical pools abort instead of looping."""
        pool = to_integral(np.zeros((4, 4, 4)))
        with pytest.raises(TrainingAborted):
            boost_stage(create_haar_features(4, 4), pool, pool, target_fpr=0.1, max_fnr=0.1)

    @pytest.mark.parametrize("which", ["features", "positives", "negatives"])
    def test_empty_inputs(self, which: str) -> None:
        """Test an empty feature set or pool aborts."""
        args = {
            "features": create_haar_features(4, 4),
            "positives": to_integral(np.stack([right_bright()])),
            "negatives": to_integral(np.stack([left_bright()])),
        }
        args[which] = args[which][:0]
        with pytest.raises(TrainingAborted):
            boost_stage(args["features"], args["positives"], args["negatives"], 0.1, 0.1)

    def test_round_budget(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test running out of rounds keeps the stage and warns."""
        rng = np.random.default_rng(7)
        pos = to_integral(np.stack([normalize_sample(rng.random((6, 6))) for _ in range(30)]))
        neg = to_integral(np.stack([normalize_sample(rng.random((6, 6))) for _ in range(30)]))
        with caplog.at_level(logging.WARNING):
            stage = boost_stage(create_haar_features(6, 6), pos, neg, target_fpr=0., max_fnr=0.,
                                max_rounds=1)
        assert len(stage) == 1
        assert "Stage stopped after 1 rounds" in caplog.text


class TestBootstrap:
    """Tests for hard negative mining."""

    def test_only_accepted_samples_are_added(self) -> None:
        """Test rejected samples never reach the pool."""
        pool = []
        source = iter([left_bright(), right_bright(), left_bright(), right_bright()])
        added = bootstrap_negatives(right_brighter_cascade(), source, pool, quota=10)
        assert added == 2
        for integral in pool:
            np.testing.assert_array_equal(integral, to_integral(right_bright()))

    def test_rotations(self) -> None:
        """Test a rotation the cascade accepts is added."""
        pool = []
        added = bootstrap_negatives(right_brighter_cascade(), iter([left_bright()] * 3), pool,
                                    quota=10, rotate=True)
        assert added == 3
        np.testing.assert_array_equal(pool[0], to_integral(right_bright()))

    def test_quota_stops_consumption(self) -> None:
        """Test the source is read only as far as needed."""
        source = iter([right_bright()] * 5)
        pool = []
        assert bootstrap_negatives(right_brighter_cascade(), source, pool, quota=2) == 2
        assert len(list(source)) == 3

    def test_full_pool(self) -> None:
        """Test nothing is drawn when the pool is already full."""
        source = iter([right_bright()])
        pool = [to_integral(right_bright())]
        assert bootstrap_negatives(right_brighter_cascade(), source, pool, quota=1) == 0
        assert len(list(source)) == 1

    def test_empty_cascade_accepts_everything(self) -> None:
        """Test the first stage gets plain negatives."""
        pool = []
        assert bootstrap_negatives(Cascade(4), iter([left_bright()] * 3), pool, quota=10) == 3


class TestPrune:
    """Tests for pool pruning."""

    def test_keeps_accepted(self) -> None:
        """Test only samples the cascade accepts remain."""
        integrals = to_integral(np.stack([left_bright(), right_bright(), right_bright()]))
        assert len(prune(right_brighter_cascade(), integrals)) == 2
        assert len(prune(right_brighter_cascade(), integrals[:0])) == 0


class TestTrainCascade:
    """Tests for cascade training end to end."""

    def test_held_out_accuracy(self, trained) -> None:
        """Test the stage keeps 90% of new positives and rejects 90% of new negatives."""
        cascade, test_pos, test_neg = trained
        assert len(cascade) == 1
        pos = to_integral(np.stack([normalize_sample(s) for s in test_pos]))
        neg = to_integral(np.stack([normalize_sample(s) for s in test_neg]))
        assert cascade.accepts(pos).mean() >= 0.9
        assert (~cascade.accepts(neg)).mean() >= 0.9

    def test_stops_without_negatives(self) -> None:
        """Test training ends early once no hard negative is left."""
        config = TrainingConfig(window_size=8, stage_count=3, target_fpr=0.01, max_fnr=0.1, n_jobs=1)
        cascade = train_cascade([right_bright(8)] * 10, [left_bright(8)] * 30, config)
        assert len(cascade) == 1
        assert cascade.size == 8

    def test_mirrored_positives(self, positives, negatives) -> None:
        """Test training with mirrored positives and rotated negatives."""
        config = TrainingConfig(window_size=8, stage_count=1, target_fpr=0.1, max_fnr=0.1,
                                mirror_positives=True, rotate_negatives=True, n_jobs=1)
        cascade = train_cascade(positives(10, size=8), negatives(40, size=8), config)
        assert len(cascade) == 1

    def test_no_positives(self, negatives) -> None:
        """Test an empty positive set."""
        with pytest.raises(NoTrainingData):
            train_cascade([], negatives(5, size=8), TrainingConfig(window_size=8))

    def test_wrong_sample_size(self, positives, negatives) -> None:
        """Test samples must match the window size."""
        with pytest.raises(ValueError):
            train_cascade(positives(3, size=6), negatives(3, size=8), TrainingConfig(window_size=8))

    def test_partial_cascade_on_abort(self, positives, negatives) -> None:
        """Test a later stage failure carries the stages trained before it."""
        config = TrainingConfig(window_size=8, stage_count=3, n_jobs=1)
        first = StrongClassifier(threshold=0.)
        with patch("cascade_detector.training.boost_stage",
                   side_effect=[first, TrainingAborted("stuck")]) as mock_boost:
            with pytest.raises(TrainingAborted) as excinfo:
                train_cascade(positives(5, size=8), negatives(20, size=8), config)
        assert mock_boost.call_count == 2
        assert excinfo.value.cascade is not None
        assert list(excinfo.value.cascade) == [first]
