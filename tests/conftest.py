"""Shared fixtures: synthetic bright-square positives and noise negatives."""

from __future__ import annotations

from typing import Callable

import numpy as np
import pytest

from cascade_detector import Cascade, TrainingConfig, train_cascade

TRAIN_SIZE = 20


def bright_square(rng: np.random.Generator, size: int = TRAIN_SIZE) -> np.ndarray:
    """Dark noisy background with a bright square in the middle."""
    sample = rng.uniform(0.0, 0.2, (size, size))
    lo, hi = size // 4, size - size // 4
    sample[lo:hi, lo:hi] = rng.uniform(0.8, 1.0, (hi - lo, hi - lo))
    return sample


def uniform_noise(rng: np.random.Generator, size: int = TRAIN_SIZE) -> np.ndarray:
    """Uniform noise over the whole shade range."""
    return rng.uniform(0.0, 1.0, (size, size))


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded generator so every test sees the same data."""
    return np.random.default_rng(1234)


@pytest.fixture
def positives() -> Callable[..., list]:
    """Factory of bright-square samples."""
    def make(count: int, size: int = TRAIN_SIZE, seed: int = 0) -> list:
        rng = np.random.default_rng(seed)
        return [bright_square(rng, size) for _ in range(count)]
    return make


@pytest.fixture
def negatives() -> Callable[..., list]:
    """Factory of uniform noise samples."""
    def make(count: int, size: int = TRAIN_SIZE, seed: int = 1) -> list:
        rng = np.random.default_rng(seed)
        return [uniform_noise(rng, size) for _ in range(count)]
    return make


@pytest.fixture(scope="session")
def trained() -> tuple[Cascade, list, list]:
    """One-stage cascade trained on 20x20 squares vs noise, with held-out data."""
    rng = np.random.default_rng(42)
    train_pos = [bright_square(rng) for _ in range(100)]
    train_neg = [uniform_noise(rng) for _ in range(100)]
    test_pos = [bright_square(rng) for _ in range(100)]
    test_neg = [uniform_noise(rng) for _ in range(100)]
    config = TrainingConfig(window_size=TRAIN_SIZE, stage_count=1, target_fpr=0.1,
                            max_fnr=0.1, seed=0, n_jobs=1, chunk_size=256)
    cascade = train_cascade(train_pos, train_neg, config)
    return cascade, test_pos, test_neg
