from dataclasses import dataclass
from typing import Optional

# Window sizes accepted for models and training samples
MIN_WINDOW_SIZE = 21
MAX_WINDOW_SIZE = 500


@dataclass
class TrainingConfig:
    window_size: int = MIN_WINDOW_SIZE
    stage_count: int = 10
    # Overall cascade FPR and the per-stage FNR budget
    target_fpr: float = 1e-6
    max_fnr: float = 0.01
    # 0 means as many negatives as positives
    negatives_per_stage: int = 0
    rotate_negatives: bool = False
    mirror_positives: bool = False
    normalize: bool = True
    # Upper bound on weak classifiers per stage
    max_rounds: int = 200
    feature_keep_probability: float = 1.0
    seed: Optional[int] = None
    n_jobs: int = -1
    chunk_size: int = 512

    def validate(self) -> None:
        if self.window_size < 4:
            raise ValueError(f'Window size must be >= 4, got {self.window_size}')
        if self.stage_count <= 0:
            raise ValueError('Cascade stage count must be greater than zero')
        if self.negatives_per_stage < 0:
            raise ValueError('Negative samples per stage must be greater than or equal to zero')
        if not 0. < self.target_fpr <= 1.:
            raise ValueError(f'Target FPR must be in (0, 1], got {self.target_fpr}')
        if not 0. <= self.max_fnr < 1.:
            raise ValueError(f'Maximum FNR must be in [0, 1), got {self.max_fnr}')
        if self.max_rounds <= 0:
            raise ValueError('Maximum rounds per stage must be greater than zero')
        if not 0. < self.feature_keep_probability <= 1.:
            raise ValueError('Feature keep probability must be in (0, 1]')
        if self.chunk_size <= 0:
            raise ValueError('Chunk size must be greater than zero')


@dataclass
class DetectionConfig:
    scale_step: float = 1.25
    # Slide step as a fraction of the current window size
    slide_step: float = 0.1
    # Multiplies every stage threshold, < 1 detects more
    threshold_scale: float = 1.0
    min_window_size: int = MIN_WINDOW_SIZE
    max_window_size: int = MAX_WINDOW_SIZE

    def validate(self) -> None:
        if self.scale_step <= 1.:
            raise ValueError(f'Scale step must be greater than 1, got {self.scale_step}')
        if self.slide_step <= 0.:
            raise ValueError(f'Slide step must be positive, got {self.slide_step}')
        if self.min_window_size > self.max_window_size:
            raise ValueError('Minimum window size exceeds maximum window size')
