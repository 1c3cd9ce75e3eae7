'''
    Viola-Jones style boosted Haar cascade: training, detection and a text model format.
'''

from .cascade import Cascade
from .config import DetectionConfig, TrainingConfig
from .detection import Detection, detect, detect_file, draw_detections
from .errors import (CascadeError, FeatureTypeInvalid, ModelCorrupt, ModelError, ModelNotFound,
                     ModelOutOfRange, NoTrainingData, TrainingAborted, TrainingError)
from .evaluate import PredictionStats, evaluate_cascade, prediction_stats
from .features import Feature, FeatureType, create_haar_features
from .model import dumps, load, loads, save
from .samples import read_samples, write_samples
from .strong import StrongClassifier
from .training import train_cascade
from .weak import WeakClassifier

__version__ = '0.1.0'
