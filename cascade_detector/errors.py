'''
    Exceptions raised by the cascade detector.
'''


class CascadeError(Exception):
    pass


# Model file errors
class ModelError(CascadeError):
    pass

class ModelNotFound(ModelError):
    pass

class ModelCorrupt(ModelError):
    pass

class ModelOutOfRange(ModelError):
    pass


class FeatureTypeInvalid(CascadeError):
    def __init__(self, feature_type):
        super().__init__(f'Feature type {feature_type!r} does not exist')
        self.feature_type = feature_type


# Training errors
class TrainingError(CascadeError):
    pass

class NoTrainingData(TrainingError):
    pass

class TrainingAborted(TrainingError):
    '''
        Raised when a stage cannot be boosted any further.
        `cascade` holds the stages trained before the failure, if any.
    '''
    def __init__(self, message: str, cascade=None):
        super().__init__(message)
        self.cascade = cascade
