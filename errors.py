class ConfigError(ValueError):
    """Invalid hyperparameters or command-line input."""


class DatasetError(ValueError):
    """Data file could not be parsed into labelled examples."""


class EmptyEnsembleError(RuntimeError):
    """Raised when a forest with no grown trees is asked to classify."""


class ModelReadError(ValueError):
    """Model file is missing or its header/tree records are malformed."""


class ModelWriteError(OSError):
    pass


class TrailingDataWarning(UserWarning):
    pass
