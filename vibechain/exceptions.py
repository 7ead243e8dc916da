"""
Error types raised by the VibeChain core.

Each error carries a stable ``code`` so callers (CLI, a web layer) can map
it to a response without string matching.
"""


class VibeChainError(Exception):
    """Base class for all analyzer errors."""

    code = "VIBECHAIN_ERROR"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationFailure(VibeChainError):
    """Malformed or out-of-range input. Model state is untouched."""

    code = "VALIDATION_ERROR"


class ModelUnavailable(VibeChainError):
    """Inference requested before a model was trained or loaded."""

    code = "MODEL_UNAVAILABLE"


class TrainingDataInsufficient(VibeChainError):
    """Too few training pairs to form a train/validation split."""

    code = "TRAINING_DATA_INSUFFICIENT"


class PersistenceFailure(VibeChainError):
    """Model save/load failed, including input dimension mismatches."""

    code = "PERSISTENCE_ERROR"
