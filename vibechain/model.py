"""
Mood Prediction Model
=====================

A small feed-forward regressor mapping one 20-dim feature vector to the next
track's (valence, energy, danceability).

Backed by scikit-learn's ``MLPRegressor`` trained incrementally with
``partial_fit`` so the epoch loop, shuffling and validation tracking stay
under our control:

    model = MoodModel()
    model.build()
    model.compile(learning_rate=0.001)
    history = model.train(x_train, y_train, x_val, y_val, epochs=10, batch_size=32)
    model.save("models/listening_analyzer/model.joblib")
"""

import pickle
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import joblib
import numpy as np
from loguru import logger
from sklearn.exceptions import ConvergenceWarning
from sklearn.metrics import mean_squared_error
from sklearn.neural_network import MLPRegressor

from .config import (
    DEFAULT_MODEL_CONFIG,
    FEATURE_FIELDS,
    INPUT_DIM,
    MODEL_FORMAT_VERSION,
    TARGET_FIELDS,
    ModelConfig,
)
from .exceptions import ModelUnavailable, PersistenceFailure, ValidationFailure
from .features import vector_to_prediction


@dataclass
class TrainingHistory:
    """Per-epoch losses (mean squared error over the 3 target dims)."""
    loss: List[float] = field(default_factory=list)
    val_loss: List[float] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def epochs_run(self) -> int:
        return len(self.loss)

    @property
    def final_loss(self) -> Optional[float]:
        return self.loss[-1] if self.loss else None

    @property
    def final_val_loss(self) -> Optional[float]:
        return self.val_loss[-1] if self.val_loss else None

    def to_dict(self) -> Dict:
        return {
            "loss": list(self.loss),
            "val_loss": list(self.val_loss),
            "epochs_run": self.epochs_run,
            "stopped_early": self.stopped_early,
        }


@dataclass
class ModelPredictions:
    """Model output as presented to callers and to the insight engine."""
    mood_prediction: Dict[str, float]
    pattern_embedding: List[float]
    next_track_prediction: Dict[str, float]

    # Placeholder constants from AnalysisConfig, not model uncertainty
    confidence_scores: Dict[str, float]

    @classmethod
    def from_outputs(
        cls,
        outputs: np.ndarray,
        embedding_size: int = 10,
        mood_confidence: float = 0.85,
        next_track_confidence: float = 0.80
    ) -> "ModelPredictions":
        """
        Summarize per-track outputs of one request.

        Mood and next-track predictions both read the first row (the first
        track of the request); the embedding is the leading values of the
        flattened output matrix.
        """
        outputs = np.asarray(outputs, dtype=np.float64).reshape(-1, len(TARGET_FIELDS))
        if len(outputs) == 0:
            raise ValidationFailure("No model outputs to summarize")

        mood = outputs[0]
        return cls(
            mood_prediction={
                "valence": float(mood[0]),
                "energy": float(mood[1]),
                "arousal": float(mood[2]),
            },
            pattern_embedding=[float(v) for v in outputs.ravel()[:embedding_size]],
            next_track_prediction=vector_to_prediction(mood),
            confidence_scores={
                "mood": float(mood_confidence),
                "next_track": float(next_track_confidence),
            },
        )

    def to_dict(self, include_embeddings: bool = True) -> Dict:
        data = {
            "mood_prediction": dict(self.mood_prediction),
            "next_track_prediction": dict(self.next_track_prediction),
            "confidence_scores": dict(self.confidence_scores),
        }
        if include_embeddings:
            data["pattern_embedding"] = list(self.pattern_embedding)
        return data


class MoodModel:
    """
    Trainable regression function R^input_dim -> R^3.

    The instance is mutated only by ``build``, ``compile``, ``train`` and
    ``load``. ``predict`` is read-only, so a trained instance can be shared by
    concurrent readers.
    """

    def __init__(
        self,
        input_dim: int = INPUT_DIM,
        config: ModelConfig = DEFAULT_MODEL_CONFIG
    ):
        """
        Args:
            input_dim: Runtime input dimension; persisted models must match it
            config: Network topology
        """
        self.input_dim = input_dim
        self.output_dim = config.output_dim
        self.config = config
        self.hidden_layers: Tuple[int, ...] = tuple(config.hidden_layers)
        self._estimator: Optional[MLPRegressor] = None
        self._compiled = False

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------
    def build(self, input_dim: Optional[int] = None) -> "MoodModel":
        """Allocate a fresh, untrained network."""
        if input_dim is not None:
            self.input_dim = input_dim
        self._estimator = MLPRegressor(
            hidden_layer_sizes=self.hidden_layers,
            activation=self.config.activation,
            solver="adam",
            alpha=self.config.weight_decay,
            shuffle=False,  # shuffling is done per epoch in train()
            random_state=self.config.random_state,
        )
        self._compiled = False
        return self

    def compile(self, learning_rate: float = 0.001) -> "MoodModel":
        """Bind the Adam optimizer with a learning rate. Loss is squared error."""
        if learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {learning_rate}")
        if self._estimator is None:
            self.build()
        self._estimator.set_params(learning_rate_init=learning_rate)
        self._compiled = True
        return self

    @property
    def is_trained(self) -> bool:
        return self._estimator is not None and hasattr(self._estimator, "coefs_")

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------
    def train(
        self,
        train_inputs: np.ndarray,
        train_targets: np.ndarray,
        val_inputs: Optional[np.ndarray] = None,
        val_targets: Optional[np.ndarray] = None,
        epochs: int = 10,
        batch_size: int = 32,
        patience: Optional[int] = None,
    ) -> TrainingHistory:
        """
        Epoch-wise minibatch training.

        Training pairs are reshuffled at the start of every epoch. Without
        ``patience`` the loop always runs the full epoch budget.

        Args:
            train_inputs, train_targets: (n, input_dim) and (n, 3) arrays
            val_inputs, val_targets: Optional held-out arrays
            epochs: Epoch budget
            batch_size: Minibatch size (clipped to the training set size)
            patience: Stop after this many epochs without val_loss improvement

        Returns:
            TrainingHistory with per-epoch losses
        """
        if not self._compiled:
            raise ModelUnavailable("Model must be built and compiled before training")
        if epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {epochs}")

        x_train = self._check_inputs(train_inputs)
        y_train = self._check_targets(train_targets, len(x_train))
        if len(x_train) == 0:
            raise ValidationFailure("Cannot train on an empty set")

        has_val = val_inputs is not None and val_targets is not None and len(val_inputs) > 0
        if has_val:
            x_val = self._check_inputs(val_inputs)
            y_val = self._check_targets(val_targets, len(x_val))

        self._estimator.set_params(batch_size=int(np.clip(batch_size, 1, len(x_train))))
        rng = np.random.default_rng(self.config.random_state)

        history = TrainingHistory()
        best_val = np.inf
        stale_epochs = 0

        for epoch in range(1, epochs + 1):
            order = rng.permutation(len(x_train))
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", category=ConvergenceWarning)
                self._estimator.partial_fit(x_train[order], y_train[order])

            loss = float(mean_squared_error(y_train, self._raw_predict(x_train)))
            history.loss.append(loss)

            if has_val:
                val_loss = float(mean_squared_error(y_val, self._raw_predict(x_val)))
                history.val_loss.append(val_loss)
                logger.debug(f"Epoch {epoch}/{epochs} - loss: {loss:.4f} - val_loss: {val_loss:.4f}")

                if patience is not None:
                    if val_loss < best_val:
                        best_val = val_loss
                        stale_epochs = 0
                    else:
                        stale_epochs += 1
                        if stale_epochs >= patience:
                            history.stopped_early = True
                            logger.info(f"Early stopping after epoch {epoch} (no val_loss improvement in {patience} epochs)")
                            break
            else:
                logger.debug(f"Epoch {epoch}/{epochs} - loss: {loss:.4f}")

        return history

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------
    def predict(self, vectors: np.ndarray) -> np.ndarray:
        """
        Batched inference. Raw network output, not clamped to [0, 1].

        Args:
            vectors: (n, input_dim) array, or a single (input_dim,) vector

        Returns:
            (n, 3) array ordered as valence, energy, danceability
        """
        if not self.is_trained:
            raise ModelUnavailable("No trained model available for inference")
        x = self._check_inputs(vectors)
        if len(x) == 0:
            return np.zeros((0, self.output_dim))
        return self._raw_predict(x)

    def _raw_predict(self, x: np.ndarray) -> np.ndarray:
        return np.asarray(self._estimator.predict(x), dtype=np.float64).reshape(-1, self.output_dim)

    def _check_inputs(self, values) -> np.ndarray:
        x = np.asarray(values, dtype=np.float64)
        if x.ndim == 1:
            x = x.reshape(1, -1)
        if x.ndim != 2 or x.shape[1] != self.input_dim:
            raise ValidationFailure(
                f"Expected inputs of shape (n, {self.input_dim}), got {x.shape}"
            )
        if not np.all(np.isfinite(x)):
            raise ValidationFailure("Inputs contain NaN or infinite values")
        return x

    def _check_targets(self, values, n_rows: int) -> np.ndarray:
        y = np.asarray(values, dtype=np.float64)
        if y.ndim != 2 or y.shape != (n_rows, self.output_dim):
            raise ValidationFailure(
                f"Expected targets of shape ({n_rows}, {self.output_dim}), got {y.shape}"
            )
        if not np.all(np.isfinite(y)):
            raise ValidationFailure("Targets contain NaN or infinite values")
        return y

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(self, path: str) -> Path:
        """Persist weights plus the topology metadata needed to validate a load."""
        if not self.is_trained:
            raise ModelUnavailable("Cannot save a model that has not been trained")

        target = Path(path)
        payload = {
            "format_version": MODEL_FORMAT_VERSION,
            "input_dim": self.input_dim,
            "output_dim": self.output_dim,
            "hidden_layers": list(self.hidden_layers),
            "feature_fields": list(FEATURE_FIELDS),
            "target_fields": list(TARGET_FIELDS),
            "estimator": self._estimator,
        }
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            joblib.dump(payload, target)
        except OSError as e:
            raise PersistenceFailure(f"Failed to save model to {target}: {e}") from e

        logger.info(f"Model saved to {target}")
        return target

    def load(self, path: str) -> "MoodModel":
        """
        Restore a persisted model.

        The payload is fully validated before anything is assigned, so a
        failed load leaves the current weights in place.
        """
        source = Path(path)
        try:
            payload = joblib.load(source)
        except FileNotFoundError as e:
            raise PersistenceFailure(f"No model found at {source}") from e
        except (OSError, EOFError, ValueError, pickle.UnpicklingError, AttributeError, ImportError) as e:
            raise PersistenceFailure(f"Failed to read model from {source}: {e}") from e

        if not isinstance(payload, dict) or "estimator" not in payload:
            raise PersistenceFailure(f"{source} is not a VibeChain model file")
        if payload.get("format_version") != MODEL_FORMAT_VERSION:
            raise PersistenceFailure(
                f"Unsupported model format version {payload.get('format_version')!r}"
            )

        input_dim = payload.get("input_dim")
        if input_dim != self.input_dim:
            raise PersistenceFailure(
                f"Model at {source} expects {input_dim} input features, "
                f"runtime is configured for {self.input_dim}"
            )

        estimator = payload["estimator"]
        if getattr(estimator, "n_features_in_", input_dim) != input_dim:
            raise PersistenceFailure(f"Model at {source} has inconsistent input metadata")

        self._estimator = estimator
        self.output_dim = int(payload.get("output_dim", self.output_dim))
        self.hidden_layers = tuple(payload.get("hidden_layers", self.hidden_layers))
        self._compiled = True

        logger.info(f"Model loaded from {source}")
        return self

    @classmethod
    def from_path(
        cls,
        path: str,
        input_dim: int = INPUT_DIM,
        config: ModelConfig = DEFAULT_MODEL_CONFIG
    ) -> "MoodModel":
        return cls(input_dim=input_dim, config=config).load(path)

    def info(self) -> Dict:
        return {
            "model_type": type(self).__name__,
            "input_features": self.input_dim,
            "output_features": self.output_dim,
            "hidden_layers": list(self.hidden_layers),
            "trained": self.is_trained,
        }
