"""
Training Pipeline
=================

Orchestrates one offline training run:

1. Load the raw track corpus
2. Build listening sessions
3. Extract (current -> next) training pairs
4. Stack pairs into input / target arrays
5. Split into train / validation (order preserved, no shuffling)
6. Build, compile and train the model
7. Persist the trained model
8. Report final losses and example counts

The split is deterministic: the trailing ``validation_split`` fraction of the
examples is held out. Shuffling only happens inside each training epoch.
"""

import time
from dataclasses import dataclass, asdict
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from loguru import logger

from .config import (
    DEFAULT_DATA_CONFIG,
    DEFAULT_MODEL_CONFIG,
    DEFAULT_TRAINING_CONFIG,
    INPUT_DIM,
    MODEL_PATH,
    OUTPUT_DIM,
    DataConfig,
    ModelConfig,
    TrainingConfig,
)
from .corpus import CSVCorpusLoader
from .exceptions import TrainingDataInsufficient
from .features import Track
from .model import MoodModel, TrainingHistory
from .sessions import TrainingExample, build_sessions, extract_training_pairs

MIN_TRAINING_EXAMPLES = 2


class TrackSource(Protocol):
    """Anything that can hand over a time-ordered list of plays."""

    def load_tracks(self, limit: Optional[int] = None) -> List[Track]:
        ...


class InMemorySource:
    """Wraps an already loaded track list as a TrackSource."""

    def __init__(self, tracks: Sequence[Track]):
        self.tracks = list(tracks)

    def load_tracks(self, limit: Optional[int] = None) -> List[Track]:
        return self.tracks if limit is None else self.tracks[:limit]


@dataclass
class TrainingReport:
    """Summary of a finished training run."""
    n_tracks: int
    n_sessions: int
    n_examples: int
    n_train: int
    n_validation: int
    epochs_run: int
    stopped_early: bool
    final_train_loss: Optional[float]
    final_val_loss: Optional[float]
    model_path: str
    training_seconds: float

    def to_dict(self):
        return asdict(self)


def stack_examples(examples: Sequence[TrainingExample]) -> Tuple[np.ndarray, np.ndarray]:
    """Stack examples into parallel (n, 20) inputs and (n, 3) targets."""
    if not examples:
        return np.zeros((0, INPUT_DIM)), np.zeros((0, OUTPUT_DIM))
    inputs = np.vstack([e.inputs for e in examples])
    targets = np.vstack([e.target for e in examples])
    return inputs, targets


def split_examples(
    inputs: np.ndarray,
    targets: np.ndarray,
    validation_split: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Ordered train/validation split.

    The last ``floor(n * validation_split)`` rows become validation, with at
    least one row on each side.
    """
    n = len(inputs)
    if n < MIN_TRAINING_EXAMPLES:
        raise TrainingDataInsufficient(
            f"Need at least {MIN_TRAINING_EXAMPLES} examples to split, got {n}"
        )
    if not 0.0 < validation_split < 1.0:
        raise ValueError(f"validation_split must be in (0, 1), got {validation_split}")

    n_val = int(np.floor(n * validation_split))
    n_val = min(max(n_val, 1), n - 1)
    n_train = n - n_val
    return inputs[:n_train], targets[:n_train], inputs[n_train:], targets[n_train:]


class TrainingPipeline:
    """
    End-to-end offline trainer.

    Usage:
        pipeline = TrainingPipeline(CSVCorpusLoader("data/dataset.csv"))
        report = pipeline.run()
    """

    def __init__(
        self,
        source: TrackSource,
        model_path: str = MODEL_PATH,
        training_config: TrainingConfig = DEFAULT_TRAINING_CONFIG,
        data_config: DataConfig = DEFAULT_DATA_CONFIG,
        model_config: ModelConfig = DEFAULT_MODEL_CONFIG,
    ):
        self.source = source
        self.model_path = model_path
        self.training_config = training_config
        self.data_config = data_config
        self.model_config = model_config
        self.model: Optional[MoodModel] = None

    def run(self) -> TrainingReport:
        """Run every stage in order and return the report."""
        cfg = self.training_config
        logger.info("=" * 60)
        logger.info("VIBECHAIN TRAINING")
        logger.info("=" * 60)

        # Stage 1: corpus
        tracks = self.source.load_tracks(cfg.sample_size)
        with_features = sum(1 for t in tracks if t.has_features)
        logger.info(f"Loaded {len(tracks)} tracks ({with_features} with features)")

        # Stage 2: sessions
        data = self.data_config
        sessions = build_sessions(
            tracks,
            min_size=data.min_tracks_per_session,
            session_size=data.session_size,
            strategy=data.session_strategy,
            max_gap_minutes=data.max_gap_minutes,
        )
        logger.info(f"Created {len(sessions)} listening sessions ({data.session_strategy} strategy)")

        # Stage 3: pairs
        examples = extract_training_pairs(sessions)
        logger.info(f"Created {len(examples)} training examples")
        if len(examples) < MIN_TRAINING_EXAMPLES:
            raise TrainingDataInsufficient(
                f"Only {len(examples)} training examples from {len(tracks)} tracks and "
                f"{len(sessions)} sessions; need at least {MIN_TRAINING_EXAMPLES}"
            )

        # Stages 4-5: stack and split
        inputs, targets = stack_examples(examples)
        x_train, y_train, x_val, y_val = split_examples(inputs, targets, cfg.validation_split)
        logger.info(f"Split data: {len(x_train)} training, {len(x_val)} validation examples")

        # Stage 6: train
        model = MoodModel(input_dim=self.model_config.input_dim, config=self.model_config)
        model.build()
        model.compile(cfg.learning_rate)
        logger.info(
            f"Starting training: {cfg.epochs} epochs, batch size {cfg.batch_size}, "
            f"learning rate {cfg.learning_rate}"
        )
        started = time.perf_counter()
        history: TrainingHistory = model.train(
            x_train, y_train, x_val, y_val,
            epochs=cfg.epochs,
            batch_size=cfg.batch_size,
            patience=cfg.patience,
        )
        elapsed = time.perf_counter() - started
        logger.info(f"Training completed in {elapsed:.1f} seconds")

        # Stage 7: persist
        saved_to = model.save(self.model_path)
        self.model = model

        # Stage 8: report
        report = TrainingReport(
            n_tracks=len(tracks),
            n_sessions=len(sessions),
            n_examples=len(examples),
            n_train=len(x_train),
            n_validation=len(x_val),
            epochs_run=history.epochs_run,
            stopped_early=history.stopped_early,
            final_train_loss=history.final_loss,
            final_val_loss=history.final_val_loss,
            model_path=str(saved_to),
            training_seconds=elapsed,
        )
        self._log_report(report)
        return report

    def _log_report(self, report: TrainingReport) -> None:
        logger.info("Training Report:")
        logger.info(f"  Tracks: {report.n_tracks}, sessions: {report.n_sessions}")
        logger.info(f"  Examples: {report.n_train} train / {report.n_validation} validation")
        logger.info(f"  Epochs run: {report.epochs_run}{' (early stop)' if report.stopped_early else ''}")
        if report.final_train_loss is not None:
            logger.info(f"  Final training loss: {report.final_train_loss:.4f}")
        if report.final_val_loss is not None:
            logger.info(f"  Final validation loss: {report.final_val_loss:.4f}")
        logger.info(f"  Model saved to: {report.model_path}")


def train_from_csv(
    csv_path: str,
    model_path: str = MODEL_PATH,
    training_config: TrainingConfig = DEFAULT_TRAINING_CONFIG,
    data_config: DataConfig = DEFAULT_DATA_CONFIG,
    model_config: ModelConfig = DEFAULT_MODEL_CONFIG,
) -> TrainingReport:
    """
    Convenience function for a full training run from a CSV corpus.

    Returns:
        TrainingReport of the run
    """
    loader = CSVCorpusLoader(csv_path)
    stats = loader.get_stats()
    logger.info(
        f"Dataset: {stats['total_tracks']} tracks, {stats['unique_artists']} artists, "
        f"avg tempo {stats['avg_tempo']:.1f} BPM"
    )
    pipeline = TrainingPipeline(
        loader,
        model_path=model_path,
        training_config=training_config,
        data_config=data_config,
        model_config=model_config,
    )
    return pipeline.run()
