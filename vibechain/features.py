"""
Feature Vector Module
=====================

Defines the track records used throughout VibeChain and the codec that turns
them into fixed-order numeric vectors.

Normalization happens once, at the ingestion boundary (``normalize_features``),
using the bounds in ``config.FEATURE_BOUNDS``. Everything downstream, training
and inference alike, works with unit-interval ``TrackFeatures`` so there is a
single divisor per field.

Feature Categories:
    1. Audio descriptors (13 dims)
    2. Temporal context (4 dims)
    3. Behavioral context (3 dims)
"""

import math
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

import numpy as np

from .config import (
    FEATURE_FIELDS,
    FEATURE_BOUNDS,
    TARGET_FIELDS,
    INPUT_DIM,
    OUTPUT_DIM,
)

_TARGET_INDICES = [FEATURE_FIELDS.index(name) for name in TARGET_FIELDS]


@dataclass
class TrackFeatures:
    """Normalized feature payload of a single play. Every field is in [0, 1]."""
    # Audio descriptors
    danceability: float = 0.0
    energy: float = 0.0
    key: float = 0.0
    loudness: float = 0.0
    mode: float = 0.0
    speechiness: float = 0.0
    acousticness: float = 0.0
    instrumentalness: float = 0.0
    liveness: float = 0.0
    valence: float = 0.0
    tempo: float = 0.0
    duration_ms: float = 0.0
    time_signature: float = 0.0

    # Temporal context
    hour_of_day: float = 0.0
    day_of_week: float = 0.0
    month: float = 0.0
    is_weekend: float = 0.0

    # Behavioral context
    skip_rate: float = 0.0
    repeat_count: float = 0.0
    playlist_position: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class Track:
    """A single play in a listening log."""
    id: str
    name: str
    artist: str
    album: str
    played_at: datetime
    duration_ms: int = 0
    popularity: int = 0

    # Absent until feature extraction has run
    features: Optional[TrackFeatures] = None

    @property
    def has_features(self) -> bool:
        return self.features is not None


def _read_field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _coerce(value: Any) -> float:
    """Tolerant float conversion: anything unusable becomes 0.0."""
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return number


def normalize_value(name: str, value: float) -> float:
    """Map one raw feature value onto [0, 1]."""
    value = _coerce(value)
    if name in FEATURE_BOUNDS:
        bounds = FEATURE_BOUNDS[name]
        value = (value - bounds["min"]) / (bounds["max"] - bounds["min"])
    return float(np.clip(value, 0.0, 1.0))


def denormalize(name: str, value: float) -> float:
    """Inverse of ``normalize_value`` for bounded fields."""
    if name not in FEATURE_BOUNDS:
        return float(value)
    bounds = FEATURE_BOUNDS[name]
    return float(value) * (bounds["max"] - bounds["min"]) + bounds["min"]


def normalize_features(raw: Mapping[str, Any]) -> TrackFeatures:
    """
    Normalize raw Spotify-scale values into a ``TrackFeatures`` record.

    Args:
        raw: Mapping with raw values (BPM tempo, dB loudness, 0-11 key, ...)

    Returns:
        TrackFeatures with every field in [0, 1]; missing fields are 0.0
    """
    values = {}
    for name in FEATURE_FIELDS:
        if name in raw and raw[name] is not None:
            values[name] = normalize_value(name, raw[name])
    return TrackFeatures(**values)


def temporal_features(played_at: datetime) -> Dict[str, float]:
    """Raw temporal context of a play, ready for ``normalize_features``."""
    weekday = played_at.weekday()
    return {
        "hour_of_day": played_at.hour + played_at.minute / 60.0,
        "day_of_week": weekday,
        "month": played_at.month,
        "is_weekend": 1.0 if weekday >= 5 else 0.0,
    }


def track_features_to_vector(features: Any) -> np.ndarray:
    """
    Encode a feature record as a fixed-order vector.

    Accepts a ``TrackFeatures``, a mapping, or any object exposing the
    feature names as attributes. Missing or unusable fields become 0.0.
    Never raises.

    Returns:
        Float64 array of shape (20,)
    """
    vector = np.zeros(INPUT_DIM, dtype=np.float64)
    if features is None:
        return vector
    for idx, name in enumerate(FEATURE_FIELDS):
        vector[idx] = _coerce(_read_field(features, name))
    return np.clip(vector, 0.0, 1.0)


def target_vector(features: Any) -> np.ndarray:
    """The (valence, energy, danceability) regression target of a record."""
    return track_features_to_vector(features)[_TARGET_INDICES]


def vector_to_prediction(vector: Sequence[float]) -> Dict[str, float]:
    """
    Partial inverse of ``track_features_to_vector``.

    The model never predicts the full feature set, so only the target fields
    are reconstructed. Accepts a 3-vector in target order or a full 20-vector.
    """
    values = np.asarray(vector, dtype=np.float64).ravel()
    if values.size == INPUT_DIM:
        values = values[_TARGET_INDICES]
    elif values.size != OUTPUT_DIM:
        # Pad or truncate
        padded = np.zeros(OUTPUT_DIM)
        n = min(values.size, OUTPUT_DIM)
        padded[:n] = values[:n]
        values = padded
    return {name: float(values[i]) for i, name in enumerate(TARGET_FIELDS)}


def stack_vectors(records: Iterable[Any]) -> np.ndarray:
    """Stack feature records into an (n, 20) matrix."""
    rows = [track_features_to_vector(r) for r in records]
    if not rows:
        return np.zeros((0, INPUT_DIM), dtype=np.float64)
    return np.vstack(rows)
