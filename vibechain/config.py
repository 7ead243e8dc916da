"""
Configuration and constants for the VibeChain listening analyzer.
"""
import os
from dataclasses import dataclass, field, fields, replace
from typing import Dict, List, Optional, Tuple

# =============================================================================
# FEATURE CONFIGURATION
# =============================================================================
# Canonical vector order. Training and inference must agree on this.
FEATURE_FIELDS: List[str] = [
    # Audio descriptors
    "danceability",
    "energy",
    "key",
    "loudness",
    "mode",
    "speechiness",
    "acousticness",
    "instrumentalness",
    "liveness",
    "valence",
    "tempo",
    "duration_ms",
    "time_signature",
    # Temporal context
    "hour_of_day",
    "day_of_week",
    "month",
    "is_weekend",
    # Behavioral context
    "skip_rate",
    "repeat_count",
    "playlist_position",
]

INPUT_DIM = len(FEATURE_FIELDS)

# Regression target: the next track's mood triple
TARGET_FIELDS: List[str] = ["valence", "energy", "danceability"]

OUTPUT_DIM = len(TARGET_FIELDS)

# Raw ranges mapped onto [0, 1]. Fields not listed are already unit-interval.
FEATURE_BOUNDS: Dict[str, Dict[str, float]] = {
    "key": {"min": 0, "max": 11},
    "loudness": {"min": -60, "max": 0},        # dB
    "tempo": {"min": 50, "max": 200},          # BPM
    "duration_ms": {"min": 0, "max": 600_000},
    "time_signature": {"min": 0, "max": 7},
    "hour_of_day": {"min": 0, "max": 24},
    "day_of_week": {"min": 0, "max": 7},
    "month": {"min": 0, "max": 12},
    "repeat_count": {"min": 0, "max": 5},
}

# Features whose spread defines listening diversity
DIVERSITY_FEATURES: List[str] = [
    "danceability",
    "energy",
    "valence",
    "acousticness",
    "instrumentalness",
]

KEY_NAMES: List[str] = [
    "C", "C♯/D♭", "D", "D♯/E♭", "E", "F",
    "F♯/G♭", "G", "G♯/A♭", "A", "A♯/B♭", "B",
]

# =============================================================================
# PATHS
# =============================================================================
MODELS_DIR = os.environ.get("VIBECHAIN_MODELS_DIR", "models")
MODEL_PATH = os.environ.get(
    "VIBECHAIN_MODEL_PATH",
    os.path.join(MODELS_DIR, "listening_analyzer", "model.joblib"),
)
DATA_PATH = os.environ.get("VIBECHAIN_DATA_PATH", os.path.join("data", "dataset.csv"))

MODEL_FORMAT_VERSION = 1
MODEL_VERSION = "1.0.0"

# Upper bound on tracks per analysis request
MAX_TRACKS = 100

SESSION_STRATEGIES = ("chunk", "gap")


def _env_int(name: str, fallback: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


def _env_float(name: str, fallback: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    try:
        return float(raw)
    except ValueError:
        return fallback


def _env_str(name: str, fallback: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    return raw.strip()


# =============================================================================
# MODEL CONFIGURATION
# =============================================================================
@dataclass
class ModelConfig:
    """Topology of the mood regression network."""
    input_dim: int = INPUT_DIM
    output_dim: int = OUTPUT_DIM
    hidden_layers: Tuple[int, ...] = (64, 32)
    activation: str = "relu"

    # L2 penalty passed to the optimizer
    weight_decay: float = 0.0001

    random_state: int = 42

    def __post_init__(self):
        if self.input_dim < 1 or self.output_dim < 1:
            raise ValueError(f"input_dim and output_dim must be >= 1, got {self.input_dim}, {self.output_dim}")
        if not self.hidden_layers or any(size < 1 for size in self.hidden_layers):
            raise ValueError(f"hidden_layers must be non-empty positive sizes, got {self.hidden_layers}")
        if not self.weight_decay >= 0:
            raise ValueError(f"weight_decay must be >= 0, got {self.weight_decay}")

    def to_dict(self) -> Dict:
        return {
            "input_dim": self.input_dim,
            "output_dim": self.output_dim,
            "hidden_layers": list(self.hidden_layers),
            "activation": self.activation,
            "weight_decay": self.weight_decay,
            "random_state": self.random_state,
        }

DEFAULT_MODEL_CONFIG = ModelConfig()

# =============================================================================
# TRAINING CONFIGURATION
# =============================================================================
@dataclass
class TrainingConfig:
    """Fixed training hyperparameters."""
    batch_size: int = 32
    epochs: int = 10
    learning_rate: float = 0.001

    # Trailing fraction of examples held out for validation
    validation_split: float = 0.2

    # Number of tracks read from the corpus (None = all)
    sample_size: Optional[int] = 5000

    # Epochs without validation improvement before stopping (None = never)
    patience: Optional[int] = None

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {self.epochs}")
        if not self.learning_rate > 0:
            raise ValueError(f"learning_rate must be positive, got {self.learning_rate}")
        if not 0.0 < self.validation_split < 1.0:
            raise ValueError(f"validation_split must be in (0, 1), got {self.validation_split}")
        if self.sample_size is not None and self.sample_size < 1:
            raise ValueError(f"sample_size must be >= 1 or None, got {self.sample_size}")
        if self.patience is not None and self.patience < 1:
            raise ValueError(f"patience must be >= 1 or None, got {self.patience}")

DEFAULT_TRAINING_CONFIG = TrainingConfig()

# =============================================================================
# SESSION CONFIGURATION
# =============================================================================
@dataclass
class DataConfig:
    """How raw listening logs are cut into sessions."""
    # "chunk" splits into fixed-size runs, "gap" splits on idle time
    session_strategy: str = "chunk"
    session_size: int = 10
    min_tracks_per_session: int = 2
    max_gap_minutes: float = 30.0

    def __post_init__(self):
        if self.session_strategy not in SESSION_STRATEGIES:
            raise ValueError(
                f"Unknown session strategy '{self.session_strategy}', expected one of {SESSION_STRATEGIES}"
            )
        if self.session_size < 1:
            raise ValueError(f"session_size must be >= 1, got {self.session_size}")
        if self.min_tracks_per_session < 1:
            raise ValueError(f"min_tracks_per_session must be >= 1, got {self.min_tracks_per_session}")
        if not self.max_gap_minutes > 0:
            raise ValueError(f"max_gap_minutes must be positive, got {self.max_gap_minutes}")

DEFAULT_DATA_CONFIG = DataConfig()

# =============================================================================
# ANALYSIS CONFIGURATION
# =============================================================================
@dataclass
class AnalysisConfig:
    """Serving-time options for building predictions."""
    embedding_size: int = 10
    max_tracks: int = MAX_TRACKS

    # Placeholder constants. Not derived from model uncertainty.
    mood_confidence: float = 0.85
    next_track_confidence: float = 0.80

    model_version: str = MODEL_VERSION

    def __post_init__(self):
        if self.embedding_size < 1:
            raise ValueError(f"embedding_size must be >= 1, got {self.embedding_size}")
        if not 1 <= self.max_tracks <= MAX_TRACKS:
            raise ValueError(f"max_tracks must be in [1, {MAX_TRACKS}], got {self.max_tracks}")
        for name in ("mood_confidence", "next_track_confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")

DEFAULT_ANALYSIS_CONFIG = AnalysisConfig()


@dataclass
class AppConfig:
    """Everything the CLI needs in one place."""
    model: ModelConfig = field(default_factory=ModelConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    data: DataConfig = field(default_factory=DataConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    model_path: str = MODEL_PATH
    data_path: str = DATA_PATH


def _with_env(config, prefix: str):
    """Return a copy of a config dataclass with VIBECHAIN_<PREFIX>_<FIELD> overrides."""
    overrides = {}
    for f in fields(config):
        name = f"VIBECHAIN_{prefix}_{f.name.upper()}"
        current = getattr(config, f.name)
        if isinstance(current, bool) or isinstance(current, tuple):
            continue
        if isinstance(current, int):
            overrides[f.name] = _env_int(name, current)
        elif isinstance(current, float):
            overrides[f.name] = _env_float(name, current)
        elif isinstance(current, str):
            overrides[f.name] = _env_str(name, current)
        elif current is None and os.getenv(name):
            overrides[f.name] = _env_int(name, 0) or None
    return replace(config, **overrides)


def load_config() -> AppConfig:
    """
    Build an AppConfig from defaults and VIBECHAIN_* environment variables.

    Unparseable values fall back to the default; parseable but out-of-range
    values raise ValueError.
    """
    return AppConfig(
        model=_with_env(ModelConfig(), "MODEL"),
        training=_with_env(TrainingConfig(), "TRAINING"),
        data=_with_env(DataConfig(), "DATA"),
        analysis=_with_env(AnalysisConfig(), "ANALYSIS"),
        model_path=_env_str("VIBECHAIN_MODEL_PATH", MODEL_PATH),
        data_path=_env_str("VIBECHAIN_DATA_PATH", DATA_PATH),
    )
