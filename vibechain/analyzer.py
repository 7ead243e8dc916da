"""
Listening Analyzer
==================

Serving-time entry point. Owns the model handle and ties the pieces together:

1. Validate / vectorize the request tracks
2. Run batched inference
3. Summarize outputs into ModelPredictions
4. Optionally generate insights and recommendations
5. Return an AnalysisResult

The model handle is replaced atomically on load and never modified in place,
so concurrent ``analyze`` calls always see a complete model.
"""

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from .config import (
    DEFAULT_ANALYSIS_CONFIG,
    DEFAULT_MODEL_CONFIG,
    AnalysisConfig,
    ModelConfig,
)
from .exceptions import ModelUnavailable, ValidationFailure
from .features import TrackFeatures, stack_vectors
from .insights import InsightEngine, ListeningInsights
from .model import ModelPredictions, MoodModel
from .schemas import validate_analyze_request, validate_track_features


@dataclass
class AnalysisResult:
    """Complete analysis output."""
    predictions: ModelPredictions
    tracks_analyzed: int
    model_version: str
    analysis_timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    insights: Optional[ListeningInsights] = None
    recommendations: Optional[List[str]] = None
    include_embeddings: bool = True

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            "predictions": self.predictions.to_dict(include_embeddings=self.include_embeddings),
            "metadata": {
                "tracks_analyzed": self.tracks_analyzed,
                "analysis_timestamp": self.analysis_timestamp.isoformat(),
                "model_version": self.model_version,
            },
        }
        if self.insights is not None:
            data["insights"] = self.insights.to_dict()
        if self.recommendations is not None:
            data["recommendations"] = list(self.recommendations)
        return data

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


class ListeningAnalyzer:
    """
    Explicit model handle plus the analysis pipeline.

    Usage:
        analyzer = ListeningAnalyzer()
        analyzer.load_model("models/listening_analyzer/model.joblib")
        result = analyzer.analyze(tracks)
        print(result.to_json())
    """

    def __init__(
        self,
        model: Optional[MoodModel] = None,
        analysis_config: AnalysisConfig = DEFAULT_ANALYSIS_CONFIG,
        model_config: ModelConfig = DEFAULT_MODEL_CONFIG,
    ):
        self.analysis_config = analysis_config
        self.model_config = model_config
        self.insight_engine = InsightEngine()
        self._model = model
        self._swap_lock = threading.Lock()

    @property
    def model(self) -> Optional[MoodModel]:
        return self._model

    @property
    def model_loaded(self) -> bool:
        model = self._model
        return model is not None and model.is_trained

    def set_model(self, model: MoodModel) -> None:
        """Install an already trained model."""
        if not model.is_trained:
            raise ModelUnavailable("Refusing to install an untrained model")
        with self._swap_lock:
            self._model = model

    def load_model(self, path: str) -> MoodModel:
        """
        Load a persisted model and swap it in.

        On failure the exception propagates and the current model stays active.
        """
        candidate = MoodModel(input_dim=self.model_config.input_dim, config=self.model_config)
        candidate.load(path)
        with self._swap_lock:
            self._model = candidate
        return candidate

    def _require_model(self) -> MoodModel:
        model = self._model
        if model is None or not model.is_trained:
            raise ModelUnavailable("No model loaded")
        return model

    def validate_tracks(self, tracks: Sequence[Any]) -> List[TrackFeatures]:
        """
        Check a batch before inference.

        Every record must carry all 20 features as finite values in [0, 1];
        the batch must hold between 1 and ``max_tracks`` records.
        """
        if not tracks:
            raise ValidationFailure("No tracks provided for analysis")
        limit = self.analysis_config.max_tracks
        if len(tracks) > limit:
            raise ValidationFailure(f"Too many tracks: {len(tracks)} (max {limit})")

        validated = []
        for index, track in enumerate(tracks):
            if isinstance(track, TrackFeatures):
                data = track.to_dict()
            elif isinstance(track, Mapping):
                data = dict(track)
            else:
                raise ValidationFailure(f"Track {index}: expected feature record, got {type(track).__name__}")
            try:
                validated.append(validate_track_features(data))
            except ValidationFailure as e:
                raise ValidationFailure(f"Track {index}: {e.message}") from e
        return validated

    def predict(self, tracks: Sequence[Any]) -> ModelPredictions:
        """Run inference on a batch of feature records."""
        model = self._require_model()
        return self._summarize(model, self.validate_tracks(tracks))

    def _summarize(self, model: MoodModel, features: List[TrackFeatures]) -> ModelPredictions:
        outputs = model.predict(stack_vectors(features))
        cfg = self.analysis_config
        return ModelPredictions.from_outputs(
            outputs,
            embedding_size=cfg.embedding_size,
            mood_confidence=cfg.mood_confidence,
            next_track_confidence=cfg.next_track_confidence,
        )

    def analyze(
        self,
        tracks: Sequence[Any],
        include_insights: bool = True,
        include_recommendations: bool = False,
        include_embeddings: bool = True,
    ) -> AnalysisResult:
        """
        Analyze a batch of normalized feature records.

        Args:
            tracks: TrackFeatures or mappings with the 20 feature fields
            include_insights: Attach ListeningInsights
            include_recommendations: Attach recommendation strings
            include_embeddings: Keep pattern_embedding in the serialized output

        Returns:
            AnalysisResult
        """
        model = self._require_model()
        features = self.validate_tracks(tracks)
        predictions = self._summarize(model, features)

        insights = None
        if include_insights:
            insights = self.insight_engine.generate_insights(features, predictions)

        recommendations = None
        if include_recommendations:
            recommendations = self.insight_engine.generate_recommendations(features, predictions)

        logger.debug(f"Analyzed {len(features)} tracks")
        return AnalysisResult(
            predictions=predictions,
            tracks_analyzed=len(features),
            model_version=self.analysis_config.model_version,
            insights=insights,
            recommendations=recommendations,
            include_embeddings=include_embeddings,
        )

    def analyze_request(self, payload: Any) -> AnalysisResult:
        """Validate a raw request body, then analyze it."""
        request = validate_analyze_request(payload)
        options = request.options
        if options.model_version != self.analysis_config.model_version:
            raise ValidationFailure(
                f"Requested model version {options.model_version} is not served "
                f"(serving {self.analysis_config.model_version})"
            )
        return self.analyze(
            request.track_features(),
            include_insights=options.include_insights,
            include_recommendations=options.include_recommendations,
            include_embeddings=options.include_embeddings,
        )

    def model_info(self) -> Dict:
        model = self._require_model()
        info = model.info()
        info["model_version"] = self.analysis_config.model_version
        return info
