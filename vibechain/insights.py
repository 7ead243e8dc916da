"""
Insight Generator Module
========================

Turns a batch of track features plus the model's prediction into
human-readable listening insights and recommendations.

Insights cover:
- Mood (predicted vs observed valence)
- Energy (level, spread and predicted trend)
- Timing (time of day, weekday/weekend skew)
- Diversity (spread across five audio features)
- Patterns (skips, repeats, key, tempo, acoustic lean, model confidence)

Everything here is a pure function of its inputs.
"""

import math
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence

import numpy as np

from .config import DIVERSITY_FEATURES, FEATURE_FIELDS, KEY_NAMES
from .exceptions import ValidationFailure
from .features import denormalize
from .model import ModelPredictions

FALLBACK_PATTERN = (
    "Your listening patterns show interesting complexity that requires more data to fully understand."
)


class DiversityLevel(Enum):
    """Spread of a batch across the diversity features."""
    CONSISTENT = "consistent"
    MODERATE = "moderate"
    DIVERSE = "diverse"


@dataclass
class ListeningInsights:
    """Natural-language summary of one analysis request."""
    mood: str
    energy: str
    timing: str
    diversity: str
    patterns: List[str]

    def to_dict(self) -> Dict:
        return asdict(self)


class FeatureBatch:
    """
    Column view over a batch of feature records.

    Missing fields read as 0.0. Non-finite values are rejected rather than
    propagated into the statistics.
    """

    def __init__(self, tracks: Sequence[Any]):
        if not tracks:
            raise ValidationFailure("No tracks provided for analysis")

        rows = []
        for index, track in enumerate(tracks):
            row = []
            for name in FEATURE_FIELDS:
                if isinstance(track, Mapping):
                    value = track.get(name)
                else:
                    value = getattr(track, name, None)
                try:
                    number = 0.0 if value is None else float(value)
                except (TypeError, ValueError):
                    raise ValidationFailure(f"Track {index}: {name} is not numeric")
                if not math.isfinite(number):
                    raise ValidationFailure(f"Track {index}: {name} is not a finite number")
                row.append(number)
            rows.append(row)

        self._matrix = np.array(rows, dtype=np.float64)
        self._index = {name: i for i, name in enumerate(FEATURE_FIELDS)}

    def __len__(self) -> int:
        return len(self._matrix)

    def column(self, name: str) -> np.ndarray:
        return self._matrix[:, self._index[name]]

    def mean(self, name: str) -> float:
        return float(np.mean(self.column(name)))

    def std(self, name: str) -> float:
        # Population standard deviation
        return float(np.std(self.column(name)))


def _check_predictions(predictions: ModelPredictions) -> None:
    values = list(predictions.mood_prediction.values()) + list(predictions.confidence_scores.values())
    for value in values:
        if value is None or not math.isfinite(float(value)):
            raise ValidationFailure("Model predictions contain NaN or infinite values")


class InsightEngine:
    """
    Rule-based insight generator.

    Each insight is a threshold classification over batch statistics; the
    thresholds and wording live on the instance so the rules read top to bottom.
    """

    def __init__(self):
        self.diversity_descriptions = {
            DiversityLevel.DIVERSE: (
                "Your music taste is highly diverse, spanning different genres, moods, and styles. "
                "You're an adventurous listener who enjoys exploring various musical landscapes."
            ),
            DiversityLevel.MODERATE: (
                "You have a moderately diverse music taste with some consistency in preferences. "
                "You enjoy variety while maintaining certain stylistic preferences."
            ),
            DiversityLevel.CONSISTENT: (
                "Your music taste shows strong consistency and focus. "
                "You have well-defined preferences and tend to stay within your comfort zone."
            ),
        }

        self.recommendation_margin = 0.2

    def generate_insights(
        self,
        tracks: Sequence[Any],
        predictions: ModelPredictions
    ) -> ListeningInsights:
        """
        Generate all insight fields for one request.

        Args:
            tracks: Normalized feature records (TrackFeatures or mappings)
            predictions: Model output for the same batch

        Returns:
            ListeningInsights
        """
        batch = FeatureBatch(tracks)
        _check_predictions(predictions)

        return ListeningInsights(
            mood=self._mood_insight(batch, predictions),
            energy=self._energy_insight(batch, predictions),
            timing=self._timing_insight(batch),
            diversity=self.diversity_descriptions[self.classify_diversity(batch)],
            patterns=self._pattern_insights(batch, predictions),
        )

    # ------------------------------------------------------------------
    # Individual insights
    # ------------------------------------------------------------------
    def _mood_insight(self, batch: FeatureBatch, predictions: ModelPredictions) -> str:
        avg_valence = batch.mean("valence")
        predicted_valence = predictions.mood_prediction["valence"]

        if predicted_valence > 0.7:
            if avg_valence > 0.7:
                return (
                    "Your music taste consistently leans towards positive, uplifting tracks. "
                    "You seem to use music to maintain or boost your mood."
                )
            return (
                "While your recent tracks show varied emotions, your listening pattern suggests "
                "a preference for uplifting music when making future choices."
            )
        if predicted_valence < 0.3:
            if avg_valence < 0.3:
                return (
                    "You gravitate towards more melancholic or introspective music. This could indicate "
                    "you use music for emotional processing or prefer deeper, more complex emotions."
                )
            return (
                "Your model predicts a shift towards more contemplative music choices, "
                "possibly indicating a change in mood or preference."
            )
        return (
            "Your music taste spans a balanced emotional range, suggesting you adapt your "
            "listening to different moods and situations."
        )

    def _energy_insight(self, batch: FeatureBatch, predictions: ModelPredictions) -> str:
        avg_energy = batch.mean("energy")
        energy_spread = batch.std("energy")
        predicted_energy = predictions.mood_prediction["energy"]

        if avg_energy > 0.7:
            if energy_spread < 0.2:
                return (
                    "You consistently prefer high-energy, danceable music. Your listening style "
                    "suggests you use music for motivation and activity."
                )
            return (
                "While you enjoy high-energy music, you also appreciate variety in intensity, "
                "showing adaptability in your musical preferences."
            )
        if avg_energy < 0.3:
            return (
                "You gravitate towards calmer, more relaxed tracks. This suggests you often use "
                "music for relaxation, focus, or introspection."
            )
        trend = "increasing" if predicted_energy > avg_energy else "decreasing"
        return (
            "Your energy preferences are moderate and balanced. The model predicts your next "
            f"choices will trend towards {trend} energy levels."
        )

    def _timing_insight(self, batch: FeatureBatch) -> str:
        avg_hour = float(np.mean([denormalize("hour_of_day", h) for h in batch.column("hour_of_day")]))
        weekend_ratio = float(np.sum(batch.column("is_weekend") > 0.5)) / len(batch)

        if avg_hour < 6:
            insight = "You're a night owl, with most listening happening in the early morning hours."
        elif avg_hour < 12:
            insight = "You're an early bird listener, preferring morning music sessions."
        elif avg_hour < 18:
            insight = "Your listening patterns center around afternoon hours, possibly during work or study."
        else:
            insight = "You're an evening listener, enjoying music during nighttime hours."

        if weekend_ratio > 0.7:
            insight += " Your listening heavily skews towards weekends, suggesting music is part of your leisure time."
        elif weekend_ratio < 0.3:
            insight += " You listen more during weekdays, possibly as part of your work or commute routine."
        else:
            insight += " Your listening is well-distributed across weekdays and weekends."

        return insight

    def classify_diversity(self, batch: FeatureBatch) -> DiversityLevel:
        avg_spread = float(np.mean([batch.std(name) for name in DIVERSITY_FEATURES]))

        if avg_spread > 0.25:
            return DiversityLevel.DIVERSE
        if avg_spread > 0.15:
            return DiversityLevel.MODERATE
        return DiversityLevel.CONSISTENT

    def _pattern_insights(self, batch: FeatureBatch, predictions: ModelPredictions) -> List[str]:
        patterns = []

        # Skips
        avg_skip_rate = batch.mean("skip_rate")
        if avg_skip_rate > 0.3:
            patterns.append("You tend to skip tracks frequently, suggesting you're selective about what holds your attention.")
        elif avg_skip_rate < 0.1:
            patterns.append("You rarely skip tracks, indicating strong satisfaction with your music choices or patient listening habits.")

        # Repeats
        if batch.mean("repeat_count") > 0.2:
            patterns.append("You frequently replay songs, suggesting you develop strong attachments to particular tracks.")

        # Musical key
        dominant_key = self._dominant_key(batch)
        if dominant_key is not None:
            patterns.append(
                f"You show a preference for music in {KEY_NAMES[dominant_key]}, which might contribute "
                "to a consistent harmonic feel in your listening."
            )

        # Tempo
        variation, tempo_range = self._tempo_profile(batch)
        if variation < 0.1:
            patterns.append(f"Your tempo preferences are consistent, clustering around {tempo_range} BPM.")
        else:
            patterns.append("Your tempo preferences vary widely, showing adaptability to different rhythmic environments.")

        # Acoustic vs electronic
        acoustic_score = self._acoustic_preference(batch)
        if acoustic_score > 0.7:
            patterns.append("You strongly prefer acoustic and organic-sounding music over electronic productions.")
        elif acoustic_score < 0.3:
            patterns.append("You lean towards electronic and heavily produced music over acoustic arrangements.")

        # Model confidence
        if predictions.confidence_scores["mood"] > 0.8:
            patterns.append("Your mood preferences are highly predictable, showing consistent emotional patterns in your music choices.")
        if predictions.confidence_scores["next_track"] > 0.8:
            patterns.append("Your listening patterns are highly consistent, making your next music choices quite predictable.")

        return patterns if patterns else [FALLBACK_PATTERN]

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------
    def key_distribution(self, batch: FeatureBatch) -> np.ndarray:
        """Share of tracks per pitch class (12 bins)."""
        keys = np.floor(batch.column("key") * 11 + 0.5).astype(int)
        counts = np.bincount(np.clip(keys, 0, 11), minlength=12)
        return counts / len(batch)

    def _dominant_key(self, batch: FeatureBatch):
        distribution = self.key_distribution(batch)
        top = int(np.argmax(distribution))
        return top if distribution[top] > 0.2 else None

    def _tempo_profile(self, batch: FeatureBatch):
        """Coefficient of variation and a BPM range label."""
        tempos = np.array([denormalize("tempo", t) for t in batch.column("tempo")])
        avg_tempo = float(np.mean(tempos))
        variation = float(np.std(tempos)) / avg_tempo if avg_tempo else 0.0

        if avg_tempo < 80:
            label = "slow (60-80)"
        elif avg_tempo < 110:
            label = "moderate (80-110)"
        elif avg_tempo < 140:
            label = "upbeat (110-140)"
        else:
            label = "fast (140+)"
        return variation, label

    def _acoustic_preference(self, batch: FeatureBatch) -> float:
        scores = (
            batch.column("acousticness") * 0.7
            + batch.column("instrumentalness") * 0.3
            - batch.column("energy") * 0.2
        )
        return float(np.mean(scores))

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------
    def generate_recommendations(
        self,
        tracks: Sequence[Any],
        predictions: ModelPredictions
    ) -> List[str]:
        """
        Genre-style suggestions from predicted-vs-observed deltas and diversity.

        Returns:
            Possibly empty list of suggestion strings
        """
        batch = FeatureBatch(tracks)
        _check_predictions(predictions)

        recommendations = []
        margin = self.recommendation_margin
        avg_valence = batch.mean("valence")
        avg_energy = batch.mean("energy")
        predicted = predictions.mood_prediction

        if predicted["valence"] > avg_valence + margin:
            recommendations.append("Try exploring more uplifting genres like reggae, pop-punk, or upbeat folk music.")
        elif predicted["valence"] < avg_valence - margin:
            recommendations.append("Consider diving into contemplative genres like ambient, melancholic indie, or classical music.")

        if predicted["energy"] > avg_energy + margin:
            recommendations.append("You might enjoy high-energy genres like electronic dance music, punk rock, or Latin rhythms.")
        elif predicted["energy"] < avg_energy - margin:
            recommendations.append("Explore calming genres like lo-fi hip hop, acoustic folk, or meditation music.")

        diversity = self.classify_diversity(batch)
        if diversity is DiversityLevel.CONSISTENT:
            recommendations.append("Challenge yourself by exploring a new genre outside your comfort zone this week.")
        elif diversity is DiversityLevel.DIVERSE:
            recommendations.append("Your diverse taste is excellent! Consider creating themed playlists to organize your broad preferences.")

        return recommendations


def generate_insights(tracks: Sequence[Any], predictions: ModelPredictions) -> ListeningInsights:
    """Convenience wrapper around ``InsightEngine.generate_insights``."""
    return InsightEngine().generate_insights(tracks, predictions)


def generate_recommendations(tracks: Sequence[Any], predictions: ModelPredictions) -> List[str]:
    """Convenience wrapper around ``InsightEngine.generate_recommendations``."""
    return InsightEngine().generate_recommendations(tracks, predictions)


def classify_diversity(tracks: Sequence[Any]) -> DiversityLevel:
    return InsightEngine().classify_diversity(FeatureBatch(tracks))
