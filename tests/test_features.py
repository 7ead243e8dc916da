import unittest
from datetime import datetime

import numpy as np

from vibechain.config import FEATURE_FIELDS
from vibechain.features import (
    TrackFeatures,
    denormalize,
    normalize_features,
    stack_vectors,
    target_vector,
    temporal_features,
    track_features_to_vector,
    vector_to_prediction,
)


def _features(**overrides) -> TrackFeatures:
    values = {name: 0.5 for name in FEATURE_FIELDS}
    values.update(overrides)
    return TrackFeatures(**values)


class TrackFeaturesToVectorTests(unittest.TestCase):
    def test_vector_follows_canonical_field_order(self) -> None:
        values = {name: (i + 1) / 40 for i, name in enumerate(FEATURE_FIELDS)}
        vector = track_features_to_vector(TrackFeatures(**values))
        self.assertEqual(vector.shape, (20,))
        for i, name in enumerate(FEATURE_FIELDS):
            self.assertAlmostEqual(vector[i], values[name])

    def test_missing_fields_default_to_zero(self) -> None:
        vector = track_features_to_vector({"valence": 0.8, "energy": 0.4})
        self.assertAlmostEqual(vector[FEATURE_FIELDS.index("valence")], 0.8)
        self.assertAlmostEqual(vector[FEATURE_FIELDS.index("energy")], 0.4)
        self.assertAlmostEqual(float(np.sum(vector)), 1.2)

    def test_garbage_values_never_raise(self) -> None:
        vector = track_features_to_vector({"valence": "not-a-number", "energy": None, "tempo": float("nan")})
        self.assertTrue(np.all(vector == 0.0))

    def test_none_record_gives_zero_vector(self) -> None:
        self.assertTrue(np.all(track_features_to_vector(None) == 0.0))

    def test_values_are_clipped_to_unit_interval(self) -> None:
        vector = track_features_to_vector({"energy": 1.7, "valence": -0.3})
        self.assertEqual(vector[FEATURE_FIELDS.index("energy")], 1.0)
        self.assertEqual(vector[FEATURE_FIELDS.index("valence")], 0.0)

    def test_stack_vectors_shape(self) -> None:
        matrix = stack_vectors([_features(), _features(energy=0.9)])
        self.assertEqual(matrix.shape, (2, 20))
        self.assertEqual(stack_vectors([]).shape, (0, 20))


class VectorToPredictionTests(unittest.TestCase):
    def test_round_trip_on_target_fields(self) -> None:
        record = _features(valence=0.91, energy=0.37, danceability=0.64)
        decoded = vector_to_prediction(track_features_to_vector(record))
        self.assertEqual(decoded, {"valence": 0.91, "energy": 0.37, "danceability": 0.64})

    def test_accepts_three_dim_output(self) -> None:
        decoded = vector_to_prediction([0.2, 0.3, 0.4])
        self.assertEqual(decoded, {"valence": 0.2, "energy": 0.3, "danceability": 0.4})

    def test_target_vector_order(self) -> None:
        target = target_vector(_features(valence=0.1, energy=0.2, danceability=0.3))
        np.testing.assert_allclose(target, [0.1, 0.2, 0.3])


class NormalizationTests(unittest.TestCase):
    def test_normalize_raw_spotify_values(self) -> None:
        features = normalize_features({
            "tempo": 125.0,
            "loudness": -30.0,
            "key": 11,
            "duration_ms": 300_000,
            "time_signature": 7,
            "repeat_count": 10,
            "valence": 0.7,
        })
        self.assertAlmostEqual(features.tempo, 0.5)
        self.assertAlmostEqual(features.loudness, 0.5)
        self.assertAlmostEqual(features.key, 1.0)
        self.assertAlmostEqual(features.duration_ms, 0.5)
        self.assertAlmostEqual(features.time_signature, 1.0)
        self.assertAlmostEqual(features.repeat_count, 1.0)
        self.assertAlmostEqual(features.valence, 0.7)
        self.assertEqual(features.skip_rate, 0.0)

    def test_denormalize_inverts_bounded_fields(self) -> None:
        self.assertAlmostEqual(denormalize("hour_of_day", 0.5), 12.0)
        self.assertAlmostEqual(denormalize("tempo", 0.5), 125.0)
        self.assertAlmostEqual(denormalize("key", 1.0), 11.0)
        self.assertAlmostEqual(denormalize("valence", 0.3), 0.3)

    def test_temporal_features_from_timestamp(self) -> None:
        saturday_evening = datetime(2024, 6, 15, 21, 30)
        raw = temporal_features(saturday_evening)
        self.assertAlmostEqual(raw["hour_of_day"], 21.5)
        self.assertEqual(raw["day_of_week"], 5)
        self.assertEqual(raw["month"], 6)
        self.assertEqual(raw["is_weekend"], 1.0)


if __name__ == "__main__":
    unittest.main()
