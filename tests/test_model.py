import os
import tempfile
import unittest
from unittest import mock

import joblib
import numpy as np

from vibechain.config import ModelConfig
from vibechain.exceptions import ModelUnavailable, PersistenceFailure, ValidationFailure
from vibechain.model import ModelPredictions, MoodModel


def _fake_data(n: int = 40, seed: int = 0):
    rng = np.random.default_rng(seed)
    inputs = rng.random((n, 20))
    targets = inputs[:, [0, 1, 2]] * 0.5 + 0.25
    return inputs, targets


def _trained_model(epochs: int = 3) -> MoodModel:
    inputs, targets = _fake_data()
    model = MoodModel(config=ModelConfig(hidden_layers=(16, 8)))
    model.build()
    model.compile(learning_rate=0.01)
    model.train(inputs, targets, epochs=epochs, batch_size=8)
    return model


class MoodModelTrainingTests(unittest.TestCase):
    def test_history_has_one_entry_per_epoch(self) -> None:
        inputs, targets = _fake_data()
        model = MoodModel()
        model.build()
        model.compile(0.001)
        history = model.train(inputs[:30], targets[:30], inputs[30:], targets[30:], epochs=4, batch_size=32)
        self.assertEqual(history.epochs_run, 4)
        self.assertEqual(len(history.val_loss), 4)
        self.assertFalse(history.stopped_early)
        self.assertTrue(all(np.isfinite(history.loss)))

    def test_train_before_compile_raises(self) -> None:
        inputs, targets = _fake_data()
        model = MoodModel()
        model.build()
        with self.assertRaises(ModelUnavailable):
            model.train(inputs, targets)

    def test_compile_rejects_non_positive_learning_rate(self) -> None:
        with self.assertRaises(ValueError):
            MoodModel().build().compile(0.0)

    def test_target_shape_is_checked(self) -> None:
        inputs, _ = _fake_data()
        model = MoodModel().build().compile()
        with self.assertRaises(ValidationFailure):
            model.train(inputs, np.zeros((len(inputs), 2)))

    def test_patience_can_stop_early(self) -> None:
        inputs, targets = _fake_data(n=20)
        model = MoodModel().build().compile(learning_rate=0.5)
        history = model.train(inputs[:15], targets[:15], inputs[15:], targets[15:],
                              epochs=200, batch_size=4, patience=1)
        self.assertTrue(history.stopped_early)
        self.assertLess(history.epochs_run, 200)
        self.assertEqual(len(history.val_loss), history.epochs_run)

    def test_pairs_are_reshuffled_every_epoch(self) -> None:
        inputs, targets = _fake_data(n=30)
        inputs[:, 0] = np.arange(30) / 30
        model = MoodModel().build().compile()
        estimator = model._estimator
        with mock.patch.object(estimator, "partial_fit", wraps=estimator.partial_fit) as fit:
            model.train(inputs, targets, epochs=3, batch_size=8)

        self.assertEqual(fit.call_count, 3)
        orders = [call.args[0][:, 0].copy() for call in fit.call_args_list]
        identity = inputs[:, 0]
        for order in orders:
            np.testing.assert_array_equal(np.sort(order), identity)
            self.assertFalse(np.array_equal(order, identity))
        self.assertFalse(np.array_equal(orders[0], orders[1]))
        self.assertFalse(np.array_equal(orders[1], orders[2]))

    def test_full_budget_without_patience(self) -> None:
        inputs, targets = _fake_data(n=20)
        model = MoodModel().build().compile(learning_rate=0.01)
        history = model.train(inputs[:15], targets[:15], inputs[15:], targets[15:], epochs=6, batch_size=4)
        self.assertEqual(history.epochs_run, 6)
        self.assertFalse(history.stopped_early)


class MoodModelInferenceTests(unittest.TestCase):
    def test_predict_before_training_raises(self) -> None:
        with self.assertRaises(ModelUnavailable):
            MoodModel().predict(np.zeros((1, 20)))

    def test_predict_shape_and_inputs_untouched(self) -> None:
        model = _trained_model()
        inputs, _ = _fake_data(n=5, seed=3)
        before = inputs.copy()
        outputs = model.predict(inputs)
        self.assertEqual(outputs.shape, (5, 3))
        np.testing.assert_array_equal(inputs, before)

    def test_predict_accepts_single_vector(self) -> None:
        model = _trained_model()
        self.assertEqual(model.predict(np.full(20, 0.5)).shape, (1, 3))

    def test_predict_rejects_wrong_width(self) -> None:
        model = _trained_model()
        with self.assertRaises(ValidationFailure):
            model.predict(np.zeros((2, 19)))

    def test_predict_rejects_nan(self) -> None:
        model = _trained_model()
        bad = np.zeros((1, 20))
        bad[0, 4] = np.nan
        with self.assertRaises(ValidationFailure):
            model.predict(bad)

    def test_predict_is_deterministic(self) -> None:
        model = _trained_model()
        inputs, _ = _fake_data(n=4, seed=9)
        np.testing.assert_array_equal(model.predict(inputs), model.predict(inputs))


class MoodModelPersistenceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def test_save_then_load_reproduces_predictions(self) -> None:
        model = _trained_model()
        path = os.path.join(self.tmp.name, "nested", "model.joblib")
        model.save(path)
        self.assertTrue(os.path.exists(path))

        restored = MoodModel.from_path(path)
        inputs, _ = _fake_data(n=6, seed=5)
        np.testing.assert_allclose(restored.predict(inputs), model.predict(inputs))
        self.assertEqual(restored.info()["hidden_layers"], [16, 8])

    def test_missing_file_raises_persistence_failure(self) -> None:
        with self.assertRaises(PersistenceFailure):
            MoodModel().load(os.path.join(self.tmp.name, "nope.joblib"))

    def test_dimension_mismatch_keeps_current_weights(self) -> None:
        model = _trained_model()
        path = os.path.join(self.tmp.name, "model.joblib")
        model.save(path)

        other = _trained_model(epochs=1)
        sample = np.full((2, 20), 0.3)
        expected = other.predict(sample)

        payload = joblib.load(path)
        payload["input_dim"] = 12
        joblib.dump(payload, path)

        with self.assertRaises(PersistenceFailure):
            other.load(path)
        np.testing.assert_array_equal(other.predict(sample), expected)

    def test_foreign_file_is_rejected(self) -> None:
        path = os.path.join(self.tmp.name, "junk.joblib")
        joblib.dump({"weights": [1, 2, 3]}, path)
        with self.assertRaises(PersistenceFailure):
            MoodModel().load(path)

    def test_save_untrained_raises(self) -> None:
        with self.assertRaises(ModelUnavailable):
            MoodModel().build().save(os.path.join(self.tmp.name, "m.joblib"))


class ModelPredictionsTests(unittest.TestCase):
    def test_summary_reads_first_row(self) -> None:
        outputs = np.array([[0.9, 0.8, 0.7], [0.1, 0.1, 0.1], [0.2, 0.2, 0.2]])
        predictions = ModelPredictions.from_outputs(outputs, embedding_size=4)
        self.assertEqual(predictions.mood_prediction, {"valence": 0.9, "energy": 0.8, "arousal": 0.7})
        self.assertEqual(predictions.next_track_prediction, {"valence": 0.9, "energy": 0.8, "danceability": 0.7})
        self.assertEqual(predictions.pattern_embedding, [0.9, 0.8, 0.7, 0.1])
        self.assertEqual(predictions.confidence_scores, {"mood": 0.85, "next_track": 0.80})

    def test_embedding_shorter_than_requested(self) -> None:
        predictions = ModelPredictions.from_outputs(np.array([[0.1, 0.2, 0.3]]))
        self.assertEqual(len(predictions.pattern_embedding), 3)

    def test_to_dict_can_drop_embeddings(self) -> None:
        predictions = ModelPredictions.from_outputs(np.array([[0.1, 0.2, 0.3]]))
        self.assertNotIn("pattern_embedding", predictions.to_dict(include_embeddings=False))
        self.assertIn("pattern_embedding", predictions.to_dict())

    def test_empty_outputs_raise(self) -> None:
        with self.assertRaises(ValidationFailure):
            ModelPredictions.from_outputs(np.zeros((0, 3)))


if __name__ == "__main__":
    unittest.main()
