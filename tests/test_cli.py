import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

import numpy as np
import pandas as pd

from vibechain.cli import create_parser, main
from vibechain.config import FEATURE_FIELDS
from vibechain.model import MoodModel


def _fake_csv(path: str, n: int = 30) -> None:
    rows = []
    for i in range(n):
        rows.append({
            "track_id": f"id{i}",
            "track_name": f"Song {i}",
            "artists": f"Artist {i % 5}",
            "album_name": "Record",
            "popularity": 40,
            "duration_ms": 180_000 + 1000 * i,
            "danceability": (i % 7) / 7,
            "energy": (i % 5) / 5,
            "key": i % 12,
            "loudness": -8.0,
            "mode": i % 2,
            "speechiness": 0.04,
            "acousticness": 0.3,
            "instrumentalness": 0.0,
            "liveness": 0.12,
            "valence": (i % 3) / 3,
            "tempo": 90.0 + i,
            "time_signature": 4,
        })
    pd.DataFrame(rows).to_csv(path, index=False)


class CreateParserTests(unittest.TestCase):
    def test_train_defaults(self) -> None:
        args = create_parser().parse_args(["train", "--csv", "x.csv"])
        self.assertEqual(args.command, "train")
        self.assertEqual(args.csv, "x.csv")
        self.assertEqual(args.session_strategy, "chunk")

    def test_analyze_requires_input(self) -> None:
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                create_parser().parse_args(["analyze"])


class MainTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.csv_path = os.path.join(self.tmp.name, "tracks.csv")
        self.model_path = os.path.join(self.tmp.name, "model.joblib")
        _fake_csv(self.csv_path)

    def _run(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(argv)
        return code, out.getvalue(), err.getvalue()

    def test_train_then_analyze(self) -> None:
        code, out, _ = self._run([
            "train", "--csv", self.csv_path, "--epochs", "2", "--model-path", self.model_path,
        ])
        self.assertEqual(code, 0)
        report = json.loads(out)
        self.assertEqual(report["n_examples"], 27)
        self.assertTrue(os.path.exists(self.model_path))

        request_path = os.path.join(self.tmp.name, "request.json")
        with open(request_path, "w", encoding="utf-8") as f:
            json.dump({"tracks": [{name: 0.4 for name in FEATURE_FIELDS}] * 5}, f)
        output_path = os.path.join(self.tmp.name, "analysis.json")

        code, _, _ = self._run([
            "analyze", "-i", request_path, "--model-path", self.model_path,
            "--recommendations", "-o", output_path,
        ])
        self.assertEqual(code, 0)
        with open(output_path, encoding="utf-8") as f:
            analysis = json.load(f)
        self.assertEqual(analysis["metadata"]["tracks_analyzed"], 5)
        self.assertIn("insights", analysis)
        self.assertIn("recommendations", analysis)

    def test_analyze_without_model_fails_cleanly(self) -> None:
        request_path = os.path.join(self.tmp.name, "request.json")
        with open(request_path, "w", encoding="utf-8") as f:
            json.dump({"tracks": [{name: 0.4 for name in FEATURE_FIELDS}]}, f)
        code, _, err = self._run(["analyze", "-i", request_path, "--model-path", self.model_path])
        self.assertEqual(code, 1)
        self.assertIn("Error:", err)

    def test_non_object_request_fails_cleanly(self) -> None:
        model = MoodModel().build().compile()
        model.train(np.full((4, 20), 0.5), np.full((4, 3), 0.5), epochs=1)
        model.save(self.model_path)

        request_path = os.path.join(self.tmp.name, "request.json")
        with open(request_path, "w", encoding="utf-8") as f:
            json.dump([{name: 0.4 for name in FEATURE_FIELDS}], f)
        code, _, err = self._run([
            "analyze", "-i", request_path, "--model-path", self.model_path, "--recommendations", "--no-insights",
        ])
        self.assertEqual(code, 1)
        self.assertIn("Validation failed", err)

    def test_invalid_environment_config_fails_cleanly(self) -> None:
        with mock.patch.dict(os.environ, {"VIBECHAIN_TRAINING_EPOCHS": "0"}):
            code, _, err = self._run(["train", "--csv", self.csv_path, "--model-path", self.model_path])
        self.assertEqual(code, 1)
        self.assertIn("epochs", err)
        self.assertFalse(os.path.exists(self.model_path))

    def test_invalid_cli_value_fails_cleanly(self) -> None:
        code, _, err = self._run(["train", "--csv", self.csv_path, "--epochs", "0",
                                  "--model-path", self.model_path])
        self.assertEqual(code, 1)
        self.assertIn("epochs must be >= 1", err)

    def test_missing_csv_fails_cleanly(self) -> None:
        code, _, err = self._run(["train", "--csv", os.path.join(self.tmp.name, "none.csv"),
                                  "--model-path", self.model_path])
        self.assertEqual(code, 1)
        self.assertIn("Corpus not found", err)


if __name__ == "__main__":
    unittest.main()
