"""
CSV Corpus Loader
=================

Reads a Spotify-style tracks CSV (e.g. the Kaggle "Spotify Tracks Dataset")
into ``Track`` records with normalized feature payloads.

Expected columns:
    id | track_id, name | track_name, artist | artists, album | album_name,
    duration_ms, popularity and the raw audio features
    (danceability, energy, key, loudness, mode, speechiness, acousticness,
    instrumentalness, liveness, valence, tempo, time_signature).

Optional columns:
    played_at, skip_rate, repeat_count, playlist_position

When ``played_at`` is absent, plays are laid out back to back from a fixed
base time so temporal features are reproducible.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from loguru import logger

from .features import Track, normalize_features, temporal_features

AUDIO_COLUMNS = [
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
    "time_signature",
]

BEHAVIOR_COLUMNS = ["skip_rate", "repeat_count", "playlist_position"]

COLUMN_ALIASES = {
    "id": ["id", "track_id"],
    "name": ["name", "track_name"],
    "artist": ["artist", "artists"],
    "album": ["album", "album_name"],
}

DEFAULT_BASE_TIME = datetime(2024, 1, 1, 8, 0, 0)


class CSVCorpusLoader:
    """
    Loads listening data from a CSV file.

    Usage:
        loader = CSVCorpusLoader("data/dataset.csv")
        tracks = loader.load_tracks(limit=5000)
    """

    def __init__(self, csv_path: str, base_time: datetime = DEFAULT_BASE_TIME):
        """
        Args:
            csv_path: Path to the CSV file
            base_time: First synthesized play time when there is no played_at column
        """
        self.csv_path = Path(csv_path)
        self.base_time = base_time
        self._frame: Optional[pd.DataFrame] = None

    @property
    def frame(self) -> pd.DataFrame:
        if self._frame is None:
            self._frame = self._read()
        return self._frame

    def _read(self) -> pd.DataFrame:
        if not self.csv_path.exists():
            raise FileNotFoundError(f"Corpus not found: {self.csv_path}")

        df = pd.read_csv(self.csv_path)
        logger.info(f"Loaded {len(df)} rows from {self.csv_path}")

        renames = {}
        for canonical, aliases in COLUMN_ALIASES.items():
            for alias in aliases:
                if alias in df.columns:
                    renames[alias] = canonical
                    break
        df = df.rename(columns=renames)

        missing = [c for c in ["id", "duration_ms"] + AUDIO_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Corpus is missing required columns: {', '.join(missing)}")

        for column in ("name", "artist", "album"):
            if column not in df.columns:
                df[column] = ""
        if "popularity" not in df.columns:
            df["popularity"] = 0

        if "played_at" in df.columns:
            df["played_at"] = pd.to_datetime(df["played_at"], errors="coerce")
        return df

    def _play_times(self, df: pd.DataFrame) -> List[datetime]:
        if "played_at" in df.columns:
            return [ts.to_pydatetime() if not pd.isna(ts) else None for ts in df["played_at"]]

        # Back-to-back plays starting at base_time
        durations = df["duration_ms"].fillna(0).astype(np.int64).to_numpy()
        offsets = np.concatenate([[0], np.cumsum(durations)[:-1]]) if len(durations) else []
        return [self.base_time + timedelta(milliseconds=int(ms)) for ms in offsets]

    def load_tracks(self, limit: Optional[int] = None) -> List[Track]:
        """
        Build Track records in file order.

        Rows missing any audio feature get ``features=None``; rows with an
        unparseable ``played_at`` are skipped.
        """
        df = self.frame if limit is None else self.frame.head(limit)
        played_at = self._play_times(df)

        tracks = []
        skipped = 0
        for (_, row), played in zip(df.iterrows(), played_at):
            if played is None:
                skipped += 1
                continue

            features = None
            if not row[AUDIO_COLUMNS].isna().any():
                raw: Dict[str, float] = {c: float(row[c]) for c in AUDIO_COLUMNS}
                raw["duration_ms"] = float(row["duration_ms"]) if not pd.isna(row["duration_ms"]) else 0.0
                raw.update(temporal_features(played))
                for column in BEHAVIOR_COLUMNS:
                    if column in df.columns and not pd.isna(row[column]):
                        raw[column] = float(row[column])
                features = normalize_features(raw)

            tracks.append(Track(
                id=str(row["id"]),
                name=str(row["name"]) if not pd.isna(row["name"]) else "",
                artist=str(row["artist"]) if not pd.isna(row["artist"]) else "",
                album=str(row["album"]) if not pd.isna(row["album"]) else "",
                played_at=played,
                duration_ms=int(row["duration_ms"]) if not pd.isna(row["duration_ms"]) else 0,
                popularity=int(row["popularity"]) if not pd.isna(row["popularity"]) else 0,
                features=features,
            ))

        if skipped:
            logger.warning(f"Skipped {skipped} rows with unparseable played_at")
        return tracks

    def get_stats(self) -> Dict:
        """Dataset summary in raw units."""
        df = self.frame
        return {
            "total_tracks": int(len(df)),
            "unique_artists": int(df["artist"].nunique()),
            "avg_danceability": float(df["danceability"].mean()),
            "avg_energy": float(df["energy"].mean()),
            "avg_valence": float(df["valence"].mean()),
            "avg_tempo": float(df["tempo"].mean()),
            "missing_features": int(df[AUDIO_COLUMNS].isna().any(axis=1).sum()),
        }

    def get_sample_tracks(self, n: int = 3) -> List[Track]:
        return self.load_tracks(limit=n)
