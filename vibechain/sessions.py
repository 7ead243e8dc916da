"""
Session Builder
===============

Cuts a flat, time-ordered listening log into bounded sessions and extracts
(current track -> next track) training pairs from them.

Two strategies:
    - chunk: contiguous runs of ``session_size`` tracks (default)
    - gap:   a new session starts when the idle time between consecutive
             plays exceeds ``max_gap_minutes``
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Sequence

import numpy as np

from .config import SESSION_STRATEGIES
from .features import Track, track_features_to_vector, target_vector


@dataclass
class ListeningSession:
    """Ordered, non-empty run of plays covering [start_time, end_time)."""
    session_id: str
    tracks: List[Track]
    start_time: datetime
    end_time: datetime

    def __len__(self) -> int:
        return len(self.tracks)


@dataclass
class TrainingExample:
    """One supervised pair drawn from adjacent plays of a session."""
    inputs: np.ndarray
    target: np.ndarray
    session_id: str
    position: int


def _make_session(index: int, tracks: List[Track]) -> ListeningSession:
    last = tracks[-1]
    return ListeningSession(
        session_id=f"session-{index:05d}",
        tracks=tracks,
        start_time=tracks[0].played_at,
        end_time=last.played_at + timedelta(milliseconds=last.duration_ms or 0),
    )


def _chunk(tracks: Sequence[Track], session_size: int) -> List[List[Track]]:
    return [list(tracks[i:i + session_size]) for i in range(0, len(tracks), session_size)]


def _split_on_gaps(tracks: Sequence[Track], max_gap: timedelta) -> List[List[Track]]:
    groups: List[List[Track]] = []
    current: List[Track] = []
    for track in tracks:
        if current and track.played_at - current[-1].played_at > max_gap:
            groups.append(current)
            current = []
        current.append(track)
    if current:
        groups.append(current)
    return groups


def build_sessions(
    tracks: Sequence[Track],
    min_size: int,
    session_size: int = 10,
    strategy: str = "chunk",
    max_gap_minutes: float = 30.0,
) -> List[ListeningSession]:
    """
    Group a time-ordered track list into listening sessions.

    Args:
        tracks: Plays, already ordered by ``played_at``
        min_size: Sessions with fewer tracks are dropped
        session_size: Chunk length for the "chunk" strategy
        strategy: "chunk" or "gap"
        max_gap_minutes: Idle time that closes a session for "gap"

    Returns:
        Sessions in input order. Tracks are shared, not copied.
    """
    if min_size < 1:
        raise ValueError(f"min_size must be >= 1, got {min_size}")
    if strategy not in SESSION_STRATEGIES:
        raise ValueError(f"Unknown session strategy '{strategy}', expected one of {SESSION_STRATEGIES}")

    if strategy == "chunk":
        if session_size < 1:
            raise ValueError(f"session_size must be >= 1, got {session_size}")
        groups = _chunk(tracks, session_size)
    else:
        groups = _split_on_gaps(tracks, timedelta(minutes=max_gap_minutes))

    sessions = []
    for group in groups:
        if len(group) < min_size:
            continue
        sessions.append(_make_session(len(sessions), group))
    return sessions


def extract_training_pairs(sessions: Sequence[ListeningSession]) -> List[TrainingExample]:
    """
    Enumerate (current, next) pairs inside each session.

    Pairs never cross a session boundary, and a pair is dropped when either
    play lacks a feature payload.
    """
    examples: List[TrainingExample] = []
    for session in sessions:
        for i in range(len(session.tracks) - 1):
            current = session.tracks[i]
            following = session.tracks[i + 1]
            if current.features is None or following.features is None:
                continue
            examples.append(TrainingExample(
                inputs=track_features_to_vector(current.features),
                target=target_vector(following.features),
                session_id=session.session_id,
                position=i,
            ))
    return examples
