"""Request schemas for the analyze operation."""
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import MAX_TRACKS, MODEL_VERSION
from .exceptions import ValidationFailure
from .features import TrackFeatures

_UNIT = dict(ge=0.0, le=1.0)


class TrackFeaturesPayload(BaseModel):
    """One normalized track as it arrives over the wire."""
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    danceability: float = Field(**_UNIT)
    energy: float = Field(**_UNIT)
    key: float = Field(**_UNIT)
    loudness: float = Field(**_UNIT)
    mode: float = Field(**_UNIT)
    speechiness: float = Field(**_UNIT)
    acousticness: float = Field(**_UNIT)
    instrumentalness: float = Field(**_UNIT)
    liveness: float = Field(**_UNIT)
    valence: float = Field(**_UNIT)
    tempo: float = Field(**_UNIT)
    duration_ms: float = Field(**_UNIT)
    time_signature: float = Field(**_UNIT)
    hour_of_day: float = Field(**_UNIT)
    day_of_week: float = Field(**_UNIT)
    month: float = Field(**_UNIT)
    is_weekend: float = Field(**_UNIT)
    skip_rate: float = Field(**_UNIT)
    repeat_count: float = Field(**_UNIT)
    playlist_position: float = Field(**_UNIT)

    def to_features(self) -> TrackFeatures:
        return TrackFeatures(**self.model_dump())


class AnalyzeOptions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    include_insights: bool = True
    include_embeddings: bool = False
    include_recommendations: bool = False
    model_version: str = MODEL_VERSION


class AnalyzeRequest(BaseModel):
    """Body of an analyze call: 1 to MAX_TRACKS tracks plus options."""
    model_config = ConfigDict(extra="ignore")

    tracks: List[TrackFeaturesPayload] = Field(min_length=1, max_length=MAX_TRACKS)
    options: AnalyzeOptions = Field(default_factory=AnalyzeOptions)

    def track_features(self) -> List[TrackFeatures]:
        return [t.to_features() for t in self.tracks]


def _format_errors(error: ValidationError) -> str:
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        messages.append(f"{location}: {detail['msg']}")
    return ", ".join(messages)


def validate_analyze_request(data: Any) -> AnalyzeRequest:
    """Validate a raw request body, raising ValidationFailure with every problem found."""
    try:
        return AnalyzeRequest.model_validate(data)
    except ValidationError as e:
        raise ValidationFailure(f"Validation failed: {_format_errors(e)}") from e


def validate_track_features(data: Any) -> TrackFeatures:
    """Validate a single track payload."""
    try:
        return TrackFeaturesPayload.model_validate(data).to_features()
    except ValidationError as e:
        raise ValidationFailure(f"Track features validation failed: {_format_errors(e)}") from e
