"""
VibeChain - Listening History Analyzer
======================================

Predicts the mood of a listener's next track from normalized track features
and turns the same features into plain-language listening insights.

Modules:
    - config: Configuration and constants
    - exceptions: Typed errors
    - features: Track records and the feature vector codec
    - sessions: Session building and training pair extraction
    - model: Mood regression model and prediction summaries
    - pipeline: Offline training pipeline
    - corpus: CSV corpus loader
    - insights: Insight and recommendation generation
    - schemas: Request validation
    - analyzer: Serving-time analysis with an owned model handle
    - cli: Command-line interface
"""

__version__ = "1.0.0"
__author__ = "VibeChain Team"
