"""Data models and configuration.

Pydantic models and configuration:
- models: Canonical anime, episode, streaming and health models
- config: Centralized configuration (Pydantic Settings)
"""

from models.models import (
    AnimeRecord,
    BrowseFilters,
    ContentMode,
    EpisodeRecord,
    EpisodeServer,
    HealthStatus,
    Outcome,
    RankedAnime,
    SearchPage,
    SourceHealth,
    StreamingBundle,
    VideoVariant,
)
from models.config import settings, get_data_path

__all__ = [
    "AnimeRecord",
    "BrowseFilters",
    "ContentMode",
    "EpisodeRecord",
    "EpisodeServer",
    "HealthStatus",
    "Outcome",
    "RankedAnime",
    "SearchPage",
    "SourceHealth",
    "StreamingBundle",
    "VideoVariant",
    "settings",
    "get_data_path",
]
