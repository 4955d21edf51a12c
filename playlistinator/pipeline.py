"""
Sync pipeline
Last.fm history -> ranking -> Spotify search -> playlist
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from playlistinator.aggregation import history_start, tally
from playlistinator.config import PIPELINE_KEYS, Config
from playlistinator.http_client import HttpClient
from playlistinator.lastfm import fetch_plays
from playlistinator.models import TrackTally
from playlistinator.playlist_builder import materialize_playlist
from playlistinator.spotify_auth import refresh_access_token
from playlistinator.spotify_service import resolve_tracks

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    playlist_id: str
    playlist_name: str
    count: int
    ranking: List[TrackTally] = field(default_factory=list)
    unresolved: List[TrackTally] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Playlist '{self.playlist_name}' updated with {self.count} songs"


def run_pipeline(config: Config, http: Optional[HttpClient] = None, now: Optional[datetime] = None) -> PipelineResult:
    """
    Run one full sync.

    Args:
        config: Validated before any request is made
        http: Client to use; a fresh one is created and closed when omitted
        now: Reference time for the listening window

    Raises:
        ConfigError: If a required key is missing
        ApiError: On any failure that leaves the run unable to continue
    """
    config.require(*PIPELINE_KEYS)

    owns_client = http is None
    if owns_client:
        http = HttpClient(timeout=config.request_timeout)

    try:
        since = history_start(config.history_days, now)
        plays = fetch_plays(http, config.lastfm_api_key, config.lastfm_user, since)

        ranking = tally(plays)
        logger.info(f"{len(plays)} plays across {len(ranking)} unique tracks")

        access = refresh_access_token(http, config)

        resolutions = resolve_tracks(http, access.token, ranking, limit=config.playlist_size)
        uris = [r.uri for r in resolutions if r.resolved]
        unresolved = [r.tally for r in resolutions if not r.resolved]

        playlist = materialize_playlist(
            http,
            access.token,
            config.playlist_name,
            ranking,
            uris,
            playlist_size=config.playlist_size,
            history_days=config.history_days
        )
    finally:
        if owns_client:
            http.close()

    return PipelineResult(
        playlist_id=playlist.id,
        playlist_name=playlist.name,
        count=len(playlist.uris),
        ranking=ranking,
        unresolved=unresolved
    )
