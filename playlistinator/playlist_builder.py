import logging
from typing import Iterator, List, Sequence

from playlistinator import spotify_service
from playlistinator.http_client import ApiError, HttpClient
from playlistinator.models import Playlist, TrackTally

logger = logging.getLogger(__name__)

BATCH_SIZE = 100  # Spotify accepts at most 100 tracks per mutation
DESCRIPTION_TOP_N = 10
BATCH_OK_STATUSES = (200, 201)


def build_description(ranking: Sequence[TrackTally], playlist_size: int = 100, history_days: int = 30) -> str:
    """
    Render the playlist description from the top of a ranking.

    Args:
        ranking: Tallies, most played first
        playlist_size: Number of songs the playlist holds
        history_days: Length of the listening window in days

    Returns:
        Header line followed by one "<k>. <artist> - <title> (<count> plays)"
        line per tally, for at most ten tallies
    """
    lines = [f"Top {playlist_size} songs from the last {history_days} days. Top {DESCRIPTION_TOP_N} most played:\n"]
    for k, tally in enumerate(ranking[:DESCRIPTION_TOP_N], start=1):
        lines.append(f"{k}. {tally.artist_name} - {tally.track_title} ({tally.count} plays)\n")
    return ''.join(lines)


def chunked(items: Sequence[str], size: int = BATCH_SIZE) -> Iterator[List[str]]:
    """Split items into consecutive batches of at most `size`."""
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def locate_or_create(http: HttpClient, token: str, name: str) -> Playlist:
    playlist = spotify_service.find_playlist(http, token, name)
    if playlist is not None:
        logger.info(f"Found playlist '{name}' ({playlist.id})")
        return playlist
    return spotify_service.create_playlist(http, token, name)


def clear_playlist(http: HttpClient, token: str, playlist_id: str, uris: Sequence[str]) -> int:
    """
    Remove `uris` from the playlist in batches.

    Failed batches are logged and skipped.

    Returns:
        Number of URIs in batches the API accepted
    """
    return _submit_batches(spotify_service.remove_tracks, "Clear", http, token, playlist_id, uris)


def append_tracks(http: HttpClient, token: str, playlist_id: str, uris: Sequence[str]) -> List[str]:
    """
    Append `uris` to the playlist in batches, in order.

    Returns:
        The URIs that were actually added
    """
    added = []
    _submit_batches(spotify_service.add_tracks, "Append", http, token, playlist_id, uris, accepted=added)
    return added


def _submit_batches(send, action, http, token, playlist_id, uris, accepted=None) -> int:
    done = 0
    for index, batch in enumerate(chunked(uris)):
        first = index * BATCH_SIZE
        last = first + len(batch) - 1
        try:
            response = send(http, token, playlist_id, batch)
        except ApiError as e:
            logger.error(f"{action} batch {first}-{last} failed: {e}")
            continue

        if response.status not in BATCH_OK_STATUSES:
            logger.warning(f"{action} batch {first}-{last} returned status {response.status}")
            continue

        done += len(batch)
        if accepted is not None:
            accepted.extend(batch)
    return done


def materialize_playlist(
    http: HttpClient,
    token: str,
    name: str,
    ranking: Sequence[TrackTally],
    uris: Sequence[str],
    playlist_size: int = 100,
    history_days: int = 30
) -> Playlist:
    """
    Make the named playlist hold exactly `uris`, in order.

    Locates the playlist (creating it if needed), removes its current
    tracks, rewrites the description from `ranking`, then appends `uris`.

    Raises:
        ApiError: If the playlist cannot be located, created or listed
    """
    playlist = locate_or_create(http, token, name)

    existing = spotify_service.get_playlist_track_uris(http, token, playlist.id)
    if existing:
        removed = clear_playlist(http, token, playlist.id, existing)
        logger.info(f"Removed {removed} of {len(existing)} existing tracks")

    description = build_description(ranking, playlist_size, history_days)
    try:
        response = spotify_service.update_description(http, token, playlist.id, description)
        if response.ok:
            playlist.description = description
        else:
            logger.warning(f"Description update returned status {response.status}")
    except ApiError as e:
        logger.error(f"Description update failed: {e}")

    playlist.uris = append_tracks(http, token, playlist.id, uris)
    logger.info(f"Added {len(playlist.uris)} of {len(uris)} tracks to '{name}'")

    return playlist
