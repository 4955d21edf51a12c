"""
Spotify API Service
Catalog search and the playlist endpoints the sync rewrites
"""

import logging
from typing import Iterable, List, Optional

from playlistinator.http_client import ApiError, HttpClient, ProtocolError, ensure_status
from playlistinator.models import Playlist, Resolution, TrackTally

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE = 'https://api.spotify.com/v1'

PLAYLIST_PAGE_LIMIT = 50
TRACK_PAGE_LIMIT = 100
PLACEHOLDER_DESCRIPTION = 'Generated from Last.fm listening history'


def build_search_query(artist: str, title: str) -> str:
    # Field filters carry the raw text; requests URL-encodes the whole value
    return f"track:{title} artist:{artist}"


def search_track_uri(http: HttpClient, token: str, artist: str, title: str) -> Optional[str]:
    """
    Look up the best catalog match for an artist and title.

    Returns:
        URI of the first search hit, or None if there was no hit or the
        request failed in any way
    """
    params = {
        'q': build_search_query(artist, title),
        'type': 'track',
        'limit': 1
    }

    try:
        response = http.get(f"{SPOTIFY_API_BASE}/search", params=params, token=token)
        ensure_status(response, f"Search for {artist} - {title}")
    except ApiError as e:
        logger.warning(f"Search failed for {artist} - {title}: {e}")
        return None

    try:
        items = response.body['tracks']['items']
        if not items:
            return None
        return items[0]['uri']
    except (KeyError, IndexError, TypeError):
        logger.warning(f"Malformed search response for {artist} - {title}")
        return None


def resolve_tracks(http: HttpClient, token: str, ranking: Iterable[TrackTally], limit: Optional[int] = None) -> List[Resolution]:
    """
    Resolve tallies to catalog URIs in ranking order.

    Stops early once `limit` tallies have resolved. Unresolved tallies are
    logged and kept in the result with uri=None.
    """
    resolutions = []
    resolved = 0

    for tally in ranking:
        if limit is not None and resolved >= limit:
            break

        uri = search_track_uri(http, token, tally.artist_name, tally.track_title)
        if uri is None:
            logger.warning(f"No Spotify match for {tally.artist_name} - {tally.track_title}")
        else:
            resolved += 1
        resolutions.append(Resolution(tally=tally, uri=uri))

    logger.info(f"Resolved {resolved} of {len(resolutions)} tracks")
    return resolutions


def get_current_user_id(http: HttpClient, token: str) -> str:
    """Get the authenticated user's Spotify id"""
    response = ensure_status(http.get(f"{SPOTIFY_API_BASE}/me", token=token), "Get user profile")

    user_id = response.body.get('id') if isinstance(response.body, dict) else None
    if not user_id:
        raise ProtocolError("User profile has no id", status=response.status)

    return user_id


def find_playlist(http: HttpClient, token: str, name: str) -> Optional[Playlist]:
    """
    Find one of the user's playlists by exact name.

    Walks every page of /me/playlists. When several playlists share the
    name the first one listed wins.
    """
    url = f"{SPOTIFY_API_BASE}/me/playlists"
    params = {'limit': PLAYLIST_PAGE_LIMIT}
    matches = []

    while url:
        response = ensure_status(http.get(url, params=params, token=token), "List playlists")
        body = _page_body(response, "List playlists")

        for item in body.get('items') or []:
            if isinstance(item, dict) and item.get('name') == name:
                matches.append(item)

        url = body.get('next')
        params = None  # next already carries the query string

    if not matches:
        return None

    if len(matches) > 1:
        logger.warning(f"{len(matches)} playlists are named '{name}', using {matches[0].get('id')}")

    item = matches[0]
    if not item.get('id'):
        raise ProtocolError(f"Playlist '{name}' has no id")
    return Playlist(id=item['id'], name=item['name'], description=item.get('description') or '')


def _page_body(response, action) -> dict:
    if not isinstance(response.body, dict):
        raise ProtocolError(f"{action} returned an unexpected body", status=response.status)
    return response.body


def create_playlist(http: HttpClient, token: str, name: str, description: str = PLACEHOLDER_DESCRIPTION) -> Playlist:
    """Create a new private playlist for the user"""
    user_id = get_current_user_id(http, token)

    data = {
        'name': name,
        'description': description,
        'public': False
    }

    response = http.post(f"{SPOTIFY_API_BASE}/users/{user_id}/playlists", json_body=data, token=token)
    ensure_status(response, "Create playlist", expected=(200, 201))

    playlist_id = response.body.get('id') if isinstance(response.body, dict) else None
    if not playlist_id:
        raise ProtocolError("Created playlist has no id", status=response.status)

    logger.info(f"Created playlist '{name}' ({playlist_id})")
    return Playlist(id=playlist_id, name=name, description=description)


def get_playlist_track_uris(http: HttpClient, token: str, playlist_id: str) -> List[str]:
    """List every track URI currently in a playlist, following the next cursor"""
    url = f"{SPOTIFY_API_BASE}/playlists/{playlist_id}/tracks"
    params = {'limit': TRACK_PAGE_LIMIT}
    uris = []

    while url:
        response = ensure_status(http.get(url, params=params, token=token), "List playlist tracks")
        body = _page_body(response, "List playlist tracks")

        for item in body.get('items') or []:
            # Removed and local tracks come back with a null track
            track = item.get('track') if isinstance(item, dict) else None
            if isinstance(track, dict) and track.get('uri'):
                uris.append(track['uri'])

        url = body.get('next')
        params = None

    return uris


def remove_tracks(http: HttpClient, token: str, playlist_id: str, uris: List[str]):
    data = {'tracks': [{'uri': uri} for uri in uris]}
    return http.delete(f"{SPOTIFY_API_BASE}/playlists/{playlist_id}/tracks", json_body=data, token=token)


def add_tracks(http: HttpClient, token: str, playlist_id: str, uris: List[str]):
    data = {'uris': uris}
    return http.post(f"{SPOTIFY_API_BASE}/playlists/{playlist_id}/tracks", json_body=data, token=token)


def update_description(http: HttpClient, token: str, playlist_id: str, description: str):
    data = {'description': description}
    return http.put(f"{SPOTIFY_API_BASE}/playlists/{playlist_id}", json_body=data, token=token)
