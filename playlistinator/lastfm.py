"""
Last.fm scrobble ingest
Pulls user.getrecenttracks page by page and flattens it into Play objects
"""

import logging
from typing import Any, List

from playlistinator.http_client import HttpClient, ProtocolError, ensure_status, error_message
from playlistinator.models import Play

logger = logging.getLogger(__name__)

LASTFM_API_URL = 'https://ws.audioscrobbler.com/2.0/'
PAGE_LIMIT = 1000  # Largest page user.getrecenttracks allows


def fetch_plays(http: HttpClient, api_key: str, user: str, since_unix: int, limit: int = PAGE_LIMIT) -> List[Play]:
    """
    Fetch every scrobble for a user since a unix timestamp.

    Page 1 is requested first; its @attr.totalPages decides how many more
    pages follow. Any failure raises and nothing collected so far is returned.

    Args:
        http: Client used for the requests
        api_key: Last.fm API key
        user: Last.fm username
        since_unix: Lower bound for scrobble timestamps (inclusive)
        limit: Page size

    Returns:
        List of Play objects in feed order

    Raises:
        TransportError: If a page could not be fetched
        ProtocolError: If a page came back with an error or malformed body
    """
    recent = _fetch_page(http, api_key, user, since_unix, limit, page=1)
    total_pages = parse_total_pages(recent)
    plays = normalize_tracks(recent.get('track'))

    logger.info(f"Last.fm page 1/{total_pages}: {len(plays)} plays")

    for page in range(2, total_pages + 1):
        recent = _fetch_page(http, api_key, user, since_unix, limit, page=page)
        page_plays = normalize_tracks(recent.get('track'))
        plays.extend(page_plays)
        logger.info(f"Last.fm page {page}/{total_pages}: {len(page_plays)} plays")

    logger.info(f"Fetched {len(plays)} plays for {user} since {since_unix}")
    return plays


def _fetch_page(http, api_key, user, since_unix, limit, page) -> dict:
    params = {
        'method': 'user.getrecenttracks',
        'user': user,
        'api_key': api_key,
        'format': 'json',
        'from': since_unix,
        'limit': limit,
        'page': page
    }
    response = http.get(LASTFM_API_URL, params=params)
    ensure_status(response, f"Last.fm recent tracks page {page}")

    body = response.body
    if not isinstance(body, dict):
        raise ProtocolError(f"Last.fm page {page} returned an unexpected body", status=response.status)

    # Last.fm reports some failures with a 200 and an error payload
    if 'error' in body:
        raise ProtocolError(f"Last.fm page {page} failed: {error_message(body)}", status=response.status)

    recent = body.get('recenttracks')
    if not isinstance(recent, dict):
        raise ProtocolError(f"Last.fm page {page} has no recenttracks", status=response.status)

    return recent


def parse_total_pages(recent: dict) -> int:
    """Read @attr.totalPages, falling back to a single page."""
    attr = recent.get('@attr')
    if not isinstance(attr, dict):
        return 1
    try:
        return int(attr.get('totalPages'))
    except (TypeError, ValueError):
        logger.warning(f"Unparseable totalPages {attr.get('totalPages')!r}, assuming 1")
        return 1


def normalize_tracks(track_field: Any) -> List[Play]:
    """
    Flatten the recenttracks.track field into Plays.

    Last.fm returns an array of track objects, except when a page holds a
    single play, in which case the object is returned bare.
    """
    if isinstance(track_field, list):
        tracks = track_field
    elif isinstance(track_field, dict):
        tracks = [track_field]
    elif track_field is None:
        return []
    else:
        logger.warning(f"Skipping track field of unexpected type {type(track_field).__name__}")
        return []

    plays = []
    for track in tracks:
        if not isinstance(track, dict):
            logger.warning(f"Skipping track entry of unexpected type {type(track).__name__}")
            continue
        plays.append(normalize_track(track))
    return plays


def normalize_track(track: dict) -> Play:
    return Play(
        artist_name=_text(track.get('artist')),
        track_title=_text(track.get('name')),
        album_name=_text(track.get('album'))
    )


def _text(value) -> str:
    # Artist and album are {"#text": ...} objects, name is a plain string
    if isinstance(value, dict):
        value = value.get('#text')
    return value if isinstance(value, str) else ''
