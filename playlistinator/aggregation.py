from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from playlistinator.models import Play, TrackTally


def tally(plays: Iterable[Play]) -> List[TrackTally]:
    """
    Count plays per unique track and rank them.

    Ordering is count descending, then artist, title and album ascending,
    so the same plays always produce the same ranking.

    Args:
        plays: Play objects in any order

    Returns:
        List of TrackTally objects, most played first
    """
    counts = Counter(play.key for play in plays)

    ranking = [TrackTally(key=key, count=count) for key, count in counts.items()]
    ranking.sort(key=lambda t: (-t.count, t.artist_name, t.track_title, t.album_name))

    return ranking


def history_start(days: int, now: Optional[datetime] = None) -> int:
    """Unix timestamp `days` days before `now` (defaults to the current time)."""
    now = now or datetime.now(timezone.utc)
    return int((now - timedelta(days=days)).timestamp())
