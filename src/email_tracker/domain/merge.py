"""Merge algorithm reconciling two replicas of the same tracking session.

The merge is best-effort rather than a CRDT:

- scalar fields prefer whichever side has a value, with the existing side
  winning when both are set and differ;
- event sequences are a multiset union keyed by
  ``(timestamp, ipAddress, linkId)``: each key occurs as often as on the side
  holding more copies of it, and the result is re-sorted by timestamp;
- status is recomputed from the merged sequences.
"""

from collections import Counter
from typing import Dict, List, Sequence, TypeVar

from .models import OpenEvent, TrackingSession, derive_status

E = TypeVar("E", bound=OpenEvent)


def _union_events(existing: Sequence[E], incoming: Sequence[E]) -> List[E]:
    """Union two event sequences by identity key, ordered by timestamp.

    Repeated fetches recorded on one side are kept; an incoming event only
    adds a copy when the incoming side holds more copies of its key.
    Sorting is stable and existing events come first, so ties on timestamp
    keep existing-then-incoming order.
    """
    counts = Counter(event.identity_key() for event in existing)
    merged: List[E] = [event.model_copy(deep=True) for event in existing]
    for event in incoming:
        key = event.identity_key()
        if counts[key] > 0:
            counts[key] -= 1
            continue
        merged.append(event.model_copy(deep=True))
    merged.sort(key=lambda e: e.timestamp)
    return merged


def merge_sessions(existing: TrackingSession, incoming: TrackingSession) -> TrackingSession:
    """Merge ``incoming`` into ``existing`` and return a new session.

    Neither argument is modified.

    Raises:
        ValueError: If the two sessions have different ids
    """
    if existing.id != incoming.id:
        raise ValueError(
            f"Cannot merge sessions with different ids: {existing.id} != {incoming.id}"
        )

    pixel_loads = _union_events(existing.pixel_loads, incoming.pixel_loads)
    link_clicks = _union_events(existing.link_clicks, incoming.link_clicks)

    merged = TrackingSession(
        id=existing.id,
        email_subject=existing.email_subject or incoming.email_subject,
        recipients=list(existing.recipients or incoming.recipients),
        sent_timestamp=(
            existing.sent_timestamp
            if existing.sent_timestamp is not None
            else incoming.sent_timestamp
        ),
        pixel_loads=pixel_loads,
        link_clicks=link_clicks,
    )
    merged.status = derive_status(merged.pixel_loads, merged.link_clicks)
    return merged


def merge_session_maps(
    existing: Dict[str, TrackingSession], incoming: Dict[str, TrackingSession]
) -> Dict[str, TrackingSession]:
    """Merge two id -> session mappings key by key.

    Ids present on only one side are carried through unchanged.
    """
    merged = {session_id: session.copy_deep() for session_id, session in existing.items()}
    for session_id, session in incoming.items():
        if session_id in merged:
            merged[session_id] = merge_sessions(merged[session_id], session)
        else:
            merged[session_id] = session.copy_deep()
    return merged
