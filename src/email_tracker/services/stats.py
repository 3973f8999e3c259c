"""Aggregated engagement statistics read by the presentation layer."""

import json
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional

from pydantic.alias_generators import to_camel

from ..core.enums import ActivityType, SessionStatus
from ..domain.models import TrackingSession, sessions_to_wire


@dataclass
class EngagementStats:
    """Counts and integer percentage rates over a set of sessions."""

    sent: int = 0
    opened: int = 0
    clicked: int = 0
    open_rate: int = 0
    click_rate: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "sent": self.sent,
            "opened": self.opened,
            "clicked": self.clicked,
            "openRate": self.open_rate,
            "clickRate": self.click_rate,
        }


@dataclass
class Activity:
    """One entry of the recent-activity feed."""

    type: str
    session_id: str
    email_subject: str
    timestamp: int
    recipients: Optional[List[str]] = None
    device: Optional[Dict[str, Any]] = None
    link_id: Optional[str] = None


def _percent(part: int, whole: int) -> int:
    return round(part * 100 / whole) if whole else 0


def compute_statistics(sessions: Iterable[TrackingSession]) -> EngagementStats:
    """Count sent, opened and clicked sessions."""
    stats = EngagementStats()
    for session in sessions:
        stats.sent += 1
        if session.pixel_loads:
            stats.opened += 1
        if session.link_clicks:
            stats.clicked += 1
    stats.open_rate = _percent(stats.opened, stats.sent)
    stats.click_rate = _percent(stats.clicked, stats.sent)
    return stats


def recent_activity(sessions: Iterable[TrackingSession], limit: int = 10) -> List[Activity]:
    """Newest-first feed of sends, opens and clicks."""
    activities: List[Activity] = []
    for session in sessions:
        if session.sent_timestamp is not None:
            activities.append(
                Activity(
                    type=ActivityType.SENT.value,
                    session_id=session.id,
                    email_subject=session.email_subject,
                    timestamp=session.sent_timestamp,
                    recipients=list(session.recipients),
                )
            )
        for load in session.pixel_loads:
            activities.append(
                Activity(
                    type=ActivityType.OPENED.value,
                    session_id=session.id,
                    email_subject=session.email_subject,
                    timestamp=load.timestamp,
                    device=load.device.to_wire(),
                )
            )
        for click in session.link_clicks:
            activities.append(
                Activity(
                    type=ActivityType.CLICKED.value,
                    session_id=session.id,
                    email_subject=session.email_subject,
                    timestamp=click.timestamp,
                    link_id=click.link_id,
                )
            )

    activities.sort(key=lambda a: a.timestamp, reverse=True)
    return activities[:limit]


def filter_sessions(
    sessions: Iterable[TrackingSession],
    since: Optional[int] = None,
    status: Optional[SessionStatus] = None,
    search: Optional[str] = None,
) -> List[TrackingSession]:
    """Filter by send time, status and subject/recipient text; newest first."""
    term = search.lower() if search else None
    result = []
    for session in sessions:
        if since is not None and (session.sent_timestamp or 0) < since:
            continue
        if status is not None and session.status != status:
            continue
        if term and term not in session.email_subject.lower() and not any(
            term in recipient.lower() for recipient in session.recipients
        ):
            continue
        result.append(session)
    result.sort(key=lambda s: s.sent_timestamp or 0, reverse=True)
    return result


def export_sessions(sessions: Dict[str, TrackingSession]) -> str:
    """Pretty-printed JSON export of an id -> session mapping."""
    return json.dumps(sessions_to_wire(sessions), indent=2, ensure_ascii=False)


def activity_to_dict(activity: Activity) -> Dict[str, Any]:
    """camelCase dict of the fields that are set."""
    return {
        to_camel(key): value for key, value in asdict(activity).items() if value is not None
    }
