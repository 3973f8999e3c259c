"""Enums for the email tracker application."""

from enum import Enum


class SessionStatus(str, Enum):
    """Engagement status of a tracking session.

    Ordered: a session only ever advances SENT -> OPENED -> CLICKED.
    """

    SENT = "sent"
    OPENED = "opened"
    CLICKED = "clicked"


class FormFactor(str, Enum):
    """Device form factor guessed from the user agent."""

    DESKTOP = "Desktop"
    MOBILE = "Mobile"
    TABLET = "Tablet"
    UNKNOWN = "unknown"


class ActivityType(str, Enum):
    """Kinds of entries in the recent-activity feed."""

    SENT = "sent"
    OPENED = "opened"
    CLICKED = "clicked"
