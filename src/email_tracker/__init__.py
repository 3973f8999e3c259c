"""Email Tracker: open/click tracking with a synchronized client replica."""

__version__ = "1.0.0"
