"""Session and link identifier generation."""

from typing import Any
from uuid import uuid4

LINK_ID_PREFIX = "link_"


def new_session_id() -> str:
    """Return a random UUID4 string (122 random bits)."""
    return str(uuid4())


def new_link_id(session: Any, sequence_index: int) -> str:
    """Return the id of the link at ``sequence_index`` in an outgoing email.

    Link ids only need to be unique within one session, so the position of
    the link in the email is enough. ``session`` is accepted so callers can
    pass the session being rewritten; it does not influence the id.
    """
    return f"{LINK_ID_PREFIX}{sequence_index}"
