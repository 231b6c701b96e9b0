"""Hidden delivery markers embedded in posted comments.

Every comment the responder posts ends with an HTML comment naming the
event it answers. GitHub does not render it, but it lets the poster find
its own earlier comment after an ambiguous failure and lets the webhook
handler ignore events caused by the responder itself.
"""

import re
from typing import Optional


MARKER_PATTERN = re.compile(r"<!--\s*issue-responder:delivery=([^\s>]+)\s*-->")


def delivery_marker(event_id: str) -> str:
    """Render the marker for an event id."""
    return f"<!-- issue-responder:delivery={event_id} -->"


def find_marker(text: Optional[str]) -> Optional[str]:
    """Return the event id of the first marker in text, if any."""
    if not text:
        return None
    match = MARKER_PATTERN.search(text)
    return match.group(1) if match else None
