"""Content extraction for issue events.

Turns raw issue and comment bodies into canonical text by applying a fixed,
ordered set of cleaning rules. The extractor performs no I/O.
"""

from issue_responder.extractor.content import SUPPORTED_KINDS, ContentExtractor, clean_text
from issue_responder.extractor.models import CanonicalContent, HistoryEntry

__all__ = [
    "CanonicalContent",
    "ContentExtractor",
    "HistoryEntry",
    "SUPPORTED_KINDS",
    "clean_text",
]
