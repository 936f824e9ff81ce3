"""Turn a service record into the text blob that gets embedded."""

import html
import re
from typing import List, Optional, Tuple

from community_search.exceptions import ComposeError
from community_search.services.vector_db.types import Record

# Only real tags and comments; a bare "<" or ">" in prose is kept
_TAG_RE = re.compile(r"<!--.*?-->|</?[A-Za-z][^<>]*>", re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")

# (attribute on RecordDetails, label) in embedding priority order
DETAIL_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("full_description", "Full Description"),
    ("eligibility", "Eligibility"),
    ("application_process", "Application Process"),
    ("documents_required", "Documents Required"),
    ("languages", "Languages"),
    ("fees", "Fees"),
    ("accessibility", "Accessibility"),
    ("hours_of_operation", "Hours"),
    ("service_areas", "Service Areas"),
    ("mailing_address", "Mailing Address"),
)


def clean_html(value: Optional[str]) -> str:
    """
    Strip markup from a field.

    Tags are removed before entities are decoded, then once more so that
    escaped markup such as ``&lt;b&gt;`` cannot survive as a tag. Decoded
    comparisons like ``&lt;5`` stay text.

    :param value: raw field value, possibly HTML
    :returns: plain text with collapsed whitespace
    """
    if not value:
        return ""
    text = _TAG_RE.sub(" ", value)
    text = html.unescape(text)
    text = _TAG_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _labeled(label: str, value: Optional[str]) -> Optional[str]:
    text = clean_html(value)
    if not text:
        return None
    return f"{label}: {text}"


def compose_record_text(record: Record) -> str:
    """
    Build the canonical embedding input for a record.

    Name, subtitle and description are emitted as-is; every other field is
    prefixed with a label so the embedding captures what the text is.

    :param record: service record
    :returns: newline-joined text
    :raises ComposeError: if no field has usable text
    """
    parts: List[Optional[str]] = [
        clean_html(record.name),
        clean_html(record.subtitle),
        clean_html(record.description),
        _labeled("Address", record.address),
        _labeled("Locations", ", ".join(loc for loc in record.locations if loc)),
        _labeled("Phone", record.phone),
    ]

    if record.details is not None:
        for attribute, label in DETAIL_FIELDS:
            parts.append(_labeled(label, getattr(record.details, attribute)))

    text = "\n".join(part for part in parts if part)
    if not text:
        raise ComposeError(record.id)
    return text
