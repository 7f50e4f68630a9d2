"""
Metadata Codec - Link Records embedded in card descriptions
=============================================================

Trello has no native "this card mirrors that checklist item" relation, so
every proxy card carries its own back-reference as a hidden HTML comment at
the end of its description:

    ### Card Details:
    Task: Ship feature
    Project: Doing


    <!-- Hidden Data: eyJUYXNrTmFtZSI6ICJTaGlwIGZlYXR1cmUiLCAuLi59 -->

The payload is the JSON-serialized LinkRecord, base64 encoded so user text
can never collide with it. Trello renders descriptions as Markdown, which
hides the comment from people looking at the card.
"""

import base64
import binascii
import json
import logging
import re
from typing import Optional

from pydantic import ValidationError

from backlog_sync.exceptions import LinkRecordDecodeError
from backlog_sync.models import LinkRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Format
# =============================================================================

SENTINEL_TEMPLATE = "\n\n\n<!-- Hidden Data: {payload} -->"

# Leading newlines are optional so a block whose spacing was trimmed by hand
# is still found (and replaced).
SENTINEL_PATTERN = re.compile(r"\s*<!--\s*Hidden Data:\s*(?P<payload>.*?)\s*-->", re.DOTALL)

DETAILS_HEADER = "### Card Details:"
DETAILS_PATTERN = re.compile(
    r"^### Card Details:\n(?:Task: [^\n]*\n?)?(?:Project: [^\n]*\n?)?",
)


# =============================================================================
# Encode / Decode
# =============================================================================

def _serialize(record: LinkRecord) -> str:
    raw = json.dumps(record.model_dump(by_alias=True), ensure_ascii=False, separators=(",", ":"))
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def strip(description: str) -> str:
    """Return the description with every sentinel block removed."""
    return SENTINEL_PATTERN.sub("", description or "")


def encode(record: LinkRecord, description: str = "") -> str:
    """
    Embed a Link Record at the end of a description.

    Any block already present is replaced, so applying encode twice leaves
    exactly one block behind.

    Args:
        record: Link to embed
        description: Existing description text (may already carry a block)

    Returns:
        The description with a single trailing sentinel block
    """
    body = strip(description).rstrip()
    return body + SENTINEL_TEMPLATE.format(payload=_serialize(record))


def decode(description: Optional[str]) -> Optional[LinkRecord]:
    """
    Extract the Link Record from a description.

    Returns None when the description has no sentinel block; most cards on a
    board legitimately have none.

    Raises:
        LinkRecordDecodeError: A block exists but its payload is not valid
            base64, not JSON, or does not describe a complete LinkRecord.
    """
    if not description:
        return None

    match = SENTINEL_PATTERN.search(description)
    if match is None:
        return None

    payload = match.group("payload")
    try:
        raw = base64.b64decode(payload, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise LinkRecordDecodeError("Link record is not valid base64", payload=payload) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise LinkRecordDecodeError("Link record is not valid JSON", payload=payload) from e

    if not isinstance(data, dict):
        raise LinkRecordDecodeError("Link record is not a JSON object", payload=payload)

    try:
        return LinkRecord.model_validate(data)
    except ValidationError as e:
        raise LinkRecordDecodeError("Link record is missing fields", payload=payload) from e


# =============================================================================
# Proxy Descriptions
# =============================================================================

def render_details(record: LinkRecord) -> str:
    return f"{DETAILS_HEADER}\nTask: {record.task_name}\nProject: {record.project_name}"


def render_description(record: LinkRecord, existing: str = "") -> str:
    """
    Build a proxy description: details block, user notes, sentinel block.

    The details block and the sentinel block are regenerated from ``record``;
    any other text already in ``existing`` is kept below the details.
    """
    notes = DETAILS_PATTERN.sub("", strip(existing).lstrip("\n"), count=1).strip()
    body = render_details(record)
    if notes:
        body = f"{body}\n{notes}"
    return encode(record, body)
