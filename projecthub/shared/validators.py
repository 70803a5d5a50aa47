"""Shared validation and text normalization utilities"""

import json
import re
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
REPO_DESCRIPTION_MAX_LENGTH = 140


def validate_email(email: Optional[str]) -> bool:
    """Loose sanity check, the board provider is the real judge"""
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))


def alphanumeric_only(value: Optional[str]) -> str:
    return "".join(ch for ch in (value or "") if ch.isalnum())


def normalize_board_description(description: Optional[str]) -> str:
    """
    Flatten rich-text project descriptions to plain text.

    Project descriptions written in the web editor are stored as
    ``{"content": [{"text": "..."}, ...]}``. Paragraph texts are joined with blank
    lines; anything that is not such a document is returned unchanged.
    """
    if not description:
        return ""

    stripped = description.strip()
    if not stripped.startswith("{"):
        return description

    try:
        document = json.loads(stripped)
    except ValueError:
        return description

    content = document.get("content") if isinstance(document, dict) else None
    if not isinstance(content, list):
        return description

    paragraphs = []
    for block in content:
        if isinstance(block, dict) and isinstance(block.get("text"), str) and block["text"].strip():
            paragraphs.append(block["text"].strip())

    return "\n\n".join(paragraphs) if paragraphs else description


def sanitize_repo_description(description: Optional[str]) -> str:
    """
    Make a description acceptable to GitHub.

    Control characters are removed, whitespace runs collapse to one space and the
    result is capped at 140 characters.
    """
    if not description:
        return ""
    cleaned = CONTROL_CHARS.sub(" ", description)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    if len(cleaned) > REPO_DESCRIPTION_MAX_LENGTH:
        cleaned = cleaned[: REPO_DESCRIPTION_MAX_LENGTH - 3].rstrip() + "..."
    return cleaned
