"""Plain-text sanitization for user-supplied free text."""

import bleach


def strip_html_tags(html: str) -> str:
    """Strip all HTML tags, returning plain text."""
    return bleach.clean(html, tags=[], strip=True)


def clean_optional_text(value):
    """Strip tags from an optional field; blank results become None."""
    if value is None:
        return None
    cleaned = strip_html_tags(value).strip()
    return cleaned or None
