"""Pull an image link out of free-form model output.

Models answer image requests with prose, markdown or a bare link. This module
does permissive text scraping rather than URL grammar validation: the first
markdown link target wins, otherwise the first ``http`` token.
"""

from typing import Optional

MARKDOWN_MARKER = "]("
QUOTE_CHARS = "\"'"
BARE_URL_TERMINATORS = "\"')]"


def _strip_one_quote(value: str) -> str:
    if value[:1] in QUOTE_CHARS:
        value = value[1:]
    if value[-1:] in QUOTE_CHARS:
        value = value[:-1]
    return value


def extract_markdown_url(text: str) -> Optional[str]:
    """Return the target of the first ``[...](...)`` link, if any."""
    start = text.find(MARKDOWN_MARKER)
    if start == -1:
        return None

    rest = text[start + len(MARKDOWN_MARKER):]
    end = rest.find(")")
    if end == -1:
        return None

    candidate = rest[:end].strip()
    for i, char in enumerate(candidate):
        if char.isspace():
            candidate = candidate[:i]
            break
    return _strip_one_quote(candidate)


def extract_bare_url(text: str) -> Optional[str]:
    """Return the first ``http...`` token, cut at whitespace, quotes or brackets."""
    start = text.find("http")
    if start == -1:
        return None

    rest = text[start:]
    for i, char in enumerate(rest):
        if char.isspace() or char in BARE_URL_TERMINATORS:
            return rest[:i]
    return rest


def extract_url(text: str) -> Optional[str]:
    """Extract an image URL from model output.

    Args:
        text: Message content returned by the upstream

    Returns:
        The URL, or None if the text holds neither a markdown link nor a
        bare ``http`` token
    """
    url = extract_markdown_url(text)
    if url is not None:
        return url
    return extract_bare_url(text)
