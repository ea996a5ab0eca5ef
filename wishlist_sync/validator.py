import httpx
from typing import Dict

# The CSP sent by server.py is built from this tuple; both must stay in lockstep.
WISHLIST_ALLOWED_PREFIXES = (
    "https://raw.githubusercontent.com/",
    "https://gist.githubusercontent.com/",
)

SUGGESTED_SOURCES: Dict[str, str] = {
    "voltron": "https://raw.githubusercontent.com/48klocs/dim-wish-list-sources/master/voltron.txt",
    "choosy_voltron": "https://raw.githubusercontent.com/48klocs/dim-wish-list-sources/master/choosy_voltron.txt",
}

def _has_allowed_prefix(url: str) -> bool:
    return any(url.startswith(prefix) for prefix in WISHLIST_ALLOWED_PREFIXES)

def is_admissible_source(candidate: str) -> bool:
    """
    True when candidate is a well-formed https URL under one of the allowed origins.
    Both the raw string and the re-assembled scheme://host/path must match a prefix,
    so userinfo and look-alike host tricks are rejected.
    """
    if not isinstance(candidate, str) or not candidate:
        return False
    if any(ch.isspace() or ch == "\\" or ord(ch) < 0x20 for ch in candidate):
        return False

    try:
        url = httpx.URL(candidate)
    except (httpx.InvalidURL, ValueError, TypeError):
        return False

    if url.scheme != "https" or not url.host:
        return False
    if url.userinfo or url.port is not None:
        return False

    normalized = f"{url.scheme}://{url.host}{url.path}"
    return _has_allowed_prefix(candidate) and _has_allowed_prefix(normalized)

def content_security_policy() -> str:
    """connect-src directive matching the validator's allow-list."""
    return "connect-src 'self' " + " ".join(WISHLIST_ALLOWED_PREFIXES)
