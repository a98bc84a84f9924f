"""
Utility helper functions for the node router.

This module provides URL helpers shared by the classifier, the rewrite
engine and the node store.
"""

import hashlib
from typing import Optional
from urllib.parse import quote, urlsplit


def has_control_characters(value: str) -> bool:
    """Check for ASCII control characters, which HTTP clients refuse in URLs."""
    return any(ord(char) < 0x20 or ord(char) == 0x7f for char in value)


def is_valid_probe_path(path: str) -> bool:
    """
    Check if a health probe path can be appended to a node endpoint.

    Examples:
        "/health" -> True
        "/bad path" -> False
        "health" -> False
    """
    if not isinstance(path, str) or not path.startswith("/"):
        return False
    return not has_control_characters(path) and not any(char.isspace() for char in path)


def is_valid_url(url: str, schemes: tuple = ("http", "https")) -> bool:
    """
    Check if a URL is absolute, uses an accepted scheme and names a host.

    Args:
        url: URL to validate
        schemes: Accepted schemes

    Returns:
        True if URL is valid
    """
    if not isinstance(url, str) or not url or any(char.isspace() for char in url):
        return False
    if has_control_characters(url):
        return False
    try:
        result = urlsplit(url)
        # .port raises ValueError for out-of-range or non-numeric ports
        result.port
    except ValueError:
        return False
    return result.scheme.lower() in schemes and bool(result.hostname)


def normalize_endpoint(endpoint: str) -> str:
    """
    Normalize a node endpoint by trimming whitespace and trailing slashes.

    Examples:
        " https://mirror.example.com/ " -> "https://mirror.example.com"
        "https://cdn.example.com/gh/" -> "https://cdn.example.com/gh"
    """
    return endpoint.strip().rstrip("/")


def extract_host(url: str) -> Optional[str]:
    """
    Extract the lower-cased host name from a URL.

    Returns:
        Host name, or None if the URL has none or cannot be parsed
    """
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def normalize_host(host: str) -> str:
    """
    Normalize a bare host for pattern matching.

    Lower-cases, drops a ``:port`` suffix and a trailing dot.

    Examples:
        "GitHub.com:443" -> "github.com"
        "github.com." -> "github.com"
    """
    host = host.strip().lower()
    if host.startswith("["):
        # IPv6 literal, keep the bracketed address only
        return host.split("]", 1)[0] + "]"
    if host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host.rstrip(".")


def percent_encode(value: str) -> str:
    """Percent-encode every reserved character, like encodeURIComponent."""
    return quote(value, safe="-_.!~*'()")


def derive_node_id(endpoint: str, strategy: str, prefix: str = "remote") -> str:
    """
    Derive a stable node ID from its endpoint and strategy.

    The same endpoint listed again by a later refresh maps to the same ID, so
    it is de-duplicated instead of appearing twice.
    """
    digest = hashlib.sha1(f"{normalize_endpoint(endpoint)}|{strategy}".encode("utf-8")).hexdigest()
    return f"{prefix}-{digest[:12]}"
