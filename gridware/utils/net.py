"""URL helpers"""

from __future__ import annotations

from urllib.parse import urlparse

from gridware.core.exceptions import ValidationError

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def is_url(location: str) -> bool:
    """True when ``location`` should be downloaded rather than read locally."""
    return urlparse(location).scheme in _ALLOWED_SCHEMES


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """Reject anything but http/https before handing a URL to urllib.

    Raises:
        ValidationError: scheme not allowed
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"URL scheme '{parsed.scheme}' not allowed{label}, "
            f"only http/https are supported: {url}"
        )
