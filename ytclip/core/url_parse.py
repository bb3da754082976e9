"""
Source URL validation.
"""

from urllib.parse import urlparse

from ytclip.core.error_codes import ValidationError


def is_http_url(url: str) -> bool:
    """Quick check if a string looks like an absolute http(s) URL."""
    try:
        parsed = urlparse(url.strip())
    except (AttributeError, ValueError):
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def validate_source_url(url: str | None) -> str:
    """
    Validate the source reference and return it stripped.
    Raises ValidationError if missing or not an http(s) URL.
    """
    if url is None or not str(url).strip():
        raise ValidationError("Missing required parameter: source URL")
    url = str(url).strip()
    if not is_http_url(url):
        raise ValidationError(f"Not a valid http(s) URL: {url}")
    return url
