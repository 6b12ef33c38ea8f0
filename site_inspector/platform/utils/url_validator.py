from urllib.parse import urlparse
from typing import Tuple

import httpx


def normalize_url(url: str) -> Tuple[str, bool]:

    url = url.strip()

    # "example.com:8080/path" parses with scheme "example.com", so look for
    # the separator instead of trusting urlparse here
    if "://" not in url:
        normalized = f"https://{url}"
        return normalized, True

    return url, False


def validate_url(url: str) -> Tuple[bool, str, str]:
    """
    Returns (is_valid, normalized_url, error_message).
    A URL typed without a scheme is treated as https.
    """
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    normalized_url, was_modified = normalize_url(url)

    try:
        parsed = urlparse(normalized_url)

        if parsed.scheme not in ['http', 'https']:
            return False, normalized_url, f"Invalid URL scheme: {parsed.scheme} (must be http or https)"

        if not parsed.hostname:
            return False, normalized_url, "Invalid URL format: missing domain"

        # Accessing .port validates it (raises ValueError when out of range)
        parsed.port

        return True, normalized_url, ""

    except ValueError as e:
        return False, normalized_url, f"URL parsing error: {str(e)}"


def requestable_host(url: str) -> str:
    """
    Host httpx will send a request for `url` to.

    httpx only decodes IDNA labels when the host is read, so a malformed one
    such as `http://xn--/` fails here instead of in the middle of a request.

    Raises:
        ValueError: the host is not valid IDNA (idna errors are UnicodeErrors).
        httpx.InvalidURL: httpx rejects the URL outright.
    """
    return httpx.URL(url).host
