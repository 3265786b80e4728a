"""Network helpers for fetching templates and checking hosts."""

from __future__ import annotations

import urllib.error
import urllib.parse
import urllib.request

_TIMEOUT = 2.0


class OfflineError(Exception):
    """A host could not be reached or answered with an error."""


def is_online(url: str) -> int:
    """Check ``url`` for connectivity and return the final 2xx status."""
    try:
        with urllib.request.urlopen(url, timeout=_TIMEOUT) as response:
            status = response.status
    except urllib.error.HTTPError as exc:
        status = exc.code
        exc.close()
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise OfflineError(str(exc)) from exc

    if 200 <= status < 300:
        return status
    raise OfflineError(
        f'timeout or unknown HTTP error, while trying to access "{url}"'
    )


def is_valid_url(to_test: str) -> bool:
    """Tell whether ``to_test`` is an absolute URL with a scheme and host."""
    if not to_test or any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in to_test):
        return False
    try:
        parts = urllib.parse.urlsplit(to_test)
        parts.port
    except ValueError:
        return False
    if not parts.scheme or not parts.netloc:
        return False
    if any(ch.isspace() for ch in parts.netloc):
        return False
    return True


def curl_this(webpage: str) -> bytes:
    """Fetch ``webpage``; the body for a 200 reply, empty bytes otherwise."""
    try:
        with urllib.request.urlopen(webpage) as response:
            if response.status == 200:
                return response.read()
            return b""
    except urllib.error.HTTPError as exc:
        exc.close()
        return b""
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise OfflineError(str(exc)) from exc