"""Resolve user-supplied repository URLs to canonical ``owner/name`` ids.

Only the canonical remote host is accepted. The owner and repository
segments are restricted to ASCII letters, digits and hyphens; this pattern
is the only thing standing between user input and the clone command line.
"""

import re

from services.errors import ValidationError

REMOTE_HOST = "github.com"

_HOSTED_REPO_RE = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/"
    r"(?P<owner>[a-zA-Z0-9-]+)/(?P<repository>[a-zA-Z0-9-]+)"
)


def resolve(raw_url: str) -> str:
    """Extract the canonical ``owner/repository`` id from a URL or path.

    Accepts strings with or without scheme and ``www.`` prefix, e.g.
    ``https://github.com/acme/widgets``, ``www.github.com/acme/widgets`` or
    ``github.com/acme/widgets.git``. Anything after the repository segment
    is ignored.

    Args:
        raw_url: URL or path as typed by the user.

    Returns:
        Canonical id such as ``"acme/widgets"``.

    Raises:
        ValidationError: If the input does not match a single owner and
            repository on the canonical host.
    """
    if not isinstance(raw_url, str):
        raise ValidationError("Repository not found", cause="URL must be a string")

    match = _HOSTED_REPO_RE.match(raw_url.strip())
    if match is None:
        raise ValidationError("Repository not found", cause=f"Not a {REMOTE_HOST} repository: {raw_url!r}")

    return f"{match.group('owner')}/{match.group('repository')}"


def is_hosted_repository(raw_url: str) -> bool:
    """Return True when ``raw_url`` resolves to a canonical id."""
    try:
        resolve(raw_url)
    except ValidationError:
        return False
    return True
