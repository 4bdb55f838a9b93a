"""Contributor identity hashing."""

import hashlib


def hash_email(email: str) -> str:
    """Return the MD5 hex digest of an email address.

    The digest is a stable, de-identified key for a contributor: the same
    address always produces the same 32-character lowercase hex string.

    Args:
        email: Email address exactly as recorded in the commit.

    Returns:
        32-character hexadecimal MD5 digest.
    """
    return hashlib.md5(email.encode("utf-8")).hexdigest()
