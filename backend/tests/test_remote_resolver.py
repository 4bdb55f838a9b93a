"""Tests for resolving user-supplied URLs to canonical repository ids."""

import pytest

from services.errors import ErrorKind, ValidationError
from utils.remote_resolver import is_hosted_repository, resolve


@pytest.mark.parametrize(
    "raw_url",
    [
        "https://github.com/acme/widgets",
        "http://github.com/acme/widgets",
        "https://www.github.com/acme/widgets",
        "www.github.com/acme/widgets",
        "github.com/acme/widgets",
        "https://github.com/acme/widgets.git",
        "https://github.com/acme/widgets/tree/main",
    ],
)
def test_resolve_accepts_hosted_urls(raw_url):
    assert resolve(raw_url) == "acme/widgets"


def test_resolve_keeps_hyphens_and_digits():
    assert resolve("https://github.com/acme-labs/widgets-2") == "acme-labs/widgets-2"


@pytest.mark.parametrize(
    "raw_url",
    [
        "not-a-url",
        "",
        "https://github.com/acme",
        "https://github.com/acme/",
        "https://github.com//widgets",
        "https://gitlab.com/acme/widgets",
        "https://github.com/ac me/widgets",
        "https://github.com/acme/;rm -rf",
        "https://github.com/$(whoami)/widgets",
        "ftp://github.com/acme/widgets",
        "https://evil.example/github.com/acme/widgets",
    ],
)
def test_resolve_rejects_everything_else(raw_url):
    with pytest.raises(ValidationError) as excinfo:
        resolve(raw_url)
    assert excinfo.value.kind is ErrorKind.NOT_FOUND
    assert excinfo.value.message == "Repository not found"


def test_resolve_rejects_non_string():
    with pytest.raises(ValidationError):
        resolve(None)


def test_is_hosted_repository():
    assert is_hosted_repository("github.com/acme/widgets")
    assert not is_hosted_repository("not-a-url")
