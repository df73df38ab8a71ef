"""Tests for redirect URI validation and error redirects."""
from urllib.parse import parse_qsl, urlsplit

import pytest

from oidc_idp.clients import RegisteredClient
from oidc_idp.errors import InvalidRedirect
from oidc_idp.redirects import append_query_parameters, build_error_redirect, resolve_redirect

CLIENT = RegisteredClient("c1", frozenset({"https://rp/cb", "https://rp/cb2?tenant=a"}))


def test_resolve_registered_uri():
    assert resolve_redirect("https://rp/cb", CLIENT) == "https://rp/cb"


@pytest.mark.parametrize("uri", ["https://rp/other", "https://rp/cb/", "/cb", "not a uri", "http://[::1/cb"])
def test_resolve_rejects_unregistered_or_malformed(uri):
    with pytest.raises(InvalidRedirect):
        resolve_redirect(uri, CLIENT)


def test_error_redirect_with_state():
    assert build_error_redirect("https://rp/cb", "login_required", "abc") == (
        "https://rp/cb?error=login_required&state=abc"
    )


def test_error_redirect_keeps_existing_query_and_fragment():
    uri = build_error_redirect("https://rp/cb2?tenant=a#frag", "login_required", "s1")
    parts = urlsplit(uri)
    assert parse_qsl(parts.query) == [("tenant", "a"), ("error", "login_required"), ("state", "s1")]
    assert parts.fragment == "frag"


def test_error_redirect_encodes_state():
    uri = build_error_redirect("https://rp/cb", "login_required", "a b&c=d")
    assert dict(parse_qsl(urlsplit(uri).query))["state"] == "a b&c=d"
    assert "a b&c=d" not in uri


def test_error_redirect_is_deterministic():
    assert build_error_redirect("https://rp/cb", "login_required", "s") == build_error_redirect(
        "https://rp/cb", "login_required", "s"
    )


def test_error_redirect_differs_only_in_state():
    first = urlsplit(build_error_redirect("https://rp/cb", "login_required", "one"))
    second = urlsplit(build_error_redirect("https://rp/cb", "login_required", "two"))
    assert first != second
    assert first._replace(query="") == second._replace(query="")
    q1, q2 = dict(parse_qsl(first.query)), dict(parse_qsl(second.query))
    assert q1.pop("state") == "one" and q2.pop("state") == "two"
    assert q1 == q2


def test_append_query_parameters_without_existing_query():
    assert append_query_parameters("https://rp/cb", [("a", "1")]) == "https://rp/cb?a=1"
