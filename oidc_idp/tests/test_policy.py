"""Tests for the prompt and max_age policies."""
from datetime import datetime, timedelta, timezone

import pytest

from oidc_idp.clients import RegisteredClient
from oidc_idp.policy import (
    REASON_MAX_AGE,
    REASON_PROMPT_LOGIN,
    DenyWithError,
    DenyWithRedirect,
    ForceReauthentication,
    Proceed,
    effective_max_age,
    evaluate_max_age,
    evaluate_prompt,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
CLIENT = RegisteredClient("c1", frozenset({"https://rp/cb"}), default_max_age=600)


def _prompt(prompts, authenticated=False, handled=False, client=CLIENT, redirect_uri="https://rp/cb", state=None):
    return evaluate_prompt(
        prompts,
        authenticated=authenticated,
        prompt_login_handled=handled,
        client=client,
        redirect_uri=redirect_uri,
        state=state,
    )


# --- prompt ---


def test_prompt_none_authenticated_proceeds():
    assert _prompt(("none",), authenticated=True) == Proceed()


def test_prompt_none_unauthenticated_redirects_with_login_required_and_state():
    decision = _prompt(("none",), state="af0ifjsldkj")
    assert decision == DenyWithRedirect("https://rp/cb?error=login_required&state=af0ifjsldkj")


def test_prompt_none_unauthenticated_without_state():
    assert _prompt(("none",)) == DenyWithRedirect("https://rp/cb?error=login_required")


def test_prompt_none_without_redirect_uri_is_access_denied():
    assert _prompt(("none",), redirect_uri=None) == DenyWithError(403, "Access Denied")


def test_prompt_none_without_client_is_access_denied():
    assert _prompt(("none",), client=None) == DenyWithError(403, "Access Denied")


def test_prompt_none_unregistered_redirect_is_access_denied():
    assert _prompt(("none",), redirect_uri="https://evil/cb") == DenyWithError(403, "Access Denied")


def test_prompt_none_checked_before_login():
    assert isinstance(_prompt(("login", "none")), DenyWithRedirect)


@pytest.mark.parametrize("authenticated", [True, False])
def test_prompt_login_first_pass_forces_reauthentication(authenticated):
    assert _prompt(("login",), authenticated=authenticated) == ForceReauthentication(REASON_PROMPT_LOGIN)


def test_prompt_login_already_handled_proceeds():
    assert _prompt(("login",), authenticated=True, handled=True) == Proceed()


@pytest.mark.parametrize("prompts", [(), ("consent",), ("select_account", "consent")])
def test_unsupported_or_absent_prompt_proceeds(prompts):
    assert _prompt(prompts) == Proceed()


def test_redirect_resolver_is_pluggable():
    decision = evaluate_prompt(
        ("none",),
        authenticated=False,
        prompt_login_handled=False,
        client=CLIENT,
        redirect_uri="https://rp/cb",
        state=None,
        redirect_resolver=lambda uri, client: "https://rp/canonical",
    )
    assert decision == DenyWithRedirect("https://rp/canonical?error=login_required")


# --- max_age ---


def test_effective_max_age_request_overrides_client():
    assert effective_max_age(30, CLIENT) == 30
    assert effective_max_age(0, CLIENT) == 0
    assert effective_max_age(None, CLIENT) == 600
    assert effective_max_age(None, RegisteredClient("c2", frozenset())) is None
    assert effective_max_age(None, None) is None


def test_max_age_exceeded_forces_reauthentication():
    decision = evaluate_max_age(1800, NOW - timedelta(seconds=3600), NOW)
    assert decision == ForceReauthentication(REASON_MAX_AGE)


def test_max_age_not_exceeded_proceeds():
    assert evaluate_max_age(7200, NOW - timedelta(seconds=3600), NOW) == Proceed()


def test_max_age_uses_whole_seconds():
    # 1800.9s elapsed floors to 1800, which is not more than 1800
    assert evaluate_max_age(1800, NOW - timedelta(seconds=1800, milliseconds=900), NOW) == Proceed()
    assert isinstance(evaluate_max_age(1800, NOW - timedelta(seconds=1801), NOW), ForceReauthentication)


def test_max_age_without_previous_authentication_proceeds():
    assert evaluate_max_age(60, None, NOW) == Proceed()


def test_no_max_age_proceeds():
    assert evaluate_max_age(None, NOW - timedelta(days=30), NOW) == Proceed()
