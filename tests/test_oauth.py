"""Tests for the GitHub OAuth code exchange and profile lookup."""
import urllib.parse
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest
from github import GithubException

from gitmanager.auth.oauth import AUTHORIZE_URL, TOKEN_URL, GitHubOAuth, OAuthError


def make_oauth(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GitHubOAuth("client-id", "client-secret", "http://localhost:8000/auth/callback", http_client=client)


def test_authorization_url_requests_delete_scope():
    oauth = make_oauth(lambda request: httpx.Response(500))
    url = oauth.authorization_url("state123")
    assert url.startswith(AUTHORIZE_URL + "?")
    query = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)
    assert query["client_id"] == ["client-id"]
    assert query["state"] == ["state123"]
    assert query["redirect_uri"] == ["http://localhost:8000/auth/callback"]
    assert "delete_repo" in query["scope"][0].split()


def test_exchange_code_returns_access_token():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = urllib.parse.parse_qs(request.content.decode())
        seen["accept"] = request.headers.get("accept")
        return httpx.Response(200, json={"access_token": "gho_abc", "token_type": "bearer"})

    assert make_oauth(handler).exchange_code("the-code") == "gho_abc"
    assert seen["url"] == TOKEN_URL
    assert seen["body"]["code"] == ["the-code"]
    assert seen["body"]["client_secret"] == ["client-secret"]
    assert seen["accept"] == "application/json"


def test_exchange_code_error_payload_raises():
    oauth = make_oauth(lambda request: httpx.Response(200, json={"error": "bad_verification_code"}))
    with pytest.raises(OAuthError):
        oauth.exchange_code("stale")


def test_exchange_code_http_failure_raises():
    oauth = make_oauth(lambda request: httpx.Response(503, text="unavailable"))
    with pytest.raises(OAuthError):
        oauth.exchange_code("code")


@patch("gitmanager.auth.oauth.Github")
def test_fetch_profile_with_public_email(mock_github):
    user = mock_github.return_value.get_user.return_value
    user.id = 583231
    user.login = "octocat"
    user.name = "The Octocat"
    user.email = "octocat@github.com"

    profile = make_oauth(lambda r: httpx.Response(500)).fetch_profile("gho_abc")

    assert profile.github_id == "583231"
    assert profile.email == "octocat@github.com"
    assert profile.name == "The Octocat"
    user.get_emails.assert_not_called()
    mock_github.return_value.close.assert_called_once()


@patch("gitmanager.auth.oauth.Github")
def test_fetch_profile_uses_primary_verified_email(mock_github):
    user = mock_github.return_value.get_user.return_value
    user.id, user.login, user.name, user.email = 1, "octo", None, None
    user.get_emails.return_value = [
        SimpleNamespace(email="old@example.com", primary=False, verified=True),
        SimpleNamespace(email="main@example.com", primary=True, verified=True),
    ]
    profile = make_oauth(lambda r: httpx.Response(500)).fetch_profile("gho_abc")
    assert profile.email == "main@example.com"


@patch("gitmanager.auth.oauth.Github")
def test_fetch_profile_falls_back_to_noreply_address(mock_github):
    user = mock_github.return_value.get_user.return_value
    user.id, user.login, user.name, user.email = 1, "octo", None, None
    user.get_emails.return_value = []
    profile = make_oauth(lambda r: httpx.Response(500)).fetch_profile("gho_abc")
    assert profile.email == "1+octo@users.noreply.github.com"


@patch("gitmanager.auth.oauth.Github")
def test_fetch_profile_github_failure_raises(mock_github):
    mock_github.return_value.get_user.side_effect = GithubException(401, {"message": "Bad credentials"}, None)
    with pytest.raises(OAuthError):
        make_oauth(lambda r: httpx.Response(500)).fetch_profile("gho_abc")
    mock_github.return_value.close.assert_called_once()
