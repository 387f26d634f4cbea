"""GitHub OAuth2 authorization-code flow.

GitHub is the identity provider. This module only builds the authorize
redirect, exchanges the returned code for an access token and reads the
signed-in user's profile.
"""
import urllib.parse
from dataclasses import dataclass
from typing import Optional

import httpx
from github import Auth, Github, GithubException

from common.logging import LoggingManager

logger = LoggingManager.get_logger('gitmanager.auth.oauth')

AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
TOKEN_URL = "https://github.com/login/oauth/access_token"

# Read and delete repositories, read the profile and email address
OAUTH_SCOPES = ("repo", "delete_repo", "read:user", "user:email")


class OAuthError(Exception):
    """Raised when the authorization code cannot be exchanged or the profile cannot be read."""
    pass


@dataclass(frozen=True)
class GitHubProfile:
    github_id: str
    email: str
    name: Optional[str]
    login: str


class GitHubOAuth:
    def __init__(self, client_id: str, client_secret: str, redirect_url: str,
                 http_client: Optional[httpx.Client] = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self._http = http_client or httpx.Client(timeout=10.0)

    @classmethod
    def from_config(cls, config) -> "GitHubOAuth":
        return cls(config.github_client_id, config.github_client_secret, config.oauth_redirect_url)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "scope": " ".join(OAUTH_SCOPES),
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"

    def exchange_code(self, code: str) -> str:
        """Exchanges an authorization code for an access token."""
        try:
            response = self._http.post(
                TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "redirect_uri": self.redirect_url,
                },
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OAuth code exchange failed: {e}", exc_info=True)
            raise OAuthError("Failed to complete GitHub sign-in") from e

        # GitHub reports bad codes with a 200 and an "error" field
        if "error" in payload or not payload.get("access_token"):
            logger.warning(f"GitHub refused the authorization code: {payload.get('error')}")
            raise OAuthError("Failed to complete GitHub sign-in")
        return payload["access_token"]

    def fetch_profile(self, access_token: str) -> GitHubProfile:
        """Reads id, email and display name of the token's owner."""
        gh = Github(auth=Auth.Token(access_token))
        try:
            user = gh.get_user()
            email = user.email
            if not email:
                # Private email addresses are only visible through the emails endpoint
                emails = user.get_emails()
                primary = [e for e in emails if e.primary and e.verified]
                email = primary[0].email if primary else None
            profile = GitHubProfile(
                github_id=str(user.id),
                email=email or f"{user.id}+{user.login}@users.noreply.github.com",
                name=user.name,
                login=user.login,
            )
        except GithubException as e:
            logger.error(f"Failed to read GitHub profile: {e}", exc_info=True)
            raise OAuthError("Failed to read GitHub profile") from e
        finally:
            gh.close()
        return profile
