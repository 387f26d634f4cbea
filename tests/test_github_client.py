"""Tests for the GitHub gateway implementation."""
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from github.GithubException import (
    BadCredentialsException,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

from gitmanager.config import Config
from gitmanager.github.client import (
    GitHubGateway,
    RepositoryDeleteError,
    RepositoryFetchError,
    RepositoryNotFoundError,
    UnauthorizedError,
)
from gitmanager.health.models import HealthStatus, RepositoryWithHealth


@pytest.fixture
def mock_github():
    """Fixture to mock the PyGithub client class."""
    with patch("gitmanager.github.client.Github") as mock:
        yield mock


@pytest.fixture
def no_retry_sleep():
    with patch("gitmanager.github.client.time.sleep") as mock_sleep:
        yield mock_sleep


def make_gh_repo(repo_id, name="repo", description="desc", size=50):
    """Builds a stand-in for a PyGithub Repository with the attributes we read."""
    stamp = datetime(2025, 5, 1, tzinfo=timezone.utc)
    return SimpleNamespace(
        id=repo_id,
        name=name,
        full_name=f"octocat/{name}",
        owner=SimpleNamespace(login="octocat"),
        private=False,
        fork=False,
        archived=False,
        description=description,
        size=size,
        stargazers_count=3,
        forks_count=1,
        watchers_count=3,
        language="Python",
        created_at=stamp,
        updated_at=stamp,
        pushed_at=stamp,
        default_branch=None,
        html_url=f"https://github.com/octocat/{name}",
    )


def set_owned_repos(mock_github, repos):
    paginated = MagicMock()
    paginated.get_page.return_value = repos
    mock_github.return_value.get_user.return_value.get_repos.return_value = paginated
    return paginated


def test_init_without_token():
    with pytest.raises(UnauthorizedError) as excinfo:
        GitHubGateway(None)
    assert "sign in with GitHub" in str(excinfo.value)


def test_init_uses_token_auth_and_page_size(mock_github):
    GitHubGateway("test_token", page_size=50)
    _, kwargs = mock_github.call_args
    assert kwargs["per_page"] == 50
    assert kwargs["auth"].token == "test_token"


def test_from_config(mock_github):
    config = Config(load_env=False)
    config.repository_page_size = 30
    config.health_batch_size = 2
    gateway = GitHubGateway.from_config("test_token", config)
    assert gateway.page_size == 30
    assert gateway.health_batch_size == 2


def test_list_repositories_maps_first_page(mock_github):
    paginated = set_owned_repos(mock_github, [make_gh_repo(1, "one"), make_gh_repo(2, "two", size=None)])
    repos = GitHubGateway("test_token").list_repositories()

    mock_github.return_value.get_user.return_value.get_repos.assert_called_once_with(type="owner", sort="updated")
    paginated.get_page.assert_called_once_with(0)
    assert [r.full_name for r in repos] == ["octocat/one", "octocat/two"]
    assert repos[0].owner_login == "octocat"
    assert repos[0].default_branch == "main"
    assert repos[1].size == 0


def test_list_repositories_bad_credentials(mock_github):
    mock_github.return_value.get_user.side_effect = BadCredentialsException(401, {"message": "Bad credentials"}, None)
    with pytest.raises(UnauthorizedError):
        GitHubGateway("test_token").list_repositories()


def test_list_repositories_server_error_is_retried_then_reported(mock_github, no_retry_sleep):
    mock_github.return_value.get_user.side_effect = GithubException(502, {"message": "Bad gateway"}, None)
    with pytest.raises(RepositoryFetchError) as excinfo:
        GitHubGateway("test_token").list_repositories()
    assert str(excinfo.value) == "Failed to fetch repositories from GitHub"
    assert mock_github.return_value.get_user.call_count == 3
    assert [c.args[0] for c in no_retry_sleep.call_args_list] == [1.0, 2.0]


def test_list_repositories_recovers_after_rate_limit(mock_github, no_retry_sleep):
    paginated = MagicMock()
    paginated.get_page.return_value = [make_gh_repo(1)]
    user = MagicMock()
    user.get_repos.return_value = paginated
    mock_github.return_value.get_user.side_effect = [
        RateLimitExceededException(403, {"message": "rate limit"}, None),
        user,
    ]
    repos = GitHubGateway("test_token").list_repositories()
    assert len(repos) == 1
    no_retry_sleep.assert_called_once_with(1.0)


def test_get_repository(mock_github):
    mock_github.return_value.get_repo.return_value = make_gh_repo(7, "seven")
    repo = GitHubGateway("test_token").get_repository("octocat", "seven")
    mock_github.return_value.get_repo.assert_called_once_with("octocat/seven")
    assert repo.id == 7


def test_get_repository_not_found_is_not_retried(mock_github, no_retry_sleep):
    mock_github.return_value.get_repo.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)
    with pytest.raises(RepositoryNotFoundError) as excinfo:
        GitHubGateway("test_token").get_repository("octocat", "missing")
    assert str(excinfo.value) == "Repository octocat/missing not found"
    assert mock_github.return_value.get_repo.call_count == 1
    no_retry_sleep.assert_not_called()


def test_delete_repository(mock_github):
    GitHubGateway("test_token").delete_repository("octocat", "old")
    mock_github.return_value.get_repo.assert_called_once_with("octocat/old", lazy=True)
    mock_github.return_value.get_repo.return_value.delete.assert_called_once_with()


def test_delete_repository_failure_is_not_retried(mock_github, no_retry_sleep):
    mock_github.return_value.get_repo.return_value.delete.side_effect = GithubException(500, {"message": "boom"}, None)
    with pytest.raises(RepositoryDeleteError) as excinfo:
        GitHubGateway("test_token").delete_repository("octocat", "old")
    assert str(excinfo.value) == "Failed to delete repository from GitHub"
    assert mock_github.return_value.get_repo.return_value.delete.call_count == 1
    no_retry_sleep.assert_not_called()


def test_delete_repository_bad_credentials(mock_github):
    mock_github.return_value.get_repo.return_value.delete.side_effect = BadCredentialsException(401, {}, None)
    with pytest.raises(UnauthorizedError):
        GitHubGateway("test_token").delete_repository("octocat", "old")


def test_repositories_with_health_pauses_between_batches_only(mock_github):
    set_owned_repos(mock_github, [make_gh_repo(i, f"r{i}") for i in range(12)])
    sleep = MagicMock()
    gateway = GitHubGateway("test_token", health_batch_size=5, health_batch_delay=1.5, sleep=sleep)

    results = gateway.get_repositories_with_health()

    assert len(results) == 12
    assert all(isinstance(r, RepositoryWithHealth) for r in results)
    assert all(r.health.status == HealthStatus.EXCELLENT for r in results)
    assert sleep.call_count == 2
    sleep.assert_called_with(1.5)


def test_repositories_with_health_single_batch_never_sleeps(mock_github):
    set_owned_repos(mock_github, [make_gh_repo(i, f"r{i}") for i in range(5)])
    sleep = MagicMock()
    GitHubGateway("test_token", health_batch_size=5, sleep=sleep).get_repositories_with_health()
    sleep.assert_not_called()


def test_repositories_with_health_keeps_repository_when_scoring_fails(mock_github):
    set_owned_repos(mock_github, [make_gh_repo(1, "a"), make_gh_repo(2, "b")])
    gateway = GitHubGateway("test_token", sleep=MagicMock())
    real_score = gateway.analyze_repository_health

    def flaky(repository):
        if repository.id == 1:
            raise RuntimeError("scoring exploded")
        return real_score(repository)

    with patch.object(gateway, "analyze_repository_health", side_effect=flaky):
        results = gateway.get_repositories_with_health()

    assert [r.id for r in results] == [1, 2]
    assert results[0].health is None
    assert results[1].health is not None


def test_test_connection(mock_github):
    gateway = GitHubGateway("test_token")
    assert gateway.test_connection() is True
    mock_github.return_value.get_user.side_effect = GithubException(500, {}, None)
    assert gateway.test_connection() is False
