"""GitHub API gateway for the authenticated user's repositories."""
import time
from functools import wraps
from typing import Any, Callable, List, Optional

from github import (
    Auth,
    BadCredentialsException,
    Github,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

from common.logging import LoggingManager
from gitmanager.github.models import repository_from_github
from gitmanager.health.models import Repository, RepositoryHealth, RepositoryWithHealth
from gitmanager.health.scorer import score_repository

logger = LoggingManager.get_logger('gitmanager.github')

DEFAULT_PAGE_SIZE = 100
DEFAULT_HEALTH_BATCH_SIZE = 5
DEFAULT_HEALTH_BATCH_DELAY = 1.0


class GatewayError(Exception):
    """Base class for errors raised by the GitHub gateway."""
    pass


class UnauthorizedError(GatewayError):
    """Missing, invalid or revoked GitHub token."""
    def __init__(self, message: str = "Unauthorized - Please sign in with GitHub"):
        super().__init__(message)


class RepositoryNotFoundError(GatewayError):
    def __init__(self, owner: str, name: str):
        super().__init__(f"Repository {owner}/{name} not found")
        self.owner = owner
        self.name = name


class UpstreamError(GatewayError):
    """GitHub call failed. The message is safe to show to users; the cause is chained."""
    pass


class RepositoryFetchError(UpstreamError):
    def __init__(self, message: str = "Failed to fetch repositories from GitHub"):
        super().__init__(message)


class RepositoryDeleteError(UpstreamError):
    def __init__(self, message: str = "Failed to delete repository from GitHub"):
        super().__init__(message)


def _is_transient(error: GithubException) -> bool:
    if isinstance(error, RateLimitExceededException):
        return True
    status = getattr(error, "status", None)
    return status is not None and status >= 500


def retry_on_failure(max_retries: int = 2, delay: float = 1.0, backoff: float = 2.0):
    """Decorator to retry a read call on transient GitHub failures.

    Only rate limiting and 5xx responses are retried; authentication and
    not-found errors are raised on the first attempt.

    Args:
        max_retries: Maximum number of retry attempts.
        delay: Initial delay between retries in seconds.
        backoff: Multiplier for delay after each retry.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            current_delay = delay
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except GithubException as e:
                    if not _is_transient(e) or attempt == max_retries:
                        raise
                    logger.warning(f"Attempt {attempt + 1}/{max_retries + 1} of {func.__name__} failed: {e}")
                    logger.info(f"Retrying in {current_delay:.2f} seconds...")
                    time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator


class GitHubGateway:
    """Translates repository operations into GitHub REST calls for one user token."""

    def __init__(self,
                 token: Optional[str],
                 page_size: int = DEFAULT_PAGE_SIZE,
                 health_batch_size: int = DEFAULT_HEALTH_BATCH_SIZE,
                 health_batch_delay: float = DEFAULT_HEALTH_BATCH_DELAY,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize the gateway.

        Args:
            token: OAuth access token of the signed-in user.
            page_size: Repositories per page; only the first page is listed.
            health_batch_size: Repositories scored per batch in get_repositories_with_health.
            health_batch_delay: Seconds to pause between scoring batches.
            sleep: Sleep function, replaceable in tests.
        """
        if not token:
            logger.error("GitHub gateway created without an access token")
            raise UnauthorizedError()
        self.page_size = page_size
        self.health_batch_size = health_batch_size
        self.health_batch_delay = health_batch_delay
        self._sleep = sleep
        self.gh = Github(auth=Auth.Token(token), per_page=page_size)

    @classmethod
    def from_config(cls, token: Optional[str], config) -> "GitHubGateway":
        return cls(
            token,
            page_size=config.repository_page_size,
            health_batch_size=config.health_batch_size,
            health_batch_delay=config.health_batch_delay,
        )

    def test_connection(self) -> bool:
        """Returns True if the token can read the authenticated user."""
        try:
            self.gh.get_user().login
            return True
        except GithubException as e:
            logger.error(f"GitHub API connection test failed: {e}")
            return False

    @retry_on_failure()
    def _fetch_owned_repositories(self) -> list:
        # Only the first page is fetched; users with more repositories see the most recently updated ones
        paginated = self.gh.get_user().get_repos(type="owner", sort="updated")
        return paginated.get_page(0)

    def list_repositories(self) -> List[Repository]:
        """Owned repositories, most recently updated first, first page only."""
        logger.info("Listing repositories for authenticated user")
        try:
            repos = self._fetch_owned_repositories()
        except BadCredentialsException as e:
            logger.warning(f"GitHub rejected the access token: {e}")
            raise UnauthorizedError() from e
        except GithubException as e:
            logger.error(f"Error fetching repositories: {e}", exc_info=True)
            raise RepositoryFetchError() from e
        repositories = [repository_from_github(repo) for repo in repos]
        logger.info(f"Fetched {len(repositories)} repositories")
        return repositories

    @retry_on_failure()
    def _fetch_repository(self, owner: str, name: str):
        return self.gh.get_repo(f"{owner}/{name}")

    def get_repository(self, owner: str, name: str) -> Repository:
        logger.info(f"Fetching repository {owner}/{name}")
        try:
            repo = self._fetch_repository(owner, name)
        except BadCredentialsException as e:
            raise UnauthorizedError() from e
        except UnknownObjectException as e:
            logger.info(f"Repository {owner}/{name} not found")
            raise RepositoryNotFoundError(owner, name) from e
        except GithubException as e:
            logger.error(f"Error fetching repository {owner}/{name}: {e}", exc_info=True)
            raise RepositoryFetchError("Failed to fetch repository from GitHub") from e
        return repository_from_github(repo)

    def delete_repository(self, owner: str, name: str) -> None:
        """Deletes a repository on GitHub. This cannot be undone and is never retried."""
        logger.info(f"Deleting repository {owner}/{name}")
        try:
            repo = self.gh.get_repo(f"{owner}/{name}", lazy=True)
            repo.delete()
        except BadCredentialsException as e:
            raise UnauthorizedError() from e
        except GithubException as e:
            logger.error(f"Error deleting repository {owner}/{name}: {e}", exc_info=True)
            raise RepositoryDeleteError() from e
        logger.info(f"Deleted repository {owner}/{name}")

    def analyze_repository_health(self, repository: Repository) -> RepositoryHealth:
        return score_repository(repository)

    def get_repositories_with_health(self) -> List[RepositoryWithHealth]:
        """Lists repositories and scores them in small batches.

        A repository whose scoring fails is returned without health rather
        than failing the whole list.
        """
        repositories = self.list_repositories()
        results: List[RepositoryWithHealth] = []
        batch_size = max(1, self.health_batch_size)

        for start in range(0, len(repositories), batch_size):
            batch = repositories[start:start + batch_size]
            for repository in batch:
                try:
                    health = self.analyze_repository_health(repository)
                except Exception as e:
                    logger.error(f"Failed to analyze health for {repository.full_name}: {e}", exc_info=True)
                    health = None
                results.append(RepositoryWithHealth(**repository.model_dump(), health=health))

            if start + batch_size < len(repositories):
                logger.debug(f"Scored {len(results)}/{len(repositories)} repositories, pausing {self.health_batch_delay}s")
                self._sleep(self.health_batch_delay)

        return results
