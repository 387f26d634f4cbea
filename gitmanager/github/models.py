"""Conversion of PyGithub objects into our repository model."""
from github.Repository import Repository as GHRepository

from gitmanager.health.models import Repository


def repository_from_github(repo: GHRepository) -> Repository:
    return Repository(
        id=repo.id,
        name=repo.name,
        full_name=repo.full_name,
        owner_login=repo.owner.login,
        private=repo.private,
        fork=repo.fork,
        archived=repo.archived,
        description=repo.description,
        size=repo.size or 0,
        stargazers_count=repo.stargazers_count,
        forks_count=repo.forks_count,
        watchers_count=repo.watchers_count,
        language=repo.language,
        created_at=repo.created_at,
        updated_at=repo.updated_at,
        pushed_at=repo.pushed_at,
        default_branch=repo.default_branch or "main",
        html_url=repo.html_url,
    )
