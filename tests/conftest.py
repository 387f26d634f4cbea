import logging
from datetime import datetime, timedelta, timezone

import pytest

from common.logging import APP_LOGGER_NAME
from gitmanager.health.models import Repository

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_repo():
    """Factory for repositories that score 100 unless overridden."""
    def _make(repo_id=1, name=None, **overrides):
        name = name or f"repo-{repo_id}"
        owner = overrides.pop("owner_login", "octocat")
        fields = dict(
            id=repo_id,
            name=name,
            full_name=f"{owner}/{name}",
            owner_login=owner,
            description="A healthy repository",
            size=500,
            stargazers_count=0,
            forks_count=0,
            created_at=NOW - timedelta(days=400),
            updated_at=NOW - timedelta(days=1),
            pushed_at=NOW - timedelta(days=1),
            html_url=f"https://github.com/{owner}/{name}",
        )
        fields.update(overrides)
        return Repository(**fields)
    return _make


@pytest.fixture(autouse=True)
def reset_app_logger():
    """Drops handlers bound to streams that close with the test (CliRunner, capture)."""
    yield
    logging.getLogger(APP_LOGGER_NAME).handlers.clear()
