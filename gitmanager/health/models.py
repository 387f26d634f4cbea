"""Pydantic models for repositories and their derived health."""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class HealthStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class IssueKind(str, Enum):
    NO_RECENT_ACTIVITY = "no_recent_activity"
    EMPTY_REPO = "empty_repo"
    NO_DESCRIPTION = "no_description"
    LARGE_SIZE = "large_size"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HealthIssue(BaseModel):
    kind: IssueKind
    severity: Severity
    description: str


class RepositoryHealth(BaseModel):
    """Health of one repository at one point in time. Never persisted."""
    score: int
    status: HealthStatus
    issues: List[HealthIssue] = []
    analyzed_at: datetime


class Repository(BaseModel):
    """Read-only mirror of the fields we use from a GitHub repository."""
    id: int
    name: str
    full_name: str
    owner_login: str
    private: bool = False
    fork: bool = False
    archived: bool = False
    description: Optional[str] = None
    size: int = 0  # KB, as reported by GitHub
    stargazers_count: int = 0
    forks_count: int = 0
    watchers_count: int = 0
    language: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    pushed_at: Optional[datetime] = None
    default_branch: str = "main"
    html_url: str


class RepositoryWithHealth(Repository):
    health: Optional[RepositoryHealth] = None
