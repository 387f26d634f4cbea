"""Deterministic health scoring for a single repository."""
import math
from datetime import datetime, timezone
from typing import List, Optional

from gitmanager.health.models import (
    HealthIssue,
    HealthStatus,
    IssueKind,
    Repository,
    RepositoryHealth,
    Severity,
)

MAX_SCORE = 100

SEVERITY_PENALTIES = {
    Severity.HIGH: 25,
    Severity.MEDIUM: 15,
    Severity.LOW: 5,
}

# Lowest score for each status, checked from the top down
STATUS_THRESHOLDS = [
    (80, HealthStatus.EXCELLENT),
    (60, HealthStatus.GOOD),
    (40, HealthStatus.FAIR),
]

STALE_AFTER_DAYS = 180
ABANDONED_AFTER_DAYS = 365
EMPTY_MAX_SIZE_KB = 1
LARGE_MIN_SIZE_KB = 100_000


def status_for_score(score: int) -> HealthStatus:
    for threshold, status in STATUS_THRESHOLDS:
        if score >= threshold:
            return status
    return HealthStatus.POOR


def as_utc(value: datetime) -> datetime:
    # GitHub timestamps are UTC; PyGithub may hand them back naive
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_since_push(repository: Repository, now: datetime) -> float:
    """Whole days since the last push, or infinity if nothing was ever pushed."""
    if repository.pushed_at is None:
        return math.inf
    delta = as_utc(now) - as_utc(repository.pushed_at)
    return math.floor(delta.total_seconds() / 86400)


def find_issues(repository: Repository, now: datetime) -> List[HealthIssue]:
    """Applies each rule independently, in a fixed order."""
    issues: List[HealthIssue] = []

    if not repository.description or not repository.description.strip():
        issues.append(HealthIssue(
            kind=IssueKind.NO_DESCRIPTION,
            severity=Severity.LOW,
            description="Repository has no description",
        ))

    days = days_since_push(repository, now)
    if math.isinf(days):
        issues.append(HealthIssue(
            kind=IssueKind.NO_RECENT_ACTIVITY,
            severity=Severity.MEDIUM,
            description="No push activity recorded",
        ))
    elif days > ABANDONED_AFTER_DAYS:
        issues.append(HealthIssue(
            kind=IssueKind.NO_RECENT_ACTIVITY,
            severity=Severity.MEDIUM,
            description=f"No activity for {int(days // 365)} year(s)",
        ))
    elif days > STALE_AFTER_DAYS:
        issues.append(HealthIssue(
            kind=IssueKind.NO_RECENT_ACTIVITY,
            severity=Severity.LOW,
            description=f"No activity for {int(days)} days",
        ))

    if repository.size <= EMPTY_MAX_SIZE_KB:
        issues.append(HealthIssue(
            kind=IssueKind.EMPTY_REPO,
            severity=Severity.HIGH,
            description="Repository appears to be empty or minimal",
        ))

    if repository.size > LARGE_MIN_SIZE_KB:
        size_mb = math.floor(repository.size / 1024 + 0.5)
        issues.append(HealthIssue(
            kind=IssueKind.LARGE_SIZE,
            severity=Severity.MEDIUM,
            description=f"Repository is large ({size_mb}MB)",
        ))

    return issues


def score_issues(issues: List[HealthIssue]) -> int:
    penalty = sum(SEVERITY_PENALTIES[issue.severity] for issue in issues)
    return max(0, MAX_SCORE - penalty)


def score_repository(repository: Repository, now: Optional[datetime] = None) -> RepositoryHealth:
    """Scores a repository from its metadata alone.

    Args:
        repository: The repository to score.
        now: Clock reading to score against. Defaults to the current UTC time;
             pass it explicitly for reproducible results.

    Returns:
        RepositoryHealth with score, status and the ordered issue list.
    """
    now = now or datetime.now(timezone.utc)
    issues = find_issues(repository, now)
    score = score_issues(issues)
    return RepositoryHealth(
        score=score,
        status=status_for_score(score),
        issues=issues,
        analyzed_at=now,
    )
