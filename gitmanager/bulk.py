"""Bulk deletion of repositories with per-item outcome reporting."""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from common.logging import LoggingManager
from gitmanager.health.models import Repository
from gitmanager.settings_store import UserPreferences

logger = LoggingManager.get_logger('gitmanager.bulk')


class BulkOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"
    DISABLED = "disabled"
    NOTHING_SELECTED = "nothing_selected"


@dataclass
class BulkDeleteResult:
    """What happened to each repository of one bulk delete. Never raised."""
    outcome: BulkOutcome
    succeeded_ids: List[int] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded_ids)

    @property
    def failure_count(self) -> int:
        return len(self.failed_ids)

    @property
    def message(self) -> str:
        if self.outcome == BulkOutcome.DISABLED:
            return "Bulk operations are disabled in your settings"
        if self.outcome == BulkOutcome.NOTHING_SELECTED:
            return "No repositories selected"
        if self.outcome == BulkOutcome.SUCCESS:
            noun = "repository" if self.success_count == 1 else "repositories"
            return f"Successfully deleted {self.success_count} {noun}"
        if self.outcome == BulkOutcome.PARTIAL:
            return f"{self.success_count} succeeded, {self.failure_count} failed"
        return "Failed to delete repositories"

    def to_dict(self) -> Dict:
        return {
            'outcome': self.outcome.value,
            'message': self.message,
            'succeeded_ids': list(self.succeeded_ids),
            'failed_ids': list(self.failed_ids),
            'success_count': self.success_count,
            'failure_count': self.failure_count,
        }


class BulkDeleteOrchestrator:
    """Deletes many repositories concurrently through a gateway.

    The gateway only needs ``delete_repository(owner, name)``. All deletes
    are in flight at once unless ``max_workers`` caps the pool; one failure
    never cancels the others.
    """

    def __init__(self, gateway, max_workers: Optional[int] = None):
        self.gateway = gateway
        self.max_workers = max_workers

    def _delete_one(self, repository: Repository) -> bool:
        try:
            self.gateway.delete_repository(repository.owner_login, repository.name)
            return True
        except Exception as e:
            logger.error(f"Failed to delete {repository.full_name}: {e}")
            return False

    def delete(self,
               selected_ids: Iterable[int],
               repositories: Sequence[Repository],
               preferences: Optional[UserPreferences] = None,
               on_deleted: Optional[Callable[[List[int]], None]] = None) -> BulkDeleteResult:
        """Deletes the selected repositories.

        Args:
            selected_ids: Ids chosen for deletion. Ids not present in ``repositories`` are ignored.
            repositories: The loaded repositories, used to resolve ids to owner/name.
            preferences: The acting user's preferences; bulk deletion is refused when disabled.
            on_deleted: Called once with the ids that were deleted, if any were.

        Returns:
            BulkDeleteResult classifying the run as success, partial or failure.
        """
        preferences = preferences or UserPreferences.defaults()
        if preferences.disable_bulk_operations:
            logger.info("Bulk delete refused: bulk operations are disabled for this user")
            return BulkDeleteResult(outcome=BulkOutcome.DISABLED)

        wanted = set(selected_ids)
        targets = [repo for repo in repositories if repo.id in wanted]
        if not targets:
            return BulkDeleteResult(outcome=BulkOutcome.NOTHING_SELECTED)

        logger.info(f"Bulk deleting {len(targets)} repositories")
        workers = len(targets) if self.max_workers is None else max(1, min(self.max_workers, len(targets)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bulk-delete") as pool:
            outcomes = list(pool.map(self._delete_one, targets))

        succeeded = [repo.id for repo, ok in zip(targets, outcomes) if ok]
        failed = [repo.id for repo, ok in zip(targets, outcomes) if not ok]

        if not failed:
            outcome = BulkOutcome.SUCCESS
        elif succeeded:
            outcome = BulkOutcome.PARTIAL
        else:
            outcome = BulkOutcome.FAILURE
        result = BulkDeleteResult(outcome=outcome, succeeded_ids=succeeded, failed_ids=failed)
        logger.info(f"Bulk delete finished: {result.message}")

        if succeeded and on_deleted is not None:
            on_deleted(succeeded)
        return result
