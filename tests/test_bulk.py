"""Tests for the bulk delete orchestrator."""
import threading
from unittest.mock import MagicMock

import pytest

from gitmanager.bulk import BulkDeleteOrchestrator, BulkOutcome
from gitmanager.github.client import RepositoryDeleteError
from gitmanager.settings_store import UserPreferences


@pytest.fixture
def repos(make_repo):
    return [make_repo(i, f"repo-{i}") for i in range(1, 6)]


def gateway_failing_for(*names):
    gateway = MagicMock()

    def delete(owner, name):
        if name in names:
            raise RepositoryDeleteError()

    gateway.delete_repository.side_effect = delete
    return gateway


def test_all_deletes_succeed(repos):
    gateway = gateway_failing_for()
    on_deleted = MagicMock()
    result = BulkDeleteOrchestrator(gateway).delete([1, 2], repos, on_deleted=on_deleted)

    assert result.outcome == BulkOutcome.SUCCESS
    assert sorted(result.succeeded_ids) == [1, 2]
    assert result.message == "Successfully deleted 2 repositories"
    on_deleted.assert_called_once()
    assert sorted(on_deleted.call_args.args[0]) == [1, 2]


def test_single_success_message_is_singular(repos):
    result = BulkDeleteOrchestrator(gateway_failing_for()).delete([3], repos)
    assert result.message == "Successfully deleted 1 repository"


def test_partial_failure_reports_both_sides(repos):
    gateway = gateway_failing_for("repo-2", "repo-4")
    result = BulkDeleteOrchestrator(gateway).delete([1, 2, 3, 4, 5], repos)

    assert result.outcome == BulkOutcome.PARTIAL
    assert sorted(result.succeeded_ids) == [1, 3, 5]
    assert sorted(result.failed_ids) == [2, 4]
    assert result.message == "3 succeeded, 2 failed"
    # Every delete is attempted even though some failed
    assert gateway.delete_repository.call_count == 5


def test_total_failure_does_not_report_deletions(repos):
    on_deleted = MagicMock()
    result = BulkDeleteOrchestrator(gateway_failing_for("repo-1", "repo-2")).delete(
        [1, 2], repos, on_deleted=on_deleted)
    assert result.outcome == BulkOutcome.FAILURE
    assert result.message == "Failed to delete repositories"
    on_deleted.assert_not_called()


def test_disabled_bulk_operations_make_no_calls(repos):
    gateway = MagicMock()
    prefs = UserPreferences(disable_bulk_operations=True)
    result = BulkDeleteOrchestrator(gateway).delete([1, 2], repos, prefs)
    assert result.outcome == BulkOutcome.DISABLED
    assert result.message == "Bulk operations are disabled in your settings"
    gateway.delete_repository.assert_not_called()


def test_unknown_ids_are_ignored(repos):
    gateway = gateway_failing_for()
    result = BulkDeleteOrchestrator(gateway).delete([1, 99], repos)
    assert result.succeeded_ids == [1]
    gateway.delete_repository.assert_called_once_with("octocat", "repo-1")


def test_nothing_selected(repos):
    gateway = MagicMock()
    result = BulkDeleteOrchestrator(gateway).delete([], repos)
    assert result.outcome == BulkOutcome.NOTHING_SELECTED
    gateway.delete_repository.assert_not_called()


def test_result_to_dict(repos):
    result = BulkDeleteOrchestrator(gateway_failing_for("repo-2")).delete([1, 2], repos)
    payload = result.to_dict()
    assert payload["outcome"] == "partial"
    assert payload["success_count"] == 1
    assert payload["failure_count"] == 1
    assert payload["message"] == "1 succeeded, 1 failed"


def test_every_delete_is_in_flight_at_once(make_repo):
    many = [make_repo(i, f"repo-{i}") for i in range(1, 13)]
    # Each delete blocks until all twelve have started
    barrier = threading.Barrier(len(many), timeout=5)
    gateway = MagicMock()
    gateway.delete_repository.side_effect = lambda owner, name: barrier.wait()

    result = BulkDeleteOrchestrator(gateway).delete([r.id for r in many], many)

    assert result.outcome == BulkOutcome.SUCCESS
    assert result.success_count == 12
