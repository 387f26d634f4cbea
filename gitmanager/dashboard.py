"""
Dashboard state for one user session: the loaded repositories, search and
sort controls, the bulk selection, sequential health analysis and the
health summary.

The view-model holds no I/O of its own. Gateways, analyzers and the bulk
orchestrator are passed in by the caller (API route, CLI command or test).
"""
import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set

from common.logging import LoggingManager
from gitmanager.bulk import BulkDeleteOrchestrator, BulkDeleteResult
from gitmanager.health.models import HealthStatus, Repository, RepositoryHealth
from gitmanager.health.scorer import as_utc
from gitmanager.settings_store import UserPreferences

logger = LoggingManager.get_logger('gitmanager.dashboard')

DEFAULT_ANALYSIS_DELAY = 0.3


class SortKey(str, Enum):
    UPDATED = "updated"
    CREATED = "created"
    NAME = "name"
    STARS = "stars"
    FORKS = "forks"
    HEALTH = "health"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class AnalysisState(str, Enum):
    NOT_ANALYZED = "not_analyzed"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"


class ConfirmationMismatchError(ValueError):
    """The typed confirmation did not match the repository name. Nothing was deleted."""
    def __init__(self, names: List[str]):
        self.names = names
        super().__init__(f"Type the repository name to confirm deletion: {', '.join(names)}")


@dataclass
class RepositoryEntry:
    repository: Repository
    health: Optional[RepositoryHealth] = None
    state: AnalysisState = AnalysisState.NOT_ANALYZED

    @property
    def id(self) -> int:
        return self.repository.id

    @property
    def health_score(self) -> int:
        # Unscored and in-flight repositories sort as 0
        if self.state == AnalysisState.ANALYZED and self.health is not None:
            return self.health.score
        return 0


@dataclass(frozen=True)
class AnalysisProgress:
    current: int
    total: int
    repository_id: int
    succeeded: bool


@dataclass(frozen=True)
class HealthSummary:
    excellent: int
    good: int
    fair: int
    poor: int
    total_issues: int
    average_score: int
    total_analyzed: int
    total_repositories: int


def matches_search(repository: Repository, term: str) -> bool:
    term = term.lower()
    if not term:
        return True
    fields = (repository.name, repository.description, repository.full_name, repository.owner_login)
    return any(term in value.lower() for value in fields if value)


def _sort_value(entry: RepositoryEntry, key: SortKey):
    repo = entry.repository
    if key == SortKey.UPDATED:
        return as_utc(repo.updated_at)
    if key == SortKey.CREATED:
        return as_utc(repo.created_at)
    if key == SortKey.NAME:
        return repo.name.lower()
    if key == SortKey.STARS:
        return repo.stargazers_count
    if key == SortKey.FORKS:
        return repo.forks_count
    return entry.health_score


def check_confirmation(repository: Repository, typed: Optional[str], preferences: UserPreferences) -> None:
    """Raises ConfirmationMismatchError unless the typed text equals the repository name."""
    if preferences.require_repo_delete_confirmation and typed != repository.name:
        raise ConfirmationMismatchError([repository.name])


class DashboardViewModel:
    """Client-side state of the repository dashboard."""

    def __init__(self,
                 repositories: Iterable[Repository] = (),
                 preferences: Optional[UserPreferences] = None,
                 analysis_delay: float = DEFAULT_ANALYSIS_DELAY):
        self.preferences = preferences or UserPreferences.defaults()
        self.analysis_delay = analysis_delay
        self.search_term = ""
        self.sort_key = SortKey.UPDATED
        self.sort_direction = SortDirection.ASC
        self.is_analyzing = False
        self.progress_current = 0
        self.progress_total = 0
        self._entries: Dict[int, RepositoryEntry] = {}
        self._selection: Set[int] = set()
        self._summary_shown = False
        self.replace_repositories(repositories)

    # -- collection -----------------------------------------------------

    def replace_repositories(self, repositories: Iterable[Repository]) -> None:
        """Reseeds the collection, e.g. after a refresh. Clears the selection."""
        self._entries = {}
        for repo in repositories:
            health = getattr(repo, "health", None)
            self._entries[repo.id] = RepositoryEntry(
                repository=repo,
                health=health,
                state=AnalysisState.ANALYZED if health is not None else AnalysisState.NOT_ANALYZED,
            )
        self._selection.clear()
        self._update_summary_latch()

    @property
    def repositories(self) -> List[Repository]:
        return [entry.repository for entry in self._entries.values()]

    @property
    def entries(self) -> List[RepositoryEntry]:
        return list(self._entries.values())

    def entry(self, repository_id: int) -> RepositoryEntry:
        return self._entries[repository_id]

    def remove_repositories(self, repository_ids: Iterable[int]) -> None:
        """Drops deleted repositories and unselects them."""
        for repo_id in repository_ids:
            self._entries.pop(repo_id, None)
            self._selection.discard(repo_id)

    # -- search and sort -----------------------------------------------

    def set_search(self, term: str) -> None:
        self.search_term = term or ""

    def set_sort(self, key, direction=None) -> None:
        self.sort_key = SortKey(key)
        if direction is not None:
            self.sort_direction = SortDirection(direction)

    def toggle_sort_direction(self) -> None:
        self.sort_direction = SortDirection.DESC if self.sort_direction == SortDirection.ASC else SortDirection.ASC

    def visible_entries(self) -> List[RepositoryEntry]:
        filtered = [e for e in self._entries.values() if matches_search(e.repository, self.search_term)]
        # sorted() is stable in both directions
        return sorted(
            filtered,
            key=lambda e: _sort_value(e, self.sort_key),
            reverse=self.sort_direction == SortDirection.DESC,
        )

    def visible_repositories(self) -> List[Repository]:
        return [entry.repository for entry in self.visible_entries()]

    # -- selection -------------------------------------------------------

    @property
    def selection(self) -> Set[int]:
        return set(self._selection)

    def select(self, repository_id: int) -> bool:
        """Adds a loaded repository to the selection. Unknown ids are ignored."""
        if repository_id not in self._entries:
            return False
        self._selection.add(repository_id)
        return True

    def deselect(self, repository_id: int) -> None:
        self._selection.discard(repository_id)

    def select_all(self) -> None:
        """Selects exactly what the current search and sort show."""
        self._selection = {entry.id for entry in self.visible_entries()}

    def clear_selection(self) -> None:
        self._selection.clear()

    # -- health analysis -------------------------------------------------

    def analyze_health(self,
                       analyzer: Callable[[Repository], Optional[RepositoryHealth]],
                       sleep: Callable[[float], None] = time.sleep,
                       stop_event: Optional[threading.Event] = None) -> Iterator[AnalysisProgress]:
        """Analyzes every repository that has no health yet, one at a time.

        Each repository is marked ``analyzing`` before the analyzer runs, then
        ``analyzed`` on success or back to ``not_analyzed`` on failure. A failure
        never stops the run. Setting ``stop_event`` ends the run before the next
        repository.

        Yields:
            AnalysisProgress after each repository.
        """
        pending = [e for e in self._entries.values() if e.state == AnalysisState.NOT_ANALYZED]
        total = len(pending)
        if total == 0:
            logger.info("All repositories already have health data")
            return

        logger.info(f"Starting health analysis for {total} repositories")
        self.is_analyzing = True
        self.progress_current, self.progress_total = 0, total
        try:
            for index, entry in enumerate(pending, start=1):
                if stop_event is not None and stop_event.is_set():
                    logger.info(f"Health analysis stopped after {index - 1}/{total} repositories")
                    break

                succeeded = self._analyze_entry(entry, analyzer)
                self.progress_current = index
                yield AnalysisProgress(current=index, total=total, repository_id=entry.id, succeeded=succeeded)

                if index < total:
                    sleep(self.analysis_delay)
        finally:
            self.is_analyzing = False
            self.progress_current, self.progress_total = 0, 0

    def _analyze_entry(self, entry: RepositoryEntry, analyzer) -> bool:
        entry.state = AnalysisState.ANALYZING
        entry.health = None
        try:
            health = analyzer(entry.repository)
        except Exception as e:
            logger.error(f"Error analyzing {entry.repository.full_name}: {e}")
            health = None

        if health is None:
            entry.state = AnalysisState.NOT_ANALYZED
            return False
        entry.health = health
        entry.state = AnalysisState.ANALYZED
        self._update_summary_latch()
        return True

    def run_health_analysis(self, analyzer, sleep: Callable[[float], None] = time.sleep,
                            stop_event: Optional[threading.Event] = None) -> int:
        """Runs analyze_health to the end and returns how many repositories were scored."""
        return sum(1 for progress in self.analyze_health(analyzer, sleep, stop_event) if progress.succeeded)

    # -- summary ---------------------------------------------------------

    def health_summary(self) -> Optional[HealthSummary]:
        analyzed = [e for e in self._entries.values()
                    if e.state == AnalysisState.ANALYZED and e.health is not None]
        if not analyzed:
            return None

        counts = {status: 0 for status in HealthStatus}
        for entry in analyzed:
            counts[entry.health.status] += 1
        total_score = sum(entry.health.score for entry in analyzed)

        return HealthSummary(
            excellent=counts[HealthStatus.EXCELLENT],
            good=counts[HealthStatus.GOOD],
            fair=counts[HealthStatus.FAIR],
            poor=counts[HealthStatus.POOR],
            total_issues=sum(len(entry.health.issues) for entry in analyzed),
            average_score=math.floor(total_score / len(analyzed) + 0.5),
            total_analyzed=len(analyzed),
            total_repositories=len(self._entries),
        )

    def _update_summary_latch(self) -> None:
        if not self._summary_shown and self.health_summary() is not None:
            self._summary_shown = True

    @property
    def summary_visible(self) -> bool:
        """True once any repository finished analysis; stays true for the session."""
        return self._summary_shown

    # -- deletion --------------------------------------------------------

    def delete_repository(self, gateway, repository_id: int, confirmation: Optional[str] = None) -> None:
        """Deletes one repository through the gateway and prunes it locally.

        Raises:
            KeyError: If the repository is not loaded.
            ConfirmationMismatchError: If confirmation is required and does not match.
        """
        repository = self._entries[repository_id].repository
        check_confirmation(repository, confirmation, self.preferences)
        gateway.delete_repository(repository.owner_login, repository.name)
        self.remove_repositories([repository_id])

    def delete_selected(self,
                        orchestrator: BulkDeleteOrchestrator,
                        confirmations: Optional[Dict[int, str]] = None) -> BulkDeleteResult:
        """Bulk-deletes the selection. Deleted ids leave the collection and the selection; failed ids stay selected."""
        if not self.preferences.disable_bulk_operations and self.preferences.require_repo_delete_confirmation:
            confirmations = confirmations or {}
            mismatched = [self._entries[repo_id].repository.name
                          for repo_id in sorted(self._selection)
                          if confirmations.get(repo_id) != self._entries[repo_id].repository.name]
            if mismatched:
                raise ConfirmationMismatchError(mismatched)

        return orchestrator.delete(
            self.selection,
            self.repositories,
            self.preferences,
            on_deleted=self.remove_repositories,
        )
