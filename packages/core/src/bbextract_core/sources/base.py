"""Base source implementing the Template Method pattern.

Both API variants are walked with the same algorithm:
    list_projects() → list_repositories() → list_pull_requests()
        → count_commits() + get_diff_stat() + get_activity()
    list_users()

Subclasses implement the endpoint-specific operations. `get_activity()` is
concrete here: whatever a variant's raw history looks like, it is expressed as
an Activity sequence and bucketed by the one shared classifier.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from bbextract_core.activity import ActivityDigest, classify

if TYPE_CHECKING:
    from bbextract_core.client import ApiClient
    from bbextract_core.models import Activity, DiffStat, Project, PullRequest, Repository, User
    from bbextract_core.paging import Paging


class BaseSource(ABC):
    """Read-only view of one code-hosting installation."""

    name: str = "base"
    # Lifecycle states the pull-request listing endpoint is queried with, one call each.
    PULL_REQUEST_STATES: tuple[str, ...] = ()

    def __init__(self, client: ApiClient, paging: Paging):
        self.client = client
        self.paging = paging

    # ------------------------------------------------------------------ #
    # Abstract: implement in each variant                                  #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def list_projects(self) -> list[Project]:
        """Return every project visible to the credentials."""

    @abstractmethod
    def list_repositories(self, project: Project) -> list[Repository]:
        """Return the repositories owned by a project."""

    @abstractmethod
    def list_pull_requests(self, repo: Repository) -> list[PullRequest]:
        """Return pull requests in every lifecycle state, one listing per state, concatenated.

        Raises UnavailableError when the repository has no pull request endpoint.
        """

    @abstractmethod
    def count_commits(self, repo: Repository, pr: PullRequest) -> int:
        """Return the number of commits in a pull request."""

    @abstractmethod
    def get_diff_stat(self, repo: Repository, pr: PullRequest) -> DiffStat:
        """Return added/removed line totals for a pull request."""

    @abstractmethod
    def list_activities(self, repo: Repository, pr: PullRequest) -> list[Activity]:
        """Return the pull request's full history as Activities, in remote order."""

    @abstractmethod
    def list_users(self) -> list[User]:
        """Return every user of the installation or workspace."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def get_activity(self, repo: Repository, pr: PullRequest) -> ActivityDigest:
        return classify(self.list_activities(repo, pr))

    def close(self) -> None:
        self.client.close()
