from __future__ import annotations

import logging

from bbextract_core.client import ApiClient, Request
from bbextract_core.diff import aggregate_diff
from bbextract_core.errors import UnavailableError
from bbextract_core.models import (
    DECLINED,
    MERGED,
    OPEN,
    Activity,
    DiffStat,
    Project,
    PullRequest,
    Repository,
    User,
    activity_from_server,
    project_from_server,
    pull_request_from_server,
    repository_from_server,
    user_from_server,
)
from bbextract_core.paging import OffsetPaging, fetch_all, fetch_by_state
from bbextract_core.sources.base import BaseSource

logger = logging.getLogger(__name__)

_API = ("api", "1.0")


class ServerSource(BaseSource):
    """Bitbucket Server / Data Center REST 1.0, start/limit paging."""

    name = "server"
    # The server API has no SUPERSEDED state.
    PULL_REQUEST_STATES = (OPEN, MERGED, DECLINED)

    def __init__(self, client: ApiClient, paging: OffsetPaging | None = None):
        super().__init__(client, paging or OffsetPaging())

    def _repo(self, repo: Repository, *segments) -> Request:
        return Request.of(*_API, "projects", repo.project_key, "repos", repo.slug, *segments)

    def _pr(self, repo: Repository, pr: PullRequest, *segments) -> Request:
        return self._repo(repo, "pull-requests", pr.id, *segments)

    def list_projects(self) -> list[Project]:
        values = fetch_all(self.client, Request.of(*_API, "projects"), self.paging)
        return [project_from_server(v) for v in values]

    def list_repositories(self, project: Project) -> list[Repository]:
        request = Request.of(*_API, "projects", project.key, "repos")
        return [repository_from_server(v, project.key) for v in fetch_all(self.client, request, self.paging)]

    def list_pull_requests(self, repo: Repository) -> list[PullRequest]:
        values = fetch_by_state(self.client, self._repo(repo, "pull-requests"), self.paging, self.PULL_REQUEST_STATES)
        return [pull_request_from_server(v) for v in values]

    def count_commits(self, repo: Repository, pr: PullRequest) -> int:
        try:
            return len(fetch_all(self.client, self._pr(repo, pr, "commits"), self.paging))
        except UnavailableError:
            logger.info("No commit listing for %s/%s#%d", repo.project_key, repo.slug, pr.id)
            return 0

    def get_diff_stat(self, repo: Repository, pr: PullRequest) -> DiffStat:
        try:
            payload = self.client.get_json(self._pr(repo, pr, "diff"))
        except UnavailableError:
            logger.info("No diff for %s/%s#%d", repo.project_key, repo.slug, pr.id)
            return DiffStat()
        return aggregate_diff(payload)

    def list_activities(self, repo: Repository, pr: PullRequest) -> list[Activity]:
        values = fetch_all(self.client, self._pr(repo, pr, "activities"), self.paging)
        return [activity_from_server(v) for v in values]

    def list_users(self) -> list[User]:
        values = fetch_all(self.client, Request.of(*_API, "users"), self.paging)
        return [u for u in (user_from_server(v) for v in values) if u is not None]
