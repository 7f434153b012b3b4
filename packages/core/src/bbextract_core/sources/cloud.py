from __future__ import annotations

import logging

from bbextract_core.activity import cloud_activities
from bbextract_core.client import ApiClient, Request
from bbextract_core.diff import aggregate_diffstat
from bbextract_core.errors import DecodeError, UnavailableError
from bbextract_core.models import (
    DECLINED,
    MERGED,
    OPEN,
    SUPERSEDED,
    Activity,
    DiffStat,
    Project,
    PullRequest,
    Repository,
    User,
    comment_from_cloud,
    parse_iso_ms,
    project_from_cloud,
    pull_request_from_cloud,
    repository_from_cloud,
    user_from_cloud,
)
from bbextract_core.paging import CursorPaging, fetch_all, fetch_by_state
from bbextract_core.sources.base import BaseSource

logger = logging.getLogger(__name__)


class CloudSource(BaseSource):
    """Bitbucket Cloud REST 2.0 for one workspace, `next`-link paging."""

    name = "cloud"
    # The listing endpoint filters on one state per call.
    PULL_REQUEST_STATES = (OPEN, MERGED, SUPERSEDED, DECLINED)

    def __init__(self, client: ApiClient, workspace: str, paging: CursorPaging | None = None):
        super().__init__(client, paging or CursorPaging())
        self.workspace = workspace

    def _repo(self, repo: Repository, *segments) -> Request:
        return Request.of("repositories", self.workspace, repo.slug, *segments)

    def _pr(self, repo: Repository, pr: PullRequest, *segments) -> Request:
        return self._repo(repo, "pullrequests", pr.id, *segments)

    def list_projects(self) -> list[Project]:
        values = fetch_all(self.client, Request.of("workspaces", self.workspace, "projects"), self.paging)
        return [project_from_cloud(v) for v in values]

    def list_repositories(self, project: Project) -> list[Repository]:
        request = Request.of("repositories", self.workspace).with_params(q=f'project.key="{project.key}"')
        return [repository_from_cloud(v, project.key) for v in fetch_all(self.client, request, self.paging)]

    def list_pull_requests(self, repo: Repository) -> list[PullRequest]:
        values = fetch_by_state(self.client, self._repo(repo, "pullrequests"), self.paging, self.PULL_REQUEST_STATES)
        return [pull_request_from_cloud(v) for v in values]

    def count_commits(self, repo: Repository, pr: PullRequest) -> int:
        try:
            return len(fetch_all(self.client, self._pr(repo, pr, "commits"), self.paging))
        except UnavailableError:
            # Commits of a pull request from a deleted fork are gone.
            logger.info("No commit listing for %s/%s#%d", self.workspace, repo.slug, pr.id)
            return 0

    def get_diff_stat(self, repo: Repository, pr: PullRequest) -> DiffStat:
        try:
            values = fetch_all(self.client, self._pr(repo, pr, "diffstat"), self.paging)
        except UnavailableError:
            logger.info("No diffstat for %s/%s#%d", self.workspace, repo.slug, pr.id)
            return DiffStat()
        return aggregate_diffstat(values)

    def list_activities(self, repo: Repository, pr: PullRequest) -> list[Activity]:
        comments = [comment_from_cloud(v) for v in fetch_all(self.client, self._pr(repo, pr, "comments"), self.paging)]
        detail = self.client.get_json(self._pr(repo, pr))
        participants = detail.get("participants") or []
        if not isinstance(participants, list):
            raise DecodeError(f"pull request {pr.id}: 'participants' must be a list")
        reviewers = [
            (
                user_from_cloud(p.get("user")),
                p.get("state"),
                bool(p.get("approved", False)),
                parse_iso_ms(p.get("participated_on")),
            )
            for p in participants
            if isinstance(p, dict)
        ]
        return cloud_activities(comments, reviewers, pr)

    def list_users(self) -> list[User]:
        values = fetch_all(self.client, Request.of("workspaces", self.workspace, "members"), self.paging)
        users = []
        for v in values:
            user = user_from_cloud(v.get("user") if isinstance(v, dict) else None)
            if user is not None:
                users.append(user)
        return users
