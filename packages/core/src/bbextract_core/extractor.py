"""Full-history walk: project → repository → pull request, then users.

The Extractor yields extracted entities in walk order and knows nothing about
persistence; the caller decides where they go. Per-pull-request failures are
handled by the run's error policy, chosen once for the whole run:

  strict      : the first failure propagates and ends the walk.
  best_effort : the failing pull request is logged, counted and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Union

from bbextract_core.client import ApiClient, BearerAuth
from bbextract_core.enricher import EnrichmentResult, enrich
from bbextract_core.errors import ConfigError, ExtractError, UnavailableError
from bbextract_core.models import Project, PullRequest, Repository, User
from bbextract_core.paging import CursorPaging, OffsetPaging
from bbextract_core.transport import RetryPolicy

if TYPE_CHECKING:
    from bbextract_core.sources.base import BaseSource

logger = logging.getLogger(__name__)

STRICT = "strict"
BEST_EFFORT = "best_effort"


@dataclass(frozen=True)
class PullRequestBundle:
    """One enriched pull request together with everything derived from it."""

    repository: Repository
    result: EnrichmentResult


Extracted = Union[Project, Repository, PullRequestBundle, User]


@dataclass
class ExtractionSummary:
    projects: int = 0
    repositories: int = 0
    pull_requests: int = 0
    comments: int = 0
    diff_comments: int = 0
    reviews: int = 0
    users: int = 0
    skipped: int = 0
    unavailable_repositories: int = 0


def build_source(config: dict, auth=None) -> BaseSource:
    """Instantiate the configured API variant over a retrying client."""
    from bbextract_core.sources.cloud import CloudSource
    from bbextract_core.sources.server import ServerSource

    if isinstance(auth, str):
        auth = BearerAuth(auth)
    client = ApiClient(
        base_url=config["base_url"],
        auth=auth,
        policy=RetryPolicy.from_config(config),
        timeout=config.get("timeout", 30),
    )
    variant = config["variant"]
    if variant == "server":
        return ServerSource(client, OffsetPaging(limit=config.get("page_limit", 1000)))
    if variant == "cloud":
        return CloudSource(client, config["workspace"], CursorPaging(pagelen=config.get("pagelen", 50)))
    raise ConfigError(f"Unknown variant: {variant!r}. Choose 'server' or 'cloud'.")


def _latest_listing(prs: list[PullRequest]) -> list[PullRequest]:
    """Collapse pull requests listed more than once, keeping the latest listing of each id."""
    latest: dict[int, PullRequest] = {}
    for pr in prs:
        latest[pr.id] = pr
    return list(latest.values())


def _distinct_users(users: list[User]) -> list[User]:
    """Drop repeated listings of one account, keyed by its stable id (username when it has none)."""
    seen: dict[str, User] = {}
    for user in users:
        seen.setdefault(user.user_id or user.username, user)
    return list(seen.values())


class Extractor:
    def __init__(self, source: BaseSource, error_policy: str = STRICT):
        if error_policy not in (STRICT, BEST_EFFORT):
            raise ConfigError(f"Unknown error policy: {error_policy!r}")
        self.source = source
        self.error_policy = error_policy
        self.summary = ExtractionSummary()

    def run(self) -> Iterator[Extracted]:
        for project in self.source.list_projects():
            self.summary.projects += 1
            yield project
            for repo in self.source.list_repositories(project):
                self.summary.repositories += 1
                yield repo
                yield from self._pull_requests(repo)

        for user in _distinct_users(self.source.list_users()):
            self.summary.users += 1
            yield user

    def _pull_requests(self, repo: Repository) -> Iterator[PullRequestBundle]:
        try:
            prs = self.source.list_pull_requests(repo)
        except UnavailableError as e:
            # Some repositories answer 404 on the pull request endpoints while having none.
            logger.info("Pull requests of %s/%s are unavailable: %s", repo.project_key, repo.slug, e)
            self.summary.unavailable_repositories += 1
            return

        for pr in _latest_listing(prs):
            try:
                result = enrich(self.source, repo, pr)
            except ExtractError as e:
                if self.error_policy == STRICT:
                    raise
                logger.warning("Skipping %s/%s#%d (%s): %s", repo.project_key, repo.slug, pr.id, type(e).__name__, e)
                self.summary.skipped += 1
                continue

            self.summary.pull_requests += 1
            self.summary.comments += len(result.activity.comments)
            self.summary.diff_comments += len(result.activity.diff_comments)
            self.summary.reviews += len(result.activity.reviews)
            yield PullRequestBundle(repository=repo, result=result)
