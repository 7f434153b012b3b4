"""Compose commit count, diff stats and activity into one enriched pull request."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bbextract_core.activity import CLOSED, ActivityDigest
from bbextract_core.models import DECLINED, MERGED, DiffStat, EnrichedPullRequest, PullRequest

if TYPE_CHECKING:
    from bbextract_core.models import Repository
    from bbextract_core.sources.base import BaseSource

logger = logging.getLogger(__name__)

# Terminal state of the activity log -> pull request state.
_TERMINAL_STATES = {MERGED: MERGED, CLOSED: DECLINED}


@dataclass(frozen=True)
class EnrichmentResult:
    pull_request: EnrichedPullRequest
    activity: ActivityDigest
    diff_stat: DiffStat


def build_enriched(pr: PullRequest, commits: int, diff_stat: DiffStat, activity: ActivityDigest) -> EnrichedPullRequest:
    """Merge the raw pull request with its derived counts and terminal state.

    A terminal state found in the activity log takes precedence over the
    listed state, so a pull request merged while the run was in progress is
    never recorded as OPEN.
    """
    state = pr.state
    merged_at = merged_by = closed_at = None
    closed_by = pr.closed_by
    update = activity.state
    if update is not None:
        state = _TERMINAL_STATES.get(update.state, state)
        if update.state == MERGED:
            merged_at, merged_by = update.date, update.user
        elif update.state == CLOSED:
            closed_at, closed_by = update.date, update.user

    return EnrichedPullRequest(
        pull_request=pr,
        state=state,
        commits=commits,
        changed_files=diff_stat.changed_files,
        additions=diff_stat.added,
        deletions=diff_stat.removed,
        comments=len(activity.comments),
        review_comments=len(activity.diff_comments),
        reviews=len(activity.reviews),
        merged_at=merged_at,
        merged_by=merged_by,
        closed_at=closed_at,
        closed_by=closed_by,
    )


def enrich(source: BaseSource, repo: Repository, pr: PullRequest) -> EnrichmentResult:
    """Fetch everything a pull request needs and return it as one unit.

    All sub-fetches complete before anything is built; any exception leaves
    nothing behind for this pull request.
    """
    commits = source.count_commits(repo, pr)
    diff_stat = source.get_diff_stat(repo, pr)
    activity = source.get_activity(repo, pr)
    logger.debug(
        "%s/%s#%d: %d commit(s), +%d/-%d, %d comment(s), %d diff comment(s), %d review(s)",
        repo.project_key,
        repo.slug,
        pr.id,
        commits,
        diff_stat.added,
        diff_stat.removed,
        len(activity.comments),
        len(activity.diff_comments),
        len(activity.reviews),
    )
    return EnrichmentResult(
        pull_request=build_enriched(pr, commits, diff_stat, activity),
        activity=activity,
        diff_stat=diff_stat,
    )
