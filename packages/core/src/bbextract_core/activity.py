"""Activity-stream reconstruction for one pull request.

A pull request's history arrives as a single heterogeneous event log. This
module buckets that log into plain comments, diff-anchored comments, reviews
and at most one terminal state update. Everything here is a pure function of
its input: no I/O, no clock, no shared state.

Reply trees are walked with an explicit stack, so arbitrarily deep threads
cannot exhaust the interpreter's recursion limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, TypeVar

from bbextract_core.errors import DecodeError
from bbextract_core.models import (
    DECLINED,
    MERGED,
    Activity,
    Comment,
    CommentAnchor,
    DiffComment,
    PullRequest,
    Review,
    StateUpdate,
    User,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Action tags of the activity log.
COMMENTED = "COMMENTED"
APPROVED = "APPROVED"
REVIEWED = "REVIEWED"
ADDED = "ADDED"

CHANGES_REQUESTED = "CHANGES_REQUESTED"
CLOSED = "CLOSED"


@dataclass
class ActivityDigest:
    """Everything derived from one pull request's activity log."""

    comments: list[Comment] = field(default_factory=list)
    diff_comments: list[DiffComment] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    state: StateUpdate | None = None


def flatten(comment: Comment) -> list[Comment]:
    """Return the comment followed by a pre-order traversal of its replies.

    Raises DecodeError if the same comment id is reached twice (a cyclic or
    shared reply graph).
    """
    result: list[Comment] = []
    seen: set[int] = set()
    stack = [comment]
    while stack:
        node = stack.pop()
        if node.id in seen:
            raise DecodeError(f"comment {node.id} appears twice in reply tree of comment {comment.id}")
        seen.add(node.id)
        result.append(node)
        stack.extend(reversed(node.replies))
    return result


def flatten_anchored(comment: Comment, anchor: CommentAnchor) -> list[DiffComment]:
    """Flatten a diff comment thread; every reply carries the root's anchor."""
    return [DiffComment(comment=c, anchor=anchor) for c in flatten(comment)]


def _first_by_id(items: list[T], key: Callable[[T], int]) -> list[T]:
    seen: set[int] = set()
    result: list[T] = []
    for item in items:
        k = key(item)
        if k in seen:
            logger.debug("Duplicate activity entry %d, keeping the first", k)
            continue
        seen.add(k)
        result.append(item)
    return result


def classify(activities: Iterable[Activity]) -> ActivityDigest:
    """Bucket an activity log, in the order given, into an ActivityDigest.

    Only the moment a comment is added is recorded; edits and deletions are
    ignored. When several terminal actions appear, the last one wins. An entry
    whose id was already classified is dropped, so every count matches the
    rows that end up stored.
    """
    digest = ActivityDigest()
    for a in activities:
        if a.action == COMMENTED:
            if a.comment_action != ADDED or a.comment is None:
                continue
            if a.anchor is not None:
                digest.diff_comments.extend(flatten_anchored(a.comment, a.anchor))
            else:
                digest.comments.extend(flatten(a.comment))
        elif a.action == APPROVED:
            digest.reviews.append(Review(id=a.id, state=APPROVED, user=a.user, created_date=a.created_date))
        elif a.action == REVIEWED:
            digest.reviews.append(Review(id=a.id, state=CHANGES_REQUESTED, user=a.user, created_date=a.created_date))
        elif a.action == MERGED:
            digest.state = StateUpdate(state=MERGED, user=a.user, date=a.created_date)
        elif a.action == DECLINED:
            digest.state = StateUpdate(state=CLOSED, user=a.user, date=a.created_date)
    digest.comments = _first_by_id(digest.comments, lambda c: c.id)
    digest.diff_comments = _first_by_id(digest.diff_comments, lambda d: d.comment.id)
    digest.reviews = _first_by_id(digest.reviews, lambda r: r.id)
    return digest


# --------------------------------------------------------------------------- #
# Bitbucket Cloud                                                              #
# --------------------------------------------------------------------------- #


def build_reply_trees(
    comments: Iterable[tuple[Comment, CommentAnchor | None]],
) -> list[tuple[Comment, CommentAnchor | None]]:
    """Rebuild reply trees from a flat comment list linked by `parent_id`.

    Nodes are indexed by id and attached to their parent through a
    children index; a comment whose parent is not in the list becomes a root.
    Each root is returned with its own anchor, in input order. Raises
    DecodeError when some comment is unreachable from every root (a cyclic
    parent chain).
    """
    nodes: dict[int, Comment] = {}
    anchors: dict[int, CommentAnchor | None] = {}
    order: list[int] = []
    for comment, anchor in comments:
        if comment.id in nodes:
            logger.debug("Duplicate comment %d in listing, keeping the first", comment.id)
            continue
        nodes[comment.id] = Comment(
            id=comment.id,
            text=comment.text,
            author=comment.author,
            created_date=comment.created_date,
            updated_date=comment.updated_date,
            parent_id=comment.parent_id,
        )
        anchors[comment.id] = anchor
        order.append(comment.id)

    children: dict[int, list[int]] = {}
    roots: list[int] = []
    for comment_id in order:
        parent_id = nodes[comment_id].parent_id
        if parent_id is not None and parent_id in nodes and parent_id != comment_id:
            children.setdefault(parent_id, []).append(comment_id)
        else:
            roots.append(comment_id)

    for parent_id, child_ids in children.items():
        nodes[parent_id].replies.extend(nodes[c] for c in child_ids)

    result = [(nodes[r], anchors[r]) for r in roots]
    reachable = sum(len(flatten(root)) for root, _ in result)
    if reachable != len(nodes):
        raise DecodeError(f"{len(nodes) - reachable} comment(s) are part of a cyclic reply chain")
    return result


def cloud_activities(
    comments: Iterable[tuple[Comment, CommentAnchor | None]],
    participants: Iterable[tuple[User | None, str | None, bool, int | None]],
    pull_request: PullRequest,
) -> list[Activity]:
    """Express cloud comments, participants and state as an activity log for `classify`.

    `participants` holds (user, review state, approved flag, participated_on).
    """
    activities: list[Activity] = []
    for root, anchor in build_reply_trees(comments):
        activities.append(
            Activity(
                id=root.id,
                action=COMMENTED,
                created_date=root.created_date,
                user=root.author,
                comment_action=ADDED,
                comment=root,
                anchor=anchor,
            )
        )

    for index, (user, state, approved, participated_on) in enumerate(participants):
        if approved or state == "approved":
            action = APPROVED
        elif state == "changes_requested":
            action = REVIEWED
        else:
            continue
        activities.append(Activity(id=index, action=action, created_date=participated_on, user=user))

    if pull_request.state in (MERGED, DECLINED):
        activities.append(
            Activity(
                id=pull_request.id,
                action=pull_request.state,
                created_date=pull_request.closed_date,
                user=pull_request.closed_by,
            )
        )
    return activities
