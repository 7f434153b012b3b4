"""Row models of the snapshot store.

Decoupled from bbextract_core so the store layer can be used independently
and bbextract_core has no knowledge of persistence concerns. Every record
maps to one table; the store adds the `version` column itself. Field order is
column order.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ProjectRecord:
    key: str
    name: str
    description: str = ""


@dataclass
class RepositoryRecord:
    project_key: str
    slug: str
    name: str
    description: str = ""
    is_public: bool = False
    has_issues: bool = False
    scm: str = "git"


@dataclass
class PullRequestRecord:
    project_key: str
    repo_slug: str
    id: int
    title: str
    state: str  # "OPEN" | "MERGED" | "DECLINED" | "SUPERSEDED"
    description: str = ""
    author: str = ""
    source_branch: str = ""
    source_commit: str = ""
    destination_branch: str = ""
    destination_commit: str = ""
    created_at: str | None = None  # ISO-8601 UTC timestamp
    updated_at: str | None = None
    commits: int = 0
    changed_files: int = 0
    additions: int = 0
    deletions: int = 0
    comments: int = 0
    review_comments: int = 0
    reviews: int = 0
    merged_at: str | None = None
    merged_by: str = ""
    closed_at: str | None = None
    closed_by: str = ""


@dataclass
class CommentRecord:
    """A top-level pull request comment or one of its replies."""

    project_key: str
    repo_slug: str
    pull_request_id: int
    id: int
    text: str
    author: str = ""
    parent_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class DiffCommentRecord:
    """A comment anchored to a file location; replies carry the root's anchor."""

    project_key: str
    repo_slug: str
    pull_request_id: int
    id: int
    text: str
    path: str
    author: str = ""
    parent_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    src_path: str = ""
    src_line: int | None = None
    dst_line: int | None = None
    line_type: str = ""
    file_type: str = ""
    from_hash: str = ""
    to_hash: str = ""


@dataclass
class ReviewRecord:
    project_key: str
    repo_slug: str
    pull_request_id: int
    id: int
    state: str  # "APPROVED" | "CHANGES_REQUESTED"
    author: str = ""
    created_at: str | None = None


@dataclass
class DiffStatRecord:
    project_key: str
    repo_slug: str
    pull_request_id: int
    added: int = 0
    removed: int = 0


@dataclass
class UserRecord:
    """A user account, keyed by `user_id`.

    Usernames are not unique on Bitbucket Cloud (they are nicknames), so the
    stable account id is the key; it falls back to the username only for
    accounts that expose no id.
    """

    username: str
    display_name: str = ""
    user_id: str = ""
    email: str = ""


@dataclass
class VersionInfo:
    """One snapshot version as listed by `BaseStore.list_versions()`."""

    version: int
    state: str  # "loading" | "loaded"
    started_at: str
    finished_at: str | None = None
    rows: int = 0
    active: bool = False


# Table name -> record class. Shared by every backend.
TABLES: dict[str, type] = {
    "projects": ProjectRecord,
    "repositories": RepositoryRecord,
    "pull_requests": PullRequestRecord,
    "pull_request_comments": CommentRecord,
    "pull_request_review_comments": DiffCommentRecord,
    "pull_request_reviews": ReviewRecord,
    "diff_stats": DiffStatRecord,
    "users": UserRecord,
}
