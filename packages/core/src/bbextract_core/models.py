"""Domain models and decoders for Bitbucket Server and Cloud payloads.

Decoders are the only place that knows the remote JSON shapes. A payload that
is missing a required key or has the wrong type raises DecodeError; optional
fields fall back to empty values. Timestamps are normalised to epoch
milliseconds (the server API's native unit).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from bbextract_core.errors import DecodeError

# Pull request lifecycle states as reported by the remote APIs.
OPEN = "OPEN"
MERGED = "MERGED"
DECLINED = "DECLINED"
SUPERSEDED = "SUPERSEDED"


@dataclass(frozen=True)
class User:
    username: str
    display_name: str = ""
    user_id: str = ""
    email: str = ""


@dataclass(frozen=True)
class Project:
    key: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class Repository:
    slug: str
    project_key: str
    name: str
    description: str = ""
    is_public: bool = False
    has_issues: bool = False
    scm: str = "git"


@dataclass(frozen=True)
class PullRequest:
    id: int
    title: str
    state: str
    description: str = ""
    author: User | None = None
    source_branch: str = ""
    source_commit: str = ""
    destination_branch: str = ""
    destination_commit: str = ""
    created_date: int | None = None
    updated_date: int | None = None
    closed_date: int | None = None
    closed_by: User | None = None


@dataclass(frozen=True)
class CommentAnchor:
    """File location a diff comment is attached to."""

    path: str
    src_path: str = ""
    src_line: int | None = None
    dst_line: int | None = None
    line_type: str = ""
    file_type: str = ""
    from_hash: str = ""
    to_hash: str = ""


@dataclass
class Comment:
    id: int
    text: str
    author: User | None = None
    created_date: int | None = None
    updated_date: int | None = None
    parent_id: int | None = None
    replies: list[Comment] = field(default_factory=list)


@dataclass(frozen=True)
class DiffComment:
    comment: Comment
    anchor: CommentAnchor


@dataclass(frozen=True)
class Activity:
    id: int
    action: str
    created_date: int | None = None
    user: User | None = None
    comment_action: str | None = None
    comment: Comment | None = None
    anchor: CommentAnchor | None = None


@dataclass(frozen=True)
class Review:
    id: int
    state: str  # "APPROVED" | "CHANGES_REQUESTED"
    user: User | None
    created_date: int | None


@dataclass(frozen=True)
class StateUpdate:
    state: str  # "MERGED" | "CLOSED"
    user: User | None
    date: int | None


@dataclass(frozen=True)
class DiffStat:
    added: int = 0
    removed: int = 0
    changed_files: int = 0


@dataclass(frozen=True)
class EnrichedPullRequest:
    pull_request: PullRequest
    state: str
    commits: int = 0
    changed_files: int = 0
    additions: int = 0
    deletions: int = 0
    comments: int = 0
    review_comments: int = 0
    reviews: int = 0
    merged_at: int | None = None
    merged_by: User | None = None
    closed_at: int | None = None
    closed_by: User | None = None


# --------------------------------------------------------------------------- #
# Helpers                                                                      #
# --------------------------------------------------------------------------- #


def _require(data: Any, key: str, kind: type | tuple[type, ...], what: str) -> Any:
    if not isinstance(data, dict):
        raise DecodeError(f"{what}: expected an object, got {type(data).__name__}")
    if key not in data or data[key] is None:
        raise DecodeError(f"{what}: missing required field {key!r}")
    value = data[key]
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise DecodeError(f"{what}: field {key!r} has unexpected type {type(value).__name__}")
    return value


def _obj(data: dict, key: str) -> dict:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _strip_braces(uuid: str | None) -> str:
    if not uuid:
        return ""
    if not isinstance(uuid, str):
        raise DecodeError(f"uuid must be a string, got {type(uuid).__name__}")
    return uuid[1:-1] if uuid.startswith("{") and uuid.endswith("}") else uuid


def parse_iso_ms(value: str | None) -> int | None:
    """Convert an ISO-8601 timestamp to epoch milliseconds."""
    if not value:
        return None
    if not isinstance(value, str):
        raise DecodeError(f"timestamp must be a string, got {type(value).__name__}")
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise DecodeError(f"invalid timestamp {value!r}") from e
    return int(dt.timestamp() * 1000)


def _optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"field {key!r} must be numeric, got {type(value).__name__}")
    return int(value)


# --------------------------------------------------------------------------- #
# Bitbucket Server                                                             #
# --------------------------------------------------------------------------- #


def user_from_server(data: Any) -> User | None:
    if not isinstance(data, dict) or not data:
        return None
    user_id = data.get("id")
    return User(
        username=data.get("name") or data.get("slug") or "",
        display_name=data.get("displayName") or "",
        user_id="" if user_id is None else str(user_id),
        email=data.get("emailAddress") or "",
    )


def project_from_server(data: Any) -> Project:
    return Project(
        key=_require(data, "key", str, "project"),
        name=data.get("name") or "",
        description=data.get("description") or "",
    )


def repository_from_server(data: Any, project_key: str) -> Repository:
    return Repository(
        slug=_require(data, "slug", str, "repository"),
        project_key=_obj(data, "project").get("key") or project_key,
        name=data.get("name") or "",
        description=data.get("description") or "",
        is_public=bool(data.get("public", False)),
        has_issues=False,
        scm=data.get("scmId") or "git",
    )


def pull_request_from_server(data: Any) -> PullRequest:
    pr_id = _require(data, "id", int, "pull request")
    from_ref = _obj(data, "fromRef")
    to_ref = _obj(data, "toRef")
    return PullRequest(
        id=pr_id,
        title=data.get("title") or "",
        state=_require(data, "state", str, f"pull request {pr_id}"),
        description=data.get("description") or "",
        author=user_from_server(_obj(data, "author").get("user")),
        source_branch=from_ref.get("displayId") or "",
        source_commit=from_ref.get("latestCommit") or "",
        destination_branch=to_ref.get("displayId") or "",
        destination_commit=to_ref.get("latestCommit") or "",
        created_date=_optional_int(data, "createdDate"),
        updated_date=_optional_int(data, "updatedDate"),
        closed_date=_optional_int(data, "closedDate"),
    )


def anchor_from_server(data: Any) -> CommentAnchor | None:
    if not isinstance(data, dict) or not data:
        return None
    line = _optional_int(data, "line")
    file_type = data.get("fileType") or ""
    return CommentAnchor(
        path=data.get("path") or "",
        src_path=data.get("srcPath") or "",
        src_line=line if file_type == "FROM" else None,
        dst_line=line if file_type != "FROM" else None,
        line_type=data.get("lineType") or "",
        file_type=file_type,
        from_hash=data.get("fromHash") or "",
        to_hash=data.get("toHash") or "",
    )


def _comment_node(data: Any, parent_id: int | None) -> Comment:
    return Comment(
        id=_require(data, "id", int, "comment"),
        text=data.get("text") or "",
        author=user_from_server(data.get("author")),
        created_date=_optional_int(data, "createdDate"),
        updated_date=_optional_int(data, "updatedDate"),
        parent_id=parent_id,
    )


def comment_from_server(data: Any) -> Comment:
    """Decode a comment and its nested `comments` replies without recursion."""
    root = _comment_node(data, None)
    stack = [(root, data)]
    while stack:
        node, raw = stack.pop()
        children = raw.get("comments") or []
        if not isinstance(children, list):
            raise DecodeError(f"comment {node.id}: 'comments' must be a list")
        for child_raw in children:
            child = _comment_node(child_raw, node.id)
            node.replies.append(child)
            stack.append((child, child_raw))
    return root


def activity_from_server(data: Any) -> Activity:
    activity_id = _require(data, "id", int, "activity")
    comment = data.get("comment")
    return Activity(
        id=activity_id,
        action=_require(data, "action", str, f"activity {activity_id}"),
        created_date=_optional_int(data, "createdDate"),
        user=user_from_server(data.get("user")),
        comment_action=data.get("commentAction"),
        comment=comment_from_server(comment) if comment else None,
        anchor=anchor_from_server(data.get("commentAnchor")),
    )


# --------------------------------------------------------------------------- #
# Bitbucket Cloud                                                              #
# --------------------------------------------------------------------------- #


def user_from_cloud(data: Any) -> User | None:
    if not isinstance(data, dict) or not data:
        return None
    return User(
        username=data.get("username") or data.get("nickname") or "",
        display_name=data.get("display_name") or "",
        user_id=_strip_braces(data.get("uuid")),
    )


def project_from_cloud(data: Any) -> Project:
    return Project(
        key=_require(data, "key", str, "project"),
        name=data.get("name") or "",
        description=data.get("description") or "",
    )


def repository_from_cloud(data: Any, project_key: str) -> Repository:
    return Repository(
        slug=_require(data, "slug", str, "repository"),
        project_key=_obj(data, "project").get("key") or project_key,
        name=data.get("name") or "",
        description=data.get("description") or "",
        is_public=not data.get("is_private", True),
        has_issues=bool(data.get("has_issues", False)),
        scm=data.get("scm") or "git",
    )


def pull_request_from_cloud(data: Any) -> PullRequest:
    pr_id = _require(data, "id", int, "pull request")
    source = _obj(data, "source")
    destination = _obj(data, "destination")
    state = _require(data, "state", str, f"pull request {pr_id}")
    updated = parse_iso_ms(data.get("updated_on"))
    return PullRequest(
        id=pr_id,
        title=data.get("title") or "",
        state=state,
        description=_obj(data, "summary").get("raw") or "",
        author=user_from_cloud(data.get("author")),
        source_branch=_obj(source, "branch").get("name") or "",
        source_commit=_obj(source, "commit").get("hash") or "",
        destination_branch=_obj(destination, "branch").get("name") or "",
        destination_commit=_obj(destination, "commit").get("hash") or "",
        created_date=parse_iso_ms(data.get("created_on")),
        updated_date=updated,
        closed_date=updated if state in (MERGED, DECLINED, SUPERSEDED) else None,
        closed_by=user_from_cloud(data.get("closed_by")),
    )


def comment_from_cloud(data: Any) -> tuple[Comment, CommentAnchor | None]:
    """Decode one flat cloud comment into (comment, inline anchor or None).

    Deleted comments are kept: their replies still hang off them.
    """
    comment = Comment(
        id=_require(data, "id", int, "comment"),
        text=_obj(data, "content").get("raw") or "",
        author=user_from_cloud(data.get("user")),
        created_date=parse_iso_ms(data.get("created_on")),
        updated_date=parse_iso_ms(data.get("updated_on")),
        parent_id=_obj(data, "parent").get("id"),
    )
    inline = data.get("inline")
    anchor = None
    if isinstance(inline, dict) and inline.get("path"):
        anchor = CommentAnchor(
            path=inline["path"],
            src_line=_optional_int(inline, "from"),
            dst_line=_optional_int(inline, "to"),
            file_type="TO" if inline.get("to") is not None else "FROM",
        )
    return comment, anchor
