"""Tests for decoding Bitbucket Server and Cloud payloads into entities."""

import pytest

from bbextract_core.errors import DecodeError
from bbextract_core.models import (
    MERGED,
    activity_from_server,
    anchor_from_server,
    comment_from_cloud,
    comment_from_server,
    parse_iso_ms,
    project_from_server,
    pull_request_from_cloud,
    pull_request_from_server,
    repository_from_cloud,
    repository_from_server,
    user_from_cloud,
    user_from_server,
)


def _make_server_pr(**overrides):
    data = {
        "id": 7,
        "title": "Add login",
        "state": "OPEN",
        "description": "desc",
        "author": {"user": {"name": "alice", "displayName": "Alice", "id": 3}},
        "fromRef": {"displayId": "feature", "latestCommit": "abc"},
        "toRef": {"displayId": "main", "latestCommit": "def"},
        "createdDate": 1_600_000_000_000,
        "updatedDate": 1_600_000_100_000,
    }
    data.update(overrides)
    return data


class TestServerDecoding:
    def test_user(self):
        user = user_from_server({"name": "bob", "displayName": "Bob", "id": 12, "emailAddress": "b@x"})
        assert user.username == "bob"
        assert user.user_id == "12"
        assert user.email == "b@x"

    def test_missing_user_is_none(self):
        assert user_from_server(None) is None
        assert user_from_server({}) is None

    def test_project_requires_key(self):
        assert project_from_server({"key": "PRJ", "name": "Project"}).key == "PRJ"
        with pytest.raises(DecodeError):
            project_from_server({"name": "nokey"})

    def test_repository(self):
        repo = repository_from_server({"slug": "api", "name": "API", "public": True, "scmId": "git"}, "PRJ")
        assert repo.project_key == "PRJ"
        assert repo.is_public is True

    def test_pull_request(self):
        pr = pull_request_from_server(_make_server_pr())
        assert pr.id == 7
        assert pr.author.username == "alice"
        assert pr.source_branch == "feature"
        assert pr.destination_commit == "def"
        assert pr.created_date == 1_600_000_000_000
        assert pr.closed_date is None

    def test_pull_request_id_must_be_int(self):
        with pytest.raises(DecodeError):
            pull_request_from_server(_make_server_pr(id="7"))

    def test_pull_request_requires_state(self):
        data = _make_server_pr()
        del data["state"]
        with pytest.raises(DecodeError):
            pull_request_from_server(data)

    def test_non_numeric_date_is_decode_error(self):
        with pytest.raises(DecodeError):
            pull_request_from_server(_make_server_pr(createdDate="yesterday"))

    def test_anchor_line_side_follows_file_type(self):
        src = anchor_from_server({"path": "a.py", "line": 4, "fileType": "FROM", "lineType": "REMOVED"})
        dst = anchor_from_server({"path": "a.py", "line": 9, "fileType": "TO", "lineType": "ADDED"})
        assert (src.src_line, src.dst_line) == (4, None)
        assert (dst.src_line, dst.dst_line) == (None, 9)

    def test_comment_with_nested_replies(self):
        comment = comment_from_server(
            {
                "id": 1,
                "text": "root",
                "comments": [
                    {"id": 2, "text": "r1", "comments": [{"id": 4, "text": "r1a"}]},
                    {"id": 3, "text": "r2"},
                ],
            }
        )
        assert [r.id for r in comment.replies] == [2, 3]
        assert comment.replies[0].replies[0].id == 4
        assert comment.replies[0].replies[0].parent_id == 2
        assert comment.parent_id is None

    def test_activity_with_anchor(self):
        activity = activity_from_server(
            {
                "id": 100,
                "action": "COMMENTED",
                "commentAction": "ADDED",
                "createdDate": 5,
                "user": {"name": "carol"},
                "comment": {"id": 1, "text": "hi"},
                "commentAnchor": {"path": "src/x.py", "line": 3, "fileType": "TO"},
            }
        )
        assert activity.comment.id == 1
        assert activity.anchor.path == "src/x.py"
        assert activity.user.username == "carol"

    def test_activity_without_action_is_decode_error(self):
        with pytest.raises(DecodeError):
            activity_from_server({"id": 1})


class TestCloudDecoding:
    def test_user_strips_uuid_braces(self):
        user = user_from_cloud({"nickname": "dave", "display_name": "Dave", "uuid": "{1234}"})
        assert user.username == "dave"
        assert user.user_id == "1234"

    def test_repository_visibility(self):
        repo = repository_from_cloud({"slug": "web", "is_private": False, "has_issues": True}, "PRJ")
        assert repo.is_public is True
        assert repo.has_issues is True

    def test_merged_pull_request_is_closed_at_update(self):
        pr = pull_request_from_cloud(
            {
                "id": 3,
                "state": "MERGED",
                "title": "t",
                "created_on": "2024-01-01T00:00:00+00:00",
                "updated_on": "2024-01-02T00:00:00Z",
                "closed_by": {"nickname": "erin"},
                "source": {"branch": {"name": "f"}, "commit": {"hash": "aaa"}},
                "summary": {"raw": "body"},
            }
        )
        assert pr.state == MERGED
        assert pr.closed_date == pr.updated_date == parse_iso_ms("2024-01-02T00:00:00Z")
        assert pr.closed_by.username == "erin"
        assert pr.source_commit == "aaa"
        assert pr.description == "body"

    def test_open_pull_request_has_no_close_date(self):
        pr = pull_request_from_cloud({"id": 3, "state": "OPEN", "updated_on": "2024-01-02T00:00:00Z"})
        assert pr.closed_date is None

    def test_invalid_timestamp_is_decode_error(self):
        with pytest.raises(DecodeError):
            parse_iso_ms("not-a-date")

    def test_non_string_timestamp_is_decode_error(self):
        with pytest.raises(DecodeError, match="timestamp"):
            pull_request_from_cloud({"id": 3, "state": "OPEN", "created_on": 1704067200})

    def test_non_string_uuid_is_decode_error(self):
        with pytest.raises(DecodeError, match="uuid"):
            user_from_cloud({"nickname": "alex", "uuid": 42})

    def test_inline_comment_anchor(self):
        comment, anchor = comment_from_cloud(
            {
                "id": 9,
                "content": {"raw": "nit"},
                "user": {"nickname": "fay"},
                "parent": {"id": 8},
                "inline": {"path": "a.py", "from": None, "to": 12},
            }
        )
        assert comment.parent_id == 8
        assert comment.text == "nit"
        assert anchor.path == "a.py"
        assert anchor.dst_line == 12
        assert anchor.file_type == "TO"

    def test_general_comment_has_no_anchor(self):
        _, anchor = comment_from_cloud({"id": 1, "content": {"raw": "lgtm"}})
        assert anchor is None
