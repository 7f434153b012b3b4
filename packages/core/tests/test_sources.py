"""Tests for the Server and Cloud sources against a routed fake client."""

from unittest.mock import MagicMock

import pytest

from bbextract_core.activity import APPROVED, CLOSED
from bbextract_core.errors import DecodeError, UnavailableError
from bbextract_core.models import DiffStat, Project, PullRequest, Repository
from bbextract_core.sources.cloud import CloudSource
from bbextract_core.sources.server import ServerSource

SERVER_REPO = "api/1.0/projects/PRJ/repos/api"
SERVER_PR = f"{SERVER_REPO}/pull-requests/7"
CLOUD_REPO = "repositories/ws/web"
CLOUD_PR = f"{CLOUD_REPO}/pullrequests/3"


def _make_client(routes):
    """Fake ApiClient: `routes` maps request path to a response dict or an exception.

    A callable route receives the request (for state-filtered listings).
    """
    client = MagicMock()

    def get_json(request):
        route = routes[request.path]
        if callable(route) and not isinstance(route, type):
            route = route(request)
        if isinstance(route, Exception):
            raise route
        return route

    client.get_json.side_effect = get_json
    return client


def _server_page(*values):
    return {"values": list(values), "isLastPage": True}


def _cloud_page(*values):
    return {"values": list(values)}


def _make_repo():
    return Repository(slug="api", project_key="PRJ", name="API")


def _make_pr(pr_id=7, state="OPEN"):
    return PullRequest(id=pr_id, title="t", state=state)


class TestServerSource:
    def test_list_projects_and_repositories(self):
        client = _make_client(
            {
                "api/1.0/projects": _server_page({"key": "PRJ", "name": "Project"}),
                "api/1.0/projects/PRJ/repos": _server_page({"slug": "api", "name": "API"}),
            }
        )
        source = ServerSource(client)
        projects = source.list_projects()
        assert [p.key for p in projects] == ["PRJ"]
        repos = source.list_repositories(projects[0])
        assert [(r.project_key, r.slug) for r in repos] == [("PRJ", "api")]

    def test_pull_requests_listed_per_state(self):
        def by_state(request):
            state = request.params["state"]
            return _server_page({"id": {"OPEN": 1, "MERGED": 2, "DECLINED": 3}[state], "state": state})

        client = _make_client({f"{SERVER_REPO}/pull-requests": by_state})
        prs = ServerSource(client).list_pull_requests(_make_repo())

        assert [(p.id, p.state) for p in prs] == [(1, "OPEN"), (2, "MERGED"), (3, "DECLINED")]
        states = [c.args[0].params["state"] for c in client.get_json.call_args_list]
        assert states == ["OPEN", "MERGED", "DECLINED"]

    def test_count_commits(self):
        client = _make_client({f"{SERVER_PR}/commits": _server_page({"id": "a"}, {"id": "b"})})
        assert ServerSource(client).count_commits(_make_repo(), _make_pr()) == 2

    def test_missing_commits_count_zero(self):
        client = _make_client({f"{SERVER_PR}/commits": UnavailableError("gone")})
        assert ServerSource(client).count_commits(_make_repo(), _make_pr()) == 0

    def test_diff_stat(self):
        diff = {
            "diffs": [
                {
                    "hunks": [
                        {"segments": [{"type": "ADDED", "lines": [{}, {}, {}]}]},
                        {"segments": [{"type": "REMOVED", "lines": [{}]}]},
                    ]
                }
            ]
        }
        client = _make_client({f"{SERVER_PR}/diff": diff})
        assert ServerSource(client).get_diff_stat(_make_repo(), _make_pr()) == DiffStat(added=3, removed=1, changed_files=1)

    def test_missing_diff_is_zero(self):
        client = _make_client({f"{SERVER_PR}/diff": UnavailableError("gone")})
        assert ServerSource(client).get_diff_stat(_make_repo(), _make_pr()) == DiffStat()

    def test_get_activity_classifies(self):
        client = _make_client(
            {
                f"{SERVER_PR}/activities": _server_page(
                    {"id": 3, "action": "DECLINED", "user": {"name": "bob"}, "createdDate": 30},
                    {"id": 2, "action": "APPROVED", "user": {"name": "alice"}, "createdDate": 20},
                    {
                        "id": 1,
                        "action": "COMMENTED",
                        "commentAction": "ADDED",
                        "comment": {"id": 10, "text": "hi", "comments": [{"id": 11, "text": "yo"}]},
                    },
                )
            }
        )
        digest = ServerSource(client).get_activity(_make_repo(), _make_pr())
        assert [c.id for c in digest.comments] == [10, 11]
        assert [r.state for r in digest.reviews] == [APPROVED]
        assert digest.state.state == CLOSED

    def test_list_users_skips_empty(self):
        client = _make_client({"api/1.0/users": _server_page({"name": "alice"}, {})})
        assert [u.username for u in ServerSource(client).list_users()] == ["alice"]

    def test_paths_quote_keys(self):
        client = _make_client({"api/1.0/projects/MY%20KEY/repos": _server_page()})
        assert ServerSource(client).list_repositories(Project(key="MY KEY", name="")) == []


class TestCloudSource:
    def _make_repo(self):
        return Repository(slug="web", project_key="PRJ", name="Web")

    def test_repositories_filtered_by_project(self):
        client = _make_client({"repositories/ws": _cloud_page({"slug": "web", "project": {"key": "PRJ"}})})
        repos = CloudSource(client, "ws").list_repositories(Project(key="PRJ", name=""))
        assert [r.slug for r in repos] == ["web"]
        assert client.get_json.call_args.args[0].params["q"] == 'project.key="PRJ"'

    def test_pull_requests_include_superseded(self):
        client = _make_client(
            {f"{CLOUD_REPO}/pullrequests": lambda req: _cloud_page({"id": 1, "state": req.params["state"]})}
        )
        prs = CloudSource(client, "ws").list_pull_requests(self._make_repo())
        assert [p.state for p in prs] == ["OPEN", "MERGED", "SUPERSEDED", "DECLINED"]

    def test_diffstat_and_missing_commits(self):
        client = _make_client(
            {
                f"{CLOUD_PR}/diffstat": _cloud_page({"lines_added": 4, "lines_removed": 2}),
                f"{CLOUD_PR}/commits": UnavailableError("fork deleted"),
            }
        )
        source = CloudSource(client, "ws")
        pr = _make_pr(3)
        assert source.get_diff_stat(self._make_repo(), pr) == DiffStat(added=4, removed=2, changed_files=1)
        assert source.count_commits(self._make_repo(), pr) == 0

    def test_activity_from_comments_and_participants(self):
        client = _make_client(
            {
                f"{CLOUD_PR}/comments": _cloud_page(
                    {"id": 1, "content": {"raw": "root"}},
                    {"id": 2, "content": {"raw": "reply"}, "parent": {"id": 1}},
                    {"id": 3, "content": {"raw": "inline"}, "inline": {"path": "a.py", "to": 5}},
                ),
                CLOUD_PR: {
                    "participants": [
                        {"user": {"nickname": "alice"}, "approved": True, "state": "approved"},
                        {"user": {"nickname": "bob"}, "approved": False, "state": None},
                    ]
                },
            }
        )
        digest = CloudSource(client, "ws").get_activity(self._make_repo(), _make_pr(3))
        assert [c.id for c in digest.comments] == [1, 2]
        assert [d.comment.id for d in digest.diff_comments] == [3]
        assert [r.user.username for r in digest.reviews] == ["alice"]
        assert digest.state is None

    def test_malformed_participants_is_decode_error(self):
        client = _make_client({f"{CLOUD_PR}/comments": _cloud_page(), CLOUD_PR: {"participants": "x"}})
        with pytest.raises(DecodeError):
            CloudSource(client, "ws").list_activities(self._make_repo(), _make_pr(3))

    def test_list_users_from_members(self):
        client = _make_client({"workspaces/ws/members": _cloud_page({"user": {"nickname": "zed"}}, {"user": None})})
        assert [u.username for u in CloudSource(client, "ws").list_users()] == ["zed"]
