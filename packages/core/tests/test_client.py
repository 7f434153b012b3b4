"""Tests for the request descriptor and the JSON client's error classification."""

from unittest.mock import MagicMock

import pytest
import requests

from bbextract_core.client import ApiClient, BearerAuth, Request
from bbextract_core.errors import DecodeError, TransportError, UnavailableError
from bbextract_core.transport import RetryAdapter


def _make_response(status=200, json_data=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.reason = "Reason"
    if isinstance(json_data, Exception):
        resp.json.side_effect = json_data
    else:
        resp.json.return_value = json_data
    return resp


def _make_client(response=None, side_effect=None):
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    if side_effect is not None:
        session.get.side_effect = side_effect
    else:
        session.get.return_value = response
    return ApiClient("http://bb.example.com/rest/", session=session), session


class TestRequest:
    def test_of_joins_and_quotes_segments(self):
        req = Request.of("api", "1.0", "projects", "MY PROJ", "repos", "a/b", limit=5)
        assert req.path == "api/1.0/projects/MY%20PROJ/repos/a%2Fb"
        assert req.params == {"limit": 5}

    def test_with_params_returns_new_descriptor(self):
        base = Request.of("api", state="OPEN")
        nxt = base.with_params(start=10)
        assert nxt.params == {"state": "OPEN", "start": 10}
        assert base.params == {"state": "OPEN"}

    def test_is_absolute(self):
        assert Request(path="https://api.bitbucket.org/2.0/x?page=2").is_absolute
        assert not Request.of("repositories", "ws").is_absolute


class TestApiClient:
    def test_url_for_relative_and_absolute(self):
        client, _ = _make_client(_make_response(json_data={}))
        assert client.url_for(Request.of("api", "1.0", "users")) == "http://bb.example.com/rest/api/1.0/users"
        assert client.url_for(Request(path="https://next/page")) == "https://next/page"

    def test_mounts_retry_adapter_and_accept_header(self):
        client, session = _make_client(_make_response(json_data={}))
        mounted = {call.args[0]: call.args[1] for call in session.mount.call_args_list}
        assert set(mounted) == {"http://", "https://"}
        assert all(isinstance(a, RetryAdapter) for a in mounted.values())
        assert session.headers["Accept"] == "application/json"

    def test_get_json_returns_object(self):
        client, session = _make_client(_make_response(json_data={"values": []}))
        assert client.get_json(Request.of("api", limit=1)) == {"values": []}
        kwargs = session.get.call_args.kwargs
        assert kwargs["params"] == {"limit": 1}
        assert kwargs["timeout"] == 30

    def test_empty_params_not_sent(self):
        client, session = _make_client(_make_response(json_data={}))
        client.get_json(Request(path="https://next/page?page=2"))
        assert session.get.call_args.kwargs["params"] is None

    def test_404_is_unavailable(self):
        client, _ = _make_client(_make_response(404))
        with pytest.raises(UnavailableError):
            client.get_json(Request.of("missing"))

    def test_server_error_is_transport_error_with_status(self):
        client, _ = _make_client(_make_response(503, text="maintenance"))
        with pytest.raises(TransportError) as exc_info:
            client.get_json(Request.of("api"))
        assert exc_info.value.status_code == 503
        assert "maintenance" in str(exc_info.value)

    def test_401_is_transport_error(self):
        client, _ = _make_client(_make_response(401))
        with pytest.raises(TransportError) as exc_info:
            client.get_json(Request.of("api"))
        assert exc_info.value.status_code == 401

    def test_connection_failure_is_transport_error(self):
        client, _ = _make_client(side_effect=requests.ConnectionError("refused"))
        with pytest.raises(TransportError) as exc_info:
            client.get_json(Request.of("api"))
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    def test_non_json_body_is_decode_error(self):
        client, _ = _make_client(_make_response(json_data=ValueError("no json")))
        with pytest.raises(DecodeError):
            client.get_json(Request.of("api"))

    def test_non_object_body_is_decode_error(self):
        client, _ = _make_client(_make_response(json_data=[1, 2]))
        with pytest.raises(DecodeError):
            client.get_json(Request.of("api"))


class TestBearerAuth:
    def test_sets_authorization_header(self):
        r = MagicMock()
        r.headers = {}
        BearerAuth("secret")(r)
        assert r.headers["Authorization"] == "Bearer secret"
