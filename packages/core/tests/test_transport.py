"""Tests for the retry policy, the retry loop and the retrying HTTP adapter.

Every test injects a recording `sleep` so nothing actually waits.
"""

from unittest.mock import MagicMock

import pytest
import requests
from requests.adapters import HTTPAdapter

from bbextract_core.transport import RetryAdapter, RetryPolicy, retry


def _make_response(status):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.url = "http://bb/rest/api/1.0/projects"
    return resp


def _make_request(method="GET"):
    req = MagicMock()
    req.method = method
    return req


class TestRetryPolicy:
    def test_default_delays_follow_backoff_and_truncate(self):
        delays = list(RetryPolicy().delays())
        assert len(delays) == 10
        assert delays[:5] == pytest.approx([0.01, 0.02, 0.06, 0.3, 2.7])
        assert delays[5:] == [10.0] * 5

    def test_delays_never_exceed_truncate(self):
        policy = RetryPolicy(retries=30, delay=0.5, truncate=3.0)
        assert max(policy.delays()) <= 3.0

    def test_zero_retries_yields_nothing(self):
        assert list(RetryPolicy(retries=0).delays()) == []

    def test_from_config(self):
        policy = RetryPolicy.from_config({"retries": 3, "retry_delay": 0.5, "retry_truncate": 2})
        assert policy.retries == 3
        assert policy.delay == 0.5
        assert policy.truncate == 2.0

    def test_from_config_defaults(self):
        assert RetryPolicy.from_config({}) == RetryPolicy()


class TestRetry:
    def test_returns_first_success_without_sleeping(self):
        sleeps = []
        assert retry(lambda: "ok", RetryPolicy(), sleep=sleeps.append) == "ok"
        assert sleeps == []

    def test_succeeds_after_transient_failures(self):
        func = MagicMock(side_effect=[ValueError("a"), ValueError("b"), "done"])
        sleeps = []
        assert retry(func, RetryPolicy(), sleep=sleeps.append) == "done"
        assert func.call_count == 3
        assert sleeps == pytest.approx([0.01, 0.02])

    def test_reraises_last_error_after_budget(self):
        errors = [ValueError(str(i)) for i in range(4)]
        func = MagicMock(side_effect=errors)
        sleeps = []
        with pytest.raises(ValueError) as exc_info:
            retry(func, RetryPolicy(retries=3), sleep=sleeps.append)
        assert exc_info.value is errors[-1]
        assert func.call_count == 4
        assert len(sleeps) == 3

    def test_total_sleep_is_bounded(self):
        func = MagicMock(side_effect=RuntimeError("down"))
        sleeps = []
        policy = RetryPolicy()
        with pytest.raises(RuntimeError):
            retry(func, policy, sleep=sleeps.append)
        assert sum(sleeps) <= policy.retries * policy.truncate

    def test_non_retryable_error_propagates_immediately(self):
        func = MagicMock(side_effect=KeyError("nope"))
        sleeps = []
        with pytest.raises(KeyError):
            retry(func, RetryPolicy(), retryable=(ValueError,), sleep=sleeps.append)
        assert func.call_count == 1
        assert sleeps == []


class TestRetryAdapter:
    def test_retries_retryable_status_then_returns_success(self, mocker):
        ok = _make_response(200)
        send = mocker.patch.object(HTTPAdapter, "send", side_effect=[_make_response(503), _make_response(429), ok])
        sleeps = []
        adapter = RetryAdapter(RetryPolicy(), sleep=sleeps.append)

        assert adapter.send(_make_request()) is ok
        assert send.call_count == 3
        assert len(sleeps) == 2

    def test_exhausted_status_returns_last_response(self, mocker):
        last = _make_response(502)
        mocker.patch.object(HTTPAdapter, "send", side_effect=[_make_response(502), _make_response(502), last])
        adapter = RetryAdapter(RetryPolicy(retries=2), sleep=lambda d: None)

        assert adapter.send(_make_request()) is last

    def test_discarded_responses_are_closed(self, mocker):
        unavailable, throttled, ok = _make_response(503), _make_response(429), _make_response(200)
        mocker.patch.object(HTTPAdapter, "send", side_effect=[unavailable, throttled, ok])
        adapter = RetryAdapter(RetryPolicy(), sleep=lambda d: None)

        adapter.send(_make_request())

        unavailable.close.assert_called_once_with()
        throttled.close.assert_called_once_with()
        ok.close.assert_not_called()

    def test_returned_exhausted_response_stays_open(self, mocker):
        first, last = _make_response(502), _make_response(502)
        mocker.patch.object(HTTPAdapter, "send", side_effect=[first, last])
        adapter = RetryAdapter(RetryPolicy(retries=1), sleep=lambda d: None)

        assert adapter.send(_make_request()) is last
        first.close.assert_called_once_with()
        last.close.assert_not_called()

    def test_404_is_not_retried(self, mocker):
        not_found = _make_response(404)
        send = mocker.patch.object(HTTPAdapter, "send", return_value=not_found)
        adapter = RetryAdapter(RetryPolicy(), sleep=lambda d: None)

        assert adapter.send(_make_request()) is not_found
        assert send.call_count == 1

    def test_connection_error_retried_then_raised(self, mocker):
        send = mocker.patch.object(HTTPAdapter, "send", side_effect=requests.ConnectionError("refused"))
        adapter = RetryAdapter(RetryPolicy(retries=2), sleep=lambda d: None)

        with pytest.raises(requests.ConnectionError):
            adapter.send(_make_request())
        assert send.call_count == 3

    def test_timeout_recovers(self, mocker):
        ok = _make_response(200)
        mocker.patch.object(HTTPAdapter, "send", side_effect=[requests.Timeout("slow"), ok])
        adapter = RetryAdapter(RetryPolicy(), sleep=lambda d: None)

        assert adapter.send(_make_request()) is ok

    def test_non_idempotent_method_sent_once(self, mocker):
        failing = _make_response(503)
        send = mocker.patch.object(HTTPAdapter, "send", return_value=failing)
        adapter = RetryAdapter(RetryPolicy(), sleep=lambda d: None)

        assert adapter.send(_make_request("POST")) is failing
        assert send.call_count == 1
