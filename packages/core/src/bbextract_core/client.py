"""Thin JSON-over-HTTP client for the Bitbucket REST APIs.

Only GET is exposed. Every response is classified into the error taxonomy
in one place (`get_json`), so sources and the paginated fetcher never look
at status codes themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import quote

import requests
from requests.auth import AuthBase

from bbextract_core.errors import DecodeError, TransportError, UnavailableError
from bbextract_core.transport import RetryAdapter, RetryPolicy

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30


@dataclass(frozen=True)
class Request:
    """Structured request descriptor: a path relative to the API root plus query params.

    An absolute URL (as returned in cloud `next` links) is used verbatim.
    """

    path: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, *segments: Any, **params: Any) -> Request:
        path = "/".join(quote(str(s), safe="") for s in segments)
        return cls(path=path, params=params)

    def with_params(self, **params: Any) -> Request:
        return replace(self, params={**self.params, **params})

    @property
    def is_absolute(self) -> bool:
        return self.path.startswith(("http://", "https://"))


class BearerAuth(AuthBase):
    """Attach an HTTP access token (Bitbucket app password / access token)."""

    def __init__(self, token: str):
        self.token = token

    def __call__(self, r):
        r.headers["Authorization"] = f"Bearer {self.token}"
        return r


class ApiClient:
    def __init__(
        self,
        base_url: str,
        auth: AuthBase | tuple[str, str] | None = None,
        policy: RetryPolicy | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        adapter = RetryAdapter(policy or RetryPolicy())
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)
        self._session.headers["Accept"] = "application/json"
        if auth is not None:
            self._session.auth = auth

    def url_for(self, request: Request) -> str:
        if request.is_absolute:
            return request.path
        return f"{self._base_url}/{request.path.lstrip('/')}"

    def get_json(self, request: Request) -> dict:
        """GET a request and return its decoded JSON object.

        Raises UnavailableError on 404, TransportError on connection failure
        or any other status >= 400, and DecodeError when the body is not a
        JSON object.
        """
        url = self.url_for(request)
        logger.debug("GET %s %s", url, request.params)
        try:
            resp = self._session.get(url, params=request.params or None, timeout=self._timeout)
        except requests.RequestException as e:
            raise TransportError(f"GET {url} failed: {e}") from e

        if resp.status_code == 404:
            raise UnavailableError(f"GET {url}: resource is unavailable")
        if resp.status_code >= 400:
            msg = resp.text or resp.reason or ""
            raise TransportError(f"GET {url} returned {resp.status_code}: {msg[:200]}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise DecodeError(f"GET {url}: response is not JSON") from e
        if not isinstance(data, dict):
            raise DecodeError(f"GET {url}: expected a JSON object, got {type(data).__name__}")
        return data

    def close(self) -> None:
        self._session.close()
