"""Paginated fetcher for offset- and cursor-paginated endpoints.

A walk is a sequence of immutable PageState values: the first is built from
the caller's request descriptor, each following one purely from the previous
page's continuation signal. Nothing is shared between walks, so two fetches
can never disturb each other's position.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from bbextract_core.client import Request
from bbextract_core.errors import DecodeError

if TYPE_CHECKING:
    from bbextract_core.client import ApiClient

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 1000
DEFAULT_PAGELEN = 50


@dataclass(frozen=True)
class PageState:
    request: Request
    number: int = 1


class Paging(ABC):
    """How a family of endpoints encodes pages and continuation."""

    @abstractmethod
    def first(self, request: Request) -> Request:
        """Return the request for the first page."""

    @abstractmethod
    def next_request(self, initial: Request, page: dict) -> Request | None:
        """Return the request for the page after `page`, or None if it was the last."""

    def values(self, page: dict) -> list:
        values = page.get("values")
        if values is None:
            return []
        if not isinstance(values, list):
            raise DecodeError(f"page 'values' must be a list, got {type(values).__name__}")
        return values


class OffsetPaging(Paging):
    """start/limit paging with an explicit `isLastPage` flag (Bitbucket Server)."""

    def __init__(self, limit: int = DEFAULT_LIMIT):
        self.limit = limit

    def first(self, request: Request) -> Request:
        return request.with_params(start=0, limit=self.limit)

    def next_request(self, initial: Request, page: dict) -> Request | None:
        is_last = page.get("isLastPage")
        if not isinstance(is_last, bool):
            raise DecodeError("page is missing boolean 'isLastPage'")
        if is_last:
            return None
        start = page.get("nextPageStart")
        if isinstance(start, bool) or not isinstance(start, int):
            raise DecodeError("page is not last but has no integer 'nextPageStart'")
        return initial.with_params(start=start, limit=self.limit)


class CursorPaging(Paging):
    """`next`-link paging (Bitbucket Cloud). The link already carries every query param."""

    def __init__(self, pagelen: int = DEFAULT_PAGELEN):
        self.pagelen = pagelen

    def first(self, request: Request) -> Request:
        return request.with_params(pagelen=self.pagelen)

    def next_request(self, initial: Request, page: dict) -> Request | None:
        link = page.get("next")
        if not link:
            return None
        if not isinstance(link, str):
            raise DecodeError("page 'next' must be a URL string")
        return Request(path=link)


def iter_pages(client: ApiClient, request: Request, paging: Paging) -> Iterator[list]:
    """Yield the item list of each page, requesting the next page only after the previous one."""
    state: PageState | None = PageState(paging.first(request))
    while state is not None:
        page = client.get_json(state.request)
        yield paging.values(page)
        following = paging.next_request(request, page)
        state = PageState(following, state.number + 1) if following is not None else None


def fetch_all(client: ApiClient, request: Request, paging: Paging) -> list:
    """Walk an endpoint to exhaustion and return every item in remote order.

    Any error aborts the walk; items gathered so far are discarded with it.
    """
    items: list = []
    pages = 0
    for values in iter_pages(client, request, paging):
        items.extend(values)
        pages += 1
    logger.debug("Fetched %d item(s) over %d page(s) from %s", len(items), pages, request.path)
    return items


def fetch_by_state(client: ApiClient, request: Request, paging: Paging, states: Iterable[str]) -> list[Any]:
    """Fetch one full listing per state filter and concatenate them in state order."""
    items: list = []
    for state in states:
        items.extend(fetch_all(client, request.with_params(state=state), paging))
    return items
