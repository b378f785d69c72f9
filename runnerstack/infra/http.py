"""Minimal JSON-over-HTTP client on aiohttp.

Used by the GitHub client; pages of list endpoints are followed through
the ``Link`` response header.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeAlias, TypeVar

import aiohttp
from loguru import logger

log = logger.bind(component="http")

_NEXT_LINK = re.compile(r'<([^>]+)>;\s*rel="next"')

Json: TypeAlias = dict[str, Any] | list[Any] | None

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class HttpError(Exception):
    """Non-2xx response (``status`` >= 400) or transport failure (``status`` 0)."""

    status: int
    body: str

    def __str__(self) -> str:
        return f"HTTP {self.status}: {self.body}"


@dataclass(frozen=True, slots=True)
class Response(Generic[T]):
    status: int
    data: T
    headers: dict[str, str]

    @property
    def next_url(self) -> str | None:
        return next_link(self.headers)


class Auth(Protocol):
    async def headers(self) -> dict[str, str]: ...


class BearerAuth:
    """Static bearer token."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}


def next_link(headers: dict[str, str]) -> str | None:
    """URL of the ``rel="next"`` page, or None on the last page."""
    link = headers.get("Link") or headers.get("link") or ""
    found = _NEXT_LINK.search(link)
    return found.group(1) if found else None


class HttpClient:
    """aiohttp session bound to one API base URL.

    The session is opened lazily and reused until ``close()``.
    """

    def __init__(
        self,
        base_url: str,
        auth: Auth | None = None,
        *,
        timeout: float = 30,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._headers = dict(default_headers or {})
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def url(self, path: str) -> str:
        # next-page links are absolute
        if "://" in path:
            return path
        return self._base_url + path

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Json = None,
        params: dict[str, Any] | None = None,
    ) -> Response[Any]:
        headers = dict(self._headers)
        if self._auth is not None:
            headers |= await self._auth.headers()

        url = self.url(path)
        log.debug("{method} {url}", method=method, url=url)
        try:
            async with self.session.request(
                method, url, headers=headers, json=json, params=params,
            ) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    log.warning(
                        "{method} {url} failed with {status}: {body}",
                        method=method, url=url, status=resp.status, body=text[:500],
                    )
                    raise HttpError(status=resp.status, body=text)
                data = await resp.json(content_type=None) if text else None
                return Response(status=resp.status, data=data, headers=dict(resp.headers))
        except aiohttp.ClientError as e:
            raise HttpError(status=0, body=str(e)) from e

    async def get(
        self, path: str, *, params: dict[str, Any] | None = None, response_type: type[T],
    ) -> Response[T]:
        _ = response_type
        return await self.request("GET", path, params=params)

    async def post(self, path: str, *, json: Json = None, response_type: type[T]) -> Response[T]:
        _ = response_type
        return await self.request("POST", path, json=json)

    async def get_all(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        key: str | None = None,
    ) -> list[Any]:
        """Collect every page of a list endpoint.

        ``key`` picks the list out of an object response
        (``{"repositories": [...]}``); plain list responses need none.
        """
        items: list[Any] = []
        resp = await self.get(path, params={"per_page": 100, **(params or {})}, response_type=object)
        while True:
            page = resp.data or ([] if key is None else {})
            items.extend(page if key is None else page.get(key, []))
            if (url := resp.next_url) is None:
                return items
            # the query string travels inside the link
            resp = await self.get(url, response_type=object)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
