from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote, urlsplit, urlunsplit

import httpx
import structlog

from ..config import settings
from ..errors import AuthWallError, FetchExhaustedError
from ..utils import epoch_ms

log = structlog.get_logger()

CACHE_BUST_PARAM = "_t"
NO_CACHE_HEADERS = {
    "cache-control": "no-cache, no-store",
    "pragma": "no-cache",
    "accept": "text/csv, text/html, text/plain, */*",
    "user-agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36",
}
AUTH_WALL_MARKERS = ("accounts.google.com", "servicelogin", "signin/v2", "id=\"identifierid\"")

EXHAUSTED_HINT = (
    "Could not download the sheet through any route. Likely causes: "
    "(1) the sheet is not published to the web or sharing is restricted; "
    "(2) a proxy or network filter is blocking the request; "
    "(3) the host is rate limiting, so wait a minute and retry."
)
AUTH_WALL_HINT = (
    "The sheet answered with a sign-in page. In Google Sheets use "
    "File > Share > Publish to web (CSV) or set link sharing to 'Anyone with the link'."
)


@dataclass(frozen=True)
class FetchStrategy:
    name: str
    rewrite: Callable[[str], str]


def _direct(url: str) -> str:
    return url


def _corsproxy(url: str) -> str:
    return f"https://corsproxy.io/?url={quote(url, safe='')}"


def _allorigins(url: str) -> str:
    return f"https://api.allorigins.win/raw?url={quote(url, safe='')}"


STRATEGIES = {
    "direct": FetchStrategy("direct", _direct),
    "corsproxy": FetchStrategy("corsproxy", _corsproxy),
    "allorigins": FetchStrategy("allorigins", _allorigins),
}


def strategies_from_config(raw: str | None = None) -> list[FetchStrategy]:
    names = [part.strip() for part in (raw or settings.fetch_strategies).split(",") if part.strip()]
    out = [STRATEGIES[name] for name in names if name in STRATEGIES]
    return out or [STRATEGIES["direct"]]


def add_cache_buster(url: str, stamp: int | None = None) -> str:
    parts = urlsplit(url)
    param = f"{CACHE_BUST_PARAM}={stamp if stamp is not None else epoch_ms()}"
    query = f"{parts.query}&{param}" if parts.query else param
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def is_auth_wall(text: str) -> bool:
    lowered = text[:20000].lower()
    if "<html" not in lowered or "<table" in lowered:
        return False
    return any(marker in lowered for marker in AUTH_WALL_MARKERS)


class _AttemptFailed(Exception):
    def __init__(self, reason: str, auth_wall: bool = False):
        super().__init__(reason)
        self.auth_wall = auth_wall


class ResilientFetcher:
    """Fetches text through an ordered chain of routes until one works."""

    def __init__(
        self,
        strategies: list[FetchStrategy] | None = None,
        timeout: float | None = None,
        time_budget: float | None = None,
        transport: httpx.BaseTransport | httpx.AsyncBaseTransport | None = None,
    ):
        self.strategies = strategies or strategies_from_config()
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.time_budget = time_budget if time_budget is not None else settings.fetch_time_budget_seconds
        self.transport = transport

    def _plan(self, url: str) -> list[tuple[FetchStrategy, str]]:
        target = add_cache_buster(url)
        return [(strategy, strategy.rewrite(target)) for strategy in self.strategies]

    def _attempt_timeout(self, deadline: float) -> Optional[float]:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        return min(self.timeout, remaining)

    def _decode(self, resp: httpx.Response) -> str:
        if not resp.is_success:
            raise _AttemptFailed(f"status_{resp.status_code}")
        try:
            text = resp.content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise _AttemptFailed(f"decode_error: {exc}") from exc
        if not text.strip():
            raise _AttemptFailed("empty_body")
        if is_auth_wall(text):
            raise _AttemptFailed("auth_wall", auth_wall=True)
        return text

    def _record(self, attempts: list[dict], strategy: FetchStrategy, reason: str, auth_wall: bool = False):
        attempts.append({"strategy": strategy.name, "error": reason, "auth_wall": auth_wall})
        log.warning("fetch_strategy_failed", strategy=strategy.name, err=reason)

    def _exhausted(self, url: str, attempts: list[dict]) -> FetchExhaustedError:
        log.error("fetch_exhausted", url=url, attempts=attempts)
        if any(a["auth_wall"] for a in attempts):
            return AuthWallError(AUTH_WALL_HINT, attempts)
        return FetchExhaustedError(EXHAUSTED_HINT, attempts)

    async def fetch_text(self, url: str) -> str:
        deadline = time.monotonic() + self.time_budget
        attempts: list[dict] = []
        async with httpx.AsyncClient(transport=self.transport, follow_redirects=True) as client:
            for strategy, request_url in self._plan(url):
                timeout = self._attempt_timeout(deadline)
                if timeout is None:
                    self._record(attempts, strategy, "time_budget_exceeded")
                    break
                try:
                    resp = await client.get(request_url, headers=NO_CACHE_HEADERS, timeout=timeout)
                    text = self._decode(resp)
                except _AttemptFailed as exc:
                    self._record(attempts, strategy, str(exc), exc.auth_wall)
                    continue
                except (httpx.HTTPError, httpx.InvalidURL) as exc:
                    self._record(attempts, strategy, f"{type(exc).__name__}: {exc}")
                    continue
                log.info("fetch_succeeded", strategy=strategy.name, chars=len(text))
                return text
        raise self._exhausted(url, attempts)

    def fetch_text_sync(self, url: str) -> str:
        deadline = time.monotonic() + self.time_budget
        attempts: list[dict] = []
        with httpx.Client(transport=self.transport, follow_redirects=True) as client:
            for strategy, request_url in self._plan(url):
                timeout = self._attempt_timeout(deadline)
                if timeout is None:
                    self._record(attempts, strategy, "time_budget_exceeded")
                    break
                try:
                    resp = client.get(request_url, headers=NO_CACHE_HEADERS, timeout=timeout)
                    text = self._decode(resp)
                except _AttemptFailed as exc:
                    self._record(attempts, strategy, str(exc), exc.auth_wall)
                    continue
                except (httpx.HTTPError, httpx.InvalidURL) as exc:
                    self._record(attempts, strategy, f"{type(exc).__name__}: {exc}")
                    continue
                log.info("fetch_succeeded", strategy=strategy.name, chars=len(text))
                return text
        raise self._exhausted(url, attempts)
