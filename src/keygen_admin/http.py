"""
Bounded-retry requests and JSON:API pagination.

Two pieces live here:
- RequestSender: one logical HTTP call. 2xx and 4xx come back on the first
  sighting; 5xx, connection errors and timeouts are retried after a fixed
  delay until the attempt budget is spent.
- PageAccumulator: walks `page[number]` from 1 with a fixed `page[size]`,
  concatenating `data` items until a page comes back short.

Neither ever exits the process. The sender reports expected failures as an
Outcome value; the accumulator raises FetchError carrying the outcome of the
page that failed.
"""

from __future__ import annotations

import dataclasses
import enum
import json
import logging
import time
import typing as t

import requests

from keygen_admin.errors import FetchError, PaginationLimitError

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100     # Keygen's maximum page[size]
DEFAULT_MAX_PAGES = 1000

# Called with (response, method) on every successful response.
Verifier = t.Callable[[requests.Response, str], None]


class Method(str, enum.Enum):
    GET = "GET"
    POST = "POST"


class OutcomeKind(enum.Enum):
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR_EXHAUSTED = "server_error_exhausted"
    UNEXPECTED_STATUS = "unexpected_status"


# ----------------------
# Values
# ----------------------

@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    timeout: float = 30.0       # seconds, per attempt
    max_attempts: int = 3
    delay: float = 2.0          # seconds between attempts

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.delay < 0:
            raise ValueError("delay must not be negative")


@dataclasses.dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    status: int | None          # None when no response was ever received
    body: t.Any                 # decoded JSON, raw text, or None
    attempts: int
    error: str | None = None    # transport error of the last attempt, if any

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def describe(self) -> str:
        if self.status is None:
            return f"no response after {self.attempts} attempt(s): {self.error}"
        if self.body is None:
            body = ""
        else:
            body = self.body if isinstance(self.body, str) else json.dumps(self.body)
        return f"HTTP {self.status}: {body[:200]}"

    def details(self) -> str:
        """The whole response body, pretty-printed when it is JSON."""
        if self.body is None:
            return ""
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body, indent=2)


@dataclasses.dataclass(frozen=True)
class PageRef:
    path: str
    number: int = 1
    size: int = DEFAULT_PAGE_SIZE

    def params(self) -> dict[str, int]:
        return {"page[number]": self.number, "page[size]": self.size}

    def next(self) -> "PageRef":
        return dataclasses.replace(self, number=self.number + 1)


@dataclasses.dataclass(frozen=True)
class PageResult:
    items: tuple[t.Any, ...]
    is_final: bool


def classify_status(code: int) -> OutcomeKind | None:
    """Map a status code to a terminal outcome kind, or None if it should be retried."""
    if 200 <= code < 300:
        return OutcomeKind.SUCCESS
    if 400 <= code < 500:
        return OutcomeKind.CLIENT_ERROR
    if 500 <= code < 600:
        return None
    return OutcomeKind.UNEXPECTED_STATUS


def _decode_body(resp: requests.Response) -> t.Any:
    if not resp.text:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


# ----------------------
# Sender
# ----------------------

class RequestSender:
    """Sends requests relative to `base_url`, retrying transient failures."""

    def __init__(
        self,
        session: requests.Session,
        base_url: str,
        retry: RetryPolicy | None = None,
        sleep: t.Callable[[float], None] = time.sleep,
        verifier: Verifier | None = None,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.retry = retry or RetryPolicy()
        self.sleep = sleep
        self.verifier = verifier

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def send(
        self,
        method: Method | str,
        path: str,
        body: t.Any = None,
        params: dict[str, t.Any] | None = None,
    ) -> Outcome:
        method = Method(method)
        if body is not None and method is not Method.POST:
            raise ValueError(f"{method.value} requests do not carry a body")

        url = self.url_for(path)
        data = json.dumps(body) if body is not None else None
        status: int | None = None
        payload: t.Any = None
        error: str | None = None

        for attempt in range(1, self.retry.max_attempts + 1):
            try:
                resp = self.session.request(
                    method.value, url, params=params, data=data, timeout=self.retry.timeout,
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                status, payload, error = None, None, f"{type(exc).__name__}: {exc}"
                log.warning("%s %s attempt %d/%d failed: %s",
                            method.value, path, attempt, self.retry.max_attempts, error)
            else:
                status, payload, error = resp.status_code, _decode_body(resp), None
                kind = classify_status(status)
                if kind is not None:
                    if kind is OutcomeKind.UNEXPECTED_STATUS:
                        log.warning("%s %s returned unexpected status %d; not retrying",
                                    method.value, path, status)
                    if kind is OutcomeKind.SUCCESS and self.verifier is not None:
                        self.verifier(resp, method.value)
                    return Outcome(kind, status, payload, attempt)
                log.warning("%s %s attempt %d/%d got server error %d",
                            method.value, path, attempt, self.retry.max_attempts, status)

            if attempt < self.retry.max_attempts:
                log.info("retrying in %.1fs", self.retry.delay)
                self.sleep(self.retry.delay)

        log.error("%s %s gave up after %d attempt(s)", method.value, path, self.retry.max_attempts)
        return Outcome(
            OutcomeKind.SERVER_ERROR_EXHAUSTED, status, payload, self.retry.max_attempts, error,
        )


# ----------------------
# Pagination
# ----------------------

def page_items(body: t.Any) -> list[t.Any]:
    """Return the `data` list of a JSON:API document; anything else counts as no items."""
    data = body.get("data") if isinstance(body, dict) else None
    return list(data) if isinstance(data, list) else []


class PageAccumulator:
    """
    Fetches every page of a list endpoint.

    `max_pages` caps how many full pages are followed; pass None to keep
    going for as long as the API keeps returning full pages.
    """

    def __init__(
        self,
        sender: RequestSender,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int | None = DEFAULT_MAX_PAGES,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.sender = sender
        self.page_size = page_size
        self.max_pages = max_pages

    def fetch_page(self, ref: PageRef, params: dict[str, t.Any] | None = None) -> PageResult:
        query = dict(params or {})
        query.update(ref.params())
        outcome = self.sender.send(Method.GET, ref.path, params=query)
        if not outcome.ok:
            raise FetchError(f"page {ref.number} of {ref.path} failed: {outcome.describe()}", outcome)
        items = page_items(outcome.body)
        return PageResult(items=tuple(items), is_final=len(items) < ref.size)

    def collect(self, path: str, params: dict[str, t.Any] | None = None) -> list[t.Any]:
        ref = PageRef(path, 1, self.page_size)
        collected: list[t.Any] = []
        while True:
            page = self.fetch_page(ref, params)
            collected.extend(page.items)
            log.debug("%s page %d: %d item(s)", path, ref.number, len(page.items))
            if page.is_final:
                return collected
            # page max_pages+1 may still be the empty or short final page
            if self.max_pages is not None and ref.number > self.max_pages:
                raise PaginationLimitError(
                    f"{path} still returned full pages after {ref.number} page(s)"
                )
            ref = ref.next()
