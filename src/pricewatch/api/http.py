from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import aiohttp
import structlog

from pricewatch.api.errors import ApiError, ErrorKind, classify_exception, classify_status, parse_error
from pricewatch.config import (
    API_KEY_HEADER,
    INITIAL_RETRY_DELAY_MS,
    MAX_RETRIES,
    REQUEST_TIMEOUT_MS,
)
from pricewatch.utils.backoff import retry_delay_ms
from pricewatch.utils.time import ms_to_s

log = structlog.get_logger("http")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class FetchConfig:
    api_key: Optional[str] = None
    timeout_ms: int = REQUEST_TIMEOUT_MS
    max_retries: int = MAX_RETRIES           # additional attempts after the first
    initial_delay_ms: int = INITIAL_RETRY_DELAY_MS


@dataclass(slots=True)
class RequestOptions:
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    params: Optional[dict[str, str]] = None
    data: Optional[dict[str, Any]] = None
    log_name: Optional[str] = None      # logged instead of the url (urls may embed secrets)


@dataclass(slots=True)
class HttpResponse:
    """Fully-read response; the connection is already released."""
    status: int
    body: bytes
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        try:
            return json.loads(self.body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise parse_error("Invalid response from server.") from e


def _should_retry_status(status: int) -> bool:
    # client errors are permanent, except rate limiting
    return status == 429 or status >= 500


class FetchClient:
    """
    Timed-out, retried HTTP requests over a shared aiohttp session.

    - fetch_with_timeout: one attempt; transport failures raise a classified
      ApiError, any HTTP status is returned as-is.
    - fetch_with_retry: retries 429/5xx and retryable transport errors with
      exponential backoff (initial * 2^attempt); returns only 2xx responses,
      otherwise raises the last classified ApiError.
    """

    def __init__(self, session: aiohttp.ClientSession, cfg: Optional[FetchConfig] = None, sleep: Sleep = asyncio.sleep):
        self._session = session
        self.cfg = cfg or FetchConfig()
        self._sleep = sleep

    def has_api_key(self) -> bool:
        return bool(self.cfg.api_key)

    def _headers(self, extra: dict[str, str]) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.cfg.api_key:
            headers[API_KEY_HEADER] = self.cfg.api_key
        headers.update(extra)
        return headers

    async def fetch_with_timeout(
        self,
        url: str,
        options: Optional[RequestOptions] = None,
        timeout_ms: Optional[int] = None,
    ) -> HttpResponse:
        opts = options or RequestOptions()
        timeout_s = ms_to_s(timeout_ms if timeout_ms is not None else self.cfg.timeout_ms)
        try:
            # wait_for cancels the in-flight request on expiry
            return await asyncio.wait_for(self._request(url, opts), timeout=timeout_s)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            err = classify_exception(e)
            log.info("http_request_failed", url=opts.log_name or url, kind=err.kind.value, err=str(e) or type(e).__name__)
            raise err from e

    async def _request(self, url: str, opts: RequestOptions) -> HttpResponse:
        async with self._session.request(
            opts.method,
            url,
            headers=self._headers(opts.headers),
            params=opts.params,
            data=opts.data,
        ) as resp:
            body = await resp.read()
            return HttpResponse(status=resp.status, body=body, url=str(resp.url))

    async def fetch_with_retry(
        self,
        url: str,
        options: Optional[RequestOptions] = None,
        max_retries: Optional[int] = None,
    ) -> HttpResponse:
        retries = self.cfg.max_retries if max_retries is None else max_retries
        label = options.log_name if options and options.log_name else url
        last: Optional[ApiError] = None

        for attempt in range(retries + 1):
            try:
                resp = await self.fetch_with_timeout(url, options)
            except ApiError as err:
                last = err
                if not err.retryable or attempt >= retries:
                    log.warning("http_give_up", url=label, kind=err.kind.value, attempts=attempt + 1)
                    raise
            else:
                if resp.ok:
                    return resp
                last = classify_status(resp.status)
                if not _should_retry_status(resp.status) or attempt >= retries:
                    if attempt > 0:
                        log.warning("http_give_up", url=label, status=resp.status, attempts=attempt + 1)
                    raise last

            delay = retry_delay_ms(self.cfg.initial_delay_ms, attempt)
            log.info("http_retry", url=label, kind=last.kind.value, attempt=attempt + 1, delay_ms=delay)
            await self._sleep(ms_to_s(delay))

        # only reached when retries < 0
        raise last or ApiError(ErrorKind.UNKNOWN, "Max retries exceeded", True)
