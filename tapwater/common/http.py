"""HTTP client with timeouts, opt-in retries and cooperative cancellation."""

from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType
from typing import Any

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from tapwater.common.cancellation import CancelToken
from tapwater.common.constants import USER_AGENT
from tapwater.common.errors import InvalidResponse, ServiceUnavailable

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 30.0


@dataclass(frozen=True)
class RetryConfig:
    # One attempt: retrying is the caller's decision.
    max_attempts: int = 1
    multiplier: float = 1.0
    max_wait: float = 10.0


class HttpRequestError(ServiceUnavailable):
    pass


class RetryableHttpError(HttpRequestError):
    pass


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.session = requests.Session()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response, url: str) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"Retryable HTTP status {status} from {url}")
        if status < 200 or status >= 300:
            raise HttpRequestError(f"HTTP status {status} from {url}")

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        timeout: TimeoutConfig | None,
        cancel_token: CancelToken | None,
    ) -> dict[str, Any]:
        req_timeout = timeout or self.timeout
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                headers=self._headers(headers),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except requests.Timeout as exc:
            raise HttpRequestError(f"Timed out calling {url}") from exc
        except requests.RequestException as exc:
            raise HttpRequestError(f"Transport error calling {url}: {exc}") from exc

        # A response that arrives after cancellation is discarded.
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        self._raise_for_status_or_retry(response, url)

        try:
            payload = response.json()
        except ValueError as exc:
            raise InvalidResponse(f"Invalid JSON payload from {url}") from exc

        if not isinstance(payload, dict):
            raise InvalidResponse(f"Expected a JSON object from {url}")
        return payload

    def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
        cancel_token: CancelToken | None = None,
    ) -> dict[str, Any]:
        @retry(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=1.0,
            ),
            retry=retry_if_exception_type(RetryableHttpError),
            reraise=True,
        )
        def _wrapped() -> dict[str, Any]:
            return self._request_json(
                method,
                url,
                params=params,
                headers=headers,
                timeout=timeout,
                cancel_token=cancel_token,
            )

        return _wrapped()

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
        cancel_token: CancelToken | None = None,
    ) -> dict[str, Any]:
        return self.request_json(
            "GET",
            url,
            params=params,
            headers=headers,
            timeout=timeout,
            cancel_token=cancel_token,
        )
