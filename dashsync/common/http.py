"""HTTP client with retries on the read path and timeouts."""

from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType
from typing import Any

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from dashsync.common.constants import DEFAULT_READ_RETRIES, USER_AGENT
from dashsync.common.errors import TransportError

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 30.0


@dataclass(frozen=True)
class RetryConfig:
    read_retries: int = DEFAULT_READ_RETRIES
    multiplier: float = 0.5
    max_wait: float = 5.0


class HttpRequestError(TransportError):
    error_code = "HTTP_ERROR"

    def __init__(self, message: str, *, status: int | None = None, server_message: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.server_message = server_message


class RetryableHttpError(HttpRequestError):
    pass


def _server_message(response: requests.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if isinstance(message, str) and message:
            return message
    return None


class HttpClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        token: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.token = token
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

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.token:
            out["Authorization"] = f"Bearer {self.token}"
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(
                f"Retryable HTTP status: {status}",
                status=status,
                server_message=_server_message(response),
            )
        if status >= 400:
            raise HttpRequestError(
                f"HTTP status: {status}",
                status=status,
                server_message=_server_message(response),
            )

    def _request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        req_timeout = timeout or self.timeout
        url = self._url(path)
        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_body,
                headers=self._headers(headers),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except requests.RequestException as exc:
            raise RetryableHttpError(f"{method} {url} failed: {exc}") from exc
        self._raise_for_status_or_retry(response)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"Invalid JSON payload from {url}", status=response.status_code) from exc

    def request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        # Only reads are retried; a mutation is issued exactly once.
        attempts = 1 + self.retry.read_retries if method == "GET" else 1

        @retry(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=self.retry.multiplier,
            ),
            retry=retry_if_exception_type(RetryableHttpError),
            reraise=True,
        )
        def _wrapped() -> Any:
            return self._request_json(
                method,
                path,
                params=params,
                json_body=json_body,
                headers=headers,
                timeout=timeout,
            )

        return _wrapped()

    def get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        return self.request_json("GET", path, params=params, timeout=timeout)

    def patch_json(self, path: str, body: dict[str, Any], *, timeout: TimeoutConfig | None = None) -> Any:
        return self.request_json("PATCH", path, json_body=body, timeout=timeout)

    def post_json(self, path: str, body: dict[str, Any], *, timeout: TimeoutConfig | None = None) -> Any:
        return self.request_json("POST", path, json_body=body, timeout=timeout)

    def delete(self, path: str, *, body: dict[str, Any] | None = None, timeout: TimeoutConfig | None = None) -> Any:
        return self.request_json("DELETE", path, json_body=body, timeout=timeout)
