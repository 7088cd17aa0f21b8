"""
BackendGateway -- httpx client for the payroll backend API.

Every backend response is wrapped in an envelope:

    {
        "header": {"responseCode": 200, "responseMessage": "...",
                   "responseDetail": "..."},
        "response": <payload>
    }

``get`` / ``post`` return the unwrapped ``response`` payload.  Transport
failures raise ``BackendUnavailableError``; HTTP error statuses and
envelopes with a non-2xx ``responseCode`` raise ``BackendResponseError``.
"""

from __future__ import annotations

import time
from typing import Any, Iterator, Mapping

import httpx

from payroll_config.settings import PayrollSettings
from payroll_kernel.exceptions import BackendResponseError, BackendUnavailableError
from payroll_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.gateway")


def _is_success(code: Any) -> bool:
    try:
        return 200 <= int(code) < 300
    except (TypeError, ValueError):
        return False


class BackendGateway:
    """Synchronous envelope-aware client; safe to share across threads."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: PayrollSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> BackendGateway:
        return cls(
            base_url=settings.backend_base_url,
            token=settings.backend_token,
            timeout=settings.backend_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> BackendGateway:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------

    def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, json: Any | None = None) -> Any:
        return self._request("POST", path, json=json)

    def iter_pages(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        page_size: int = 100,
    ) -> Iterator[Any]:
        """
        Yield items from a ``page``/``limit`` paginated list endpoint.

        Stops at the first page shorter than ``page_size``.  A payload that
        is a dict is read from its ``items`` key.
        """
        page = 1
        while True:
            payload = self.get(path, {**(params or {}), "page": page, "limit": page_size})
            items = payload.get("items", []) if isinstance(payload, dict) else (payload or [])
            yield from items
            if len(items) < page_size:
                return
            page += 1

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        start = time.monotonic()
        extra_headers = {}
        correlation_id = LogContext.get_all().get("correlation_id")
        if correlation_id:
            extra_headers["X-Correlation-ID"] = correlation_id

        try:
            response = self._client.request(method, path, headers=extra_headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(
                "backend_request_failed",
                extra={"method": method, "path": path, "error": str(exc)},
            )
            raise BackendUnavailableError(path, str(exc)) from exc

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        try:
            body = response.json()
        except ValueError:
            body = None

        header = body.get("header", {}) if isinstance(body, dict) else {}
        response_code = header.get("responseCode")
        message = header.get("responseMessage")

        if response.is_error or (response_code is not None and not _is_success(response_code)):
            logger.warning(
                "backend_error_response",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "response_code": response_code,
                    "response_message": message,
                    "duration_ms": duration_ms,
                },
            )
            raise BackendResponseError(
                path,
                response.status_code,
                str(response_code) if response_code is not None else None,
                message,
            )

        logger.debug(
            "backend_request_completed",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        if isinstance(body, dict) and "response" in body:
            return body["response"]
        return body
