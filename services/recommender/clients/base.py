"""Shared JSON GET helper for the upstream drug-data APIs."""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from ..errors import DependencyError, DependencyTimeoutError
from ..resilience import RetryPolicy, call_async_with_retry


class JsonApiClient:
    """Thin wrapper adding retries and error translation to ``httpx``."""

    dependency: str = "upstream"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._http = http_client
        self._retry_policy = retry_policy or RetryPolicy()

    async def _send(self, path: str, params: Mapping[str, Any] | None) -> httpx.Response:
        response = await self._http.get(path, params=params)
        response.raise_for_status()
        return response

    async def get_json(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        *,
        not_found_ok: bool = False,
    ) -> Any:
        """GET ``path`` and decode JSON; ``None`` on 404 when ``not_found_ok``."""

        try:
            response = await call_async_with_retry(
                self._send,
                path,
                params,
                policy=self._retry_policy,
                label=self.dependency,
            )
        except httpx.HTTPStatusError as exc:
            if not_found_ok and exc.response.status_code == httpx.codes.NOT_FOUND:
                return None
            raise DependencyError(
                self.dependency,
                f"{self.dependency} request failed with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.TimeoutException as exc:
            timeout = self._http.timeout.read
            raise DependencyTimeoutError(self.dependency, timeout_seconds=timeout) from exc
        except httpx.HTTPError as exc:
            raise DependencyError(self.dependency, f"{self.dependency} request failed") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise DependencyError(self.dependency, f"{self.dependency} returned invalid JSON") from exc


__all__ = ["JsonApiClient"]
