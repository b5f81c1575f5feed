"""Minimal client for the managed storage REST API (used by maintenance scripts)."""
from typing import Any, Optional

import httpx
import structlog

from errors import UpstreamError
from settings import get_settings

logger = structlog.get_logger(__name__)


class StorageClient:
    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        project_url = (base_url or get_settings().supabase_url or "").rstrip("/")
        if not project_url or not api_key:
            raise UpstreamError("Storage is not configured")
        self.project_url = project_url
        self._client = httpx.Client(
            base_url=f"{project_url}/storage/v1",
            headers={"Authorization": f"Bearer {api_key}", "apikey": api_key},
            transport=transport,
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Storage request failed: {exc}") from exc

        if response.is_error:
            logger.error("Storage API error", status_code=response.status_code, body=response.text)
            raise UpstreamError(f"Storage API returned {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("Storage API returned an unreadable response") from exc

    def list_buckets(self) -> list[dict[str, Any]]:
        return self._request("GET", "/bucket")

    def get_bucket(self, bucket_id: str) -> Optional[dict[str, Any]]:
        return next((b for b in self.list_buckets() if b.get("id") == bucket_id), None)

    def list_objects(self, bucket_id: str, prefix: str = "", limit: int = 100) -> list[dict[str, Any]]:
        return self._request(
            "POST",
            f"/object/list/{bucket_id}",
            json={"prefix": prefix, "limit": limit, "offset": 0},
        )

    def get_public_url(self, bucket_id: str, path: str) -> str:
        return f"{self.project_url}/storage/v1/object/public/{bucket_id}/{path}"
