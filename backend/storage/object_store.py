"""
Supabase Storage client

Async HTTP client for the Storage REST API: bucket creation, object upload,
object download and signed download URLs. Authenticates with the service
role key, so ownership checks are the caller's job.

API Base URL: {SUPABASE_URL}/storage/v1
Auth: Authorization: Bearer <service role key> + apikey header
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx
from fastapi import Request

from config import settings
from errors import StorageError

logger = logging.getLogger(__name__)

_ALREADY_EXISTS = "The resource already exists"


@dataclass
class StoredObject:
    data: bytes
    content_type: str | None


class ObjectStore:
    """Async client for one Supabase project's object storage.

    Keeps the set of buckets already ensured in this process; creating a
    bucket twice is harmless, so concurrent first calls need no lock.
    """

    def __init__(self, base_url: str, service_key: str, timeout: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self._ensured_buckets: set[str] = set()

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        if extra:
            headers.update(extra)
        return headers

    def _object_url(self, prefix: str, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/{prefix}/{bucket}/{quote(path, safe='/')}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json_body: dict | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        logger.info("Storage request: %s %s", method, url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._headers(headers),
                    json=json_body,
                    content=content,
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Storage request failed: {e}") from e
        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body: Any = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return body.get("message") or body.get("error") or response.text
        return response.text

    async def ensure_bucket(self, bucket: str, file_size_limit: int | None = None) -> None:
        """Create a private bucket unless this process already ensured it."""
        if bucket in self._ensured_buckets:
            return
        payload: dict[str, Any] = {"id": bucket, "name": bucket, "public": False}
        if file_size_limit:
            payload["file_size_limit"] = file_size_limit
        response = await self._request(
            "POST", f"{self.base_url}/storage/v1/bucket", json_body=payload
        )
        if response.status_code >= 400:
            message = self._error_message(response)
            if message != _ALREADY_EXISTS and response.status_code != 409:
                raise StorageError(
                    f"Unable to create or verify storage bucket '{bucket}': {message}"
                )
        self._ensured_buckets.add(bucket)

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str | None) -> str:
        """Upload bytes to bucket/path without overwriting. Returns the path."""
        response = await self._request(
            "POST",
            self._object_url("object", bucket, path),
            content=data,
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "x-upsert": "false",
            },
        )
        if response.status_code >= 400:
            raise StorageError(self._error_message(response))
        return path

    async def download(self, bucket: str, path: str) -> StoredObject:
        response = await self._request("GET", self._object_url("object", bucket, path))
        if response.status_code >= 400:
            raise StorageError(self._error_message(response))
        content_type = response.headers.get("content-type")
        if content_type:
            content_type = content_type.split(";")[0].strip() or None
        return StoredObject(data=response.content, content_type=content_type)

    async def create_signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        """Return a credential-free download URL valid for expires_in seconds."""
        response = await self._request(
            "POST",
            self._object_url("object/sign", bucket, path),
            json_body={"expiresIn": expires_in},
        )
        if response.status_code >= 400:
            raise StorageError(self._error_message(response))
        signed = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed:
            raise StorageError("Could not create a download link, please try again later.")
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"


def build_object_store() -> ObjectStore:
    return ObjectStore(settings.supabase_url, settings.supabase_service_role_key)


def get_object_store(request: Request) -> ObjectStore:
    """FastAPI dependency returning the process-scoped object store."""
    store = getattr(request.app.state, "object_store", None)
    if store is None:
        store = build_object_store()
        request.app.state.object_store = store
    return store
