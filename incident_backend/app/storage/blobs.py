"""
Object bucket client for record images.

Speaks the Supabase Storage REST dialect over httpx:

    POST   {base}/object/{bucket}/{path}       upload
    DELETE {base}/object/{bucket}              bulk delete, {"prefixes": [...]}
    POST   {base}/object/list/{bucket}         list objects with metadata
    GET    {base}/object/public/{bucket}/{path} public URL
"""

import logging
import uuid
from typing import Iterable, List

import httpx

from incident_backend.app.core.exceptions import BackendUnavailableError

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 1000


class HttpBlobStore:
    """Uploads, deletes and measures images in one bucket."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, bucket: str, api_key: str = ""):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.api_key = api_key

    def _headers(self) -> dict:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/object/public/{self.bucket}/{path}"

    def path_from_url(self, url: str) -> str:
        """
        Object path for a URL in this bucket, or "" if the URL points elsewhere.
        """
        marker = f"/object/public/{self.bucket}/"
        if marker not in url:
            return ""
        return url.split(marker, 1)[1].split("?", 1)[0]

    @staticmethod
    def new_object_name() -> str:
        return f"{uuid.uuid4().hex}.jpg"

    async def upload(self, content: bytes, content_type: str = "image/jpeg") -> str:
        """Store `content` under a fresh unique name and return its public URL."""
        path = self.new_object_name()
        try:
            response = await self.http_client.post(
                f"{self.base_url}/object/{self.bucket}/{path}",
                content=content,
                headers={**self._headers(), "Content-Type": content_type, "x-upsert": "false"},
            )
        except httpx.HTTPError as exc:
            logger.error("Image upload to bucket %s failed: %s", self.bucket, exc)
            raise BackendUnavailableError("Image upload failed", operation="upload")

        if response.status_code >= 300:
            logger.error("Bucket rejected upload of %s: HTTP %d %s", path, response.status_code, response.text[:200])
            raise BackendUnavailableError(f"Image upload rejected (HTTP {response.status_code})", operation="upload")

        return self.public_url(path)

    async def delete(self, paths: Iterable[str]) -> None:
        paths = [p for p in paths if p]
        if not paths:
            return
        try:
            response = await self.http_client.request(
                "DELETE",
                f"{self.base_url}/object/{self.bucket}",
                json={"prefixes": paths},
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            logger.error("Image delete from bucket %s failed: %s", self.bucket, exc)
            raise BackendUnavailableError("Image delete failed", operation="delete_images")

        if response.status_code >= 300:
            raise BackendUnavailableError(
                f"Image delete rejected (HTTP {response.status_code})", operation="delete_images"
            )

    async def list_objects(self) -> List[dict]:
        objects = []
        offset = 0
        while True:
            try:
                response = await self.http_client.post(
                    f"{self.base_url}/object/list/{self.bucket}",
                    json={"prefix": "", "limit": LIST_PAGE_SIZE, "offset": offset},
                    headers=self._headers(),
                )
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error("Listing bucket %s failed: %s", self.bucket, exc)
                raise BackendUnavailableError("Could not list stored images", operation="list_images")

            page = response.json()
            objects.extend(page)
            if len(page) < LIST_PAGE_SIZE:
                return objects
            offset += LIST_PAGE_SIZE

    async def total_size(self) -> int:
        total = 0
        for obj in await self.list_objects():
            metadata = obj.get("metadata") or {}
            total += int(metadata.get("size") or 0)
        return total
