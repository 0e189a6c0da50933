"""
Object Storage Provider Classes

Avatar and cover images are not stored by this service. Uploaded files land
in a local temp directory first; a storage provider then pushes them to object
storage and returns the public URL. Each provider implements one backend
behind the same `upload(local_path) -> {"url": ...}` and `delete(upload)`
contract and raises `InternalError` when the backend call fails.
"""

import asyncio
import hashlib
import os
import shutil
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp

from core.exceptions import InternalError
from core.logging_config import get_logger

logger = get_logger(__name__)


class StorageProvider(ABC):
    """Abstract base class for all storage providers"""

    @abstractmethod
    async def upload(self, local_path: str) -> Dict[str, Any]:
        """Upload a local file. Returns a dict with at least `url`."""
        pass

    @abstractmethod
    async def delete(self, upload: Dict[str, Any]) -> None:
        """Remove a previously uploaded asset, given the dict `upload` returned"""
        pass

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Source identifier for this provider"""
        pass


def _remove_local_file(local_path: str):
    try:
        os.remove(local_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temp file {local_path}: {e}")


class CloudinaryStorageProvider(StorageProvider):
    """Upload files to Cloudinary through its signed upload REST endpoint"""

    UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/auto/upload"
    DESTROY_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/{resource_type}/destroy"

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        timeout_seconds: int = 60,
        remove_local: bool = True,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout_seconds = timeout_seconds
        self.remove_local = remove_local

    @property
    def source_name(self) -> str:
        return "cloudinary"

    def _sign(self, params: Dict[str, Any]) -> str:
        """Cloudinary signature: sha1 of the sorted params followed by the secret"""
        to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode("utf-8")).hexdigest()

    async def upload(self, local_path: str) -> Dict[str, Any]:
        if not local_path:
            raise InternalError("No file given for upload")

        try:
            content = await asyncio.to_thread(Path(local_path).read_bytes)
            params = {"timestamp": int(time.time())}

            form = aiohttp.FormData()
            form.add_field("file", content, filename=Path(local_path).name)
            form.add_field("api_key", self.api_key)
            form.add_field("timestamp", str(params["timestamp"]))
            form.add_field("signature", self._sign(params))

            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.UPLOAD_URL.format(cloud_name=self.cloud_name),
                    data=form,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    payload = await response.json()
                    if response.status != 200:
                        message = payload.get("error", {}).get("message", "unknown error")
                        raise InternalError(
                            f"Upload to Cloudinary failed: {message}",
                            details={"status": response.status},
                        )
        except (OSError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error uploading {local_path} to Cloudinary: {e}")
            raise InternalError("Error while uploading file") from e
        finally:
            if self.remove_local:
                _remove_local_file(local_path)

        url = payload.get("secure_url") or payload.get("url")
        if not url:
            raise InternalError("Upload to Cloudinary returned no URL")

        logger.info(f"Uploaded {Path(local_path).name} to Cloudinary")
        return {
            "url": url,
            "public_id": payload.get("public_id"),
            "resource_type": payload.get("resource_type"),
        }

    async def delete(self, upload: Dict[str, Any]) -> None:
        public_id = upload.get("public_id")
        if not public_id:
            raise InternalError("No public id given for deletion")

        params = {"public_id": public_id, "timestamp": int(time.time())}
        form = aiohttp.FormData()
        form.add_field("public_id", public_id)
        form.add_field("api_key", self.api_key)
        form.add_field("timestamp", str(params["timestamp"]))
        form.add_field("signature", self._sign(params))
        url = self.DESTROY_URL.format(
            cloud_name=self.cloud_name,
            resource_type=upload.get("resource_type") or "image",
        )

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    data=form,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    payload = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error deleting {public_id} from Cloudinary: {e}")
            raise InternalError("Error while deleting file") from e

        # "not found" means there is nothing left to clean up
        if response.status != 200 or payload.get("result") not in ("ok", "not found"):
            raise InternalError(
                f"Delete from Cloudinary failed for {public_id}",
                details={"status": response.status},
            )
        logger.info(f"Deleted {public_id} from Cloudinary")


class LocalStorageProvider(StorageProvider):
    """Move files into a local media directory (development fallback)"""

    def __init__(self, media_root: str, base_url: Optional[str] = None):
        self.media_root = Path(media_root)
        self.base_url = base_url

    @property
    def source_name(self) -> str:
        return "local"

    def _store(self, local_path: str) -> Path:
        self.media_root.mkdir(parents=True, exist_ok=True)
        destination = self.media_root / f"{uuid.uuid4().hex}{Path(local_path).suffix}"
        shutil.move(local_path, destination)
        return destination

    async def upload(self, local_path: str) -> Dict[str, Any]:
        if not local_path:
            raise InternalError("No file given for upload")

        try:
            destination = await asyncio.to_thread(self._store, local_path)
        except OSError as e:
            logger.error(f"Error storing {local_path} locally: {e}")
            raise InternalError("Error while uploading file") from e

        if self.base_url:
            url = f"{self.base_url.rstrip('/')}/{destination.name}"
        else:
            url = destination.resolve().as_uri()
        return {"url": url, "public_id": destination.name}

    async def delete(self, upload: Dict[str, Any]) -> None:
        public_id = upload.get("public_id")
        if not public_id:
            raise InternalError("No public id given for deletion")
        try:
            await asyncio.to_thread((self.media_root / Path(public_id).name).unlink, True)
        except OSError as e:
            logger.error(f"Error deleting local media {public_id}: {e}")
            raise InternalError("Error while deleting file") from e


# Global storage provider
_storage_provider: Optional[StorageProvider] = None


def build_storage_provider() -> StorageProvider:
    """Cloudinary when configured through the environment, local otherwise"""
    cloud_name = os.getenv("CLOUDINARY_CLOUD_NAME")
    api_key = os.getenv("CLOUDINARY_API_KEY")
    api_secret = os.getenv("CLOUDINARY_API_SECRET")
    if cloud_name and api_key and api_secret:
        return CloudinaryStorageProvider(cloud_name, api_key, api_secret)

    logger.warning("Cloudinary is not configured; storing uploads locally")
    return LocalStorageProvider(
        os.getenv("MEDIA_ROOT", "./public/media"), os.getenv("MEDIA_BASE_URL")
    )


def get_storage_provider() -> StorageProvider:
    """Get global storage provider"""
    global _storage_provider
    if _storage_provider is None:
        _storage_provider = build_storage_provider()
    return _storage_provider


def init_storage_provider(provider: Optional[StorageProvider] = None) -> StorageProvider:
    """Initialize global storage provider"""
    global _storage_provider
    _storage_provider = provider or build_storage_provider()
    logger.info(f"Initialized {_storage_provider.source_name} storage provider")
    return _storage_provider
