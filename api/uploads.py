"""
Temporary storage for uploaded files.

Multipart uploads are written to `UPLOAD_TEMP_DIR` before the storage
provider pushes them to object storage. Providers remove the temp file after
uploading; `discard_upload` cleans up files a request never handed over
(for example when validation rejected the request first).
"""

import asyncio
import os
import uuid
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from core.logging_config import get_logger

logger = get_logger(__name__)

UPLOAD_TEMP_DIR = os.getenv("UPLOAD_TEMP_DIR", "./public/temp")


def _write(path: Path, content: bytes):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


async def save_upload(upload: Optional[UploadFile]) -> Optional[str]:
    """Write an uploaded file to the temp directory and return its path"""
    if upload is None or not upload.filename:
        return None

    path = Path(UPLOAD_TEMP_DIR) / f"{uuid.uuid4().hex}{Path(upload.filename).suffix}"
    content = await upload.read()
    await asyncio.to_thread(_write, path, content)
    logger.debug(f"Saved upload {upload.filename} to {path}")
    return str(path)


def discard_upload(path: Optional[str]):
    if path and os.path.exists(path):
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"Could not remove temp file {path}: {e}")
