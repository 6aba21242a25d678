"""
Media storage

Uploads are staged as temp files first, then either pushed to Cloudinary
(when credentials are configured) or kept on local disk under STORAGE_DIR
and served back through /stream/{filename}.
"""

import logging
import os
import re
import shutil
from typing import Any, Dict, Optional

import cloudinary
import cloudinary.uploader
from bson import ObjectId
from fastapi import HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from vidnest.config import settings

logger = logging.getLogger(__name__)

RESOURCE_TYPES = ("image", "video", "raw")
LOCAL_URL_PREFIX = "/stream/"

_VERSION_SEGMENT = re.compile(r"^v\d+$")

_cloudinary_configured = False


def _configure_cloudinary() -> bool:
    global _cloudinary_configured
    if not settings.cloudinary_enabled:
        return False
    if not _cloudinary_configured:
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )
        _cloudinary_configured = True
    return True


def backend_name() -> str:
    return "cloudinary" if settings.cloudinary_enabled else "local"


def require_content_type(upload: Optional[UploadFile], kind: str, label: str):
    """Reject uploads whose declared MIME type is not kind/* (image, video)."""
    if upload is None:
        return
    if upload.content_type is None or not upload.content_type.startswith(f"{kind}/"):
        raise HTTPException(status_code=400, detail=f"{label} must be a {kind} file")


def has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


async def stage_upload(upload: UploadFile) -> str:
    """Write the upload to TEMP_DIR under a collision-free name and return the path."""
    os.makedirs(settings.temp_dir, exist_ok=True)
    safe_name = f"{ObjectId()}{os.path.splitext(upload.filename or '')[1].lower()}"
    destination = os.path.join(settings.temp_dir, safe_name)
    content = await upload.read()
    with open(destination, "wb") as f:
        f.write(content)
    return destination


def _remove(path: str):
    if path and os.path.exists(path):
        os.remove(path)


def _upload_cloudinary(path: str, resource_type: str) -> Dict[str, Any]:
    response = cloudinary.uploader.upload(path, resource_type=resource_type)
    return {
        "url": response.get("secure_url") or response.get("url"),
        "public_id": response.get("public_id"),
        "resource_type": response.get("resource_type", resource_type),
        "duration": response.get("duration") or 0,
    }


def _store_local(path: str, resource_type: str) -> Dict[str, Any]:
    os.makedirs(settings.storage_dir, exist_ok=True)
    filename = os.path.basename(path)
    shutil.move(path, os.path.join(settings.storage_dir, filename))
    return {
        "url": f"{LOCAL_URL_PREFIX}{filename}",
        "public_id": os.path.splitext(filename)[0],
        "resource_type": resource_type,
        "duration": 0,
    }


async def upload_media(upload: Optional[UploadFile], resource_type: str = "auto") -> Optional[Dict[str, Any]]:
    """
    Store an uploaded file and describe where it ended up.

    Returns a dict with url, public_id, resource_type and duration, or None
    when nothing was uploaded or the upload failed. The staged temp file is
    always removed.
    """
    if not has_file(upload):
        return None
    path = await stage_upload(upload)
    try:
        if _configure_cloudinary():
            result = await run_in_threadpool(_upload_cloudinary, path, resource_type)
        else:
            result = _store_local(path, resource_type)
        logger.info("Uploaded %s to %s: %s", upload.filename, backend_name(), result["url"])
        return result
    except Exception:
        logger.exception("Upload of %s failed", upload.filename)
        return None
    finally:
        _remove(path)


def public_id_from_url(url: Optional[str]) -> Optional[str]:
    """
    Work out the Cloudinary public id from a delivery URL.

    https://res.cloudinary.com/demo/image/upload/v1712/folder/cat.jpg -> folder/cat
    """
    if not url:
        return None
    if url.startswith(LOCAL_URL_PREFIX):
        return os.path.splitext(url[len(LOCAL_URL_PREFIX):])[0] or None
    path = url.split("?", 1)[0]
    if "/upload/" not in path:
        return None
    segments = [s for s in path.split("/upload/", 1)[1].split("/") if s]
    # transformations come before the version segment; the public id after it
    versions = [i for i, s in enumerate(segments) if _VERSION_SEGMENT.match(s)]
    if versions:
        segments = segments[versions[0] + 1:]
    if not segments:
        return None
    segments[-1] = os.path.splitext(segments[-1])[0]
    return "/".join(segments)


def _delete_local(url: str) -> Dict[str, str]:
    filename = os.path.basename(url[len(LOCAL_URL_PREFIX):])
    path = os.path.join(settings.storage_dir, filename)
    if os.path.exists(path):
        os.remove(path)
        return {"result": "ok"}
    return {"result": "not found"}


async def delete_media(url: Optional[str], resource_type: str) -> Optional[Dict[str, Any]]:
    """Delete a stored file. Failures are logged, never raised."""
    if resource_type not in RESOURCE_TYPES:
        logger.warning("Refusing delete with resource type %r", resource_type)
        return None
    if not url:
        return None
    try:
        if url.startswith(LOCAL_URL_PREFIX):
            result = _delete_local(url)
        else:
            public_id = public_id_from_url(url)
            if not public_id or not _configure_cloudinary():
                logger.warning("Cannot delete %s: no public id or storage not configured", url)
                return None
            result = await run_in_threadpool(
                cloudinary.uploader.destroy, public_id, resource_type=resource_type, invalidate=True
            )
        if result.get("result") != "ok":
            logger.warning("Deleting %s returned %s", url, result.get("result"))
        return result
    except Exception:
        logger.exception("Deleting %s failed", url)
        return None


def local_file_path(filename: str) -> Optional[str]:
    """Resolve a /stream filename inside STORAGE_DIR, refusing anything outside it."""
    root = os.path.abspath(settings.storage_dir)
    path = os.path.abspath(os.path.join(root, filename))
    if os.path.dirname(path) != root or not os.path.isfile(path):
        return None
    return path
