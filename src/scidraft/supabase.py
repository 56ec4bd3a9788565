"""Thin REST client for the hosted backend's Storage and Auth services.

Database reads and writes go through SQLAlchemy (see scidraft.database).
This module only covers the surfaces that are not SQL:
- Storage: bucket check/creation and object upload (manuals, drawings)
- Auth: resolving an access token to a user record

Uses requests with the service role key for Storage and the anon key for Auth.
"""

import base64
import binascii
import re
import time
from typing import Dict, Optional

import requests
from loguru import logger

from .config import get_config


MANUALS_BUCKET = "manuals"
DRAWINGS_BUCKET = "drawings"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageError(Exception):
    """Raised when a Storage request fails or Storage is not configured."""
    pass


class SupabaseAuthError(Exception):
    """Raised when the Auth service cannot be reached or is not configured."""
    pass


def _storage_headers(content_type: Optional[str] = None) -> Dict[str, str]:
    config = get_config()
    if not config.supabase_url or not config.supabase_service_role_key:
        raise StorageError("Storage is not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY)")

    headers = {
        "apikey": config.supabase_service_role_key,
        "Authorization": f"Bearer {config.supabase_service_role_key}",
    }
    if content_type:
        headers["Content-Type"] = content_type
    return headers


def _base_url() -> str:
    return get_config().supabase_url.rstrip("/")


def decode_base64_file(data: str) -> bytes:
    """
    Decode a base64 file payload, accepting data-URL prefixes.

    Raises:
        ValueError: If the payload is not valid base64
    """
    if "," in data and data.lstrip().startswith("data:"):
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Invalid base64 file payload") from e


def build_object_path(filename: str, prefix: str = "") -> str:
    """Build a collision-resistant object path from a client-provided filename."""
    safe_name = _UNSAFE_NAME_CHARS.sub("_", filename or "upload").strip("._") or "upload"
    path = f"{int(time.time() * 1000)}_{safe_name}"
    return f"{prefix.strip('/')}/{path}" if prefix else path


def get_public_url(bucket: str, path: str) -> str:
    return f"{_base_url()}/storage/v1/object/public/{bucket}/{path}"


def ensure_bucket(bucket: str, public: bool = True) -> None:
    """Create the bucket if it does not exist yet."""
    headers = _storage_headers()
    timeout = get_config().sd_http_timeout_seconds

    try:
        response = requests.get(f"{_base_url()}/storage/v1/bucket/{bucket}", headers=headers, timeout=timeout)
        if response.status_code == 200:
            return

        logger.info(f"Creating storage bucket '{bucket}'")
        response = requests.post(
            f"{_base_url()}/storage/v1/bucket",
            headers=headers,
            json={"id": bucket, "name": bucket, "public": public},
            timeout=timeout,
        )
        # 409: created concurrently by another request
        if response.status_code not in (200, 201, 409):
            raise StorageError(f"Failed to create bucket '{bucket}': HTTP {response.status_code}")

    except requests.exceptions.RequestException as e:
        logger.error(f"Storage request failed: {e}")
        raise StorageError(f"Storage request failed: {e}") from e


def upload_file(bucket: str, path: str, content: bytes, content_type: str = "application/octet-stream") -> Dict[str, str]:
    """
    Upload an object and return its public URL.

    Args:
        bucket: Bucket name (created if missing)
        path: Object path inside the bucket
        content: Raw bytes
        content_type: MIME type

    Returns:
        {"url": public URL, "path": object path}

    Raises:
        StorageError: On configuration or upload failure
    """
    ensure_bucket(bucket)

    try:
        response = requests.post(
            f"{_base_url()}/storage/v1/object/{bucket}/{path}",
            headers={**_storage_headers(content_type), "x-upsert": "false"},
            data=content,
            timeout=get_config().sd_http_timeout_seconds,
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"Storage upload failed: {e}")
        raise StorageError(f"Storage upload failed: {e}") from e

    if response.status_code not in (200, 201):
        logger.error(f"Storage upload to {bucket}/{path} returned HTTP {response.status_code}")
        raise StorageError(f"Storage upload failed: HTTP {response.status_code}")

    logger.info(f"Uploaded {len(content)} bytes to {bucket}/{path}")
    return {"url": get_public_url(bucket, path), "path": path}


def fetch_auth_user(access_token: str) -> Optional[dict]:
    """
    Resolve an access token to the Auth service's user record.

    Returns:
        User dict (id, email, email_confirmed_at, ...) or None if the token is rejected

    Raises:
        SupabaseAuthError: If Auth is not configured or unreachable
    """
    config = get_config()
    if not config.supabase_url or not config.supabase_anon_key:
        raise SupabaseAuthError("Auth is not configured (SUPABASE_URL / SUPABASE_ANON_KEY)")

    try:
        response = requests.get(
            f"{config.supabase_url.rstrip('/')}/auth/v1/user",
            headers={
                "apikey": config.supabase_anon_key,
                "Authorization": f"Bearer {access_token}",
            },
            timeout=config.sd_http_timeout_seconds,
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"Auth request failed: {e}")
        raise SupabaseAuthError(f"Auth request failed: {e}") from e

    if response.status_code in (401, 403):
        return None
    if response.status_code != 200:
        raise SupabaseAuthError(f"Auth service returned HTTP {response.status_code}")

    return response.json()
