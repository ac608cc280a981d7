"""
Cloudinary HTTP upload helpers.

Used endpoint:
- POST /v1_1/{cloud_name}/{resource_type}/upload  -> {"secure_url": "https://...", ...}

Uploads are signed: the signature is SHA-1 over the sorted signed params
(`folder`, `timestamp`) followed by the API secret.
"""

from __future__ import annotations

import hashlib
import os
import time
from dataclasses import dataclass
from typing import Any

import httpx

DEFAULT_API_BASE_URL = "https://api.cloudinary.com"
RESOURCE_TYPES = {"image", "video", "raw"}


# Cloudinary failures are explicit and separable from other runtime errors.
class CloudinaryError(RuntimeError):
    pass


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class CloudinaryCredentials:
    cloud_name: str
    api_key: str
    api_secret: str


def credentials_from_env() -> CloudinaryCredentials:
    cloud_name = os.environ.get("CLOUDINARY_CLOUD_NAME", "").strip()
    api_key = os.environ.get("CLOUDINARY_API_KEY", "").strip()
    api_secret = os.environ.get("CLOUDINARY_API_SECRET", "").strip()
    if not (cloud_name and api_key and api_secret):
        raise CloudinaryError(
            "Cloudinary is not configured. Set CLOUDINARY_CLOUD_NAME, "
            "CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET."
        )
    return CloudinaryCredentials(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret)


def api_base_url() -> str:
    return os.environ.get("CLOUDINARY_API_BASE_URL", DEFAULT_API_BASE_URL).strip().rstrip("/") or DEFAULT_API_BASE_URL


def upload_timeout_s() -> float:
    return _env_float("CLOUDINARY_UPLOAD_TIMEOUT_S", 60.0)


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    """
    Cloudinary request signature for the given params.
    """
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()


async def upload_media(
    *,
    data: bytes,
    folder: str,
    resource_type: str = "image",
    filename: str | None = None,
    credentials: CloudinaryCredentials | None = None,
    timeout_s: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Upload `data` into `folder` and return the HTTPS delivery URL.
    """
    if not data:
        raise CloudinaryError("Upload buffer is empty.")
    folder = (folder or "").strip()
    if not folder:
        raise CloudinaryError("Upload folder is empty.")
    if resource_type not in RESOURCE_TYPES:
        raise CloudinaryError(f"Unsupported resource type '{resource_type}'.")

    creds = credentials or credentials_from_env()
    signed = {"folder": folder, "timestamp": int(time.time())}
    form = {
        **{key: str(value) for key, value in signed.items()},
        "api_key": creds.api_key,
        "signature": sign_params(signed, creds.api_secret),
    }

    try:
        async with httpx.AsyncClient(
            base_url=api_base_url(),
            timeout=timeout_s or upload_timeout_s(),
            transport=transport,
        ) as client:
            resp = await client.post(
                f"/v1_1/{creds.cloud_name}/{resource_type}/upload",
                data=form,
                files={"file": (filename or "upload", data)},
            )
    except httpx.HTTPError as exc:
        raise CloudinaryError(f"Cloudinary upload request failed: {exc}") from exc

    if resp.status_code != 200:
        # Avoid dumping huge bodies; include a small snippet.
        body = resp.text[:500]
        raise CloudinaryError(f"Cloudinary upload failed: {resp.status_code} {body}")

    try:
        payload: dict[str, Any] = resp.json()
    except ValueError as exc:
        raise CloudinaryError("Cloudinary returned a non-JSON upload response.") from exc

    url = payload.get("secure_url")
    if not isinstance(url, str) or not url.strip():
        raise CloudinaryError("Cloudinary returned no secure_url.")
    return url.strip()
