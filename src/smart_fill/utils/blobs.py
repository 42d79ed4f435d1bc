from __future__ import annotations

import threading
import uuid

BLOB_SCHEME = "blob:"

_blobs: dict[str, bytes] = {}
_lock = threading.Lock()


def create_object_url(data: bytes) -> str:
    url = f"{BLOB_SCHEME}{uuid.uuid4().hex}"
    with _lock:
        _blobs[url] = data
    return url


def fetch_object_url(url: str) -> bytes:
    with _lock:
        try:
            return _blobs[url]
        except KeyError:
            raise KeyError(f"Unknown or revoked object URL: {url}") from None


def revoke_object_url(url: str) -> None:
    with _lock:
        _blobs.pop(url, None)


def live_object_urls() -> int:
    with _lock:
        return len(_blobs)
