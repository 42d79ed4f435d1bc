from __future__ import annotations

from hashlib import sha256
from pathlib import Path

PHOTO_ID_LENGTH = 16


def photo_id_for(path: Path, chunk_size: int = 1024 * 1024) -> str:
    """Stable photo id: the leading hex digits of the file's sha256."""
    digest = sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()[:PHOTO_ID_LENGTH]
