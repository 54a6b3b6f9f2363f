"""
Tasting AI — Media Access
==========================

What:  Resolves the opaque image/audio references in a capture into bytes.
Why:   The orchestrator and adapters only know "a reference". Where the
       bytes live (local disk today, object storage later) is this
       module's concern.
How:   `LocalMediaResolver` treats a reference as a path relative to
       MEDIA_ROOT, validates extension and size, and reads the file with
       aiofiles so the event loop is never blocked on disk I/O.

Validation (cheapest first):
    1. Extension check: known image/audio types only
    2. Path check:      resolved path must stay inside MEDIA_ROOT
    3. Existence check: must be a regular file
    4. Size check:      stat() before reading, so oversized files are never loaded

Every failure raises MediaAccessError. Adapters treat that as fatal for the
step (a retry would read the same missing file).
"""

import logging
from pathlib import Path
from typing import Dict, NamedTuple, Protocol

import aiofiles

from tasting_ai.exceptions import MediaAccessError

logger = logging.getLogger(__name__)


IMAGE_TYPES: Dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
}

AUDIO_TYPES: Dict[str, str] = {
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".aac": "audio/aac",
}


class MediaBlob(NamedTuple):
    data: bytes
    mime_type: str
    name: str


class MediaResolver(Protocol):
    async def load_image(self, reference: str) -> MediaBlob:
        ...

    async def load_audio(self, reference: str) -> MediaBlob:
        ...


class LocalMediaResolver:
    """
    Loads media from a directory on local disk.

    Args:
        media_root: base directory; references are relative to it
        max_size:   largest file accepted, in bytes
    """

    def __init__(self, media_root: str, max_size: int):
        self.media_root = Path(media_root).resolve()
        self.max_size = max_size

    async def load_image(self, reference: str) -> MediaBlob:
        return await self._load(reference, IMAGE_TYPES, "image")

    async def load_audio(self, reference: str) -> MediaBlob:
        return await self._load(reference, AUDIO_TYPES, "audio")

    def _resolve(self, reference: str) -> Path:
        candidate = (self.media_root / reference).resolve()
        # Path traversal guard: "../../etc/passwd" must not escape the root
        if candidate != self.media_root and self.media_root not in candidate.parents:
            raise MediaAccessError(
                message="Media reference points outside the media root",
                reference=reference,
            )
        return candidate

    async def _load(self, reference: str, types: Dict[str, str], kind: str) -> MediaBlob:
        ext = Path(reference).suffix.lower()
        if ext not in types:
            raise MediaAccessError(
                message=(
                    f"Unsupported {kind} type '{ext or '(none)'}'. "
                    f"Allowed: {', '.join(sorted(types))}"
                ),
                reference=reference,
                extension=ext,
            )

        path = self._resolve(reference)
        if not path.is_file():
            raise MediaAccessError(message=f"{kind.capitalize()} not found", reference=reference)

        size = path.stat().st_size
        if size > self.max_size:
            raise MediaAccessError(
                message=(
                    f"{kind.capitalize()} is {size / 1_048_576:.1f}MB, "
                    f"larger than the {self.max_size / 1_048_576:.0f}MB limit"
                ),
                reference=reference,
                size=size,
                max_size=self.max_size,
            )

        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except OSError as e:
            logger.error("Failed to read %s %s: %s", kind, path.name, str(e))
            raise MediaAccessError(
                message=f"{kind.capitalize()} could not be read",
                reference=reference,
                os_error=str(e),
            ) from e

        if not data:
            raise MediaAccessError(message=f"{kind.capitalize()} file is empty", reference=reference)

        logger.debug("Loaded %s %s (%d bytes)", kind, path.name, len(data))
        return MediaBlob(data=data, mime_type=types[ext], name=path.name)
