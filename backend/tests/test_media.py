"""
Tasting AI — Media Resolver Tests
==================================

What we test:
    ✅ Valid image/audio references load with the right MIME type
    ✅ Unsupported extension, traversal, missing, oversized and empty files rejected
"""

import pytest

from tasting_ai.exceptions import MediaAccessError
from tasting_ai.services.media import LocalMediaResolver


@pytest.fixture
def media_root(tmp_path):
    root = tmp_path / "media"
    (root / "captures").mkdir(parents=True)
    (root / "captures" / "label.jpg").write_bytes(b"\xff\xd8\xff\xe0jpeg\xff\xd9")
    (root / "captures" / "note.m4a").write_bytes(b"m4a-audio-bytes")
    (root / "captures" / "empty.png").write_bytes(b"")
    (tmp_path / "secret.jpg").write_bytes(b"outside")
    return root


class TestLocalMediaResolver:
    @pytest.mark.asyncio
    async def test_loads_image(self, media_root):
        resolver = LocalMediaResolver(str(media_root), max_size=1024)

        blob = await resolver.load_image("captures/label.jpg")

        assert blob.mime_type == "image/jpeg"
        assert blob.data.startswith(b"\xff\xd8")
        assert blob.name == "label.jpg"

    @pytest.mark.asyncio
    async def test_loads_audio(self, media_root):
        resolver = LocalMediaResolver(str(media_root), max_size=1024)
        blob = await resolver.load_audio("captures/note.m4a")
        assert blob.mime_type == "audio/mp4"

    @pytest.mark.asyncio
    async def test_audio_extension_rejected_for_image(self, media_root):
        resolver = LocalMediaResolver(str(media_root), max_size=1024)
        with pytest.raises(MediaAccessError, match="Unsupported image type"):
            await resolver.load_image("captures/note.m4a")

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, media_root):
        resolver = LocalMediaResolver(str(media_root), max_size=1024)
        with pytest.raises(MediaAccessError, match="outside the media root"):
            await resolver.load_image("../secret.jpg")

    @pytest.mark.asyncio
    async def test_missing_file(self, media_root):
        resolver = LocalMediaResolver(str(media_root), max_size=1024)
        with pytest.raises(MediaAccessError, match="not found"):
            await resolver.load_image("captures/missing.jpg")

    @pytest.mark.asyncio
    async def test_oversized_file(self, media_root):
        resolver = LocalMediaResolver(str(media_root), max_size=4)
        with pytest.raises(MediaAccessError, match="larger than"):
            await resolver.load_audio("captures/note.m4a")

    @pytest.mark.asyncio
    async def test_empty_file(self, media_root):
        resolver = LocalMediaResolver(str(media_root), max_size=1024)
        with pytest.raises(MediaAccessError, match="empty"):
            await resolver.load_image("captures/empty.png")
