"""Binary payload returned by the media generation clients."""

from dataclasses import dataclass


@dataclass(frozen=True)
class MediaPayload:
    """Raw bytes of a generated image, video or audio clip."""

    data: bytes
    mime_type: str

    @property
    def extension(self) -> str:
        """File extension matching ``mime_type`` (``bin`` if unknown)."""
        return _EXTENSIONS.get(self.mime_type, "bin")

    def __len__(self) -> int:
        return len(self.data)


_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
}
