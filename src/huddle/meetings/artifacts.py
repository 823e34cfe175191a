"""Local filesystem store for recorded meeting audio.

Each upload is written as ``<upload_dir>/<meeting_id>-<token><ext>``, so a
re-upload gets a new reference rather than overwriting the previous file
under a run that may still be reading it. Artifacts are referenced
by their path relative to the upload directory's parent, so a reference
stays valid if the service is started from the same working directory.
"""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path

import structlog

from src.huddle.services.llm import Attachment

logger = structlog.get_logger(__name__)

_MIME_BY_EXTENSION = {
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
}
DEFAULT_EXTENSION = ".webm"


class ArtifactNotFoundError(FileNotFoundError):
    """Raised when a referenced audio artifact is missing on disk."""


def mime_type_for(path: str | Path) -> str:
    """Audio MIME type by extension; unknown extensions are treated as webm."""
    return _MIME_BY_EXTENSION.get(Path(path).suffix.lower(), "audio/webm")


class AudioArtifactStore:
    """Writes uploaded audio to disk and loads it back as an Attachment.

    Args:
        upload_dir: Directory that receives artifacts; created on demand.
    """

    def __init__(self, upload_dir: str | Path) -> None:
        self._upload_dir = Path(upload_dir)

    def _resolve(self, ref: str) -> Path:
        return self._upload_dir.parent / ref.lstrip("/")

    async def save(self, meeting_id: str, data: bytes, filename: str = "") -> str:
        """Persist audio bytes for a meeting and return the artifact reference."""
        extension = Path(filename).suffix.lower() if filename else ""
        if extension not in _MIME_BY_EXTENSION:
            extension = DEFAULT_EXTENSION
        target = self._upload_dir / f"{meeting_id}-{uuid.uuid4().hex[:12]}{extension}"

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        ref = str(Path(self._upload_dir.name) / target.name)
        logger.info("audio_artifact_saved", meeting_id=meeting_id, ref=ref, size=len(data))
        return ref

    async def load(self, ref: str, display_name: str = "") -> Attachment:
        """Read an artifact back as an inference Attachment.

        Raises:
            ArtifactNotFoundError: If the file does not exist.
        """
        path = self._resolve(ref)
        if not path.is_file():
            raise ArtifactNotFoundError(f"Audio file not found on server: {ref}")
        data = await asyncio.to_thread(path.read_bytes)
        return Attachment(data=data, mime_type=mime_type_for(path), display_name=display_name)
