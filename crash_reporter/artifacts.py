"""
Backtrace artifact storage.

An artifact is the plain-text backtrace of one fault, stored under a random
name until the response phase mails and removes it.  Names are 160 bits of
``secrets`` randomness; a collision is astronomically unlikely but still
reported as :class:`ArtifactAlreadyExists` so the capture loop can rename.
"""

import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .constants import ARTIFACT_EXTENSION, ARTIFACT_RANDOM_BYTES
from .errors import ArtifactAlreadyExists, ArtifactDeleteFailed, ArtifactUploadFailed


def generate_name(folder: str) -> str:
    """Return ``<folder>/<40 hex chars>.btl``."""
    return f"{folder.rstrip('/')}/{secrets.token_hex(ARTIFACT_RANDOM_BYTES)}{ARTIFACT_EXTENSION}"


@dataclass
class BacktraceArtifact:
    """A backtrace waiting to be persisted."""

    folder: str
    content: str = ""
    name: str = field(default="")

    def __post_init__(self) -> None:
        if not self.name:
            self.regenerate_name()

    def regenerate_name(self) -> str:
        self.name = generate_name(self.folder)
        return self.name


class ArtifactStore:
    """Storage backend interface for backtrace artifacts."""

    def write(self, key: str, content: str) -> None:
        """Persist *content* under *key*.

        Raises:
            ArtifactAlreadyExists: *key* is already taken.
            ArtifactUploadFailed: the backend failed to write.
        """
        raise NotImplementedError

    def read(self, key: str) -> Optional[str]:
        """Return the stored content, or ``None`` if *key* does not exist."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove *key*; missing keys are ignored.

        Raises:
            ArtifactDeleteFailed: the backend failed to remove it.
        """
        raise NotImplementedError


class FilesystemArtifactStore(ArtifactStore):
    """Stores each artifact as a file; the key is the file path."""

    def write(self, key: str, content: str) -> None:
        path = Path(key)
        # Check-then-write is not atomic; the capture loop retries on collision
        if path.exists():
            raise ArtifactAlreadyExists(key, f"Backtrace file already exists: {key}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ArtifactUploadFailed(key, f"Failed to write backtrace file {key}: {exc}") from exc

    def read(self, key: str) -> Optional[str]:
        path = Path(key)
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError:
            return None

    def delete(self, key: str) -> None:
        try:
            Path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise ArtifactDeleteFailed(key, f"Failed to remove backtrace file {key}: {exc}") from exc
