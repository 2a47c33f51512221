"""Attachment intake and the attachment-store collaborator.

Uploads arrive as ``{name, type, data}`` with base64 ``data``. The core
decodes and hands the bytes to an ``AttachmentStore`` and keeps only the
opaque reference the store returns; raw bytes are never persisted on a
container.
"""
import base64
import binascii
import logging
import re
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional, Union

from .errors import StorageError, ValidationError
from .schemas import AttachmentUpload

logger = logging.getLogger("delivery-core.attachments")

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_UNSAFE_IDENTIFIER_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class AttachmentStore(ABC):
    """Stores attachment bytes and returns a retrievable reference."""

    @abstractmethod
    def save(self, identifier: str, name: str, content_type: Optional[str], data: bytes) -> str:
        """
        Persist one attachment.

        Args:
            identifier: Grouping key, e.g. ``PRJ-0001-deliverable-submission``
            name: Original file name
            content_type: MIME type as declared by the uploader
            data: Decoded file content

        Returns:
            Reference that can later be used to retrieve the file

        Raises:
            StorageError: If the backend cannot persist the file
        """


def sanitize_filename(name: str) -> str:
    """Replace anything outside ``[a-zA-Z0-9.-]`` with ``_``."""
    cleaned = _UNSAFE_NAME_CHARS.sub("_", name.strip()) or "attachment"
    # Never let a name walk out of its directory
    return cleaned.lstrip(".") or "attachment"


class LocalAttachmentStore(AttachmentStore):
    """
    Filesystem-backed store.

    Files land in ``<base_dir>/<identifier>/<epoch_ms>_<sanitized name>`` and the
    returned reference is the path relative to ``base_dir``.
    """

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)

    def save(self, identifier: str, name: str, content_type: Optional[str], data: bytes) -> str:
        folder = _UNSAFE_IDENTIFIER_CHARS.sub("_", identifier) or "misc"
        filename = f"{int(time.time() * 1000)}_{sanitize_filename(name)}"
        target_dir = self.base_dir / folder
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            target = target_dir / filename
            # Two uploads of the same name within one millisecond
            suffix = 1
            while target.exists():
                target = target_dir / f"{filename}.{suffix}"
                suffix += 1
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to store attachment '{name}' under {folder}: {e}", exc_info=True)
            raise StorageError(f"Could not store attachment '{name}'") from e

        reference = f"{folder}/{target.name}"
        logger.debug(f"Stored attachment {reference} ({len(data)} bytes, {content_type or 'unknown type'})")
        return reference

    def resolve(self, reference: str) -> Path:
        """Map a reference back to a file path inside ``base_dir``."""
        path = (self.base_dir / reference).resolve()
        if self.base_dir.resolve() not in path.parents:
            raise ValidationError(f"Invalid attachment reference: {reference}")
        return path


def decode_upload(upload: AttachmentUpload) -> bytes:
    """
    Decode the base64 payload of one upload.

    Raises:
        ValidationError: If the payload is not valid base64
    """
    payload = upload.data
    # Accept data URLs as produced by browser FileReader
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(
            f"Attachment '{upload.name}' is not valid base64",
            details={"files": upload.name},
        ) from e


def store_attachments(
    store: AttachmentStore,
    identifier: str,
    uploads: Iterable[AttachmentUpload],
) -> list[str]:
    """
    Decode every upload, then persist them and return their references.

    All payloads are decoded before anything is written, so a malformed file
    rejects the request without touching the store.

    Raises:
        ValidationError: If any payload is malformed
        StorageError: If the store fails
    """
    decoded = [(upload, decode_upload(upload)) for upload in uploads]
    return [store.save(identifier, upload.name, upload.type, data) for upload, data in decoded]
